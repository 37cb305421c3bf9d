#!/usr/bin/env python3
"""
Quiz Game Bot entry point.

Usage:
    python main.py [path/to/config.json]

The bot token is read from DISCORD_BOT_TOKEN, falling back to bot.token in
the config file. The game section points at the question bank and the
leaderboard file and tunes the countdown; the logging section sets the level
and where the rotating log file is written.
"""

import asyncio
import json
import logging
import logging.handlers
import os
import sys
from pathlib import Path

from quiz_game.bot import run_bot

DEFAULT_CONFIG_PATH = Path("config.json")
TOKEN_PLACEHOLDER = "YOUR_DISCORD_BOT_TOKEN_HERE"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_MAX_BYTES = 5 * 1024 * 1024  # 5MB
LOG_BACKUP_COUNT = 3


class StartupError(Exception):
    """A configuration problem that keeps the bot from starting."""
    pass


def load_config(config_path: Path = DEFAULT_CONFIG_PATH) -> dict:
    """
    Read the JSON configuration file.

    Raises:
        StartupError: If the file is missing, unreadable or not a JSON object
    """
    if not config_path.exists():
        raise StartupError(f"{config_path} not found. Copy the shipped config.json and set your bot token.")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise StartupError(f"Invalid JSON in {config_path}: {e}") from e
    except OSError as e:
        raise StartupError(f"Cannot read {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise StartupError(f"{config_path} must contain a JSON object")
    return config


def get_bot_token(config: dict) -> str:
    """Environment variable first, then the config file."""
    token = os.getenv('DISCORD_BOT_TOKEN') or config.get('bot', {}).get('token')
    if not token or token == TOKEN_PLACEHOLDER:
        raise StartupError(
            "Discord bot token not configured. Set DISCORD_BOT_TOKEN "
            "or the 'token' field of the bot section."
        )
    return token


def setup_logging_from_config(config: dict) -> Path:
    """
    Log to the console and to a rotating file.

    Returns:
        Path of the log file
    """
    log_config = config.get('logging', {})
    log_level = getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO)
    log_directory = Path(log_config.get('log_directory', './logs/'))
    log_directory.mkdir(parents=True, exist_ok=True)
    log_file = log_directory / "bot.log"

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=log_config.get('max_bytes', LOG_MAX_BYTES),
                backupCount=log_config.get('backup_count', LOG_BACKUP_COUNT),
                encoding='utf-8'
            )
        ]
    )

    # discord.py logs every gateway event at INFO
    for name in ('discord', 'discord.http', 'discord.gateway'):
        logging.getLogger(name).setLevel(logging.WARNING)
    return log_file


def main(argv=None) -> int:
    """Start the bot and block until it stops. Returns the process exit code."""
    argv = sys.argv[1:] if argv is None else argv
    config_path = Path(argv[0]) if argv else DEFAULT_CONFIG_PATH

    try:
        config = load_config(config_path)
        log_file = setup_logging_from_config(config)
        token = get_bot_token(config)
    except StartupError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    logging.getLogger(__name__).info(f"Using {config_path}, logging to {log_file}")
    print("🤖 Starting Quiz Game Bot...")
    try:
        asyncio.run(run_bot(token, config))
    except KeyboardInterrupt:
        print("\n👋 Bot stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
