"""
Configuration manager for quiz game settings and parameters.
"""
import logging
from pathlib import Path
from typing import Any, Dict, List

from .models import QUESTION_TIME_LIMIT, GameSettings


class ConfigManager:
    """Manages game configuration settings and file locations."""

    # Default configuration values
    DEFAULT_TIMER_DURATION = QUESTION_TIME_LIMIT
    DEFAULT_REVEAL_DELAY = 1.0
    DEFAULT_HINT_DISPLAY_SECONDS = 3
    DEFAULT_QUESTION_BANK_PATH = "./questions.json"
    DEFAULT_LEADERBOARD_PATH = "./data/leaderboards.json"

    # Validation limits
    MIN_TIMER_DURATION = 5
    MAX_TIMER_DURATION = 300  # 5 minutes
    MIN_REVEAL_DELAY = 0.0
    MAX_REVEAL_DELAY = 5.0
    MIN_HINT_DISPLAY_SECONDS = 1
    MAX_HINT_DISPLAY_SECONDS = 30

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._settings = GameSettings()
        self._question_bank_path = self.DEFAULT_QUESTION_BANK_PATH
        self._leaderboard_path = self.DEFAULT_LEADERBOARD_PATH

    def get_game_settings(self) -> GameSettings:
        """
        Get a copy of the current game settings.

        Returns:
            GameSettings object with current configuration
        """
        return GameSettings(
            timer_duration=self._settings.timer_duration,
            reveal_delay=self._settings.reveal_delay,
            hint_display_seconds=self._settings.hint_display_seconds,
            tick_interval=self._settings.tick_interval
        )

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the countdown for each question.

        Args:
            duration: Timer duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(duration, int) or isinstance(duration, bool):
            error_msg = f"Timer duration must be an integer, got {type(duration).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(duration).__name__}"
            }

        if duration < self.MIN_TIMER_DURATION:
            error_msg = f"Timer duration must be at least {self.MIN_TIMER_DURATION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too short: Minimum is {self.MIN_TIMER_DURATION} seconds"
            }

        if duration > self.MAX_TIMER_DURATION:
            error_msg = f"Timer duration cannot exceed {self.MAX_TIMER_DURATION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too long: Maximum is {self.MAX_TIMER_DURATION} seconds ({self.MAX_TIMER_DURATION // 60} minutes)"
            }

        self._settings.timer_duration = duration
        self.logger.info(f"Timer duration set to {duration} seconds")
        return {
            'success': True,
            'message': f"Timer duration set to {duration} seconds",
            'user_message': f"✅ Timer set to {duration} seconds"
        }

    def get_timer_duration(self) -> int:
        return self._settings.timer_duration

    def set_reveal_delay(self, delay: float) -> Dict[str, Any]:
        """
        Set how long an answer's correctness is shown before the game moves on.

        Args:
            delay: Delay in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(delay, (int, float)) or isinstance(delay, bool):
            error_msg = f"Reveal delay must be a number, got {type(delay).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(delay).__name__}"
            }

        if not self.MIN_REVEAL_DELAY <= delay <= self.MAX_REVEAL_DELAY:
            error_msg = f"Reveal delay must be between {self.MIN_REVEAL_DELAY} and {self.MAX_REVEAL_DELAY} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Reveal delay must be between {self.MIN_REVEAL_DELAY:g} and {self.MAX_REVEAL_DELAY:g} seconds"
            }

        self._settings.reveal_delay = float(delay)
        self.logger.info(f"Reveal delay set to {delay} seconds")
        return {
            'success': True,
            'message': f"Reveal delay set to {delay} seconds",
            'user_message': f"✅ Answers are shown for {delay:g} seconds"
        }

    def get_reveal_delay(self) -> float:
        return self._settings.reveal_delay

    def set_hint_display_seconds(self, seconds: int) -> Dict[str, Any]:
        """
        Set how long a requested hint stays visible.

        Args:
            seconds: Display time in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(seconds, int) or isinstance(seconds, bool):
            error_msg = f"Hint display time must be an integer, got {type(seconds).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(seconds).__name__}"
            }

        if not self.MIN_HINT_DISPLAY_SECONDS <= seconds <= self.MAX_HINT_DISPLAY_SECONDS:
            error_msg = (
                f"Hint display time must be between {self.MIN_HINT_DISPLAY_SECONDS} "
                f"and {self.MAX_HINT_DISPLAY_SECONDS} seconds"
            )
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {error_msg}"
            }

        self._settings.hint_display_seconds = seconds
        self.logger.info(f"Hint display time set to {seconds} seconds")
        return {
            'success': True,
            'message': f"Hint display time set to {seconds} seconds",
            'user_message': f"✅ Hints are shown for {seconds} seconds"
        }

    def get_hint_display_seconds(self) -> int:
        return self._settings.hint_display_seconds

    def _set_path(self, attribute: str, label: str, path: str) -> Dict[str, Any]:
        if not isinstance(path, str) or not path.strip():
            error_msg = f"{label} must be a non-empty path string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid {label.lower()}: {path!r}"
            }

        try:
            normalized_path = str(Path(path).expanduser().resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid {label.lower()} format: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {path}"
            }

        setattr(self, attribute, normalized_path)
        self.logger.info(f"{label} set to {normalized_path}")
        return {
            'success': True,
            'message': f"{label} set to {normalized_path}",
            'user_message': f"✅ {label} set to {normalized_path}"
        }

    def set_question_bank_path(self, path: str) -> Dict[str, Any]:
        return self._set_path('_question_bank_path', "Question bank path", path)

    def get_question_bank_path(self) -> str:
        return self._question_bank_path

    def set_leaderboard_path(self, path: str) -> Dict[str, Any]:
        return self._set_path('_leaderboard_path', "Leaderboard path", path)

    def get_leaderboard_path(self) -> str:
        return self._leaderboard_path

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'game' section of a loaded config.json.

        Invalid values are logged and skipped so the defaults stay in effect.

        Args:
            config: Full configuration dictionary

        Returns:
            List of user-facing messages for the values that were rejected
        """
        game_config = (config or {}).get('game', {}) or {}
        setters = (
            ('question_bank', self.set_question_bank_path),
            ('leaderboard_file', self.set_leaderboard_path),
            ('timer_duration', self.set_timer_duration),
            ('reveal_delay', self.set_reveal_delay),
            ('hint_display_seconds', self.set_hint_display_seconds),
        )

        rejected = []
        for key, setter in setters:
            if key not in game_config:
                continue
            result = setter(game_config[key])
            if not result['success']:
                rejected.append(result['user_message'])

        if rejected:
            self.logger.warning(f"Ignored {len(rejected)} invalid configuration values")
        return rejected

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._settings = GameSettings(
            timer_duration=self.DEFAULT_TIMER_DURATION,
            reveal_delay=self.DEFAULT_REVEAL_DELAY,
            hint_display_seconds=self.DEFAULT_HINT_DISPLAY_SECONDS
        )
        self._question_bank_path = self.DEFAULT_QUESTION_BANK_PATH
        self._leaderboard_path = self.DEFAULT_LEADERBOARD_PATH
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        if (not isinstance(self._settings.timer_duration, int) or
                self._settings.timer_duration < self.MIN_TIMER_DURATION or
                self._settings.timer_duration > self.MAX_TIMER_DURATION):
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid timer duration: {self._settings.timer_duration}"
            )

        if not self.MIN_REVEAL_DELAY <= self._settings.reveal_delay <= self.MAX_REVEAL_DELAY:
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid reveal delay: {self._settings.reveal_delay}"
            )

        if not self.MIN_HINT_DISPLAY_SECONDS <= self._settings.hint_display_seconds <= self.MAX_HINT_DISPLAY_SECONDS:
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid hint display time: {self._settings.hint_display_seconds}"
            )

        if self._settings.tick_interval <= 0:
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid tick interval: {self._settings.tick_interval}"
            )

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        return (
            f"Game Settings:\n"
            f"• Timer: {self._settings.timer_duration} seconds per question\n"
            f"• Answer reveal: {self._settings.reveal_delay:g} seconds\n"
            f"• Hint display: {self._settings.hint_display_seconds} seconds\n"
            f"• Question bank: {self._question_bank_path}\n"
            f"• Leaderboards: {self._leaderboard_path}"
        )
