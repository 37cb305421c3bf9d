"""
Discord front end for the quiz game.

Slash commands forward player intents to the GameController; the
DiscordGameRenderer turns game events back into channel messages.
"""
import logging
import os
from typing import Dict, List, Optional

import discord
from discord.ext import commands

from .config_manager import ConfigManager
from .game_controller import GameController, GameEventListener
from .models import AnswerReveal, GameSession, GameState, LeaderboardEntry, QuestionType
from .question_bank import QuestionBank
from .score_store import JsonFileBackend, ScoreStore

logger = logging.getLogger(__name__)

COLOR_OK = 0x00ff00
COLOR_WARN = 0xff6600
COLOR_ERROR = 0xff0000
COLOR_INFO = 0x6699ff


def format_leaderboard(entries: List[LeaderboardEntry], limit: int = 10) -> str:
    """Render leaderboard entries as numbered lines."""
    if not entries:
        return "No scores yet for this category."
    lines = [f"{rank}. **{entry.name}** - {entry.score}" for rank, entry in enumerate(entries[:limit], start=1)]
    if len(entries) > limit:
        lines.append(f"... and {len(entries) - limit} more")
    return "\n".join(lines)


def build_question_embed(session: GameSession) -> discord.Embed:
    """Build the embed showing the current question and its countdown."""
    index = session.current_index or 0
    question = session.question_order[index]
    remaining = session.timer_seconds

    if session.paused:
        color, timer_emoji, footer_text = COLOR_INFO, "⏸️", "Paused - use /resume to continue"
    elif remaining > 5:
        color, timer_emoji, footer_text = COLOR_OK, "⏱️", "Use /answer to reply, /hint for a hint"
    elif remaining > 2:
        color, timer_emoji, footer_text = COLOR_WARN, "⚠️", "⚡ Time running out!"
    else:
        color, timer_emoji, footer_text = COLOR_ERROR, "🚨", "🚨 Final seconds!"

    embed = discord.Embed(
        title=f"🎯 Question {index + 1}/{session.total_questions}",
        description=question.content,
        color=color
    )

    if question.type is QuestionType.MCQ:
        embed.add_field(
            name="Options",
            value="\n".join(f"• {option}" for option in question.options),
            inline=False
        )
    else:
        embed.add_field(
            name="Type",
            value="Riddle" if question.type is QuestionType.RIDDLE else "Fill in the blank",
            inline=False
        )

    embed.add_field(
        name=f"{timer_emoji} Time Remaining",
        value=f"{remaining} second{'s' if remaining != 1 else ''}",
        inline=True
    )
    embed.add_field(name="🏅 Score", value=str(session.score), inline=True)
    embed.set_footer(text=footer_text)
    return embed


class DiscordGameRenderer(GameEventListener):
    """Renders game events into the channel the game is played in."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self._question_messages: Dict[int, discord.Message] = {}

    def _channel(self, channel_id: int):
        return self.bot.get_channel(channel_id)

    async def on_question(self, channel_id: int, session: GameSession) -> None:
        channel = self._channel(channel_id)
        if channel is None:
            logger.warning(f"Cannot render question: channel {channel_id} not found")
            return
        try:
            self._question_messages[channel_id] = await channel.send(embed=build_question_embed(session))
        except discord.HTTPException as e:
            logger.error(f"Failed to present question in channel {channel_id}: {e}")

    async def on_tick(self, channel_id: int, session: GameSession) -> None:
        if session.is_terminal:
            return
        remaining = session.timer_seconds
        # Discord rate-limits edits; refresh every 5 seconds and for the final countdown
        if remaining % 5 != 0 and remaining > 5:
            return

        message = self._question_messages.get(channel_id)
        if message is None:
            return
        try:
            await message.edit(embed=build_question_embed(session))
        except discord.HTTPException as e:
            logger.error(f"Failed to update timer in channel {channel_id}: {e}")

    async def on_reveal(self, channel_id: int, reveal: AnswerReveal, session: GameSession) -> None:
        channel = self._channel(channel_id)
        if channel is None:
            return

        if reveal.correct:
            embed = discord.Embed(
                title="✅ Correct!",
                description=f"**{reveal.correct_answer}** is right.",
                color=COLOR_OK
            )
        else:
            embed = discord.Embed(
                title="❌ Wrong answer",
                description=f"You answered **{reveal.submitted}**. The answer was **{reveal.correct_answer}**.",
                color=COLOR_ERROR
            )
        try:
            await channel.send(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to reveal answer in channel {channel_id}: {e}")

    async def on_game_over(
        self,
        channel_id: int,
        session: GameSession,
        leaderboard: List[LeaderboardEntry]
    ) -> None:
        self._question_messages.pop(channel_id, None)
        channel = self._channel(channel_id)
        if channel is None:
            return

        if session.state is GameState.WON:
            embed = discord.Embed(
                title="🎉 Congratulations!",
                description=f"{session.player_name} completed **{session.category}** with a score of {session.score}.",
                color=COLOR_OK
            )
        else:
            reason = "Time's up!" if session.timer_seconds == 0 else "Wrong answer."
            embed = discord.Embed(
                title="💀 Game Over!",
                description=f"{reason} {session.player_name} scored {session.score}. Better luck next time!",
                color=COLOR_ERROR
            )

        highest = leaderboard[0].score if leaderboard else session.score
        embed.add_field(name="🏆 Highest Score", value=str(highest), inline=True)
        embed.add_field(
            name=f"Leaderboard - {session.category.capitalize()}",
            value=format_leaderboard(leaderboard),
            inline=False
        )
        embed.set_footer(text="Use /play to start a new game")
        try:
            await channel.send(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to send game over message in channel {channel_id}: {e}")


class QuizGameBot(commands.Bot):
    """Discord bot that hosts quiz games"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}
        self.config_manager = ConfigManager()
        self.question_bank: Optional[QuestionBank] = None
        self.score_store: Optional[ScoreStore] = None
        self.game_controller: Optional[GameController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        logger.info("Setting up bot components...")

        if self.app_config:
            for message in self.config_manager.apply_config(self.app_config):
                logger.warning(f"Configuration: {message}")

        self.question_bank = QuestionBank(self.config_manager.get_question_bank_path())
        self.question_bank.load()
        logger.info(f"Loaded {len(self.question_bank.get_categories())} categories")

        self.score_store = ScoreStore(JsonFileBackend(self.config_manager.get_leaderboard_path()))
        self.game_controller = GameController(
            self.question_bank,
            self.score_store,
            self.config_manager.get_game_settings(),
            listener=DiscordGameRenderer(self)
        )

        self.setup_commands()
        logger.info("Bot setup completed successfully")

    def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="categories", description="List the question categories")
        async def categories_command(interaction: discord.Interaction):
            await self.handle_categories(interaction)

        @self.tree.command(name="play", description="Start a game with your name and a category")
        async def play_command(interaction: discord.Interaction, name: str, category: str):
            await self.handle_play(interaction, name, category)

        @self.tree.command(name="answer", description="Answer the current question")
        async def answer_command(interaction: discord.Interaction, value: str):
            await self.handle_answer(interaction, value)

        @self.tree.command(name="pause", description="Pause the countdown")
        async def pause_command(interaction: discord.Interaction):
            await self.handle_pause(interaction)

        @self.tree.command(name="resume", description="Resume the countdown")
        async def resume_command(interaction: discord.Interaction):
            await self.handle_resume(interaction)

        @self.tree.command(name="hint", description="Show a hint for the current question")
        async def hint_command(interaction: discord.Interaction):
            await self.handle_hint(interaction)

        @self.tree.command(name="leaderboard", description="Show the leaderboard of a category")
        async def leaderboard_command(interaction: discord.Interaction, category: str):
            await self.handle_leaderboard(interaction, category)

        @self.tree.command(name="status", description="Show the current game status")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="stop", description="Abandon the current game")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has connected to Discord"""
        logger.info(f"Bot connected as {self.user}")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def close(self):
        if self.game_controller:
            await self.game_controller.shutdown()
        await super().close()

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send an ephemeral error embed, whether or not the interaction was answered."""
        embed = discord.Embed(title=title, description=message, color=COLOR_ERROR)
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Failed to send error response: {e}")

    async def handle_help(self, interaction: discord.Interaction):
        embed = discord.Embed(
            title="🎮 Quiz Game Commands",
            description="Answer every question before the timer runs out to win.",
            color=COLOR_INFO
        )
        embed.add_field(
            name="Playing",
            value=(
                "`/play name category` - start a game\n"
                "`/answer value` - answer the current question\n"
                "`/hint` - show a hint\n"
                "`/pause`, `/resume` - pause or resume the countdown\n"
                "`/stop` - abandon the game"
            ),
            inline=False
        )
        embed.add_field(
            name="Info",
            value="`/categories`, `/leaderboard category`, `/status`",
            inline=False
        )
        embed.set_footer(text=self.config_manager.get_settings_summary().replace("\n", " "))
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_categories(self, interaction: discord.Interaction):
        categories = self.game_controller.get_available_categories()
        embed = discord.Embed(
            title="📚 Categories",
            description="\n".join(
                f"• **{name}** ({self.question_bank.get_question_count(name)} questions)" for name in categories
            ) or "No categories available.",
            color=COLOR_INFO
        )
        if self.question_bank.is_fallback_bank_active():
            embed.add_field(
                name="⚠️ Using Fallback Questions",
                value="The question bank could not be loaded.",
                inline=False
            )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_play(self, interaction: discord.Interaction, name: str, category: str):
        """Handle /play"""
        try:
            result = await self.game_controller.start_game(interaction.channel_id, name, category)
            if result['success']:
                info = result['session_info']
                await interaction.response.send_message(
                    f"🎯 {info['player_name']} is playing **{info['category']}** "
                    f"({info['total_questions']} questions). Good luck!"
                )
            else:
                categories = ", ".join(self.game_controller.get_available_categories())
                await self.send_error_response(
                    interaction,
                    f"{result['user_message']}\nCategories: {categories}",
                    "❌ Cannot Start Game"
                )
        except discord.HTTPException as e:
            logger.error(f"Discord error in play command: {e}")
        except Exception as e:
            logger.error(f"Error in play command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to start the game")

    async def handle_answer(self, interaction: discord.Interaction, value: str):
        """Handle /answer"""
        try:
            await interaction.response.defer(ephemeral=True)
            result = await self.game_controller.submit_answer(interaction.channel_id, value)
            if result['success'] or result['reveal'] is not None:
                await interaction.followup.send(f"Answer received: {value}", ephemeral=True)
            else:
                await interaction.followup.send(result['message'], ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Discord error in answer command: {e}")
        except Exception as e:
            logger.error(f"Error in answer command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to submit the answer")

    async def handle_pause(self, interaction: discord.Interaction):
        try:
            result = await self.game_controller.pause_game(interaction.channel_id)
            if result['success']:
                info = result['session_info']
                await interaction.response.send_message(
                    f"⏸️ Game paused with {info['timer_seconds']}s left. Use `/resume` to continue."
                )
            else:
                await interaction.response.send_message(result['message'], ephemeral=True)
        except Exception as e:
            logger.error(f"Error in pause command: {e}")
            await self.send_error_response(interaction, "Failed to pause the game", "❌ Game Control Error")

    async def handle_resume(self, interaction: discord.Interaction):
        try:
            result = await self.game_controller.resume_game(interaction.channel_id)
            if result['success']:
                await interaction.response.send_message("▶️ Game resumed!")
            else:
                await interaction.response.send_message(result['message'], ephemeral=True)
        except Exception as e:
            logger.error(f"Error in resume command: {e}")
            await self.send_error_response(interaction, "Failed to resume the game", "❌ Game Control Error")

    async def handle_hint(self, interaction: discord.Interaction):
        try:
            result = self.game_controller.request_hint(interaction.channel_id)
            if result['success']:
                await interaction.response.send_message(
                    f"💡 {result['hint']}",
                    ephemeral=True,
                    delete_after=result['display_seconds']
                )
            else:
                await interaction.response.send_message(result['message'], ephemeral=True)
        except Exception as e:
            logger.error(f"Error in hint command: {e}")
            await self.send_error_response(interaction, "Failed to show a hint")

    async def handle_leaderboard(self, interaction: discord.Interaction, category: str):
        try:
            if not self.question_bank.category_exists(category):
                await self.send_error_response(interaction, f"Unknown category: {category}")
                return
            entries = self.game_controller.get_leaderboard(category)
            embed = discord.Embed(
                title=f"🏆 Leaderboard - {category.capitalize()}",
                description=format_leaderboard(entries),
                color=COLOR_INFO
            )
            embed.add_field(name="Highest Score", value=str(entries[0].score if entries else 0), inline=True)
            await interaction.response.send_message(embed=embed)
        except Exception as e:
            logger.error(f"Error in leaderboard command: {e}")
            await self.send_error_response(interaction, "Failed to load the leaderboard")

    async def handle_status(self, interaction: discord.Interaction):
        info = self.game_controller.get_session_progress(interaction.channel_id)
        if info is None:
            await interaction.response.send_message("No game in this channel. Use `/play` to start one.", ephemeral=True)
            return

        embed = discord.Embed(
            title=f"📊 {info['player_name']} - {info['category']}",
            color=COLOR_INFO
        )
        embed.add_field(name="State", value=info['state'].capitalize(), inline=True)
        embed.add_field(name="Score", value=str(info['score']), inline=True)
        embed.add_field(
            name="Question",
            value=f"{info['current_question']}/{info['total_questions']}",
            inline=True
        )
        if info['state'] == GameState.PLAYING.value:
            embed.add_field(
                name="Timer",
                value=f"{info['timer_seconds']}s" + (" (paused)" if info['is_paused'] else ""),
                inline=True
            )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_stop(self, interaction: discord.Interaction):
        try:
            result = await self.game_controller.stop_game(interaction.channel_id)
            if result['success']:
                await interaction.response.send_message("🛑 Game stopped. Use `/play` to start a new one.")
            else:
                await interaction.response.send_message(result['message'], ephemeral=True)
        except Exception as e:
            logger.error(f"Error in stop command: {e}")
            await self.send_error_response(interaction, "Failed to stop the game", "❌ Game Control Error")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizGameBot(config)

    try:
        logger.info("Starting Discord Quiz Game bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
