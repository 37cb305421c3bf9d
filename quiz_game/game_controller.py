"""
Game session controller for the quiz game.
Owns one game engine per channel and serializes every event against it.

All engine mutation happens on the asyncio event loop, and each channel has
an asyncio.Lock held around every state-changing event because the answer
reveal window spans an await.
"""
import asyncio
import logging
import time
import weakref
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .errors import ValidationError
from .game_engine import GameEngine
from .game_timer import GameTimer, TimerLifecycleLogger
from .models import AnswerReveal, GameSession, GameSettings, GameState, LeaderboardEntry
from .question_bank import QuestionBank
from .score_store import ScoreStore


class GameEventListener:
    """
    Receives game events for rendering. Every method is a no-op by default.

    Exceptions raised by a listener are logged and never interrupt the game.
    """

    async def on_question(self, channel_id: int, session: GameSession) -> None:
        pass

    async def on_tick(self, channel_id: int, session: GameSession) -> None:
        pass

    async def on_reveal(self, channel_id: int, reveal: AnswerReveal, session: GameSession) -> None:
        pass

    async def on_game_over(
        self,
        channel_id: int,
        session: GameSession,
        leaderboard: List[LeaderboardEntry]
    ) -> None:
        pass


class GameController:
    """
    Orchestrates game sessions across channels.

    Each channel has at most one session. Starting a new game in a channel
    replaces the previous session and cancels its countdown. Finished
    sessions stay visible for FINISHED_SESSION_RETENTION and are then evicted.
    """

    FINISHED_SESSION_RETENTION = timedelta(minutes=10)

    def __init__(
        self,
        question_bank: QuestionBank,
        score_store: ScoreStore,
        settings: Optional[GameSettings] = None,
        listener: Optional[GameEventListener] = None,
        rng=None
    ):
        """
        Initialize the game controller.

        Args:
            question_bank: Loaded question bank
            score_store: Leaderboard persistence
            settings: Timer and reveal settings, defaults if None
            listener: Receives game events for rendering
            rng: Random source handed to each engine, for reproducible shuffles
        """
        self.logger = logging.getLogger(__name__)
        self.question_bank = question_bank
        self.score_store = score_store
        self.settings = settings or GameSettings()
        self.listener = listener or GameEventListener()
        self._rng = rng

        self._engines: Dict[int, GameEngine] = {}
        self._timers: Dict[int, GameTimer] = {}
        # Only the holder and waiters keep a channel lock alive
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._store_lock: Optional[asyncio.Lock] = None
        self._closed = False

        self.logger.info("GameController initialized")

    def _lock(self, channel_id: int) -> asyncio.Lock:
        lock = self._locks.get(channel_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[channel_id] = lock
        return lock

    def _evict_finished_sessions(self) -> int:
        """Drop terminal sessions that finished longer ago than the retention period."""
        cutoff = datetime.now() - self.FINISHED_SESSION_RETENTION
        expired = [
            channel_id for channel_id, engine in self._engines.items()
            if engine.session is not None
            and engine.session.is_terminal
            and engine.session.finished_at is not None
            and engine.session.finished_at <= cutoff
        ]
        for channel_id in expired:
            del self._engines[channel_id]
        if expired:
            self.logger.debug(f"Evicted {len(expired)} finished sessions")
        return len(expired)

    def get_engine(self, channel_id: int) -> Optional[GameEngine]:
        return self._engines.get(channel_id)

    def get_session(self, channel_id: int) -> Optional[GameSession]:
        engine = self._engines.get(channel_id)
        return engine.session if engine else None

    def get_state(self, channel_id: int) -> GameState:
        engine = self._engines.get(channel_id)
        return engine.state if engine else GameState.START

    def get_timer(self, channel_id: int) -> Optional[GameTimer]:
        return self._timers.get(channel_id)

    def get_available_categories(self) -> List[str]:
        return self.question_bank.get_categories()

    async def _notify(self, event: str, *args) -> None:
        try:
            await getattr(self.listener, event)(*args)
        except Exception as e:
            self.logger.error(f"Listener failed during {event}: {e}", exc_info=True)

    # Timer wiring

    def _cancel_timer(self, channel_id: int) -> bool:
        timer = self._timers.pop(channel_id, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def _start_timer(self, channel_id: int, engine: GameEngine) -> GameTimer:
        self._cancel_timer(channel_id)

        generation = engine.generation
        timer = GameTimer(str(channel_id), generation, self.settings.tick_interval)
        self._timers[channel_id] = timer
        if engine.session.paused:
            timer.pause()

        async def on_tick(tick_generation: int) -> bool:
            return await self._handle_tick(channel_id, tick_generation)

        timer.start(on_tick)
        return timer

    async def _handle_tick(self, channel_id: int, tick_generation: int) -> bool:
        """Apply one countdown tick. Returns False when this countdown must stop."""
        async with self._lock(channel_id):
            engine = self._engines.get(channel_id)
            if engine is None or engine.generation != tick_generation:
                TimerLifecycleLogger.log_stale_tick(
                    str(channel_id),
                    tick_generation,
                    engine.generation if engine else -1
                )
                return False

            remaining = engine.tick()
            if remaining is None:
                # Paused or revealing; the countdown waits
                return True

            TimerLifecycleLogger.log_timer_update(str(channel_id), remaining, engine.timer_duration)
            session = engine.session
            await self._notify('on_tick', channel_id, session)

            if session.is_terminal:
                await self._handle_game_over(channel_id, engine)
                return False
            return True

    # Game over

    async def _handle_game_over(self, channel_id: int, engine: GameEngine) -> None:
        """Archive a terminal session exactly once. Caller holds the channel lock."""
        self._cancel_timer(channel_id)

        session = engine.session
        if session is None or not session.is_terminal or session.recorded:
            return
        session.recorded = True

        if self._store_lock is None:
            self._store_lock = asyncio.Lock()
        try:
            # Store writes are file I/O; one at a time, off the event loop
            async with self._store_lock:
                leaderboard = await asyncio.to_thread(
                    self.score_store.record_score,
                    session.category,
                    session.player_name,
                    session.score
                )
        except Exception as e:
            self.logger.error(f"Failed to record score for channel {channel_id}: {e}", exc_info=True)
            leaderboard = []

        self.logger.info(
            f"Recorded {session.state.value} game for channel {channel_id}: "
            f"{session.player_name} scored {session.score} in '{session.category}'",
            extra={
                'event_type': 'game_recorded',
                'channel_id': channel_id,
                'category': session.category,
                'score': session.score,
                'outcome': session.state.value,
                'timestamp': time.time()
            }
        )
        await self._notify('on_game_over', channel_id, session, leaderboard)

    # Player intents

    async def start_game(self, channel_id: int, player_name: str, category: str) -> Dict[str, Any]:
        """
        Start a new game in a channel, replacing any previous session.

        Args:
            channel_id: Channel identifier
            player_name: Name recorded on the leaderboard
            category: Question bank category

        Returns:
            Dictionary with operation result and session info
        """
        self._evict_finished_sessions()

        async with self._lock(channel_id):
            engine = self._engines.get(channel_id)
            if engine is None:
                engine = GameEngine(
                    self.question_bank.categories,
                    timer_duration=self.settings.timer_duration,
                    rng=self._rng
                )

            try:
                session = engine.start(player_name, category)
            except ValidationError as e:
                self.logger.info(f"Rejected game start for channel {channel_id}: {e}")
                return {
                    'success': False,
                    'error': str(e),
                    'user_message': e.user_message,
                    'session_info': None
                }

            self._engines[channel_id] = engine
            self._start_timer(channel_id, engine)

            self.logger.info(
                f"Started game for channel {channel_id}: category='{category}', "
                f"questions={session.total_questions}",
                extra={
                    'event_type': 'session_started',
                    'channel_id': channel_id,
                    'category': category,
                    'generation': session.generation,
                    'timestamp': time.time()
                }
            )
            await self._notify('on_question', channel_id, session)

            return {
                'success': True,
                'message': f"Started '{category}' with {session.total_questions} questions.",
                'session_info': self.get_session_progress(channel_id)
            }

    async def submit_answer(self, channel_id: int, value: str) -> Dict[str, Any]:
        """
        Submit an answer: reveal it, wait out the reveal window, then advance.

        Answers arriving while the previous one is being revealed are ignored.

        Args:
            channel_id: Channel identifier
            value: Selected option or typed answer

        Returns:
            Dictionary with the reveal and the resulting state
        """
        async with self._lock(channel_id):
            engine = self._engines.get(channel_id)
            reveal = engine.submit_answer(value) if engine else None
            if reveal is None:
                return {
                    'success': False,
                    'message': "No question is waiting for an answer.",
                    'reveal': None,
                    'state': self.get_state(channel_id)
                }

            # The answer is in; stop the clock for the reveal window
            self._cancel_timer(channel_id)
            generation = engine.generation
            await self._notify('on_reveal', channel_id, reveal, engine.session)

        await asyncio.sleep(self.settings.reveal_delay)

        async with self._lock(channel_id):
            if self._closed:
                self.logger.info(f"Controller shut down during reveal for channel {channel_id}, dropping result")
                return {
                    'success': False,
                    'message': "The game is shutting down.",
                    'reveal': reveal,
                    'state': self.get_state(channel_id)
                }

            if self._engines.get(channel_id) is not engine or engine.generation != generation:
                self.logger.info(f"Session for channel {channel_id} replaced during reveal, dropping result")
                return {
                    'success': False,
                    'message': "The game was restarted.",
                    'reveal': reveal,
                    'state': self.get_state(channel_id)
                }

            state = engine.complete_reveal()
            session = engine.session
            if session.is_terminal:
                await self._handle_game_over(channel_id, engine)
            else:
                self._start_timer(channel_id, engine)
                await self._notify('on_question', channel_id, session)

            return {
                'success': True,
                'message': "Correct!" if reveal.correct else f"Wrong! The answer was {reveal.correct_answer}.",
                'reveal': reveal,
                'state': state
            }

    async def pause_game(self, channel_id: int) -> Dict[str, Any]:
        """Pause the countdown of the channel's game."""
        async with self._lock(channel_id):
            engine = self._engines.get(channel_id)
            if engine is None or not engine.pause():
                return {'success': False, 'message': "No game in progress to pause."}

            timer = self._timers.get(channel_id)
            if timer:
                timer.pause()
            self.logger.info(
                f"Paused game for channel {channel_id}",
                extra={
                    'event_type': 'session_paused',
                    'channel_id': channel_id,
                    'timer_seconds': engine.session.timer_seconds,
                    'timestamp': time.time()
                }
            )
            return {'success': True, 'message': "Game paused.", 'session_info': self.get_session_progress(channel_id)}

    async def resume_game(self, channel_id: int) -> Dict[str, Any]:
        """Resume the countdown of the channel's game."""
        async with self._lock(channel_id):
            engine = self._engines.get(channel_id)
            if engine is None or not engine.resume():
                return {'success': False, 'message': "No game in progress to resume."}

            timer = self._timers.get(channel_id)
            if timer:
                timer.resume()
            self.logger.info(
                f"Resumed game for channel {channel_id}",
                extra={
                    'event_type': 'session_resumed',
                    'channel_id': channel_id,
                    'timer_seconds': engine.session.timer_seconds,
                    'timestamp': time.time()
                }
            )
            return {'success': True, 'message': "Game resumed.", 'session_info': self.get_session_progress(channel_id)}

    def request_hint(self, channel_id: int) -> Dict[str, Any]:
        engine = self._engines.get(channel_id)
        hint = engine.request_hint() if engine else None
        if hint is None:
            return {'success': False, 'message': "No question to give a hint for.", 'hint': None}
        return {
            'success': True,
            'hint': hint or "No hint for this one.",
            'display_seconds': self.settings.hint_display_seconds
        }

    async def stop_game(self, channel_id: int) -> Dict[str, Any]:
        """
        Discard the channel's session without recording it.

        Returns:
            Dictionary with operation result and the final progress
        """
        async with self._lock(channel_id):
            session_info = self.get_session_progress(channel_id)
            timer_cancelled = self._cancel_timer(channel_id)
            engine = self._engines.pop(channel_id, None)
            if engine is None:
                return {'success': False, 'message': "No game to stop in this channel.", 'session_info': None}

            self.logger.info(
                f"Stopped game for channel {channel_id}, timer cancelled: {timer_cancelled}",
                extra={
                    'event_type': 'session_stopped',
                    'channel_id': channel_id,
                    'timer_cancelled': timer_cancelled,
                    'timestamp': time.time()
                }
            )
            return {'success': True, 'message': "Game stopped.", 'session_info': session_info}

    # Reporting

    def get_session_progress(self, channel_id: int) -> Optional[Dict[str, Any]]:
        """
        Get progress information for the channel's session.

        Returns:
            Dictionary with progress info, None if the channel has no session
        """
        session = self.get_session(channel_id)
        if session is None:
            return None

        index = session.current_index if session.current_index is not None else session.final_index
        return {
            'player_name': session.player_name,
            'category': session.category,
            'state': session.state.value,
            'current_question': (index or 0) + 1,
            'total_questions': session.total_questions,
            'score': session.score,
            'timer_seconds': session.timer_seconds,
            'is_paused': session.paused,
            'is_revealing': session.reveal is not None,
            'start_time': session.started_at,
            'finish_time': session.finished_at
        }

    def get_leaderboard(self, category: str) -> List[LeaderboardEntry]:
        return self.score_store.load_leaderboard(category)

    def get_highest_score(self, category: str) -> int:
        return self.score_store.get_highest_score(category)

    async def shutdown(self) -> None:
        """Cancel every countdown, e.g. when the bot disconnects. Pending reveals are dropped."""
        self._closed = True
        for channel_id in list(self._timers):
            self._cancel_timer(channel_id)
        self.logger.info("GameController shut down")
