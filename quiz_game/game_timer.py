"""
Per-question countdown timer for the quiz game.

The timer is only a clock: the remaining seconds live in the game session and
are decremented by the tick callback. Each timer is bound to the session
generation it was started for, so a tick from a superseded timer can be told
apart and dropped.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

# Called once per elapsed interval with the timer generation; return False to stop
TickCallback = Callable[[int], Awaitable[bool]]


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_start(channel_id: str, generation: int, interval: float) -> None:
        logger.info(
            f"Timer lifecycle: COUNTDOWN_START - Channel {channel_id}, Generation {generation}",
            extra={
                'event_type': 'timer_countdown_start',
                'channel_id': channel_id,
                'generation': generation,
                'interval': interval,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(channel_id: str, remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        if remaining_time % 10 == 0 or remaining_time <= 5:
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100 if total_duration else 100.0
            logger.debug(
                f"Timer lifecycle: UPDATE - Channel {channel_id}, Remaining {remaining_time}s ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_update',
                    'channel_id': channel_id,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(channel_id: str, completion_type: str, ticks: int) -> None:
        """Log timer completion (natural expiry, stop or cancellation)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Channel {channel_id}, Type {completion_type}, Ticks {ticks}",
            extra={
                'event_type': 'timer_completed',
                'channel_id': channel_id,
                'completion_type': completion_type,
                'ticks': ticks,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(channel_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        logger.info(
            f"Timer lifecycle: STATE_TRANSITION - Channel {channel_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'channel_id': channel_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(channel_id: str, error_type: str, error_message: str, operation: str) -> None:
        logger.error(
            f"Timer lifecycle: ERROR - Channel {channel_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'channel_id': channel_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_stale_tick(channel_id: str, tick_generation: int, current_generation: int) -> None:
        """Log a tick that arrived for a session generation that has been superseded."""
        logger.warning(
            f"Timer lifecycle: STALE_TICK - Channel {channel_id}, "
            f"tick generation {tick_generation}, current generation {current_generation}",
            extra={
                'event_type': 'timer_stale_tick',
                'channel_id': channel_id,
                'tick_generation': tick_generation,
                'current_generation': current_generation,
                'timestamp': time.time()
            }
        )


class GameTimer:
    """Cancellable countdown task for one question of one session."""

    def __init__(self, channel_id: str, generation: int, interval: float = 1.0):
        """
        Initialize the timer.

        Args:
            channel_id: Identifier of the channel the session is played in
            generation: Session generation this countdown belongs to
            interval: Seconds between ticks
        """
        self._task: Optional[asyncio.Task] = None
        self._channel_id = channel_id
        self._generation = generation
        self._interval = interval
        self._running = asyncio.Event()
        self._running.set()
        self._is_cancelled = False
        self._ticks = 0

    def start(self, on_tick: TickCallback) -> asyncio.Task:
        """
        Start the countdown as a background task.

        Args:
            on_tick: Awaited once per interval; returning False ends the countdown

        Returns:
            The countdown task
        """
        if self._task is not None:
            raise RuntimeError(f"Timer for channel {self._channel_id} already started")

        TimerLifecycleLogger.log_timer_start(self._channel_id, self._generation, self._interval)
        self._task = asyncio.create_task(self._run(on_tick))
        return self._task

    async def _run(self, on_tick: TickCallback) -> None:
        completion_type = "stopped"
        try:
            while not self._is_cancelled:
                # Suspended here while paused
                await self._running.wait()
                await asyncio.sleep(self._interval)
                if self._is_cancelled:
                    break
                if not self._running.is_set():
                    # Paused during the interval: the partial second is not counted
                    continue

                self._ticks += 1
                if not await on_tick(self._generation):
                    completion_type = "natural_expiry"
                    break

            if self._is_cancelled and completion_type != "natural_expiry":
                completion_type = "cancelled"
            TimerLifecycleLogger.log_timer_completion(self._channel_id, completion_type, self._ticks)

        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(self._channel_id, "asyncio_cancelled", self._ticks)
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._channel_id,
                "countdown_execution_error",
                str(e),
                "run"
            )
            raise

    def pause(self) -> None:
        if self._running.is_set():
            TimerLifecycleLogger.log_timer_state_transition(
                self._channel_id,
                "running",
                "paused",
                "pause requested"
            )
        self._running.clear()

    def resume(self) -> None:
        if not self._running.is_set():
            TimerLifecycleLogger.log_timer_state_transition(
                self._channel_id,
                "paused",
                "running",
                "resume requested"
            )
        self._running.set()

    def cancel(self) -> None:
        """
        Cancel the countdown.

        When called from inside the countdown's own tick callback the task is
        left to wind down by itself instead of being cancelled mid-callback.
        """
        if self._is_cancelled:
            return

        self._is_cancelled = True
        # Release a paused wait so the loop can observe the cancellation
        self._running.set()

        if self._task is None or self._task.done():
            TimerLifecycleLogger.log_timer_state_transition(
                self._channel_id,
                "idle",
                "cancelled",
                "no active task"
            )
            return

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        if self._task is current:
            TimerLifecycleLogger.log_timer_state_transition(
                self._channel_id,
                "running",
                "cancelled",
                "cancelled from tick callback"
            )
            return

        self._task.cancel()
        TimerLifecycleLogger.log_timer_state_transition(
            self._channel_id,
            "running",
            "cancelled",
            "task cancelled"
        )

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_paused(self) -> bool:
        return not self._running.is_set()

    @property
    def is_cancelled(self) -> bool:
        return self._is_cancelled

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._is_cancelled

    @property
    def ticks(self) -> int:
        """Number of ticks delivered so far."""
        return self._ticks

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task
