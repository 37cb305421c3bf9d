"""
Unit tests for GameController orchestration: reveal window, countdown wiring
and game-over persistence.
"""
import asyncio
import gc
import threading
import unittest
from datetime import timedelta
from unittest.mock import Mock

from quiz_game.game_controller import GameController, GameEventListener
from quiz_game.models import GameSettings, GameState, LeaderboardEntry
from quiz_game.score_store import MemoryBackend, ScoreStore
from tests.test_fixtures import IdentityRandom, RecordingListener, TestFixtures, async_test

CHANNEL = 12345
TICK = 0.01


def make_controller(timer_duration=30, reveal_delay=0.0, tick_interval=TICK, store=None):
    listener = RecordingListener()
    controller = GameController(
        TestFixtures.create_question_bank(),
        store or ScoreStore(MemoryBackend()),
        GameSettings(
            timer_duration=timer_duration,
            reveal_delay=reveal_delay,
            hint_display_seconds=3,
            tick_interval=tick_interval
        ),
        listener=listener,
        rng=IdentityRandom()
    )
    return controller, listener


class TestStartGame(unittest.TestCase):
    """Test cases for starting games through the controller."""

    @async_test
    async def test_start_game_success(self):
        controller, listener = make_controller()
        result = await controller.start_game(CHANNEL, "Ada", "science")

        self.assertTrue(result['success'])
        self.assertEqual(result['session_info']['total_questions'], 3)
        self.assertEqual(result['session_info']['timer_seconds'], 30)
        self.assertEqual(controller.get_state(CHANNEL), GameState.PLAYING)
        self.assertTrue(controller.get_timer(CHANNEL).is_running)
        self.assertEqual(listener.of_type("question"), [("question", CHANNEL, 0)])
        await controller.shutdown()

    @async_test
    async def test_start_game_validation_error(self):
        controller, listener = make_controller()
        result = await controller.start_game(CHANNEL, "", "science")

        self.assertFalse(result['success'])
        self.assertTrue(result['user_message'])
        self.assertEqual(controller.get_state(CHANNEL), GameState.START)
        self.assertIsNone(controller.get_session(CHANNEL))
        self.assertIsNone(controller.get_timer(CHANNEL))
        self.assertEqual(listener.events, [])

    @async_test
    async def test_unknown_category(self):
        controller, _ = make_controller()
        result = await controller.start_game(CHANNEL, "Ada", "astrology")
        self.assertFalse(result['success'])
        self.assertEqual(controller.get_state(CHANNEL), GameState.START)

    @async_test
    async def test_restart_cancels_previous_timer(self):
        controller, _ = make_controller()
        await controller.start_game(CHANNEL, "Ada", "science")
        old_timer = controller.get_timer(CHANNEL)

        await controller.start_game(CHANNEL, "Grace", "history")
        await asyncio.sleep(0)

        self.assertTrue(old_timer.is_cancelled)
        self.assertIsNot(controller.get_timer(CHANNEL), old_timer)
        self.assertEqual(controller.get_session(CHANNEL).player_name, "Grace")
        await controller.shutdown()

    @async_test
    async def test_channels_are_independent(self):
        controller, _ = make_controller()
        await controller.start_game(1, "Ada", "science")
        await controller.start_game(2, "Grace", "history")

        await controller.submit_answer(1, "wrong")

        self.assertEqual(controller.get_state(1), GameState.LOST)
        self.assertEqual(controller.get_state(2), GameState.PLAYING)
        await controller.shutdown()


class TestAnswerFlow(unittest.TestCase):
    """Test cases for answering through the controller."""

    @async_test
    async def test_all_correct_wins_and_records_once(self):
        controller, listener = make_controller()
        await controller.start_game(CHANNEL, "Ada", "science")

        for value in ("Mars", "oxygen", "PIANO"):
            result = await controller.submit_answer(CHANNEL, value)
            self.assertTrue(result['success'])
            self.assertTrue(result['reveal'].correct)

        session = controller.get_session(CHANNEL)
        self.assertEqual(session.state, GameState.WON)
        self.assertEqual(session.score, 3)
        self.assertTrue(session.recorded)
        self.assertIsNone(controller.get_timer(CHANNEL))

        game_over = listener.of_type("game_over")
        self.assertEqual(len(game_over), 1)
        self.assertEqual(game_over[0][3], [LeaderboardEntry("Ada", 3)])
        self.assertEqual(controller.get_leaderboard("science"), [LeaderboardEntry("Ada", 3)])
        self.assertEqual(controller.get_highest_score("science"), 3)

    @async_test
    async def test_wrong_answer_loses_with_current_score(self):
        controller, listener = make_controller()
        await controller.start_game(CHANNEL, "Ada", "science")
        await controller.submit_answer(CHANNEL, "Mars")
        result = await controller.submit_answer(CHANNEL, "nitrogen")

        self.assertTrue(result['success'])
        self.assertEqual(result['state'], GameState.LOST)
        self.assertIn("oxygen", result['message'])
        self.assertEqual(controller.get_session(CHANNEL).score, 1)
        self.assertEqual(controller.get_leaderboard("science"), [LeaderboardEntry("Ada", 1)])

    @async_test
    async def test_events_are_ordered(self):
        controller, listener = make_controller()
        await controller.start_game(CHANNEL, "Ada", "science")
        await controller.submit_answer(CHANNEL, "Mars")

        kinds = [event[0] for event in listener.events if event[0] != "tick"]
        self.assertEqual(kinds, ["question", "reveal", "question"])
        await controller.shutdown()

    @async_test
    async def test_answer_during_reveal_is_rejected(self):
        controller, listener = make_controller(reveal_delay=0.05)
        await controller.start_game(CHANNEL, "Ada", "science")

        first = asyncio.ensure_future(controller.submit_answer(CHANNEL, "Mars"))
        await asyncio.sleep(0.01)
        self.assertTrue(controller.get_engine(CHANNEL).is_revealing)

        second = await controller.submit_answer(CHANNEL, "Venus")
        self.assertFalse(second['success'])
        self.assertIsNone(second['reveal'])

        await first
        session = controller.get_session(CHANNEL)
        self.assertEqual(session.score, 1)
        self.assertEqual(session.current_index, 1)
        self.assertEqual(len(listener.of_type("reveal")), 1)
        await controller.shutdown()

    @async_test
    async def test_countdown_stops_during_reveal(self):
        controller, _ = make_controller(timer_duration=5, reveal_delay=0.1)
        await controller.start_game(CHANNEL, "Ada", "science")

        pending = asyncio.ensure_future(controller.submit_answer(CHANNEL, "Mars"))
        await asyncio.sleep(0.01)
        timer_seconds = controller.get_session(CHANNEL).timer_seconds
        await asyncio.sleep(0.05)
        self.assertEqual(controller.get_session(CHANNEL).timer_seconds, timer_seconds)

        await pending
        self.assertEqual(controller.get_state(CHANNEL), GameState.PLAYING)
        await controller.shutdown()

    @async_test
    async def test_restart_during_reveal_drops_result(self):
        controller, listener = make_controller(reveal_delay=0.05)
        await controller.start_game(CHANNEL, "Ada", "science")

        pending = asyncio.ensure_future(controller.submit_answer(CHANNEL, "wrong"))
        await asyncio.sleep(0.01)
        await controller.start_game(CHANNEL, "Grace", "science")

        result = await pending
        self.assertFalse(result['success'])
        session = controller.get_session(CHANNEL)
        self.assertEqual(session.player_name, "Grace")
        self.assertEqual(session.state, GameState.PLAYING)
        self.assertEqual(listener.of_type("game_over"), [])
        await controller.shutdown()

    @async_test
    async def test_answer_without_game(self):
        controller, _ = make_controller()
        result = await controller.submit_answer(CHANNEL, "Mars")
        self.assertFalse(result['success'])
        self.assertEqual(result['state'], GameState.START)

    @async_test
    async def test_answer_after_game_over_is_ignored(self):
        controller, listener = make_controller()
        await controller.start_game(CHANNEL, "Ada", "science")
        await controller.submit_answer(CHANNEL, "wrong")
        result = await controller.submit_answer(CHANNEL, "Mars")

        self.assertFalse(result['success'])
        self.assertEqual(len(listener.of_type("game_over")), 1)
        self.assertEqual(len(controller.get_leaderboard("science")), 1)


class TestCountdown(unittest.TestCase):
    """Test cases for the countdown driving forced losses."""

    @async_test
    async def test_timeout_loses_and_records_once(self):
        controller, listener = make_controller(timer_duration=3)
        await controller.start_game(CHANNEL, "Ada", "science")

        await asyncio.sleep(TICK * 10)

        session = controller.get_session(CHANNEL)
        self.assertEqual(session.state, GameState.LOST)
        self.assertEqual(session.timer_seconds, 0)
        self.assertEqual(session.score, 0)
        self.assertEqual([e[2] for e in listener.of_type("tick")], [2, 1, 0])
        self.assertEqual(len(listener.of_type("game_over")), 1)
        self.assertEqual(controller.get_leaderboard("science"), [LeaderboardEntry("Ada", 0)])
        self.assertIsNone(controller.get_timer(CHANNEL))

    @async_test
    async def test_pause_suspends_countdown(self):
        controller, _ = make_controller(timer_duration=30)
        await controller.start_game(CHANNEL, "Ada", "science")
        await asyncio.sleep(TICK * 3)

        result = await controller.pause_game(CHANNEL)
        self.assertTrue(result['success'])
        paused_at = controller.get_session(CHANNEL).timer_seconds
        await asyncio.sleep(TICK * 5)
        self.assertEqual(controller.get_session(CHANNEL).timer_seconds, paused_at)
        self.assertTrue(controller.get_timer(CHANNEL).is_paused)

        await controller.resume_game(CHANNEL)
        await asyncio.sleep(TICK * 5)
        self.assertLess(controller.get_session(CHANNEL).timer_seconds, paused_at)
        await controller.shutdown()

    @async_test
    async def test_repeated_pause(self):
        controller, _ = make_controller()
        await controller.start_game(CHANNEL, "Ada", "science")
        await controller.pause_game(CHANNEL)
        second = await controller.pause_game(CHANNEL)

        self.assertTrue(second['success'])
        self.assertTrue(controller.get_session(CHANNEL).paused)
        await controller.shutdown()

    @async_test
    async def test_pause_persists_into_next_question(self):
        controller, _ = make_controller(reveal_delay=0.03)
        await controller.start_game(CHANNEL, "Ada", "science")

        pending = asyncio.ensure_future(controller.submit_answer(CHANNEL, "Mars"))
        await asyncio.sleep(0.01)
        await controller.pause_game(CHANNEL)
        await pending

        self.assertTrue(controller.get_timer(CHANNEL).is_paused)
        timer_seconds = controller.get_session(CHANNEL).timer_seconds
        await asyncio.sleep(TICK * 5)
        self.assertEqual(controller.get_session(CHANNEL).timer_seconds, timer_seconds)
        await controller.shutdown()

    @async_test
    async def test_pause_without_game(self):
        controller, _ = make_controller()
        self.assertFalse((await controller.pause_game(CHANNEL))['success'])
        self.assertFalse((await controller.resume_game(CHANNEL))['success'])

    @async_test
    async def test_stale_tick_is_dropped(self):
        controller, _ = make_controller(timer_duration=30, tick_interval=10)
        await controller.start_game(CHANNEL, "Ada", "science")
        old_generation = controller.get_engine(CHANNEL).generation
        await controller.submit_answer(CHANNEL, "Mars")

        keep_going = await controller._handle_tick(CHANNEL, old_generation)

        self.assertFalse(keep_going)
        self.assertEqual(controller.get_session(CHANNEL).timer_seconds, 30)
        await controller.shutdown()


class TestHintsAndStop(unittest.TestCase):

    @async_test
    async def test_request_hint(self):
        controller, _ = make_controller()
        await controller.start_game(CHANNEL, "Ada", "science")
        result = controller.request_hint(CHANNEL)

        self.assertTrue(result['success'])
        self.assertEqual(result['hint'], "Roman god of war")
        self.assertEqual(result['display_seconds'], 3)
        await controller.shutdown()

    def test_hint_without_game(self):
        controller, _ = make_controller()
        self.assertFalse(controller.request_hint(CHANNEL)['success'])

    @async_test
    async def test_stop_game_discards_without_recording(self):
        controller, listener = make_controller()
        await controller.start_game(CHANNEL, "Ada", "science")
        timer = controller.get_timer(CHANNEL)

        result = await controller.stop_game(CHANNEL)

        self.assertTrue(result['success'])
        self.assertEqual(result['session_info']['player_name'], "Ada")
        self.assertTrue(timer.is_cancelled)
        self.assertIsNone(controller.get_session(CHANNEL))
        self.assertEqual(controller.get_leaderboard("science"), [])
        self.assertEqual(listener.of_type("game_over"), [])

    @async_test
    async def test_stop_without_game(self):
        controller, _ = make_controller()
        self.assertFalse((await controller.stop_game(CHANNEL))['success'])


class TestResilience(unittest.TestCase):
    """Failures in collaborators never break the game."""

    @async_test
    async def test_unavailable_store_still_finishes_game(self):
        store = ScoreStore(MemoryBackend(available=False))
        controller, listener = make_controller(store=store)
        await controller.start_game(CHANNEL, "Ada", "science")
        await controller.submit_answer(CHANNEL, "wrong")

        self.assertEqual(controller.get_state(CHANNEL), GameState.LOST)
        game_over = listener.of_type("game_over")
        self.assertEqual(len(game_over), 1)
        self.assertEqual(game_over[0][3], [LeaderboardEntry("Ada", 0)])
        self.assertEqual(controller.get_leaderboard("science"), [])

    @async_test
    async def test_store_exception_is_contained(self):
        store = Mock()
        store.record_score.side_effect = RuntimeError("boom")
        controller, listener = make_controller(store=store)
        await controller.start_game(CHANNEL, "Ada", "science")
        await controller.submit_answer(CHANNEL, "wrong")

        self.assertTrue(controller.get_session(CHANNEL).recorded)
        self.assertEqual(listener.of_type("game_over")[0][3], [])

    @async_test
    async def test_listener_failure_is_contained(self):
        class BrokenListener(GameEventListener):
            async def on_question(self, channel_id, session):
                raise RuntimeError("render failed")

        controller = GameController(
            TestFixtures.create_question_bank(),
            ScoreStore(MemoryBackend()),
            GameSettings(reveal_delay=0, tick_interval=TICK),
            listener=BrokenListener(),
            rng=IdentityRandom()
        )
        result = await controller.start_game(CHANNEL, "Ada", "science")
        self.assertTrue(result['success'])
        await controller.shutdown()


class TestShutdownAndHousekeeping(unittest.TestCase):
    """Shutdown, eviction of finished sessions and store access."""

    @async_test
    async def test_shutdown_during_reveal_starts_no_countdown(self):
        controller, listener = make_controller(reveal_delay=0.05)
        await controller.start_game(CHANNEL, "Ada", "science")

        pending = asyncio.ensure_future(controller.submit_answer(CHANNEL, "Mars"))
        await asyncio.sleep(0.01)
        await controller.shutdown()
        result = await pending

        self.assertFalse(result['success'])
        self.assertIsNone(controller.get_timer(CHANNEL))
        self.assertEqual(controller.get_session(CHANNEL).current_index, 0)
        self.assertEqual(len(listener.of_type("question")), 1)

    @async_test
    async def test_finished_sessions_are_evicted_after_retention(self):
        controller, _ = make_controller()
        controller.FINISHED_SESSION_RETENTION = timedelta(0)
        await controller.start_game(1, "Ada", "science")
        await controller.submit_answer(1, "wrong")
        self.assertEqual(controller.get_state(1), GameState.LOST)

        await controller.start_game(2, "Grace", "science")

        self.assertIsNone(controller.get_engine(1))
        self.assertEqual(controller.get_state(1), GameState.START)
        self.assertEqual(controller.get_state(2), GameState.PLAYING)
        await controller.shutdown()

    @async_test
    async def test_recent_finished_session_is_kept(self):
        controller, _ = make_controller()
        await controller.start_game(1, "Ada", "science")
        await controller.submit_answer(1, "wrong")

        await controller.start_game(2, "Grace", "science")

        self.assertEqual(controller.get_state(1), GameState.LOST)
        await controller.shutdown()

    @async_test
    async def test_idle_channel_locks_are_released(self):
        controller, _ = make_controller()
        for channel_id in range(5):
            await controller.start_game(channel_id, "Ada", "science")
            await controller.submit_answer(channel_id, "wrong")
        gc.collect()

        self.assertEqual(len(controller._locks), 0)

    @async_test
    async def test_score_is_recorded_off_the_event_loop(self):
        loop_thread = threading.get_ident()
        recorded_in = []
        store = Mock()
        store.record_score.side_effect = lambda *args: recorded_in.append(threading.get_ident()) or []
        controller, _ = make_controller(store=store)

        await controller.start_game(CHANNEL, "Ada", "science")
        await controller.submit_answer(CHANNEL, "wrong")

        store.record_score.assert_called_once_with("science", "Ada", 0)
        self.assertEqual(len(recorded_in), 1)
        self.assertNotEqual(recorded_in[0], loop_thread)


if __name__ == '__main__':
    unittest.main()
