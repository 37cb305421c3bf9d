"""
Game engine core logic for the quiz game.
Handles question ordering, answer evaluation, scoring and win/loss transitions.

The engine is time-free: the countdown and the reveal delay are driven from
outside (see game_timer and game_controller). Every operation is total over
the session state, so a call that is illegal in the current state is a no-op.
"""
import logging
import random
import time
from datetime import datetime
from typing import Dict, List, Optional

from .errors import ValidationError
from .models import (
    QUESTION_TIME_LIMIT,
    AnswerReveal,
    GameSession,
    GameState,
    Question,
)

logger = logging.getLogger(__name__)


class GameEngine:
    """Owns a single game session and every transition applied to it."""

    def __init__(
        self,
        question_bank: Dict[str, List[Question]],
        timer_duration: int = QUESTION_TIME_LIMIT,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the game engine.

        Args:
            question_bank: Mapping of category name to its ordered questions
            timer_duration: Seconds allowed per question
            rng: Random source used for shuffling, injectable for tests
        """
        self._question_bank = question_bank
        self._timer_duration = timer_duration
        self._rng = rng or random.Random()
        self._session: Optional[GameSession] = None
        self._generation = 0

    @property
    def session(self) -> Optional[GameSession]:
        return self._session

    @property
    def state(self) -> GameState:
        if self._session is None:
            return GameState.START
        return self._session.state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def timer_duration(self) -> int:
        return self._timer_duration

    @property
    def is_revealing(self) -> bool:
        return self._is_playing() and self._session.reveal is not None

    @property
    def current_question(self) -> Optional[Question]:
        if not self._is_playing() or self._session.current_index is None:
            return None
        return self._session.question_order[self._session.current_index]

    def _is_playing(self) -> bool:
        return self._session is not None and self._session.state is GameState.PLAYING

    def _next_generation(self) -> int:
        self._generation += 1
        if self._session is not None:
            self._session.generation = self._generation
        return self._generation

    def shuffle_questions(self, questions: List[Question]) -> List[Question]:
        """
        Shuffle questions uniformly (Fisher-Yates).

        Args:
            questions: List of questions to shuffle

        Returns:
            New list with questions in random order
        """
        shuffled = list(questions)
        self._rng.shuffle(shuffled)
        return shuffled

    def start(self, player_name: str, category: str) -> GameSession:
        """
        Start a new session, replacing any previous one.

        Args:
            player_name: Name shown on the leaderboard
            category: Question bank category to play

        Returns:
            The new session

        Raises:
            ValidationError: If the name is empty or the category is unknown or empty
        """
        name = (player_name or "").strip()
        if not name:
            raise ValidationError(
                "Player name is required",
                "Please enter your name and select a category to start the game."
            )

        questions = self._question_bank.get(category) if category else None
        if not questions:
            raise ValidationError(
                f"Unknown or empty category: {category!r}",
                "Please enter your name and select a category to start the game."
            )

        if self._session is not None and not self._session.is_terminal:
            logger.info(
                f"Discarding unfinished session of {self._session.player_name} in '{self._session.category}'",
                extra={
                    'event_type': 'session_replaced',
                    'category': self._session.category,
                    'timestamp': time.time()
                }
            )

        self._session = GameSession(
            player_name=name,
            category=category,
            question_order=self.shuffle_questions(questions),
            current_index=0,
            score=0,
            state=GameState.PLAYING,
            timer_seconds=self._timer_duration,
            paused=False
        )
        self._next_generation()

        logger.info(
            f"Game started: player='{name}', category='{category}', questions={len(questions)}",
            extra={
                'event_type': 'game_started',
                'category': category,
                'question_count': len(questions),
                'generation': self._generation,
                'timestamp': time.time()
            }
        )
        return self._session

    def submit_answer(self, selected: str) -> Optional[AnswerReveal]:
        """
        Evaluate an answer for the current question without advancing.

        The returned reveal stays pending until complete_reveal() applies it;
        further answers for the same question are ignored meanwhile.

        Args:
            selected: The chosen option or typed answer

        Returns:
            The reveal signal, or None if no answer can be taken right now
        """
        if not self._is_playing() or self._session.current_index is None:
            return None

        if self._session.reveal is not None:
            logger.debug("Answer ignored: previous answer is still being revealed")
            return None

        index = self._session.current_index
        question = self._session.question_order[index]
        reveal = AnswerReveal(
            submitted=selected if selected is not None else "",
            correct=question.is_correct(selected or ""),
            correct_answer=question.answer,
            question_index=index,
            is_last=index == self._session.total_questions - 1
        )
        self._session.reveal = reveal

        logger.debug(
            f"Answer for question {index + 1} is {'correct' if reveal.correct else 'incorrect'}",
            extra={
                'event_type': 'answer_revealed',
                'question_index': index,
                'correct': reveal.correct,
                'timestamp': time.time()
            }
        )
        return reveal

    def complete_reveal(self) -> Optional[GameState]:
        """
        Apply the pending reveal: advance, win or lose.

        Returns:
            The resulting state, or None if there was nothing to apply
        """
        if not self._is_playing() or self._session.reveal is None:
            return None

        reveal = self._session.reveal
        session = self._session

        if not reveal.correct:
            self._finish(GameState.LOST, "wrong answer")
            return session.state

        session.score += 1
        if reveal.is_last:
            self._finish(GameState.WON, "all questions answered")
            return session.state

        session.current_index += 1
        session.timer_seconds = self._timer_duration
        session.reveal = None
        self._next_generation()
        logger.debug(f"Advanced to question {session.current_index + 1}/{session.total_questions}")
        return session.state

    def timer_expired(self) -> bool:
        """
        Force a loss because the countdown ran out.

        Returns:
            True if the session was lost by this call
        """
        if not self._is_playing() or self._session.reveal is not None:
            return False

        self._session.timer_seconds = 0
        self._finish(GameState.LOST, "time expired")
        return True

    def tick(self) -> Optional[int]:
        """
        Count one elapsed second off the current question.

        Returns:
            Seconds remaining after the tick, or None if the countdown isn't running
        """
        if not self._is_playing() or self._session.paused or self._session.reveal is not None:
            return None

        self._session.timer_seconds = max(self._session.timer_seconds - 1, 0)
        remaining = self._session.timer_seconds
        if remaining == 0:
            self.timer_expired()
        return remaining

    def pause(self) -> bool:
        """Suspend the countdown. Returns True if the session is paused afterwards."""
        if not self._is_playing():
            return False
        self._session.paused = True
        return True

    def resume(self) -> bool:
        """Resume the countdown. Returns True if the session is running afterwards."""
        if not self._is_playing():
            return False
        self._session.paused = False
        return True

    def request_hint(self) -> Optional[str]:
        question = self.current_question
        return question.hint if question is not None else None

    def _finish(self, outcome: GameState, reason: str) -> None:
        session = self._session
        session.final_index = session.current_index
        session.current_index = None
        session.reveal = None
        session.paused = False
        session.state = outcome
        session.finished_at = datetime.now()
        self._next_generation()

        logger.info(
            f"Game over: {outcome.value} ({reason}), player='{session.player_name}', "
            f"score={session.score}/{session.total_questions}",
            extra={
                'event_type': 'game_over',
                'outcome': outcome.value,
                'reason': reason,
                'category': session.category,
                'score': session.score,
                'timestamp': time.time()
            }
        )
