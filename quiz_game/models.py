"""
Core data models for the quiz game.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


# Seconds a player gets for each question
QUESTION_TIME_LIMIT = 30


class QuestionType(Enum):
    """Kinds of question a category can contain."""
    MCQ = "mcq"
    FILL = "fill"
    RIDDLE = "riddle"


class GameState(Enum):
    """Enumeration of possible game session states."""
    START = "start"
    PLAYING = "playing"
    WON = "won"
    LOST = "lost"

    @property
    def is_terminal(self) -> bool:
        return self in (GameState.WON, GameState.LOST)


@dataclass(frozen=True)
class Question:
    """Represents a single quiz question."""
    type: QuestionType
    content: str
    answer: str
    hint: str = ""
    options: Tuple[str, ...] = ()

    def is_correct(self, selected: str) -> bool:
        """Case-insensitive exact match against the stored answer."""
        return selected.lower() == self.answer.lower()


@dataclass(frozen=True)
class AnswerReveal:
    """Outcome of an answer, exposed before the session advances."""
    submitted: str
    correct: bool
    correct_answer: str
    question_index: int
    is_last: bool


@dataclass(frozen=True)
class LeaderboardEntry:
    """A single name/score pair on a category leaderboard."""
    name: str
    score: int

    def to_dict(self) -> dict:
        return {"name": self.name, "score": self.score}


@dataclass
class GameSettings:
    """Configuration settings for a game session."""
    timer_duration: int = QUESTION_TIME_LIMIT
    reveal_delay: float = 1.0
    hint_display_seconds: int = 3
    tick_interval: float = 1.0


@dataclass
class GameSession:
    """Represents one play-through from start to a terminal outcome."""
    player_name: str
    category: str
    question_order: List[Question]
    current_index: Optional[int] = None
    score: int = 0
    state: GameState = GameState.START
    timer_seconds: int = QUESTION_TIME_LIMIT
    paused: bool = False
    reveal: Optional[AnswerReveal] = None
    generation: int = 0
    recorded: bool = False
    final_index: Optional[int] = None
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def total_questions(self) -> int:
        return len(self.question_order)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal
