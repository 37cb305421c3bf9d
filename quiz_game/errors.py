"""
Exceptions raised by the quiz game core.
"""


class QuizGameError(Exception):
    """Base exception for quiz game errors."""
    pass


class ValidationError(QuizGameError):
    """Raised when a game cannot start because of a missing name or unknown category."""

    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


class StoreUnavailableError(QuizGameError):
    """Raised by a score store backend when the underlying storage cannot be used."""
    pass
