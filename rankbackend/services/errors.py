"""Domain errors raised by the attempt engine.

Routes translate these into HTTP responses (see ``rankbackend.routes.errors``).
"""
from typing import List, Optional


class RankPaperError(Exception):
    """Base class for every error the attempt engine raises on purpose."""


class NotFoundError(RankPaperError):
    pass


class EligibilityDenied(RankPaperError):
    """The user may not start this paper (payment, enrollment or window)."""


class StateError(RankPaperError):
    pass


class AttemptClosedError(StateError):
    """A write reached an attempt that is already submitted or auto-closed."""

    def __init__(self, attempt_id: int, message: Optional[str] = None):
        self.attempt_id = attempt_id
        super().__init__(message or f"Attempt {attempt_id} is closed")


class MarksPublishedError(StateError):
    def __init__(self, attempt_id: int):
        self.attempt_id = attempt_id
        super().__init__(f"Marks for attempt {attempt_id} are already published")


class PreconditionError(RankPaperError):
    def __init__(self, message: str, missing: Optional[List[str]] = None):
        self.missing = missing or []
        super().__init__(message)


class AnswerKeyIntegrityError(RankPaperError):
    """The answer key does not have exactly one correct option per question."""

    def __init__(self, paper_id: int, question_ids: List[int]):
        self.paper_id = paper_id
        self.question_ids = question_ids
        super().__init__(
            f"Answer key for paper {paper_id} is invalid for questions {question_ids}"
        )


class InvalidInputError(RankPaperError, ValueError):
    pass
