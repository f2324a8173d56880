from pageturn.models.book import Book
from pageturn.models.progress import ProgressLog
from pageturn.models.session import FINISHED_STATUSES, PLANNING_STATUSES, ReadingSession, SessionStatus
from pageturn.models.streak import Streak

__all__ = [
    "Book",
    "FINISHED_STATUSES",
    "PLANNING_STATUSES",
    "ProgressLog",
    "ReadingSession",
    "SessionStatus",
    "Streak",
]
