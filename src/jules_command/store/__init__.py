"""SQLite record store for sessions, activities, poll cursors and PR reviews."""

from jules_command.store.core import CommandStore
from jules_command.store.models import Activity, PollCursor, PrReview, Session

__all__ = [
    "Activity",
    "CommandStore",
    "PollCursor",
    "PrReview",
    "Session",
]
