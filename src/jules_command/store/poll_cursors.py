"""Poll cursor operations for the command store.

The poll count is incremented inside a single ``INSERT ... ON CONFLICT``
statement. Two overlapping cycles therefore cannot lose an update the way a
read-then-write in Python would.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from jules_command.constants import POLL_TYPE_SESSION
from jules_command.exceptions import StoreError
from jules_command.store.models import PollCursor
from jules_command.utils.timestamps import format_timestamp

if TYPE_CHECKING:
    from jules_command.store.core import CommandStore

logger = logging.getLogger(__name__)


def get_poll_cursor(store: CommandStore, cursor_id: str) -> PollCursor | None:
    """Get a poll cursor by ID."""
    conn = store._get_connection()
    cursor = conn.execute("SELECT * FROM poll_cursors WHERE id = ?", (cursor_id,))
    row = cursor.fetchone()
    return PollCursor.from_row(row) if row else None


def record_poll(
    store: CommandStore,
    cursor_id: str,
    polled_at: datetime,
    last_activity_seen_at: datetime | None = None,
) -> PollCursor:
    """Record a successful poll.

    Creates the cursor with ``poll_count = 1`` on first poll. Afterwards the
    count is incremented and ``last_poll_at`` refreshed. The
    ``consecutive_unchanged`` counter resets whenever the newest activity
    timestamp moves, and grows otherwise.

    Args:
        store: The CommandStore instance.
        cursor_id: Cursor ID (the session ID for session polls).
        polled_at: Time of this poll.
        last_activity_seen_at: Timestamp of the newest activity seen.

    Returns:
        The cursor after the update.
    """
    seen = format_timestamp(last_activity_seen_at)
    with store._transaction() as conn:
        conn.execute(
            """
            INSERT INTO poll_cursors (
                id, poll_type, last_poll_at, last_activity_seen_at,
                poll_count, consecutive_unchanged, error_count
            )
            VALUES (?, ?, ?, ?, 1, 0, 0)
            ON CONFLICT(id) DO UPDATE SET
                poll_count = COALESCE(poll_cursors.poll_count, 0) + 1,
                last_poll_at = excluded.last_poll_at,
                consecutive_unchanged = CASE
                    WHEN excluded.last_activity_seen_at IS poll_cursors.last_activity_seen_at
                    THEN COALESCE(poll_cursors.consecutive_unchanged, 0) + 1
                    ELSE 0
                END,
                last_activity_seen_at = excluded.last_activity_seen_at
            """,
            (cursor_id, POLL_TYPE_SESSION, format_timestamp(polled_at), seen),
        )

    cursor = get_poll_cursor(store, cursor_id)
    if cursor is None:
        raise StoreError(f"Poll cursor {cursor_id} missing after upsert", db_path=store.db_path)
    return cursor


def record_poll_error(
    store: CommandStore, cursor_id: str, error: str, polled_at: datetime
) -> None:
    """Count a failed poll against the cursor without touching the poll count."""
    with store._transaction() as conn:
        conn.execute(
            """
            INSERT INTO poll_cursors (id, poll_type, last_poll_at, error_count, last_error)
            VALUES (?, ?, ?, 1, ?)
            ON CONFLICT(id) DO UPDATE SET
                error_count = COALESCE(poll_cursors.error_count, 0) + 1,
                last_error = excluded.last_error,
                last_poll_at = excluded.last_poll_at
            """,
            (cursor_id, POLL_TYPE_SESSION, format_timestamp(polled_at), error[:1000]),
        )
    logger.debug(f"Recorded poll error for {cursor_id}: {error}")
