"""Activity operations for the command store.

Activities are append-only: re-inserting an id that is already stored is a
no-op, so the same activity page can be fetched repeatedly without
duplicating rows.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING

from jules_command.store.models import Activity
from jules_command.utils.timestamps import format_timestamp

if TYPE_CHECKING:
    from jules_command.store.core import CommandStore

logger = logging.getLogger(__name__)


def add_activities(store: CommandStore, items: Sequence[Activity]) -> int:
    """Insert activities, ignoring ids already stored.

    Args:
        store: The CommandStore instance.
        items: Activities to insert.

    Returns:
        Number of newly inserted activities.
    """
    if not items:
        return 0

    with store._transaction() as conn:
        before = conn.total_changes
        conn.executemany(
            """
            INSERT INTO jules_activities (
                id, session_id, activity_type, originator, message, progress_title,
                progress_description, has_bash_output, has_changeset, files_changed,
                lines_added, lines_deleted, created_at
            )
            VALUES (
                :id, :session_id, :activity_type, :originator, :message, :progress_title,
                :progress_description, :has_bash_output, :has_changeset, :files_changed,
                :lines_added, :lines_deleted, :created_at
            )
            ON CONFLICT(id) DO NOTHING
            """,
            [item.to_row() for item in items],
        )
        inserted = conn.total_changes - before

    if inserted:
        logger.debug(f"Stored {inserted} new activities ({len(items) - inserted} already known)")
    return inserted


def get_recent_activities(store: CommandStore, session_id: str, limit: int = 100) -> list[Activity]:
    """Get the newest activities for a session, newest first."""
    conn = store._get_connection()
    cursor = conn.execute(
        """
        SELECT * FROM jules_activities
        WHERE session_id = ?
        ORDER BY created_at DESC, rowid DESC
        LIMIT ?
        """,
        (session_id, limit),
    )
    return [Activity.from_row(row) for row in cursor.fetchall()]


def get_activities_by_type(
    store: CommandStore, session_id: str, activity_type: str, limit: int = 50
) -> list[Activity]:
    """Get a session's activities of one type, newest first."""
    conn = store._get_connection()
    cursor = conn.execute(
        """
        SELECT * FROM jules_activities
        WHERE session_id = ? AND activity_type = ?
        ORDER BY created_at DESC, rowid DESC
        LIMIT ?
        """,
        (session_id, activity_type, limit),
    )
    return [Activity.from_row(row) for row in cursor.fetchall()]


def get_activities_since(store: CommandStore, session_id: str, since: datetime) -> list[Activity]:
    """Get a session's activities created strictly after ``since``, oldest first."""
    conn = store._get_connection()
    cursor = conn.execute(
        """
        SELECT * FROM jules_activities
        WHERE session_id = ? AND created_at > ?
        ORDER BY created_at ASC, rowid ASC
        """,
        (session_id, format_timestamp(since)),
    )
    return [Activity.from_row(row) for row in cursor.fetchall()]
