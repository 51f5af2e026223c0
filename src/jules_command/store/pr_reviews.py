"""PR review operations for the command store."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from jules_command.constants import (
    PR_STATE_MERGED,
    REVIEW_STATUS_CLOSED,
    REVIEW_STATUS_PENDING,
)
from jules_command.store.models import PrReview
from jules_command.utils.timestamps import format_timestamp

if TYPE_CHECKING:
    from jules_command.store.core import CommandStore

logger = logging.getLogger(__name__)

_COLUMNS = (
    "pr_url",
    "pr_number",
    "repo",
    "session_id",
    "pr_title",
    "pr_state",
    "review_status",
    "complexity_score",
    "complexity_details",
    "lines_changed",
    "files_changed",
    "test_files_changed",
    "critical_files_touched",
    "ci_status",
    "auto_merge_eligible",
    "auto_merge_reason",
    "review_notes",
    "head_sha",
    "pr_created_at",
    "last_checked_at",
    "merged_at",
)


def upsert_pr_review(store: CommandStore, review: PrReview) -> PrReview:
    """Insert a PR record or replace the stored one with the same URL.

    Args:
        store: The CommandStore instance.
        review: PR record to store.

    Returns:
        The stored PR record.
    """
    columns = ", ".join(_COLUMNS)
    placeholders = ", ".join(f":{name}" for name in _COLUMNS)
    updates = ", ".join(f"{name} = excluded.{name}" for name in _COLUMNS if name != "pr_url")
    with store._transaction() as conn:
        conn.execute(
            f"""
            INSERT INTO pr_reviews ({columns})
            VALUES ({placeholders})
            ON CONFLICT(pr_url) DO UPDATE SET {updates}
            """,
            review.to_row(),
        )
    logger.debug(f"Upserted PR review {review.pr_url}")
    stored = get_pr_review(store, review.pr_url)
    return stored if stored is not None else review


def get_pr_review(store: CommandStore, pr_url: str) -> PrReview | None:
    """Get a PR record by URL."""
    conn = store._get_connection()
    cursor = conn.execute("SELECT * FROM pr_reviews WHERE pr_url = ?", (pr_url,))
    row = cursor.fetchone()
    return PrReview.from_row(row) if row else None


def get_pr_reviews_for_session(store: CommandStore, session_id: str) -> list[PrReview]:
    """Get PR records produced by a session, most recently added first."""
    conn = store._get_connection()
    cursor = conn.execute(
        "SELECT * FROM pr_reviews WHERE session_id = ? ORDER BY id DESC",
        (session_id,),
    )
    return [PrReview.from_row(row) for row in cursor.fetchall()]


def get_pending_pr_reviews(store: CommandStore) -> list[PrReview]:
    """Get unmerged PR records whose review is still pending."""
    conn = store._get_connection()
    cursor = conn.execute(
        """
        SELECT * FROM pr_reviews
        WHERE review_status = ? AND merged_at IS NULL
        ORDER BY id ASC
        """,
        (REVIEW_STATUS_PENDING,),
    )
    return [PrReview.from_row(row) for row in cursor.fetchall()]


def get_auto_merge_eligible(store: CommandStore) -> list[PrReview]:
    """Get unmerged PR records whose last gate evaluation passed."""
    conn = store._get_connection()
    cursor = conn.execute(
        """
        SELECT * FROM pr_reviews
        WHERE auto_merge_eligible = 1 AND merged_at IS NULL
        ORDER BY id ASC
        """
    )
    return [PrReview.from_row(row) for row in cursor.fetchall()]


def update_review(
    store: CommandStore,
    pr_url: str,
    status: str | None = None,
    notes: str | None = None,
) -> PrReview | None:
    """Update the review status and/or notes of a PR record.

    Returns:
        The updated record, or None if no record has this URL.
    """
    if get_pr_review(store, pr_url) is None:
        return None
    with store._transaction() as conn:
        conn.execute(
            """
            UPDATE pr_reviews
            SET review_status = COALESCE(?, review_status),
                review_notes = COALESCE(?, review_notes)
            WHERE pr_url = ?
            """,
            (status, notes, pr_url),
        )
    return get_pr_review(store, pr_url)


def record_auto_merge_decision(
    store: CommandStore,
    pr_url: str,
    eligible: bool,
    reasons: list[str],
    checked_at: datetime,
) -> None:
    """Persist the outcome of the auto-merge gate on a PR record."""
    with store._transaction() as conn:
        conn.execute(
            """
            UPDATE pr_reviews
            SET auto_merge_eligible = ?, auto_merge_reason = ?, last_checked_at = ?
            WHERE pr_url = ?
            """,
            (
                eligible,
                "; ".join(reasons) if reasons else None,
                format_timestamp(checked_at),
                pr_url,
            ),
        )


def mark_merged(store: CommandStore, pr_url: str, merged_at: datetime) -> None:
    """Mark a PR record as merged and closed for review."""
    with store._transaction() as conn:
        conn.execute(
            """
            UPDATE pr_reviews
            SET merged_at = ?, pr_state = ?, review_status = ?, auto_merge_eligible = 0
            WHERE pr_url = ?
            """,
            (format_timestamp(merged_at), PR_STATE_MERGED, REVIEW_STATUS_CLOSED, pr_url),
        )
    logger.info(f"Marked {pr_url} as merged")
