"""Session operations for the command store."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from jules_command.constants import TERMINAL_SESSION_STATES
from jules_command.store.models import Session
from jules_command.utils.timestamps import format_timestamp

if TYPE_CHECKING:
    from jules_command.store.core import CommandStore

logger = logging.getLogger(__name__)

_TERMINAL_PLACEHOLDERS = ", ".join("?" for _ in TERMINAL_SESSION_STATES)


def upsert_session(store: CommandStore, session: Session) -> Session:
    """Insert a session or replace the stored snapshot.

    Poll bookkeeping (``last_polled_at`` and the stall fields) is preserved
    when the incoming snapshot leaves it unset, so a refresh from the Jules
    API does not wipe what the poll cycle recorded.

    Args:
        store: The CommandStore instance.
        session: Session snapshot to store.

    Returns:
        The stored session.
    """
    with store._transaction() as conn:
        conn.execute(
            """
            INSERT INTO jules_sessions (
                id, title, prompt, repo, source_branch, state, jules_url, pr_url,
                pr_title, error_reason, stall_detected_at, stall_reason,
                created_at, updated_at, completed_at, last_polled_at
            )
            VALUES (
                :id, :title, :prompt, :repo, :source_branch, :state, :jules_url, :pr_url,
                :pr_title, :error_reason, :stall_detected_at, :stall_reason,
                :created_at, :updated_at, :completed_at, :last_polled_at
            )
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                prompt = excluded.prompt,
                repo = excluded.repo,
                source_branch = excluded.source_branch,
                state = excluded.state,
                jules_url = excluded.jules_url,
                pr_url = COALESCE(excluded.pr_url, jules_sessions.pr_url),
                pr_title = COALESCE(excluded.pr_title, jules_sessions.pr_title),
                error_reason = excluded.error_reason,
                stall_detected_at = COALESCE(
                    excluded.stall_detected_at, jules_sessions.stall_detected_at
                ),
                stall_reason = COALESCE(excluded.stall_reason, jules_sessions.stall_reason),
                created_at = COALESCE(excluded.created_at, jules_sessions.created_at),
                updated_at = COALESCE(excluded.updated_at, jules_sessions.updated_at),
                completed_at = COALESCE(excluded.completed_at, jules_sessions.completed_at),
                last_polled_at = COALESCE(excluded.last_polled_at, jules_sessions.last_polled_at)
            """,
            session.to_row(),
        )
    logger.debug(f"Upserted session {session.id} (state={session.state})")
    stored = get_session(store, session.id)
    return stored if stored is not None else session


def get_session(store: CommandStore, session_id: str) -> Session | None:
    """Get session by ID."""
    conn = store._get_connection()
    cursor = conn.execute("SELECT * FROM jules_sessions WHERE id = ?", (session_id,))
    row = cursor.fetchone()
    return Session.from_row(row) if row else None


def get_active_sessions(store: CommandStore) -> list[Session]:
    """Get every session not in a terminal state, newest created first."""
    conn = store._get_connection()
    cursor = conn.execute(
        f"""
        SELECT * FROM jules_sessions
        WHERE state NOT IN ({_TERMINAL_PLACEHOLDERS})
        ORDER BY created_at DESC
        """,
        TERMINAL_SESSION_STATES,
    )
    return [Session.from_row(row) for row in cursor.fetchall()]


def list_sessions(
    store: CommandStore,
    state: str | None = None,
    repo: str | None = None,
    limit: int = 50,
) -> list[Session]:
    """List sessions, optionally filtered by state and repo.

    Args:
        store: The CommandStore instance.
        state: Only sessions in this state.
        repo: Only sessions for this owner/name.
        limit: Maximum number of sessions to return.

    Returns:
        Sessions ordered by creation time, newest first.
    """
    clauses: list[str] = []
    params: list[object] = []
    if state:
        clauses.append("state = ?")
        params.append(state)
    if repo:
        clauses.append("repo = ?")
        params.append(repo)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    params.append(limit)

    conn = store._get_connection()
    cursor = conn.execute(
        f"SELECT * FROM jules_sessions {where} ORDER BY created_at DESC LIMIT ?",
        params,
    )
    return [Session.from_row(row) for row in cursor.fetchall()]


def update_poll_state(
    store: CommandStore,
    session_id: str,
    last_polled_at: datetime,
    stall_detected_at: datetime | None,
    stall_reason: str | None,
) -> None:
    """Record a poll on the session and set or clear its stall fields."""
    with store._transaction() as conn:
        conn.execute(
            """
            UPDATE jules_sessions
            SET last_polled_at = ?, stall_detected_at = ?, stall_reason = ?
            WHERE id = ?
            """,
            (
                format_timestamp(last_polled_at),
                format_timestamp(stall_detected_at),
                stall_reason,
                session_id,
            ),
        )
