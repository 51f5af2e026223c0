"""Core CommandStore class.

Contains the CommandStore class with connection management and delegation
to the per-table operation modules.
"""

import logging
import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from jules_command.constants import DEFAULT_LIST_LIMIT
from jules_command.exceptions import StoreError
from jules_command.store import activities, poll_cursors, pr_reviews, query, sessions
from jules_command.store.migrations import apply_migrations
from jules_command.store.models import Activity, PollCursor, PrReview, Session
from jules_command.store.schema import SCHEMA_SQL, SCHEMA_VERSION

logger = logging.getLogger(__name__)


class CommandStore:
    """SQLite-backed record store for sessions, activities, cursors and PRs.

    Each thread gets its own connection. Writes go through ``_transaction``,
    which commits on success and rolls back on any sqlite error.
    """

    def __init__(self, db_path: Path):
        """Initialize the store, creating or migrating the schema.

        Args:
            db_path: Path to SQLite database file.

        Raises:
            StoreError: If the database cannot be opened or initialized.
        """
        self.db_path = db_path
        self._local = threading.local()
        try:
            self._ensure_schema()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Failed to initialize store: {e}", db_path=db_path) from e

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                timeout=30.0,
            )
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA synchronous=NORMAL")
            self._local.conn.execute("PRAGMA foreign_keys = ON")
            self._local.conn.execute("PRAGMA temp_store = MEMORY")
        conn: sqlite3.Connection = self._local.conn
        return conn

    def _get_readonly_connection(self) -> sqlite3.Connection:
        """Get thread-local read-only connection for ad-hoc queries."""
        if not hasattr(self._local, "ro_conn") or self._local.ro_conn is None:
            self._local.ro_conn = sqlite3.connect(
                f"file:{self.db_path}?mode=ro",
                uri=True,
                check_same_thread=False,
                timeout=30.0,
            )
            self._local.ro_conn.row_factory = sqlite3.Row
            self._local.ro_conn.execute("PRAGMA query_only = ON")
        conn: sqlite3.Connection = self._local.ro_conn
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Database transaction error: {e}", exc_info=True)
            raise

    def _ensure_schema(self) -> None:
        """Create database schema if needed, applying migrations for existing databases."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._transaction() as conn:
            try:
                cursor = conn.execute("SELECT MAX(version) FROM schema_version")
                row = cursor.fetchone()
                current_version = row[0] if row and row[0] is not None else 0
            except sqlite3.OperationalError:
                current_version = 0

            if current_version == 0:
                conn.executescript(SCHEMA_SQL)
            elif current_version < SCHEMA_VERSION:
                apply_migrations(conn, current_version)

            if current_version < SCHEMA_VERSION:
                conn.execute("DELETE FROM schema_version")
                conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)",
                    (SCHEMA_VERSION,),
                )
                logger.info(f"Command store schema initialized (v{SCHEMA_VERSION})")

    def get_schema_version(self) -> int:
        """Get current database schema version.

        Returns:
            Schema version number, or 0 if schema_version table doesn't exist.
        """
        try:
            cursor = self._get_connection().execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            row = cursor.fetchone()
            return row[0] if row else 0
        except sqlite3.OperationalError:
            return 0

    def close(self) -> None:
        """Close the current thread's connections."""
        for name in ("ro_conn", "conn"):
            conn = getattr(self._local, name, None)
            if conn is not None:
                conn.close()
                setattr(self._local, name, None)

    def run_query(
        self,
        table: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[dict[str, Any]]:
        """Run a structured read-only query against one table."""
        return query.query_table(self, table, where=where, order_by=order_by, limit=limit)

    # ==========================================================================
    # Session operations - delegate to sessions module
    # ==========================================================================

    def upsert_session(self, session: Session) -> Session:
        """Insert or fully replace a session snapshot."""
        return sessions.upsert_session(self, session)

    def get_session(self, session_id: str) -> Session | None:
        """Get session by ID."""
        return sessions.get_session(self, session_id)

    def get_active_sessions(self) -> list[Session]:
        """Get all non-terminal sessions, newest first."""
        return sessions.get_active_sessions(self)

    def list_sessions(
        self, state: str | None = None, repo: str | None = None, limit: int = 50
    ) -> list[Session]:
        """List sessions with optional filters."""
        return sessions.list_sessions(self, state=state, repo=repo, limit=limit)

    def update_poll_state(
        self,
        session_id: str,
        last_polled_at: datetime,
        stall_detected_at: datetime | None,
        stall_reason: str | None,
    ) -> None:
        """Record a poll and set or clear the stall fields."""
        sessions.update_poll_state(
            self, session_id, last_polled_at, stall_detected_at, stall_reason
        )

    # ==========================================================================
    # Activity operations - delegate to activities module
    # ==========================================================================

    def add_activities(self, items: Sequence[Activity]) -> int:
        """Insert activities, ignoring ids already stored."""
        return activities.add_activities(self, items)

    def get_recent_activities(self, session_id: str, limit: int = 100) -> list[Activity]:
        """Get the newest activities for a session, newest first."""
        return activities.get_recent_activities(self, session_id, limit)

    def get_activities_by_type(
        self, session_id: str, activity_type: str, limit: int = 50
    ) -> list[Activity]:
        """Get a session's activities of one type, newest first."""
        return activities.get_activities_by_type(self, session_id, activity_type, limit)

    def get_activities_since(self, session_id: str, since: datetime) -> list[Activity]:
        """Get a session's activities created after a timestamp, oldest first."""
        return activities.get_activities_since(self, session_id, since)

    # ==========================================================================
    # Poll cursor operations - delegate to poll_cursors module
    # ==========================================================================

    def get_poll_cursor(self, cursor_id: str) -> PollCursor | None:
        """Get a poll cursor by ID."""
        return poll_cursors.get_poll_cursor(self, cursor_id)

    def record_poll(
        self,
        cursor_id: str,
        polled_at: datetime,
        last_activity_seen_at: datetime | None = None,
    ) -> PollCursor:
        """Create the cursor or atomically increment its poll count."""
        return poll_cursors.record_poll(self, cursor_id, polled_at, last_activity_seen_at)

    def record_poll_error(self, cursor_id: str, error: str, polled_at: datetime) -> None:
        """Count a failed poll against the cursor."""
        poll_cursors.record_poll_error(self, cursor_id, error, polled_at)

    # ==========================================================================
    # PR review operations - delegate to pr_reviews module
    # ==========================================================================

    def upsert_pr_review(self, review: PrReview) -> PrReview:
        """Insert or replace a PR record keyed by URL."""
        return pr_reviews.upsert_pr_review(self, review)

    def get_pr_review(self, pr_url: str) -> PrReview | None:
        """Get a PR record by URL."""
        return pr_reviews.get_pr_review(self, pr_url)

    def get_pr_reviews_for_session(self, session_id: str) -> list[PrReview]:
        """Get PR records produced by a session."""
        return pr_reviews.get_pr_reviews_for_session(self, session_id)

    def get_pending_pr_reviews(self) -> list[PrReview]:
        """Get unmerged PR records still awaiting review."""
        return pr_reviews.get_pending_pr_reviews(self)

    def get_auto_merge_eligible(self) -> list[PrReview]:
        """Get unmerged PR records last evaluated as eligible."""
        return pr_reviews.get_auto_merge_eligible(self)

    def update_review(
        self, pr_url: str, status: str | None = None, notes: str | None = None
    ) -> PrReview | None:
        """Update review status and/or notes."""
        return pr_reviews.update_review(self, pr_url, status=status, notes=notes)

    def record_auto_merge_decision(
        self, pr_url: str, eligible: bool, reasons: list[str], checked_at: datetime
    ) -> None:
        """Persist the latest auto-merge gate outcome."""
        pr_reviews.record_auto_merge_decision(self, pr_url, eligible, reasons, checked_at)

    def mark_merged(self, pr_url: str, merged_at: datetime) -> None:
        """Mark a PR record as merged."""
        pr_reviews.mark_merged(self, pr_url, merged_at)
