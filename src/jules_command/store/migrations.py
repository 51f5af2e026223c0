"""Database migration functions for the command store."""

import logging
import sqlite3

logger = logging.getLogger(__name__)


def apply_migrations(conn: sqlite3.Connection, from_version: int) -> None:
    """Apply schema migrations from current version to latest.

    Args:
        conn: Database connection (within transaction).
        from_version: Current schema version.
    """
    if from_version < 2:
        _migrate_v1_to_v2(conn)
    if from_version < 3:
        _migrate_v2_to_v3(conn)


def _migrate_v1_to_v2(conn: sqlite3.Connection) -> None:
    """Migrate schema from v1 to v2: add head_sha to pr_reviews.

    Idempotent: skips the column if it already exists.
    """
    logger.info("Migrating command store schema v1 -> v2 (pr_reviews.head_sha)")

    existing_columns = {row[1] for row in conn.execute("PRAGMA table_info(pr_reviews)").fetchall()}
    if "head_sha" not in existing_columns:
        conn.execute("ALTER TABLE pr_reviews ADD COLUMN head_sha TEXT")

    logger.info("Migration v1 -> v2 complete")


def _migrate_v2_to_v3(conn: sqlite3.Connection) -> None:
    """Migrate schema from v2 to v3: allow NULL jules_activities.created_at.

    SQLite cannot relax a NOT NULL constraint in place, so the table is
    rebuilt and its rows copied. Skipped if the column is already nullable.
    """
    columns = {row[1]: row for row in conn.execute("PRAGMA table_info(jules_activities)")}
    created_at = columns.get("created_at")
    if created_at is None or not created_at[3]:
        return

    logger.info("Migrating command store schema v2 -> v3 (nullable activity created_at)")

    conn.execute("ALTER TABLE jules_activities RENAME TO jules_activities_v2")
    conn.execute(
        """
        CREATE TABLE jules_activities (
            id TEXT PRIMARY KEY,
            session_id TEXT NOT NULL,
            activity_type TEXT NOT NULL,
            originator TEXT NOT NULL,
            message TEXT,
            progress_title TEXT,
            progress_description TEXT,
            has_bash_output INTEGER NOT NULL DEFAULT 0,
            has_changeset INTEGER NOT NULL DEFAULT 0,
            files_changed TEXT,
            lines_added INTEGER NOT NULL DEFAULT 0,
            lines_deleted INTEGER NOT NULL DEFAULT 0,
            created_at TEXT,
            FOREIGN KEY (session_id) REFERENCES jules_sessions(id) ON DELETE CASCADE
        )
        """
    )
    conn.execute("INSERT INTO jules_activities SELECT * FROM jules_activities_v2")
    conn.execute("DROP TABLE jules_activities_v2")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_jules_activities_session_created "
        "ON jules_activities(session_id, created_at DESC)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_jules_activities_type "
        "ON jules_activities(session_id, activity_type)"
    )

    logger.info("Migration v2 -> v3 complete")
