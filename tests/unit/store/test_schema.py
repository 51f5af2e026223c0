"""Tests for schema creation and migrations."""

import sqlite3
from pathlib import Path

import pytest

from jules_command.exceptions import StoreError
from jules_command.store.core import CommandStore
from jules_command.store.models import Activity
from jules_command.store.schema import SCHEMA_SQL, SCHEMA_VERSION

from ..fixtures import (
    TEST_HEAD_SHA,
    TEST_PR_URL,
    TEST_SESSION_ID,
    make_pr_review,
)


def _create_v1_database(db_path: Path) -> None:
    """Write a database as the v1 schema left it (no pr_reviews.head_sha)."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(SCHEMA_SQL.replace("    head_sha TEXT,\n", ""))
        conn.execute("INSERT INTO schema_version (version) VALUES (1)")
        conn.execute(
            "INSERT INTO pr_reviews (pr_url, review_status) VALUES (?, 'pending')",
            (TEST_PR_URL,),
        )
        conn.commit()
    finally:
        conn.close()


def _create_v2_database(db_path: Path) -> None:
    """Write a database as the v2 schema left it (activity created_at NOT NULL)."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(
            SCHEMA_SQL.replace(
                "    created_at TEXT,\n    FOREIGN KEY",
                "    created_at TEXT NOT NULL,\n    FOREIGN KEY",
            )
        )
        conn.execute("INSERT INTO schema_version (version) VALUES (2)")
        conn.execute(
            "INSERT INTO jules_sessions (id, state) VALUES (?, 'in_progress')", (TEST_SESSION_ID,)
        )
        conn.execute(
            "INSERT INTO jules_activities (id, session_id, activity_type, originator, created_at) "
            "VALUES ('a1', ?, 'message', 'agent', '2026-03-01T11:50:00+00:00')",
            (TEST_SESSION_ID,),
        )
        conn.commit()
    finally:
        conn.close()


def _created_at_not_null(db_path: Path) -> bool:
    conn = sqlite3.connect(db_path)
    try:
        columns = {row[1]: row for row in conn.execute("PRAGMA table_info(jules_activities)")}
        return bool(columns["created_at"][3])
    finally:
        conn.close()


def _columns(db_path: Path, table: str) -> set[str]:
    conn = sqlite3.connect(db_path)
    try:
        return {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
    finally:
        conn.close()


class TestSchema:
    """Tests for fresh databases."""

    def test_fresh_database_at_current_version(self, store: CommandStore):
        assert store.get_schema_version() == SCHEMA_VERSION

    def test_creates_parent_directory(self, tmp_path: Path):
        db_path = tmp_path / "nested" / "dir" / "store.db"
        store = CommandStore(db_path)
        try:
            assert db_path.exists()
        finally:
            store.close()

    def test_reopen_is_idempotent(self, db_path: Path):
        first = CommandStore(db_path)
        first.upsert_pr_review(make_pr_review())
        first.close()

        second = CommandStore(db_path)
        try:
            assert second.get_schema_version() == SCHEMA_VERSION
            assert second.get_pr_review(TEST_PR_URL) is not None
        finally:
            second.close()

    def test_unopenable_path_raises_store_error(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(StoreError):
            CommandStore(blocker / "store.db")


class TestMigrations:
    """Tests for upgrading older databases."""

    def test_v1_gains_head_sha(self, db_path: Path):
        _create_v1_database(db_path)
        assert "head_sha" not in _columns(db_path, "pr_reviews")

        store = CommandStore(db_path)
        try:
            assert store.get_schema_version() == SCHEMA_VERSION
            assert "head_sha" in _columns(db_path, "pr_reviews")

            existing = store.get_pr_review(TEST_PR_URL)
            assert existing is not None
            assert existing.head_sha is None

            stored = store.upsert_pr_review(make_pr_review())
            assert stored.head_sha == TEST_HEAD_SHA
        finally:
            store.close()

    def test_v2_activity_created_at_becomes_nullable(self, db_path: Path):
        _create_v2_database(db_path)
        assert _created_at_not_null(db_path)

        store = CommandStore(db_path)
        try:
            assert store.get_schema_version() == SCHEMA_VERSION
            assert not _created_at_not_null(db_path)
            assert [a.id for a in store.get_recent_activities(TEST_SESSION_ID)] == ["a1"]

            store.add_activities([Activity(id="a2", session_id=TEST_SESSION_ID, created_at=None)])
            assert len(store.get_recent_activities(TEST_SESSION_ID)) == 2
        finally:
            store.close()

    def test_v2_rebuild_keeps_indexes(self, db_path: Path):
        _create_v2_database(db_path)
        CommandStore(db_path).close()

        conn = sqlite3.connect(db_path)
        try:
            indexes = {
                row[1] for row in conn.execute("PRAGMA index_list(jules_activities)").fetchall()
            }
        finally:
            conn.close()
        assert {
            "idx_jules_activities_session_created",
            "idx_jules_activities_type",
        } <= indexes

