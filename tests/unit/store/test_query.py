"""Tests for structured read-only queries."""

import sqlite3

import pytest

from jules_command.constants import MAX_LIST_LIMIT, SESSION_STATE_COMPLETED
from jules_command.store.core import CommandStore
from jules_command.store.models import Activity

from ..fixtures import (
    TEST_PR_URL,
    TEST_SESSION_ID,
    TEST_SESSION_ID_THREE,
    TEST_SESSION_ID_TWO,
    make_activity,
    make_pr_review,
    make_session,
)


@pytest.fixture
def seeded(store: CommandStore) -> CommandStore:
    store.upsert_session(make_session(TEST_SESSION_ID, created_minutes_ago=30))
    store.upsert_session(
        make_session(TEST_SESSION_ID_TWO, SESSION_STATE_COMPLETED, created_minutes_ago=20)
    )
    store.upsert_session(
        make_session(TEST_SESSION_ID_THREE, created_minutes_ago=10, pr_url=TEST_PR_URL)
    )
    return store


class TestRunQuery:
    """Tests for CommandStore.run_query."""

    def test_defaults_to_newest_rows_first(self, seeded: CommandStore):
        rows = seeded.run_query("sessions")
        assert [r["id"] for r in rows] == [
            TEST_SESSION_ID_THREE,
            TEST_SESSION_ID_TWO,
            TEST_SESSION_ID,
        ]

    def test_equality_filters_are_combined(self, seeded: CommandStore):
        rows = seeded.run_query("sessions", where={"state": "in_progress", "pr_url": TEST_PR_URL})
        assert [r["id"] for r in rows] == [TEST_SESSION_ID_THREE]

    def test_none_matches_null(self, seeded: CommandStore):
        rows = seeded.run_query("sessions", where={"pr_url": None}, order_by="created_at")
        assert [r["id"] for r in rows] == [TEST_SESSION_ID, TEST_SESSION_ID_TWO]

    def test_order_by_desc(self, seeded: CommandStore):
        rows = seeded.run_query("sessions", order_by="created_at DESC", limit=1)
        assert [r["id"] for r in rows] == [TEST_SESSION_ID_THREE]

    def test_rows_are_tool_dicts(self, seeded: CommandStore):
        seeded.add_activities([make_activity("a1", files_changed=["src/app.py"])])

        rows = seeded.run_query("activities", where={"session_id": TEST_SESSION_ID})

        assert rows[0]["files_changed"] == ["src/app.py"]

    def test_pr_reviews_table(self, seeded: CommandStore):
        seeded.upsert_pr_review(make_pr_review())
        rows = seeded.run_query("pr_reviews")
        assert [r["pr_url"] for r in rows] == [TEST_PR_URL]

    def test_limit_clamped(self, seeded: CommandStore):
        assert len(seeded.run_query("sessions", limit=0)) == 1
        assert len(seeded.run_query("sessions", limit=MAX_LIST_LIMIT + 100)) == 3

    def test_unknown_table(self, seeded: CommandStore):
        with pytest.raises(ValueError, match="Unknown table: sqlite_master"):
            seeded.run_query("sqlite_master")

    def test_unknown_where_column(self, seeded: CommandStore):
        with pytest.raises(ValueError, match="Unknown column for sessions: 1=1 OR id"):
            seeded.run_query("sessions", where={"1=1 OR id": "x"})

    def test_unknown_order_column(self, seeded: CommandStore):
        with pytest.raises(ValueError, match="Unknown order_by column: owner"):
            seeded.run_query("sessions", order_by="owner")

    @pytest.mark.parametrize("order_by", ["created_at sideways", "created_at desc; DROP"])
    def test_bad_order_direction(self, seeded: CommandStore, order_by):
        with pytest.raises(ValueError, match="Invalid order_by"):
            seeded.run_query("sessions", order_by=order_by)

    def test_values_are_bound(self, seeded: CommandStore):
        rows = seeded.run_query("sessions", where={"id": "x' OR '1'='1"})
        assert rows == []

    def test_untimestamped_activity_returned(self, seeded: CommandStore):
        seeded.add_activities([Activity(id="a1", session_id=TEST_SESSION_ID, created_at=None)])

        rows = seeded.run_query("activities", where={"created_at": None})

        assert [r["id"] for r in rows] == ["a1"]
        assert rows[0]["created_at"] is None

    def test_connection_is_read_only(self, seeded: CommandStore):
        conn = seeded._get_readonly_connection()
        with pytest.raises(sqlite3.OperationalError):
            conn.execute("DELETE FROM jules_sessions")
