"""Tests for activity storage."""

import sqlite3

import pytest

from jules_command.constants import ACTIVITY_TYPE_BASH_OUTPUT, ACTIVITY_TYPE_PLAN
from jules_command.store.core import CommandStore
from jules_command.store.models import Activity

from ..fixtures import (
    TEST_SESSION_ID,
    TEST_SESSION_ID_TWO,
    make_activity,
    make_bash_activity,
    make_session,
    minutes_ago,
)


@pytest.fixture
def seeded(store: CommandStore) -> CommandStore:
    store.upsert_session(make_session(TEST_SESSION_ID))
    store.upsert_session(make_session(TEST_SESSION_ID_TWO))
    return store


class TestAddActivities:
    """Tests for append-only inserts."""

    def test_returns_inserted_count(self, seeded: CommandStore):
        added = seeded.add_activities(
            [make_activity("a1", created_minutes_ago=3), make_activity("a2", created_minutes_ago=2)]
        )
        assert added == 2

    def test_known_ids_ignored(self, seeded: CommandStore):
        seeded.add_activities([make_activity("a1", created_minutes_ago=3)])

        added = seeded.add_activities(
            [
                make_activity("a1", created_minutes_ago=3, message="changed"),
                make_activity("a2", created_minutes_ago=1),
            ]
        )

        assert added == 1
        stored = seeded.get_recent_activities(TEST_SESSION_ID)
        assert [a.id for a in stored] == ["a2", "a1"]
        assert stored[1].message is None

    def test_empty_batch(self, seeded: CommandStore):
        assert seeded.add_activities([]) == 0

    def test_unknown_session_rejected(self, store: CommandStore):
        with pytest.raises(sqlite3.IntegrityError):
            store.add_activities([make_activity("a1", session_id="ghost")])

    def test_round_trip(self, seeded: CommandStore):
        activity = Activity(
            id="a1",
            session_id=TEST_SESSION_ID,
            activity_type=ACTIVITY_TYPE_PLAN,
            message="Plan ready",
            has_changeset=True,
            files_changed=["src/a.py", "src/b.py"],
            lines_added=12,
            lines_deleted=4,
            created_at=minutes_ago(1),
        )
        seeded.add_activities([activity])

        assert seeded.get_recent_activities(TEST_SESSION_ID) == [activity]

    def test_long_text_truncated(self, seeded: CommandStore):
        seeded.add_activities([make_activity("a1", message="x" * 20000)])

        stored = seeded.get_recent_activities(TEST_SESSION_ID)[0]
        assert stored.message is not None
        assert len(stored.message) == Activity.MAX_TEXT_LENGTH


class TestActivityQueries:
    """Tests for reading activities back."""

    def test_recent_newest_first_and_limited(self, seeded: CommandStore):
        seeded.add_activities(
            [make_activity(f"a{i}", created_minutes_ago=10 - i) for i in range(5)]
        )

        recent = seeded.get_recent_activities(TEST_SESSION_ID, limit=3)

        assert [a.id for a in recent] == ["a4", "a3", "a2"]

    def test_recent_scoped_to_session(self, seeded: CommandStore):
        seeded.add_activities(
            [make_activity("a1"), make_activity("b1", session_id=TEST_SESSION_ID_TWO)]
        )
        assert [a.id for a in seeded.get_recent_activities(TEST_SESSION_ID_TWO)] == ["b1"]

    def test_by_type(self, seeded: CommandStore):
        seeded.add_activities(
            [
                make_activity("m1", created_minutes_ago=3),
                make_bash_activity("b1", created_minutes_ago=2),
                make_bash_activity("b2", created_minutes_ago=1),
            ]
        )

        bash = seeded.get_activities_by_type(TEST_SESSION_ID, ACTIVITY_TYPE_BASH_OUTPUT)

        assert [a.id for a in bash] == ["b2", "b1"]

    def test_since_is_exclusive_and_oldest_first(self, seeded: CommandStore):
        seeded.add_activities(
            [make_activity(f"a{i}", created_minutes_ago=10 - i) for i in range(4)]
        )

        since = seeded.get_activities_since(TEST_SESSION_ID, minutes_ago(9))

        assert [a.id for a in since] == ["a2", "a3"]


class TestActivityModel:
    """Tests for exit code parsing on activities."""

    def test_failed_command(self):
        activity = make_bash_activity("b1", exit_code=2)

        assert activity.exit_code == 2
        assert activity.is_failed_command()

    def test_successful_command(self):
        activity = make_bash_activity("b1", exit_code=0)

        assert activity.exit_code == 0
        assert not activity.is_failed_command()

    def test_no_exit_code(self):
        activity = make_activity("a1", has_bash_output=True, progress_description="ls")

        assert activity.exit_code is None
        assert not activity.is_failed_command()


class TestUntimestampedActivities:
    """Activities whose feed entry carried no creation time."""

    def test_stored_with_null_created_at(self, seeded: CommandStore):
        seeded.add_activities([Activity(id="a1", session_id=TEST_SESSION_ID, created_at=None)])

        stored = seeded.get_recent_activities(TEST_SESSION_ID)

        assert [a.id for a in stored] == ["a1"]
        assert stored[0].created_at is None

    def test_sorted_after_timestamped(self, seeded: CommandStore):
        seeded.add_activities(
            [
                Activity(id="u1", session_id=TEST_SESSION_ID, created_at=None),
                make_activity("a1", created_minutes_ago=5),
                make_activity("a2", created_minutes_ago=1),
            ]
        )

        recent = seeded.get_recent_activities(TEST_SESSION_ID)

        assert [a.id for a in recent] == ["a2", "a1", "u1"]

    def test_excluded_from_since(self, seeded: CommandStore):
        seeded.add_activities(
            [
                Activity(id="u1", session_id=TEST_SESSION_ID, created_at=None),
                make_activity("a1", created_minutes_ago=1),
            ]
        )

        since = seeded.get_activities_since(TEST_SESSION_ID, minutes_ago(5))

        assert [a.id for a in since] == ["a1"]
