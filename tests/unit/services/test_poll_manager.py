"""Tests for the poll cycle orchestrator.

These run against a real CommandStore with mocked remote collaborators and
a fixed clock, so cycles never sleep or touch the network.
"""

import sqlite3
import threading
from unittest.mock import MagicMock, call

import pytest

from jules_command.constants import (
    SESSION_STATE_COMPLETED,
    SESSION_STATE_FAILED,
    SESSION_STATE_IN_PROGRESS,
    SESSION_STATE_QUEUED,
    STALL_RULE_NO_PROGRESS,
    STALL_RULE_QUEUE_TIMEOUT,
    STALL_RULE_REPEATED_ERRORS,
)
from jules_command.exceptions import ClientError
from jules_command.services.poll_manager import PollManager, PollResult, PollSummary
from jules_command.services.stall_detector import StallDetector
from jules_command.store.core import CommandStore
from jules_command.store.models import Activity

from ..fixtures import (
    NOW,
    TEST_PR_URL,
    TEST_SESSION_ID,
    TEST_SESSION_ID_THREE,
    TEST_SESSION_ID_TWO,
    make_activity,
    make_bash_activity,
    make_session,
)


@pytest.fixture
def sleep() -> MagicMock:
    return MagicMock()


@pytest.fixture
def manager(store: CommandStore, detector: StallDetector, sleep: MagicMock) -> PollManager:
    """PollManager with no remote clients, a fixed clock and a recorded sleep."""
    return PollManager(store, detector, delay_ms=100, sleep=sleep, clock=lambda: NOW)


def _seed_active(store: CommandStore) -> None:
    store.upsert_session(make_session(TEST_SESSION_ID, SESSION_STATE_IN_PROGRESS))
    store.upsert_session(make_session(TEST_SESSION_ID_TWO, SESSION_STATE_QUEUED))


# =============================================================================
# Single session
# =============================================================================


class TestPollOne:
    """Tests for PollManager.poll_one."""

    def test_missing_session(self, manager: PollManager):
        result = manager.poll_one("missing")

        assert result.updated is False
        assert result.error == "Session not found: missing"

    def test_healthy_session_records_poll(self, manager: PollManager, store: CommandStore):
        store.upsert_session(make_session())
        store.add_activities([make_activity("a1", created_minutes_ago=2)])

        result = manager.poll_one(TEST_SESSION_ID)

        assert result == PollResult(TEST_SESSION_ID, updated=True)
        session = store.get_session(TEST_SESSION_ID)
        assert session is not None
        assert session.last_polled_at == NOW
        assert session.stall_reason is None

        cursor = store.get_poll_cursor(TEST_SESSION_ID)
        assert cursor is not None
        assert cursor.poll_count == 1
        assert cursor.last_activity_seen_at == make_activity("a1", created_minutes_ago=2).created_at

    def test_stall_is_persisted(self, manager: PollManager, store: CommandStore):
        store.upsert_session(make_session(state=SESSION_STATE_QUEUED, created_minutes_ago=15))

        result = manager.poll_one(TEST_SESSION_ID)

        assert result.stall is not None
        assert result.stall.rule_id == STALL_RULE_QUEUE_TIMEOUT
        session = store.get_session(TEST_SESSION_ID)
        assert session is not None
        assert session.stall_detected_at == NOW
        assert session.stall_reason == "Session stuck in queue for 15 min (threshold: 10 min)"

    def test_stall_cleared_when_session_recovers(self, manager: PollManager, store: CommandStore):
        store.upsert_session(make_session(state=SESSION_STATE_QUEUED, created_minutes_ago=15))
        manager.poll_one(TEST_SESSION_ID)

        store.upsert_session(make_session(state=SESSION_STATE_IN_PROGRESS, created_minutes_ago=15))
        result = manager.poll_one(TEST_SESSION_ID)

        assert result.stall is None
        session = store.get_session(TEST_SESSION_ID)
        assert session is not None
        assert session.stall_detected_at is None
        assert session.stall_reason is None

    def test_repeat_polls_increment_cursor(self, manager: PollManager, store: CommandStore):
        store.upsert_session(make_session())

        manager.poll_one(TEST_SESSION_ID)
        manager.poll_one(TEST_SESSION_ID)

        cursor = store.get_poll_cursor(TEST_SESSION_ID)
        assert cursor is not None
        assert cursor.poll_count == 2
        assert cursor.consecutive_unchanged == 1

    def test_refreshes_from_jules(self, store: CommandStore, detector: StallDetector):
        store.upsert_session(make_session())
        jules = MagicMock()
        jules.get_session.return_value = make_session(title="Refreshed title")
        jules.list_activities.return_value = [
            make_bash_activity(f"b{i}", created_minutes_ago=i + 1) for i in range(3)
        ]
        manager = PollManager(store, detector, delay_ms=0, jules=jules, clock=lambda: NOW)

        result = manager.poll_one(TEST_SESSION_ID)

        jules.get_session.assert_called_once_with(TEST_SESSION_ID)
        jules.list_activities.assert_called_once_with(TEST_SESSION_ID)
        assert result.stall is not None
        assert result.stall.rule_id == STALL_RULE_REPEATED_ERRORS
        assert len(store.get_recent_activities(TEST_SESSION_ID)) == 3
        session = store.get_session(TEST_SESSION_ID)
        assert session is not None
        assert session.title == "Refreshed title"

    def test_client_error_recorded_on_cursor(self, store: CommandStore, detector: StallDetector):
        store.upsert_session(make_session())
        jules = MagicMock()
        jules.get_session.side_effect = ClientError("Jules API timed out", "jules")
        manager = PollManager(store, detector, delay_ms=0, jules=jules, clock=lambda: NOW)

        result = manager.poll_one(TEST_SESSION_ID)

        assert result.updated is False
        assert result.error == "Jules API timed out (service=jules)"
        cursor = store.get_poll_cursor(TEST_SESSION_ID)
        assert cursor is not None
        assert cursor.error_count == 1
        assert cursor.last_error == "Jules API timed out (service=jules)"
        assert cursor.poll_count == 0

    def test_store_read_failure_recorded(self, detector: StallDetector):
        store = MagicMock()
        store.get_session.side_effect = sqlite3.OperationalError("database is locked")
        manager = PollManager(store, detector, delay_ms=0, clock=lambda: NOW)

        result = manager.poll_one(TEST_SESSION_ID)

        assert result.updated is False
        assert result.error == "database is locked"
        store.record_poll_error.assert_called_once_with(TEST_SESSION_ID, "database is locked", NOW)

    def test_untimestamped_activity_does_not_hide_idle_session(
        self, manager: PollManager, store: CommandStore
    ):
        store.upsert_session(make_session(created_minutes_ago=60))
        store.add_activities(
            [
                make_activity("a1", created_minutes_ago=20),
                Activity(id="u1", session_id=TEST_SESSION_ID, created_at=None),
            ]
        )

        result = manager.poll_one(TEST_SESSION_ID)

        assert result.stall is not None
        assert result.stall.rule_id == STALL_RULE_NO_PROGRESS


# =============================================================================
# Cycles
# =============================================================================


class TestPollCycle:
    """Tests for PollManager.poll_sessions and poll_all_active."""

    def test_poll_all_active_skips_terminal_sessions(
        self, manager: PollManager, store: CommandStore
    ):
        _seed_active(store)
        store.upsert_session(make_session(TEST_SESSION_ID_THREE, SESSION_STATE_COMPLETED))

        summary = manager.poll_all_active()

        assert summary.sessions_polled == 2
        assert summary.sessions_updated == 2
        assert summary.errors == []

    def test_failed_sessions_are_terminal(self, manager: PollManager, store: CommandStore):
        store.upsert_session(make_session(state=SESSION_STATE_FAILED))
        assert manager.poll_all_active().sessions_polled == 0

    def test_empty_cycle(self, manager: PollManager, sleep: MagicMock):
        summary = manager.poll_all_active()

        assert summary == PollSummary()
        sleep.assert_not_called()

    def test_delay_only_between_sessions(
        self, manager: PollManager, store: CommandStore, sleep: MagicMock
    ):
        _seed_active(store)
        store.upsert_session(make_session(TEST_SESSION_ID_THREE, SESSION_STATE_IN_PROGRESS))

        manager.poll_all_active()

        assert sleep.call_args_list == [call(0.1), call(0.1)]

    def test_zero_delay_never_sleeps(
        self, store: CommandStore, detector: StallDetector, sleep: MagicMock
    ):
        _seed_active(store)
        manager = PollManager(store, detector, delay_ms=0, sleep=sleep, clock=lambda: NOW)

        manager.poll_all_active()

        sleep.assert_not_called()

    def test_missing_session_reported_and_cycle_continues(
        self, manager: PollManager, store: CommandStore
    ):
        store.upsert_session(make_session())

        summary = manager.poll_sessions(["missing", TEST_SESSION_ID])

        assert summary.sessions_polled == 2
        assert summary.sessions_updated == 1
        assert summary.errors == [{"session_id": "missing", "error": "Session not found: missing"}]

    def test_unexpected_error_isolated(self, store: CommandStore):
        _seed_active(store)
        detector = MagicMock()
        detector.detect.side_effect = [RuntimeError("detector crashed"), None]
        manager = PollManager(store, detector, delay_ms=0, clock=lambda: NOW)

        summary = manager.poll_all_active()

        assert summary.sessions_polled == 2
        assert summary.sessions_updated == 1
        assert len(summary.errors) == 1
        assert summary.errors[0]["error"] == "detector crashed"

    def test_unexpected_error_recorded_on_cursor(
        self, store: CommandStore, detector: StallDetector
    ):
        store.upsert_session(make_session())
        jules = MagicMock()
        jules.get_session.side_effect = KeyError("state")
        manager = PollManager(store, detector, delay_ms=0, jules=jules, clock=lambda: NOW)

        summary = manager.poll_sessions([TEST_SESSION_ID])

        assert summary.errors == [{"session_id": TEST_SESSION_ID, "error": "'state'"}]
        cursor = store.get_poll_cursor(TEST_SESSION_ID)
        assert cursor is not None
        assert cursor.error_count == 1
        assert cursor.last_error == "'state'"

    def test_stalls_collected(self, manager: PollManager, store: CommandStore):
        store.upsert_session(
            make_session(TEST_SESSION_ID, SESSION_STATE_QUEUED, created_minutes_ago=15)
        )
        store.upsert_session(make_session(TEST_SESSION_ID_TWO, SESSION_STATE_QUEUED))

        summary = manager.poll_all_active()

        assert [stall.session_id for stall in summary.stalls_detected] == [TEST_SESSION_ID]

    def test_summary_to_dict(self, manager: PollManager, store: CommandStore):
        store.upsert_session(make_session(state=SESSION_STATE_QUEUED, created_minutes_ago=15))

        data = manager.poll_all_active().to_dict()

        assert data["sessions_polled"] == 1
        assert data["stalls_detected"][0]["rule_id"] == STALL_RULE_QUEUE_TIMEOUT
        assert data["prs_updated"] == 0
        assert data["errors"] == []


class TestPrSyncDuringCycle:
    """Tests for the PR sync pass at the end of a cycle."""

    def test_syncs_sessions_with_pr_url(self, store: CommandStore, detector: StallDetector):
        store.upsert_session(make_session(TEST_SESSION_ID, pr_url=TEST_PR_URL))
        store.upsert_session(make_session(TEST_SESSION_ID_TWO))
        pr_sync = MagicMock()
        manager = PollManager(store, detector, delay_ms=0, pr_sync=pr_sync, clock=lambda: NOW)

        summary = manager.poll_all_active()

        assert summary.prs_updated == 1
        pr_sync.sync_pr.assert_called_once_with(TEST_PR_URL, session_id=TEST_SESSION_ID, now=NOW)

    def test_sync_failure_reported(self, store: CommandStore, detector: StallDetector):
        store.upsert_session(make_session(pr_url=TEST_PR_URL))
        pr_sync = MagicMock()
        pr_sync.sync_pr.side_effect = ClientError("GitHub API returned status 502", "github")
        manager = PollManager(store, detector, delay_ms=0, pr_sync=pr_sync, clock=lambda: NOW)

        summary = manager.poll_all_active()

        assert summary.sessions_updated == 1
        assert summary.prs_updated == 0
        assert summary.errors == [
            {
                "session_id": TEST_SESSION_ID,
                "error": "GitHub API returned status 502 (service=github)",
            }
        ]


class TestRun:
    """Tests for continuous polling."""

    def test_stops_after_max_cycles(self, manager: PollManager):
        on_cycle = MagicMock()

        count = manager.run(interval_ms=1, max_cycles=3, on_cycle=on_cycle)

        assert count == 3
        assert on_cycle.call_count == 3

    def test_stop_event_already_set(self, manager: PollManager):
        stop_event = threading.Event()
        stop_event.set()

        assert manager.run(interval_ms=1, stop_event=stop_event) == 0
