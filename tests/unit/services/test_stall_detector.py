"""Tests for the stall detection rule cascade.

Each rule is checked on both sides of its threshold (T-1 minutes gives no
stall, exactly T gives a stall), then the cascade order and the
repeated-errors rule are covered separately.
"""

import pytest

from jules_command.config import StallConfig
from jules_command.constants import (
    SESSION_STATE_AWAITING_PLAN_APPROVAL,
    SESSION_STATE_AWAITING_USER_FEEDBACK,
    SESSION_STATE_COMPLETED,
    SESSION_STATE_IN_PROGRESS,
    SESSION_STATE_PAUSED,
    SESSION_STATE_PLANNING,
    SESSION_STATE_QUEUED,
    STALL_RULE_FEEDBACK_TIMEOUT,
    STALL_RULE_NO_PROGRESS,
    STALL_RULE_PLAN_APPROVAL_TIMEOUT,
    STALL_RULE_QUEUE_TIMEOUT,
    STALL_RULE_REPEATED_ERRORS,
)
from jules_command.services.stall_detector import StallDetector, round_minutes

from ..fixtures import NOW, TEST_SESSION_ID, make_activity, make_bash_activity, make_session


def _failing_window(count: int = 3):
    return [make_bash_activity(f"act-{i}", created_minutes_ago=i + 1) for i in range(count)]


# =============================================================================
# Time-based rules
# =============================================================================


class TestPlanApprovalTimeout:
    """Tests for plans left waiting for approval."""

    def test_below_threshold_no_stall(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_AWAITING_PLAN_APPROVAL, updated_minutes_ago=29)
        assert detector.detect(session, [], NOW) is None

    def test_at_threshold_stalls(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_AWAITING_PLAN_APPROVAL, updated_minutes_ago=30)
        stall = detector.detect(session, [], NOW)

        assert stall is not None
        assert stall.rule_id == STALL_RULE_PLAN_APPROVAL_TIMEOUT
        assert stall.reason == "Plan awaiting approval for 30 min (threshold: 30 min)"
        assert stall.minutes_since_update == 30

    def test_populates_session_fields(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_AWAITING_PLAN_APPROVAL, updated_minutes_ago=45)
        stall = detector.detect(session, [], NOW)

        assert stall is not None
        assert stall.session_id == TEST_SESSION_ID
        assert stall.session_state == SESSION_STATE_AWAITING_PLAN_APPROVAL
        assert stall.session_title == session.title
        assert stall.detected_at == NOW

    def test_missing_updated_at_skips_rule(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_AWAITING_PLAN_APPROVAL)
        session.updated_at = None
        assert detector.detect(session, [], NOW) is None


class TestFeedbackTimeout:
    """Tests for questions left unanswered."""

    def test_below_threshold_no_stall(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_AWAITING_USER_FEEDBACK, updated_minutes_ago=29)
        assert detector.detect(session, [], NOW) is None

    def test_at_threshold_stalls(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_AWAITING_USER_FEEDBACK, updated_minutes_ago=30)
        stall = detector.detect(session, [], NOW)

        assert stall is not None
        assert stall.rule_id == STALL_RULE_FEEDBACK_TIMEOUT
        assert stall.reason == "Jules asked a question 30 min ago, no response (threshold: 30 min)"


class TestNoProgress:
    """Tests for in-progress sessions that stopped producing activity."""

    def test_below_threshold_no_stall(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_IN_PROGRESS, updated_minutes_ago=60)
        activities = [make_activity("a1", created_minutes_ago=14)]
        assert detector.detect(session, activities, NOW) is None

    def test_at_threshold_stalls(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_IN_PROGRESS)
        activities = [make_activity("a1", created_minutes_ago=15)]
        stall = detector.detect(session, activities, NOW)

        assert stall is not None
        assert stall.rule_id == STALL_RULE_NO_PROGRESS
        assert stall.reason == "No new activity for 15 min (threshold: 15 min)"
        assert stall.minutes_since_update == 15

    def test_uses_newest_activity_only(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_IN_PROGRESS)
        activities = [
            make_activity("new", created_minutes_ago=2),
            make_activity("old", created_minutes_ago=90),
        ]
        assert detector.detect(session, activities, NOW) is None

    def test_no_activities_no_stall(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_IN_PROGRESS, updated_minutes_ago=120)
        assert detector.detect(session, [], NOW) is None

    def test_other_states_ignored(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_PLANNING)
        activities = [make_activity("a1", created_minutes_ago=120)]
        assert detector.detect(session, activities, NOW) is None


class TestQueueTimeout:
    """Tests for sessions that never left the queue."""

    def test_below_threshold_no_stall(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_QUEUED, created_minutes_ago=9)
        assert detector.detect(session, [], NOW) is None

    def test_at_threshold_stalls(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_QUEUED, created_minutes_ago=10)
        stall = detector.detect(session, [], NOW)

        assert stall is not None
        assert stall.rule_id == STALL_RULE_QUEUE_TIMEOUT

    def test_queued_fifteen_minutes(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_QUEUED, created_minutes_ago=15)
        stall = detector.detect(session, [], NOW)

        assert stall is not None
        assert stall.rule_id == STALL_RULE_QUEUE_TIMEOUT
        assert stall.reason == "Session stuck in queue for 15 min (threshold: 10 min)"

    def test_measures_from_created_at(self, detector: StallDetector):
        session = make_session(
            state=SESSION_STATE_QUEUED, created_minutes_ago=5, updated_minutes_ago=500
        )
        assert detector.detect(session, [], NOW) is None


class TestThresholdBoundaries:
    """Every time-based rule flips exactly at its configured threshold."""

    @pytest.mark.parametrize(
        "state,field,threshold,rule_id",
        [
            (SESSION_STATE_AWAITING_PLAN_APPROVAL, "updated", 30, STALL_RULE_PLAN_APPROVAL_TIMEOUT),
            (SESSION_STATE_AWAITING_USER_FEEDBACK, "updated", 30, STALL_RULE_FEEDBACK_TIMEOUT),
            (SESSION_STATE_QUEUED, "created", 10, STALL_RULE_QUEUE_TIMEOUT),
        ],
    )
    def test_boundary(self, detector: StallDetector, state, field, threshold, rule_id):
        def session_aged(minutes):
            if field == "updated":
                return make_session(state=state, updated_minutes_ago=minutes)
            return make_session(state=state, created_minutes_ago=minutes)

        assert detector.detect(session_aged(threshold - 1), [], NOW) is None
        stall = detector.detect(session_aged(threshold), [], NOW)
        assert stall is not None
        assert stall.rule_id == rule_id

    def test_custom_thresholds(self):
        detector = StallDetector(StallConfig(queue_timeout_min=5, plan_approval_timeout_min=2.5))

        queued = make_session(state=SESSION_STATE_QUEUED, created_minutes_ago=5)
        stall = detector.detect(queued, [], NOW)
        assert stall is not None
        assert stall.reason == "Session stuck in queue for 5 min (threshold: 5 min)"

        waiting = make_session(state=SESSION_STATE_AWAITING_PLAN_APPROVAL, updated_minutes_ago=3)
        stall = detector.detect(waiting, [], NOW)
        assert stall is not None
        assert "(threshold: 2.5 min)" in stall.reason


# =============================================================================
# Repeated errors
# =============================================================================


class TestRepeatedErrors:
    """Tests for the consecutive failing-command rule."""

    @pytest.mark.parametrize(
        "state",
        [
            SESSION_STATE_QUEUED,
            SESSION_STATE_PLANNING,
            SESSION_STATE_IN_PROGRESS,
            SESSION_STATE_PAUSED,
            SESSION_STATE_COMPLETED,
        ],
    )
    def test_three_failures_stall_in_any_state(self, detector: StallDetector, state):
        session = make_session(state=state, updated_minutes_ago=4)
        stall = detector.detect(session, _failing_window(3), NOW)

        assert stall is not None
        assert stall.rule_id == STALL_RULE_REPEATED_ERRORS
        assert stall.reason == "Last 3 activities had bash errors"
        assert stall.minutes_since_update == 4

    def test_fewer_activities_than_required(self, detector: StallDetector):
        session = make_session()
        assert detector.detect(session, _failing_window(2), NOW) is None

    def test_one_success_in_window_breaks_streak(self, detector: StallDetector):
        session = make_session()
        activities = _failing_window(3)
        activities[1] = make_bash_activity("ok", created_minutes_ago=2, exit_code=0)
        assert detector.detect(session, activities, NOW) is None

    def test_only_newest_window_counts(self, detector: StallDetector):
        session = make_session()
        activities = [make_activity("msg", created_minutes_ago=1), *_failing_window(3)]
        assert detector.detect(session, activities, NOW) is None

    def test_exit_code_without_bash_output_is_not_failure(self, detector: StallDetector):
        session = make_session()
        activities = [
            make_activity(f"m{i}", created_minutes_ago=i, progress_description="Exit Code: 1")
            for i in range(3)
        ]
        assert detector.detect(session, activities, NOW) is None

    def test_any_nonzero_exit_code_counts(self, detector: StallDetector):
        session = make_session()
        activities = [
            make_bash_activity(f"b{i}", created_minutes_ago=i, exit_code=code)
            for i, code in enumerate((2, 127, 1))
        ]
        stall = detector.detect(session, activities, NOW)
        assert stall is not None
        assert stall.rule_id == STALL_RULE_REPEATED_ERRORS

    def test_custom_consecutive_count(self):
        detector = StallDetector(StallConfig(consecutive_errors=1))
        stall = detector.detect(make_session(), _failing_window(1), NOW)

        assert stall is not None
        assert stall.reason == "Last 1 activities had bash errors"

    def test_missing_updated_at_reports_zero_minutes(self, detector: StallDetector):
        session = make_session()
        session.updated_at = None
        stall = detector.detect(session, _failing_window(3), NOW)

        assert stall is not None
        assert stall.minutes_since_update == 0


# =============================================================================
# Cascade
# =============================================================================


class TestCascade:
    """Tests for rule ordering."""

    def test_rule_order(self, detector: StallDetector):
        assert detector.rule_ids == [
            STALL_RULE_PLAN_APPROVAL_TIMEOUT,
            STALL_RULE_FEEDBACK_TIMEOUT,
            STALL_RULE_NO_PROGRESS,
            STALL_RULE_QUEUE_TIMEOUT,
            STALL_RULE_REPEATED_ERRORS,
        ]

    def test_plan_approval_wins_over_repeated_errors(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_AWAITING_PLAN_APPROVAL, updated_minutes_ago=45)
        stall = detector.detect(session, _failing_window(3), NOW)

        assert stall is not None
        assert stall.rule_id == STALL_RULE_PLAN_APPROVAL_TIMEOUT

    def test_no_progress_wins_over_repeated_errors(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_IN_PROGRESS)
        activities = [
            make_bash_activity(f"b{i}", created_minutes_ago=20 + i) for i in range(3)
        ]
        stall = detector.detect(session, activities, NOW)

        assert stall is not None
        assert stall.rule_id == STALL_RULE_NO_PROGRESS

    def test_healthy_session(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_IN_PROGRESS)
        activities = [make_activity("a1", created_minutes_ago=1)]
        assert detector.detect(session, activities, NOW) is None

    def test_to_dict(self, detector: StallDetector):
        session = make_session(state=SESSION_STATE_QUEUED, created_minutes_ago=12)
        stall = detector.detect(session, [], NOW)

        assert stall is not None
        data = stall.to_dict()
        assert data["rule_id"] == STALL_RULE_QUEUE_TIMEOUT
        assert data["detected_at"] == NOW.isoformat()
        assert data["minutes_since_update"] == 12


class TestRoundMinutes:
    """Tests for half-up minute rounding."""

    @pytest.mark.parametrize(
        "minutes,expected", [(0.0, 0), (14.49, 14), (14.5, 15), (29.999, 30), (90.2, 90)]
    )
    def test_round_minutes(self, minutes, expected):
        assert round_minutes(minutes) == expected
