"""Shared constants and factories for jules-command unit tests."""

from datetime import UTC, datetime, timedelta
from typing import Any

from jules_command.constants import (
    ACTIVITY_TYPE_BASH_OUTPUT,
    ACTIVITY_TYPE_MESSAGE,
    CI_STATUS_SUCCESS,
    REVIEW_STATUS_APPROVED,
    SESSION_STATE_IN_PROGRESS,
)
from jules_command.store.models import Activity, PrReview, Session

# Fixed evaluation time
NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)

# Sessions
TEST_SESSION_ID = "sess-001"
TEST_SESSION_ID_TWO = "sess-002"
TEST_SESSION_ID_THREE = "sess-003"
TEST_SESSION_TITLE = "Add retry to webhook handler"
TEST_REPO = "acme/widgets"

# Pull requests
TEST_PR_URL = "https://github.com/acme/widgets/pull/42"
TEST_PR_URL_TWO = "https://github.com/acme/widgets/pull/43"
TEST_PR_NUMBER = 42
TEST_HEAD_SHA = "abc123def456"

# API
TEST_JULES_API_KEY = "jules-test-key"
TEST_GITHUB_TOKEN = "ghp_test_token"
TEST_JULES_BASE_URL = "https://jules.test/v1alpha"
TEST_GITHUB_BASE_URL = "https://github.test"


def minutes_ago(minutes: float, now: datetime = NOW) -> datetime:
    return now - timedelta(minutes=minutes)


def hours_ago(hours: float, now: datetime = NOW) -> datetime:
    return now - timedelta(hours=hours)


def make_session(
    session_id: str = TEST_SESSION_ID,
    state: str = SESSION_STATE_IN_PROGRESS,
    created_minutes_ago: float = 0,
    updated_minutes_ago: float = 0,
    **kwargs: Any,
) -> Session:
    """Build a session whose timestamps are relative to NOW."""
    kwargs.setdefault("title", TEST_SESSION_TITLE)
    kwargs.setdefault("repo", TEST_REPO)
    return Session(
        id=session_id,
        state=state,
        created_at=minutes_ago(created_minutes_ago),
        updated_at=minutes_ago(updated_minutes_ago),
        **kwargs,
    )


def make_activity(
    activity_id: str,
    session_id: str = TEST_SESSION_ID,
    created_minutes_ago: float = 0,
    **kwargs: Any,
) -> Activity:
    kwargs.setdefault("activity_type", ACTIVITY_TYPE_MESSAGE)
    return Activity(
        id=activity_id,
        session_id=session_id,
        created_at=minutes_ago(created_minutes_ago),
        **kwargs,
    )


def make_bash_activity(
    activity_id: str,
    session_id: str = TEST_SESSION_ID,
    created_minutes_ago: float = 0,
    exit_code: int = 1,
) -> Activity:
    """Build a command-output activity that exited with ``exit_code``."""
    return make_activity(
        activity_id,
        session_id,
        created_minutes_ago,
        activity_type=ACTIVITY_TYPE_BASH_OUTPUT,
        has_bash_output=True,
        progress_title="Ran tests",
        progress_description=f"pytest -q\nExit Code: {exit_code}",
    )


def make_pr_review(**overrides: Any) -> PrReview:
    """Build a PR record that passes every auto-merge check by default."""
    values: dict[str, Any] = {
        "pr_url": TEST_PR_URL,
        "pr_number": TEST_PR_NUMBER,
        "repo": TEST_REPO,
        "session_id": TEST_SESSION_ID,
        "pr_title": "Add retry",
        "pr_state": "open",
        "review_status": REVIEW_STATUS_APPROVED,
        "complexity_score": 0.2,
        "lines_changed": 100,
        "files_changed": 3,
        "test_files_changed": 1,
        "critical_files_touched": False,
        "ci_status": CI_STATUS_SUCCESS,
        "head_sha": TEST_HEAD_SHA,
        "pr_created_at": hours_ago(3),
    }
    values.update(overrides)
    return PrReview(**values)
