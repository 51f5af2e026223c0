"""Data models for the command store.

Dataclasses representing Jules sessions, their activities, per-session poll
cursors and tracked pull request reviews.
"""

import json
import re
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from jules_command.constants import (
    ACTIVITY_TYPE_MESSAGE,
    EXIT_CODE_PATTERN,
    ORIGINATOR_AGENT,
    POLL_TYPE_SESSION,
    REVIEW_STATUS_PENDING,
    SESSION_STATE_QUEUED,
    TERMINAL_SESSION_STATES,
)
from jules_command.utils.timestamps import format_timestamp, parse_timestamp, utc_now

_EXIT_CODE_RE = re.compile(EXIT_CODE_PATTERN)


@dataclass
class Session:
    """A delegated Jules coding session."""

    id: str
    title: str | None = None
    prompt: str = ""
    repo: str | None = None  # owner/name, None for repoless sessions
    source_branch: str | None = None
    state: str = SESSION_STATE_QUEUED
    jules_url: str | None = None
    pr_url: str | None = None
    pr_title: str | None = None
    error_reason: str | None = None
    stall_detected_at: datetime | None = None
    stall_reason: str | None = None
    created_at: datetime | None = field(default_factory=utc_now)
    updated_at: datetime | None = field(default_factory=utc_now)
    completed_at: datetime | None = None
    last_polled_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_SESSION_STATES

    def to_row(self) -> dict[str, Any]:
        """Convert to database row."""
        return {
            "id": self.id,
            "title": self.title,
            "prompt": self.prompt,
            "repo": self.repo,
            "source_branch": self.source_branch,
            "state": self.state,
            "jules_url": self.jules_url,
            "pr_url": self.pr_url,
            "pr_title": self.pr_title,
            "error_reason": self.error_reason,
            "stall_detected_at": format_timestamp(self.stall_detected_at),
            "stall_reason": self.stall_reason,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
            "completed_at": format_timestamp(self.completed_at),
            "last_polled_at": format_timestamp(self.last_polled_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Session":
        """Create from database row."""
        return cls(
            id=row["id"],
            title=row["title"],
            prompt=row["prompt"] or "",
            repo=row["repo"],
            source_branch=row["source_branch"],
            state=row["state"],
            jules_url=row["jules_url"],
            pr_url=row["pr_url"],
            pr_title=row["pr_title"],
            error_reason=row["error_reason"],
            stall_detected_at=parse_timestamp(row["stall_detected_at"]),
            stall_reason=row["stall_reason"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
            completed_at=parse_timestamp(row["completed_at"]),
            last_polled_at=parse_timestamp(row["last_polled_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation for tool output."""
        return self.to_row()


@dataclass
class Activity:
    """A timestamped event emitted while a session runs."""

    id: str
    session_id: str
    activity_type: str = ACTIVITY_TYPE_MESSAGE
    originator: str = ORIGINATOR_AGENT
    message: str | None = None
    progress_title: str | None = None
    progress_description: str | None = None
    has_bash_output: bool = False
    has_changeset: bool = False
    files_changed: list[str] = field(default_factory=list)
    lines_added: int = 0
    lines_deleted: int = 0
    created_at: datetime | None = field(default_factory=utc_now)

    # Maximum stored length for free-text fields
    MAX_TEXT_LENGTH = 10000

    @property
    def exit_code(self) -> int | None:
        """Exit code recorded in the progress description, if any."""
        if not self.progress_description:
            return None
        match = _EXIT_CODE_RE.search(self.progress_description)
        return int(match.group(1)) if match else None

    def is_failed_command(self) -> bool:
        """True for command-output activities that exited non-zero."""
        if not self.has_bash_output:
            return False
        code = self.exit_code
        return code is not None and code != 0

    def to_row(self) -> dict[str, Any]:
        """Convert to database row."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "activity_type": self.activity_type,
            "originator": self.originator,
            "message": self.message[: self.MAX_TEXT_LENGTH] if self.message else None,
            "progress_title": self.progress_title,
            "progress_description": (
                self.progress_description[: self.MAX_TEXT_LENGTH]
                if self.progress_description
                else None
            ),
            "has_bash_output": self.has_bash_output,
            "has_changeset": self.has_changeset,
            "files_changed": json.dumps(self.files_changed) if self.files_changed else None,
            "lines_added": self.lines_added,
            "lines_deleted": self.lines_deleted,
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Activity":
        """Create from database row."""
        return cls(
            id=row["id"],
            session_id=row["session_id"],
            activity_type=row["activity_type"],
            originator=row["originator"],
            message=row["message"],
            progress_title=row["progress_title"],
            progress_description=row["progress_description"],
            has_bash_output=bool(row["has_bash_output"]),
            has_changeset=bool(row["has_changeset"]),
            files_changed=json.loads(row["files_changed"]) if row["files_changed"] else [],
            lines_added=row["lines_added"] or 0,
            lines_deleted=row["lines_deleted"] or 0,
            created_at=parse_timestamp(row["created_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation for tool output."""
        row = self.to_row()
        row["files_changed"] = list(self.files_changed)
        return row


@dataclass
class PollCursor:
    """Per-session poll bookkeeping."""

    id: str
    poll_type: str = POLL_TYPE_SESSION
    last_poll_at: datetime | None = None
    last_activity_seen_at: datetime | None = None
    poll_count: int = 0
    consecutive_unchanged: int = 0
    error_count: int = 0
    last_error: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "PollCursor":
        """Create from database row."""
        return cls(
            id=row["id"],
            poll_type=row["poll_type"],
            last_poll_at=parse_timestamp(row["last_poll_at"]),
            last_activity_seen_at=parse_timestamp(row["last_activity_seen_at"]),
            poll_count=row["poll_count"] or 0,
            consecutive_unchanged=row["consecutive_unchanged"] or 0,
            error_count=row["error_count"] or 0,
            last_error=row["last_error"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "poll_type": self.poll_type,
            "last_poll_at": format_timestamp(self.last_poll_at),
            "last_activity_seen_at": format_timestamp(self.last_activity_seen_at),
            "poll_count": self.poll_count,
            "consecutive_unchanged": self.consecutive_unchanged,
            "error_count": self.error_count,
            "last_error": self.last_error,
        }


@dataclass
class PrReview:
    """Locally tracked metadata and evaluation state for a pull request.

    Metric fields stay None until the PR has been synced from GitHub; the
    auto-merge gate treats each unknown value according to its own rule.
    """

    pr_url: str
    pr_number: int | None = None
    repo: str | None = None
    session_id: str | None = None
    pr_title: str | None = None
    pr_state: str | None = None
    review_status: str = REVIEW_STATUS_PENDING
    complexity_score: float | None = None
    complexity_details: dict[str, Any] | None = None
    lines_changed: int | None = None
    files_changed: int | None = None
    test_files_changed: int | None = None
    critical_files_touched: bool = False
    ci_status: str | None = None
    auto_merge_eligible: bool = False
    auto_merge_reason: str | None = None
    review_notes: str | None = None
    head_sha: str | None = None
    pr_created_at: datetime | None = None
    last_checked_at: datetime | None = None
    merged_at: datetime | None = None

    def to_row(self) -> dict[str, Any]:
        """Convert to database row."""
        return {
            "pr_url": self.pr_url,
            "pr_number": self.pr_number,
            "repo": self.repo,
            "session_id": self.session_id,
            "pr_title": self.pr_title,
            "pr_state": self.pr_state,
            "review_status": self.review_status,
            "complexity_score": self.complexity_score,
            "complexity_details": (
                json.dumps(self.complexity_details) if self.complexity_details else None
            ),
            "lines_changed": self.lines_changed,
            "files_changed": self.files_changed,
            "test_files_changed": self.test_files_changed,
            "critical_files_touched": self.critical_files_touched,
            "ci_status": self.ci_status,
            "auto_merge_eligible": self.auto_merge_eligible,
            "auto_merge_reason": self.auto_merge_reason,
            "review_notes": self.review_notes,
            "head_sha": self.head_sha,
            "pr_created_at": format_timestamp(self.pr_created_at),
            "last_checked_at": format_timestamp(self.last_checked_at),
            "merged_at": format_timestamp(self.merged_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "PrReview":
        """Create from database row."""
        return cls(
            pr_url=row["pr_url"],
            pr_number=row["pr_number"],
            repo=row["repo"],
            session_id=row["session_id"],
            pr_title=row["pr_title"],
            pr_state=row["pr_state"],
            review_status=row["review_status"] or REVIEW_STATUS_PENDING,
            complexity_score=row["complexity_score"],
            complexity_details=(
                json.loads(row["complexity_details"]) if row["complexity_details"] else None
            ),
            lines_changed=row["lines_changed"],
            files_changed=row["files_changed"],
            test_files_changed=row["test_files_changed"],
            critical_files_touched=bool(row["critical_files_touched"]),
            ci_status=row["ci_status"],
            auto_merge_eligible=bool(row["auto_merge_eligible"]),
            auto_merge_reason=row["auto_merge_reason"],
            review_notes=row["review_notes"],
            head_sha=row["head_sha"] if "head_sha" in row.keys() else None,
            pr_created_at=parse_timestamp(row["pr_created_at"]),
            last_checked_at=parse_timestamp(row["last_checked_at"]),
            merged_at=parse_timestamp(row["merged_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation for tool output."""
        row = self.to_row()
        row["complexity_details"] = self.complexity_details
        return row
