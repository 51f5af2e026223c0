"""Input schemas for the MCP tools."""

from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, Field, model_validator

from jules_command.constants import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT
from jules_command.exceptions import PrUrlError
from jules_command.utils.pr_url import parse_pr_url
from jules_command.utils.timestamps import parse_timestamp

ReviewStatus = Literal["pending", "approved", "changes_requested", "closed"]
MergeMethod = Literal["merge", "squash", "rebase"]
SessionState = Literal[
    "queued",
    "planning",
    "awaiting_plan_approval",
    "awaiting_user_feedback",
    "in_progress",
    "paused",
    "failed",
    "completed",
]
ActivityType = Literal["message", "plan", "bash_output", "file_change", "error"]
QueryTable = Literal["sessions", "activities", "pr_reviews"]


def _check_pr_url(value: str) -> str:
    try:
        parse_pr_url(value)
    except PrUrlError as e:
        raise ValueError(f"Invalid GitHub PR URL: {value}") from e
    return value


PrUrl = Annotated[str, AfterValidator(_check_pr_url)]


def _check_timestamp(value: str) -> str:
    if parse_timestamp(value) is None:
        raise ValueError(f"Invalid ISO-8601 timestamp: {value}")
    return value


Timestamp = Annotated[str, AfterValidator(_check_timestamp)]
Limit = Annotated[int, Field(ge=1, le=MAX_LIST_LIMIT)]
SessionId = Annotated[str, Field(min_length=1)]


class PollInput(BaseModel):
    """Input for jules_poll."""

    session_ids: list[str] | None = Field(
        default=None, description="Sessions to poll. All active sessions when omitted."
    )
    sync_prs: bool = Field(default=True, description="Sync PR metadata for polled sessions")


class ListSessionsInput(BaseModel):
    """Input for jules_list_sessions."""

    state: SessionState | None = Field(default=None, description="Only sessions in this state")
    repo: str | None = Field(default=None, description="Only sessions for this owner/name")
    limit: Limit = Field(default=DEFAULT_LIST_LIMIT, description="Maximum sessions to return")


class GetSessionInput(BaseModel):
    """Input for jules_get_session."""

    session_id: SessionId = Field(..., description="Jules session ID")
    refresh: bool = Field(default=False, description="Refresh from the Jules API first")


class GetActivitiesInput(BaseModel):
    """Input for jules_get_activities."""

    session_id: SessionId = Field(..., description="Jules session ID")
    activity_type: ActivityType | None = Field(default=None, description="Only this type")
    limit: Limit = Field(default=DEFAULT_LIST_LIMIT, description="Maximum activities to return")
    since: Timestamp | None = Field(
        default=None, description="Only activities created after this ISO-8601 time"
    )


class GetBashOutputsInput(BaseModel):
    """Input for jules_get_bash_outputs."""

    session_id: SessionId = Field(..., description="Jules session ID")
    limit: Limit = Field(default=DEFAULT_LIST_LIMIT, description="Maximum outputs to return")


class QueryInput(BaseModel):
    """Input for jules_query."""

    table: QueryTable = Field(..., description="Table to read")
    where: dict[str, str | int | float | bool | None] | None = Field(
        default=None, description="Column -> value equality filters"
    )
    order_by: str | None = Field(default=None, description="'<column> [asc|desc]'")
    limit: Limit = Field(default=DEFAULT_LIST_LIMIT, description="Maximum rows to return")


class ReviewStatusInput(BaseModel):
    """Input for pr_review_status. One of pr_url or session_id is required."""

    pr_url: PrUrl | None = Field(default=None, description="GitHub PR URL")
    session_id: str | None = Field(default=None, description="Session that produced the PR")

    @model_validator(mode="after")
    def _require_target(self) -> "ReviewStatusInput":
        if not self.pr_url and not self.session_id:
            raise ValueError("Either pr_url or session_id is required")
        return self


class UpdateReviewInput(BaseModel):
    """Input for pr_update_review."""

    pr_url: PrUrl = Field(..., description="GitHub PR URL")
    status: ReviewStatus | None = Field(default=None, description="New review status")
    notes: str | None = Field(default=None, max_length=5000, description="Review notes")

    @model_validator(mode="after")
    def _require_change(self) -> "UpdateReviewInput":
        if self.status is None and self.notes is None:
            raise ValueError("Provide status and/or notes")
        return self


class CheckAutoMergeInput(BaseModel):
    """Input for pr_check_auto_merge."""

    pr_url: PrUrl | None = Field(
        default=None, description="GitHub PR URL. All pending PRs when omitted."
    )


class MergeInput(BaseModel):
    """Input for pr_merge."""

    pr_url: PrUrl = Field(..., description="GitHub PR URL")
    method: MergeMethod = Field(default="merge", description="GitHub merge method")
    force: bool = Field(default=False, description="Merge even if the auto-merge gate fails")
    confirm: bool = Field(default=False, description="Must be true to perform the merge")
    expected_head_sha: str | None = Field(
        default=None, description="Refuse to merge if the PR head is not this commit"
    )
