"""Tool operations behind the MCP server.

Every operation takes plain keyword arguments, validates them with the
input schemas and returns a JSON-serializable dict. Invalid input, missing
records and collaborator failures come back as ``{"error": ...}`` rather
than raising, so a bad call never takes the server down.
"""

import functools
import logging
import sqlite3
from collections import Counter
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

import httpx

from jules_command.constants import ACTIVITY_TYPE_BASH_OUTPUT
from jules_command.context import ServiceContext
from jules_command.exceptions import JulesCommandError
from jules_command.store.models import PrReview
from jules_command.tools.schemas import (
    CheckAutoMergeInput,
    GetActivitiesInput,
    GetBashOutputsInput,
    GetSessionInput,
    ListSessionsInput,
    MergeInput,
    PollInput,
    QueryInput,
    ReviewStatusInput,
    UpdateReviewInput,
)
from jules_command.utils.pr_url import parse_pr_url
from jules_command.utils.timestamps import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., dict[str, Any]])

# Pydantic's ValidationError is a ValueError
TOOL_ERRORS = (ValueError, JulesCommandError, sqlite3.Error, httpx.HTTPError)


def tool_errors(func: F) -> F:
    """Turn expected failures into an error result."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> dict[str, Any]:
        try:
            return func(*args, **kwargs)
        except TOOL_ERRORS as e:
            logger.warning(f"Tool {func.__name__} failed: {e}")
            return {"error": str(e)}

    return wrapper  # type: ignore[return-value]


class ToolOperations:
    """Implements the jules_* and pr_* tools over a ServiceContext."""

    def __init__(self, context: ServiceContext, clock: Callable[[], datetime] | None = None):
        self.context = context
        self._clock = clock or utc_now

    def handle_tool_call(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Dispatch a tool call by name."""
        handlers: dict[str, Callable[..., dict[str, Any]]] = {
            "jules_poll": self.jules_poll,
            "jules_detect_stalls": self.jules_detect_stalls,
            "jules_status": self.jules_status,
            "jules_list_sessions": self.jules_list_sessions,
            "jules_get_session": self.jules_get_session,
            "jules_get_activities": self.jules_get_activities,
            "jules_get_bash_outputs": self.jules_get_bash_outputs,
            "jules_query": self.jules_query,
            "pr_review_status": self.pr_review_status,
            "pr_update_review": self.pr_update_review,
            "pr_check_auto_merge": self.pr_check_auto_merge,
            "pr_merge": self.pr_merge,
        }
        handler = handlers.get(tool_name)
        if handler is None:
            return {"error": f"Unknown tool: {tool_name}"}
        try:
            return handler(**arguments)
        except TypeError as e:
            return {"error": f"Invalid arguments for {tool_name}: {e}"}

    # ==========================================================================
    # Session tools
    # ==========================================================================

    @tool_errors
    def jules_poll(
        self, session_ids: list[str] | None = None, sync_prs: bool = True
    ) -> dict[str, Any]:
        params = PollInput(session_ids=session_ids, sync_prs=sync_prs)
        manager = self.context.poll_manager(sync_prs=params.sync_prs)
        if params.session_ids:
            summary = manager.poll_sessions(params.session_ids)
        else:
            summary = manager.poll_all_active()
        return summary.to_dict()

    @tool_errors
    def jules_detect_stalls(self) -> dict[str, Any]:
        """Evaluate stall rules over active sessions without recording anything."""
        now = self._clock()
        window = self.context.config.polling.activity_window
        stalls = []
        for session in self.context.store.get_active_sessions():
            activities = self.context.store.get_recent_activities(session.id, window)
            stall = self.context.stall_detector.detect(session, activities, now)
            if stall:
                stalls.append(stall.to_dict())
        return {"stalls": stalls, "count": len(stalls)}

    @tool_errors
    def jules_status(self) -> dict[str, Any]:
        sessions = self.context.store.get_active_sessions()
        return {
            "active": len(sessions),
            "by_state": dict(Counter(s.state for s in sessions)),
            "sessions": [
                {
                    "id": s.id,
                    "title": s.title,
                    "state": s.state,
                    "repo": s.repo,
                    "pr_url": s.pr_url,
                    "stall_reason": s.stall_reason,
                    "stall_detected_at": format_timestamp(s.stall_detected_at),
                    "last_polled_at": format_timestamp(s.last_polled_at),
                }
                for s in sessions
            ],
            "auto_merge_ready": [r.pr_url for r in self.context.store.get_auto_merge_eligible()],
        }

    # ==========================================================================
    # Read-only tools
    # ==========================================================================

    @tool_errors
    def jules_list_sessions(
        self, state: str | None = None, repo: str | None = None, limit: int = 50
    ) -> dict[str, Any]:
        params = ListSessionsInput.model_validate({"state": state, "repo": repo, "limit": limit})
        sessions = self.context.store.list_sessions(
            state=params.state, repo=params.repo, limit=params.limit
        )
        return {"sessions": [s.to_dict() for s in sessions], "count": len(sessions)}

    @tool_errors
    def jules_get_session(self, session_id: str, refresh: bool = False) -> dict[str, Any]:
        """Get one session with its poll cursor and PR records.

        With ``refresh`` and a configured Jules client, the stored snapshot
        and activity feed are updated from the API first.
        """
        params = GetSessionInput(session_id=session_id, refresh=refresh)
        store = self.context.store
        if params.refresh and self.context.jules is not None:
            store.upsert_session(self.context.jules.get_session(params.session_id))
            store.add_activities(self.context.jules.list_activities(params.session_id))

        session = store.get_session(params.session_id)
        if session is None:
            return {"error": f"Session not found: {params.session_id}"}
        cursor = store.get_poll_cursor(params.session_id)
        return {
            **session.to_dict(),
            "poll_cursor": cursor.to_dict() if cursor else None,
            "pr_reviews": [r.to_dict() for r in store.get_pr_reviews_for_session(session.id)],
        }

    @tool_errors
    def jules_get_activities(
        self,
        session_id: str,
        activity_type: str | None = None,
        limit: int = 50,
        since: str | None = None,
    ) -> dict[str, Any]:
        """List stored activities for a session.

        Without ``since`` the newest activities come first. With ``since``
        only activities created after it are returned, oldest first.
        """
        params = GetActivitiesInput.model_validate(
            {
                "session_id": session_id,
                "activity_type": activity_type,
                "limit": limit,
                "since": since,
            }
        )
        store = self.context.store
        since_at = parse_timestamp(params.since)
        if since_at is not None:
            activities = [
                a
                for a in store.get_activities_since(params.session_id, since_at)
                if params.activity_type is None or a.activity_type == params.activity_type
            ][: params.limit]
        elif params.activity_type:
            activities = store.get_activities_by_type(
                params.session_id, params.activity_type, params.limit
            )
        else:
            activities = store.get_recent_activities(params.session_id, params.limit)
        return {
            "session_id": params.session_id,
            "activities": [a.to_dict() for a in activities],
            "count": len(activities),
        }

    @tool_errors
    def jules_get_bash_outputs(self, session_id: str, limit: int = 50) -> dict[str, Any]:
        params = GetBashOutputsInput(session_id=session_id, limit=limit)
        activities = self.context.store.get_activities_by_type(
            params.session_id, ACTIVITY_TYPE_BASH_OUTPUT, params.limit
        )
        outputs = [
            {
                "id": a.id,
                "title": a.progress_title,
                "output": a.progress_description,
                "exit_code": a.exit_code,
                "failed": a.is_failed_command(),
                "created_at": format_timestamp(a.created_at),
            }
            for a in activities
        ]
        return {
            "session_id": params.session_id,
            "outputs": outputs,
            "failed": sum(1 for o in outputs if o["failed"]),
        }

    @tool_errors
    def jules_query(
        self,
        table: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        limit: int = 50,
    ) -> dict[str, Any]:
        """Read rows from the sessions, activities or pr_reviews table."""
        params = QueryInput.model_validate(
            {"table": table, "where": where, "order_by": order_by, "limit": limit}
        )
        rows = self.context.store.run_query(
            params.table, where=params.where, order_by=params.order_by, limit=params.limit
        )
        return {"table": params.table, "rows": rows, "count": len(rows)}

    # ==========================================================================
    # PR tools
    # ==========================================================================

    @tool_errors
    def pr_review_status(
        self, pr_url: str | None = None, session_id: str | None = None
    ) -> dict[str, Any]:
        params = ReviewStatusInput(pr_url=pr_url, session_id=session_id)
        if params.pr_url:
            review = self.context.store.get_pr_review(params.pr_url)
            if review is None:
                return {"error": f"PR not found: {params.pr_url}"}
            return review.to_dict()
        assert params.session_id is not None
        reviews = self.context.store.get_pr_reviews_for_session(params.session_id)
        return {"session_id": params.session_id, "reviews": [r.to_dict() for r in reviews]}

    @tool_errors
    def pr_update_review(
        self, pr_url: str, status: str | None = None, notes: str | None = None
    ) -> dict[str, Any]:
        params = UpdateReviewInput.model_validate(
            {"pr_url": pr_url, "status": status, "notes": notes}
        )
        review = self.context.store.update_review(
            params.pr_url, status=params.status, notes=params.notes
        )
        if review is None:
            return {"error": f"PR not found: {params.pr_url}"}
        return review.to_dict()

    def _load_review(self, pr_url: str, refresh: bool) -> PrReview | None:
        """Get a PR record, syncing it from GitHub first when possible."""
        if refresh and self.context.pr_sync is not None:
            existing = self.context.store.get_pr_review(pr_url)
            return self.context.pr_sync.sync_pr(
                pr_url, session_id=existing.session_id if existing else None, now=self._clock()
            )
        return self.context.store.get_pr_review(pr_url)

    def _evaluate(self, review: PrReview, now: datetime) -> dict[str, Any]:
        result = self.context.evaluator.evaluate(review, now)
        self.context.store.record_auto_merge_decision(
            review.pr_url, result.eligible, result.reasons, now
        )
        return {"pr_url": review.pr_url, **result.to_dict()}

    @tool_errors
    def pr_check_auto_merge(self, pr_url: str | None = None) -> dict[str, Any]:
        params = CheckAutoMergeInput(pr_url=pr_url)
        now = self._clock()
        if params.pr_url:
            review = self._load_review(params.pr_url, refresh=True)
            if review is None:
                return {"error": f"PR not found: {params.pr_url}"}
            return self._evaluate(review, now)

        results = [
            self._evaluate(review, now) for review in self.context.store.get_pending_pr_reviews()
        ]
        return {
            "results": results,
            "eligible": sum(1 for r in results if r["eligible"]),
            "total": len(results),
        }

    @tool_errors
    def pr_merge(
        self,
        pr_url: str,
        method: str = "merge",
        force: bool = False,
        confirm: bool = False,
        expected_head_sha: str | None = None,
    ) -> dict[str, Any]:
        params = MergeInput.model_validate(
            {
                "pr_url": pr_url,
                "method": method,
                "force": force,
                "confirm": confirm,
                "expected_head_sha": expected_head_sha,
            }
        )
        if not params.confirm:
            return {"error": "Merge not confirmed: pass confirm=true to merge", "merged": False}
        github = self.context.github
        if github is None:
            return {"error": "GitHub token not configured", "merged": False}

        review = self._load_review(params.pr_url, refresh=True)
        if review is None:
            return {"error": f"PR not found: {params.pr_url}", "merged": False}
        if params.expected_head_sha and review.head_sha != params.expected_head_sha:
            return {
                "error": f"PR head is {review.head_sha}, expected {params.expected_head_sha}",
                "merged": False,
            }

        now = self._clock()
        if not params.force:
            evaluation = self._evaluate(review, now)
            if not evaluation["eligible"]:
                return {
                    "error": "PR is not eligible for auto-merge",
                    "merged": False,
                    "reasons": evaluation["reasons"],
                }
        else:
            logger.warning(f"Force-merging {params.pr_url} without the auto-merge gate")

        parsed = parse_pr_url(params.pr_url)
        response = github.merge_pull_request(
            parsed.owner,
            parsed.repo,
            parsed.number,
            method=params.method,
            sha=params.expected_head_sha or review.head_sha,
        )
        if not response.get("merged"):
            message = response.get("message") or "GitHub did not merge the PR"
            return {"error": message, "merged": False}

        self.context.store.mark_merged(params.pr_url, now)
        logger.info(f"Merged {params.pr_url} via {params.method}")
        return {
            "merged": True,
            "pr_url": params.pr_url,
            "method": params.method,
            "sha": response.get("sha"),
            "forced": params.force,
        }
