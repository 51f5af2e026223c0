"""Pull request sync: refresh a PR record's metrics from GitHub."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from jules_command.constants import (
    GITHUB_REVIEW_APPROVED,
    GITHUB_REVIEW_CHANGES_REQUESTED,
    PR_STATE_CLOSED,
    PR_STATE_MERGED,
    PR_STATE_OPEN,
    REVIEW_STATUS_APPROVED,
    REVIEW_STATUS_CHANGES_REQUESTED,
    REVIEW_STATUS_CLOSED,
    REVIEW_STATUS_PENDING,
)
from jules_command.services.complexity_scorer import ComplexityInput
from jules_command.store.models import PrReview
from jules_command.utils.pr_url import parse_pr_url
from jules_command.utils.timestamps import parse_timestamp, utc_now

if TYPE_CHECKING:
    from jules_command.clients.github import GitHubClient
    from jules_command.services.complexity_scorer import ComplexityScorer
    from jules_command.store.core import CommandStore

logger = logging.getLogger(__name__)

# Review states that replace a reviewer's earlier verdict
_VERDICT_STATES = (GITHUB_REVIEW_APPROVED, GITHUB_REVIEW_CHANGES_REQUESTED, "DISMISSED")


def derive_pr_state(pull: dict[str, Any]) -> str:
    if pull.get("merged") or pull.get("merged_at"):
        return PR_STATE_MERGED
    return PR_STATE_CLOSED if pull.get("state") == PR_STATE_CLOSED else PR_STATE_OPEN


def derive_review_status(
    pr_state: str, reviews: Sequence[dict[str, Any]], current: str = REVIEW_STATUS_PENDING
) -> str:
    """Collapse GitHub reviews into a single review status.

    Only each reviewer's latest verdict counts. Any outstanding change request
    wins over approvals; with neither, the current status is kept.
    """
    if pr_state in (PR_STATE_CLOSED, PR_STATE_MERGED):
        return REVIEW_STATUS_CLOSED

    latest: dict[str, str] = {}
    for review in reviews:
        state = review.get("state")
        if state not in _VERDICT_STATES:
            continue
        reviewer = (review.get("user") or {}).get("login") or str(review.get("id"))
        latest[reviewer] = state

    verdicts = set(latest.values())
    if GITHUB_REVIEW_CHANGES_REQUESTED in verdicts:
        return REVIEW_STATUS_CHANGES_REQUESTED
    if GITHUB_REVIEW_APPROVED in verdicts:
        return REVIEW_STATUS_APPROVED
    return current


class PrSyncService:
    """Fetches PR metadata from GitHub, scores it and stores the result."""

    def __init__(self, store: CommandStore, github: GitHubClient, scorer: ComplexityScorer):
        self.store = store
        self.github = github
        self.scorer = scorer

    def sync_pr(
        self, pr_url: str, session_id: str | None = None, now: datetime | None = None
    ) -> PrReview:
        """Refresh one PR record.

        Args:
            pr_url: GitHub pull request URL.
            session_id: Session that produced the PR, if known.
            now: Sync time recorded as ``last_checked_at``.

        Returns:
            The stored PR record.

        Raises:
            PrUrlError: If the URL is not a PR URL.
            ClientError: If a GitHub request fails.
        """
        parsed = parse_pr_url(pr_url)
        owner, repo, number = parsed.owner, parsed.repo, parsed.number

        pull = self.github.get_pull_request(owner, repo, number)
        files = self.github.list_pull_request_files(owner, repo, number)
        head_sha = (pull.get("head") or {}).get("sha")
        ci_status = self.github.get_combined_status(owner, repo, head_sha) if head_sha else None
        reviews = self.github.list_reviews(owner, repo, number)

        lines_changed = sum(
            int(f.get("additions") or 0) + int(f.get("deletions") or 0) for f in files
        )
        change = ComplexityInput.from_files((f["filename"] for f in files), lines_changed)
        complexity = self.scorer.score(change)

        existing = self.store.get_pr_review(pr_url)
        pr_state = derive_pr_state(pull)
        review_status = derive_review_status(
            pr_state, reviews, existing.review_status if existing else REVIEW_STATUS_PENDING
        )

        # A new head invalidates the last gate decision
        keep_decision = existing is not None and existing.head_sha == head_sha

        record = PrReview(
            pr_url=pr_url,
            pr_number=number,
            repo=parsed.full_name,
            session_id=session_id or (existing.session_id if existing else None),
            pr_title=pull.get("title"),
            pr_state=pr_state,
            review_status=review_status,
            complexity_score=complexity.score,
            complexity_details=complexity.to_dict(),
            lines_changed=lines_changed,
            files_changed=change.files_changed,
            test_files_changed=change.test_files_changed,
            critical_files_touched=change.critical_files_touched,
            ci_status=ci_status,
            auto_merge_eligible=existing.auto_merge_eligible if keep_decision else False,
            auto_merge_reason=existing.auto_merge_reason if keep_decision else None,
            review_notes=existing.review_notes if existing else None,
            head_sha=head_sha,
            pr_created_at=parse_timestamp(pull.get("created_at")),
            last_checked_at=now or utc_now(),
            merged_at=parse_timestamp(pull.get("merged_at")),
        )
        stored = self.store.upsert_pr_review(record)
        logger.info(
            f"Synced {pr_url}: {lines_changed} lines, {change.files_changed} files, "
            f"complexity {complexity.score} ({complexity.label}), ci={ci_status}"
        )
        return stored
