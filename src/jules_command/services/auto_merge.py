"""Auto-merge eligibility gate.

Every check runs and every failing reason is collected, in a fixed order:
complexity, lines, files, critical files, CI, age, review. A PR is
eligible exactly when no reason was collected.

Unknown metrics are not treated uniformly. A missing complexity score,
line count or file count skips that check, while a missing creation time
blocks the merge because the age cannot be verified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from jules_command.constants import (
    CI_STATUS_SUCCESS,
    CI_STATUS_UNKNOWN,
    REVIEW_STATUS_CHANGES_REQUESTED,
)
from jules_command.utils.numbers import format_number
from jules_command.utils.timestamps import hours_between, utc_now

if TYPE_CHECKING:
    from jules_command.config import AutoMergeConfig
    from jules_command.store.models import PrReview

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AutoMergeResult:
    """Outcome of the auto-merge gate."""

    reasons: list[str] = field(default_factory=list)

    @property
    def eligible(self) -> bool:
        return not self.reasons

    def to_dict(self) -> dict[str, Any]:
        return {"eligible": self.eligible, "reasons": list(self.reasons)}


class AutoMergeEvaluator:
    """Decides whether a PR may be merged without human action."""

    def __init__(self, config: AutoMergeConfig) -> None:
        self._config = config

    def evaluate(self, pr: PrReview, now: datetime | None = None) -> AutoMergeResult:
        """Run every check against a PR record.

        Args:
            pr: PR record with its synced metrics.
            now: Evaluation time (defaults to the current UTC time).

        Returns:
            AutoMergeResult with reasons in reporting order.
        """
        now = now or utc_now()
        cfg = self._config
        reasons: list[str] = []

        if pr.complexity_score is not None and pr.complexity_score > cfg.max_complexity:
            reasons.append(
                f"complexity_score {format_number(pr.complexity_score)} "
                f"exceeds threshold {format_number(cfg.max_complexity)}"
            )

        if pr.lines_changed is not None and pr.lines_changed > cfg.max_lines:
            reasons.append(
                f"lines_changed {pr.lines_changed} exceeds max {format_number(cfg.max_lines)}"
            )

        if pr.files_changed is not None and pr.files_changed > cfg.max_files:
            reasons.append(
                f"files_changed {pr.files_changed} exceeds max {format_number(cfg.max_files)}"
            )

        if pr.critical_files_touched:
            reasons.append("critical files touched")

        if pr.ci_status != CI_STATUS_SUCCESS:
            ci_status = pr.ci_status or CI_STATUS_UNKNOWN
            reasons.append(f"ci_status is '{ci_status}' (must be '{CI_STATUS_SUCCESS}')")

        if pr.pr_created_at is None:
            reasons.append("pr_created_at unknown, cannot verify age")
        else:
            age_hours = hours_between(pr.pr_created_at, now)
            if age_hours < cfg.min_age_hours:
                reasons.append(
                    f"pr_age {age_hours:.1f}h below minimum {format_number(cfg.min_age_hours)}h"
                )

        if pr.review_status == REVIEW_STATUS_CHANGES_REQUESTED:
            reasons.append(f"review status is {REVIEW_STATUS_CHANGES_REQUESTED}")

        result = AutoMergeResult(reasons=reasons)
        logger.debug(
            f"Auto-merge gate for {pr.pr_url}: eligible={result.eligible} "
            f"({len(reasons)} blocking reasons)"
        )
        return result
