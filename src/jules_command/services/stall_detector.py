"""Stall detection: an ordered rule cascade over a session snapshot.

Rules are evaluated top to bottom and the first matching rule wins. Rules
are never combined or scored jointly.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from jules_command.constants import (
    SESSION_STATE_AWAITING_PLAN_APPROVAL,
    SESSION_STATE_AWAITING_USER_FEEDBACK,
    SESSION_STATE_IN_PROGRESS,
    SESSION_STATE_QUEUED,
    STALL_RULE_FEEDBACK_TIMEOUT,
    STALL_RULE_NO_PROGRESS,
    STALL_RULE_PLAN_APPROVAL_TIMEOUT,
    STALL_RULE_QUEUE_TIMEOUT,
    STALL_RULE_REPEATED_ERRORS,
)
from jules_command.utils.numbers import format_number
from jules_command.utils.timestamps import format_timestamp, minutes_between, utc_now

if TYPE_CHECKING:
    from jules_command.config import StallConfig
    from jules_command.store.models import Activity, Session

logger = logging.getLogger(__name__)


def round_minutes(minutes: float) -> int:
    """Round half-up to whole minutes."""
    return math.floor(minutes + 0.5)


@dataclass(frozen=True)
class Stall:
    """A detected stall for one session.

    Attributes:
        session_id: The stalled session.
        rule_id: ID of the rule that matched.
        reason: Human-readable reason embedding elapsed time and threshold.
        detected_at: Evaluation time.
        session_state: Session state at evaluation.
        session_title: Session title at evaluation.
        minutes_since_update: Elapsed minutes measured by the matching rule, rounded.
    """

    session_id: str
    rule_id: str
    reason: str
    detected_at: datetime
    session_state: str
    session_title: str | None
    minutes_since_update: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "rule_id": self.rule_id,
            "reason": self.reason,
            "detected_at": format_timestamp(self.detected_at),
            "session_state": self.session_state,
            "session_title": self.session_title,
            "minutes_since_update": self.minutes_since_update,
        }


@dataclass(frozen=True)
class _Match:
    elapsed_minutes: float
    reason: str


# Signature: (session, activities_newest_first, now) -> match or None
_RuleCheck = Callable[..., _Match | None]


class StallDetector:
    """Evaluates the stall rule cascade for a session.

    Holds only its thresholds, so one instance can be shared freely.
    """

    def __init__(self, config: StallConfig) -> None:
        self._config = config
        self._rules: list[tuple[str, _RuleCheck]] = [
            (STALL_RULE_PLAN_APPROVAL_TIMEOUT, self._plan_approval_timeout),
            (STALL_RULE_FEEDBACK_TIMEOUT, self._feedback_timeout),
            (STALL_RULE_NO_PROGRESS, self._no_progress),
            (STALL_RULE_QUEUE_TIMEOUT, self._queue_timeout),
            (STALL_RULE_REPEATED_ERRORS, self._repeated_errors),
        ]

    @property
    def rule_ids(self) -> list[str]:
        """Rule IDs in evaluation order."""
        return [rule_id for rule_id, _ in self._rules]

    def detect(
        self,
        session: Session,
        activities: Sequence[Activity],
        now: datetime | None = None,
    ) -> Stall | None:
        """Evaluate the cascade for one session.

        Args:
            session: Session snapshot.
            activities: Recent activities for the session, newest first.
            now: Evaluation time (defaults to the current UTC time).

        Returns:
            Stall for the first matching rule, or None.
        """
        now = now or utc_now()
        for rule_id, check in self._rules:
            match = check(session, activities, now)
            if match is None:
                continue
            logger.debug(f"Session {session.id} matched stall rule {rule_id}")
            return Stall(
                session_id=session.id,
                rule_id=rule_id,
                reason=match.reason,
                detected_at=now,
                session_state=session.state,
                session_title=session.title,
                minutes_since_update=round_minutes(match.elapsed_minutes),
            )
        return None

    # ==========================================================================
    # Rules
    # ==========================================================================

    def _plan_approval_timeout(
        self, session: Session, activities: Sequence[Activity], now: datetime
    ) -> _Match | None:
        if session.state != SESSION_STATE_AWAITING_PLAN_APPROVAL or session.updated_at is None:
            return None
        age = minutes_between(session.updated_at, now)
        threshold = self._config.plan_approval_timeout_min
        if age < threshold:
            return None
        return _Match(
            age,
            f"Plan awaiting approval for {round_minutes(age)} min "
            f"(threshold: {format_number(threshold)} min)",
        )

    def _feedback_timeout(
        self, session: Session, activities: Sequence[Activity], now: datetime
    ) -> _Match | None:
        if session.state != SESSION_STATE_AWAITING_USER_FEEDBACK or session.updated_at is None:
            return None
        age = minutes_between(session.updated_at, now)
        threshold = self._config.feedback_timeout_min
        if age < threshold:
            return None
        return _Match(
            age,
            f"Jules asked a question {round_minutes(age)} min ago, no response "
            f"(threshold: {format_number(threshold)} min)",
        )

    def _no_progress(
        self, session: Session, activities: Sequence[Activity], now: datetime
    ) -> _Match | None:
        if session.state != SESSION_STATE_IN_PROGRESS or not activities:
            return None
        latest = activities[0]
        if latest.created_at is None:
            return None
        idle = minutes_between(latest.created_at, now)
        threshold = self._config.no_progress_timeout_min
        if idle < threshold:
            return None
        return _Match(
            idle,
            f"No new activity for {round_minutes(idle)} min "
            f"(threshold: {format_number(threshold)} min)",
        )

    def _queue_timeout(
        self, session: Session, activities: Sequence[Activity], now: datetime
    ) -> _Match | None:
        if session.state != SESSION_STATE_QUEUED or session.created_at is None:
            return None
        queued = minutes_between(session.created_at, now)
        threshold = self._config.queue_timeout_min
        if queued < threshold:
            return None
        return _Match(
            queued,
            f"Session stuck in queue for {round_minutes(queued)} min "
            f"(threshold: {format_number(threshold)} min)",
        )

    def _repeated_errors(
        self, session: Session, activities: Sequence[Activity], now: datetime
    ) -> _Match | None:
        count = self._config.consecutive_errors
        window = activities[:count]
        if len(window) < count or not all(a.is_failed_command() for a in window):
            return None
        age = minutes_between(session.updated_at, now) if session.updated_at else 0.0
        return _Match(age, f"Last {count} activities had bash errors")
