"""Poll cycle orchestration.

A cycle walks every non-terminal session in order, refreshes it from Jules
when a client is configured, runs stall detection over its recent
activities and records the outcome. A failure in one session never stops
the cycle.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx

from jules_command.constants import DEFAULT_ACTIVITY_WINDOW
from jules_command.exceptions import JulesCommandError
from jules_command.utils.timestamps import utc_now

if TYPE_CHECKING:
    from jules_command.clients.jules import JulesClient
    from jules_command.services.pr_sync import PrSyncService
    from jules_command.services.stall_detector import Stall, StallDetector
    from jules_command.store.core import CommandStore

logger = logging.getLogger(__name__)

# Failures a single session poll absorbs and reports
POLL_ERRORS = (sqlite3.Error, JulesCommandError, httpx.HTTPError)


@dataclass
class PollResult:
    """Outcome of polling one session."""

    session_id: str
    updated: bool
    stall: Stall | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "updated": self.updated,
            "stall": self.stall.to_dict() if self.stall else None,
            "error": self.error,
        }


@dataclass
class PollSummary:
    """Aggregate outcome of one poll cycle."""

    sessions_polled: int = 0
    sessions_updated: int = 0
    stalls_detected: list[Stall] = field(default_factory=list)
    prs_updated: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessions_polled": self.sessions_polled,
            "sessions_updated": self.sessions_updated,
            "stalls_detected": [stall.to_dict() for stall in self.stalls_detected],
            "prs_updated": self.prs_updated,
            "errors": list(self.errors),
        }


class PollManager:
    """Runs poll cycles over the store's sessions.

    Collaborators are injected. ``sleep`` and ``clock`` exist so tests can
    run cycles without real delays or wall-clock time.
    """

    def __init__(
        self,
        store: CommandStore,
        detector: StallDetector,
        *,
        delay_ms: int,
        jules: JulesClient | None = None,
        pr_sync: PrSyncService | None = None,
        activity_window: int = DEFAULT_ACTIVITY_WINDOW,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.detector = detector
        self.delay_ms = delay_ms
        self.jules = jules
        self.pr_sync = pr_sync
        self.activity_window = activity_window
        self._sleep = sleep
        self._clock = clock or utc_now

    def poll_one(self, session_id: str) -> PollResult:
        """Poll a single session.

        Returns:
            PollResult. Missing sessions and collaborator failures are
            reported on the result rather than raised.
        """
        now = self._clock()
        try:
            session = self.store.get_session(session_id)
            if session is None:
                return PollResult(
                    session_id, updated=False, error=f"Session not found: {session_id}"
                )

            if self.jules is not None:
                session = self.store.upsert_session(self.jules.get_session(session_id))
                added = self.store.add_activities(self.jules.list_activities(session_id))
                if added:
                    logger.debug(f"Stored {added} new activities for session {session_id}")

            activities = self.store.get_recent_activities(session_id, self.activity_window)
            stall = self.detector.detect(session, activities, now)

            self.store.update_poll_state(
                session_id,
                last_polled_at=now,
                stall_detected_at=stall.detected_at if stall else None,
                stall_reason=stall.reason if stall else None,
            )
            self.store.record_poll(
                session_id,
                polled_at=now,
                last_activity_seen_at=activities[0].created_at if activities else None,
            )
        except POLL_ERRORS as e:
            logger.error(f"Failed to poll session {session_id}: {e}")
            self._record_error(session_id, str(e), now)
            return PollResult(session_id, updated=False, error=str(e))

        if stall:
            logger.warning(f"Session {session_id} stalled ({stall.rule_id}): {stall.reason}")
        else:
            logger.debug(f"Session {session_id} polled, state={session.state}")
        return PollResult(session_id, updated=True, stall=stall)

    def _record_error(self, session_id: str, error: str, now: datetime) -> None:
        try:
            self.store.record_poll_error(session_id, error, now)
        except sqlite3.Error as e:
            logger.error(f"Failed to record poll error for session {session_id}: {e}")

    def poll_sessions(self, session_ids: Iterable[str]) -> PollSummary:
        """Poll the given sessions in order, pacing between them."""
        ids = list(session_ids)
        summary = PollSummary(sessions_polled=len(ids))
        logger.info(f"Poll cycle started for {len(ids)} sessions")

        for index, session_id in enumerate(ids):
            if index > 0 and self.delay_ms > 0:
                self._sleep(self.delay_ms / 1000)
            try:
                result = self.poll_one(session_id)
            except Exception as e:
                logger.error(f"Unexpected error polling session {session_id}: {e}", exc_info=True)
                self._record_error(session_id, str(e), self._clock())
                summary.errors.append({"session_id": session_id, "error": str(e)})
                continue

            if result.error:
                summary.errors.append({"session_id": session_id, "error": result.error})
            if result.updated:
                summary.sessions_updated += 1
            if result.stall:
                summary.stalls_detected.append(result.stall)

        if self.pr_sync is not None:
            self._sync_prs(ids, summary)

        logger.info(
            f"Poll cycle complete: {summary.sessions_polled} polled, "
            f"{summary.sessions_updated} updated, {len(summary.stalls_detected)} stalls, "
            f"{summary.prs_updated} PRs updated, {len(summary.errors)} errors"
        )
        return summary

    def poll_all_active(self) -> PollSummary:
        """Run one cycle over every non-terminal session, newest first."""
        return self.poll_sessions(session.id for session in self.store.get_active_sessions())

    def _sync_prs(self, session_ids: list[str], summary: PollSummary) -> None:
        assert self.pr_sync is not None
        for session_id in session_ids:
            session = self.store.get_session(session_id)
            if session is None or not session.pr_url:
                continue
            try:
                self.pr_sync.sync_pr(session.pr_url, session_id=session_id, now=self._clock())
                summary.prs_updated += 1
            except POLL_ERRORS as e:
                logger.error(f"Failed to sync PR {session.pr_url}: {e}")
                summary.errors.append({"session_id": session_id, "error": str(e)})

    def run(
        self,
        interval_ms: int,
        stop_event: threading.Event | None = None,
        max_cycles: int | None = None,
        on_cycle: Callable[[PollSummary], None] | None = None,
    ) -> int:
        """Poll continuously until stopped.

        Args:
            interval_ms: Wait between cycle starts.
            stop_event: Set to stop after the current cycle.
            max_cycles: Stop after this many cycles.
            on_cycle: Called with each cycle's summary.

        Returns:
            Number of cycles run.
        """
        stop_event = stop_event or threading.Event()
        cycles = 0
        while not stop_event.is_set():
            summary = self.poll_all_active()
            cycles += 1
            if on_cycle is not None:
                on_cycle(summary)
            if max_cycles is not None and cycles >= max_cycles:
                break
            stop_event.wait(interval_ms / 1000)
        logger.info(f"Polling stopped after {cycles} cycles")
        return cycles
