"""Session health and merge-readiness services."""

from jules_command.services.auto_merge import AutoMergeEvaluator, AutoMergeResult
from jules_command.services.complexity_scorer import (
    ComplexityInput,
    ComplexityResult,
    ComplexityScorer,
)
from jules_command.services.poll_manager import PollManager, PollResult, PollSummary
from jules_command.services.pr_sync import PrSyncService
from jules_command.services.stall_detector import Stall, StallDetector

__all__ = [
    "AutoMergeEvaluator",
    "AutoMergeResult",
    "ComplexityInput",
    "ComplexityResult",
    "ComplexityScorer",
    "PollManager",
    "PollResult",
    "PollSummary",
    "PrSyncService",
    "Stall",
    "StallDetector",
]
