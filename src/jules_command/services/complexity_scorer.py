"""Change complexity scoring.

Turns a pull request's change metrics into a normalized [0, 1] risk score,
a per-component breakdown and a coarse label. The scorer is a pure function
of its input and configuration.
"""

from __future__ import annotations

import fnmatch
import math
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

from jules_command.constants import (
    COMPLEXITY_LABEL_BANDS,
    COMPLEXITY_LABEL_CRITICAL,
    COMPLEXITY_WEIGHT_CRITICAL,
    COMPLEXITY_WEIGHT_DEPENDENCIES,
    COMPLEXITY_WEIGHT_FILES,
    COMPLEXITY_WEIGHT_LINES,
    COMPLEXITY_WEIGHT_TESTS,
    CRITICAL_FILE_PATTERNS,
    DEPENDENCY_MANIFEST_NAMES,
    DEPENDENCY_MANIFEST_PATTERNS,
    TEST_FILE_PATTERNS,
)

if TYPE_CHECKING:
    from jules_command.config import ComplexityConfig

COMPLEXITY_WEIGHTS: dict[str, float] = {
    "lines": COMPLEXITY_WEIGHT_LINES,
    "files": COMPLEXITY_WEIGHT_FILES,
    "critical": COMPLEXITY_WEIGHT_CRITICAL,
    "tests": COMPLEXITY_WEIGHT_TESTS,
    "dependencies": COMPLEXITY_WEIGHT_DEPENDENCIES,
}


def round2(value: float) -> float:
    """Round half-up to two decimals."""
    return math.floor(value * 100 + 0.5) / 100


def label_for(score: float) -> str:
    """Map a score to its band. A value on a boundary belongs to the higher band."""
    for upper, label in COMPLEXITY_LABEL_BANDS:
        if score < upper:
            return label
    return COMPLEXITY_LABEL_CRITICAL


def _matches_any(path: str, patterns: Iterable[str]) -> bool:
    name = PurePosixPath(path).name
    return any(fnmatch.fnmatch(path, p) or fnmatch.fnmatch(name, p) for p in patterns)


def is_test_file(path: str) -> bool:
    return _matches_any(path, TEST_FILE_PATTERNS)


_CRITICAL_PATTERNS_LOWER = tuple(p.lower() for p in CRITICAL_FILE_PATTERNS)


def is_critical_file(path: str) -> bool:
    return _matches_any(path.lower(), _CRITICAL_PATTERNS_LOWER)


def is_dependency_manifest(path: str) -> bool:
    name = PurePosixPath(path).name
    return name in DEPENDENCY_MANIFEST_NAMES or _matches_any(name, DEPENDENCY_MANIFEST_PATTERNS)


@dataclass(frozen=True)
class ComplexityInput:
    """Change metrics for one pull request."""

    lines_changed: int = 0
    files_changed: int = 0
    test_files_changed: int = 0
    critical_files_touched: bool = False
    dependency_manifest_touched: bool = False

    @classmethod
    def from_files(cls, filenames: Iterable[str], lines_changed: int) -> ComplexityInput:
        """Classify a PR's changed paths into the scorer's inputs.

        Args:
            filenames: Repository-relative paths of the changed files.
            lines_changed: Total additions plus deletions.

        Returns:
            ComplexityInput for the change.
        """
        paths = list(filenames)
        return cls(
            lines_changed=lines_changed,
            files_changed=len(paths),
            test_files_changed=sum(1 for p in paths if is_test_file(p)),
            critical_files_touched=any(is_critical_file(p) for p in paths),
            dependency_manifest_touched=any(is_dependency_manifest(p) for p in paths),
        )


@dataclass(frozen=True)
class ComplexityResult:
    """Score, label and per-component breakdown.

    The breakdown holds each weighted contribution to the score, rounded
    to two decimals. The tests entry grows as test coverage shrinks.
    """

    score: float
    label: str
    breakdown: dict[str, float]

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "label": self.label, "breakdown": dict(self.breakdown)}


class ComplexityScorer:
    """Weighted change-risk scorer.

    Components and weights:
        lines         min(lines / lines_threshold, 1)      0.25
        files         min(files / files_threshold, 1)      0.20
        critical      1 if critical files touched          0.25
        tests         min(test_files / files, 1)           0.15 applied to (1 - ratio)
        dependencies  1 if a dependency manifest changed   0.15
    """

    def __init__(self, config: ComplexityConfig):
        self._lines_threshold = config.lines_threshold
        self._files_threshold = config.files_threshold

    def score(self, change: ComplexityInput) -> ComplexityResult:
        """Score a change.

        Args:
            change: Metrics for the change. Negative counts count as zero.

        Returns:
            ComplexityResult with the score rounded to two decimals. The label
            comes from the unrounded sum.
        """
        lines = max(change.lines_changed, 0)
        files = max(change.files_changed, 0)
        test_files = max(change.test_files_changed, 0)

        lines_norm = min(lines / self._lines_threshold, 1.0)
        files_norm = min(files / self._files_threshold, 1.0)
        critical = 1.0 if change.critical_files_touched else 0.0
        test_ratio = 1.0 if files == 0 else min(test_files / files, 1.0)
        dependencies = 1.0 if change.dependency_manifest_touched else 0.0

        components = {
            "lines": COMPLEXITY_WEIGHTS["lines"] * lines_norm,
            "files": COMPLEXITY_WEIGHTS["files"] * files_norm,
            "critical": COMPLEXITY_WEIGHTS["critical"] * critical,
            "tests": COMPLEXITY_WEIGHTS["tests"] * (1.0 - test_ratio),
            "dependencies": COMPLEXITY_WEIGHTS["dependencies"] * dependencies,
        }
        raw = sum(components.values())

        return ComplexityResult(
            score=round2(raw),
            label=label_for(raw),
            breakdown={name: round2(value) for name, value in components.items()},
        )
