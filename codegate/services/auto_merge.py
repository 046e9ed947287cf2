"""Pure auto-merge decision: compare AI score and issue count against configured thresholds."""

from __future__ import annotations

import operator
from dataclasses import dataclass
from typing import Callable, Dict, Sequence

from codegate.config import AutoMergeConfig
from codegate.models.pull_request import ChangedFile

JUNIT_PRESENT_SCORE = 90
JUNIT_ABSENT_SCORE = 0
DEFAULT_JUNIT_THRESHOLD = 70

_COMPARATORS: Dict[str, tuple[str, Callable[[float, float], bool]]] = {
    "at_most": ("<=", operator.le),
    "at_least": (">=", operator.ge),
}


@dataclass(slots=True, frozen=True)
class JUnitSignal:
    """Whether the Java/JUnit rule applies to a changeset, and its heuristic score."""

    has_java: bool
    score: int

    @classmethod
    def from_files(cls, files: Sequence[ChangedFile]) -> "JUnitSignal":
        has_java = any(file.is_java for file in files)
        has_tests = any(file.looks_like_test for file in files)
        return cls(has_java=has_java, score=JUNIT_PRESENT_SCORE if has_tests else JUNIT_ABSENT_SCORE)


def _junit_applies(config: AutoMergeConfig, junit: JUnitSignal | None) -> bool:
    return junit is not None and junit.has_java and config.require_junit_for_java


def _junit_threshold(config: AutoMergeConfig) -> float:
    return config.junit_threshold if config.junit_threshold is not None else DEFAULT_JUNIT_THRESHOLD


def decide(ai_score: float, issue_count: int, config: AutoMergeConfig, junit: JUnitSignal | None = None) -> bool:
    if not config.enabled:
        return False
    _, compare = _COMPARATORS[config.mode]
    base = compare(ai_score, config.ai_threshold) and compare(issue_count, config.sonar_threshold)
    if not _junit_applies(config, junit):
        return base
    return base and compare(junit.score, _junit_threshold(config))


def explain(ai_score: float, issue_count: int, config: AutoMergeConfig, junit: JUnitSignal | None = None) -> str:
    """Render the comparisons ``decide`` evaluates, in evaluation order."""

    if not config.enabled:
        return "Auto-merge disabled"
    symbol, compare = _COMPARATORS[config.mode]
    parts = [
        f"Mode={config.mode}",
        f"aiScore={ai_score:g} {symbol} {config.ai_threshold:g} => {compare(ai_score, config.ai_threshold)}",
        f"sonarIssues={issue_count} {symbol} {config.sonar_threshold} => {compare(issue_count, config.sonar_threshold)}",
    ]
    if _junit_applies(config, junit):
        threshold = _junit_threshold(config)
        parts.append(f"junitScore={junit.score} {symbol} {threshold:g} => {compare(junit.score, threshold)}")
    parts.append(f"decision={decide(ai_score, issue_count, config, junit)}")
    return ", ".join(parts)
