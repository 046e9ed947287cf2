"""Deterministic simulation of a static-analysis quality report.

Every number in the report is drawn from a pseudo-random sequence seeded by
the PR's size stats and number, so the same PR snapshot always yields the
same report (timestamps aside).
"""

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Dict, List

from codegate.config import ThresholdConfig
from codegate.logger import get_logger, log_with_context
from codegate.models.pull_request import SizeStats
from codegate.models.quality import GateCondition, MetricCheck, QualityIssue, QualityReport

logger = get_logger()

MAX_ISSUES = 20
REPORT_BASE_URL = "https://sonarqube.example.com"

# Fixed slot per generated value; changing a slot changes every report.
SLOT_BUGS = 1
SLOT_VULNERABILITIES = 2
SLOT_CODE_SMELLS = 3
SLOT_COVERAGE = 4
SLOT_DUPLICATION = 5
SLOT_HOTSPOTS = 6
SLOT_BLOCKER = 7
SLOT_CRITICAL = 8
SLOT_MAJOR = 9
SLOT_MINOR = 10
SLOT_INFO = 11
SLOT_DEBT_HOURS = 12
SLOT_DEBT_MINUTES = 13
SLOT_SCAN_DURATION = 14
SLOT_ISSUES = 15

SEVERITIES = ("BLOCKER", "CRITICAL", "MAJOR", "MINOR", "INFO")
ISSUE_MESSAGES = (
    "Remove this unused variable.",
    "Refactor this method to reduce its cognitive complexity.",
    "This block of commented-out code should be removed.",
    "Make sure that using this pseudorandom number generator is safe here.",
    "Complete the task associated with this TODO comment.",
    "Remove this redundant type assertion.",
    "Use const or let instead of var.",
    "Expected indentation of 2 spaces but found 4.",
)


def derive_seed(size: SizeStats, pr_number: int) -> int:
    return (
        size.additions * 31
        + size.deletions * 17
        + size.changed_files * 101
        + pr_number * 7919
    )


def seeded_fraction(seed: int, slot: int) -> float:
    """Value in [0, 1) fully determined by ``seed`` and ``slot``."""

    return random.Random(seed * 1000 + slot).random()


def _int_in(seed: int, slot: int, upper: int) -> int:
    return int(seeded_fraction(seed, slot) * upper)


def _count_check(value: int, threshold: float) -> MetricCheck:
    return MetricCheck(value=value, threshold=threshold, exceeded=value > threshold)


def _synthesize_issues(
    seed: int, pr_number: int, bugs: int, vulnerabilities: int, code_smells: int
) -> List[QualityIssue]:
    rng = random.Random(seed * 1000 + SLOT_ISSUES)
    total = bugs + vulnerabilities + code_smells
    issues: List[QualityIssue] = []
    for index in range(min(total, MAX_ISSUES)):
        if index < bugs:
            issue_type = "BUG"
        elif index < bugs + vulnerabilities:
            issue_type = "VULNERABILITY"
        else:
            issue_type = "CODE_SMELL"
        issues.append(
            QualityIssue(
                key=f"pr-{pr_number}-issue-{index}",
                severity=rng.choice(SEVERITIES),
                type=issue_type,
                rule=f"python:S{1000 + rng.randrange(5000)}",
                component=f"src/module_{rng.randrange(10)}.py",
                line=rng.randrange(200) + 1,
                message=rng.choice(ISSUE_MESSAGES),
                effort=f"{rng.randrange(30) + 5}min",
            )
        )
    return issues


def analyze(size: SizeStats, pr_number: int, thresholds: ThresholdConfig) -> QualityReport:
    """Build the quality report for one PR snapshot."""

    seed = derive_seed(size, pr_number)
    ctx_logger = log_with_context(logger, pr_number=pr_number)

    bugs = _int_in(seed, SLOT_BUGS, 5)
    vulnerabilities = _int_in(seed, SLOT_VULNERABILITIES, 3)
    code_smells = _int_in(seed, SLOT_CODE_SMELLS, 20)
    coverage = round(70 + seeded_fraction(seed, SLOT_COVERAGE) * 25, 1)
    duplication = round(seeded_fraction(seed, SLOT_DUPLICATION) * 5, 1)
    hotspots = _int_in(seed, SLOT_HOTSPOTS, 4)

    severity: Dict[str, MetricCheck] = {
        "blocker": _count_check(_int_in(seed, SLOT_BLOCKER, 2), thresholds.blocker_issues),
        "critical": _count_check(_int_in(seed, SLOT_CRITICAL, 3), thresholds.critical_issues),
        "major": MetricCheck(value=_int_in(seed, SLOT_MAJOR, 8), threshold=10, exceeded=False),
        "minor": MetricCheck(value=_int_in(seed, SLOT_MINOR, 15), threshold=20, exceeded=False),
        "info": MetricCheck(value=_int_in(seed, SLOT_INFO, 5), threshold=100, exceeded=False),
    }

    checks = {
        "bugs": _count_check(bugs, thresholds.bugs),
        "vulnerabilities": _count_check(vulnerabilities, thresholds.vulnerabilities),
        "code_smells": _count_check(code_smells, thresholds.code_smells),
        "coverage": MetricCheck(coverage, thresholds.coverage_min, coverage < thresholds.coverage_min),
        "duplication": MetricCheck(duplication, thresholds.duplicated_lines_max, duplication > thresholds.duplicated_lines_max),
        "security_hotspots": _count_check(hotspots, thresholds.security_hotspots),
    }

    violations: List[str] = []
    if checks["bugs"].exceeded:
        violations.append(f"Bugs: {bugs} (threshold: {thresholds.bugs})")
    if checks["vulnerabilities"].exceeded:
        violations.append(f"Vulnerabilities: {vulnerabilities} (threshold: {thresholds.vulnerabilities})")
    if checks["code_smells"].exceeded:
        violations.append(f"Code Smells: {code_smells} (threshold: {thresholds.code_smells})")
    if checks["coverage"].exceeded:
        violations.append(f"Coverage: {coverage:.1f}% (minimum: {thresholds.coverage_min}%)")
    if checks["duplication"].exceeded:
        violations.append(f"Duplicated Lines: {duplication:.1f}% (max: {thresholds.duplicated_lines_max}%)")
    if checks["security_hotspots"].exceeded:
        violations.append(f"Security Hotspots: {hotspots} (threshold: {thresholds.security_hotspots})")
    if severity["blocker"].exceeded:
        violations.append(f"Blocker Issues: {int(severity['blocker'].value)} (threshold: {thresholds.blocker_issues})")
    if severity["critical"].exceeded:
        violations.append(f"Critical Issues: {int(severity['critical'].value)} (threshold: {thresholds.critical_issues})")

    def _status(exceeded: bool) -> str:
        return "ERROR" if exceeded else "OK"

    conditions = [
        GateCondition("new_bugs", "GT", str(bugs), _status(checks["bugs"].exceeded), str(thresholds.bugs)),
        GateCondition(
            "new_vulnerabilities",
            "GT",
            str(vulnerabilities),
            _status(checks["vulnerabilities"].exceeded),
            str(thresholds.vulnerabilities),
        ),
        GateCondition("new_coverage", "LT", f"{coverage:.1f}", _status(checks["coverage"].exceeded), str(thresholds.coverage_min)),
    ]

    project_key = f"pr-{pr_number}"
    report = QualityReport(
        project_key=project_key,
        pr_number=pr_number,
        timestamp=datetime.now(timezone.utc).isoformat(),
        scan_duration=45 + _int_in(seed, SLOT_SCAN_DURATION, 60),
        severity=severity,
        technical_debt=f"{_int_in(seed, SLOT_DEBT_HOURS, 4)}h {_int_in(seed, SLOT_DEBT_MINUTES, 60)}min",
        gate_status="ERROR" if violations else "OK",
        conditions=conditions,
        issues=_synthesize_issues(seed, pr_number, bugs, vulnerabilities, code_smells),
        violations=violations,
        links={
            "dashboard": f"{REPORT_BASE_URL}/dashboard?id={project_key}",
            "issues": f"{REPORT_BASE_URL}/project/issues?id={project_key}",
            "security_hotspots": f"{REPORT_BASE_URL}/security_hotspots?id={project_key}",
        },
        **checks,
    )
    ctx_logger.info(f"Quality gate {report.gate_status}: {len(violations)} violation(s), {report.total_issues} issue(s)")
    return report


class QualityAnalyzer:
    """Holds the threshold set so callers only pass the PR snapshot."""

    def __init__(self, thresholds: ThresholdConfig | None = None) -> None:
        self.thresholds = thresholds or ThresholdConfig()

    def analyze(self, size: SizeStats, pr_number: int, thresholds: ThresholdConfig | None = None) -> QualityReport:
        return analyze(size, pr_number, thresholds or self.thresholds)
