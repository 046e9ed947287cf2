"""Structured quality report produced by the simulated analyzer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Literal

GateStatus = Literal["OK", "ERROR"]


@dataclass(slots=True, frozen=True)
class MetricCheck:
    value: float
    threshold: float
    exceeded: bool


@dataclass(slots=True, frozen=True)
class GateCondition:
    metric: str
    operator: Literal["GT", "LT"]
    value: str
    status: GateStatus
    error_threshold: str


@dataclass(slots=True, frozen=True)
class QualityIssue:
    key: str
    severity: Literal["BLOCKER", "CRITICAL", "MAJOR", "MINOR", "INFO"]
    type: Literal["BUG", "VULNERABILITY", "CODE_SMELL"]
    rule: str
    component: str
    line: int
    message: str
    effort: str
    status: str = "OPEN"


@dataclass(slots=True)
class QualityReport:
    project_key: str
    pr_number: int
    timestamp: str
    scan_duration: int
    bugs: MetricCheck
    vulnerabilities: MetricCheck
    code_smells: MetricCheck
    coverage: MetricCheck
    duplication: MetricCheck
    security_hotspots: MetricCheck
    severity: Dict[str, MetricCheck]
    technical_debt: str
    gate_status: GateStatus
    conditions: List[GateCondition] = field(default_factory=list)
    issues: List[QualityIssue] = field(default_factory=list)
    violations: List[str] = field(default_factory=list)
    links: Dict[str, str] = field(default_factory=dict)

    @property
    def total_issues(self) -> int:
        return int(
            self.bugs.value
            + self.vulnerabilities.value
            + self.code_smells.value
            + self.security_hotspots.value
        )

    @property
    def exceeded(self) -> bool:
        return self.gate_status == "ERROR"

    def header(self) -> tuple[float, ...]:
        """The threshold-relevant metric values, in a fixed order."""

        return (
            self.bugs.value,
            self.vulnerabilities.value,
            self.code_smells.value,
            self.coverage.value,
            self.duplication.value,
            self.security_hotspots.value,
        )
