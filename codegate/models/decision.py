"""Auto-merge decision records kept in the per-PR history."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Literal

DecisionOutcome = Literal["will_merge", "will_not_merge", "merged", "merge_failed", "disabled"]


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True, frozen=True)
class DecisionRecord:
    pr_number: int
    ai_score: float
    sonar_issues: int
    mode: str
    ai_threshold: float
    sonar_threshold: int
    decision: DecisionOutcome
    details: str = ""
    timestamp: str = field(default_factory=_utcnow)

    def to_row(self) -> Dict[str, Any]:
        """Persisted column layout of the history table."""

        return {
            "pr_number": self.pr_number,
            "ai_score": self.ai_score,
            "sonar_issues": self.sonar_issues,
            "mode": self.mode,
            "ai_threshold": self.ai_threshold,
            "sonar_threshold": self.sonar_threshold,
            "decision": self.decision,
            "details": self.details,
            "created_at": self.timestamp,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "DecisionRecord":
        return cls(
            pr_number=int(row["pr_number"]),
            ai_score=float(row.get("ai_score") or 0),
            sonar_issues=int(row.get("sonar_issues") or 0),
            mode=row.get("mode") or "at_most",
            ai_threshold=float(row.get("ai_threshold") or 0),
            sonar_threshold=int(row.get("sonar_threshold") or 0),
            decision=row.get("decision") or "disabled",
            details=row.get("details") or "",
            timestamp=row.get("created_at") or _utcnow(),
        )

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)
