"""Merge-conflict triage and resolution records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

ResolutionStrategy = Literal["ours", "theirs", "manual", "ai_assisted"]
ResolutionStatus = Literal["pending", "resolved", "failed"]
ConflictType = Literal["imports", "formatting", "logic", "structure", "mixed"]

RESOLUTION_STRATEGIES = ("ours", "theirs", "manual", "ai_assisted")


@dataclass(slots=True, frozen=True)
class ConflictFile:
    filename: str
    has_business_logic: bool
    raw_diff: str | None = None


@dataclass(slots=True, frozen=True)
class ConflictAnalysis:
    filename: str
    conflict_type: ConflictType
    recommendation: ResolutionStrategy
    has_business_logic: bool
    reasoning: str
    can_auto_resolve: bool = False
    resolved_content: str | None = None
    is_fallback: bool = False


@dataclass(slots=True, frozen=True)
class ConflictResolution:
    pr_number: int
    filename: str
    strategy: ResolutionStrategy
    resolved_content: str
    status: ResolutionStatus
    has_business_logic: bool = False
    ai_analysis: str | None = None
    updated_at: str = ""

    @classmethod
    def create(
        cls,
        pr_number: int,
        filename: str,
        strategy: ResolutionStrategy,
        resolved_content: str,
        status: ResolutionStatus,
        *,
        has_business_logic: bool = False,
        ai_analysis: str | None = None,
    ) -> "ConflictResolution":
        return cls(
            pr_number=pr_number,
            filename=filename,
            strategy=strategy,
            resolved_content=resolved_content,
            status=status,
            has_business_logic=has_business_logic,
            ai_analysis=ai_analysis,
            updated_at=datetime.now(timezone.utc).isoformat(),
        )
