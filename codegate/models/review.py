"""AI review results and business-logic validation shapes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Literal

DEFAULT_SCORE = 70

ReviewCommandType = Literal["review", "summary", "guide", "title"]
RequirementStatus = Literal["implemented", "missing", "partially_implemented", "out_of_scope"]

CATEGORY_NAMES = ("code_quality", "security", "performance", "maintainability", "testability")


@dataclass(slots=True)
class AISuggestion:
    id: str
    type: str
    severity: str
    file: str
    message: str
    remediation: str
    line: int | None = None
    status: str = "pending"


@dataclass(slots=True)
class AIReviewResult:
    summary: str
    overall_score: float
    categories: Dict[str, float]
    model: str
    timestamp: str
    title: str | None = None
    guide: str | None = None
    recommendation: str | None = None
    suggestions: List[AISuggestion] = field(default_factory=list)
    is_fallback: bool = False


@dataclass(slots=True)
class RequirementMapping:
    requirement: str
    status: RequirementStatus
    evidence: str | None = None
    files: List[str] = field(default_factory=list)


@dataclass(slots=True)
class BusinessLogicValidation:
    alignment_score: float
    summary: str
    model: str
    timestamp: str
    mappings: List[RequirementMapping] = field(default_factory=list)
    is_fallback: bool = False

    def by_status(self, status: RequirementStatus) -> List[RequirementMapping]:
        return [mapping for mapping in self.mappings if mapping.status == status]
