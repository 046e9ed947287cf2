"""AI review engine: prompt rendering, provider dispatch and tolerant response parsing."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from codegate.config import AIConfig
from codegate.errors import CodeGateError, ConfigurationError, ParseError, classify_http_failure
from codegate.logger import get_logger, log_failure, log_timing, log_with_context
from codegate.models.conflict import ConflictAnalysis, ConflictFile, RESOLUTION_STRATEGIES
from codegate.models.pull_request import ChangedFile, PullRequestRef
from codegate.models.review import (
    CATEGORY_NAMES,
    DEFAULT_SCORE,
    AIReviewResult,
    AISuggestion,
    BusinessLogicValidation,
    RequirementMapping,
    ReviewCommandType,
)
from codegate.prompts import build_business_logic_prompt, build_conflict_prompt, build_review_prompt
from codegate.providers import PROVIDERS, ProviderResponse, ProviderStrategy
from codegate.tickets import TicketContext

logger = get_logger()

FALLBACK_EXCERPT_CHARS = 500
CONFLICT_TEMPERATURE = 0.2

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_CATEGORY_KEYS = {
    "code_quality": "codeQuality",
    "security": "security",
    "performance": "performance",
    "maintainability": "maintainability",
    "testability": "testability",
}
_REQUIREMENT_STATUSES = {"implemented", "missing", "partially_implemented", "out_of_scope"}
_CONFLICT_TYPES = {"imports", "formatting", "logic", "structure", "mixed"}


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _ReviewPayload(_Lenient):
    summary: str | None = None
    title: str | None = None
    guide: str | None = None
    overallScore: Any = None
    categories: Dict[str, Any] = Field(default_factory=dict)
    suggestions: List[Dict[str, Any]] = Field(default_factory=list)
    recommendation: str | None = None


class _RequirementPayload(_Lenient):
    requirement: str
    status: str = "missing"
    evidence: str | None = None
    files: List[str] = Field(default_factory=list)


class _ValidationPayload(_Lenient):
    alignmentScore: Any = None
    summary: str | None = None
    requirements: List[_RequirementPayload] = Field(default_factory=list)


class _ConflictPayload(_Lenient):
    hasBusinessLogic: bool = True
    conflictType: str = "mixed"
    recommendation: str = "manual"
    reasoning: str = ""
    canAutoResolve: bool = False
    resolvedContent: str | None = None


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def extract_json_payload(text: str) -> Dict[str, Any]:
    """Return the JSON object carried by a model reply.

    A fenced block wins; otherwise the whole reply, then its outermost braces,
    are tried. Raises ``ParseError`` when none of them is a JSON object.
    """

    candidates: List[str] = []
    if match := _FENCED_BLOCK.search(text):
        candidates.append(match.group(1))
    candidates.append(text.strip())
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    raise ParseError("AI response did not contain a JSON object.")


def _score(value: Any, default: float = DEFAULT_SCORE) -> float:
    if isinstance(value, bool) or value is None:
        return float(default)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return float(default)
    return max(0.0, min(100.0, number))


def _line(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def fallback_review(raw_text: str, model: str) -> AIReviewResult:
    return AIReviewResult(
        summary=raw_text[:FALLBACK_EXCERPT_CHARS],
        overall_score=float(DEFAULT_SCORE),
        categories={name: float(DEFAULT_SCORE) for name in CATEGORY_NAMES},
        model=model,
        timestamp=_utcnow(),
        is_fallback=True,
    )


def parse_review(raw_text: str, model: str) -> AIReviewResult:
    """Normalize a review reply; malformed replies yield the default-score result."""

    try:
        payload = _ReviewPayload.model_validate(extract_json_payload(raw_text))
    except (ParseError, ValidationError) as exc:
        logger.warning(f"AI review reply not parseable ({type(exc).__name__}); using default scores")
        return fallback_review(raw_text, model)

    suggestions: List[AISuggestion] = []
    for index, entry in enumerate(payload.suggestions, start=1):
        suggestions.append(
            AISuggestion(
                id=str(index),
                type=str(entry.get("type") or "improvement"),
                severity=str(entry.get("severity") or "medium"),
                file=str(entry.get("file") or "unknown"),
                line=_line(entry.get("line")),
                message=str(entry.get("message") or ""),
                remediation=str(entry.get("suggestion") or entry.get("remediation") or ""),
            )
        )

    return AIReviewResult(
        summary=(payload.summary or "Review completed").strip(),
        title=payload.title,
        guide=payload.guide,
        recommendation=payload.recommendation,
        suggestions=suggestions,
        overall_score=_score(payload.overallScore),
        categories={name: _score(payload.categories.get(key)) for name, key in _CATEGORY_KEYS.items()},
        model=model,
        timestamp=_utcnow(),
        # A reply without an overall score carries no real signal.
        is_fallback=payload.overallScore is None,
    )


def parse_business_logic(raw_text: str, model: str) -> BusinessLogicValidation:
    try:
        payload = _ValidationPayload.model_validate(extract_json_payload(raw_text))
    except (ParseError, ValidationError):
        logger.warning("Business-logic validation reply not parseable; using default score")
        return BusinessLogicValidation(
            alignment_score=float(DEFAULT_SCORE),
            summary=raw_text[:FALLBACK_EXCERPT_CHARS],
            model=model,
            timestamp=_utcnow(),
            is_fallback=True,
        )

    mappings = []
    for entry in payload.requirements:
        status = entry.status.strip().lower().replace(" ", "_").replace("-", "_")
        mappings.append(
            RequirementMapping(
                requirement=entry.requirement,
                status=status if status in _REQUIREMENT_STATUSES else "missing",
                evidence=entry.evidence,
                files=list(entry.files),
            )
        )
    return BusinessLogicValidation(
        alignment_score=_score(payload.alignmentScore),
        summary=(payload.summary or "Validation completed").strip(),
        model=model,
        timestamp=_utcnow(),
        mappings=mappings,
        is_fallback=payload.alignmentScore is None,
    )


def parse_conflict_analysis(raw_text: str, filename: str) -> ConflictAnalysis:
    try:
        payload = _ConflictPayload.model_validate(extract_json_payload(raw_text))
    except (ParseError, ValidationError):
        return ConflictAnalysis(
            filename=filename,
            conflict_type="mixed",
            recommendation="manual",
            has_business_logic=True,
            reasoning=raw_text[:FALLBACK_EXCERPT_CHARS],
            is_fallback=True,
        )

    conflict_type = payload.conflictType if payload.conflictType in _CONFLICT_TYPES else "mixed"
    recommendation = payload.recommendation if payload.recommendation in RESOLUTION_STRATEGIES else "manual"
    touches_logic = payload.hasBusinessLogic or conflict_type in ("logic", "mixed")
    can_auto_resolve = payload.canAutoResolve and not touches_logic and recommendation == "ai_assisted"
    return ConflictAnalysis(
        filename=filename,
        conflict_type=conflict_type,
        recommendation=recommendation,
        has_business_logic=touches_logic,
        reasoning=payload.reasoning,
        can_auto_resolve=can_auto_resolve,
        resolved_content=payload.resolvedContent if can_auto_resolve else None,
    )


class AIReviewEngine:
    """Dispatches prompts to the configured provider and normalizes what comes back."""

    def __init__(
        self,
        config: AIConfig,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
        providers: Mapping[str, ProviderStrategy] = PROVIDERS,
    ) -> None:
        self._config = config
        self._providers = providers
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    @property
    def model_label(self) -> str:
        return f"{self._config.provider}:{self._config.model}"

    def _strategy(self) -> ProviderStrategy:
        strategy = self._providers.get(self._config.provider)
        if strategy is None:
            raise ConfigurationError(f"Unsupported AI provider '{self._config.provider}'.")
        return strategy

    async def complete(self, prompt: str, *, temperature: float | None = None) -> str:
        """Send one prompt and return the provider reply as plain text."""

        if not self._config.api_key:
            raise ConfigurationError("AI provider is not configured: missing API key.")
        strategy = self._strategy()
        request = strategy.build_request(self._config, prompt, temperature=temperature)

        ctx_logger = log_with_context(logger, provider=strategy.name, model=self._config.model)
        with log_timing(ctx_logger, "ai_completion"):
            try:
                response = await self._client.post(
                    request.url, headers=request.headers, params=request.params or None, json=request.json
                )
            except httpx.HTTPError as exc:
                raise classify_http_failure(503, str(exc), action=f"{strategy.name} completion") from exc
            if response.status_code >= 400:
                try:
                    detail: Any = response.json()
                except ValueError:
                    detail = response.text
                raise classify_http_failure(response.status_code, detail, action=f"{strategy.name} completion")
            try:
                payload = response.json()
            except ValueError:
                return response.text
        if not isinstance(payload, dict):
            return ""
        text = strategy.extract_text(ProviderResponse(provider=strategy.name, payload=payload))
        ctx_logger.debug(f"Provider reply: {len(text)} characters")
        return text

    async def review(
        self,
        pr: PullRequestRef,
        files: Sequence[ChangedFile],
        command: ReviewCommandType = "review",
        ticket: TicketContext | None = None,
    ) -> AIReviewResult | None:
        """Run one review directive; provider or configuration failures yield ``None``."""

        prompt = build_review_prompt(pr, files, command, ticket)
        try:
            raw = await self.complete(prompt)
        except CodeGateError as exc:
            log_failure(logger, f"AI {command} failed", exc, pr_number=pr.number, provider=self._config.provider)
            return None
        return parse_review(raw, self.model_label)

    async def validate_business_logic(
        self,
        pr: PullRequestRef,
        files: Sequence[ChangedFile],
        ticket: TicketContext,
    ) -> BusinessLogicValidation | None:
        prompt = build_business_logic_prompt(pr, files, ticket)
        try:
            raw = await self.complete(prompt)
        except CodeGateError as exc:
            log_failure(logger, "Business-logic validation failed", exc, pr_number=pr.number, ticket=ticket.key)
            return None
        return parse_business_logic(raw, self.model_label)

    async def analyze_conflict(self, file: ConflictFile) -> ConflictAnalysis | None:
        try:
            raw = await self.complete(build_conflict_prompt(file), temperature=CONFLICT_TEMPERATURE)
        except CodeGateError as exc:
            log_failure(logger, f"AI conflict analysis failed for {file.filename}", exc)
            return None
        return parse_conflict_analysis(raw, file.filename)

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
