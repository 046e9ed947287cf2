"""Merge-conflict triage and per-file resolution tracking."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Sequence

from codegate.ai_client import AIReviewEngine
from codegate.errors import CodeGateError, NotFoundError, OperationResult, PolicyBlockedError
from codegate.github_client import GitHubRepositoryClient
from codegate.logger import get_logger, log_failure, log_with_context
from codegate.models.conflict import (
    RESOLUTION_STRATEGIES,
    ConflictAnalysis,
    ConflictFile,
    ConflictResolution,
    ResolutionStrategy,
)
from codegate.models.pull_request import ChangedFile, Mergeability
from codegate.stores.base import ResolutionStore

logger = get_logger()

SOURCE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".java", ".py", ".cs", ".go", ".kt", ".rb")

BUSINESS_LOGIC_PATTERNS = (
    re.compile(r"function\s+\w+"),
    re.compile(r"class\s+\w+"),
    re.compile(r"const\s+\w+\s*=\s*\([^)]*\)\s*=>"),
    re.compile(r"async\s+function"),
    re.compile(r"export\s+(default\s+)?function"),
    re.compile(r"interface\s+\w+"),
    re.compile(r"type\s+\w+\s*="),
    re.compile(r"def\s+\w+\s*\("),
    re.compile(r"func\s+\w+\s*\("),
)


def detect_business_logic(filename: str, patch: str | None) -> bool:
    """Source file whose diff declares a function, class, interface or type."""

    if not filename.lower().endswith(SOURCE_EXTENSIONS):
        return False
    text = patch or ""
    return any(pattern.search(text) for pattern in BUSINESS_LOGIC_PATTERNS)


def classify_files(files: Sequence[ChangedFile]) -> List[ConflictFile]:
    """Modified files are the ones that can conflict with the base branch."""

    return [
        ConflictFile(
            filename=file.filename,
            has_business_logic=detect_business_logic(file.filename, file.patch),
            raw_diff=file.patch,
        )
        for file in files
        if file.status == "modified"
    ]


@dataclass(slots=True)
class ConflictCheck:
    mergeability: Mergeability
    files: List[ConflictFile] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return self.mergeability.has_conflicts


class MergeConflictResolver:
    def __init__(
        self,
        repository: GitHubRepositoryClient,
        resolutions: ResolutionStore,
        ai_engine: AIReviewEngine | None = None,
    ) -> None:
        self._repository = repository
        self._resolutions = resolutions
        self._ai_engine = ai_engine

    async def check_conflicts(self, pr_number: int) -> OperationResult[ConflictCheck]:
        ctx_logger = log_with_context(logger, pr_number=pr_number)
        try:
            mergeability = await self._repository.get_mergeability(pr_number)
            if not mergeability.has_conflicts:
                ctx_logger.info(f"No conflicts (mergeable_state={mergeability.state})")
                return OperationResult.success(ConflictCheck(mergeability))
            files = classify_files(await self._repository.fetch_files(pr_number))
        except CodeGateError as exc:
            log_failure(logger, "Conflict check failed", exc, pr_number=pr_number)
            return OperationResult.failure(exc)

        flagged = sum(1 for file in files if file.has_business_logic)
        ctx_logger.warning(f"Merge conflicts detected: {len(files)} candidate file(s), {flagged} with business logic")
        return OperationResult.success(ConflictCheck(mergeability, files))

    async def conflict_file(self, pr_number: int, filename: str) -> ConflictFile:
        """Classify one changed file of the PR; raises ``NotFoundError`` if it is not in the changeset."""

        for file in await self._repository.fetch_files(pr_number):
            if file.filename == filename:
                return ConflictFile(
                    filename=file.filename,
                    has_business_logic=detect_business_logic(file.filename, file.patch),
                    raw_diff=file.patch,
                )
        raise NotFoundError(f"{filename} is not part of PR #{pr_number}")

    async def analyze_with_ai(self, file: ConflictFile) -> ConflictAnalysis | None:
        if self._ai_engine is None:
            logger.warning("AI conflict analysis requested but no AI provider is configured")
            return None
        analysis = await self._ai_engine.analyze_conflict(file)
        if analysis is not None and file.has_business_logic and analysis.can_auto_resolve:
            # The local heuristic outranks the model on business logic.
            return ConflictAnalysis(
                filename=analysis.filename,
                conflict_type=analysis.conflict_type,
                recommendation="manual",
                has_business_logic=True,
                reasoning=analysis.reasoning,
            )
        return analysis

    async def resolve(
        self,
        pr_number: int,
        file: ConflictFile,
        strategy: ResolutionStrategy,
        content: str,
        *,
        ai_analysis: str | None = None,
    ) -> OperationResult[ConflictResolution]:
        """Record a resolution for one file; resolved files stay resolved."""

        if strategy not in RESOLUTION_STRATEGIES:
            raise ValueError(f"Unknown resolution strategy '{strategy}'.")
        if file.has_business_logic and strategy == "ai_assisted":
            return OperationResult.failure(
                PolicyBlockedError(
                    f"{file.filename} contains business logic and cannot be resolved with ai_assisted",
                    hint="Choose manual, ours or theirs for files with business logic.",
                )
            )

        existing = await self._resolutions.get(pr_number, file.filename)
        if existing is not None and existing.status == "resolved":
            return OperationResult.success(existing, message=f"{file.filename} is already resolved")

        resolution = ConflictResolution.create(
            pr_number,
            file.filename,
            strategy,
            content,
            "resolved",
            has_business_logic=file.has_business_logic,
            ai_analysis=ai_analysis,
        )
        await self._resolutions.save(resolution)
        log_with_context(logger, pr_number=pr_number).info(f"Resolved {file.filename} with '{strategy}'")
        return OperationResult.success(resolution, message=f"Resolution saved for {file.filename}")

    async def record_failure(
        self, pr_number: int, file: ConflictFile, strategy: ResolutionStrategy, reason: str
    ) -> ConflictResolution:
        existing = await self._resolutions.get(pr_number, file.filename)
        if existing is not None and existing.status == "resolved":
            return existing
        resolution = ConflictResolution.create(
            pr_number,
            file.filename,
            strategy,
            "",
            "failed",
            has_business_logic=file.has_business_logic,
            ai_analysis=reason,
        )
        await self._resolutions.save(resolution)
        return resolution

    async def pending_files(self, pr_number: int, files: Sequence[ConflictFile]) -> List[ConflictFile]:
        resolved = {res.filename for res in await self._resolutions.for_pr(pr_number) if res.status == "resolved"}
        return [file for file in files if file.filename not in resolved]
