"""End-to-end quality-gate pipeline for one pull request."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Sequence

from codegate.ai_client import AIReviewEngine
from codegate.config import AIConfig, AutoMergeConfig, GitHubConfig, JiraConfig, SettingsError, ThresholdConfig, parse_config_blob
from codegate.errors import CodeGateError, ConfigurationError, OperationResult
from codegate.github_client import CommentUpsert, GitHubRepositoryClient, MergeOutcome
from codegate.logger import get_logger, log_failure, log_success, log_timing, log_with_context
from codegate.models.decision import DecisionOutcome, DecisionRecord
from codegate.models.pull_request import ChangedFile, PullRequestRef
from codegate.models.quality import QualityReport
from codegate.models.review import DEFAULT_SCORE, AIReviewResult, BusinessLogicValidation
from codegate.services import auto_merge
from codegate.services.auto_merge import JUnitSignal
from codegate.services.quality_analyzer import QualityAnalyzer
from codegate.stores.base import ConfigStore, HistoryStore
from codegate.tickets import TicketContext, TicketProvider, extract_ticket_id

logger = get_logger()

MERGE_STRATEGY = "squash"
MAX_COMMENT_SUGGESTIONS = 10


class PipelineError(CodeGateError):
    """Raised when a run fails with an error outside the taxonomy; the run is still recorded."""

    kind = "pipeline"

    def __init__(self, message: str, step: str) -> None:
        super().__init__(message)
        self.step = step


class PipelineState(str, Enum):
    IDLE = "idle"
    FILES_FETCHING = "files_fetching"
    ANALYZING = "analyzing"
    DECISION_COMPUTED = "decision_computed"
    MERGING = "merging"
    COMMENT_POSTING = "comment_posting"


@dataclass(slots=True)
class PipelineOutcome:
    pr_number: int
    transitions: List[PipelineState] = field(default_factory=list)
    pull_request: PullRequestRef | None = None
    quality: QualityReport | None = None
    review: AIReviewResult | None = None
    validation: BusinessLogicValidation | None = None
    record: DecisionRecord | None = None
    comment: OperationResult[CommentUpsert] | None = None
    merge: OperationResult[MergeOutcome] | None = None
    error: OperationResult[Any] | None = None
    stale: bool = False

    def enter(self, state: PipelineState) -> None:
        self.transitions.append(state)


@dataclass(slots=True)
class _RunConfig:
    ai: AIConfig
    thresholds: ThresholdConfig
    jira: JiraConfig


def render_review_comment(
    pr: PullRequestRef,
    review: AIReviewResult | None,
    quality: QualityReport | None,
    rationale: str,
    validation: BusinessLogicValidation | None = None,
) -> str:
    """Markdown body of the review comment; the repository client adds the marker."""

    lines = [f"## 🤖 AI Code Review for PR #{pr.number}", ""]
    if review is None:
        lines.append("_AI review unavailable for this run._")
    else:
        lines.append(review.summary)
        lines.append("")
        note = " (default score, reply could not be parsed)" if review.is_fallback else ""
        lines.append(f"**Overall score:** {review.overall_score:g}/100{note}")
        lines.append(
            "**Categories:** "
            + ", ".join(f"{name.replace('_', ' ')} {score:g}" for name, score in review.categories.items())
        )
        if review.suggestions:
            lines.extend(["", "### Suggestions"])
            for suggestion in review.suggestions[:MAX_COMMENT_SUGGESTIONS]:
                location = suggestion.file + (f":{suggestion.line}" if suggestion.line else "")
                lines.append(f"- **[{suggestion.severity}]** `{location}` {suggestion.message}")
        if review.recommendation:
            lines.extend(["", f"**Recommendation:** {review.recommendation}"])

    if quality is not None:
        lines.extend(
            [
                "",
                f"### Quality gate: {quality.gate_status}",
                f"Bugs {quality.bugs.value:g}, vulnerabilities {quality.vulnerabilities.value:g}, "
                f"code smells {quality.code_smells.value:g}, security hotspots {quality.security_hotspots.value:g}, "
                f"coverage {quality.coverage.value:.1f}%, duplication {quality.duplication.value:.1f}%",
            ]
        )
        lines.extend(f"- {violation}" for violation in quality.violations)

    if validation is not None:
        lines.extend(
            [
                "",
                f"### Requirements alignment: {validation.alignment_score:g}/100",
                validation.summary,
            ]
        )
        lines.extend(f"- Missing: {mapping.requirement}" for mapping in validation.by_status("missing"))

    lines.extend(["", f"**Auto-merge:** {rationale}", "", "_Generated by CodeGate_"])
    return "\n".join(lines)


class Orchestrator:
    """Runs the fetch, analyze, decide, act pipeline and records one decision per run."""

    def __init__(
        self,
        config_store: ConfigStore,
        history: HistoryStore,
        *,
        repository: GitHubRepositoryClient | None = None,
        analyzer: QualityAnalyzer | None = None,
        ai_engine_factory: Callable[[AIConfig], AIReviewEngine] = AIReviewEngine,
        tickets: TicketProvider | None = None,
        dry_run: bool = False,
    ) -> None:
        self._config_store = config_store
        self._history = history
        self._repository = repository
        self._analyzer = analyzer or QualityAnalyzer()
        self._ai_engine_factory = ai_engine_factory
        self._tickets = tickets
        self._dry_run = dry_run
        self._active_pr: int | None = None
        self._latest: Dict[int, PipelineOutcome] = {}
        self._run_locks: Dict[int, asyncio.Lock] = {}

    @property
    def active_pr(self) -> int | None:
        return self._active_pr

    @property
    def repository(self) -> GitHubRepositoryClient:
        if self._repository is None:
            raise ConfigurationError("GitHub is not configured.", hint="Save a 'github' configuration first.")
        return self._repository

    def attach_repository(self, repository: GitHubRepositoryClient | None) -> None:
        self._repository = repository

    def select(self, pr_number: int) -> None:
        """Make ``pr_number`` the active selection; results for other PRs become stale."""

        if self._active_pr != pr_number:
            logger.info(f"Active pull request changed: {self._active_pr} -> {pr_number}")
        self._active_pr = pr_number

    def latest(self, pr_number: int) -> PipelineOutcome | None:
        return self._latest.get(pr_number)

    async def history(self, pr_number: int) -> List[DecisionRecord]:
        return await self._history.recent(pr_number)

    async def _load_blob(self, config_type: str) -> Any:
        blob = await self._config_store.get(config_type)
        try:
            return parse_config_blob(config_type, blob or {})
        except SettingsError as exc:
            raise ConfigurationError(str(exc)) from exc

    async def _load_run_config(self) -> _RunConfig:
        return _RunConfig(
            ai=await self._load_blob("ai"),
            thresholds=await self._load_blob("thresholds"),
            jira=await self._load_blob("jira"),
        )

    async def load_github_config(self) -> GitHubConfig | None:
        blob = await self._config_store.get("github")
        if not blob:
            return None
        try:
            return parse_config_blob("github", blob)
        except SettingsError as exc:
            raise ConfigurationError(str(exc)) from exc

    async def run(self, pr: PullRequestRef | int) -> PipelineOutcome:
        """Run the pipeline once for ``pr``.

        Raises ``ConfigurationError`` before any work when GitHub or the stored
        configuration is unusable; once the run starts, every branch ends with
        exactly one history record.
        """

        repository = self.repository
        config = await self._load_run_config()
        pr_number = pr if isinstance(pr, int) else pr.number
        lock = self._run_locks.setdefault(pr_number, asyncio.Lock())

        async with lock:
            outcome = PipelineOutcome(pr_number=pr_number)
            outcome.enter(PipelineState.IDLE)
            ctx_logger = log_with_context(logger, pr_number=pr_number, repository=repository.full_name)
            ctx_logger.info("=== PIPELINE: starting ===")
            engine = self._ai_engine_factory(config.ai)
            try:
                await self._execute(outcome, pr, repository, engine, config)
            except Exception as exc:
                step = outcome.transitions[-1].value
                log_failure(logger, f"Pipeline failed during {step}", exc, pr_number=pr_number)
                if outcome.record is None:
                    await self._record_abort(outcome, config.ai.auto_merge, step, exc)
                raise PipelineError(f"Pipeline failed during {step}: {exc}", step) from exc
            finally:
                await engine.aclose()
                outcome.enter(PipelineState.IDLE)

            outcome.stale = self._active_pr != pr_number
            if outcome.stale:
                ctx_logger.warning(f"Discarding result for PR #{pr_number}: active selection is {self._active_pr}")
            else:
                self._latest[pr_number] = outcome
            log_success(logger, f"Pipeline finished with decision '{outcome.record.decision}'", pr_number=pr_number)
            return outcome

    async def _execute(
        self,
        outcome: PipelineOutcome,
        pr: PullRequestRef | int,
        repository: GitHubRepositoryClient,
        engine: AIReviewEngine,
        config: _RunConfig,
    ) -> None:
        auto = config.ai.auto_merge
        ctx_logger = log_with_context(logger, pr_number=outcome.pr_number)

        outcome.enter(PipelineState.FILES_FETCHING)
        try:
            with log_timing(ctx_logger, "fetch_files"):
                pull = pr if isinstance(pr, PullRequestRef) else await repository.fetch_pull_request(pr)
                files = await repository.fetch_files(pull.number)
        except CodeGateError as exc:
            log_failure(logger, "Fetching pull request data failed", exc, pr_number=outcome.pr_number)
            outcome.error = OperationResult.failure(exc)
            decision: DecisionOutcome = "disabled" if not auto.enabled else "will_not_merge"
            details = f"Pipeline stopped while fetching files: {exc.user_message}"
            await self._record(outcome, self._stopped_record(outcome, auto, decision, details))
            return
        outcome.pull_request = pull
        ctx_logger.info(f"Fetched {len(files)} changed file(s)")

        outcome.enter(PipelineState.ANALYZING)
        ticket = await self._fetch_ticket(pull, config.jira)
        with log_timing(ctx_logger, "analyze"):
            outcome.quality, outcome.review, outcome.validation = await asyncio.gather(
                asyncio.to_thread(self._analyzer.analyze, pull.size, pull.number, config.thresholds),
                engine.review(pull, files, "review", ticket),
                self._validate(engine, pull, files, ticket),
            )

        outcome.enter(PipelineState.DECISION_COMPUTED)
        should_merge, rationale = self._decide(outcome.review, outcome.quality, files, config.ai)
        ai_score = outcome.review.overall_score if outcome.review else float(DEFAULT_SCORE)
        ctx_logger.info(f"Decision computed: {rationale}")

        if should_merge and auto.enabled and not self._dry_run:
            outcome.enter(PipelineState.MERGING)
            outcome.merge = await repository.merge_pr(
                pull.number, MERGE_STRATEGY, commit_title=f"{pull.title} (#{pull.number})"
            )
            if outcome.merge.ok:
                decision = "merged"
            else:
                decision = "merge_failed"
                rationale = f"{rationale}; merge failed ({outcome.merge.error_kind}): {outcome.merge.user_message()}"
        else:
            outcome.enter(PipelineState.COMMENT_POSTING)
            if not auto.enabled:
                decision = "disabled"
            else:
                decision = "will_merge" if should_merge else "will_not_merge"
            body = render_review_comment(pull, outcome.review, outcome.quality, rationale, outcome.validation)
            outcome.comment = await repository.upsert_comment(pull.number, body)
            if not outcome.comment.ok:
                rationale = f"{rationale}; comment not posted ({outcome.comment.error_kind})"

        await self._record(
            outcome,
            DecisionRecord(
                pr_number=pull.number,
                ai_score=ai_score,
                sonar_issues=outcome.quality.total_issues,
                mode=auto.mode,
                ai_threshold=auto.ai_threshold,
                sonar_threshold=auto.sonar_threshold,
                decision=decision,
                details=rationale,
            ),
        )

    @staticmethod
    def _decide(
        review: AIReviewResult | None,
        quality: QualityReport,
        files: Sequence[ChangedFile],
        ai_config: AIConfig,
    ) -> tuple[bool, str]:
        auto = ai_config.auto_merge
        ai_score = review.overall_score if review else float(DEFAULT_SCORE)
        junit = JUnitSignal.from_files(files)
        rationale = auto_merge.explain(ai_score, quality.total_issues, auto, junit)
        if auto.enabled and (review is None or review.is_fallback) and not auto.use_fallback_score:
            return False, f"AI review unavailable, default score not used for merging; {rationale}; forced decision=False"
        return auto_merge.decide(ai_score, quality.total_issues, auto, junit), rationale

    async def _fetch_ticket(self, pr: PullRequestRef, jira: JiraConfig) -> TicketContext | None:
        if self._tickets is None or not jira.enabled:
            return None
        ticket_id = extract_ticket_id(f"{pr.title}\n{pr.body or ''}", jira.project_key_pattern)
        if ticket_id is None:
            return None
        try:
            return await self._tickets.fetch(ticket_id)
        except CodeGateError as exc:
            log_failure(logger, f"Ticket {ticket_id} unavailable", exc, pr_number=pr.number)
            return None

    @staticmethod
    async def _validate(
        engine: AIReviewEngine,
        pr: PullRequestRef,
        files: Sequence[ChangedFile],
        ticket: TicketContext | None,
    ) -> BusinessLogicValidation | None:
        if ticket is None:
            return None
        return await engine.validate_business_logic(pr, files, ticket)

    @staticmethod
    def _stopped_record(
        outcome: PipelineOutcome, auto: AutoMergeConfig, decision: DecisionOutcome, details: str
    ) -> DecisionRecord:
        return DecisionRecord(
            pr_number=outcome.pr_number,
            ai_score=outcome.review.overall_score if outcome.review else float(DEFAULT_SCORE),
            sonar_issues=outcome.quality.total_issues if outcome.quality else 0,
            mode=auto.mode,
            ai_threshold=auto.ai_threshold,
            sonar_threshold=auto.sonar_threshold,
            decision=decision,
            details=details,
        )

    async def _record_abort(
        self, outcome: PipelineOutcome, auto: AutoMergeConfig, step: str, exc: Exception
    ) -> None:
        if outcome.transitions[-1] is PipelineState.MERGING:
            decision: DecisionOutcome = "merge_failed"
        else:
            decision = "disabled" if not auto.enabled else "will_not_merge"
        details = f"Pipeline failed during {step} ({type(exc).__name__}): {exc}"
        await self._record(outcome, self._stopped_record(outcome, auto, decision, details))

    async def _record(self, outcome: PipelineOutcome, record: DecisionRecord) -> None:
        await self._history.append(record)
        outcome.record = record
