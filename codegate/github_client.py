"""GitHub API client for the quality-gate pipeline."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Sequence

import httpx

from codegate.config import GitHubConfig
from codegate.errors import (
    AuthError,
    CodeGateError,
    ConflictError,
    NotFoundError,
    OperationResult,
    CONFLICT_HINT,
    classify_http_failure,
)
from codegate.logger import get_logger, log_failure, log_timing, log_with_context
from codegate.models.pull_request import ChangedFile, Mergeability, PullRequestRef
from codegate.stores.base import CommentIdStore

logger = get_logger()

DEFAULT_ACCEPT_HEADER = "application/vnd.github+json"
DEFAULT_API_VERSION = "2022-11-28"
COMMENT_MARKER = "<!-- codegate-auto-review -->"
LEGACY_REVIEW_HEADINGS = ("## 🤖 AI Code Review for PR #", "Generated by")
PULL_LIST_LIMIT = 20
MERGE_METHODS = ("merge", "squash", "rebase")

_CANONICAL_STATES = {"clean", "dirty", "unstable", "blocked", "unknown"}
_STATE_ALIASES = {"behind": "blocked", "draft": "blocked", "has_hooks": "clean"}
_BLOCKED_REASONS = {
    "blocked": "Branch protection rules require status checks or reviews",
    "dirty": "Merge conflicts detected",
    "behind": "Head branch is behind the base branch",
    "draft": "Pull request is in draft state",
    "unstable": "Some status checks are failing",
}


class GitHubAPIError(CodeGateError):
    """Raised when a GitHub API request fails and no taxonomy class fits."""


@dataclass(frozen=True, slots=True)
class CredentialScheme:
    """One way of presenting the token in the Authorization header."""

    name: str
    render: Callable[[str], str]


DEFAULT_CREDENTIAL_SCHEMES: tuple[CredentialScheme, ...] = (
    CredentialScheme("bearer", lambda token: f"Bearer {token}"),
    CredentialScheme("token", lambda token: f"token {token}"),
)


@dataclass(slots=True)
class CommentUpsert:
    comment_id: str
    action: str  # "updated" or "created"


@dataclass(slots=True)
class MergeOutcome:
    sha: str | None
    merged: bool
    message: str


def _response_detail(response: httpx.Response) -> Any | None:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class GitHubRepositoryClient:
    """Repository-scoped GitHub operations authenticated with a personal token."""

    def __init__(
        self,
        config: GitHubConfig,
        *,
        comment_ids: CommentIdStore,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        user_agent: str = "CodeGate-Review/1.0",
        client: httpx.AsyncClient | None = None,
        credential_schemes: Sequence[CredentialScheme] = DEFAULT_CREDENTIAL_SCHEMES,
    ) -> None:
        if not credential_schemes:
            raise ValueError("At least one credential scheme is required.")
        self._config = config
        self._owner = config.owner
        self._repo = config.repo
        self._comment_ids = comment_ids
        self._schemes = tuple(credential_schemes)
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={
                "User-Agent": user_agent,
                "Accept": DEFAULT_ACCEPT_HEADER,
                "X-GitHub-Api-Version": DEFAULT_API_VERSION,
            },
        )
        self._owns_client = client is None
        self._comment_locks: Dict[tuple[str, str, int], asyncio.Lock] = {}
        self._login: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self._owner}/{self._repo}"

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self._owner}/{self._repo}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Dict[str, Any] | None = None,
        json: Any | None = None,
        action: str | None = None,
        mergeable_state: str | None = None,
    ) -> httpx.Response:
        """Send a request, walking the credential schemes while GitHub answers 403.

        The first non-403 answer (or the last 403) decides the outcome; failures,
        transport errors included, are raised as taxonomy errors.
        """

        action = action or f"{method} {url}"
        last = len(self._schemes) - 1
        for index, scheme in enumerate(self._schemes):
            headers = {"Authorization": scheme.render(self._config.token)}
            try:
                response = await self._client.request(method, url, headers=headers, params=params, json=json)
            except httpx.HTTPError as exc:
                raise classify_http_failure(503, str(exc), action=action) from exc
            if response.status_code != 403 or index == last:
                break
            logger.debug(f"{action}: 403 with '{scheme.name}' credentials, retrying with next scheme")

        if response.status_code >= 400:
            raise classify_http_failure(
                response.status_code,
                _response_detail(response),
                action=action,
                mergeable_state=mergeable_state,
            )
        return response

    async def test_connection(self) -> OperationResult[str]:
        try:
            response = await self._request("GET", self._repo_path, action="test connection")
        except CodeGateError as exc:
            log_failure(logger, "GitHub connection test failed", exc, repository=self.full_name)
            return OperationResult.failure(exc)
        return OperationResult.success(response.json().get("full_name", self.full_name))

    async def list_pull_requests(self) -> List[PullRequestRef]:
        """Newest-updated pull requests, enriched with size stats from the detail endpoint."""

        ctx_logger = log_with_context(logger, repository=self.full_name)
        with log_timing(ctx_logger, "list_pull_requests"):
            response = await self._request(
                "GET",
                f"{self._repo_path}/pulls",
                params={"state": "all", "sort": "updated", "direction": "desc", "per_page": PULL_LIST_LIMIT},
                action="list pull requests",
            )
            batch = response.json()
            if not isinstance(batch, list):
                raise GitHubAPIError(
                    "Unexpected response while listing pull requests.",
                    status_code=response.status_code,
                    detail=batch,
                )

            async def _detail(entry: Dict[str, Any]) -> PullRequestRef:
                try:
                    return await self.fetch_pull_request(int(entry["number"]))
                except CodeGateError as exc:
                    ctx_logger.warning(f"Detail fetch failed for PR #{entry.get('number')}: {exc}")
                    return PullRequestRef.from_api(entry, with_size=False)

            pulls = await asyncio.gather(*(_detail(entry) for entry in batch[:PULL_LIST_LIMIT]))
        ctx_logger.info(f"Fetched {len(pulls)} pull request(s)")
        return list(pulls)

    async def _pull_detail(self, pr_number: int) -> Dict[str, Any]:
        response = await self._request(
            "GET", f"{self._repo_path}/pulls/{pr_number}", action=f"fetch PR #{pr_number}"
        )
        return response.json()

    async def fetch_pull_request(self, pr_number: int) -> PullRequestRef:
        return PullRequestRef.from_api(await self._pull_detail(pr_number))

    async def fetch_files(self, pr_number: int) -> List[ChangedFile]:
        files: List[ChangedFile] = []
        page = 1
        while True:
            response = await self._request(
                "GET",
                f"{self._repo_path}/pulls/{pr_number}/files",
                params={"per_page": 100, "page": page},
                action=f"list files of PR #{pr_number}",
            )
            batch = response.json()
            if not isinstance(batch, list):
                raise GitHubAPIError(
                    "Unexpected response while listing pull request files.",
                    status_code=response.status_code,
                    detail=batch,
                )
            for entry in batch:
                filename = entry.get("filename")
                if not filename:
                    logger.warning(f"Skipping file entry missing filename: {entry}")
                    continue
                files.append(
                    ChangedFile(
                        filename=filename,
                        status=entry.get("status", ""),
                        patch=entry.get("patch"),
                        additions=int(entry.get("additions") or 0),
                        deletions=int(entry.get("deletions") or 0),
                    )
                )
            if len(batch) < 100:
                break
            page += 1
        return files

    async def get_mergeability(self, pr_number: int) -> Mergeability:
        """Report merge readiness; a not-yet-computed answer maps to ``unknown``."""

        return await self._mergeability_from_detail(await self._pull_detail(pr_number))

    async def _mergeability_from_detail(self, detail: Dict[str, Any]) -> Mergeability:
        raw_state = detail.get("mergeable_state") or "unknown"
        mergeable_flag = detail.get("mergeable")
        if mergeable_flag is None:
            state = "unknown"
        else:
            state = _STATE_ALIASES.get(raw_state, raw_state)
            if state not in _CANONICAL_STATES:
                state = "unknown"

        blocked_by = [_BLOCKED_REASONS[raw_state]] if raw_state in _BLOCKED_REASONS else []
        behind_by, ahead_by = await self._compare_counts(detail)
        return Mergeability(
            mergeable=mergeable_flag is True,
            state=state,
            blocked_by=blocked_by,
            behind_by=behind_by,
            ahead_by=ahead_by,
        )

    async def _compare_counts(self, detail: Dict[str, Any]) -> tuple[int, int]:
        base = (detail.get("base") or {}).get("ref")
        head = (detail.get("head") or {}).get("sha") or (detail.get("head") or {}).get("ref")
        if not base or not head:
            return 0, 0
        try:
            response = await self._request(
                "GET", f"{self._repo_path}/compare/{base}...{head}", action="compare branches"
            )
        except CodeGateError as exc:
            logger.debug(f"Compare {base}...{head} unavailable: {exc}")
            return 0, 0
        data = response.json()
        return int(data.get("behind_by") or 0), int(data.get("ahead_by") or 0)

    async def _authenticated_login(self) -> str | None:
        if self._login is None:
            try:
                response = await self._request("GET", "/user", action="fetch authenticated user")
            except CodeGateError as exc:
                logger.debug(f"Could not resolve acting identity: {exc}")
                return None
            self._login = response.json().get("login")
        return self._login

    async def _list_issue_comments(self, pr_number: int) -> List[Dict[str, Any]]:
        comments: List[Dict[str, Any]] = []
        page = 1
        while True:
            response = await self._request(
                "GET",
                f"{self._repo_path}/issues/{pr_number}/comments",
                params={"per_page": 100, "page": page},
                action=f"list comments of PR #{pr_number}",
            )
            batch = response.json()
            if not isinstance(batch, list):
                break
            comments.extend(batch)
            if len(batch) < 100:
                break
            page += 1
        return comments

    @staticmethod
    def _find_own_comment(comments: List[Dict[str, Any]], login: str | None) -> Dict[str, Any] | None:
        if not login:
            return None
        for comment in comments:
            body = comment.get("body")
            if not isinstance(body, str):
                continue
            author = (comment.get("user") or {}).get("login")
            if author != login:
                continue
            if COMMENT_MARKER in body or any(heading in body for heading in LEGACY_REVIEW_HEADINGS):
                return comment
        return None

    async def upsert_comment(self, pr_number: int, body: str) -> OperationResult[CommentUpsert]:
        """Create or update the single marker-tagged review comment on a pull request."""

        key = (self._owner, self._repo, pr_number)
        lock = self._comment_locks.setdefault(key, asyncio.Lock())
        ctx_logger = log_with_context(logger, repository=self.full_name, pr_number=pr_number)
        tagged_body = f"{COMMENT_MARKER}\n{body}"

        async with lock:
            try:
                stored_id = await self._comment_ids.get(*key)
                if stored_id:
                    try:
                        await self._request(
                            "PATCH",
                            f"{self._repo_path}/issues/comments/{stored_id}",
                            json={"body": tagged_body},
                            action="update stored comment",
                        )
                        ctx_logger.info(f"Updated review comment {stored_id}")
                        return OperationResult.success(CommentUpsert(stored_id, "updated"))
                    except (NotFoundError, AuthError) as exc:
                        ctx_logger.warning(f"Stored comment {stored_id} not writable ({exc.kind}); searching")

                login = await self._authenticated_login()
                existing = self._find_own_comment(await self._list_issue_comments(pr_number), login)
                if existing is not None:
                    comment_id = str(existing["id"])
                    await self._request(
                        "PATCH",
                        f"{self._repo_path}/issues/comments/{comment_id}",
                        json={"body": tagged_body},
                        action="update review comment",
                    )
                    action = "updated"
                else:
                    response = await self._request(
                        "POST",
                        f"{self._repo_path}/issues/{pr_number}/comments",
                        json={"body": tagged_body},
                        action="create review comment",
                    )
                    comment_id = str(response.json().get("id"))
                    action = "created"
                await self._comment_ids.save(*key, comment_id)
            except CodeGateError as exc:
                log_failure(logger, "Failed to post review comment", exc, repository=self.full_name, pr_number=pr_number)
                return OperationResult.failure(exc)

        ctx_logger.info(f"Review comment {comment_id} {action}")
        return OperationResult.success(CommentUpsert(comment_id, action))

    async def merge_pr(
        self,
        pr_number: int,
        strategy: str = "squash",
        *,
        commit_title: str | None = None,
    ) -> OperationResult[MergeOutcome]:
        """Merge the pull request; failures come back classified with guidance attached."""

        if strategy not in MERGE_METHODS:
            raise ValueError(f"Unsupported merge strategy '{strategy}'.")
        ctx_logger = log_with_context(logger, repository=self.full_name, pr_number=pr_number)

        try:
            detail = await self._pull_detail(pr_number)
            mergeability = await self._mergeability_from_detail(detail)
            if mergeability.has_conflicts:
                raise ConflictError(
                    f"PR #{pr_number} cannot be merged: mergeable_state is dirty",
                    status_code=None,
                    hint=CONFLICT_HINT,
                )

            payload: Dict[str, Any] = {"merge_method": strategy}
            if commit_title:
                payload["commit_title"] = commit_title
            response = await self._request(
                "PUT",
                f"{self._repo_path}/pulls/{pr_number}/merge",
                json=payload,
                action=f"merge PR #{pr_number}",
                mergeable_state=detail.get("mergeable_state"),
            )
        except CodeGateError as exc:
            log_failure(logger, "Merge failed", exc, repository=self.full_name, pr_number=pr_number)
            return OperationResult.failure(exc)

        data = response.json() if response.content else {}
        ctx_logger.info(f"PR #{pr_number} merged ({strategy})")
        return OperationResult.success(
            MergeOutcome(sha=data.get("sha"), merged=bool(data.get("merged", True)), message=data.get("message", "")),
            message=f"PR #{pr_number} merged",
        )

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
