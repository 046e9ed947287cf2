"""Failure taxonomy shared by the hosting client, the AI engine and the pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")

TOKEN_SCOPE_HINT = (
    "Your GitHub token may lack required permissions. Ensure it has 'repo' scope "
    "(or 'contents:write' and 'pull_requests:write' for fine-grained tokens)."
)
POLICY_HINT = (
    "Branch protection rules may require approvals or passing status checks "
    "before this pull request can be merged."
)
CONFLICT_HINT = "The pull request has merge conflicts; resolve them before merging."
DRAFT_HINT = "The pull request is still a draft; mark it ready for review first."
RATE_LIMIT_HINT = "The service is throttling or failing; retry later."


class CodeGateError(RuntimeError):
    """Base class for classified failures."""

    kind = "error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: Any | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.hint = hint

    @property
    def user_message(self) -> str:
        message = str(self)
        return f"{message}. {self.hint}" if self.hint else message


class AuthError(CodeGateError):
    kind = "auth"


class NotFoundError(CodeGateError):
    kind = "not_found"


class RateLimitOrServerError(CodeGateError):
    kind = "rate_limit_or_server"


class ConflictError(CodeGateError):
    kind = "conflict"


class PolicyBlockedError(CodeGateError):
    kind = "policy_blocked"


class ParseError(CodeGateError):
    kind = "parse"


class ConfigurationError(CodeGateError):
    kind = "configuration"


def _message_from_detail(detail: Any) -> str:
    if isinstance(detail, dict):
        message = detail.get("message")
        if isinstance(message, str):
            return message
        error = detail.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error
    if isinstance(detail, str):
        return detail
    return ""


def classify_http_failure(
    status_code: int,
    detail: Any | None = None,
    *,
    action: str = "request",
    mergeable_state: str | None = None,
) -> CodeGateError:
    """Translate a raw HTTP failure into the taxonomy, attaching actionable guidance."""

    message = _message_from_detail(detail)
    lowered = message.lower()
    text = f"{action} failed with status {status_code}" + (f": {message}" if message else "")

    if mergeable_state == "dirty" or "conflict" in lowered:
        return ConflictError(text, status_code=status_code, detail=detail, hint=CONFLICT_HINT)
    if "draft" in lowered or mergeable_state == "draft":
        return PolicyBlockedError(text, status_code=status_code, detail=detail, hint=DRAFT_HINT)
    if status_code == 429 or status_code >= 500 or "rate limit" in lowered:
        return RateLimitOrServerError(text, status_code=status_code, detail=detail, hint=RATE_LIMIT_HINT)
    if status_code == 401:
        return AuthError(text, status_code=status_code, detail=detail, hint=TOKEN_SCOPE_HINT)
    if status_code == 403:
        if any(marker in lowered for marker in ("resource", "accessible", "token", "permission")):
            return AuthError(text, status_code=status_code, detail=detail, hint=TOKEN_SCOPE_HINT)
        if "merge" in lowered or "protected" in lowered or mergeable_state == "blocked":
            return PolicyBlockedError(text, status_code=status_code, detail=detail, hint=POLICY_HINT)
        return AuthError(text, status_code=status_code, detail=detail, hint=TOKEN_SCOPE_HINT)
    if status_code == 404:
        return NotFoundError(text, status_code=status_code, detail=detail)
    if status_code == 409:
        return ConflictError(text, status_code=status_code, detail=detail, hint=CONFLICT_HINT)
    if status_code in (405, 422):
        return PolicyBlockedError(text, status_code=status_code, detail=detail, hint=POLICY_HINT)
    return CodeGateError(text, status_code=status_code, detail=detail)


@dataclass(slots=True)
class OperationResult(Generic[T]):
    """Outcome of a tolerated operation: a value on success, a classified failure otherwise."""

    ok: bool
    value: T | None = None
    error_kind: str | None = None
    message: str | None = None
    hint: str | None = None
    status_code: int | None = None

    @classmethod
    def success(cls, value: T | None = None, message: str | None = None) -> "OperationResult[T]":
        return cls(ok=True, value=value, message=message)

    @classmethod
    def failure(cls, error: CodeGateError) -> "OperationResult[T]":
        return cls(
            ok=False,
            error_kind=error.kind,
            message=str(error),
            hint=error.hint,
            status_code=error.status_code,
        )

    def user_message(self) -> str:
        base = self.message or ("ok" if self.ok else "failed")
        return f"{base}. {self.hint}" if self.hint else base
