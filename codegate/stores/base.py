"""Storage interfaces injected into the pipeline components."""

from __future__ import annotations

from typing import Any, Dict, List, Protocol

from codegate.models.conflict import ConflictResolution
from codegate.models.decision import DecisionRecord

HISTORY_LIMIT = 20


class ConfigStore(Protocol):
    async def get(self, config_type: str) -> Dict[str, Any] | None: ...

    async def save(self, config_type: str, blob: Dict[str, Any]) -> None: ...


class HistoryStore(Protocol):
    async def append(self, record: DecisionRecord) -> None: ...

    async def recent(self, pr_number: int) -> List[DecisionRecord]: ...


class CommentIdStore(Protocol):
    async def get(self, owner: str, repo: str, pr_number: int) -> str | None: ...

    async def save(self, owner: str, repo: str, pr_number: int, comment_id: str) -> None: ...


class ResolutionStore(Protocol):
    async def get(self, pr_number: int, filename: str) -> ConflictResolution | None: ...

    async def save(self, resolution: ConflictResolution) -> None: ...

    async def for_pr(self, pr_number: int) -> List[ConflictResolution]: ...
