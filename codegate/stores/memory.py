"""In-process store implementations."""

from __future__ import annotations

import asyncio
import copy
from collections import deque
from typing import Any, Deque, Dict, List, Tuple

from codegate.config import CONFIG_TYPES
from codegate.models.conflict import ConflictResolution
from codegate.models.decision import DecisionRecord

from .base import HISTORY_LIMIT


class InMemoryConfigStore:
    def __init__(self, initial: Dict[str, Dict[str, Any]] | None = None) -> None:
        self._blobs: Dict[str, Dict[str, Any]] = {}
        for config_type, blob in (initial or {}).items():
            self._check_type(config_type)
            self._blobs[config_type] = copy.deepcopy(blob)

    @staticmethod
    def _check_type(config_type: str) -> None:
        if config_type not in CONFIG_TYPES:
            raise ValueError(f"Unknown configuration type '{config_type}'.")

    async def get(self, config_type: str) -> Dict[str, Any] | None:
        self._check_type(config_type)
        blob = self._blobs.get(config_type)
        return copy.deepcopy(blob) if blob is not None else None

    async def save(self, config_type: str, blob: Dict[str, Any]) -> None:
        self._check_type(config_type)
        self._blobs[config_type] = copy.deepcopy(blob)


class InMemoryHistoryStore:
    """Per-PR decision log; the newest record sits at the left of each deque."""

    def __init__(self, limit: int = HISTORY_LIMIT) -> None:
        self._limit = limit
        self._records: Dict[int, Deque[DecisionRecord]] = {}

    async def append(self, record: DecisionRecord) -> None:
        bucket = self._records.setdefault(record.pr_number, deque(maxlen=self._limit))
        bucket.appendleft(record)

    async def recent(self, pr_number: int) -> List[DecisionRecord]:
        return list(self._records.get(pr_number, ()))


class InMemoryCommentIdStore:
    def __init__(self) -> None:
        self._ids: Dict[Tuple[str, str, int], str] = {}

    async def get(self, owner: str, repo: str, pr_number: int) -> str | None:
        return self._ids.get((owner, repo, pr_number))

    async def save(self, owner: str, repo: str, pr_number: int, comment_id: str) -> None:
        self._ids[(owner, repo, pr_number)] = comment_id


class InMemoryResolutionStore:
    def __init__(self) -> None:
        self._resolutions: Dict[Tuple[int, str], ConflictResolution] = {}
        self._lock = asyncio.Lock()

    async def get(self, pr_number: int, filename: str) -> ConflictResolution | None:
        return self._resolutions.get((pr_number, filename))

    async def save(self, resolution: ConflictResolution) -> None:
        async with self._lock:
            self._resolutions[(resolution.pr_number, resolution.filename)] = resolution

    async def for_pr(self, pr_number: int) -> List[ConflictResolution]:
        return [res for (number, _), res in self._resolutions.items() if number == pr_number]
