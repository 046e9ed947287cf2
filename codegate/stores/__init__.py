"""Injected persistence for configuration, decision history, comment ids and resolutions."""

from __future__ import annotations

from dataclasses import dataclass

from .base import HISTORY_LIMIT, CommentIdStore, ConfigStore, HistoryStore, ResolutionStore
from .memory import (
    InMemoryCommentIdStore,
    InMemoryConfigStore,
    InMemoryHistoryStore,
    InMemoryResolutionStore,
)
from .sqlite import (
    SQLiteCommentIdStore,
    SQLiteConfigStore,
    SQLiteDatabase,
    SQLiteHistoryStore,
    SQLiteResolutionStore,
)

__all__ = [
    "HISTORY_LIMIT",
    "CommentIdStore",
    "ConfigStore",
    "HistoryStore",
    "InMemoryCommentIdStore",
    "InMemoryConfigStore",
    "InMemoryHistoryStore",
    "InMemoryResolutionStore",
    "ResolutionStore",
    "SQLiteDatabase",
    "StoreBundle",
    "build_stores",
]


@dataclass(slots=True)
class StoreBundle:
    config: ConfigStore
    history: HistoryStore
    comment_ids: CommentIdStore
    resolutions: ResolutionStore


def build_stores(db_path: str | None = None) -> StoreBundle:
    """Return SQLite-backed stores when ``db_path`` is set, in-memory ones otherwise."""

    if db_path:
        db = SQLiteDatabase(db_path)
        return StoreBundle(
            config=SQLiteConfigStore(db),
            history=SQLiteHistoryStore(db),
            comment_ids=SQLiteCommentIdStore(db),
            resolutions=SQLiteResolutionStore(db),
        )
    return StoreBundle(
        config=InMemoryConfigStore(),
        history=InMemoryHistoryStore(),
        comment_ids=InMemoryCommentIdStore(),
        resolutions=InMemoryResolutionStore(),
    )
