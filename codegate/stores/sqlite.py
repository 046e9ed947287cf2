"""
SQLite-backed stores.

Schema:
- app_configurations: one JSON blob per configuration type
- auto_merge_history: decision log, capped per PR
- pr_comment_ids: review comment id per (owner, repo, pr)
- merge_conflict_resolutions: per-file conflict resolutions
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generator, List

from codegate.config import CONFIG_TYPES
from codegate.models.conflict import ConflictResolution
from codegate.models.decision import DecisionRecord

from .base import HISTORY_LIMIT

SCHEMA = """
CREATE TABLE IF NOT EXISTS app_configurations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    config_type TEXT NOT NULL UNIQUE
        CHECK (config_type IN ('github', 'jira', 'ai', 'thresholds')),
    config_data TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS auto_merge_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pr_number INTEGER NOT NULL,
    ai_score REAL,
    sonar_issues INTEGER,
    mode TEXT,
    ai_threshold REAL,
    sonar_threshold REAL,
    decision TEXT CHECK (decision IN ('will_merge', 'will_not_merge', 'merged', 'merge_failed', 'disabled')),
    details TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_pr ON auto_merge_history(pr_number, id);

CREATE TABLE IF NOT EXISTS pr_comment_ids (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT NOT NULL,
    repo TEXT NOT NULL,
    pr_number INTEGER NOT NULL,
    comment_id TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(owner, repo, pr_number)
);

CREATE TABLE IF NOT EXISTS merge_conflict_resolutions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pr_number INTEGER NOT NULL,
    file_path TEXT NOT NULL,
    resolution_strategy TEXT CHECK (resolution_strategy IN ('ours', 'theirs', 'manual', 'ai_assisted')),
    resolved_content TEXT,
    has_business_logic INTEGER DEFAULT 0,
    ai_analysis TEXT,
    status TEXT CHECK (status IN ('pending', 'resolved', 'failed')) DEFAULT 'pending',
    updated_at TEXT NOT NULL,
    UNIQUE(pr_number, file_path)
);
"""


class SQLiteDatabase:
    """Owns the database file and hands out short-lived connections."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def connect(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def now() -> str:
        return datetime.now(timezone.utc).isoformat()


class SQLiteConfigStore:
    def __init__(self, db: SQLiteDatabase) -> None:
        self._db = db

    def _get(self, config_type: str) -> Dict[str, Any] | None:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT config_data FROM app_configurations WHERE config_type = ?",
                (config_type,),
            ).fetchone()
        return json.loads(row["config_data"]) if row else None

    def _save(self, config_type: str, blob: Dict[str, Any]) -> None:
        now = self._db.now()
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO app_configurations (config_type, config_data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(config_type) DO UPDATE SET
                    config_data = excluded.config_data,
                    updated_at = excluded.updated_at
                """,
                (config_type, json.dumps(blob), now, now),
            )

    async def get(self, config_type: str) -> Dict[str, Any] | None:
        if config_type not in CONFIG_TYPES:
            raise ValueError(f"Unknown configuration type '{config_type}'.")
        return await asyncio.to_thread(self._get, config_type)

    async def save(self, config_type: str, blob: Dict[str, Any]) -> None:
        if config_type not in CONFIG_TYPES:
            raise ValueError(f"Unknown configuration type '{config_type}'.")
        await asyncio.to_thread(self._save, config_type, blob)


class SQLiteHistoryStore:
    def __init__(self, db: SQLiteDatabase, limit: int = HISTORY_LIMIT) -> None:
        self._db = db
        self._limit = limit

    def _append(self, record: DecisionRecord) -> None:
        row = record.to_row()
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO auto_merge_history
                    (pr_number, ai_score, sonar_issues, mode, ai_threshold,
                     sonar_threshold, decision, details, created_at)
                VALUES (:pr_number, :ai_score, :sonar_issues, :mode, :ai_threshold,
                        :sonar_threshold, :decision, :details, :created_at)
                """,
                row,
            )
            # Evict everything older than the newest `limit` rows for this PR.
            conn.execute(
                """
                DELETE FROM auto_merge_history
                WHERE pr_number = ? AND id NOT IN (
                    SELECT id FROM auto_merge_history
                    WHERE pr_number = ? ORDER BY id DESC LIMIT ?
                )
                """,
                (record.pr_number, record.pr_number, self._limit),
            )

    def _recent(self, pr_number: int) -> List[DecisionRecord]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM auto_merge_history WHERE pr_number = ? ORDER BY id DESC LIMIT ?",
                (pr_number, self._limit),
            ).fetchall()
        return [DecisionRecord.from_row(dict(row)) for row in rows]

    async def append(self, record: DecisionRecord) -> None:
        await asyncio.to_thread(self._append, record)

    async def recent(self, pr_number: int) -> List[DecisionRecord]:
        return await asyncio.to_thread(self._recent, pr_number)


class SQLiteCommentIdStore:
    def __init__(self, db: SQLiteDatabase) -> None:
        self._db = db

    def _get(self, owner: str, repo: str, pr_number: int) -> str | None:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT comment_id FROM pr_comment_ids WHERE owner = ? AND repo = ? AND pr_number = ?",
                (owner, repo, pr_number),
            ).fetchone()
        return row["comment_id"] if row else None

    def _save(self, owner: str, repo: str, pr_number: int, comment_id: str) -> None:
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO pr_comment_ids (owner, repo, pr_number, comment_id, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(owner, repo, pr_number) DO UPDATE SET
                    comment_id = excluded.comment_id,
                    updated_at = excluded.updated_at
                """,
                (owner, repo, pr_number, comment_id, self._db.now()),
            )

    async def get(self, owner: str, repo: str, pr_number: int) -> str | None:
        return await asyncio.to_thread(self._get, owner, repo, pr_number)

    async def save(self, owner: str, repo: str, pr_number: int, comment_id: str) -> None:
        await asyncio.to_thread(self._save, owner, repo, pr_number, comment_id)


class SQLiteResolutionStore:
    def __init__(self, db: SQLiteDatabase) -> None:
        self._db = db

    @staticmethod
    def _from_row(row: sqlite3.Row) -> ConflictResolution:
        return ConflictResolution(
            pr_number=row["pr_number"],
            filename=row["file_path"],
            strategy=row["resolution_strategy"],
            resolved_content=row["resolved_content"] or "",
            status=row["status"],
            has_business_logic=bool(row["has_business_logic"]),
            ai_analysis=row["ai_analysis"],
            updated_at=row["updated_at"],
        )

    def _get(self, pr_number: int, filename: str) -> ConflictResolution | None:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM merge_conflict_resolutions WHERE pr_number = ? AND file_path = ?",
                (pr_number, filename),
            ).fetchone()
        return self._from_row(row) if row else None

    def _save(self, resolution: ConflictResolution) -> None:
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO merge_conflict_resolutions
                    (pr_number, file_path, resolution_strategy, resolved_content,
                     has_business_logic, ai_analysis, status, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(pr_number, file_path) DO UPDATE SET
                    resolution_strategy = excluded.resolution_strategy,
                    resolved_content = excluded.resolved_content,
                    has_business_logic = excluded.has_business_logic,
                    ai_analysis = excluded.ai_analysis,
                    status = excluded.status,
                    updated_at = excluded.updated_at
                """,
                (
                    resolution.pr_number,
                    resolution.filename,
                    resolution.strategy,
                    resolution.resolved_content,
                    int(resolution.has_business_logic),
                    resolution.ai_analysis,
                    resolution.status,
                    resolution.updated_at or self._db.now(),
                ),
            )

    def _for_pr(self, pr_number: int) -> List[ConflictResolution]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM merge_conflict_resolutions WHERE pr_number = ? ORDER BY file_path",
                (pr_number,),
            ).fetchall()
        return [self._from_row(row) for row in rows]

    async def get(self, pr_number: int, filename: str) -> ConflictResolution | None:
        return await asyncio.to_thread(self._get, pr_number, filename)

    async def save(self, resolution: ConflictResolution) -> None:
        await asyncio.to_thread(self._save, resolution)

    async def for_pr(self, pr_number: int) -> List[ConflictResolution]:
        return await asyncio.to_thread(self._for_pr, pr_number)
