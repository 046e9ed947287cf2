"""Snapshots of pull requests and their changed files."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal

PullRequestState = Literal["open", "closed", "merged"]
MergeableState = Literal["clean", "dirty", "unstable", "blocked", "unknown"]

JAVA_EXTENSIONS = (".java", ".kt", ".groovy", ".scala")


@dataclass(slots=True, frozen=True)
class SizeStats:
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0


@dataclass(slots=True, frozen=True)
class PullRequestRef:
    number: int
    title: str
    author: str
    state: PullRequestState
    head_ref: str
    base_ref: str
    head_sha: str | None = None
    body: str | None = None
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    labels: tuple[str, ...] = ()
    updated_at: str | None = None

    @property
    def size(self) -> SizeStats:
        return SizeStats(self.additions, self.deletions, self.changed_files)

    @classmethod
    def from_api(cls, data: Dict[str, Any], *, with_size: bool = True) -> "PullRequestRef":
        state = "merged" if data.get("merged_at") else data.get("state", "open")
        head = data.get("head") or {}
        base = data.get("base") or {}
        return cls(
            number=int(data["number"]),
            title=data.get("title") or "",
            author=(data.get("user") or {}).get("login") or "unknown",
            state=state,
            head_ref=head.get("ref") or "",
            base_ref=base.get("ref") or "",
            head_sha=head.get("sha"),
            body=data.get("body"),
            additions=int(data.get("additions") or 0) if with_size else 0,
            deletions=int(data.get("deletions") or 0) if with_size else 0,
            changed_files=int(data.get("changed_files") or 0) if with_size else 0,
            labels=tuple(label.get("name", "") for label in data.get("labels") or []),
            updated_at=data.get("updated_at"),
        )


@dataclass(slots=True, frozen=True)
class ChangedFile:
    filename: str
    status: str
    patch: str | None = None
    additions: int = 0
    deletions: int = 0

    @property
    def is_java(self) -> bool:
        return self.filename.lower().endswith(JAVA_EXTENSIONS)

    @property
    def looks_like_test(self) -> bool:
        path = "/" + self.filename.lower()
        stem = self.filename.rsplit("/", 1)[-1].split(".", 1)[0]
        return (
            "/test/" in path
            or "/tests/" in path
            or stem.lower().startswith("test_")
            or stem.endswith(("Test", "Tests", "IT", "_test", "Spec"))
        )


@dataclass(slots=True)
class Mergeability:
    mergeable: bool
    state: MergeableState
    blocked_by: List[str] = field(default_factory=list)
    behind_by: int = 0
    ahead_by: int = 0

    @property
    def has_conflicts(self) -> bool:
        return self.state == "dirty"
