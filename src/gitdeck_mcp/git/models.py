"""Structured records parsed from git output."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

FileStatusKind = Literal[
    "modified",
    "added",
    "deleted",
    "renamed",
    "copied",
    "untracked",
    "unmerged",
]

BranchType = Literal["local", "remote"]


@dataclass(slots=True)
class FileStatus:
    path: str
    status: FileStatusKind
    staged: bool
    old_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        if self.old_path is None:
            payload.pop("old_path")
        return payload


@dataclass(slots=True)
class CommitRecord:
    hash: str
    author_name: str
    author_email: str
    timestamp: int
    subject: str
    unpushed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class DiffRecord:
    path: str
    status: str
    diff: str
    additions: int = 0
    deletions: int = 0
    is_binary: bool = False
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class BranchRecord:
    name: str
    type: BranchType
    current: bool = False
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0
    is_worktree: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class AheadBehind:
    ahead: int = 0
    behind: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class OperationOutput:
    """Captured output of a write operation such as push or commit."""

    operation: str
    stdout: str = ""
    stderr: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class StatusSummary:
    """Working copy state returned by ``GitService.get_status``."""

    branch: str | None
    ahead: int = 0
    behind: int = 0
    files: list[FileStatus] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.files)

    def to_dict(self) -> dict[str, Any]:
        return {
            "branch": self.branch,
            "ahead": self.ahead,
            "behind": self.behind,
            "has_changes": self.has_changes,
            "files": [entry.to_dict() for entry in self.files],
        }


__all__ = [
    "AheadBehind",
    "BranchRecord",
    "BranchType",
    "CommitRecord",
    "DiffRecord",
    "FileStatus",
    "FileStatusKind",
    "OperationOutput",
    "StatusSummary",
]
