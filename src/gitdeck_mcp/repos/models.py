"""Repository records."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class RepositoryStatus(str, Enum):
    CLONING = "cloning"
    READY = "ready"
    ERROR = "error"


class RepositoryRecord(BaseModel):
    """A managed working copy."""

    id: str = Field(..., description="Stable identifier for the repository.")
    path: Path = Field(..., description="Filesystem path of the working copy.")
    remote_url: str | None = Field(
        default=None, description="Remote URL; local-only repositories have none."
    )
    default_branch: str | None = Field(default=None)
    status: RepositoryStatus = Field(default=RepositoryStatus.READY)
    worktree: bool = Field(default=False, description="Whether the path is a linked worktree.")

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = str(value).strip()
        if not normalized:
            raise ValueError("Repository id must not be empty")
        return normalized

    @field_validator("remote_url")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    def summary(self) -> dict[str, object]:
        return {
            "id": self.id,
            "path": str(self.path),
            "remote_url": self.remote_url,
            "default_branch": self.default_branch,
            "status": self.status.value,
            "worktree": self.worktree,
        }


__all__ = ["RepositoryRecord", "RepositoryStatus"]
