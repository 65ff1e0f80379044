"""Read-only repository registry loaded from YAML."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import RepositoryRecord


class RepositoryLoadError(RuntimeError):
    """Raised when the repository registry cannot be parsed."""


class RepositoryNotFoundError(LookupError):
    """Raised when an unknown repository id is requested."""

    def __init__(self, repo_id: str) -> None:
        self.repo_id = repo_id
        super().__init__(f"Repository not found: {repo_id}")


class RepositoryStore:
    """Loads repository records from ``repos.yaml``.

    The document holds a top-level ``repositories`` list. Relative paths are
    resolved against the file's directory. The file is re-read on each call so
    edits are picked up without a restart.
    """

    def __init__(self, path: Path | None) -> None:
        self._path = Path(path) if path is not None else None

    @property
    def path(self) -> Path | None:
        return self._path

    def load_all(self) -> dict[str, RepositoryRecord]:
        if self._path is None or not self._path.exists():
            return {}

        try:
            document = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise RepositoryLoadError(f"Failed to parse YAML in {self._path}: {exc}") from exc

        if document is None:
            return {}
        entries = document.get("repositories", []) if isinstance(document, dict) else document
        if not isinstance(entries, list):
            raise RepositoryLoadError(f"Expected a list of repositories in {self._path}")

        base = self._path.parent
        records: dict[str, RepositoryRecord] = {}
        errors: list[str] = []
        for index, entry in enumerate(entries):
            try:
                record = RepositoryRecord.model_validate(entry)
            except ValidationError as exc:
                errors.append(f"Repository #{index} in {self._path}: {exc}")
                continue
            if not record.path.is_absolute():
                record.path = (base / record.path).resolve()
            records[record.id] = record

        if errors:
            raise RepositoryLoadError("; ".join(errors))
        return records

    def get(self, repo_id: str) -> RepositoryRecord:
        try:
            return self.load_all()[str(repo_id)]
        except KeyError as exc:
            raise RepositoryNotFoundError(str(repo_id)) from exc


__all__ = ["RepositoryLoadError", "RepositoryNotFoundError", "RepositoryStore"]
