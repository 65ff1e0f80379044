from __future__ import annotations

from pathlib import Path

import pytest

from gitdeck_mcp.repos import (
    RepositoryLoadError,
    RepositoryNotFoundError,
    RepositoryStatus,
    RepositoryStore,
)


def _write_registry(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "repos.yaml"
    path.write_text(body, encoding="utf-8")
    return path


def test_load_resolves_relative_paths(tmp_path: Path) -> None:
    path = _write_registry(
        tmp_path,
        """
repositories:
  - id: app
    path: checkouts/app
    remote_url: git@github.com:org/app.git
    default_branch: main
  - id: scratch
    path: /srv/scratch
    remote_url: "  "
    status: cloning
""",
    )

    records = RepositoryStore(path).load_all()

    assert records["app"].path == (tmp_path / "checkouts" / "app").resolve()
    assert records["app"].summary()["remote_url"] == "git@github.com:org/app.git"
    assert records["scratch"].remote_url is None
    assert records["scratch"].status is RepositoryStatus.CLONING


def test_get_unknown_repository(tmp_path: Path) -> None:
    store = RepositoryStore(_write_registry(tmp_path, "repositories: []\n"))

    with pytest.raises(RepositoryNotFoundError) as excinfo:
        store.get("missing")

    assert str(excinfo.value) == "Repository not found: missing"


def test_invalid_entries_are_reported(tmp_path: Path) -> None:
    store = RepositoryStore(_write_registry(tmp_path, "repositories:\n  - id: ''\n    path: x\n"))

    with pytest.raises(RepositoryLoadError) as excinfo:
        store.load_all()

    assert "Repository #0" in str(excinfo.value)


def test_missing_registry_is_empty(tmp_path: Path) -> None:
    assert RepositoryStore(tmp_path / "none.yaml").load_all() == {}
