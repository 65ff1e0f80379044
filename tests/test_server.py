from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

from gitdeck_mcp.config import GitdeckSettings
from gitdeck_mcp.git.runner import FakeGitRunner
from gitdeck_mcp.server import create_server


def _settings(tmp_path: Path) -> GitdeckSettings:
    (tmp_path / "repos.yaml").write_text(
        "repositories:\n  - id: app\n    path: app\n  - id: docs\n    path: docs\n",
        encoding="utf-8",
    )
    (tmp_path / "credentials.yaml").write_text("credentials: [\n", encoding="utf-8")
    return GitdeckSettings(
        workspace_path=tmp_path,
        repos_path=tmp_path / "repos.yaml",
        credentials_path=tmp_path / "credentials.yaml",
    )


def test_create_server_reports_status(monkeypatch, tmp_path: Path) -> None:
    registered: dict[str, object] = {}

    def fake_register_tools(server, **kwargs):
        registered.update(kwargs)
        return SimpleNamespace()

    monkeypatch.setattr("gitdeck_mcp.server.register_tools", fake_register_tools)
    runner = FakeGitRunner()
    runner.on("--version", stdout="git version 2.45.0\n")

    server = create_server(_settings(tmp_path), runner=runner)

    assert getattr(server, "git_metadata") == {
        "available": True,
        "version": "git version 2.45.0",
        "error": None,
    }
    assert registered["service"] is getattr(server, "git_service")
    assert registered["channel"] is getattr(server, "prompt_channel")

    payload = getattr(server, "status_snapshot")("req-1")
    json.dumps(payload)
    assert payload["repositories"]["ids"] == ["app", "docs"]
    assert payload["credentials"]["count"] == 0
    assert payload["credentials"]["error"]
    assert payload["credentials"]["secret_configured"] is False
    assert payload["prompts"] == {"pending": 0}
    assert payload["host_keys"]["trusted"] == 0
    assert payload["request_id"] == "req-1"


def test_create_server_registers_real_tools(tmp_path: Path) -> None:
    runner = FakeGitRunner()
    runner.on("--version", returncode=1, stderr="broken")

    server = create_server(_settings(tmp_path), runner=runner)

    handles = getattr(server, "tool_handles")
    assert handles.git_status is not None
    assert handles.respond_prompt is not None
    assert getattr(server, "git_metadata")["available"] is False
    assert getattr(server, "git_metadata")["error"] == "broken"
