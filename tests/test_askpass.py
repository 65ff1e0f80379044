from __future__ import annotations

import asyncio
import os
import stat

import pytest

from gitdeck_mcp.auth import askpass_helper
from gitdeck_mcp.auth.askpass import AskpassBridge
from gitdeck_mcp.auth.credentials import GitCredential
from gitdeck_mcp.auth.secrets import SecretBox
from gitdeck_mcp.channel import PromptChannel

BOX = SecretBox("askpass-secret")


def _bridge(channel: PromptChannel, credentials: list[GitCredential] | None = None) -> AskpassBridge:
    return AskpassBridge(
        channel,
        credentials=lambda: list(credentials or []),
        secrets=BOX,
        prompt_timeout=5,
    )


def test_stored_token_answers_https_prompts() -> None:
    calls: list[int] = []
    credential = GitCredential(name="gh", host="github.com", token=BOX.encrypt("tok-123"))

    def load() -> list[GitCredential]:
        calls.append(1)
        return [credential]

    channel = PromptChannel()
    bridge = AskpassBridge(channel, credentials=load, secrets=BOX)

    async def scenario() -> tuple[str, str]:
        username = await bridge.answer("Username for 'https://github.com': ")
        password = await bridge.answer("Password for 'https://x-access-token@github.com': ")
        return username, password

    assert asyncio.run(scenario()) == ("x-access-token", "tok-123")
    assert len(calls) == 1
    assert channel.list_pending() == []


def test_unknown_prompt_is_relayed_and_rejection_is_empty() -> None:
    channel = PromptChannel()
    bridge = _bridge(channel)

    async def scenario() -> str:
        task = asyncio.create_task(bridge.answer("Enter passphrase for key '/tmp/k': "))
        for _ in range(100):
            pending = channel.list_pending()
            if pending:
                break
            await asyncio.sleep(0.01)
        prompt = pending[0]
        assert prompt["kind"] == "credential"
        assert prompt["payload"]["field"] == "passphrase"
        channel.respond(prompt["id"], accept=False)
        return await task

    assert asyncio.run(scenario()) == ""


def test_socket_round_trip_through_helper() -> None:
    channel = PromptChannel()
    bridge = _bridge(channel)

    async def scenario() -> tuple[str, dict[str, str]]:
        await bridge.start()
        env = bridge.env()
        loop = asyncio.get_running_loop()
        reply = loop.run_in_executor(
            None,
            askpass_helper.request_answer,
            env[askpass_helper.HANDLE_ENV],
            "Password for 'https://gitlab.example.com': ",
        )
        for _ in range(200):
            pending = channel.list_pending()
            if pending:
                break
            await asyncio.sleep(0.01)
        assert pending[0]["payload"]["host"] == "gitlab.example.com"
        channel.respond(pending[0]["id"], answer="typed-secret")
        answer = await reply
        runtime = {
            "script": env["GIT_ASKPASS"],
            "socket": env[askpass_helper.HANDLE_ENV],
            "require": env["SSH_ASKPASS_REQUIRE"],
        }
        script_mode = stat.S_IMODE(os.stat(runtime["script"]).st_mode)
        socket_mode = stat.S_IMODE(os.stat(runtime["socket"]).st_mode)
        runtime["modes"] = f"{script_mode:o}/{socket_mode:o}"
        await bridge.stop()
        return answer, runtime

    answer, runtime = asyncio.run(scenario())

    assert answer == "typed-secret"
    assert runtime["require"] == "force"
    assert runtime["modes"] == "700/600"
    assert not os.path.exists(runtime["script"])
    assert not bridge.running


def test_env_requires_running_bridge() -> None:
    bridge = _bridge(PromptChannel())

    with pytest.raises(RuntimeError):
        bridge.env()


def test_helper_without_handle_fails_closed(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.delenv(askpass_helper.HANDLE_ENV, raising=False)

    assert askpass_helper.main(["Password: "]) == 1
    captured = capsys.readouterr()
    assert captured.out == "\n"
    assert "no handle" in captured.err


def test_helper_unreachable_socket(
    tmp_path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv(askpass_helper.HANDLE_ENV, str(tmp_path / "missing.sock"))

    assert askpass_helper.main(["Password: "]) == 1
    assert capsys.readouterr().out == "\n"
