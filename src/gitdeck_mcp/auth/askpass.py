"""Askpass bridge: answers git/ssh credential prompts out of band."""

from __future__ import annotations

import asyncio
import atexit
import json
import logging
import os
import re
import shlex
import shutil
import sys
import tempfile
import time
from pathlib import Path
from typing import Callable, Iterable

from ..channel import PromptChannel
from .askpass_helper import HANDLE_ENV
from .credentials import GitCredential, token_credential_for_host
from .secrets import CredentialError, SecretBox
from .urls import default_username, https_host

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 60.0

_GIT_PROMPT = re.compile(r"^(?P<field>Username|Password) for '(?P<url>[^']+)'", re.IGNORECASE)

_PACKAGE_ROOT = Path(__file__).resolve().parents[2]


class AskpassBridge:
    """Unix-socket rendezvous between the askpass helper and the prompt channel.

    Git invokes the helper script with the prompt text; the helper sends it
    here and prints whatever answer comes back. Token credentials configured
    for the prompt's host answer HTTPS prompts directly; every other prompt is
    relayed to the operator.
    """

    def __init__(
        self,
        channel: PromptChannel,
        *,
        credentials: Callable[[], Iterable[GitCredential]],
        secrets: SecretBox,
        prompt_timeout: float = 120.0,
    ) -> None:
        self._channel = channel
        self._credentials = credentials
        self._secrets = secrets
        self._prompt_timeout = prompt_timeout
        self._cache: dict[str, tuple[str, str, float]] = {}
        self._runtime_dir: Path | None = None
        self._server: asyncio.AbstractServer | None = None
        self._start_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def socket_path(self) -> Path | None:
        return self._runtime_dir / "askpass.sock" if self._runtime_dir else None

    @property
    def script_path(self) -> Path | None:
        return self._runtime_dir / "askpass.sh" if self._runtime_dir else None

    async def start(self) -> None:
        async with self._start_lock:
            if self._server is not None:
                return
            runtime_dir = Path(tempfile.mkdtemp(prefix="gitdeck-askpass-"))
            os.chmod(runtime_dir, 0o700)
            atexit.register(shutil.rmtree, runtime_dir, True)
            socket_path = runtime_dir / "askpass.sock"
            self._server = await asyncio.start_unix_server(self._handle, path=str(socket_path))
            os.chmod(socket_path, 0o600)

            script_path = runtime_dir / "askpass.sh"
            script_path.write_text(
                "#!/bin/sh\n"
                f"PYTHONPATH={shlex.quote(str(_PACKAGE_ROOT))}${{PYTHONPATH:+:$PYTHONPATH}}\n"
                "export PYTHONPATH\n"
                f'exec {shlex.quote(sys.executable)} -m gitdeck_mcp.auth.askpass_helper "$@"\n',
                encoding="utf-8",
            )
            os.chmod(script_path, 0o700)
            self._runtime_dir = runtime_dir
            logger.info("Askpass bridge listening", extra={"runtime_dir": str(runtime_dir)})

    async def stop(self) -> None:
        server, self._server = self._server, None
        if server is not None:
            server.close()
            await server.wait_closed()
        runtime_dir, self._runtime_dir = self._runtime_dir, None
        if runtime_dir is not None:
            shutil.rmtree(runtime_dir, ignore_errors=True)
        self._cache.clear()

    def env(self) -> dict[str, str]:
        if self._runtime_dir is None:
            raise RuntimeError("Askpass bridge is not running")
        script = str(self.script_path)
        return {
            "GIT_ASKPASS": script,
            "SSH_ASKPASS": script,
            "SSH_ASKPASS_REQUIRE": "force",
            HANDLE_ENV: str(self.socket_path),
        }

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            raw = await reader.readline()
            try:
                prompt = str(json.loads(raw.decode("utf-8") or "{}").get("prompt") or "")
            except ValueError:
                prompt = ""
            answer = await self.answer(prompt)
            writer.write(json.dumps({"answer": answer}).encode("utf-8") + b"\n")
            await writer.drain()
        except ConnectionError as exc:
            logger.warning("Askpass helper disconnected", extra={"error": str(exc)})
        finally:
            writer.close()

    async def answer(self, prompt: str) -> str:
        """Resolve a single prompt; an empty string fails the auth step."""

        match = _GIT_PROMPT.match(prompt.strip())
        host = https_host(match.group("url")) if match else None
        field = match.group("field").lower() if match else None

        if host is not None and field is not None:
            stored = self._stored_answer(host, field)
            if stored is not None:
                logger.info("Askpass answered from stored credential", extra={"host": host, "field": field})
                return stored

        kind = field or "passphrase"
        logger.info("Relaying askpass prompt", extra={"host": host, "field": kind})
        reply = await self._channel.request(
            "credential",
            {"prompt": prompt.strip(), "host": host, "field": kind},
            self._prompt_timeout,
        )
        if reply is None or not reply.accepted:
            return ""
        return reply.answer or ""

    def _stored_answer(self, host: str, field: str) -> str | None:
        now = time.monotonic()
        cached = self._cache.get(host)
        if cached is not None and cached[2] > now:
            username, password, _ = cached
        else:
            self._cache.pop(host, None)
            credential = token_credential_for_host(self._credentials(), host)
            if credential is None:
                return None
            try:
                password = self._secrets.decrypt(credential.token or "")
            except CredentialError as exc:
                logger.warning("Stored credential unusable", extra={"host": host, "error": str(exc)})
                return None
            username = credential.username or default_username(host)
            self._cache[host] = (username, password, now + CACHE_TTL_SECONDS)
        return password if field == "password" else username


__all__ = ["AskpassBridge", "CACHE_TTL_SECONDS"]
