"""Per-operation authentication environment for git subprocesses."""

from __future__ import annotations

import base64
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Callable, Iterable

from ..git.utils import NON_INTERACTIVE_ENV, SILENT_ENV
from .askpass import AskpassBridge
from .credentials import GitCredential, ssh_credentials_for_host, token_credential_for_host
from .host_keys import HostKeyGate, HostKeyRejectedError
from .secrets import SecretBox
from .ssh_keys import SSHKeyManager
from .urls import default_username, https_host, https_origin, is_https_url, is_ssh_url, parse_ssh_remote

logger = logging.getLogger(__name__)


class OperationKind(str, Enum):
    LOCAL_READ = "local_read"
    LOCAL_WRITE = "local_write"
    BACKGROUND_FETCH = "background_fetch"
    INTERACTIVE_WRITE = "interactive_write"

    @property
    def uses_network(self) -> bool:
        return self in (OperationKind.BACKGROUND_FETCH, OperationKind.INTERACTIVE_WRITE)

    @property
    def interactive(self) -> bool:
        return self is OperationKind.INTERACTIVE_WRITE


@dataclass(slots=True)
class GitEnvironment:
    env: dict[str, str]
    strategy: str


class EnvironmentResolver:
    """Decide between token, SSH key and unauthenticated access for a remote.

    A missing credential is not an error: the operation runs unauthenticated so
    public remotes keep working.
    """

    def __init__(
        self,
        *,
        credentials: Callable[[], Iterable[GitCredential]],
        secrets: SecretBox,
        host_keys: HostKeyGate,
        askpass: AskpassBridge | None = None,
        ssh_key_dir: Path | None = None,
        auto_accept_host_keys: bool = False,
    ) -> None:
        self._credentials = credentials
        self._secrets = secrets
        self._host_keys = host_keys
        self._askpass = askpass
        self._ssh_key_dir = ssh_key_dir
        self._auto_accept = auto_accept_host_keys

    @asynccontextmanager
    async def resolve(
        self, remote_url: str | None, kind: OperationKind
    ) -> AsyncIterator[GitEnvironment]:
        """Yield the environment for one operation.

        Ephemeral SSH key material provisioned here is removed when the block
        exits, whatever the outcome.
        """

        keys = SSHKeyManager(self._secrets, self._ssh_key_dir)
        try:
            environment = await self._build(remote_url, kind, keys)
            logger.debug(
                "Resolved git environment",
                extra={"strategy": environment.strategy, "kind": kind.value},
            )
            yield environment
        finally:
            keys.cleanup()

    async def _prompt_env(self, interactive: bool) -> dict[str, str]:
        if interactive and self._askpass is not None:
            await self._askpass.start()
            return {**NON_INTERACTIVE_ENV, **self._askpass.env()}
        return dict(SILENT_ENV)

    async def _build(
        self, remote_url: str | None, kind: OperationKind, keys: SSHKeyManager
    ) -> GitEnvironment:
        if not remote_url or not kind.uses_network:
            return GitEnvironment(env=await self._prompt_env(False), strategy="none")

        env = await self._prompt_env(kind.interactive)

        if is_ssh_url(remote_url):
            return await self._ssh_environment(remote_url, kind, keys, env)

        if is_https_url(remote_url):
            return self._token_environment(remote_url, kind, env)

        return GitEnvironment(env=env, strategy="none")

    def _token_environment(
        self, remote_url: str, kind: OperationKind, env: dict[str, str]
    ) -> GitEnvironment:
        host = https_host(remote_url)
        origin = https_origin(remote_url)
        credential = token_credential_for_host(self._credentials(), host) if host else None
        if credential is None or origin is None:
            return GitEnvironment(env=env, strategy="askpass" if kind.interactive else "none")

        token = self._secrets.decrypt(credential.token or "")
        username = credential.username or default_username(host or "")
        basic = base64.b64encode(f"{username}:{token}".encode("utf-8")).decode("ascii")
        env.update(
            {
                "GIT_CONFIG_COUNT": "1",
                "GIT_CONFIG_KEY_0": f"http.{origin}/.extraheader",
                "GIT_CONFIG_VALUE_0": f"AUTHORIZATION: basic {basic}",
            }
        )
        return GitEnvironment(env=env, strategy="token")

    async def _ssh_environment(
        self,
        remote_url: str,
        kind: OperationKind,
        keys: SSHKeyManager,
        env: dict[str, str],
    ) -> GitEnvironment:
        remote = parse_ssh_remote(remote_url)
        if remote is None:
            raise HostKeyRejectedError(remote_url, "unparseable SSH remote")

        candidates = ssh_credentials_for_host(self._credentials(), remote.host, remote.port)
        if candidates:
            keys.provision(candidates[0], port=remote.port)

        if self._auto_accept:
            await self._host_keys.auto_accept(remote_url)
        elif not await self._host_keys.verify_before_operation(remote_url):
            raise HostKeyRejectedError(remote.host_key)

        known_hosts = self._host_keys.ensure_known_hosts()
        command, extra = keys.build_command(
            known_hosts, port=remote.port, batch=not kind.interactive
        )
        env["GIT_SSH_COMMAND"] = command
        env.update(extra)
        return GitEnvironment(env=env, strategy="ssh-key" if candidates else "ssh-known-hosts")


__all__ = ["EnvironmentResolver", "GitEnvironment", "OperationKind"]
