"""Trust-on-first-use verification of SSH host keys."""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

from ..channel import PromptChannel
from .urls import DEFAULT_SSH_PORT, SSHRemote, parse_ssh_remote

logger = logging.getLogger(__name__)

KEYSCAN_TYPES = "ed25519,rsa,ecdsa"

Scanner = Callable[[str, int], Awaitable[str]]


class HostKeyRejectedError(RuntimeError):
    """Raised when a host key was rejected, timed out, or could not be fetched."""

    def __init__(self, host: str, reason: str | None = None) -> None:
        self.host = host
        message = f"Host key verification failed for {host}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class HostKeyEntry:
    host: str
    key_type: str
    public_key: str

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.public_key)

    def to_dict(self) -> dict[str, str]:
        return {
            "host": self.host,
            "key_type": self.key_type,
            "fingerprint": self.fingerprint,
        }


def fingerprint(public_key: str) -> str:
    """OpenSSH-style ``SHA256:`` fingerprint of a base64 key blob."""

    try:
        blob = base64.b64decode(public_key.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeError):
        return "SHA256:?"
    digest = base64.b64encode(hashlib.sha256(blob).digest()).decode("ascii").rstrip("=")
    return f"SHA256:{digest}"


def _host_key_from_pattern(pattern: str) -> str:
    if pattern.startswith("[") and "]:" in pattern:
        host, _, port = pattern[1:].partition("]:")
        if port and port != str(DEFAULT_SSH_PORT):
            return f"{host.lower()}:{port}"
        return host.lower()
    return pattern.lower()


def parse_known_hosts(text: str) -> dict[str, list[HostKeyEntry]]:
    """Parse known_hosts content into entries keyed by ``host`` / ``host:port``.

    Hashed hostnames and marker lines cannot be attributed and are skipped.
    """

    table: dict[str, list[HostKeyEntry]] = {}
    for line in text.split("\n"):
        line = line.strip()
        if not line or line.startswith(("#", "@", "|")):
            continue
        fields = line.split()
        if len(fields) < 3:
            continue
        patterns, key_type, public_key = fields[0], fields[1], fields[2]
        for pattern in patterns.split(","):
            host_key = _host_key_from_pattern(pattern)
            table.setdefault(host_key, []).append(
                HostKeyEntry(host=host_key, key_type=key_type, public_key=public_key)
            )
    return table


async def scan_host_keys(host: str, port: int, *, timeout: float = 30.0) -> str:
    """Run ``ssh-keyscan`` against ``host`` and return its stdout."""

    cmd = ["ssh-keyscan", "-t", KEYSCAN_TYPES]
    if port != DEFAULT_SSH_PORT:
        cmd += ["-p", str(port)]
    cmd.append(host)

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
        start_new_session=True,
    )
    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise
    return stdout.decode("utf-8", errors="replace")


@dataclass(slots=True)
class _PendingVerification:
    task: asyncio.Task
    waiters: int = 0


class HostKeyGate:
    """Shared trust table for SSH hosts, backed by a known_hosts file.

    Concurrent verifications of the same host share a single pending
    confirmation, so the operator is prompted once. A rejected or expired
    confirmation only fails the operations waiting on it; a later operation
    starts a fresh attempt.
    """

    def __init__(
        self,
        channel: PromptChannel,
        known_hosts_path: Path,
        *,
        timeout: float = 120.0,
        scanner: Scanner | None = None,
    ) -> None:
        self._channel = channel
        self._known_hosts_path = Path(known_hosts_path)
        self._timeout = timeout
        self._scanner: Scanner = scanner or scan_host_keys
        self._lock = asyncio.Lock()
        self._pending: dict[str, _PendingVerification] = {}
        self._trusted: dict[str, list[HostKeyEntry]] = {}
        self.load()

    @property
    def known_hosts_path(self) -> Path:
        return self._known_hosts_path

    def load(self) -> None:
        if not self._known_hosts_path.exists():
            self._trusted = {}
            return
        self._trusted = parse_known_hosts(self._known_hosts_path.read_text(encoding="utf-8"))
        logger.info(
            "Loaded trusted SSH hosts",
            extra={"count": len(self._trusted), "path": str(self._known_hosts_path)},
        )

    def ensure_known_hosts(self) -> Path:
        """Create an empty owner-only trust store if none exists."""

        self._known_hosts_path.parent.mkdir(parents=True, exist_ok=True)
        if not self._known_hosts_path.exists():
            fd = os.open(self._known_hosts_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            os.close(fd)
        return self._known_hosts_path

    def is_trusted(self, host_key: str) -> bool:
        return host_key in self._trusted

    def trusted_hosts(self) -> list[dict[str, str]]:
        return [entry.to_dict() for entries in self._trusted.values() for entry in entries]

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @staticmethod
    def _remote(url: str) -> SSHRemote:
        remote = parse_ssh_remote(url)
        if remote is None:
            raise HostKeyRejectedError(url, "not an SSH remote")
        return remote

    async def verify_before_operation(self, url: str) -> bool:
        """Return True once the remote's host key is trusted.

        Blocks until the operator answers or the confirmation window expires.
        """

        remote = self._remote(url)
        key = remote.host_key

        async with self._lock:
            if key in self._trusted:
                return True
            pending = self._pending.get(key)
            if pending is None:
                task = asyncio.get_running_loop().create_task(self._confirm(remote))
                pending = _PendingVerification(task=task)
                self._pending[key] = pending
                task.add_done_callback(lambda _t, k=key, p=pending: self._forget(k, p))
                logger.info("Host key confirmation pending", extra={"host": key})
            pending.waiters += 1

        try:
            return await asyncio.shield(pending.task)
        except asyncio.CancelledError:
            if pending.waiters == 1 and not pending.task.done():
                pending.task.cancel()
            raise
        finally:
            pending.waiters -= 1

    def _forget(self, key: str, pending: _PendingVerification) -> None:
        if self._pending.get(key) is pending:
            del self._pending[key]

    async def auto_accept(self, url: str) -> None:
        """Trust the remote's current host key without asking."""

        remote = self._remote(url)
        if remote.host_key in self._trusted:
            return
        entries = await self._fetch(remote)
        if not entries:
            raise HostKeyRejectedError(remote.host_key, "no host keys returned")
        await self._remember(remote, entries)
        logger.info("Auto-accepted SSH host key", extra={"host": remote.host_key})

    async def _fetch(self, remote: SSHRemote) -> list[HostKeyEntry]:
        try:
            output = await self._scanner(remote.host, remote.port)
        except (OSError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Failed to fetch SSH host key", extra={"host": remote.host_key, "error": str(exc)}
            )
            return []
        entries = parse_known_hosts(output).get(remote.host_key, [])
        return entries

    async def _confirm(self, remote: SSHRemote) -> bool:
        entries = await self._fetch(remote)
        if not entries:
            return False

        primary = entries[0]
        payload: dict[str, Any] = {
            "host": remote.host_key,
            "key_type": primary.key_type,
            "public_key": primary.public_key,
            "fingerprint": primary.fingerprint,
            "keys": [entry.to_dict() for entry in entries],
        }
        reply = await self._channel.request("host_key", payload, self._timeout)
        if reply is None or not reply.accepted:
            logger.info(
                "SSH host key not accepted",
                extra={"host": remote.host_key, "expired": reply is None},
            )
            return False

        await self._remember(remote, entries)
        logger.info("Accepted SSH host key", extra={"host": remote.host_key})
        return True

    async def _remember(self, remote: SSHRemote, entries: list[HostKeyEntry]) -> None:
        lines = "".join(
            f"{remote.known_hosts_name} {entry.key_type} {entry.public_key}\n" for entry in entries
        )
        async with self._lock:
            if remote.host_key in self._trusted:
                return
            self.ensure_known_hosts()
            with self._known_hosts_path.open("a", encoding="utf-8") as handle:
                handle.write(lines)
            self._trusted[remote.host_key] = list(entries)


__all__ = [
    "HostKeyEntry",
    "HostKeyGate",
    "HostKeyRejectedError",
    "fingerprint",
    "parse_known_hosts",
    "scan_host_keys",
]
