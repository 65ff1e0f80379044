"""Remote URL helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

DEFAULT_SSH_PORT = 22

_SCP_LIKE = re.compile(r"^(?:(?P<user>[A-Za-z0-9._-]+)@)?(?P<host>[^:/\s]+):(?P<path>(?!//).+)$")
_SCP_WITH_PORT = re.compile(r"^(?P<user>[A-Za-z0-9._-]+)@(?P<host>[^:/\s]+):(?P<port>\d{1,5})/(?P<path>.+)$")


@dataclass(frozen=True, slots=True)
class SSHRemote:
    user: str | None
    host: str
    port: int = DEFAULT_SSH_PORT

    @property
    def host_key(self) -> str:
        """``host`` or ``host:port`` when the port is not the default."""

        if self.port == DEFAULT_SSH_PORT:
            return self.host
        return f"{self.host}:{self.port}"

    @property
    def known_hosts_name(self) -> str:
        """Host pattern as written in a known_hosts file."""

        if self.port == DEFAULT_SSH_PORT:
            return self.host
        return f"[{self.host}]:{self.port}"


def is_ssh_url(url: str | None) -> bool:
    if not url:
        return False
    if url.startswith("ssh://"):
        return True
    if "://" in url:
        return False
    return bool(_SCP_LIKE.match(url)) and "@" in url.split(":", 1)[0]


def is_https_url(url: str | None) -> bool:
    return bool(url) and url.lower().startswith(("https://", "http://"))


def normalize_ssh_url(url: str) -> str:
    """Rewrite ``user@host:port/path`` into ``ssh://user@host:port/path``.

    Other forms are returned unchanged.
    """

    if url.startswith("ssh://"):
        return url
    match = _SCP_WITH_PORT.match(url)
    if match:
        port = int(match.group("port"))
        if 0 < port <= 65535:
            return f"ssh://{match.group('user')}@{match.group('host')}:{port}/{match.group('path')}"
    return url


def parse_ssh_remote(url: str) -> SSHRemote | None:
    """Extract user, host and port from an SSH remote URL."""

    normalized = normalize_ssh_url(url)
    if normalized.startswith("ssh://"):
        try:
            parts = urlsplit(normalized)
            port = parts.port or DEFAULT_SSH_PORT
        except ValueError:
            return None
        if not parts.hostname:
            return None
        return SSHRemote(user=parts.username, host=parts.hostname.lower(), port=port)

    match = _SCP_LIKE.match(normalized)
    if match is None:
        return None
    return SSHRemote(user=match.group("user"), host=match.group("host").lower())


def https_origin(url: str) -> str | None:
    """``scheme://host[:port]`` of an HTTP(S) remote, without credentials."""

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return None
    netloc = parts.hostname.lower()
    if port is not None:
        netloc = f"{netloc}:{port}"
    return f"{parts.scheme}://{netloc}"


def https_host(url: str) -> str | None:
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return None
    return hostname.lower() if hostname else None


def parse_credential_host(value: str) -> tuple[str, int | None]:
    """Split a configured credential host into ``(hostname, port)``.

    Accepts bare hosts (``github.com``), ``host:port`` and URLs
    (``https://github.com``, ``ssh://git.example.com:2222``).
    """

    raw = value.strip().lower()
    if "://" in raw:
        parts = urlsplit(raw)
        try:
            port = parts.port
        except ValueError:
            port = None
        if port is None and parts.scheme == "ssh":
            port = DEFAULT_SSH_PORT
        return (parts.hostname or raw, port)
    raw = raw.rstrip("/")
    if "@" in raw:
        raw = raw.split("@", 1)[1]
    host, sep, port_text = raw.rpartition(":")
    if sep and port_text.isdigit():
        return host, int(port_text)
    return raw, None


def default_username(host: str) -> str:
    """Username paired with a token in HTTP basic auth for ``host``."""

    hostname = https_host(host) if "://" in host else host.lower()
    if hostname == "github.com":
        return "x-access-token"
    return "oauth2"


__all__ = [
    "DEFAULT_SSH_PORT",
    "SSHRemote",
    "default_username",
    "https_host",
    "https_origin",
    "is_https_url",
    "is_ssh_url",
    "normalize_ssh_url",
    "parse_credential_host",
    "parse_ssh_remote",
]
