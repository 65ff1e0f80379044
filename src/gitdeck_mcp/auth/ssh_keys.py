"""Ephemeral SSH key material for a single git operation."""

from __future__ import annotations

import logging
import os
import re
import shlex
import tempfile
from pathlib import Path

from .credentials import GitCredential
from .secrets import SecretBox
from .urls import DEFAULT_SSH_PORT

logger = logging.getLogger(__name__)

_LABEL_UNSAFE = re.compile(r"[^A-Za-z0-9_-]+")


class InvalidSSHKeyError(ValueError):
    """Raised when decrypted key material is not a private key."""


def _label(name: str) -> str:
    return _LABEL_UNSAFE.sub("-", name).strip("-")[:32] or "key"


class SSHKeyManager:
    """Owns the decrypted key file of one in-flight operation.

    Never share an instance between operations. ``cleanup`` is safe to call
    repeatedly, and the manager is a context manager that always cleans up.
    """

    def __init__(self, secrets: SecretBox, key_dir: Path | None = None) -> None:
        self._secrets = secrets
        self._key_dir = key_dir
        self._key_path: Path | None = None
        self._passphrase: str | None = None
        self._port: int | None = None

    @property
    def key_path(self) -> Path | None:
        return self._key_path

    @property
    def has_passphrase(self) -> bool:
        return bool(self._passphrase)

    @property
    def port(self) -> int | None:
        return self._port

    def provision(self, credential: GitCredential, *, port: int = DEFAULT_SSH_PORT) -> Path:
        """Decrypt ``credential`` into an owner-only temporary file."""

        if self._key_path is not None:
            self.cleanup()

        key_text = self._secrets.decrypt(credential.ssh_private_key or "").strip()
        passphrase = self._secrets.decrypt(credential.ssh_passphrase or "") or None

        if self._key_dir is not None:
            self._key_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd, raw_path = tempfile.mkstemp(
            prefix=f"gitdeck-key-{_label(credential.name)}-",
            dir=str(self._key_dir) if self._key_dir is not None else None,
        )
        key_path = Path(raw_path)
        self._key_path = key_path
        try:
            os.fchmod(fd, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(key_text + "\n")
        except BaseException:
            self.cleanup()
            raise

        first_line = key_text.split("\n", 1)[0]
        if not first_line.startswith("-----BEGIN"):
            self.cleanup()
            raise InvalidSSHKeyError(f"Credential '{credential.name}' does not contain a private key")

        self._passphrase = passphrase
        self._port = port if port != DEFAULT_SSH_PORT else None
        logger.debug(
            "Provisioned ephemeral SSH key",
            extra={"credential": credential.name, "has_passphrase": passphrase is not None},
        )
        return key_path

    def build_command(
        self, known_hosts_path: Path, *, port: int | None = None, batch: bool = False
    ) -> tuple[str, dict[str, str]]:
        """Return the ``GIT_SSH_COMMAND`` value and any extra environment.

        Without provisioned key material the command only pins the trust store.
        ``port`` applies when no key was provisioned.
        """

        if self._key_path is None and port is not None and port != DEFAULT_SSH_PORT:
            self._port = port

        parts = ["ssh", "-T"]
        if self._key_path is not None:
            parts += ["-i", shlex.quote(str(self._key_path)), "-o", "IdentitiesOnly=yes"]
        parts += [
            "-o",
            "PasswordAuthentication=no",
            "-o",
            f"UserKnownHostsFile={shlex.quote(str(known_hosts_path))}",
            "-o",
            "StrictHostKeyChecking=yes",
        ]
        if self._port is not None:
            parts += ["-p", str(self._port)]
        if batch and not self._passphrase:
            parts += ["-o", "BatchMode=yes"]

        command = " ".join(parts)
        if self._key_path is not None and self._passphrase:
            return f"sshpass -P passphrase -e {command}", {"SSHPASS": self._passphrase}
        return command, {}

    def cleanup(self) -> None:
        key_path, self._key_path = self._key_path, None
        self._passphrase = None
        self._port = None
        if key_path is None:
            return
        try:
            key_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to remove ephemeral SSH key", extra={"error": str(exc)})

    def __enter__(self) -> "SSHKeyManager":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()


__all__ = ["InvalidSSHKeyError", "SSHKeyManager"]
