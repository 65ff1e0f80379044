"""Credential models and YAML loading."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Iterable

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .urls import DEFAULT_SSH_PORT, parse_credential_host


class CredentialType(str, Enum):
    TOKEN = "token"
    SSH = "ssh"


class CredentialLoadError(RuntimeError):
    """Raised when the credentials file cannot be parsed."""


class GitCredential(BaseModel):
    """A stored credential scoped to a host.

    Secret fields hold Fernet ciphertext produced by :class:`SecretBox`.
    """

    name: str = Field(..., description="Display name for the credential.")
    host: str = Field(..., description="Host the credential applies to, optionally with port or scheme.")
    type: CredentialType = Field(default=CredentialType.TOKEN)
    username: str | None = Field(default=None, description="Username paired with a token.")
    token: str | None = Field(default=None, description="Encrypted access token.", repr=False)
    ssh_private_key: str | None = Field(
        default=None, description="Encrypted SSH private key.", repr=False
    )
    ssh_passphrase: str | None = Field(
        default=None, description="Encrypted SSH key passphrase.", repr=False
    )

    @field_validator("name", "host")
    @classmethod
    def _strip(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Credential name and host must not be empty")
        return normalized

    @model_validator(mode="after")
    def _check_material(self) -> "GitCredential":
        if self.type is CredentialType.TOKEN and not self.token:
            raise ValueError(f"Token credential '{self.name}' has no token")
        if self.type is CredentialType.SSH and not self.ssh_private_key:
            raise ValueError(f"SSH credential '{self.name}' has no private key")
        return self

    @property
    def hostname(self) -> str:
        return parse_credential_host(self.host)[0]

    def public_view(self) -> dict[str, str | None]:
        return {
            "name": self.name,
            "host": self.host,
            "type": self.type.value,
            "username": self.username,
            "has_passphrase": "yes" if self.ssh_passphrase else "no",
        }


class CredentialLoader:
    """Loads credentials from a YAML document with a top-level ``credentials`` list."""

    def __init__(self, path: Path | None) -> None:
        self._path = Path(path) if path is not None else None

    @property
    def path(self) -> Path | None:
        return self._path

    def load_all(self) -> list[GitCredential]:
        if self._path is None or not self._path.exists():
            return []

        try:
            document = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise CredentialLoadError(f"Failed to parse YAML in {self._path}: {exc}") from exc

        if document is None:
            return []
        entries = document.get("credentials", []) if isinstance(document, dict) else document
        if not isinstance(entries, list):
            raise CredentialLoadError(f"Expected a list of credentials in {self._path}")

        credentials: list[GitCredential] = []
        errors: list[str] = []
        for index, entry in enumerate(entries):
            try:
                credentials.append(GitCredential.model_validate(entry))
            except ValidationError as exc:
                errors.append(f"Credential #{index} in {self._path}: {exc}")

        if errors:
            raise CredentialLoadError("; ".join(errors))
        return credentials


def token_credential_for_host(
    credentials: Iterable[GitCredential], host: str
) -> GitCredential | None:
    target = host.lower()
    for credential in credentials:
        if credential.type is CredentialType.TOKEN and credential.hostname == target:
            return credential
    return None


def ssh_credentials_for_host(
    credentials: Iterable[GitCredential], host: str, port: int = DEFAULT_SSH_PORT
) -> list[GitCredential]:
    """SSH credentials whose host (and port, when given) match the remote."""

    target = host.lower()
    matches: list[GitCredential] = []
    for credential in credentials:
        if credential.type is not CredentialType.SSH:
            continue
        cred_host, cred_port = parse_credential_host(credential.host)
        if cred_host != target:
            continue
        if (cred_port or DEFAULT_SSH_PORT) != port:
            continue
        matches.append(credential)
    return matches


__all__ = [
    "CredentialLoadError",
    "CredentialLoader",
    "CredentialType",
    "GitCredential",
    "ssh_credentials_for_host",
    "token_credential_for_host",
]
