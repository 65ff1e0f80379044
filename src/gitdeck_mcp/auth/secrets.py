"""Symmetric encryption of stored credential secrets."""

from __future__ import annotations

import base64

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

_KEY_SALT = b"gitdeck-credential-salt-v1"


class CredentialError(RuntimeError):
    """Raised when a stored secret cannot be decrypted or no secret is configured."""


def _derive_key(secret: str) -> bytes:
    kdf = Scrypt(salt=_KEY_SALT, length=32, n=2**14, r=8, p=1)
    return base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8")))


class SecretBox:
    """Fernet encryption keyed from the configured master secret."""

    def __init__(self, secret: str | None) -> None:
        self._fernet = Fernet(_derive_key(secret)) if secret else None

    @property
    def configured(self) -> bool:
        return self._fernet is not None

    def _require(self) -> Fernet:
        if self._fernet is None:
            raise CredentialError("GITDECK_SECRET_KEY must be configured to use stored credentials")
        return self._fernet

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return ""
        return self._require().encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext:
            return ""
        try:
            return self._require().decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as exc:
            raise CredentialError("Stored credential could not be decrypted") from exc


__all__ = ["CredentialError", "SecretBox"]
