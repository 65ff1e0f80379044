from __future__ import annotations

from pathlib import Path

import pytest

from gitdeck_mcp.auth.credentials import (
    CredentialLoader,
    CredentialLoadError,
    CredentialType,
    ssh_credentials_for_host,
    token_credential_for_host,
)
from gitdeck_mcp.auth.secrets import CredentialError, SecretBox


def test_secret_box_round_trip() -> None:
    box = SecretBox("master-secret")
    ciphertext = box.encrypt("ghp_example")

    assert ciphertext != "ghp_example"
    assert box.decrypt(ciphertext) == "ghp_example"
    assert box.encrypt("") == ""
    assert box.decrypt("") == ""


def test_wrong_secret_cannot_decrypt() -> None:
    ciphertext = SecretBox("right").encrypt("value")

    with pytest.raises(CredentialError):
        SecretBox("wrong").decrypt(ciphertext)


def test_missing_secret_is_reported() -> None:
    box = SecretBox(None)

    assert not box.configured
    with pytest.raises(CredentialError):
        box.decrypt("gAAAAA-not-really")


def test_loader_reads_yaml(tmp_path: Path) -> None:
    path = tmp_path / "credentials.yaml"
    path.write_text(
        """
credentials:
  - name: github
    host: github.com
    type: token
    token: encrypted-token
  - name: deploy
    host: ssh://git.example.com:2222
    type: ssh
    ssh_private_key: encrypted-key
  - name: default-port
    host: git.example.com
    type: ssh
    ssh_private_key: encrypted-key
""",
        encoding="utf-8",
    )

    credentials = CredentialLoader(path).load_all()

    assert [c.name for c in credentials] == ["github", "deploy", "default-port"]
    assert credentials[0].type is CredentialType.TOKEN
    assert "encrypted-token" not in repr(credentials[0])
    assert token_credential_for_host(credentials, "GitHub.com") is credentials[0]
    assert token_credential_for_host(credentials, "gitlab.com") is None
    assert [c.name for c in ssh_credentials_for_host(credentials, "git.example.com", 2222)] == [
        "deploy"
    ]
    assert [c.name for c in ssh_credentials_for_host(credentials, "git.example.com")] == [
        "default-port"
    ]
    assert credentials[1].public_view() == {
        "name": "deploy",
        "host": "ssh://git.example.com:2222",
        "type": "ssh",
        "username": None,
        "has_passphrase": "no",
    }


def test_loader_missing_file_is_empty(tmp_path: Path) -> None:
    assert CredentialLoader(tmp_path / "absent.yaml").load_all() == []


def test_loader_collects_errors(tmp_path: Path) -> None:
    path = tmp_path / "credentials.yaml"
    path.write_text(
        "credentials:\n  - name: bad\n    host: github.com\n    type: token\n",
        encoding="utf-8",
    )

    with pytest.raises(CredentialLoadError) as excinfo:
        CredentialLoader(path).load_all()

    assert "Credential #0" in str(excinfo.value)


def test_loader_rejects_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "credentials.yaml"
    path.write_text("credentials: [unclosed", encoding="utf-8")

    with pytest.raises(CredentialLoadError):
        CredentialLoader(path).load_all()
