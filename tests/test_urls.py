from __future__ import annotations

import pytest

from gitdeck_mcp.auth.urls import (
    default_username,
    https_origin,
    is_https_url,
    is_ssh_url,
    normalize_ssh_url,
    parse_credential_host,
    parse_ssh_remote,
)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("git@github.com:org/repo.git", True),
        ("ssh://git@example.com:2222/org/repo.git", True),
        ("https://github.com/org/repo.git", False),
        ("/srv/git/repo.git", False),
        ("github.com:org/repo.git", False),
        (None, False),
    ],
)
def test_is_ssh_url(url, expected) -> None:
    assert is_ssh_url(url) is expected


def test_scp_with_port_is_normalized() -> None:
    assert normalize_ssh_url("git@host.example:2222/org/repo.git") == (
        "ssh://git@host.example:2222/org/repo.git"
    )
    assert normalize_ssh_url("git@github.com:org/repo.git") == "git@github.com:org/repo.git"


def test_parse_ssh_remote_host_keys() -> None:
    default = parse_ssh_remote("git@GitHub.com:org/repo.git")
    custom = parse_ssh_remote("git@host.example:2222/org/repo.git")

    assert default is not None and custom is not None
    assert (default.user, default.host, default.port) == ("git", "github.com", 22)
    assert default.host_key == "github.com"
    assert custom.host_key == "host.example:2222"
    assert custom.known_hosts_name == "[host.example]:2222"


def test_https_helpers() -> None:
    assert is_https_url("https://gitlab.example.com/group/repo.git")
    assert https_origin("https://user@GitLab.example.com:8443/group/repo.git") == (
        "https://gitlab.example.com:8443"
    )
    assert https_origin("git@github.com:org/repo.git") is None


def test_credential_host_forms() -> None:
    assert parse_credential_host("github.com") == ("github.com", None)
    assert parse_credential_host("git.example.com:2222") == ("git.example.com", 2222)
    assert parse_credential_host("ssh://git.example.com") == ("git.example.com", 22)
    assert parse_credential_host("https://GitHub.com/") == ("github.com", None)


def test_default_username() -> None:
    assert default_username("github.com") == "x-access-token"
    assert default_username("https://github.com") == "x-access-token"
    assert default_username("gitlab.com") == "oauth2"
