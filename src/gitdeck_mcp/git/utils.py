"""Environment helpers for git subprocess execution."""

from __future__ import annotations

import os
from typing import Mapping

# Ambient variables that would redirect git away from the ``-C`` working copy.
_SANITIZED_VARS = {
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "GIT_OBJECT_DIRECTORY",
    "GIT_NAMESPACE",
}

# Variables whose presence is worth logging; their values never are.
AUTH_ENV_VARS = (
    "GIT_ASKPASS",
    "SSH_ASKPASS",
    "GIT_SSH_COMMAND",
    "GIT_TERMINAL_PROMPT",
    "GITDECK_ASKPASS_HANDLE",
)

NON_INTERACTIVE_ENV: dict[str, str] = {
    "GIT_TERMINAL_PROMPT": "0",
    "GCM_INTERACTIVE": "never",
    "GIT_CONFIG_COUNT": "0",
}

SILENT_ENV: dict[str, str] = {
    **NON_INTERACTIVE_ENV,
    "GIT_ASKPASS": "",
    "SSH_ASKPASS": "",
}


def sanitize_environment(additional: Mapping[str, str | None] | None = None) -> dict[str, str]:
    """Return the ambient environment with ``additional`` layered on top.

    A ``None`` value in ``additional`` removes the variable instead of setting it.
    """

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    if additional:
        for key, value in additional.items():
            if value is None:
                env.pop(key, None)
            else:
                env[key] = value
    return env


def describe_auth_env(env: Mapping[str, str]) -> list[str]:
    """Names of the auth-related variables set in ``env``."""

    return [name for name in AUTH_ENV_VARS if env.get(name)]


__all__ = [
    "AUTH_ENV_VARS",
    "NON_INTERACTIVE_ENV",
    "SILENT_ENV",
    "describe_auth_env",
    "sanitize_environment",
]
