"""Configuration management for gitdeck."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GitdeckSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    git_path: str | None = Field(default=None, validation_alias="GITDECK_GIT_PATH")
    workspace_path: Path = Field(default=Path("./workspace"), validation_alias="GITDECK_WORKSPACE")
    known_hosts_path: Path | None = Field(default=None, validation_alias="GITDECK_KNOWN_HOSTS_PATH")
    ssh_key_dir: Path | None = Field(default=None, validation_alias="GITDECK_SSH_KEY_DIR")
    secret_key: str | None = Field(default=None, validation_alias="GITDECK_SECRET_KEY")
    credentials_path: Path = Field(
        default=Path("./credentials.yaml"), validation_alias="GITDECK_CREDENTIALS_PATH"
    )
    repos_path: Path = Field(default=Path("./repos.yaml"), validation_alias="GITDECK_REPOS_PATH")
    log_level: str = Field(default="INFO", validation_alias="GITDECK_LOG_LEVEL")
    command_timeout: float = Field(default=300.0, validation_alias="GITDECK_COMMAND_TIMEOUT")
    local_command_timeout: float = Field(
        default=60.0, validation_alias="GITDECK_LOCAL_COMMAND_TIMEOUT"
    )
    host_key_timeout: float = Field(default=120.0, validation_alias="GITDECK_HOST_KEY_TIMEOUT")
    prompt_timeout: float = Field(default=120.0, validation_alias="GITDECK_PROMPT_TIMEOUT")
    auto_accept_host_keys: bool = Field(
        default=False, validation_alias="GITDECK_AUTO_ACCEPT_HOST_KEYS"
    )
    git_identity_name: str | None = Field(default=None, validation_alias="GITDECK_GIT_IDENTITY_NAME")
    git_identity_email: str | None = Field(
        default=None, validation_alias="GITDECK_GIT_IDENTITY_EMAIL"
    )
    serialize_repo_writes: bool = Field(
        default=True, validation_alias="GITDECK_SERIALIZE_REPO_WRITES"
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "GITDECK_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator(
        "command_timeout", "local_command_timeout", "host_key_timeout", "prompt_timeout"
    )
    @classmethod
    def _validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Timeouts must be positive numbers of seconds")
        return value

    @property
    def resolved_known_hosts_path(self) -> Path:
        """Trust store location, defaulting to ``<workspace>/config/known_hosts``."""

        if self.known_hosts_path is not None:
            return self.known_hosts_path
        return self.workspace_path / "config" / "known_hosts"

    def git_identity_env(self) -> dict[str, str]:
        """Return the commit identity variables, or an empty dict when unset."""

        if not self.git_identity_name and not self.git_identity_email:
            return {}
        name = self.git_identity_name or ""
        email = self.git_identity_email or ""
        return {
            "GIT_AUTHOR_NAME": name,
            "GIT_AUTHOR_EMAIL": email,
            "GIT_COMMITTER_NAME": name,
            "GIT_COMMITTER_EMAIL": email,
        }


@lru_cache(maxsize=1)
def get_settings() -> GitdeckSettings:
    """Return cached settings instance."""

    settings = GitdeckSettings()
    settings.workspace_path = settings.workspace_path.expanduser().resolve()
    settings.credentials_path = settings.credentials_path.expanduser().resolve()
    settings.repos_path = settings.repos_path.expanduser().resolve()
    if settings.known_hosts_path is not None:
        settings.known_hosts_path = settings.known_hosts_path.expanduser().resolve()
    if settings.ssh_key_dir is not None:
        settings.ssh_key_dir = settings.ssh_key_dir.expanduser().resolve()
    return settings


__all__ = ["GitdeckSettings", "get_settings"]
