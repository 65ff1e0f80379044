"""FastMCP server bootstrap for gitdeck."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .auth import (
    AskpassBridge,
    CredentialLoader,
    CredentialLoadError,
    EnvironmentResolver,
    HostKeyGate,
    SecretBox,
)
from .channel import PromptChannel
from .config import GitdeckSettings, get_settings
from .git import GitRunner
from .repos import RepositoryLoadError, RepositoryStore
from .service import GitService
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the gitdeck server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def create_server(
    settings: Optional[GitdeckSettings] = None,
    runner: GitRunner | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the git tools and status resource."""

    settings = settings or get_settings()

    git_metadata: dict[str, object] = {"available": False, "version": None, "error": None}
    if runner is None:
        runner = GitRunner(Path(settings.git_path) if settings.git_path else None)
    try:
        version_result = _run_sync(runner.version())
        git_metadata["available"] = version_result.ok
        if version_result.ok:
            git_metadata["version"] = version_result.stdout.strip()
        else:
            git_metadata["error"] = version_result.stderr.strip() or "git --version failed"
    except OSError as exc:
        git_metadata["error"] = str(exc)

    secrets = SecretBox(settings.secret_key)
    credential_loader = CredentialLoader(settings.credentials_path)
    repos = RepositoryStore(settings.repos_path)
    channel = PromptChannel()
    host_keys = HostKeyGate(
        channel, settings.resolved_known_hosts_path, timeout=settings.host_key_timeout
    )
    askpass = AskpassBridge(
        channel,
        credentials=credential_loader.load_all,
        secrets=secrets,
        prompt_timeout=settings.prompt_timeout,
    )
    resolver = EnvironmentResolver(
        credentials=credential_loader.load_all,
        secrets=secrets,
        host_keys=host_keys,
        askpass=askpass,
        ssh_key_dir=settings.ssh_key_dir,
        auto_accept_host_keys=settings.auto_accept_host_keys,
    )
    service = GitService(runner=runner, repos=repos, resolver=resolver, settings=settings)

    server = FastMCP(
        name="gitdeck MCP",
        version=__version__,
        instructions=(
            "gitdeck runs git operations on managed working copies. Host-key and "
            "credential prompts raised by an operation appear in list_prompts and "
            "are answered with respond_prompt."
        ),
    )

    handles = register_tools(
        server,
        service=service,
        channel=channel,
        host_keys=host_keys,
        settings=settings,
    )

    def status_snapshot(request_id: object = None) -> dict[str, object]:
        try:
            repo_ids = sorted(repos.load_all().keys())
            repo_error: str | None = None
        except RepositoryLoadError as exc:
            repo_ids = []
            repo_error = str(exc)

        try:
            credential_count = len(credential_loader.load_all())
            credential_error: str | None = None
        except CredentialLoadError as exc:
            credential_count = 0
            credential_error = str(exc)

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "git": {"path": str(runner.executable), **git_metadata},
            "repositories": {"count": len(repo_ids), "ids": repo_ids, "error": repo_error},
            "credentials": {
                "count": credential_count,
                "secret_configured": secrets.configured,
                "error": credential_error,
            },
            "prompts": {"pending": len(channel.list_pending())},
            "host_keys": {
                "trusted": len(host_keys.trusted_hosts()),
                "pending": host_keys.pending_count,
                "auto_accept": settings.auto_accept_host_keys,
            },
            "request_id": request_id,
        }
        return payload

    @server.resource(
        "resource://gitdeck/status",
        name="gitdeck_status",
        title="gitdeck MCP Status",
        description="Provides the current runtime status for the gitdeck MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing basic runtime state."""

        return json.dumps(status_snapshot(getattr(context, "request_id", None)))

    setattr(server, "git_service", service)
    setattr(server, "git_metadata", git_metadata)
    setattr(server, "prompt_channel", channel)
    setattr(server, "host_key_gate", host_keys)
    setattr(server, "askpass_bridge", askpass)
    setattr(server, "tool_handles", handles)
    setattr(server, "status_snapshot", status_snapshot)
    return server


def main() -> None:
    """Entry point for running the gitdeck MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching gitdeck MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "git_available": getattr(server, "git_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
