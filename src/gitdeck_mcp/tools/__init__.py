"""Tool registration for gitdeck MCP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable

from fastmcp import Context, FastMCP

from ..auth.host_keys import HostKeyGate
from ..channel import PromptChannel
from ..config import GitdeckSettings
from ..git.errors import GitOperationError
from ..service import GitService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    git_status: Any
    git_diff: Any
    git_fetch: Any
    git_pull: Any
    git_commit: Any
    git_push: Any
    git_stage: Any
    git_unstage: Any
    git_log: Any
    git_reset: Any
    git_branches: Any
    git_create_branch: Any
    git_switch_branch: Any
    list_prompts: Any
    respond_prompt: Any
    trusted_hosts: Any


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)


async def _guarded(
    context: Context | None,
    operation: str,
    repo_id: str,
    call: Awaitable[dict[str, Any]],
) -> dict[str, Any]:
    try:
        payload = await call
    except GitOperationError as exc:
        _emit_log(
            context,
            "warning",
            "Git operation failed",
            extra={"operation": operation, "repo_id": repo_id, "code": exc.code.value},
        )
        return {"ok": False, "repo_id": repo_id, "error": exc.to_dict()}
    _emit_log(context, "info", "Git operation completed", extra={"operation": operation, "repo_id": repo_id})
    return {"ok": True, "repo_id": repo_id, **payload}


def register_tools(
    server: FastMCP,
    *,
    service: GitService,
    channel: PromptChannel,
    host_keys: HostKeyGate,
    settings: GitdeckSettings,
) -> ToolHandles:
    """Register gitdeck's MCP tools on the server."""

    async def _git_status(repo_id: str, context: Context | None = None) -> dict[str, Any]:
        """Working copy status: branch, ahead/behind counts and changed files."""

        async def call() -> dict[str, Any]:
            return {"status": (await service.get_status(repo_id)).to_dict()}

        return await _guarded(context, "status", repo_id, call())

    async def _git_diff(
        repo_id: str,
        path: str,
        include_staged: bool = True,
        context_lines: int | None = None,
        ignore_whitespace: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            record = await service.get_diff(
                repo_id,
                path,
                include_staged=include_staged,
                context_lines=context_lines,
                ignore_whitespace=ignore_whitespace,
            )
            return {"diff": record.to_dict()}

        return await _guarded(context, "diff", repo_id, call())

    async def _git_fetch(repo_id: str, context: Context | None = None) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            return {"result": (await service.fetch(repo_id)).to_dict()}

        return await _guarded(context, "fetch", repo_id, call())

    async def _git_pull(repo_id: str, context: Context | None = None) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            return {"result": (await service.pull(repo_id)).to_dict()}

        return await _guarded(context, "pull", repo_id, call())

    async def _git_commit(
        repo_id: str,
        message: str,
        paths: list[str] | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            return {"result": (await service.commit(repo_id, message, paths)).to_dict()}

        return await _guarded(context, "commit", repo_id, call())

    async def _git_push(
        repo_id: str, set_upstream: bool = False, context: Context | None = None
    ) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            return {"result": (await service.push(repo_id, set_upstream=set_upstream)).to_dict()}

        return await _guarded(context, "push", repo_id, call())

    async def _git_stage(
        repo_id: str, paths: list[str], context: Context | None = None
    ) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            return {"result": (await service.stage(repo_id, paths)).to_dict()}

        return await _guarded(context, "stage", repo_id, call())

    async def _git_unstage(
        repo_id: str, paths: list[str], context: Context | None = None
    ) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            return {"result": (await service.unstage(repo_id, paths)).to_dict()}

        return await _guarded(context, "unstage", repo_id, call())

    async def _git_log(
        repo_id: str,
        limit: int = 10,
        commit_hash: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            if commit_hash:
                record = await service.get_commit(repo_id, commit_hash)
                return {"commits": [record.to_dict()] if record else []}
            commits = await service.get_log(repo_id, limit)
            return {"commits": [commit.to_dict() for commit in commits]}

        return await _guarded(context, "log", repo_id, call())

    async def _git_reset(
        repo_id: str, commit_hash: str, context: Context | None = None
    ) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            return {"result": (await service.reset_to_commit(repo_id, commit_hash)).to_dict()}

        return await _guarded(context, "reset", repo_id, call())

    async def _git_branches(repo_id: str, context: Context | None = None) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            branches = await service.get_branches(repo_id)
            return {"branches": [branch.to_dict() for branch in branches]}

        return await _guarded(context, "branches", repo_id, call())

    async def _git_create_branch(
        repo_id: str, name: str, context: Context | None = None
    ) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            return {"result": (await service.create_branch(repo_id, name)).to_dict()}

        return await _guarded(context, "create_branch", repo_id, call())

    async def _git_switch_branch(
        repo_id: str, name: str, context: Context | None = None
    ) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            return {"result": (await service.switch_branch(repo_id, name)).to_dict()}

        return await _guarded(context, "switch_branch", repo_id, call())

    def _list_prompts(context: Context | None = None) -> dict[str, Any]:
        """Pending host-key and credential prompts awaiting an operator answer."""

        prompts = channel.list_pending()
        _emit_log(context, "debug", "Listing pending prompts", extra={"count": len(prompts)})
        return {"prompts": prompts, "timeout": settings.prompt_timeout}

    def _respond_prompt(
        prompt_id: str,
        accept: bool | None = None,
        answer: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        resolved = channel.respond(prompt_id, accept=accept, answer=answer)
        _emit_log(
            context,
            "info",
            "Prompt response submitted",
            extra={"prompt_id": prompt_id, "resolved": resolved},
        )
        if not resolved:
            return {"ok": False, "prompt_id": prompt_id, "error": "Prompt not found or expired"}
        return {"ok": True, "prompt_id": prompt_id}

    def _trusted_hosts(context: Context | None = None) -> dict[str, Any]:
        hosts = host_keys.trusted_hosts()
        _emit_log(context, "debug", "Listing trusted hosts", extra={"count": len(hosts)})
        return {"hosts": hosts, "known_hosts_path": str(host_keys.known_hosts_path)}

    definitions = [
        ("git_status", "Show branch, ahead/behind counts and changed files for a repository.", _git_status),
        ("git_diff", "Show the diff of a single file, truncated when oversized.", _git_diff),
        ("git_fetch", "Fetch all remotes and prune deleted refs without prompting.", _git_fetch),
        ("git_pull", "Pull from the upstream branch.", _git_pull),
        ("git_commit", "Commit staged changes, or only the given paths.", _git_commit),
        ("git_push", "Push the current branch, setting the upstream when missing.", _git_push),
        ("git_stage", "Stage the given paths.", _git_stage),
        ("git_unstage", "Unstage the given paths.", _git_unstage),
        ("git_log", "List recent commits across all refs, flagging unpushed ones.", _git_log),
        ("git_reset", "Hard-reset the working copy to a commit.", _git_reset),
        ("git_branches", "List local and remote branches with tracking information.", _git_branches),
        ("git_create_branch", "Create a branch and switch to it.", _git_create_branch),
        ("git_switch_branch", "Switch to an existing branch.", _git_switch_branch),
        ("list_prompts", "List pending host-key and credential prompts.", _list_prompts),
        ("respond_prompt", "Accept, reject or answer a pending prompt.", _respond_prompt),
        ("trusted_hosts", "List SSH hosts whose keys are trusted.", _trusted_hosts),
    ]

    registered = {
        name: server.tool(name=name, description=description)(fn)
        for name, description, fn in definitions
    }
    return ToolHandles(**registered)


__all__ = ["ToolHandles", "register_tools"]
