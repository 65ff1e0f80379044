"""Per-repository git operations."""

from __future__ import annotations

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

from .auth import (
    CredentialError,
    CredentialLoadError,
    EnvironmentResolver,
    HostKeyRejectedError,
    InvalidSSHKeyError,
    OperationKind,
)
from .config import GitdeckSettings
from .git.errors import (
    GitOperationError,
    branch_name_from_no_upstream,
    classify_git_error,
    classify_timeout,
    is_no_upstream_error,
)
from .git.models import (
    AheadBehind,
    BranchRecord,
    CommitRecord,
    DiffRecord,
    OperationOutput,
    StatusSummary,
)
from .git.parsers import (
    LOG_FORMAT,
    parse_ahead_behind,
    parse_branches,
    parse_diff,
    parse_log,
    parse_status,
)
from .git.runner import (
    CommandResult,
    GitCommandError,
    GitRunner,
    GitRunnerError,
    GitTimeoutError,
)
from .repos import RepositoryLoadError, RepositoryNotFoundError, RepositoryRecord, RepositoryStore

logger = logging.getLogger(__name__)

_COMMIT_HASH = re.compile(r"^[0-9a-fA-F]{4,40}$")


class DetachedHeadError(RuntimeError):
    def __init__(self) -> None:
        super().__init__(
            "You are not currently on a branch; switch to a branch before pushing."
        )


_CLASSIFIABLE = (
    DetachedHeadError,
    GitRunnerError,
    CredentialError,
    CredentialLoadError,
    InvalidSSHKeyError,
    HostKeyRejectedError,
    RepositoryNotFoundError,
    RepositoryLoadError,
    OSError,
    ValueError,
)


def _check_hash(commit_hash: str) -> str:
    value = commit_hash.strip()
    if not _COMMIT_HASH.match(value):
        raise ValueError(f"Invalid commit hash: {commit_hash!r}")
    return value


def _check_branch_name(name: str) -> str:
    value = name.strip()
    if not value or value.startswith("-"):
        raise ValueError(f"Invalid branch name: {name!r}")
    return value


async def _gather_or_cancel(*coros):
    """Like :func:`asyncio.gather`, but a failure cancels the sibling tasks."""

    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class GitService:
    """The operation surface consumed by the MCP tools.

    Every failure leaves as :class:`GitOperationError` carrying a classified
    error. Write operations on one repository run one at a time when
    ``serialize_repo_writes`` is enabled.
    """

    def __init__(
        self,
        *,
        runner: GitRunner,
        repos: RepositoryStore,
        resolver: EnvironmentResolver,
        settings: GitdeckSettings,
    ) -> None:
        self._runner = runner
        self._repos = repos
        self._resolver = resolver
        self._settings = settings
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def repos(self) -> RepositoryStore:
        return self._repos

    @asynccontextmanager
    async def _write_lock(self, repo_id: str) -> AsyncIterator[None]:
        if not self._settings.serialize_repo_writes:
            yield
            return
        lock = self._locks.setdefault(repo_id, asyncio.Lock())
        async with lock:
            yield

    @asynccontextmanager
    async def _operation(
        self, repo_id: str, name: str, kind: OperationKind, *, write: bool = False
    ) -> AsyncIterator[tuple[RepositoryRecord, dict[str, str]]]:
        try:
            repo = self._repos.get(repo_id)
            if write:
                async with self._write_lock(repo.id):
                    async with self._resolver.resolve(repo.remote_url, kind) as environment:
                        yield repo, environment.env
            else:
                async with self._resolver.resolve(repo.remote_url, kind) as environment:
                    yield repo, environment.env
        except GitOperationError:
            raise
        except _CLASSIFIABLE as exc:
            if isinstance(exc, GitTimeoutError):
                classified = classify_timeout(exc)
            else:
                classified = classify_git_error(exc)
            logger.warning(
                "Git operation failed",
                extra={"repo_id": repo_id, "operation": name, "code": classified.code.value},
            )
            raise GitOperationError(classified) from exc

    def _timeout(self, kind: OperationKind) -> float:
        if kind.uses_network:
            return self._settings.command_timeout
        return self._settings.local_command_timeout

    async def _git(
        self,
        repo: RepositoryRecord,
        args: Sequence[str],
        *,
        env: dict[str, str],
        kind: OperationKind = OperationKind.LOCAL_READ,
        silent: bool = False,
        check: bool = True,
    ) -> CommandResult:
        return await self._runner.run_with_result(
            ["-C", str(repo.path), *args],
            env=env,
            timeout=self._timeout(kind),
            silent=silent,
            check=check,
        )

    async def _current_branch(self, repo: RepositoryRecord, env: dict[str, str]) -> str | None:
        result = await self._git(
            repo, ["symbolic-ref", "--short", "-q", "HEAD"], env=env, silent=True, check=False
        )
        branch = result.stdout.strip()
        return branch if result.ok and branch else None

    async def _ahead_behind(self, repo: RepositoryRecord, env: dict[str, str]) -> AheadBehind:
        result = await self._git(
            repo,
            ["rev-list", "--left-right", "--count", "@{upstream}...HEAD"],
            env=env,
            silent=True,
            check=False,
        )
        if not result.ok:
            return AheadBehind()
        return parse_ahead_behind(result.stdout)

    async def _has_commits(self, repo: RepositoryRecord, env: dict[str, str]) -> bool:
        result = await self._git(
            repo, ["rev-parse", "--verify", "-q", "HEAD"], env=env, silent=True, check=False
        )
        return result.ok

    @staticmethod
    def _output(name: str, result: CommandResult) -> OperationOutput:
        return OperationOutput(operation=name, stdout=result.stdout, stderr=result.stderr)

    async def get_status(self, repo_id: str) -> StatusSummary:
        async with self._operation(repo_id, "status", OperationKind.LOCAL_READ) as (repo, env):
            porcelain, branch, counts = await _gather_or_cancel(
                self._git(repo, ["status", "--porcelain", "-z"], env=env),
                self._current_branch(repo, env),
                self._ahead_behind(repo, env),
            )
            return StatusSummary(
                branch=branch,
                ahead=counts.ahead,
                behind=counts.behind,
                files=parse_status(porcelain.stdout),
            )

    async def get_branch_status(self, repo_id: str) -> AheadBehind:
        async with self._operation(repo_id, "branch_status", OperationKind.LOCAL_READ) as (
            repo,
            env,
        ):
            return await self._ahead_behind(repo, env)

    async def get_diff(
        self,
        repo_id: str,
        path: str,
        *,
        include_staged: bool = True,
        context_lines: int | None = None,
        ignore_whitespace: bool = False,
    ) -> DiffRecord:
        async with self._operation(repo_id, "diff", OperationKind.LOCAL_READ) as (repo, env):
            status = await self._git(
                repo, ["status", "--porcelain", "-z", "--", path], env=env, silent=True
            )
            entries = parse_status(status.stdout)
            if not entries:
                return DiffRecord(path=path, status="unmodified", diff="")

            if any(entry.status == "untracked" for entry in entries):
                result = await self._git(
                    repo, ["diff", "--no-index", "--", "/dev/null", path], env=env, check=False
                )
                if result.returncode not in (0, 1):
                    raise GitCommandError(result.args, result.returncode, result.stdout, result.stderr)
                return parse_diff(result.stdout, path=path, status="untracked")

            if not await self._has_commits(repo, env):
                return DiffRecord(
                    path=path, status="added", diff=f"New file (no commits yet): {path}"
                )

            args = ["diff"]
            if context_lines is not None:
                args.append(f"-U{int(context_lines)}")
            if ignore_whitespace:
                args.append("--ignore-all-space")
            if include_staged:
                args.append("HEAD")
            args += ["--", path]
            result = await self._git(repo, args, env=env)
            return parse_diff(result.stdout, path=path, status=entries[0].status)

    async def fetch(self, repo_id: str) -> OperationOutput:
        kind = OperationKind.BACKGROUND_FETCH
        async with self._operation(repo_id, "fetch", kind, write=True) as (repo, env):
            result = await self._git(repo, ["fetch", "--all", "--prune"], env=env, kind=kind)
            logger.info("Fetched repository", extra={"repo_id": repo.id})
            return self._output("fetch", result)

    async def pull(self, repo_id: str) -> OperationOutput:
        kind = OperationKind.INTERACTIVE_WRITE
        async with self._operation(repo_id, "pull", kind, write=True) as (repo, env):
            result = await self._git(repo, ["pull"], env=env, kind=kind)
            logger.info("Pulled repository", extra={"repo_id": repo.id})
            return self._output("pull", result)

    async def commit(
        self, repo_id: str, message: str, paths: Sequence[str] | None = None
    ) -> OperationOutput:
        kind = OperationKind.LOCAL_WRITE
        async with self._operation(repo_id, "commit", kind, write=True) as (repo, env):
            if not message.strip():
                raise ValueError("Commit message must not be empty")
            args = ["commit", "-m", message]
            if paths:
                args += ["--", *paths]
            result = await self._git(
                repo, args, env={**env, **self._settings.git_identity_env()}, kind=kind
            )
            logger.info("Committed changes", extra={"repo_id": repo.id})
            return self._output("commit", result)

    async def push(self, repo_id: str, set_upstream: bool = False) -> OperationOutput:
        kind = OperationKind.INTERACTIVE_WRITE
        async with self._operation(repo_id, "push", kind, write=True) as (repo, env):
            branch = await self._current_branch(repo, env)
            if branch is None:
                raise DetachedHeadError()

            if set_upstream:
                result = await self._git(
                    repo, ["push", "--set-upstream", "origin", branch], env=env, kind=kind
                )
                return self._output("push", result)

            try:
                result = await self._git(repo, ["push"], env=env, kind=kind)
            except GitCommandError as exc:
                if not is_no_upstream_error(exc):
                    raise
                target = branch_name_from_no_upstream(exc) or branch
                logger.info(
                    "Retrying push with --set-upstream", extra={"repo_id": repo.id, "branch": target}
                )
                result = await self._git(
                    repo, ["push", "--set-upstream", "origin", target], env=env, kind=kind
                )
            logger.info("Pushed repository", extra={"repo_id": repo.id})
            return self._output("push", result)

    async def stage(self, repo_id: str, paths: Sequence[str]) -> OperationOutput:
        kind = OperationKind.LOCAL_WRITE
        async with self._operation(repo_id, "stage", kind, write=True) as (repo, env):
            if not paths:
                return OperationOutput(operation="stage")
            result = await self._git(repo, ["add", "--", *paths], env=env, kind=kind)
            return self._output("stage", result)

    async def unstage(self, repo_id: str, paths: Sequence[str]) -> OperationOutput:
        kind = OperationKind.LOCAL_WRITE
        async with self._operation(repo_id, "unstage", kind, write=True) as (repo, env):
            if not paths:
                return OperationOutput(operation="unstage")
            result = await self._git(
                repo, ["restore", "--staged", "--", *paths], env=env, kind=kind
            )
            return self._output("unstage", result)

    async def get_log(self, repo_id: str, limit: int = 10) -> list[CommitRecord]:
        async with self._operation(repo_id, "log", OperationKind.LOCAL_READ) as (repo, env):
            result = await self._git(
                repo, ["log", "--all", "-n", str(max(1, int(limit))), f"--format={LOG_FORMAT}"], env=env
            )
            commits = parse_log(result.stdout)
            unpushed = await self._git(
                repo, ["log", "--not", "--remotes", "--format=%H"], env=env, silent=True, check=False
            )
            hashes = set(unpushed.stdout.split()) if unpushed.ok else set()
            for commit in commits:
                commit.unpushed = commit.hash in hashes
            return commits

    async def get_commit(self, repo_id: str, commit_hash: str) -> CommitRecord | None:
        async with self._operation(repo_id, "commit_lookup", OperationKind.LOCAL_READ) as (
            repo,
            env,
        ):
            target = _check_hash(commit_hash)
            result = await self._git(
                repo, ["log", "-1", f"--format={LOG_FORMAT}", target, "--"], env=env
            )
            commits = parse_log(result.stdout)
            return commits[0] if commits else None

    async def reset_to_commit(self, repo_id: str, commit_hash: str) -> OperationOutput:
        kind = OperationKind.LOCAL_WRITE
        async with self._operation(repo_id, "reset", kind, write=True) as (repo, env):
            target = _check_hash(commit_hash)
            result = await self._git(repo, ["reset", "--hard", target], env=env, kind=kind)
            logger.info("Reset repository", extra={"repo_id": repo.id, "commit": target})
            return self._output("reset", result)

    async def get_branches(self, repo_id: str) -> list[BranchRecord]:
        async with self._operation(repo_id, "branches", OperationKind.LOCAL_READ) as (repo, env):
            result = await self._git(repo, ["branch", "-vv", "-a"], env=env, silent=True)
            branches = parse_branches(result.stdout)
            for branch in branches:
                if branch.current and branch.upstream:
                    counts = await self._ahead_behind(repo, env)
                    branch.ahead, branch.behind = counts.ahead, counts.behind
            return branches

    async def create_branch(self, repo_id: str, name: str) -> OperationOutput:
        kind = OperationKind.LOCAL_WRITE
        async with self._operation(repo_id, "create_branch", kind, write=True) as (repo, env):
            branch = _check_branch_name(name)
            result = await self._git(repo, ["checkout", "-b", branch], env=env, kind=kind)
            return self._output("create_branch", result)

    async def switch_branch(self, repo_id: str, name: str) -> OperationOutput:
        kind = OperationKind.LOCAL_WRITE
        async with self._operation(repo_id, "switch_branch", kind, write=True) as (repo, env):
            branch = _check_branch_name(name)
            result = await self._git(repo, ["checkout", branch], env=env, kind=kind)
            return self._output("switch_branch", result)


__all__ = ["DetachedHeadError", "GitService"]
