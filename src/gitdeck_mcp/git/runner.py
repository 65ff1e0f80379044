"""Async runner for the git CLI."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Mapping, Sequence

from .utils import describe_auth_env, sanitize_environment

logger = logging.getLogger(__name__)

_TERMINATE_GRACE_SECONDS = 5.0


class GitRunnerError(RuntimeError):
    """Base class for git runner errors."""


class GitExecutableNotFoundError(GitRunnerError):
    """Raised when the git executable cannot be located."""


class GitCommandError(GitRunnerError):
    """Raised when git exits with a non-zero status."""

    def __init__(self, args: Sequence[str], returncode: int, stdout: str, stderr: str) -> None:
        self.args_list = tuple(args)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"Command failed with code {returncode}: {stderr or stdout}")


class GitTimeoutError(GitRunnerError):
    """Raised when git does not finish within its timeout."""

    def __init__(self, args: Sequence[str], timeout: float, *, silent: bool = False) -> None:
        self.args_list = tuple(args)
        self.timeout = timeout
        message = f"Command timed out after {int(timeout * 1000)}ms"
        if not silent:
            message = f"{message}: {' '.join(args)}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Holds the outcome of a git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """Stop ``process`` and its children, escalating to SIGKILL."""

    if process.returncode is not None:
        return
    try:
        if hasattr(os, "killpg"):
            os.killpg(process.pid, signal.SIGTERM)
        else:  # pragma: no cover - non-POSIX
            process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), _TERMINATE_GRACE_SECONDS)
    except asyncio.TimeoutError:
        try:
            if hasattr(os, "killpg"):
                os.killpg(process.pid, signal.SIGKILL)
            else:  # pragma: no cover - non-POSIX
                process.kill()
        except ProcessLookupError:
            return
        await process.wait()


class GitRunner:
    """Execute git commands asynchronously.

    ``run`` returns stdout and raises on failure. ``run_with_result`` keeps
    stdout and stderr apart for callers that need to tell partial success
    from failure, and with ``check=False`` never raises on a non-zero exit.

    Cancelling the awaiting task terminates the subprocess group.
    """

    def __init__(self, executable: Path | None = None) -> None:
        self._executable_path = self._resolve_executable(executable)

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise GitExecutableNotFoundError(f"git executable not found at {candidate}")

        binary = shutil.which("git")
        if binary is None:
            raise GitExecutableNotFoundError("git executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    async def version(self) -> CommandResult:
        return await self.run_with_result(["--version"], silent=True, check=False)

    async def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | str | None = None,
        env: Mapping[str, str | None] | None = None,
        timeout: float | None = None,
        silent: bool = False,
    ) -> str:
        result = await self.run_with_result(
            args, cwd=cwd, env=env, timeout=timeout, silent=silent, check=True
        )
        return result.stdout

    async def run_with_result(
        self,
        args: Sequence[str],
        *,
        cwd: Path | str | None = None,
        env: Mapping[str, str | None] | None = None,
        timeout: float | None = None,
        silent: bool = False,
        check: bool = True,
    ) -> CommandResult:
        result = await self._invoke(
            tuple(args), cwd=cwd, env=env, timeout=timeout, silent=silent
        )
        if check and not result.ok:
            if not silent:
                logger.error(
                    "git command failed",
                    extra={"argv": list(result.args), "returncode": result.returncode},
                )
            raise GitCommandError(result.args, result.returncode, result.stdout, result.stderr)
        return result

    async def _invoke(
        self,
        args: tuple[str, ...],
        *,
        cwd: Path | str | None,
        env: Mapping[str, str | None] | None,
        timeout: float | None,
        silent: bool,
    ) -> CommandResult:
        cmd = [str(self._executable_path), *args]
        effective_env = sanitize_environment(env)
        if silent:
            logger.debug("Running git command", extra={"auth_env": describe_auth_env(effective_env)})
        else:
            logger.info(
                "Running git command",
                extra={"argv": cmd, "auth_env": describe_auth_env(effective_env)},
            )

        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd) if cwd is not None else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=effective_env,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            raise GitExecutableNotFoundError(f"git executable not found at {cmd[0]}") from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError:
            await _terminate(process)
            raise GitTimeoutError(cmd, timeout or 0.0, silent=silent) from None
        except asyncio.CancelledError:
            await _terminate(process)
            raise

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return CommandResult(
            args=tuple(cmd),
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout,
            stderr=stderr,
            elapsed=time.monotonic() - started,
        )


Responder = Callable[[tuple[str, ...]], "CommandResult | str | BaseException"]


@dataclass(slots=True)
class _FakeRule:
    pattern: tuple[str, ...]
    response: CommandResult | str | BaseException | Responder
    once: bool = False


@dataclass(slots=True)
class FakeInvocation:
    args: tuple[str, ...]
    env: dict[str, str | None] = field(default_factory=dict)
    silent: bool = False
    timeout: float | None = None


class FakeGitRunner(GitRunner):
    """Test double that answers git invocations from scripted rules.

    A rule matches when its tokens appear contiguously in the argument vector;
    the most recently added matching rule wins.
    """

    def __init__(self, responses: Iterable[CommandResult] | None = None) -> None:  # type: ignore[override]
        self._responses = list(responses or [])
        self._rules: list[_FakeRule] = []
        self._invocations: list[FakeInvocation] = []
        self._executable_path = Path("/usr/bin/git")

    def on(
        self,
        *pattern: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        raises: BaseException | None = None,
        responder: Responder | None = None,
        once: bool = False,
    ) -> "FakeGitRunner":
        response: CommandResult | BaseException | Responder
        if raises is not None:
            response = raises
        elif responder is not None:
            response = responder
        else:
            response = CommandResult(args=(), returncode=returncode, stdout=stdout, stderr=stderr)
        self._rules.append(_FakeRule(pattern=tuple(pattern), response=response, once=once))
        return self

    @staticmethod
    def _matches(pattern: tuple[str, ...], args: tuple[str, ...]) -> bool:
        if not pattern:
            return True
        width = len(pattern)
        return any(args[index : index + width] == pattern for index in range(len(args) - width + 1))

    async def _invoke(  # type: ignore[override]
        self,
        args: tuple[str, ...],
        *,
        cwd: Path | str | None,
        env: Mapping[str, str | None] | None,
        timeout: float | None,
        silent: bool,
    ) -> CommandResult:
        self._invocations.append(
            FakeInvocation(args=args, env=dict(env or {}), silent=silent, timeout=timeout)
        )
        for rule in reversed(self._rules):
            if not self._matches(rule.pattern, args):
                continue
            if rule.once:
                self._rules.remove(rule)
            response = rule.response
            if callable(response) and not isinstance(response, (CommandResult, BaseException)):
                response = response(args)
            if isinstance(response, BaseException):
                raise response
            if isinstance(response, str):
                return CommandResult(args=("git", *args), returncode=0, stdout=response, stderr="")
            return CommandResult(
                args=("git", *args),
                returncode=response.returncode,
                stdout=response.stdout,
                stderr=response.stderr,
            )
        if self._responses:
            return self._responses.pop(0)
        return CommandResult(args=("git", *args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[FakeInvocation]:
        return self._invocations

    def calls_matching(self, *pattern: str) -> list[FakeInvocation]:
        return [call for call in self._invocations if self._matches(tuple(pattern), call.args)]


__all__ = [
    "CommandResult",
    "FakeGitRunner",
    "FakeInvocation",
    "GitCommandError",
    "GitExecutableNotFoundError",
    "GitRunner",
    "GitRunnerError",
    "GitTimeoutError",
]
