"""Classification of git failure text into a closed set of error codes."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


class GitErrorCode(str, Enum):
    AUTHENTICATION_FAILURE = "authentication-failure"
    NOT_FOUND = "not-found"
    PERMISSION_DENIED = "permission-denied"
    PUSH_REJECTED = "push-rejected"
    MERGE_CONFLICT = "merge-conflict"
    NO_UPSTREAM = "no-upstream"
    TIMEOUT = "timeout"
    NOT_A_REPOSITORY = "not-a-repository"
    LOCK_CONTENTION = "lock-contention"
    DETACHED_HEAD = "detached-head"
    BRANCH_EXISTS = "branch-exists"
    BRANCH_NOT_FOUND = "branch-not-found"
    UNCOMMITTED_CHANGES = "uncommitted-changes"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class ClassifiedError:
    code: GitErrorCode
    summary: str
    detail: str
    status_code: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "summary": self.summary,
            "detail": self.detail,
            "status_code": self.status_code,
        }


@dataclass(frozen=True, slots=True)
class _Category:
    code: GitErrorCode
    summary: str
    status_code: int
    patterns: tuple[re.Pattern[str], ...]


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(pattern, re.IGNORECASE | re.MULTILINE) for pattern in patterns)


# Order matters: the first matching category wins.
_CATEGORIES: tuple[_Category, ...] = (
    _Category(
        GitErrorCode.AUTHENTICATION_FAILURE,
        "Git authentication failed. Check the credentials configured for this host.",
        401,
        _compile(
            r"authentication failed",
            r"could not read username",
            r"could not read password",
            r"invalid username or password",
            r"invalid credentials",
            r"terminal prompts disabled",
        ),
    ),
    _Category(
        GitErrorCode.NOT_FOUND,
        "Repository not found or the remote host could not be reached.",
        404,
        _compile(
            r"repository not found",
            r"repository '[^']*' not found",
            r"could not resolve host",
            r"does not appear to be a git repository",
        ),
    ),
    _Category(
        GitErrorCode.PERMISSION_DENIED,
        "Permission denied. Check your access to the repository.",
        403,
        _compile(r"permission denied", r"host key verification failed"),
    ),
    _Category(
        GitErrorCode.PUSH_REJECTED,
        "Push rejected. Pull the remote changes first, then push again.",
        409,
        _compile(
            r"\[rejected\]",
            r"non-fast-forward",
            r"updates were rejected",
            r"failed to push some refs",
        ),
    ),
    _Category(
        GitErrorCode.MERGE_CONFLICT,
        "Merge conflict detected. Resolve the conflicts before continuing.",
        409,
        _compile(
            r"^CONFLICT \(",
            r"automatic merge failed",
            r"fix conflicts",
            r"unmerged files",
            r"merge conflict in",
        ),
    ),
    _Category(
        GitErrorCode.NO_UPSTREAM,
        "No upstream branch configured. Push with --set-upstream first.",
        400,
        _compile(
            r"has no upstream branch",
            r"no upstream configured",
            r"no tracking information",
        ),
    ),
    _Category(
        GitErrorCode.TIMEOUT,
        "The git operation timed out.",
        504,
        _compile(r"timed out"),
    ),
    _Category(
        GitErrorCode.NOT_A_REPOSITORY,
        "Not a valid git repository.",
        400,
        _compile(r"not a git repository"),
    ),
    _Category(
        GitErrorCode.LOCK_CONTENTION,
        "Another git process is using this repository. Try again shortly.",
        409,
        _compile(
            r"index\.lock",
            r"unable to create '[^']*\.lock'",
            r"another git process seems to be running",
        ),
    ),
    _Category(
        GitErrorCode.DETACHED_HEAD,
        "HEAD is detached. Switch to a branch before continuing.",
        400,
        _compile(r"not currently on a branch", r"HEAD detached"),
    ),
    _Category(
        GitErrorCode.BRANCH_EXISTS,
        "A branch with that name already exists.",
        409,
        _compile(r"a branch named '[^']*' already exists"),
    ),
    _Category(
        GitErrorCode.BRANCH_NOT_FOUND,
        "Branch or reference not found.",
        404,
        _compile(r"pathspec '[^']*' did not match any file", r"invalid reference"),
    ),
    _Category(
        GitErrorCode.UNCOMMITTED_CHANGES,
        "Uncommitted local changes would be overwritten. Commit or stash them first.",
        409,
        _compile(
            r"local changes to the following files would be overwritten",
            r"commit your changes or stash them",
        ),
    ),
)

_UNKNOWN_SUMMARY = "A git operation failed."

_COMMAND_FAILED_PREFIX = re.compile(r"^Command failed with code -?\d+:\s*")

_NOISE_LINES = _compile(
    r"^\s*(remote:\s*)?(counting|compressing|enumerating|writing|receiving|resolving) (objects|deltas)",
    r"^\s*remote:\s*total \d+",
    r"^\s*\*?\s*\[new (branch|tag)\]\s+.*->",
    r"^\s*\+?\s*[0-9a-f]{7,40}\.{2,3}[0-9a-f]{7,40}\s+\S+\s+->\s+\S+",
)

_BLANK_RUNS = re.compile(r"\n{3,}")

_NO_UPSTREAM_BRANCH = re.compile(r"The current branch (.+?) has no upstream branch", re.IGNORECASE)


def _coerce_text(error: object) -> str:
    if isinstance(error, str):
        return error
    if isinstance(error, Mapping):
        message = error.get("message") or error.get("error")
        return str(message) if message is not None else str(error)
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    try:
        return str(error)
    except Exception:  # pragma: no cover - pathological __str__
        return type(error).__name__


def clean_error_text(text: str) -> str:
    """Strip the command prefix and progress noise from raw git output."""

    text = _COMMAND_FAILED_PREFIX.sub("", text.strip())
    kept = [line for line in text.split("\n") if not any(p.search(line) for p in _NOISE_LINES)]
    return _BLANK_RUNS.sub("\n\n", "\n".join(kept)).strip()


def classify_git_error(error: object) -> ClassifiedError:
    """Map an exception or raw failure text to a :class:`ClassifiedError`.

    Never raises; unrecognised input yields :attr:`GitErrorCode.UNKNOWN`.
    """

    detail = clean_error_text(_coerce_text(error))
    for category in _CATEGORIES:
        if any(pattern.search(detail) for pattern in category.patterns):
            return ClassifiedError(
                code=category.code,
                summary=category.summary,
                detail=detail,
                status_code=category.status_code,
            )
    return ClassifiedError(
        code=GitErrorCode.UNKNOWN, summary=_UNKNOWN_SUMMARY, detail=detail, status_code=500
    )


def classify_timeout(error: object) -> ClassifiedError:
    """Classify a failure already known to be a timeout.

    The text of a timed-out command can mention anything (a commit message, a
    path), so it is kept as detail but never matched against the categories.
    """

    category = next(item for item in _CATEGORIES if item.code is GitErrorCode.TIMEOUT)
    return ClassifiedError(
        code=category.code,
        summary=category.summary,
        detail=clean_error_text(_coerce_text(error)),
        status_code=category.status_code,
    )


def is_no_upstream_error(error: object) -> bool:
    return classify_git_error(error).code is GitErrorCode.NO_UPSTREAM


def branch_name_from_no_upstream(error: object) -> str | None:
    match = _NO_UPSTREAM_BRANCH.search(_coerce_text(error))
    return match.group(1).strip() if match else None


class GitOperationError(Exception):
    """Raised by the service layer with a classified failure."""

    def __init__(self, classified: ClassifiedError) -> None:
        super().__init__(classified.summary)
        self.classified = classified

    @property
    def code(self) -> GitErrorCode:
        return self.classified.code

    @property
    def status_code(self) -> int:
        return self.classified.status_code

    @property
    def detail(self) -> str:
        return self.classified.detail

    def to_dict(self) -> dict[str, Any]:
        return self.classified.to_dict()


__all__ = [
    "ClassifiedError",
    "GitErrorCode",
    "GitOperationError",
    "branch_name_from_no_upstream",
    "classify_git_error",
    "classify_timeout",
    "clean_error_text",
    "is_no_upstream_error",
]
