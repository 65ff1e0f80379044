"""Git subprocess execution, output parsing and error classification."""

from .errors import (
    ClassifiedError,
    GitErrorCode,
    GitOperationError,
    classify_git_error,
    classify_timeout,
)
from .models import BranchRecord, CommitRecord, DiffRecord, FileStatus, StatusSummary
from .runner import (
    CommandResult,
    FakeGitRunner,
    GitCommandError,
    GitExecutableNotFoundError,
    GitRunner,
    GitRunnerError,
    GitTimeoutError,
)

__all__ = [
    "BranchRecord",
    "ClassifiedError",
    "CommandResult",
    "CommitRecord",
    "DiffRecord",
    "FakeGitRunner",
    "FileStatus",
    "GitCommandError",
    "GitErrorCode",
    "GitExecutableNotFoundError",
    "GitOperationError",
    "GitRunner",
    "GitRunnerError",
    "GitTimeoutError",
    "StatusSummary",
    "classify_git_error",
    "classify_timeout",
]
