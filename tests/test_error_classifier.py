from __future__ import annotations

import pytest

from gitdeck_mcp.git.errors import (
    GitErrorCode,
    GitOperationError,
    branch_name_from_no_upstream,
    classify_git_error,
    clean_error_text,
    is_no_upstream_error,
)
from gitdeck_mcp.git.runner import GitCommandError, GitTimeoutError


@pytest.mark.parametrize(
    ("text", "code", "status"),
    [
        (
            "Command failed with code 128: fatal: Authentication failed for 'https://example.com/repo.git'",
            GitErrorCode.AUTHENTICATION_FAILURE,
            401,
        ),
        (
            "fatal: could not read Username for 'https://github.com': terminal prompts disabled",
            GitErrorCode.AUTHENTICATION_FAILURE,
            401,
        ),
        ("remote: Repository not found.\nfatal: repository 'x' not found", GitErrorCode.NOT_FOUND, 404),
        ("ssh: Could not resolve host: nowhere.invalid", GitErrorCode.NOT_FOUND, 404),
        ("git@github.com: Permission denied (publickey).", GitErrorCode.PERMISSION_DENIED, 403),
        ("Host key verification failed.", GitErrorCode.PERMISSION_DENIED, 403),
        (
            " ! [rejected]        main -> main (fetch first)\nerror: failed to push some refs",
            GitErrorCode.PUSH_REJECTED,
            409,
        ),
        (
            "CONFLICT (content): Merge conflict in README.md\nAutomatic merge failed; fix conflicts and then commit the result.",
            GitErrorCode.MERGE_CONFLICT,
            409,
        ),
        (
            "fatal: The current branch feature has no upstream branch.",
            GitErrorCode.NO_UPSTREAM,
            400,
        ),
        ("Command timed out after 300000ms", GitErrorCode.TIMEOUT, 504),
        ("fatal: not a git repository (or any of the parent directories): .git", GitErrorCode.NOT_A_REPOSITORY, 400),
        (
            "fatal: Unable to create '/repo/.git/index.lock': File exists.",
            GitErrorCode.LOCK_CONTENTION,
            409,
        ),
        ("fatal: You are not currently on a branch.", GitErrorCode.DETACHED_HEAD, 400),
        ("fatal: a branch named 'feature' already exists", GitErrorCode.BRANCH_EXISTS, 409),
        (
            "error: pathspec 'nope' did not match any file(s) known to git",
            GitErrorCode.BRANCH_NOT_FOUND,
            404,
        ),
        (
            "error: Your local changes to the following files would be overwritten by checkout:\n\tREADME.md",
            GitErrorCode.UNCOMMITTED_CHANGES,
            409,
        ),
        ("something entirely different", GitErrorCode.UNKNOWN, 500),
    ],
)
def test_classification_table(text: str, code: GitErrorCode, status: int) -> None:
    classified = classify_git_error(text)

    assert classified.code is code
    assert classified.status_code == status


def test_first_match_wins() -> None:
    text = "Repository not found\nPermission denied (publickey)"

    assert classify_git_error(text).code is GitErrorCode.NOT_FOUND


def test_classification_is_idempotent_on_detail() -> None:
    raw = "Command failed with code 1: error: failed to push some refs to 'origin'"
    first = classify_git_error(raw)
    second = classify_git_error(first.detail)

    assert first.detail == "error: failed to push some refs to 'origin'"
    assert second.code is first.code
    assert second.detail == first.detail


def test_clean_error_text_removes_progress_noise() -> None:
    raw = (
        "Command failed with code 1: Enumerating objects: 5, done.\n"
        "Counting objects: 100% (5/5), done.\n"
        "remote: Total 3 (delta 0), reused 0 (delta 0)\n"
        " * [new branch]      feature -> feature\n"
        "   1a2b3c4..5d6e7f8  main -> main\n"
        "\n\n\n"
        "error: something real"
    )

    assert clean_error_text(raw) == "error: something real"


def test_accepts_exceptions_and_mappings() -> None:
    error = GitCommandError(("git", "push"), 128, "", "fatal: Authentication failed")
    assert classify_git_error(error).code is GitErrorCode.AUTHENTICATION_FAILURE

    timeout = GitTimeoutError(("git", "fetch"), 1.5, silent=True)
    assert classify_git_error(timeout).code is GitErrorCode.TIMEOUT

    assert classify_git_error({"message": "index.lock exists"}).code is GitErrorCode.LOCK_CONTENTION
    assert classify_git_error(None).code is GitErrorCode.UNKNOWN
    assert classify_git_error(42).detail == "42"


def test_no_upstream_helpers() -> None:
    text = "fatal: The current branch topic/x has no upstream branch.\nTo push the current branch..."

    assert is_no_upstream_error(text)
    assert branch_name_from_no_upstream(text) == "topic/x"
    assert branch_name_from_no_upstream("fatal: other") is None


def test_operation_error_exposes_classification() -> None:
    error = GitOperationError(classify_git_error("Permission denied"))

    assert error.code is GitErrorCode.PERMISSION_DENIED
    assert error.status_code == 403
    assert error.to_dict()["code"] == "permission-denied"
    assert str(error) == error.classified.summary
