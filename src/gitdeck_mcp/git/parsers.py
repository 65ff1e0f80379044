"""Parsers that turn git's textual output into structured records."""

from __future__ import annotations

import re

from .models import AheadBehind, BranchRecord, CommitRecord, DiffRecord, FileStatus, FileStatusKind

MAX_DIFF_CHARS = 500 * 1024
TRUNCATION_MARKER = "\n\n... diff truncated (exceeded 500 KiB) ..."

BINARY_MARKERS = ("Binary files", "GIT binary patch")

LOG_FIELD_DELIMITER = "\x1f"
LOG_FORMAT = "%H%x1f%an%x1f%ae%x1f%at%x1f%s"

_STATUS_CODES: dict[str, FileStatusKind] = {
    "M": "modified",
    "A": "added",
    "D": "deleted",
    "R": "renamed",
    "C": "copied",
    "?": "untracked",
    "U": "unmerged",
}

_BRANCH_LINE = re.compile(
    r"^(\S+)\s+([0-9a-f]{4,40})\s+(?:\([^)]*\)\s+)?(?:\[([^\]]+)\]\s*)?(.*)$"
)
_RENAME_CODES = ("R", "C")

_AHEAD = re.compile(r"ahead (\d+)")
_BEHIND = re.compile(r"behind (\d+)")


def status_kind(code: str) -> FileStatusKind:
    """Map a single porcelain status column to a file status kind."""

    return _STATUS_CODES.get(code, "modified")


def parse_status(output: str) -> list[FileStatus]:
    """Parse ``git status --porcelain -z`` output.

    Records are NUL-terminated and paths are never quoted, so embedded or
    surrounding spaces are kept verbatim. A rename or copy record is followed
    by one extra field holding the original path.

    Each record carries two independent columns: the index (staged) state and
    the working tree (unstaged) state. A path with changes in both columns
    yields two records.
    """

    records: list[FileStatus] = []
    fields = output.split("\0")
    index = 0
    while index < len(fields):
        entry = fields[index]
        index += 1
        if len(entry) < 4:
            continue
        staged_code, unstaged_code = entry[0], entry[1]
        path = entry[3:]

        source: str | None = None
        if staged_code in _RENAME_CODES or unstaged_code in _RENAME_CODES:
            source = fields[index] if index < len(fields) else None
            index += 1

        if staged_code == "!" and unstaged_code == "!":
            continue

        if staged_code == "?" and unstaged_code == "?":
            records.append(FileStatus(path=path, status="untracked", staged=False))
            continue

        if staged_code not in " ?!":
            records.append(
                FileStatus(
                    path=path,
                    status=status_kind(staged_code),
                    staged=True,
                    old_path=source if staged_code in _RENAME_CODES else None,
                )
            )

        if unstaged_code not in " ?!":
            records.append(
                FileStatus(
                    path=path,
                    status=status_kind(unstaged_code),
                    staged=False,
                    old_path=source if unstaged_code in _RENAME_CODES else None,
                )
            )

    return records


def parse_diff(diff: str, *, path: str, status: str) -> DiffRecord:
    """Summarise a unified diff, truncating oversized patches."""

    additions = 0
    deletions = 0
    is_binary = any(marker in diff for marker in BINARY_MARKERS)
    if not is_binary:
        for line in diff.split("\n"):
            if line.startswith("+") and not line.startswith("+++"):
                additions += 1
            elif line.startswith("-") and not line.startswith("---"):
                deletions += 1

    truncated = len(diff) > MAX_DIFF_CHARS
    if truncated:
        diff = diff[:MAX_DIFF_CHARS] + TRUNCATION_MARKER

    return DiffRecord(
        path=path,
        status=status,
        diff=diff,
        additions=additions,
        deletions=deletions,
        is_binary=is_binary,
        truncated=truncated,
    )


def parse_log(output: str) -> list[CommitRecord]:
    """Parse ``git log`` output produced with :data:`LOG_FORMAT`.

    Only the first four delimiters split fields, so the subject may contain the
    delimiter. Lines without a hash are discarded.
    """

    commits: list[CommitRecord] = []
    for line in output.split("\n"):
        if not line.strip():
            continue
        parts = line.split(LOG_FIELD_DELIMITER, 4)
        commit_hash = parts[0].strip()
        if not commit_hash:
            continue
        parts.extend([""] * (5 - len(parts)))
        _, author_name, author_email, raw_timestamp, subject = parts
        try:
            timestamp = int(raw_timestamp.strip())
        except ValueError:
            timestamp = 0
        commits.append(
            CommitRecord(
                hash=commit_hash,
                author_name=author_name,
                author_email=author_email,
                timestamp=timestamp,
                subject=subject,
            )
        )
    return commits


def parse_ahead_behind(output: str) -> AheadBehind:
    """Parse ``git rev-list --left-right --count @{upstream}...HEAD``.

    The left count is commits only on the upstream (behind), the right count is
    commits only on HEAD (ahead). Unparseable output yields zeros.
    """

    fields = output.split()
    if len(fields) != 2:
        return AheadBehind()
    try:
        behind, ahead = int(fields[0]), int(fields[1])
    except ValueError:
        return AheadBehind()
    return AheadBehind(ahead=ahead, behind=behind)


def _parse_tracking(annotation: str) -> tuple[str | None, int, int]:
    upstream, _, counts = annotation.partition(":")
    upstream = upstream.strip() or None
    ahead_match = _AHEAD.search(counts)
    behind_match = _BEHIND.search(counts)
    return (
        upstream,
        int(ahead_match.group(1)) if ahead_match else 0,
        int(behind_match.group(1)) if behind_match else 0,
    )


def parse_branches(output: str) -> list[BranchRecord]:
    """Parse ``git branch -vv -a`` output.

    Remote-tracking refs are reported as ``<remote>/<name>`` and are dropped
    when a local branch of the same name exists. The result is ordered with the
    current branch first, then local branches, then remote ones, each by name.
    """

    locals_: dict[str, BranchRecord] = {}
    remotes: dict[str, BranchRecord] = {}

    for raw_line in output.split("\n"):
        if not raw_line.strip():
            continue
        marker = raw_line[:2]
        current = marker.startswith("*")
        is_worktree = marker.startswith("+")
        body = raw_line[2:].strip()
        if body.startswith("(") or " -> " in body:
            continue

        match = _BRANCH_LINE.match(body)
        if match is None:
            continue
        name, _, annotation, _ = match.groups()

        upstream, ahead, behind = (None, 0, 0)
        if annotation:
            upstream, ahead, behind = _parse_tracking(annotation)

        if name.startswith("remotes/"):
            short = name[len("remotes/") :]
            remotes.setdefault(short, BranchRecord(name=short, type="remote"))
            continue

        if name in locals_:
            continue
        locals_[name] = BranchRecord(
            name=name,
            type="local",
            current=current,
            upstream=upstream,
            ahead=ahead,
            behind=behind,
            is_worktree=is_worktree,
        )

    branches = list(locals_.values())
    for short, record in remotes.items():
        _, _, branch_part = short.partition("/")
        if branch_part in locals_ or short in locals_:
            continue
        branches.append(record)

    branches.sort(key=lambda item: (not item.current, item.type != "local", item.name))
    return branches


__all__ = [
    "BINARY_MARKERS",
    "LOG_FIELD_DELIMITER",
    "LOG_FORMAT",
    "MAX_DIFF_CHARS",
    "TRUNCATION_MARKER",
    "parse_ahead_behind",
    "parse_branches",
    "parse_diff",
    "parse_log",
    "parse_status",
    "status_kind",
]
