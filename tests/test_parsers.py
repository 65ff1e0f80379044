from __future__ import annotations

from gitdeck_mcp.git.parsers import (
    MAX_DIFF_CHARS,
    TRUNCATION_MARKER,
    parse_ahead_behind,
    parse_branches,
    parse_diff,
    parse_log,
    parse_status,
)


def test_status_both_columns_yield_two_records() -> None:
    records = parse_status("MM file.ts\0")

    assert [(r.path, r.status, r.staged) for r in records] == [
        ("file.ts", "modified", True),
        ("file.ts", "modified", False),
    ]


def test_status_rename_reports_new_and_old_path() -> None:
    records = parse_status("R  new name.ts\0old name.ts\0?? after.ts\0")

    assert records[0].path == "new name.ts"
    assert records[0].old_path == "old name.ts"
    assert records[0].status == "renamed"
    assert records[0].staged is True
    assert records[1].to_dict() == {"path": "after.ts", "status": "untracked", "staged": False}


def test_status_untracked_and_ignored() -> None:
    records = parse_status("?? newfile.ts\0!! build/\0")

    assert len(records) == 1
    assert records[0].to_dict() == {"path": "newfile.ts", "status": "untracked", "staged": False}


def test_status_keeps_path_whitespace_and_maps_columns() -> None:
    records = parse_status(
        " D  spaced name \0A  added.py\0UU both.txt\0T  typechange\0?? my file.txt\0"
    )

    assert records[0].path == " spaced name "
    assert (records[0].status, records[0].staged) == ("deleted", False)
    assert (records[1].status, records[1].staged) == ("added", True)
    assert [r.status for r in records[2:4]] == ["unmerged", "unmerged"]
    assert records[4].status == "modified"
    assert records[5].path == "my file.txt"


def test_diff_counts_lines_excluding_headers() -> None:
    diff = (
        "diff --git a/x b/x\n--- a/x\n+++ b/x\n@@ -1,2 +1,2 @@\n-old\n+new\n+more\n context\n"
    )
    record = parse_diff(diff, path="x", status="modified")

    assert (record.additions, record.deletions) == (2, 1)
    assert record.diff == diff
    assert not record.truncated
    assert not record.is_binary


def test_diff_binary_skips_line_counts() -> None:
    record = parse_diff("Binary files a/img.png and b/img.png differ\n+x\n", path="img.png", status="modified")

    assert record.is_binary
    assert (record.additions, record.deletions) == (0, 0)


def test_diff_truncation_is_exact() -> None:
    at_limit = "a" * MAX_DIFF_CHARS
    assert parse_diff(at_limit, path="f", status="modified").diff == at_limit

    oversized = "+" + "b" * MAX_DIFF_CHARS
    record = parse_diff(oversized, path="f", status="modified")

    assert record.truncated
    assert record.diff == oversized[:MAX_DIFF_CHARS] + TRUNCATION_MARKER
    assert len(record.diff) == MAX_DIFF_CHARS + len(TRUNCATION_MARKER)


def test_log_subject_may_contain_delimiter() -> None:
    output = (
        "abc123\x1fAda\x1fada@example.com\x1f1700000000\x1ffix: a\x1fb\n"
        "\x1fnobody\x1f\x1f\x1f\n"
        "def456\x1fBob\x1fbob@example.com\x1fnot-a-number\x1finitial\n"
    )
    commits = parse_log(output)

    assert [c.hash for c in commits] == ["abc123", "def456"]
    assert commits[0].subject == "fix: a\x1fb"
    assert commits[0].timestamp == 1700000000
    assert commits[1].timestamp == 0


def test_ahead_behind_field_order() -> None:
    counts = parse_ahead_behind("3\t5\n")

    assert counts.behind == 3
    assert counts.ahead == 5
    assert parse_ahead_behind("garbage").to_dict() == {"ahead": 0, "behind": 0}


def test_branches_dedupe_and_sort() -> None:
    output = (
        "  feature   1a2b3c4 [origin/feature: ahead 2, behind 1] work\n"
        "* main      5d6e7f8 [origin/main] tip\n"
        "+ wt-branch 9a8b7c6 checked out elsewhere\n"
        "  remotes/origin/HEAD -> origin/main\n"
        "  remotes/origin/main 5d6e7f8 tip\n"
        "  remotes/origin/release 0f0f0f0 cut\n"
    )
    branches = parse_branches(output)

    assert [(b.name, b.type) for b in branches] == [
        ("main", "local"),
        ("feature", "local"),
        ("wt-branch", "local"),
        ("origin/release", "remote"),
    ]
    feature = branches[1]
    assert (feature.upstream, feature.ahead, feature.behind) == ("origin/feature", 2, 1)
    assert branches[0].current
    assert branches[2].is_worktree


def test_branches_skip_detached_head() -> None:
    output = "* (HEAD detached at 1a2b3c4) 1a2b3c4 msg\n  main 5d6e7f8 tip\n"

    assert [b.name for b in parse_branches(output)] == ["main"]


def test_branches_read_upstream_of_worktree_checkout() -> None:
    output = (
        "* main    5d6e7f8 [origin/main] tip\n"
        "+ feature c19e850 (/path/wt) [origin/feature: behind 2] init\n"
    )

    feature = parse_branches(output)[1]

    assert feature.name == "feature"
    assert feature.is_worktree
    assert (feature.upstream, feature.ahead, feature.behind) == ("origin/feature", 0, 2)
