"""gitdeck MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import json
import sys

from gitdeck_mcp.auth import CredentialLoader, CredentialLoadError
from gitdeck_mcp.auth.host_keys import parse_known_hosts
from gitdeck_mcp.config import GitdeckSettings
from gitdeck_mcp.git.errors import classify_git_error
from gitdeck_mcp.repos import RepositoryLoadError, RepositoryStore


def load_settings() -> GitdeckSettings:
    return GitdeckSettings()


def cmd_classify(args: argparse.Namespace) -> None:
    text = args.text if args.text is not None else sys.stdin.read()
    print(json.dumps(classify_git_error(text).to_dict(), indent=2))


def cmd_repos(args: argparse.Namespace) -> None:
    settings = load_settings()
    try:
        records = RepositoryStore(settings.repos_path).load_all()
    except RepositoryLoadError as exc:
        print(f"Repository registry unavailable: {exc}")
        raise SystemExit(1)
    if args.json:
        print(json.dumps([record.summary() for record in records.values()], indent=2))
    else:
        for record in records.values():
            print(f"{record.id} [{record.status.value}] {record.path} -> {record.remote_url or '-'}")


def cmd_credentials(args: argparse.Namespace) -> None:
    settings = load_settings()
    try:
        credentials = CredentialLoader(settings.credentials_path).load_all()
    except CredentialLoadError as exc:
        print(f"Credentials unavailable: {exc}")
        raise SystemExit(1)
    print(json.dumps([credential.public_view() for credential in credentials], indent=2))


def cmd_hosts(args: argparse.Namespace) -> None:
    settings = load_settings()
    path = settings.resolved_known_hosts_path
    if not path.exists():
        print(json.dumps([], indent=2))
        return
    table = parse_known_hosts(path.read_text(encoding="utf-8"))
    payload = [entry.to_dict() for entries in table.values() for entry in entries]
    print(json.dumps(payload, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="gitdeck MCP diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_classify = sub.add_parser("classify", help="Classify git failure text (argument or stdin)")
    p_classify.add_argument("text", nargs="?", default=None)
    p_classify.set_defaults(func=cmd_classify)

    p_repos = sub.add_parser("repos", help="List configured repositories")
    p_repos.add_argument("--json", action="store_true", help="Output JSON")
    p_repos.set_defaults(func=cmd_repos)

    p_credentials = sub.add_parser(
        "credentials",
        help="List configured credentials (names and hosts only)",
    )
    p_credentials.set_defaults(func=cmd_credentials)

    p_hosts = sub.add_parser("hosts", help="List trusted SSH host keys")
    p_hosts.set_defaults(func=cmd_hosts)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
