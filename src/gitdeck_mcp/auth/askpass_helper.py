"""Helper executed by git and ssh as ``GIT_ASKPASS`` / ``SSH_ASKPASS``.

It forwards the prompt to the running gitdeck process over the unix socket
named by ``GITDECK_ASKPASS_HANDLE`` and prints the answer on stdout.
"""

from __future__ import annotations

import json
import os
import socket
import sys

HANDLE_ENV = "GITDECK_ASKPASS_HANDLE"


def request_answer(handle: str, prompt: str) -> str:
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as client:
        client.connect(handle)
        client.sendall(json.dumps({"prompt": prompt}).encode("utf-8") + b"\n")
        client.shutdown(socket.SHUT_WR)
        chunks: list[bytes] = []
        while True:
            chunk = client.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    document = json.loads(b"".join(chunks).decode("utf-8") or "{}")
    return str(document.get("answer") or "")


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    prompt = args[0] if args else ""
    handle = os.environ.get(HANDLE_ENV)
    if not handle:
        print("gitdeck askpass: no handle configured", file=sys.stderr)
        print("")
        return 1
    try:
        answer = request_answer(handle, prompt)
    except (OSError, ValueError) as exc:
        print(f"gitdeck askpass: {exc}", file=sys.stderr)
        print("")
        return 1
    print(answer)
    return 0


if __name__ == "__main__":
    sys.exit(main())
