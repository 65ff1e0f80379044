"""Out-of-band prompt channel between git operations and an operator."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

logger = logging.getLogger(__name__)

PromptKind = Literal["host_key", "credential"]


@dataclass(slots=True)
class PromptReply:
    accepted: bool
    answer: str | None = None


@dataclass(slots=True)
class PendingPrompt:
    id: str
    kind: PromptKind
    payload: dict[str, Any]
    created_at: float
    deadline: float
    future: asyncio.Future = field(repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "payload": dict(self.payload),
            "expires_in": max(0.0, round(self.deadline - time.monotonic(), 1)),
        }


Listener = Callable[[PendingPrompt], None]


class PromptChannel:
    """Rendezvous for prompts that need an answer from outside the process.

    A requester blocks in :meth:`request` until the operator calls
    :meth:`respond` with the prompt id, or the timeout elapses.
    """

    def __init__(self) -> None:
        self._pending: dict[str, PendingPrompt] = {}
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    async def request(
        self, kind: PromptKind, payload: dict[str, Any], timeout: float
    ) -> PromptReply | None:
        loop = asyncio.get_running_loop()
        prompt_id = secrets.token_hex(8)
        now = time.monotonic()
        prompt = PendingPrompt(
            id=prompt_id,
            kind=kind,
            payload=dict(payload),
            created_at=now,
            deadline=now + timeout,
            future=loop.create_future(),
        )
        self._pending[prompt_id] = prompt
        logger.info("Prompt registered", extra={"prompt_id": prompt_id, "kind": kind})

        for listener in list(self._listeners):
            try:
                listener(prompt)
            except Exception:
                logger.exception("Prompt listener failed", extra={"prompt_id": prompt_id})

        try:
            return await asyncio.wait_for(asyncio.shield(prompt.future), timeout)
        except asyncio.TimeoutError:
            logger.warning("Prompt expired", extra={"prompt_id": prompt_id, "kind": kind})
            return None
        finally:
            self._pending.pop(prompt_id, None)
            if not prompt.future.done():
                prompt.future.cancel()

    def respond(
        self, prompt_id: str, *, accept: bool | None = None, answer: str | None = None
    ) -> bool:
        """Resolve a pending prompt. Returns False for unknown or expired ids."""

        prompt = self._pending.get(prompt_id)
        if prompt is None or prompt.future.done():
            return False
        accepted = accept if accept is not None else answer is not None
        prompt.future.set_result(PromptReply(accepted=accepted, answer=answer))
        logger.info(
            "Prompt answered",
            extra={"prompt_id": prompt_id, "kind": prompt.kind, "accepted": accepted},
        )
        return True

    def list_pending(self) -> list[dict[str, Any]]:
        return [prompt.to_dict() for prompt in self._pending.values() if not prompt.future.done()]

    def __len__(self) -> int:
        return len(self._pending)


__all__ = ["PendingPrompt", "PromptChannel", "PromptKind", "PromptReply"]
