"""Per-conversation task serialization."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable

from loguru import logger

Task = Callable[[], Awaitable[None]]


class ConversationQueue:
    """Run submitted tasks one at a time per conversation key, in submission order.

    Each key with pending work owns a deque and one worker task that drains it.
    Workers for different keys run concurrently. A drained key is evicted before
    its worker yields control, so a later submit always starts a fresh worker.
    """

    def __init__(self) -> None:
        self._pending: dict[str, deque[Task]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}

    def submit(self, key: object, task: Task) -> None:
        slot = str(key)
        pending = self._pending.get(slot)
        if pending is not None:
            pending.append(task)
            logger.debug("queue.submit key={} pending={}", slot, len(pending))
            return

        pending = deque([task])
        self._pending[slot] = pending
        self._workers[slot] = asyncio.get_running_loop().create_task(self._drain(slot, pending))

    def active_keys(self) -> list[str]:
        return list(self._pending)

    def pending(self, key: object) -> int:
        """Number of queued tasks for a key, not counting the running one."""
        queued = self._pending.get(str(key))
        return len(queued) if queued is not None else 0

    async def join(self) -> None:
        """Wait until every conversation queue is drained."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)

    async def aclose(self) -> None:
        workers = list(self._workers.values())
        for pending in self._pending.values():
            pending.clear()
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

    async def _drain(self, slot: str, pending: deque[Task]) -> None:
        try:
            while pending:
                task = pending.popleft()
                try:
                    await task()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("queue.task.error key={}", slot)
        finally:
            if self._pending.get(slot) is pending:
                del self._pending[slot]
                self._workers.pop(slot, None)
