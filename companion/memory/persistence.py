"""Background persistence of completed turns to the memory service.

Writes are dispatched with ``asyncio.create_task`` and never awaited by the
turn pipeline. Failures are logged; they never reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from companion.memory.store import get_memory_client

if TYPE_CHECKING:
    from companion.memory.store import MemoryClient

logger = logging.getLogger(__name__)


class PersistenceGateway:
    """Fire-and-forget writer for finished exchanges.

    Keeps a reference to each in-flight write so it isn't garbage collected
    mid-flight, and so shutdown code can ``drain()`` them.
    """

    def __init__(self, memory: MemoryClient | None = None) -> None:
        self._memory = memory
        self._pending: set[asyncio.Task[bool]] = set()

    @property
    def memory(self) -> MemoryClient:
        if self._memory is None:
            self._memory = get_memory_client()
        return self._memory

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, user_id: str, user_message: str, response: str) -> asyncio.Task[bool]:
        """Start the write in the background and return its task."""
        task = asyncio.create_task(
            self._persist(user_id, user_message, response),
            name=f"persist-{user_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def _persist(self, user_id: str, user_message: str, response: str) -> bool:
        if not self.memory.enabled:
            return False
        stored = await self.memory.store(user_id, user_message, response)
        if not stored:
            logger.warning("Turn for %s was not persisted to memory", user_id)
        return stored

    def _on_done(self, task: asyncio.Task[bool]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.info("Memory write cancelled: %s", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Memory write failed (non-fatal): %s", task.get_name(), exc_info=exc)

    async def drain(self) -> None:
        """Wait for every in-flight write to settle."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
