"""
Edge Proxy - Supervised Background Tasks
==========================================

What:  A tracked set of fire-and-forget asyncio tasks.
How:   spawn() wraps a coroutine in a named Task, holds a strong reference
       until it finishes, and logs/records its failure. drain() awaits all
       in-flight tasks.
Who:   ProxyService spawns cache-population writes here; the app lifespan
       drains the set on shutdown so pending writes finish after their
       responses were already sent.

Failure policy:
    A failed task never affects the request that spawned it. The exception
    is logged at WARNING and appended to `failures` (bounded) so tests and
    diagnostics can observe it.
"""

import asyncio
import logging
from collections import deque
from typing import Awaitable, Deque, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundTaskSet:
    def __init__(self, max_failures: int = 100):
        self._tasks: Set[asyncio.Task] = set()
        self.failures: Deque[BaseException] = deque(maxlen=max_failures)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable[None], name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight task, including ones spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug("Background task %s cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            self.failures.append(exc)
            logger.warning("Background task %s failed: %s", task.get_name(), exc)
