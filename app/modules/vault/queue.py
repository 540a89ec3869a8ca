"""
Background processing queue.

Each accepted upload becomes one work item, run as its own asyncio task behind an error
boundary so a crashing item can never take the event loop (or other items) down with it.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class ProcessingQueue:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, func: Callable[..., Awaitable], *args) -> asyncio.Task:
        task = asyncio.create_task(self._run(name, func, *args), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self, name: str, func: Callable[..., Awaitable], *args) -> None:
        """Submit and wait; used as a FastAPI background task so the work outlives the response only."""
        await self.submit(name, func, *args)

    async def drain(self) -> None:
        """Wait for every in-flight item (tests, application shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def _run(self, name: str, func: Callable[..., Awaitable], *args) -> None:
        try:
            await func(*args)
        except Exception:
            logger.exception("Background work item %s crashed", name)


processing_queue = ProcessingQueue()
