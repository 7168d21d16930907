# riverflow/services/inflight.py
from __future__ import annotations

import asyncio
import logging
from typing import Coroutine, Set

log = logging.getLogger("live")


class InflightTracker:
    """
    Fire-and-forget background operations that shutdown can still wait for.
    A failing operation is logged and forgotten.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine, name: str = "") -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name or None)
        self._tasks.add(task)
        task.add_done_callback(self._done)
        return task

    def _done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("background task %s failed: %s", task.get_name(), exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 5.0) -> int:
        """Wait for outstanding operations. Returns how many were still running at the deadline."""
        if not self._tasks:
            return 0
        log.info("waiting for %d background operation(s)", len(self._tasks))
        _, still = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still:
            log.warning("%d background operation(s) unfinished after %.1fs", len(still), timeout)
        return len(still)
