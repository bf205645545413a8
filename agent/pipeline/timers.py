from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Set


logger = logging.getLogger(__name__)


class TimerRegistry:
    """One-shot delayed callbacks on the running event loop.

    Each timer is an ``asyncio.Task`` that the caller may cancel. The registry
    keeps a reference to every live task and logs any failure with its
    traceback once the task finishes.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def schedule(
        self,
        delay: float,
        callback: Callable[[], Awaitable[Any]],
        *,
        name: str,
    ) -> asyncio.Task:
        async def _fire() -> Any:
            await asyncio.sleep(delay)
            return await callback()

        task = asyncio.get_running_loop().create_task(_fire(), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Timer %s failed", task.get_name(), exc_info=exc)

    def pending(self) -> int:
        return len(self._tasks)

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
