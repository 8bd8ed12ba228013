"""Fire-and-forget task dispatch.

Commentary requests and persistence writes are started here and never
awaited by the control flow that triggered them. Failures are logged.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Holds strong references to detached tasks and logs their failures."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], what: str) -> asyncio.Task:
        """Schedule a coroutine on the running loop without awaiting it.

        Args:
            coro: Coroutine to run.
            what: Short description used in log lines.

        Returns:
            The created task.
        """
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(t, what))
        return task

    def _finished(self, task: asyncio.Task, what: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug("Background task cancelled: %s", what)
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background task failed (%s): %s", what, exc)

    async def drain(self) -> None:
        """Wait until every outstanding task (including ones spawned meanwhile) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
