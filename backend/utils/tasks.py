"""Supervision of long-running background tasks."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)


class TaskSupervisor:
    """Own one named asyncio task per responsibility.

    Starting a name that is still running raises, so a loop can never be
    duplicated. ``stop_all`` cancels every task and waits for it to finish.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, asyncio.Task] = {}

    def start(self, name: str, factory: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """Start ``factory()`` as the task called ``name``."""
        existing = self._tasks.get(name)
        if existing is not None and not existing.done():
            raise RuntimeError(f"task '{name}' already running")
        task = asyncio.create_task(factory(), name=name)
        task.add_done_callback(self._on_done)
        self._tasks[name] = task
        logger.info(f"Started background task '{name}'")
        return task

    def running(self) -> List[str]:
        return sorted(name for name, task in self._tasks.items() if not task.done())

    async def stop(self, name: str) -> None:
        task = self._tasks.pop(name, None)
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Stopped background task '{name}'")

    async def stop_all(self) -> None:
        for name in list(self._tasks):
            await self.stop(name)

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task '{task.get_name()}' crashed: {exc}",
                exc_info=exc,
            )
