"""
Asyncio readers-writer lock.

Any number of readers may hold the lock together; a writer holds it alone.
Writers wait for active readers to drain, and new readers wait while a
writer is active. Neither side should await I/O while holding it.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class ReadWriteLock:
    """Single-writer / many-reader lock for coroutines on one event loop."""

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def writing(self) -> bool:
        return self._writer

    async def _notify(self) -> None:
        async with self._cond:
            self._cond.notify_all()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer)
            self._readers += 1
        try:
            yield
        finally:
            # Release before the first await so cancellation cannot leak a reader
            self._readers -= 1
            if self._readers == 0:
                await asyncio.shield(self._notify())

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            self._writer = True
        try:
            yield
        finally:
            self._writer = False
            await asyncio.shield(self._notify())
