"""
Shared state holders for the latest snapshot and the latest aggregate.

Each store holds exactly one immutable value (a tuple of connections, or a
read-only mapping of node -> connections). Writers build the new value
first and only take the write side of the lock for the reference swap, so
readers always see either the previous or the new value in full.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Generic, Mapping, Optional, Tuple, TypeVar

from parsers.base import ParsedConnection
from schemas import ConnectionSchema
from utils.rwlock import ReadWriteLock

T = TypeVar("T")


@dataclass(frozen=True)
class Versioned(Generic[T]):
    """A stored value with its generation and replacement time."""

    value: T
    generation: int = 0
    updated_at: Optional[datetime] = None


class SharedStore(Generic[T]):
    """One value, replaced wholesale, read concurrently."""

    def __init__(self, initial: T) -> None:
        self._lock = ReadWriteLock()
        self._current: Versioned[T] = Versioned(value=initial)

    async def replace(self, value: T) -> int:
        """Swap in ``value`` and return its generation number."""
        async with self._lock.write():
            generation = self._current.generation + 1
            self._current = Versioned(
                value=value,
                generation=generation,
                updated_at=datetime.now(timezone.utc),
            )
        return generation

    async def get(self) -> Versioned[T]:
        async with self._lock.read():
            return self._current


Snapshot = Tuple[ParsedConnection, ...]
NodeAggregate = Mapping[str, Tuple[ConnectionSchema, ...]]


class SnapshotStore(SharedStore[Snapshot]):
    """Latest local snapshot, served by ``GET /connections``."""

    def __init__(self) -> None:
        super().__init__(())

    async def replace_connections(self, connections) -> int:
        return await self.replace(tuple(connections))


class AggregateStore(SharedStore[NodeAggregate]):
    """Latest fully merged aggregate, read by the display."""

    def __init__(self) -> None:
        super().__init__(MappingProxyType({}))

    async def replace_nodes(self, nodes: Mapping[str, Tuple[ConnectionSchema, ...]]) -> int:
        return await self.replace(MappingProxyType(dict(nodes)))
