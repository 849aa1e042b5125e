"""
Multi-node aggregation poller.

Every interval the poller fetches all endpoints concurrently, waits for each
fetch to finish or time out, merges the successful responses into one
node-keyed map and swaps it into the :class:`AggregateStore` in one step.
A node whose fetch fails is absent from that cycle's map; entries from
earlier cycles are never carried forward.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import httpx
from pydantic import ValidationError

from schemas import ConnectionSchema
from services.cluster import ClusterCommandError
from services.state_store import AggregateStore, NodeAggregate
from services.transports import SnapshotTransport
from utils.logging_utils import LogTimer

logger = logging.getLogger(__name__)

# Per-node failures absorbed by a cycle
FETCH_ERRORS = (
    httpx.HTTPError,
    ValidationError,
    ValueError,
    OSError,
    ClusterCommandError,
)

NodeResult = Tuple[str, Tuple[ConnectionSchema, ...]]


class PollerState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    COLLECTING = "collecting"
    MERGED = "merged"


class AggregationPoller:
    """Poll a fixed set of endpoints and publish the merged result."""

    def __init__(
        self,
        endpoints: Sequence[str],
        transport: SnapshotTransport,
        store: AggregateStore,
        interval: float = 2.0,
        timeout: float = 1.5,
    ):
        self.endpoints: List[str] = list(endpoints)
        self.transport = transport
        self.store = store
        self.interval = interval
        # A fetch may never outlive its cycle
        self.timeout = min(timeout, interval)
        self.state = PollerState.IDLE
        self.cycles = 0
        self.last_errors: Dict[str, str] = {}

    async def _fetch_one(self, endpoint: str, index: int) -> Optional[NodeResult]:
        try:
            resp = await asyncio.wait_for(
                self.transport.fetch(endpoint, index),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            self.last_errors[endpoint] = f"timed out after {self.timeout}s"
            logger.debug(f"Fetch from {endpoint} timed out", extra={"endpoint": endpoint})
            return None
        except FETCH_ERRORS as e:
            self.last_errors[endpoint] = str(e) or type(e).__name__
            logger.debug(f"Fetch from {endpoint} failed: {e}", extra={"endpoint": endpoint})
            return None

        self.last_errors.pop(endpoint, None)
        node = resp.node_name or endpoint
        return node, tuple(resp.connections)

    async def poll_once(self) -> NodeAggregate:
        """Run one fetch-and-merge cycle and return the published map."""
        with LogTimer(logger, "Aggregation cycle", level=logging.DEBUG) as timer:
            self.state = PollerState.FETCHING
            tasks = [
                asyncio.create_task(self._fetch_one(endpoint, index))
                for index, endpoint in enumerate(self.endpoints)
            ]

            self.state = PollerState.COLLECTING
            results = await asyncio.gather(*tasks, return_exceptions=True)

            merged: Dict[str, Tuple[ConnectionSchema, ...]] = {}
            for endpoint, result in zip(self.endpoints, results):
                if isinstance(result, BaseException):
                    if isinstance(result, asyncio.CancelledError):
                        raise result
                    self.last_errors[endpoint] = str(result) or type(result).__name__
                    logger.error(
                        f"Unexpected error fetching {endpoint}: {result}",
                        exc_info=result,
                    )
                    continue
                if result is None:
                    continue
                node, connections = result
                if node in merged:
                    logger.warning(f"Node '{node}' reported by more than one endpoint; keeping {endpoint}")
                merged[node] = connections

            self.state = PollerState.MERGED
            await self.store.replace_nodes(merged)
            timer.set_record_count(len(merged))

        self.cycles += 1
        self.state = PollerState.IDLE
        return (await self.store.get()).value

    async def run_forever(self) -> None:
        while True:
            started = time.monotonic()
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Aggregation cycle failed; retrying next tick")
                self.state = PollerState.IDLE
            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, self.interval - elapsed))
