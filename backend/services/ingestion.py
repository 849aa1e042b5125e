"""
Local ingestion loop: table -> snapshot -> change log -> store.

One cycle reads the table, diffs it against the previous cycle, then swaps
the new snapshot into the store. The file read happens before the store's
write lock is taken.
"""

import asyncio
import logging
import time
from typing import Optional

from services.change_detector import ChangeDetector, ChangeSet
from services.snapshot import build_snapshot
from services.source_locator import detect_source_candidate, resolve_source_path
from services.state_store import SnapshotStore
from utils.logging_utils import LogTimer

logger = logging.getLogger(__name__)


class IngestionWorker:
    """Periodically refresh a :class:`SnapshotStore` from the local table."""

    def __init__(
        self,
        store: SnapshotStore,
        requested_path: str = "auto",
        host_root: str = "/host",
        root: str = "/",
        interval: float = 2.0,
        detector: Optional[ChangeDetector] = None,
    ):
        self.store = store
        self.requested_path = requested_path
        self.host_root = host_root
        self.root = root
        self.interval = interval
        self.detector = detector or ChangeDetector()
        self.source_path: Optional[str] = None
        self.cycles = 0
        self.last_cycle_monotonic: Optional[float] = None

    def resolve(self) -> Optional[str]:
        """Resolve the configured path; None leaves detection to each cycle."""
        self.source_path = resolve_source_path(self.requested_path, self.host_root, self.root)
        return self.source_path

    async def _detect(self) -> None:
        detected = await asyncio.to_thread(detect_source_candidate, self.host_root, self.root)
        if detected:
            logger.info(f"Conntrack table found at {detected}")
            self.source_path = detected

    async def run_once(self) -> ChangeSet:
        if not self.source_path:
            await self._detect()
        with LogTimer(logger, "Ingestion cycle", level=logging.DEBUG) as timer:
            connections = await build_snapshot(self.source_path, self.host_root, self.root)
            changes = self.detector.observe(connections)
            await self.store.replace_connections(connections)
            timer.set_record_count(len(connections))
        self.cycles += 1
        self.last_cycle_monotonic = time.monotonic()
        return changes

    async def run_forever(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Ingestion cycle failed; retrying next tick")
            await asyncio.sleep(self.interval)

    def seconds_since_last_cycle(self) -> Optional[float]:
        if self.last_cycle_monotonic is None:
            return None
        return time.monotonic() - self.last_cycle_monotonic
