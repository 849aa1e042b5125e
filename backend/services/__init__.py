"""Services package for kflow."""

from .aggregator import AggregationPoller, PollerState
from .change_detector import ChangeDetector, ChangeSet, diff_snapshots
from .ingestion import IngestionWorker
from .snapshot import build_snapshot, read_snapshot
from .source_locator import detect_source_candidate, resolve_source_path
from .state_store import AggregateStore, SharedStore, SnapshotStore

__all__ = [
    "AggregationPoller",
    "PollerState",
    "ChangeDetector",
    "ChangeSet",
    "diff_snapshots",
    "IngestionWorker",
    "build_snapshot",
    "read_snapshot",
    "detect_source_candidate",
    "resolve_source_path",
    "AggregateStore",
    "SharedStore",
    "SnapshotStore",
]
