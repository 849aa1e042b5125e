"""Change detection between consecutive snapshots."""

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from parsers.base import ParsedConnection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeSet:
    """Connections that appeared and disappeared between two snapshots."""

    added: FrozenSet[ParsedConnection] = field(default_factory=frozenset)
    removed: FrozenSet[ParsedConnection] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed


def diff_snapshots(
    previous: Iterable[ParsedConnection],
    current: Iterable[ParsedConnection],
) -> ChangeSet:
    """Return ``current - previous`` as added and ``previous - current`` as removed."""
    previous_set = frozenset(previous)
    current_set = frozenset(current)
    return ChangeSet(
        added=current_set - previous_set,
        removed=previous_set - current_set,
    )


def log_changes(changes: ChangeSet, log: Optional[logging.Logger] = None) -> None:
    """Emit one event per added and per removed connection."""
    log = log or logger
    for added in changes.added:
        log.info(f"Added connection: {added}")
    for removed in changes.removed:
        log.info(f"Removed connection: {removed}")


class ChangeDetector:
    """
    Tracks the previous generation and diffs each new snapshot against it.

    Only one generation is kept. The first observation reports every
    connection as added.
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self._previous: FrozenSet[ParsedConnection] = frozenset()
        self._log = log or logger

    def observe(self, current: Iterable[ParsedConnection]) -> ChangeSet:
        current_set = frozenset(current)
        changes = diff_snapshots(self._previous, current_set)
        log_changes(changes, self._log)
        self._previous = current_set
        return changes
