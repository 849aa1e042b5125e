"""
Snapshot building: read the whole table and parse it.

Every failure here degrades to an empty snapshot for the current cycle. The
ingestion loop runs forever on a fixed interval, so a missing mount or a
transient read error must never stop it.
"""

import asyncio
import logging
from typing import List, Optional

from parsers.base import ParsedConnection
from parsers.conntrack import ConntrackParser
from services.source_locator import detect_source_candidate

logger = logging.getLogger(__name__)

_parser = ConntrackParser()

DEBUG_PREVIEW_LINES = 5


def _decode_lines(raw: bytes) -> List[str]:
    """Split raw table bytes into text lines, dropping undecodable ones."""
    lines = []
    for raw_line in raw.splitlines():
        try:
            lines.append(raw_line.decode("utf-8"))
        except UnicodeDecodeError:
            continue
    return lines


def read_snapshot(
    path: Optional[str],
    host_root: str = "/host",
    root: str = "/",
) -> List[ParsedConnection]:
    """
    Read and parse the table at ``path``.

    Args:
        path: Resolved table path, or None when still unresolved
        host_root: Prefix used if detection has to run
        root: Unprefixed root used if detection has to run

    Returns:
        Connections in file order; empty when nothing could be read
    """
    path_to_use = path
    if not path_to_use:
        path_to_use = detect_source_candidate(host_root, root)
        if not path_to_use:
            return []
        logger.debug(f"Detected conntrack path during read: {path_to_use}")

    try:
        with open(path_to_use, "rb") as handle:
            raw = handle.read()
    except OSError as e:
        logger.debug(f"Failed to open conntrack file {path_to_use}: {e}")
        return []

    lines = _decode_lines(raw)

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Read {len(lines)} lines from {path_to_use}")
        for index, line in enumerate(lines[:DEBUG_PREVIEW_LINES]):
            logger.debug(f"  [{index}] {line}")

    return _parser.parse_lines(lines)


async def build_snapshot(
    path: Optional[str],
    host_root: str = "/host",
    root: str = "/",
) -> List[ParsedConnection]:
    """Async wrapper running :func:`read_snapshot` off the event loop."""
    return await asyncio.to_thread(read_snapshot, path, host_root, root)
