"""
Connection-tracking table discovery.

The table lives under ``/proc/net`` on the host, which a daemon pod usually
sees through a hostPath mount such as ``/host/proc``. Depending on the kernel
the file is called ``nf_conntrack`` or the legacy ``ip_conntrack`` (with
``6`` suffixed variants for IPv6). It may also be missing or empty for a
while after the conntrack module loads, so nothing here ever raises: an
unresolved path is reported as ``None`` and callers retry on the next cycle.
"""

import logging
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

AUTO = "auto"

PRIMARY_TABLE = "nf_conntrack"
LEGACY_TABLE = "ip_conntrack"
DETECTION_TABLES = ("nf_conntrack", "ip_conntrack", "nf_conntrack6", "ip_conntrack6")


def _table_path(root: str, name: str) -> Path:
    return Path(root) / "proc" / "net" / name


def _prefixed(prefix: str, path: str) -> Path:
    return Path(prefix) / path.lstrip("/")


def detection_candidates(host_root: str = "/host", root: str = "/") -> List[Path]:
    """Ordered candidates probed by auto-detection, host mount first."""
    return [
        _table_path(base, name)
        for base in (host_root, root)
        for name in DETECTION_TABLES
    ]


def fallback_candidates(requested: str, host_root: str = "/host", root: str = "/") -> List[Path]:
    """Ordered alternates tried when a concrete requested path is missing."""
    return [
        _prefixed(host_root, requested),
        _table_path(host_root, PRIMARY_TABLE),
        _table_path(host_root, LEGACY_TABLE),
        _table_path(root, PRIMARY_TABLE),
        _table_path(root, LEGACY_TABLE),
    ]


def _exists(candidate: Path) -> bool:
    try:
        return candidate.exists()
    except OSError:
        return False


def _has_content(candidate: Path) -> bool:
    """Return True when the first line of ``candidate`` is non-blank."""
    try:
        with candidate.open("r", encoding="utf-8") as handle:
            first_line = handle.readline()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Failed reading candidate {candidate}: {e}")
        return False

    if not first_line.strip():
        logger.debug(f"Candidate {candidate} exists but was empty; skipping")
        return False
    return True


def detect_source_candidate(host_root: str = "/host", root: str = "/") -> Optional[str]:
    """
    Probe the standard table locations.

    Args:
        host_root: Prefix where the host filesystem is mounted
        root: Unprefixed filesystem root

    Returns:
        The first existing candidate with content, or None
    """
    for candidate in detection_candidates(host_root, root):
        if not _exists(candidate):
            continue
        if _has_content(candidate):
            logger.debug(f"Candidate {candidate} exists and has content")
            return str(candidate)
    return None


def resolve_source_path(
    requested: str,
    host_root: str = "/host",
    root: str = "/",
) -> Optional[str]:
    """
    Resolve the configured table path.

    Args:
        requested: Concrete path, or "auto" to run detection only
        host_root: Prefix where the host filesystem is mounted
        root: Unprefixed filesystem root

    Returns:
        An existing path, or None when nothing was found yet
    """
    if requested == AUTO:
        found = detect_source_candidate(host_root, root)
        if found:
            logger.debug(f"Auto-detected conntrack path: {found}")
        return found

    if _exists(Path(requested)):
        return requested

    for candidate in fallback_candidates(requested, host_root, root):
        if _exists(candidate):
            logger.debug(f"Resolved conntrack path '{requested}' -> '{candidate}'")
            return str(candidate)

    logger.warning(
        f"Conntrack path '{requested}' does not exist and no alternatives found; "
        "will retry detection periodically"
    )
    return None
