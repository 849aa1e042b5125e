"""
Daemon manifest rendering for install/uninstall.

The bundled DaemonSet reads its table location from the ``CONNTRACK_PATH``
environment variable. An override given on the command line is written into
that variable before the manifest is handed to the cluster CLI.
"""

import re
from pathlib import Path
from typing import Optional

DEFAULT_MANIFEST_PATH = Path(__file__).resolve().parents[1] / "deploy" / "daemonset.yaml"

CONNTRACK_ENV = "CONNTRACK_PATH"
HOST_PROC_PREFIX = "/host"
VALUE_LOOKAHEAD = 5

_DEFAULT_PATH_RE = re.compile(r"(?:/host)?/proc/net/nf_conntrack")


def normalize_conntrack_override(value: str) -> str:
    """
    Map a user-supplied table path to what the daemon pod sees.

    ``auto`` is kept, host ``/proc/...`` paths are rewritten to the
    ``/host/proc/...`` mount, anything else is used verbatim.
    """
    if value == "auto":
        return value
    if value.startswith("/proc/"):
        return f"{HOST_PROC_PREFIX}{value}"
    return value


def _strip_list_marker(text: str) -> str:
    if text.startswith("- "):
        return text[2:].lstrip()
    return text


def update_manifest_conntrack(manifest: str, value: str) -> str:
    """
    Set the ``CONNTRACK_PATH`` env value in ``manifest``.

    The ``value:`` line following the env entry's ``name:`` line (within
    five lines) is rewritten in place, keeping its indentation and quote
    style. Manifests without such an entry get the default table paths
    replaced instead.

    Args:
        manifest: YAML text
        value: New table path (already normalized)

    Returns:
        The updated manifest text
    """
    lines = manifest.split("\n")
    for i, line in enumerate(lines):
        trimmed = _strip_list_marker(line.lstrip())
        if not (trimmed.startswith("name:") and CONNTRACK_ENV in trimmed):
            continue

        for j in range(i + 1, min(i + 1 + VALUE_LOOKAHEAD, len(lines))):
            candidate = lines[j].lstrip()
            if not candidate.startswith("value:"):
                continue
            indent = lines[j][: len(lines[j]) - len(candidate)]
            rest = candidate[len("value:"):].lstrip()
            quote = rest[0] if rest[:1] in ('"', "'") else '"'
            lines[j] = f"{indent}value: {quote}{value}{quote}"
            return "\n".join(lines)

    return _DEFAULT_PATH_RE.sub(value, manifest)


def render_manifest(file: Optional[str] = None, conntrack: Optional[str] = None) -> str:
    """
    Load a manifest and apply an optional table path override.

    Args:
        file: Manifest path; the bundled DaemonSet when omitted
        conntrack: Table path override or "auto"

    Returns:
        Manifest text ready for the cluster CLI
    """
    path = Path(file) if file else DEFAULT_MANIFEST_PATH
    manifest = path.read_text(encoding="utf-8")
    if conntrack:
        manifest = update_manifest_conntrack(manifest, normalize_conntrack_override(conntrack))
    return manifest
