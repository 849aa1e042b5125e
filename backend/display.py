"""Plain-text rendering of the aggregated view."""

from typing import List, Mapping, Sequence

from schemas import ConnectionSchema

HEADERS = ("NODE", "PROTO", "SOURCE", "DESTINATION", "STATE")
WAITING_MESSAGE = "Waiting for first fetch..."
EMPTY_MESSAGE = "No nodes reported connections."


def format_endpoint(ip: str, port: int) -> str:
    """Render ``ip:port``, bracketing IPv6 addresses."""
    if ":" in ip:
        return f"[{ip}]:{port}"
    return f"{ip}:{port}"


def build_rows(nodes: Mapping[str, Sequence[ConnectionSchema]]) -> List[tuple]:
    rows = []
    for node in sorted(nodes):
        for conn in nodes[node]:
            rows.append((
                node,
                conn.proto.value,
                format_endpoint(conn.src_ip, conn.src_port),
                format_endpoint(conn.dst_ip, conn.dst_port),
                conn.state.value,
            ))
    return rows


def render_aggregate(
    nodes: Mapping[str, Sequence[ConnectionSchema]],
    waiting: bool = False,
) -> str:
    """
    Render the aggregate as an aligned table, one row per connection.

    Args:
        nodes: Node identifier -> that node's connections
        waiting: True until the first aggregation cycle has completed

    Returns:
        The table text, ending with a newline
    """
    if waiting:
        return WAITING_MESSAGE + "\n"

    rows = build_rows(nodes)
    if not rows:
        return EMPTY_MESSAGE + "\n"

    widths = [len(h) for h in HEADERS]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]

    def fmt(cells) -> str:
        return "  ".join(cell.ljust(w) for cell, w in zip(cells, widths)).rstrip()

    lines = [fmt(HEADERS)]
    lines.extend(fmt(row) for row in rows)
    lines.append(f"{len(nodes)} node(s), {len(rows)} connection(s)")
    return "\n".join(lines) + "\n"
