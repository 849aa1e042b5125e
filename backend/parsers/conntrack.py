"""Parser for the kernel connection-tracking table (nf_conntrack / ip_conntrack)."""

from ipaddress import ip_address
from typing import Iterable, List, Optional

from .base import (
    BaseParser,
    ConnectionState,
    ParsedConnection,
    ParseResult,
    Protocol,
)

MIN_TOKENS = 5
MAX_PORT = 65535

# Bare tokens that set the state; UNKNOWN is only ever the fallback
TRACKED_STATES = {
    "ESTABLISHED": ConnectionState.ESTABLISHED,
    "SYN_SENT": ConnectionState.SYN_SENT,
    "SYN_RECV": ConnectionState.SYN_RECV,
    "FIN_WAIT": ConnectionState.FIN_WAIT,
    "TIME_WAIT": ConnectionState.TIME_WAIT,
}


class ConntrackParser(BaseParser):
    """Parser for connection-tracking table lines.

    A typical line looks like::

        ipv4 2 tcp 6 431999 ESTABLISHED src=10.0.0.5 dst=10.0.0.9 sport=443
        dport=51000 src=10.0.0.9 dst=10.0.0.5 sport=51000 dport=443 [ASSURED] mark=0 use=1

    Only the first occurrence of each field is used, which is the original
    direction of the flow. Everything else on the line is ignored.
    """

    source_type: str = "conntrack"

    def parse(self, data: str, **kwargs) -> ParseResult:
        """
        Parse a whole table dump.

        Args:
            data: Raw table content
            **kwargs: Additional arguments

        Returns:
            ParseResult with one connection per accepted line, in input order
        """
        result = ParseResult(success=True, source_type=self.source_type)
        if not data or not data.strip():
            return result

        result.connections = self.parse_lines(data.splitlines())
        non_blank = sum(1 for line in data.splitlines() if line.strip())
        result.skipped_lines = non_blank - len(result.connections)
        return result

    def parse_lines(self, lines: Iterable[str]) -> List[ParsedConnection]:
        """Parse lines, keeping only those that produce a connection."""
        connections = []
        for line in lines:
            connection = self.parse_line(line)
            if connection is not None:
                connections.append(connection)
        return connections

    def parse_line(self, line: str) -> Optional[ParsedConnection]:
        """
        Parse a single table line.

        Returns:
            The connection, or None when protocol, either address or either
            port is missing
        """
        tokens = line.split()
        if len(tokens) < MIN_TOKENS:
            return None

        proto: Optional[Protocol] = None
        state: Optional[ConnectionState] = None
        src_ip: Optional[str] = None
        dst_ip: Optional[str] = None
        src_port: Optional[int] = None
        dst_port: Optional[int] = None

        for token in tokens:
            if proto is None and token in ("tcp", "udp"):
                proto = Protocol(token)
            elif token.startswith("src=") and src_ip is None:
                src_ip = self._parse_ip(token[len("src="):])
            elif token.startswith("dst=") and dst_ip is None:
                dst_ip = self._parse_ip(token[len("dst="):])
            elif token.startswith("sport=") and src_port is None:
                src_port = self._parse_port(token[len("sport="):])
            elif token.startswith("dport=") and dst_port is None:
                dst_port = self._parse_port(token[len("dport="):])
            elif state is None and token in TRACKED_STATES:
                state = TRACKED_STATES[token]

        if proto is None or src_ip is None or dst_ip is None:
            return None
        if src_port is None or dst_port is None:
            return None

        return ParsedConnection(
            proto=proto,
            src_ip=src_ip,
            src_port=src_port,
            dst_ip=dst_ip,
            dst_port=dst_port,
            state=state or ConnectionState.UNKNOWN,
        )

    def detect_format(self, data: str) -> Optional[str]:
        """Return 'conntrack' when the first non-blank line carries src=/dst= keys."""
        for line in data.splitlines():
            if not line.strip():
                continue
            if "src=" in line and "dst=" in line:
                return self.source_type
            return None
        return None

    def _parse_ip(self, value: str) -> Optional[str]:
        """Return the canonical form of an IPv4/IPv6 address, or None."""
        # Scoped IPv6 (fe80::1%eth0) is not a plain address
        if "%" in value:
            return None
        try:
            return str(ip_address(value))
        except ValueError:
            return None

    def _parse_port(self, value: str) -> Optional[int]:
        """Parse an unsigned 16-bit port number; one leading + is allowed."""
        digits = value[1:] if value.startswith("+") else value
        if not digits.isascii() or not digits.isdigit():
            return None
        port = int(digits)
        if port > MAX_PORT:
            return None
        return port
