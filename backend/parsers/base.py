"""Base classes and data structures for connection-tracking parsing."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


class Protocol(str, Enum):
    """Transport protocols tracked in the table."""

    TCP = "tcp"
    UDP = "udp"


class ConnectionState(str, Enum):
    """Connection states recognized in table lines."""

    ESTABLISHED = "ESTABLISHED"
    SYN_SENT = "SYN_SENT"
    SYN_RECV = "SYN_RECV"
    FIN_WAIT = "FIN_WAIT"
    TIME_WAIT = "TIME_WAIT"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_token(cls, token: Optional[str]) -> "ConnectionState":
        """Map a raw state name to a state, UNKNOWN when unrecognized."""
        if not token:
            return cls.UNKNOWN
        try:
            return cls(token)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class ParsedConnection:
    """One tracked flow. Equal only when all six fields match."""

    proto: Protocol
    src_ip: str
    src_port: int
    dst_ip: str
    dst_port: int
    state: ConnectionState = ConnectionState.UNKNOWN


@dataclass
class ParseResult:
    """Result of parsing operation."""

    success: bool
    source_type: str
    connections: List[ParsedConnection] = field(default_factory=list)
    skipped_lines: int = 0
    errors: List[str] = field(default_factory=list)
    parsed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class BaseParser(ABC):
    """Abstract base class for all parsers."""

    source_type: str = "unknown"

    @abstractmethod
    def parse(self, data: str, **kwargs) -> ParseResult:
        """Parse input data and return structured result."""
        pass

    def detect_format(self, data: str) -> Optional[str]:
        """Detect the format of input data. Override in subclasses."""
        return None
