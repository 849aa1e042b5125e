"""Parser package for connection-tracking data.

This package contains parsers for kernel connection-tracking table dumps.
"""

from .base import (
    BaseParser,
    ConnectionState,
    ParsedConnection,
    ParseResult,
    Protocol,
)
from .conntrack import ConntrackParser

# Parser registry mapping source names to parser classes
PARSERS = {
    "conntrack": ConntrackParser,
    "nf_conntrack": ConntrackParser,
    "ip_conntrack": ConntrackParser,
}


def get_parser(source_name: str) -> BaseParser:
    """Get a parser instance by source name.

    Args:
        source_name: Name of the table source (e.g., 'conntrack')

    Returns:
        Parser instance

    Raises:
        ValueError: If source_name is not registered
    """
    parser_class = PARSERS.get(source_name.lower())
    if parser_class is None:
        raise ValueError(
            f"Unknown parser: {source_name}. Available: {', '.join(PARSERS.keys())}"
        )
    return parser_class()


__all__ = [
    "BaseParser",
    "ConnectionState",
    "ParsedConnection",
    "ParseResult",
    "Protocol",
    "ConntrackParser",
    "PARSERS",
    "get_parser",
]
