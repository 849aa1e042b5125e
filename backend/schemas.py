"""
Pydantic v2 schemas for the connections wire format.

The daemon serializes its snapshot through these models and the viewer
decodes remote responses with the same models, so both sides agree on field
names: ``proto``, ``src_ip``, ``src_port``, ``dst_ip``, ``dst_port``, ``state``.

Decoding is strict about addresses and ports (a bad record rejects the whole
response) and lenient about ``state`` (unknown names become ``UNKNOWN``) so a
newer daemon reporting extra states still shows up in an older viewer.
"""

from datetime import datetime
from ipaddress import ip_address as parse_ip
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from parsers.base import ConnectionState, Protocol


# ── Reusable validators ──────────────────────────────────────────────

def _validate_ip(value: str, field_name: str = "IP address") -> str:
    """Validate an IPv4 or IPv6 address string and return its canonical form."""
    try:
        return str(parse_ip(value))
    except ValueError:
        raise ValueError(
            f"Invalid {field_name} '{value}'. "
            "Expected IPv4 (e.g. 192.168.1.1) or IPv6 (e.g. 2001:db8::1)"
        )


# ═══════════════════════════════════════════════════════════════════════
# CONNECTION SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class ConnectionSchema(BaseModel):
    """One tracked flow as served by a node."""

    proto: Protocol
    src_ip: str
    src_port: int = Field(..., ge=0, le=65535)
    dst_ip: str
    dst_port: int = Field(..., ge=0, le=65535)
    state: ConnectionState = ConnectionState.UNKNOWN

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("src_ip")
    @classmethod
    def validate_src_ip(cls, v):
        return _validate_ip(v, "source IP address")

    @field_validator("dst_ip")
    @classmethod
    def validate_dst_ip(cls, v):
        return _validate_ip(v, "destination IP address")

    @field_validator("state", mode="before")
    @classmethod
    def normalize_state(cls, v):
        if isinstance(v, ConnectionState):
            return v
        return ConnectionState.from_token(str(v) if v is not None else None)


class ConnectionsResponse(BaseModel):
    """Document served by ``GET /connections``."""

    node_name: Optional[str] = None
    connections: List[ConnectionSchema] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════
# INFO SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class NodeInfoResponse(BaseModel):
    """Static and runtime details about a node daemon."""

    name: str
    version: str
    node_name: Optional[str] = None
    requested_path: str
    source_path: Optional[str] = None
    snapshot_generation: int
    snapshot_size: int
    snapshot_updated_at: Optional[datetime] = None
