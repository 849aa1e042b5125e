"""Endpoint resolution for the aggregation poller."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from services.cluster import ClusterClient

logger = logging.getLogger(__name__)


@dataclass
class EndpointPlan:
    """Endpoints to poll and how to reach them."""

    endpoints: List[str] = field(default_factory=list)
    tunneled: bool = False


def parse_endpoint_list(value: Optional[str]) -> List[str]:
    """Split a comma-separated endpoint list, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


async def resolve_endpoints(
    static: Optional[str],
    cluster: Optional[ClusterClient] = None,
    discover: bool = True,
) -> EndpointPlan:
    """
    Decide which endpoints to poll.

    A static list wins and is fetched directly. Without one, the daemon pods
    are discovered through ``cluster`` and reached through tunnels.

    Raises:
        ClusterCommandError: If discovery was attempted and failed
    """
    endpoints = parse_endpoint_list(static)
    if endpoints:
        logger.info(f"Using {len(endpoints)} static endpoint(s)")
        return EndpointPlan(endpoints=endpoints, tunneled=False)

    if not discover or cluster is None:
        return EndpointPlan()

    pods = await cluster.discover()
    logger.info(f"Discovered {len(pods)} daemon pod(s)")
    return EndpointPlan(endpoints=pods, tunneled=True)
