"""
Health check service for the node daemon.

Checks that the connection-tracking table has been located and that the
ingestion loop is still refreshing the snapshot, and tracks uptime.
Returns structured health responses with per-component status.
"""

import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel

from config import settings
from services.ingestion import IngestionWorker

logger = logging.getLogger(__name__)

# Captured at module load, used to compute uptime
_start_time = time.monotonic()

# Missing this many cycles in a row marks ingestion as stalled
STALE_CYCLES = 3


class ComponentHealth(BaseModel):
    name: str
    status: str  # "ok" | "degraded" | "error"
    message: Optional[str] = None
    age_seconds: Optional[float] = None


class HealthResponse(BaseModel):
    status: str  # "healthy" | "degraded" | "unhealthy"
    app: str
    version: str
    node_name: Optional[str] = None
    uptime_seconds: float
    checks: List[ComponentHealth]
    timestamp: str


def check_source(worker: IngestionWorker) -> ComponentHealth:
    """Report whether a table path has been resolved."""
    if worker.source_path:
        return ComponentHealth(name="conntrack_source", status="ok", message=worker.source_path)
    return ComponentHealth(
        name="conntrack_source",
        status="degraded",
        message=f"'{worker.requested_path}' not resolved; detection retried every cycle",
    )


def check_ingestion(worker: IngestionWorker) -> ComponentHealth:
    """Report whether the ingestion loop completed a cycle recently."""
    age = worker.seconds_since_last_cycle()
    if age is None:
        return ComponentHealth(
            name="ingestion",
            status="degraded",
            message="No ingestion cycle completed yet",
        )
    age = round(age, 1)
    if age > worker.interval * STALE_CYCLES:
        return ComponentHealth(
            name="ingestion",
            status="error",
            message=f"Last cycle {age}s ago (interval {worker.interval}s)",
            age_seconds=age,
        )
    return ComponentHealth(name="ingestion", status="ok", age_seconds=age)


# A stalled ingestion loop means the served snapshot is frozen.
# A missing table only means empty snapshots for now.
CRITICAL_CHECKS = frozenset({"ingestion"})


def overall_status(checks: List[ComponentHealth]) -> str:
    """Roll component results up into healthy, degraded or unhealthy."""
    if any(c.status == "error" and c.name in CRITICAL_CHECKS for c in checks):
        return "unhealthy"
    if all(c.status == "ok" for c in checks):
        return "healthy"
    return "degraded"


async def run_health_checks(
    worker: IngestionWorker,
    node_name: Optional[str] = None,
) -> HealthResponse:
    """Run all health checks and return aggregated status."""
    checks = [check_source(worker), check_ingestion(worker)]
    for check in checks:
        if check.status != "ok":
            logger.debug(f"Health check '{check.name}' is {check.status}: {check.message}")

    return HealthResponse(
        status=overall_status(checks),
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        node_name=node_name,
        uptime_seconds=round(time.monotonic() - _start_time, 1),
        checks=checks,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
