"""
Transports used by the aggregation poller to reach node daemons.

``DirectTransport`` talks to routable daemon addresses. ``TunnelTransport``
reaches each daemon pod through a per-node tunnel bound to a local port.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Sequence

import httpx

from schemas import ConnectionsResponse
from services.cluster import TUNNEL_READY_TIMEOUT, ClusterClient, Tunnel

logger = logging.getLogger(__name__)

CONNECTIONS_PATH = "/connections"


async def fetch_connections(client: httpx.AsyncClient, url: str) -> ConnectionsResponse:
    """GET a daemon's connections document and decode it."""
    resp = await client.get(url)
    resp.raise_for_status()
    return ConnectionsResponse.model_validate(resp.json())


class SnapshotTransport(ABC):
    """Fetch one node's current snapshot."""

    @abstractmethod
    async def fetch(self, endpoint: str, index: int) -> ConnectionsResponse:
        """Fetch the snapshot for ``endpoint``, the ``index``-th configured endpoint."""

    async def warm_up(self, endpoints: Sequence[str]) -> None:
        """Prepare to reach ``endpoints`` before the first timed fetch."""

    async def close(self) -> None:
        """Release transport resources."""


class DirectTransport(SnapshotTransport):
    """HTTP fetch against a known daemon address such as ``http://10.0.0.4:8080``."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    @staticmethod
    def endpoint_url(endpoint: str) -> str:
        base = endpoint.strip().rstrip("/")
        if "://" not in base:
            base = f"http://{base}"
        return f"{base}{CONNECTIONS_PATH}"

    async def fetch(self, endpoint: str, index: int) -> ConnectionsResponse:
        return await fetch_connections(self.client, self.endpoint_url(endpoint))


class TunnelTransport(SnapshotTransport):
    """
    Fetch through one tunnel per node.

    A node is bound to ``base_port + index`` the first time it is seen and
    keeps that port for the transport's lifetime, so a reordered endpoint
    list never points a node at another node's tunnel. Tunnels that die are
    reopened on the next fetch. Opening continues in the background when a
    fetch times out, so a slow tunnel is picked up by a later cycle instead
    of being restarted every time.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cluster: ClusterClient,
        base_port: int = 18080,
        remote_port: int = 8080,
        namespace: Optional[str] = None,
    ):
        self.client = client
        self.cluster = cluster
        self.base_port = base_port
        self.remote_port = remote_port
        self.namespace = namespace
        self.bindings: Dict[str, int] = {}
        self._tunnels: Dict[str, Tunnel] = {}
        self._opening: Dict[str, asyncio.Task] = {}

    def port_for(self, node: str, index: int) -> int:
        """Return the local port bound to ``node``, binding it on first use."""
        port = self.bindings.get(node)
        if port is not None:
            return port
        taken = set(self.bindings.values())
        port = self.base_port + index
        while port in taken:
            port += 1
        self.bindings[node] = port
        return port

    async def _ensure_tunnel(self, node: str, port: int) -> Tunnel:
        tunnel = self._tunnels.get(node)
        if tunnel is not None:
            if tunnel.is_alive():
                return tunnel
            logger.debug(f"Tunnel to {node} exited; reopening")
            del self._tunnels[node]
            await tunnel.close()

        task = self._opening.get(node)
        if task is None:
            task = asyncio.create_task(
                self.cluster.open_tunnel(node, port, self.remote_port, self.namespace),
                name=f"open-tunnel-{node}",
            )
            self._opening[node] = task
        try:
            tunnel = await asyncio.shield(task)
        finally:
            if task.done():
                self._opening.pop(node, None)
        self._tunnels[node] = tunnel
        return tunnel

    async def warm_up(
        self, endpoints: Sequence[str], timeout: float = TUNNEL_READY_TIMEOUT
    ) -> None:
        """
        Open every node's tunnel concurrently, waiting at most ``timeout``.

        Tunnel startup is slower than a fetch timeout, so the first cycle
        would otherwise time out on every node. Failures are left for the
        fetch to report; tunnels still opening keep going in the background.
        """
        opens = [
            self._ensure_tunnel(endpoint, self.port_for(endpoint, index))
            for index, endpoint in enumerate(endpoints)
        ]
        if not opens:
            return
        try:
            results = await asyncio.wait_for(
                asyncio.gather(*opens, return_exceptions=True), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.debug(f"Tunnels still opening after {timeout}s")
            return
        for endpoint, result in zip(endpoints, results):
            if isinstance(result, Exception):
                logger.debug(f"Tunnel to {endpoint} failed to open: {result}")

    async def fetch(self, endpoint: str, index: int) -> ConnectionsResponse:
        port = self.port_for(endpoint, index)
        tunnel = await self._ensure_tunnel(endpoint, port)
        url = f"http://127.0.0.1:{tunnel.local_port}{CONNECTIONS_PATH}"
        return await fetch_connections(self.client, url)

    async def close(self) -> None:
        opening = list(self._opening.values())
        self._opening.clear()
        for task in opening:
            task.cancel()
        for task in opening:
            try:
                tunnel = await task
            except asyncio.CancelledError:
                continue
            except Exception as e:
                logger.debug(f"Tunnel opening failed during shutdown: {e}")
                continue
            await tunnel.close()

        for tunnel in self._tunnels.values():
            await tunnel.close()
        self._tunnels.clear()
