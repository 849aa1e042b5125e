"""In-memory cluster doubles shared by the viewer tests."""

import asyncio
from typing import List, Optional

from services.cluster import ClusterClient, ClusterCommandError, Tunnel


class FakeTunnel(Tunnel):
    def __init__(self, local_port: int):
        self.local_port = local_port
        self.alive = True
        self.closed = False

    def is_alive(self) -> bool:
        return self.alive

    async def close(self) -> None:
        self.closed = True
        self.alive = False


class FakeCluster(ClusterClient):
    """Records calls; ``fail_open`` makes tunnel opening fail, ``open_delay`` slows it."""

    def __init__(self, pods: Optional[List[str]] = None):
        self.pods = pods or []
        self.opened: List[tuple] = []
        self.tunnels: List[FakeTunnel] = []
        self.applied: List[tuple] = []
        self.deleted: List[tuple] = []
        self.fail_open = False
        self.open_delay = 0.0

    async def discover(self) -> List[str]:
        return list(self.pods)

    async def apply(self, manifest: str, namespace: Optional[str] = None) -> str:
        self.applied.append((manifest, namespace))
        return "daemonset.apps/kflow-daemon created\n"

    async def delete(self, manifest: str, namespace: Optional[str] = None) -> str:
        self.deleted.append((manifest, namespace))
        return "daemonset.apps \"kflow-daemon\" deleted\n"

    async def open_tunnel(self, pod, local_port, remote_port, namespace=None) -> Tunnel:
        if self.fail_open:
            raise ClusterCommandError(["kubectl", "port-forward"], "unable to forward")
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        self.opened.append((pod, local_port, remote_port, namespace))
        tunnel = FakeTunnel(local_port)
        self.tunnels.append(tunnel)
        return tunnel


class FailingCluster(FakeCluster):
    """Every cluster CLI call fails."""

    async def discover(self) -> List[str]:
        raise ClusterCommandError(["kubectl", "get"], "connection refused")

    async def apply(self, manifest: str, namespace: Optional[str] = None) -> str:
        raise ClusterCommandError(["kubectl", "apply"], "error: no context configured", 1)

    async def delete(self, manifest: str, namespace: Optional[str] = None) -> str:
        raise ClusterCommandError(["kubectl", "delete"], "error: no context configured", 1)
