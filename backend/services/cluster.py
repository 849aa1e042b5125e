"""
Cluster collaborator: pod discovery, manifest apply/delete and tunnels.

The core only depends on :class:`ClusterClient`. :class:`KubectlClient`
implements it by shelling out to the ``kubectl`` binary; nothing outside
this module knows kubectl's argument syntax.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_SELECTOR = "app=kflow-daemon"
TUNNEL_READY_TIMEOUT = 5.0
TUNNEL_STOP_TIMEOUT = 2.0


class ClusterCommandError(Exception):
    """Raised when a cluster CLI call fails; carries the CLI's diagnostic text."""

    def __init__(self, command: Sequence[str], message: str, returncode: Optional[int] = None):
        self.command = list(command)
        self.message = message.strip()
        self.returncode = returncode
        super().__init__(f"{' '.join(self.command[:2])} failed: {self.message}")


class Tunnel(ABC):
    """A forwarding transport exposing a remote node on ``127.0.0.1:<local_port>``."""

    local_port: int

    @abstractmethod
    def is_alive(self) -> bool:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class ClusterClient(ABC):
    """Operations the viewer needs from the cluster."""

    @abstractmethod
    async def discover(self) -> List[str]:
        """Return identifiers of the running daemon pods."""

    @abstractmethod
    async def apply(self, manifest: str, namespace: Optional[str] = None) -> str:
        """Submit ``manifest``; return the CLI's output."""

    @abstractmethod
    async def delete(self, manifest: str, namespace: Optional[str] = None) -> str:
        """Remove the objects in ``manifest``; return the CLI's output."""

    @abstractmethod
    async def open_tunnel(
        self,
        pod: str,
        local_port: int,
        remote_port: int,
        namespace: Optional[str] = None,
    ) -> Tunnel:
        """Make ``pod``'s ``remote_port`` reachable on ``127.0.0.1:local_port``."""


class PortForwardTunnel(Tunnel):
    """A running ``kubectl port-forward`` process."""

    def __init__(self, process: asyncio.subprocess.Process, pod: str, local_port: int):
        self.process = process
        self.pod = pod
        self.local_port = local_port
        self._drain_task: Optional[asyncio.Task] = None

    @classmethod
    async def start(
        cls,
        command: Sequence[str],
        pod: str,
        local_port: int,
        ready_timeout: float = TUNNEL_READY_TIMEOUT,
    ) -> "PortForwardTunnel":
        """Spawn ``command`` and wait for its "Forwarding from" line."""
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ClusterCommandError(command, str(e))

        tunnel = cls(process, pod, local_port)
        output: List[str] = []
        try:
            await asyncio.wait_for(tunnel._wait_ready(output), timeout=ready_timeout)
        except asyncio.TimeoutError:
            await tunnel.close()
            raise ClusterCommandError(command, f"tunnel to {pod} not ready after {ready_timeout}s")
        except (ClusterCommandError, asyncio.CancelledError):
            await tunnel.close()
            raise

        tunnel._drain_task = asyncio.create_task(tunnel._drain(), name=f"tunnel-{pod}")
        logger.debug(f"Tunnel to {pod} listening on 127.0.0.1:{local_port}")
        return tunnel

    async def _wait_ready(self, output: List[str]) -> None:
        while True:
            raw = await self.process.stdout.readline()
            if not raw:
                await self.process.wait()
                raise ClusterCommandError(
                    ["kubectl", "port-forward", self.pod],
                    "".join(output) or "port-forward exited",
                    self.process.returncode,
                )
            line = raw.decode("utf-8", errors="replace")
            output.append(line)
            if "Forwarding from" in line:
                return

    async def _drain(self) -> None:
        # port-forward prints a line per proxied connection; keep the pipe empty
        while True:
            raw = await self.process.stdout.readline()
            if not raw:
                return
            logger.debug(f"[{self.pod}] {raw.decode('utf-8', errors='replace').rstrip()}")

    def is_alive(self) -> bool:
        return self.process.returncode is None

    async def close(self) -> None:
        if self._drain_task is not None:
            self._drain_task.cancel()
            self._drain_task = None
        if self.process.returncode is not None:
            return
        self.process.terminate()
        try:
            await asyncio.wait_for(self.process.wait(), timeout=TUNNEL_STOP_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"Tunnel to {self.pod} did not exit in time; killing")
            self.process.kill()
            await self.process.wait()


class KubectlClient(ClusterClient):
    """:class:`ClusterClient` backed by the kubectl binary."""

    def __init__(
        self,
        binary: str = "kubectl",
        selector: str = DEFAULT_SELECTOR,
        namespace: Optional[str] = None,
    ):
        self.binary = binary
        self.selector = selector
        self.namespace = namespace

    def _namespace_args(self, namespace: Optional[str]) -> List[str]:
        namespace = namespace or self.namespace
        return ["-n", namespace] if namespace else []

    async def _run(self, args: Sequence[str], input_text: Optional[str] = None) -> str:
        command = [self.binary, *args]
        logger.debug(f"Running: {' '.join(command)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE if input_text is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ClusterCommandError(command, str(e))

        stdin_bytes = input_text.encode("utf-8") if input_text is not None else None
        stdout, stderr = await process.communicate(stdin_bytes)
        if process.returncode != 0:
            raise ClusterCommandError(
                command,
                stderr.decode("utf-8", errors="replace"),
                process.returncode,
            )
        return stdout.decode("utf-8", errors="replace")

    async def discover(self) -> List[str]:
        out = await self._run([
            "get", "pods",
            "-l", self.selector,
            *self._namespace_args(None),
            "-o", "jsonpath={.items[*].metadata.name}",
        ])
        return out.split()

    async def apply(self, manifest: str, namespace: Optional[str] = None) -> str:
        return await self._run(["apply", "-f", "-", *self._namespace_args(namespace)], manifest)

    async def delete(self, manifest: str, namespace: Optional[str] = None) -> str:
        return await self._run(["delete", "-f", "-", *self._namespace_args(namespace)], manifest)

    async def open_tunnel(
        self,
        pod: str,
        local_port: int,
        remote_port: int,
        namespace: Optional[str] = None,
    ) -> Tunnel:
        command = [
            self.binary, "port-forward",
            *self._namespace_args(namespace),
            pod, f"{local_port}:{remote_port}",
        ]
        return await PortForwardTunnel.start(command, pod, local_port)
