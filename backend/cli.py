"""Viewer CLI: poll daemons and render the aggregate, or install/uninstall the daemon."""

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence, TextIO

import httpx

from config import settings
from display import render_aggregate
from services.aggregator import AggregationPoller
from services.cluster import ClusterCommandError, KubectlClient
from services.endpoints import resolve_endpoints
from services.manifest import render_manifest
from services.state_store import AggregateStore
from services.transports import DirectTransport, SnapshotTransport, TunnelTransport
from utils.logging_utils import setup_logging
from utils.tasks import TaskSupervisor

logger = logging.getLogger(__name__)

CLEAR_SCREEN = "\033[2J\033[H"


def build_parser() -> argparse.ArgumentParser:
    """Build argument parser."""

    parser = argparse.ArgumentParser(prog="kflow", description="Cluster-wide connection tracking viewer")
    parser.add_argument(
        "--endpoints",
        default=settings.KFLOW_ENDPOINTS,
        help="comma-separated daemon URLs; disables pod discovery",
    )
    parser.add_argument(
        "--kube",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="discover daemon pods with kubectl and reach them through port-forward tunnels",
    )
    parser.add_argument(
        "--start-port",
        type=int,
        default=settings.START_PORT,
        help="first local port used for tunnels",
    )
    parser.add_argument("--interval", type=float, default=settings.POLL_INTERVAL, help="poll interval seconds")
    parser.add_argument("--timeout", type=float, default=settings.FETCH_TIMEOUT, help="per-node fetch timeout seconds")
    parser.add_argument("-n", "--namespace", default=settings.KUBE_NAMESPACE, help="daemon namespace")
    parser.add_argument("--once", action="store_true", help="poll once, print the table and exit")
    parser.add_argument("--debug", action="store_true", default=settings.KFLOW_DEBUG, help="verbose logging")

    subparsers = parser.add_subparsers(dest="command")
    for name, help_text in (("install", "apply the daemon manifest"), ("uninstall", "delete the daemon manifest")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--file", default=None, help="manifest path (bundled DaemonSet by default)")
        sub.add_argument("-n", "--namespace", dest="manifest_namespace", default=None, help="target namespace")
        sub.add_argument("--conntrack", default=None, help="CONNTRACK_PATH override, or 'auto'")
    return parser


def build_cluster(namespace: Optional[str]) -> KubectlClient:
    return KubectlClient(
        binary=settings.KUBECTL,
        selector=settings.DAEMON_SELECTOR,
        namespace=namespace,
    )


async def run_manifest_command(args: argparse.Namespace, out: Optional[TextIO] = None) -> int:
    """Apply or delete the daemon manifest."""
    out = out or sys.stdout
    try:
        manifest = render_manifest(args.file, args.conntrack)
    except OSError as e:
        logger.error(f"Cannot read manifest: {e}")
        return 1

    namespace = args.manifest_namespace or args.namespace
    cluster = build_cluster(namespace)
    action = cluster.apply if args.command == "install" else cluster.delete
    try:
        output = await action(manifest, namespace)
    except ClusterCommandError as e:
        logger.error(f"kubectl {'apply' if args.command == 'install' else 'delete'} failed: {e.message}")
        return 1

    out.write(output)
    return 0


async def watch(store: AggregateStore, poller: AggregationPoller, out: TextIO) -> None:
    """Redraw the last completed aggregate every interval."""
    while True:
        snapshot = await store.get()
        text = render_aggregate(snapshot.value, waiting=poller.cycles == 0)
        if out.isatty():
            out.write(CLEAR_SCREEN)
        out.write(text)
        out.flush()
        await asyncio.sleep(poller.interval)


async def run_viewer(args: argparse.Namespace, out: Optional[TextIO] = None) -> int:
    """Resolve endpoints, then poll and render until interrupted."""
    out = out or sys.stdout
    cluster = build_cluster(args.namespace)
    try:
        plan = await resolve_endpoints(args.endpoints, cluster, discover=args.kube)
    except ClusterCommandError as e:
        logger.error(f"Pod discovery failed: {e.message}")
        return 1

    if not plan.endpoints:
        if not args.kube:
            logger.error("Nothing to poll: pass --endpoints or enable --kube")
            return 2
        logger.warning("No daemon pods found; is the daemon installed?")

    store = AggregateStore()
    supervisor = TaskSupervisor()
    async with httpx.AsyncClient(timeout=args.timeout) as client:
        transport: SnapshotTransport
        if plan.tunneled:
            transport = TunnelTransport(
                client,
                cluster,
                base_port=args.start_port,
                remote_port=settings.LISTEN_PORT,
                namespace=args.namespace,
            )
        else:
            transport = DirectTransport(client)

        poller = AggregationPoller(
            plan.endpoints,
            transport,
            store,
            interval=args.interval,
            timeout=args.timeout,
        )
        try:
            await transport.warm_up(plan.endpoints)
            if args.once:
                nodes = await poller.poll_once()
                out.write(render_aggregate(nodes))
                return 0
            supervisor.start("aggregation", poller.run_forever)
            await watch(store, poller, out)
        finally:
            await supervisor.stop_all()
            await transport.close()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the kflow CLI."""

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.interval <= 0 or args.timeout <= 0:
        parser.error("--interval and --timeout must be positive")
    setup_logging(level="DEBUG" if args.debug else "INFO", stream=sys.stderr)

    try:
        if args.command in ("install", "uninstall"):
            return asyncio.run(run_manifest_command(args))
        return asyncio.run(run_viewer(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
