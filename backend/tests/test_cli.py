"""
Tests for the viewer CLI.

Covers:
- Argument parsing
- install / uninstall against a fake cluster
- One-shot polling over direct and tunneled endpoints
- Exit codes for configuration and discovery failures
"""

import io

import httpx
import pytest

import cli
from display import EMPTY_MESSAGE

from fakes import FailingCluster, FakeCluster


def connections_document(node: str) -> dict:
    return {
        "node_name": node,
        "connections": [
            {
                "proto": "tcp",
                "src_ip": "10.0.0.1",
                "src_port": 40000,
                "dst_ip": "10.0.0.2",
                "dst_port": 443,
                "state": "ESTABLISHED",
            }
        ],
    }


@pytest.fixture
def mock_http(monkeypatch):
    """Route the viewer's HTTP client to an in-process handler."""
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "down":
            raise httpx.ConnectError("connection refused", request=request)
        port = request.url.port
        node = f"tunnel-{port}" if request.url.host == "127.0.0.1" else request.url.host
        return httpx.Response(200, json=connections_document(node))

    def factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", factory)


@pytest.fixture
def fake_cluster(monkeypatch):
    cluster = FakeCluster(["pod-a", "pod-b"])
    monkeypatch.setattr(cli, "build_cluster", lambda namespace: cluster)
    return cluster


class TestArgumentParsing:
    def test_defaults(self):
        args = cli.build_parser().parse_args([])
        assert args.kube is True
        assert args.once is False
        assert args.command is None

    def test_no_kube(self):
        args = cli.build_parser().parse_args(["--no-kube", "--endpoints", "a:8080,b:8080"])
        assert args.kube is False
        assert args.endpoints == "a:8080,b:8080"

    def test_install_options(self):
        args = cli.build_parser().parse_args(
            ["install", "--conntrack", "/proc/net/nf_conntrack", "-n", "ops"]
        )
        assert args.command == "install"
        assert args.conntrack == "/proc/net/nf_conntrack"
        assert args.manifest_namespace == "ops"

    def test_non_positive_interval_rejected(self):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--interval", "0"])
        assert exc_info.value.code == 2


class TestManifestCommands:
    @pytest.mark.asyncio
    async def test_install_applies_bundled_manifest(self, fake_cluster):
        args = cli.build_parser().parse_args(["install", "--conntrack", "/proc/net/ip_conntrack", "-n", "ops"])
        out = io.StringIO()
        assert await cli.run_manifest_command(args, out) == 0

        manifest, namespace = fake_cluster.applied[0]
        assert namespace == "ops"
        assert 'value: "/host/proc/net/ip_conntrack"' in manifest
        assert out.getvalue() == "daemonset.apps/kflow-daemon created\n"

    @pytest.mark.asyncio
    async def test_uninstall_deletes(self, fake_cluster):
        args = cli.build_parser().parse_args(["-n", "kflow", "uninstall"])
        assert await cli.run_manifest_command(args, io.StringIO()) == 0
        assert fake_cluster.deleted[0][1] == "kflow"

    @pytest.mark.asyncio
    async def test_cluster_failure_returns_1(self, monkeypatch):
        monkeypatch.setattr(cli, "build_cluster", lambda namespace: FailingCluster())
        args = cli.build_parser().parse_args(["install"])
        out = io.StringIO()
        assert await cli.run_manifest_command(args, out) == 1
        assert out.getvalue() == ""

    @pytest.mark.asyncio
    async def test_missing_manifest_returns_1(self, fake_cluster, tmp_path):
        args = cli.build_parser().parse_args(["install", "--file", str(tmp_path / "missing.yaml")])
        assert await cli.run_manifest_command(args, io.StringIO()) == 1
        assert fake_cluster.applied == []


class TestViewer:
    @pytest.mark.asyncio
    async def test_once_with_static_endpoints(self, mock_http, fake_cluster):
        args = cli.build_parser().parse_args(["--endpoints", "node-a:8080,down:8080,node-b:8080", "--once"])
        out = io.StringIO()
        assert await cli.run_viewer(args, out) == 0

        text = out.getvalue()
        assert "node-a" in text
        assert "node-b" in text
        assert "down" not in text
        assert "2 node(s), 2 connection(s)" in text
        assert fake_cluster.opened == []

    @pytest.mark.asyncio
    async def test_once_with_discovered_pods(self, mock_http, fake_cluster):
        args = cli.build_parser().parse_args(["--once", "--start-port", "20000", "-n", "kflow"])
        out = io.StringIO()
        assert await cli.run_viewer(args, out) == 0

        assert [(pod, port) for pod, port, _, _ in fake_cluster.opened] == [("pod-a", 20000), ("pod-b", 20001)]
        assert all(ns == "kflow" for _, _, _, ns in fake_cluster.opened)
        assert all(t.closed for t in fake_cluster.tunnels)
        assert "tunnel-20000" in out.getvalue()
        assert "tunnel-20001" in out.getvalue()

    @pytest.mark.asyncio
    async def test_once_waits_for_slow_tunnels(self, mock_http, fake_cluster):
        fake_cluster.open_delay = 0.3
        args = cli.build_parser().parse_args(["--once", "--timeout", "0.1", "--interval", "1"])
        out = io.StringIO()
        assert await cli.run_viewer(args, out) == 0

        text = out.getvalue()
        assert "tunnel-18080" in text
        assert "tunnel-18081" in text
        assert len(fake_cluster.opened) == 2

    @pytest.mark.asyncio
    async def test_no_pods_found(self, mock_http, monkeypatch):
        monkeypatch.setattr(cli, "build_cluster", lambda namespace: FakeCluster([]))
        args = cli.build_parser().parse_args(["--once"])
        out = io.StringIO()
        assert await cli.run_viewer(args, out) == 0
        assert out.getvalue() == EMPTY_MESSAGE + "\n"

    @pytest.mark.asyncio
    async def test_nothing_to_poll(self):
        args = cli.build_parser().parse_args(["--no-kube", "--endpoints", ""])
        assert await cli.run_viewer(args, io.StringIO()) == 2

    @pytest.mark.asyncio
    async def test_discovery_failure(self, monkeypatch):
        monkeypatch.setattr(cli, "build_cluster", lambda namespace: FailingCluster())
        args = cli.build_parser().parse_args(["--once"])
        assert await cli.run_viewer(args, io.StringIO()) == 1

    def test_main_once(self, mock_http, fake_cluster, monkeypatch, capsys):
        monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)
        assert cli.main(["--endpoints", "node-a:8080", "--once"]) == 0
        assert "node-a" in capsys.readouterr().out
