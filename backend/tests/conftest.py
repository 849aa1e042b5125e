"""
Pytest configuration and fixtures for kflow tests.

Provides:
- A snapshot store filled from the bundled sample table
- FastAPI app state wired the way the daemon lifespan wires it
- AsyncClient for testing async endpoints
"""

from pathlib import Path

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from main import app
from services.ingestion import IngestionWorker
from services.state_store import SnapshotStore

SAMPLE_PATH = Path(__file__).resolve().parents[2] / "samples" / "nf_conntrack.txt"


@pytest.fixture
def sample_path() -> Path:
    return SAMPLE_PATH


@pytest.fixture
def sample_table(tmp_path) -> Path:
    """A writable copy of the sample table."""
    table = tmp_path / "nf_conntrack"
    table.write_text(SAMPLE_PATH.read_text())
    return table


@pytest_asyncio.fixture
async def ingested_worker(sample_table, tmp_path):
    """An ingestion worker that has completed one cycle over the sample table."""
    worker = IngestionWorker(
        SnapshotStore(),
        requested_path=str(sample_table),
        host_root=str(tmp_path / "host"),
        root=str(tmp_path / "root"),
        interval=2.0,
    )
    worker.resolve()
    await worker.run_once()
    return worker


@pytest_asyncio.fixture
async def async_client(ingested_worker):
    """
    Create an AsyncClient pointing to the FastAPI app.

    ASGITransport does not run the lifespan, so the state it would set up is
    assigned here and the ingestion loop is driven by the test instead.

    Yields:
        httpx.AsyncClient: Async HTTP client for making requests to the app.
    """
    app.state.store = ingested_worker.store
    app.state.worker = ingested_worker
    app.state.node_name = "node-a"

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Cleanup
    for attr in ("store", "worker", "node_name"):
        if hasattr(app.state, attr):
            delattr(app.state, attr)
