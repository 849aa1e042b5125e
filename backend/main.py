import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import settings
from routers import connections_router
from schemas import NodeInfoResponse
from services.health import run_health_checks
from services.ingestion import IngestionWorker
from services.state_store import SnapshotStore
from utils.logging_utils import setup_logging, get_logger
from utils.tasks import TaskSupervisor

# Configure logging: INFO by default, DEBUG via KFLOW_DEBUG
setup_logging(level=settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the ingestion loop and stop it on shutdown."""
    # Startup
    logger.info("=" * 60)
    logger.info("KFLOW DAEMON STARTING UP")
    logger.info(f"App: {settings.APP_NAME} v{settings.APP_VERSION}")

    store = SnapshotStore()
    worker = IngestionWorker(
        store,
        requested_path=settings.CONNTRACK_PATH,
        host_root=settings.HOST_ROOT,
        root=settings.PROC_ROOT,
        interval=settings.POLL_INTERVAL,
    )
    source_path = worker.resolve()
    if source_path:
        logger.info(f"CONNTRACK_PATH={settings.CONNTRACK_PATH} -> {source_path}")
    else:
        logger.info(f"CONNTRACK_PATH={settings.CONNTRACK_PATH} (no candidate found yet)")
    if settings.KUBE_NODE_NAME:
        logger.info(f"Node: {settings.KUBE_NODE_NAME}")

    app.state.store = store
    app.state.worker = worker
    app.state.node_name = settings.KUBE_NODE_NAME

    supervisor = TaskSupervisor()
    supervisor.start("ingestion", worker.run_forever)

    logger.info("STARTUP COMPLETE - Ready to accept requests")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("KFLOW DAEMON SHUTTING DOWN")
    await supervisor.stop_all()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)


REQUEST_ID_HEADER = "X-Request-ID"


@app.middleware("http")
async def request_lifecycle(request: Request, call_next):
    """Tag every response with a request ID and log the request at debug level.

    A caller-supplied ID is echoed back so a viewer can match its fetches
    with daemon log lines.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    started = time.perf_counter()

    response = await call_next(request)

    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.debug(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"in {elapsed_ms:.1f}ms rid={request_id[:8]}"
    )
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# Include routers
app.include_router(connections_router)


@app.get("/health", tags=["health"])
async def health_check(request: Request):
    """Source and ingestion status; 503 only when ingestion has stalled."""
    health = await run_health_checks(request.app.state.worker, request.app.state.node_name)
    return JSONResponse(
        content=health.model_dump(),
        status_code=503 if health.status == "unhealthy" else 200,
    )


@app.get("/api/info", tags=["info"], response_model=NodeInfoResponse)
async def get_node_info(request: Request):
    """Get daemon version, node identity and snapshot details."""
    worker = request.app.state.worker
    snapshot = await request.app.state.store.get()
    return NodeInfoResponse(
        name=settings.APP_NAME,
        version=settings.APP_VERSION,
        node_name=request.app.state.node_name,
        requested_path=worker.requested_path,
        source_path=worker.source_path,
        snapshot_generation=snapshot.generation,
        snapshot_size=len(snapshot.value),
        snapshot_updated_at=snapshot.updated_at,
    )


def run() -> None:
    """Entry point for ``kflow-daemon``."""
    import uvicorn

    uvicorn.run(
        app,
        host=settings.LISTEN_HOST,
        port=settings.LISTEN_PORT,
        log_config=None,
    )


if __name__ == "__main__":
    run()
