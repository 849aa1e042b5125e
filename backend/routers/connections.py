from typing import Optional

from fastapi import APIRouter, Depends, Request

from schemas import ConnectionSchema, ConnectionsResponse
from services.state_store import SnapshotStore

router = APIRouter(tags=["connections"])


def get_store(request: Request) -> SnapshotStore:
    return request.app.state.store


def get_node_name(request: Request) -> Optional[str]:
    return getattr(request.app.state, "node_name", None)


@router.get("/connections", response_model=ConnectionsResponse)
async def list_connections(
    store: SnapshotStore = Depends(get_store),
    node_name: Optional[str] = Depends(get_node_name),
):
    """Return this node's latest snapshot in file order."""
    snapshot = await store.get()
    return ConnectionsResponse(
        node_name=node_name,
        connections=[ConnectionSchema.model_validate(conn) for conn in snapshot.value],
    )
