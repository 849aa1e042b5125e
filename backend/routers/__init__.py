from .connections import router as connections_router

__all__ = [
    "connections_router",
]
