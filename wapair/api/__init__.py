"""API routers package."""

from .local import router as local_router
from .pairing import router as pairing_router
from .system import router as system_router

__all__ = ["local_router", "pairing_router", "system_router"]
