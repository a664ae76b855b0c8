"""API routes."""

from .catalog import router as catalog_router
from .chapters import router as chapters_router
from .relay import router as relay_router

__all__ = [
    "catalog_router",
    "chapters_router",
    "relay_router",
]
