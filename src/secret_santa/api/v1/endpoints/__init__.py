"""API endpoint modules for version 1."""

from .chat import router as chat_router
from .exclusions import router as exclusions_router
from .groups import router as groups_router

__all__ = [
    "chat_router",
    "exclusions_router",
    "groups_router",
]
