# src/secret_santa/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    chat_router,
    exclusions_router,
    groups_router,
)

__all__ = [
    "chat_router",
    "exclusions_router",
    "groups_router",
]
