# src/secret_santa/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .chat import ChatMessageResponse, IncomingChatMessage, UnreadCountResponse
from .exclusion import ExclusionCreate, ExclusionResponse
from .group import (
    DrawResponse,
    GifteeResponse,
    GroupCreate,
    GroupDetailResponse,
    GroupJoin,
    GroupResponse,
    ParticipantResponse,
)

__all__ = [
    "ChatMessageResponse", "IncomingChatMessage", "UnreadCountResponse",
    "ExclusionCreate", "ExclusionResponse",
    "DrawResponse", "GifteeResponse", "GroupCreate", "GroupDetailResponse",
    "GroupJoin", "GroupResponse", "ParticipantResponse",
]
