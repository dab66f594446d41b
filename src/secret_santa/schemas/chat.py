# src/secret_santa/schemas/chat.py
"""Chat-related Pydantic schemas."""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

# Older clients name the roles after the gift exchange itself.
LEGACY_ROLE_NAMES = {"santa": "giver", "giftee": "receiver"}


class IncomingChatMessage(BaseModel):
    """Frame sent by a client over the live chat connection."""

    content: str = Field(..., description="Plain text message")
    role: Literal["giver", "receiver"] = Field(
        ..., description="Whether the sender writes as giver or as receiver"
    )

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, value: object) -> object:
        """Accept the legacy santa/giftee role names."""
        if isinstance(value, str):
            return LEGACY_ROLE_NAMES.get(value.lower(), value.lower())
        return value


class ChatMessageResponse(BaseModel):
    """Decrypted chat message returned by history endpoints and over the wire."""

    id: str
    giver_id: str
    receiver_id: str
    from_giver: bool
    content: str
    read_at: str | None
    created_at: str | None


class UnreadCountResponse(BaseModel):
    """Unread message counters for one participant."""

    unread_from_receiver: int
    unread_from_giver: int
    total: int
