# src/secret_santa/schemas/group.py
"""Group-related Pydantic schemas."""

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class GroupCreate(BaseModel):
    """Schema for creating a new gift exchange group."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    avatar_url: str | None = None
    budget: str = ""
    event_date: date | None = None


class GroupJoin(BaseModel):
    """Invite code presented when joining a group."""

    invite_code: str = Field(..., min_length=1)


class ParticipantResponse(BaseModel):
    """Group member as shown to other members; never includes the giftee."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    avatar_url: str | None
    joined_at: datetime


class GroupResponse(BaseModel):
    """Schema for group information returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str
    avatar_url: str | None
    budget: str
    event_date: date | None
    invite_code: str
    owner_id: uuid.UUID
    is_drawn: bool
    created_at: datetime


class GroupDetailResponse(GroupResponse):
    participants: list[ParticipantResponse]


class GifteeResponse(BaseModel):
    """The caller's giftee after the draw."""

    participant_id: uuid.UUID
    user_id: uuid.UUID
    name: str
    avatar_url: str | None


class DrawResponse(BaseModel):
    group_id: uuid.UUID
    participant_count: int
    message: str
