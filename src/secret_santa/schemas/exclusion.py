# src/secret_santa/schemas/exclusion.py
"""Exclusion-related Pydantic schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ExclusionCreate(BaseModel):
    """Pair of participants who must not be matched with each other."""

    participant_a_id: uuid.UUID = Field(..., description="First participant of the pair")
    participant_b_id: uuid.UUID = Field(..., description="Second participant of the pair")


class ExclusionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    group_id: uuid.UUID
    participant_a_id: uuid.UUID
    participant_b_id: uuid.UUID
    created_at: datetime
