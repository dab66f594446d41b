# src/secret_santa/models/group.py
"""Models for gift-exchange groups and their participants."""

from __future__ import annotations

import secrets
import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from secret_santa.db.session import Base
from secret_santa.db.time import utcnow

if TYPE_CHECKING:
    from secret_santa.models.user import User

INVITE_CODE_BYTES = 4


def generate_invite_code() -> str:
    """Return a random 8-character hex invite code."""
    return secrets.token_hex(INVITE_CODE_BYTES)


class Group(Base):
    """A gift exchange; ``is_drawn`` flips exactly once when the draw commits."""

    __tablename__ = "santa_group"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    budget: Mapped[str] = mapped_column(Text, nullable=False, default="")
    event_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    invite_code: Mapped[str] = mapped_column(
        String(16), unique=True, nullable=False, default=generate_invite_code
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user_account.id"), nullable=False
    )
    is_drawn: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    participants: Mapped[list[Participant]] = relationship(
        "Participant",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="Participant.created_at",
    )


class Participant(Base):
    """A user's membership in one group's draw.

    ``giftee_id`` is the assignment edge (this participant gives to the
    giftee). It stays NULL until the group's draw commits.
    """

    __tablename__ = "participant"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_participant_group_user"),
        UniqueConstraint("group_id", "giftee_id", name="uq_participant_group_giftee"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("santa_group.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user_account.id"), nullable=False
    )
    giftee_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("participant.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    group: Mapped[Group] = relationship("Group", back_populates="participants")
    user: Mapped[User] = relationship("User", lazy="joined")
