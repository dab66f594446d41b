# src/secret_santa/models/exclusion.py
"""Pairwise draw exclusions."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from secret_santa.db.session import Base
from secret_santa.db.time import utcnow


class Exclusion(Base):
    """Unordered pair of participants that must not be matched in either direction."""

    __tablename__ = "exclusion"
    __table_args__ = (
        CheckConstraint("participant_a_id <> participant_b_id", name="ck_exclusion_distinct"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("santa_group.id", ondelete="CASCADE"), nullable=False, index=True
    )
    participant_a_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("participant.id", ondelete="CASCADE"), nullable=False
    )
    participant_b_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("participant.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    @property
    def pair(self) -> tuple[uuid.UUID, uuid.UUID]:
        """Return the two participant ids as a tuple."""
        return self.participant_a_id, self.participant_b_id
