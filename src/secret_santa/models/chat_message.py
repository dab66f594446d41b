# src/secret_santa/models/chat_message.py
"""Models describing messages exchanged inside one giver/receiver pair."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from secret_santa.db.session import Base
from secret_santa.db.time import utcnow


class ChatMessage(Base):
    """Encrypted chat message between a giver and their receiver.

    Both directions of a pair share one thread; ``from_giver`` tells them
    apart. ``content`` always holds ciphertext, never plaintext.
    """

    __tablename__ = "chat_message"
    __table_args__ = (
        Index("ix_chat_message_thread", "group_id", "giver_id", "receiver_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("santa_group.id", ondelete="CASCADE"), nullable=False
    )
    giver_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("participant.id", ondelete="CASCADE"), nullable=False
    )
    receiver_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("participant.id", ondelete="CASCADE"), nullable=False
    )
    from_giver: Mapped[bool] = mapped_column(Boolean, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
