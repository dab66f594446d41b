"""Persistence side of the anonymous giver/receiver chat.

Every function here is synchronous SQLAlchemy work; the live relay runs them
in a worker thread. Content is encrypted before it is written and decrypted
when history is read.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Any, Literal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from secret_santa.core.settings import settings
from secret_santa.db.time import as_utc, utcnow
from secret_santa.models import ChatMessage, Participant
from secret_santa.services.crypto import CryptoService

Role = Literal["giver", "receiver"]


@dataclass(frozen=True)
class Pairing:
    """Resolved (giver, receiver) pair for one outgoing message."""

    giver_id: uuid.UUID
    receiver_id: uuid.UUID
    from_giver: bool


@dataclass(frozen=True)
class UnreadCounts:
    from_receiver: int
    from_giver: int

    @property
    def total(self) -> int:
        return self.from_receiver + self.from_giver


class ChatService:
    """Service storing and reading pair conversations."""

    def __init__(self, key: bytes | None = None) -> None:
        self._key = key if key is not None else settings.encryption_key_bytes

    @staticmethod
    def find_participant(
        db: Session, group_id: uuid.UUID, user_id: uuid.UUID
    ) -> Participant | None:
        """Return the user's participant record in ``group_id``, if any."""
        return db.execute(
            select(Participant).where(
                Participant.group_id == group_id,
                Participant.user_id == user_id,
            )
        ).scalar_one_or_none()

    @staticmethod
    def find_giver(db: Session, participant: Participant) -> Participant | None:
        """Return whichever participant recorded ``participant`` as their giftee."""
        return db.execute(
            select(Participant).where(
                Participant.group_id == participant.group_id,
                Participant.giftee_id == participant.id,
            )
        ).scalar_one_or_none()

    def resolve_pairing(
        self, db: Session, participant_id: uuid.UUID, role: Role
    ) -> Pairing | None:
        """Work out both ends of the conversation the sender is writing to.

        Returns ``None`` when the sender has no pairing yet for that role.
        """
        participant = db.get(Participant, participant_id, populate_existing=True)
        if participant is None:
            return None

        if role == "giver":
            if participant.giftee_id is None:
                return None
            return Pairing(
                giver_id=participant.id,
                receiver_id=participant.giftee_id,
                from_giver=True,
            )

        giver = self.find_giver(db, participant)
        if giver is None:
            return None
        return Pairing(giver_id=giver.id, receiver_id=participant.id, from_giver=False)

    def store_message(
        self,
        db: Session,
        group_id: uuid.UUID,
        pairing: Pairing,
        content: str,
    ) -> ChatMessage:
        """Encrypt and persist one message, returning the stored row."""
        message = ChatMessage(
            group_id=group_id,
            giver_id=pairing.giver_id,
            receiver_id=pairing.receiver_id,
            from_giver=pairing.from_giver,
            content=CryptoService.encrypt_message(content, self._key),
        )
        db.add(message)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(message)
        return message

    def history_with_receiver(self, db: Session, participant: Participant) -> list[dict[str, Any]]:
        """Thread where ``participant`` is the giver; marks the receiver's messages read."""
        if participant.giftee_id is None:
            return []
        return self._read_thread(
            db,
            group_id=participant.group_id,
            giver_id=participant.id,
            receiver_id=participant.giftee_id,
            mark_from_giver=False,
        )

    def history_with_giver(
        self, db: Session, participant: Participant, giver: Participant
    ) -> list[dict[str, Any]]:
        """Thread where ``participant`` is the receiver; marks the giver's messages read."""
        return self._read_thread(
            db,
            group_id=participant.group_id,
            giver_id=giver.id,
            receiver_id=participant.id,
            mark_from_giver=True,
        )

    def unread_counts(self, db: Session, participant: Participant) -> UnreadCounts:
        """Count unread messages from the participant's receiver and from their giver."""
        from_receiver = 0
        if participant.giftee_id is not None:
            from_receiver = self._count_unread(
                db,
                group_id=participant.group_id,
                giver_id=participant.id,
                receiver_id=participant.giftee_id,
                from_giver=False,
            )

        from_giver = 0
        giver = self.find_giver(db, participant)
        if giver is not None:
            from_giver = self._count_unread(
                db,
                group_id=participant.group_id,
                giver_id=giver.id,
                receiver_id=participant.id,
                from_giver=True,
            )

        return UnreadCounts(from_receiver=from_receiver, from_giver=from_giver)

    def _read_thread(
        self,
        db: Session,
        *,
        group_id: uuid.UUID,
        giver_id: uuid.UUID,
        receiver_id: uuid.UUID,
        mark_from_giver: bool,
    ) -> list[dict[str, Any]]:
        messages = (
            db.execute(
                select(ChatMessage)
                .where(
                    ChatMessage.group_id == group_id,
                    ChatMessage.giver_id == giver_id,
                    ChatMessage.receiver_id == receiver_id,
                )
                .order_by(ChatMessage.created_at, ChatMessage.id)
            )
            .scalars()
            .all()
        )
        serialized = [
            serialize_message(
                message, CryptoService.decrypt_or_placeholder(message.content, self._key)
            )
            for message in messages
        ]

        db.execute(
            update(ChatMessage)
            .where(
                ChatMessage.group_id == group_id,
                ChatMessage.giver_id == giver_id,
                ChatMessage.receiver_id == receiver_id,
                ChatMessage.from_giver == mark_from_giver,
                ChatMessage.read_at.is_(None),
            )
            .values(read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return serialized

    @staticmethod
    def _count_unread(
        db: Session,
        *,
        group_id: uuid.UUID,
        giver_id: uuid.UUID,
        receiver_id: uuid.UUID,
        from_giver: bool,
    ) -> int:
        count = db.execute(
            select(func.count())
            .select_from(ChatMessage)
            .where(
                ChatMessage.group_id == group_id,
                ChatMessage.giver_id == giver_id,
                ChatMessage.receiver_id == receiver_id,
                ChatMessage.from_giver == from_giver,
                ChatMessage.read_at.is_(None),
            )
        ).scalar_one()
        return int(count)


def serialize_message(message: ChatMessage, plaintext: str) -> dict[str, Any]:
    """Serialize a ChatMessage with its decrypted content into API payload form."""
    return {
        "id": str(message.id),
        "giver_id": str(message.giver_id),
        "receiver_id": str(message.receiver_id),
        "from_giver": message.from_giver,
        "content": plaintext,
        "read_at": as_utc(message.read_at).isoformat() if message.read_at else None,
        "created_at": as_utc(message.created_at).isoformat() if message.created_at else None,
    }


def to_frame(message: ChatMessage, plaintext: str) -> str:
    """Encode a message as a single-line JSON wire frame."""
    return json.dumps(serialize_message(message, plaintext), separators=(",", ":"))
