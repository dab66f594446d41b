"""Authorization of live chat connections before the WebSocket is accepted."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy.orm import Session

from secret_santa.core.security import InvalidTokenError, decode_access_token
from secret_santa.models import Group
from secret_santa.services.chat import ChatService


class ChatAccessError(Exception):
    """Base class for refused connections; ``close_code`` is sent to the client."""

    close_code = 4400


class UnauthorizedError(ChatAccessError):
    close_code = 4401


class NotAMemberError(ChatAccessError):
    close_code = 4403


class GroupNotFoundError(ChatAccessError):
    close_code = 4404


class DrawNotPerformedError(ChatAccessError):
    close_code = 4409


@dataclass(frozen=True)
class ConnectionGrant:
    """Identity attached to an authorized connection."""

    user_id: uuid.UUID
    participant_id: uuid.UUID
    group_id: uuid.UUID


def authorize_connection(db: Session, group_id: uuid.UUID, token: str | None) -> ConnectionGrant:
    """Check the bearer token, group membership and that the draw has happened.

    Raises:
        UnauthorizedError: Missing or invalid token
        GroupNotFoundError: The group does not exist
        NotAMemberError: The user has no participant record in the group
        DrawNotPerformedError: The group's draw has not been performed yet
    """
    if not token:
        raise UnauthorizedError("Token required")
    try:
        user_id = decode_access_token(token)
    except InvalidTokenError as err:
        raise UnauthorizedError("Invalid token") from err

    group = db.get(Group, group_id)
    if group is None:
        raise GroupNotFoundError("Group not found")

    participant = ChatService.find_participant(db, group_id, user_id)
    if participant is None:
        raise NotAMemberError("You are not a member of this group")
    if not group.is_drawn:
        raise DrawNotPerformedError("Draw has not been performed yet")

    return ConnectionGrant(user_id=user_id, participant_id=participant.id, group_id=group_id)
