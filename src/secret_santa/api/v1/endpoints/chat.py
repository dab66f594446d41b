# src/secret_santa/api/v1/endpoints/chat.py
"""Anonymous giver/receiver chat: history over HTTP, live messages over WebSocket."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, status

from secret_santa.api.v1.dependencies import CurrentUserDep, SessionDep
from secret_santa.schemas.chat import ChatMessageResponse, UnreadCountResponse
from secret_santa.services.chat import ChatService
from secret_santa.services.chat_access import ChatAccessError, authorize_connection
from secret_santa.services.chat_relay import ChatRelay
from secret_santa.services.hub import ChatConnection, ConnectionHub, HubNotRunningError

from .groups import get_group_or_404, require_participant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups/{group_id}/chat", tags=["chat"])


@router.get("/receiver", response_model=list[ChatMessageResponse])
async def get_chat_with_receiver(
    group_id: uuid.UUID,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> list[dict[str, Any]]:
    """Conversation with the caller's giftee. Marks the giftee's messages read."""
    get_group_or_404(db, group_id)
    participant = require_participant(db, group_id, current_user)
    return ChatService().history_with_receiver(db, participant)


@router.get("/giver", response_model=list[ChatMessageResponse])
async def get_chat_with_giver(
    group_id: uuid.UUID,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> list[dict[str, Any]]:
    """Conversation with the caller's anonymous giver. Marks the giver's messages read."""
    get_group_or_404(db, group_id)
    participant = require_participant(db, group_id, current_user)
    giver = ChatService.find_giver(db, participant)
    if giver is None:
        return []
    return ChatService().history_with_giver(db, participant, giver)


@router.get("/unread", response_model=UnreadCountResponse)
async def get_unread_counts(
    group_id: uuid.UUID,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> UnreadCountResponse:
    get_group_or_404(db, group_id)
    participant = require_participant(db, group_id, current_user)
    counts = ChatService().unread_counts(db, participant)
    return UnreadCountResponse(
        unread_from_receiver=counts.from_receiver,
        unread_from_giver=counts.from_giver,
        total=counts.total,
    )


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    group_id: uuid.UUID,
    db: SessionDep,
    token: str | None = None,
) -> None:
    """Live chat connection. The token travels as a query parameter.

    The socket is accepted before a refusal so the close code reaches the client.
    """
    await websocket.accept()
    try:
        grant = await asyncio.to_thread(authorize_connection, db, group_id, token)
    except ChatAccessError as err:
        logger.info("Refused chat connection to group %s: %s", group_id, err)
        await websocket.close(code=err.close_code, reason=str(err))
        return

    hub: ConnectionHub = websocket.app.state.hub
    connection = ChatConnection(
        user_id=grant.user_id,
        participant_id=grant.participant_id,
        group_id=grant.group_id,
    )
    try:
        await hub.register(connection)
    except HubNotRunningError:
        logger.warning("Chat hub unavailable; closing connection for %r", connection)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    await ChatRelay(websocket, hub, connection, ChatService(), db).serve()
