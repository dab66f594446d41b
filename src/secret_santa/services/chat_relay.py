"""Per-connection pump between one WebSocket and the connection hub.

Each live connection runs two loops. The read loop parses inbound frames,
persists valid messages and asks the hub to route them. The write loop drains
the connection's outbox onto the socket and sends liveness pings. Whichever
loop ends first tears the whole connection down.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Callable, Coroutine, Protocol

from fastapi import status
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.websockets import WebSocketDisconnect

from secret_santa.core.settings import settings
from secret_santa.schemas.chat import IncomingChatMessage
from secret_santa.services.chat import ChatService, to_frame
from secret_santa.services.hub import ChatConnection, ConnectionHub, HubNotRunningError
from secret_santa.services.validation import MessageValidationError, validate_message

logger = logging.getLogger(__name__)

PING_FRAME = json.dumps({"type": "ping"})
PONG_TYPE = "pong"
FRAME_SEPARATOR = "\n"


class Transport(Protocol):
    """The subset of :class:`starlette.websockets.WebSocket` the relay needs."""

    async def receive(self) -> dict[str, Any]: ...

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class ChatRelay:
    """Relay between one transport connection and the hub."""

    def __init__(
        self,
        websocket: Transport,
        hub: ConnectionHub,
        connection: ChatConnection,
        chat_service: ChatService,
        db: Session,
        *,
        write_wait: float | None = None,
        pong_wait: float | None = None,
        ping_period: float | None = None,
        max_frame_bytes: int | None = None,
    ) -> None:
        self.websocket = websocket
        self.hub = hub
        self.connection = connection
        self.chat_service = chat_service
        self.db = db
        self.write_wait = write_wait or settings.chat_write_wait_seconds
        self.pong_wait = pong_wait or settings.chat_pong_wait_seconds
        self.ping_period = ping_period or settings.chat_ping_period_seconds
        self.max_frame_bytes = max_frame_bytes or settings.chat_max_frame_bytes
        self._closed = False
        self._pending: asyncio.Future[Any] | None = None

    async def serve(self) -> None:
        """Run both loops until either one ends, then release the connection."""
        reader = asyncio.create_task(self._guard("read", self.read_loop()))
        writer = asyncio.create_task(self._guard("write", self.write_loop()))
        try:
            await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            try:
                await self.hub.unregister(self.connection)
            except HubNotRunningError:
                logger.debug("Chat hub already stopped while releasing %r", self.connection)
            self.connection.outbox.close()

            reader.cancel()
            if self._pending is not None:
                # The worker thread still owns the session until its call returns.
                await asyncio.wait({self._pending})
            # The closed outbox lets the writer flush what is left and exit.
            try:
                await asyncio.wait_for(asyncio.shield(writer), timeout=self.write_wait)
            except TimeoutError:
                writer.cancel()

            for outcome in await asyncio.gather(reader, writer, return_exceptions=True):
                if isinstance(outcome, Exception):
                    logger.error(
                        "Chat relay for %r failed",
                        self.connection,
                        exc_info=outcome,
                    )
            await self._close(status.WS_1000_NORMAL_CLOSURE)

    async def read_loop(self) -> None:
        while True:
            try:
                message = await asyncio.wait_for(self.websocket.receive(), timeout=self.pong_wait)
            except TimeoutError:
                logger.info("Chat client went silent: %r", self.connection)
                return

            if message["type"] == "websocket.disconnect":
                return

            text = message.get("text")
            raw = message.get("bytes") or b""
            size = len(text.encode("utf-8")) if text is not None else len(raw)

            if size > self.max_frame_bytes:
                logger.warning(
                    "Chat frame of %d bytes exceeds limit for %r", size, self.connection
                )
                await self._close(status.WS_1009_MESSAGE_TOO_BIG)
                return

            if text is None:
                try:
                    text = raw.decode("utf-8")
                except UnicodeDecodeError:
                    self._reply_error("frame is not valid UTF-8")
                    continue

            await self.handle_frame(text)

    async def handle_frame(self, text: str) -> None:
        """Validate, persist and route one inbound frame."""
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            self._reply_error("malformed JSON")
            return

        if isinstance(payload, dict) and payload.get("type") == PONG_TYPE:
            return

        try:
            incoming = IncomingChatMessage.model_validate(payload)
        except ValidationError:
            self._reply_error("expected content and role")
            return

        try:
            content = validate_message(incoming.content)
        except MessageValidationError as err:
            self._reply_error(str(err))
            return

        try:
            pairing = await self._in_worker(
                self.chat_service.resolve_pairing,
                self.db,
                self.connection.participant_id,
                incoming.role,
            )
        except SQLAlchemyError:
            logger.error("Failed to resolve pairing for %r", self.connection, exc_info=True)
            await self._in_worker(self.db.rollback)
            return
        if pairing is None:
            logger.info(
                "Discarding %s message without a pairing from %r", incoming.role, self.connection
            )
            return

        try:
            stored = await self._in_worker(
                self.chat_service.store_message,
                self.db,
                self.connection.group_id,
                pairing,
                content,
            )
        except (SQLAlchemyError, ValueError):
            logger.error("Failed to store chat message from %r", self.connection, exc_info=True)
            return

        try:
            await self.hub.route(
                to_frame(stored, content),
                group_id=self.connection.group_id,
                giver_id=pairing.giver_id,
                receiver_id=pairing.receiver_id,
            )
        except HubNotRunningError:
            logger.warning("Chat hub stopped before routing message %s", stored.id)

    async def write_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_ping = loop.time() + self.ping_period
        outbox = self.connection.outbox
        while True:
            try:
                frame = await asyncio.wait_for(
                    outbox.get(), timeout=max(0.0, next_ping - loop.time())
                )
            except TimeoutError:
                await self._send(PING_FRAME)
                next_ping = loop.time() + self.ping_period
                continue

            if frame is None:
                await self._close(status.WS_1000_NORMAL_CLOSURE)
                return

            await self._send(FRAME_SEPARATOR.join([frame, *outbox.drain_nowait()]))

    def _reply_error(self, detail: str) -> None:
        logger.info("Rejected chat frame from %r: %s", self.connection, detail)
        frame = json.dumps({"error": f"Invalid message: {detail}"})
        if not self.connection.outbox.offer(frame):
            logger.warning("Dropped error frame for %r", self.connection)

    async def _in_worker(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run blocking session work in a thread that teardown waits for."""
        self._pending = asyncio.ensure_future(asyncio.to_thread(func, *args))
        return await asyncio.shield(self._pending)

    async def _send(self, text: str) -> None:
        await asyncio.wait_for(self.websocket.send_text(text), timeout=self.write_wait)

    async def _close(self, code: int) -> None:
        if self._closed:
            return
        self._closed = True
        with contextlib.suppress(RuntimeError, OSError):
            await self.websocket.close(code=code)

    async def _guard(self, name: str, loop: Coroutine[Any, Any, None]) -> None:
        try:
            await loop
        except WebSocketDisconnect:
            logger.debug("Chat %s loop saw disconnect for %r", name, self.connection)
        except (TimeoutError, OSError, RuntimeError) as err:
            logger.info("Chat %s loop ended for %r: %s", name, self.connection, err)
