"""Process-wide registry of live chat connections.

The hub is a single asyncio task that owns the set of active connections.
Registration, unregistration and routing are submitted to it through one
request queue and applied strictly one at a time, so every caller observes a
single linear order of events (a frame routed after an unregister was
processed can never reach the unregistered connection).
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Literal

from secret_santa.core.settings import settings

logger = logging.getLogger(__name__)

RequestKind = Literal["register", "unregister", "route", "stop"]


class HubNotRunningError(RuntimeError):
    """Raised when a request is submitted to a hub that is not running."""


class Outbox:
    """Bounded FIFO of wire frames waiting to be written to one connection.

    ``offer`` never blocks: it refuses the frame when the outbox is full or
    closed. After ``close`` the remaining frames can still be drained, then
    ``get`` returns ``None``.
    """

    def __init__(self, maxsize: int) -> None:
        if maxsize < 1:
            raise ValueError("Outbox size must be positive")
        self._frames: deque[str] = deque()
        self._maxsize = maxsize
        self._closed = False
        self._wakeup = asyncio.Event()

    def __len__(self) -> int:
        return len(self._frames)

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, frame: str) -> bool:
        """Queue ``frame``; return False if the outbox is full or closed."""
        if self._closed or len(self._frames) >= self._maxsize:
            return False
        self._frames.append(frame)
        self._wakeup.set()
        return True

    def close(self) -> None:
        self._closed = True
        self._wakeup.set()

    def drain_nowait(self) -> list[str]:
        """Pop every frame that is already queued."""
        frames = list(self._frames)
        self._frames.clear()
        return frames

    async def get(self) -> str | None:
        """Wait for the next frame; ``None`` once closed and empty."""
        while not self._frames:
            if self._closed:
                return None
            self._wakeup.clear()
            await self._wakeup.wait()
        return self._frames.popleft()


@dataclass(eq=False)
class ChatConnection:
    """In-memory session of one live transport connection. Never persisted."""

    user_id: uuid.UUID
    participant_id: uuid.UUID
    group_id: uuid.UUID
    outbox: Outbox = field(default_factory=lambda: Outbox(settings.chat_send_queue_size))

    def __repr__(self) -> str:
        return (
            f"ChatConnection(user={self.user_id}, participant={self.participant_id}, "
            f"group={self.group_id})"
        )


@dataclass
class _HubRequest:
    kind: RequestKind
    payload: Any
    future: asyncio.Future[Any]


@dataclass(frozen=True)
class RouteRequest:
    """A frame addressed to both ends of one giver/receiver pair."""

    frame: str
    group_id: uuid.UUID
    giver_id: uuid.UUID
    receiver_id: uuid.UUID


class ConnectionHub:
    """Single-owner coordinator of live chat connections."""

    def __init__(self) -> None:
        self._connections: set[ChatConnection] = set()
        self._requests: asyncio.Queue[_HubRequest] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._accepting = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and self._accepting

    async def start(self) -> None:
        """Start the hub loop."""
        if self._task is None or self._task.done():
            self._accepting = True
            self._task = asyncio.create_task(self._run(), name="chat-hub")
            logger.info("Chat hub started")

    async def stop(self) -> None:
        """Stop the hub loop and close every registered connection's outbox."""
        if self._task is None:
            return
        if not self._task.done():
            await self._submit("stop", None)
            await self._task
        self._task = None
        logger.info("Chat hub stopped")

    async def register(self, connection: ChatConnection) -> None:
        """Add a connection; later routes may deliver to it."""
        await self._submit("register", connection)

    async def unregister(self, connection: ChatConnection) -> None:
        """Remove a connection and close its outbox. Absent connections are a no-op."""
        if not self.running:
            connection.outbox.close()
            return
        await self._submit("unregister", connection)

    async def route(
        self,
        frame: str,
        *,
        group_id: uuid.UUID,
        giver_id: uuid.UUID,
        receiver_id: uuid.UUID,
    ) -> int:
        """Deliver ``frame`` to both ends of the pair; return the delivery count."""
        request = RouteRequest(
            frame=frame, group_id=group_id, giver_id=giver_id, receiver_id=receiver_id
        )
        delivered: int = await self._submit("route", request)
        return delivered

    def connection_count(self) -> int:
        return len(self._connections)

    def connections_for(
        self, group_id: uuid.UUID, participant_id: uuid.UUID
    ) -> list[ChatConnection]:
        """Return a snapshot of active connections for one participant."""
        return [
            connection
            for connection in self._connections
            if connection.group_id == group_id and connection.participant_id == participant_id
        ]

    async def _submit(self, kind: RequestKind, payload: Any) -> Any:
        if not self.running:
            raise HubNotRunningError("Chat hub is not running")
        if kind == "stop":
            self._accepting = False
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        await self._requests.put(_HubRequest(kind, payload, future))
        return await future

    async def _run(self) -> None:
        while True:
            request = await self._requests.get()
            if request.kind == "stop":
                self._shutdown()
                if not request.future.done():
                    request.future.set_result(None)
                self._reject_pending()
                return

            try:
                result = self._apply(request)
            except Exception as exc:  # keep the loop alive for other connections
                logger.error("Chat hub failed to apply %s request", request.kind, exc_info=True)
                if not request.future.done():
                    request.future.set_exception(exc)
                continue

            if not request.future.done():
                request.future.set_result(result)

    def _apply(self, request: _HubRequest) -> Any:
        if request.kind == "register":
            return self._handle_register(request.payload)
        if request.kind == "unregister":
            return self._handle_unregister(request.payload)
        if request.kind == "route":
            return self._handle_route(request.payload)
        raise ValueError(f"Unknown hub request: {request.kind}")

    def _handle_register(self, connection: ChatConnection) -> None:
        self._connections.add(connection)
        logger.info(
            "Client registered: user=%s, participant=%s, group=%s",
            connection.user_id,
            connection.participant_id,
            connection.group_id,
        )

    def _handle_unregister(self, connection: ChatConnection) -> None:
        if connection not in self._connections:
            return
        self._connections.discard(connection)
        connection.outbox.close()
        logger.info("Client unregistered: user=%s", connection.user_id)

    def _handle_route(self, request: RouteRequest) -> int:
        endpoints = {request.giver_id, request.receiver_id}
        delivered = 0
        for connection in list(self._connections):
            if connection.group_id != request.group_id:
                continue
            if connection.participant_id not in endpoints:
                continue
            if connection.outbox.offer(request.frame):
                delivered += 1
                continue
            # Full or closed outbox: treat as a dead connection
            self._connections.discard(connection)
            connection.outbox.close()
            logger.warning(
                "Evicted slow chat client: user=%s, participant=%s",
                connection.user_id,
                connection.participant_id,
            )
        return delivered

    def _shutdown(self) -> None:
        for connection in self._connections:
            connection.outbox.close()
        self._connections.clear()

    def _reject_pending(self) -> None:
        while not self._requests.empty():
            request = self._requests.get_nowait()
            if request.future.done():
                continue
            if request.kind == "unregister":
                request.payload.outbox.close()
                request.future.set_result(None)
            else:
                request.future.set_exception(HubNotRunningError("Chat hub stopped"))
