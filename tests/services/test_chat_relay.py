import asyncio
import json
import threading
import uuid
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from secret_santa.db.time import utcnow
from secret_santa.models import ChatMessage
from secret_santa.services.chat import ChatService, Pairing
from secret_santa.services.chat_relay import ChatRelay
from secret_santa.services.hub import ChatConnection, ConnectionHub, Outbox


class FakeWebSocket:
    """In-memory stand-in for a Starlette WebSocket."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.sent: list[str] = []
        self.close_codes: list[int] = []

    def push_text(self, text: str) -> None:
        self.incoming.put_nowait({"type": "websocket.receive", "text": text})

    def push_json(self, payload: dict[str, Any]) -> None:
        self.push_text(json.dumps(payload))

    def disconnect(self) -> None:
        self.incoming.put_nowait({"type": "websocket.disconnect", "code": 1000})

    async def receive(self) -> dict[str, Any]:
        return await self.incoming.get()

    async def send_text(self, data: str) -> None:
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_codes.append(code)

    def sent_frames(self) -> list[dict[str, Any]]:
        return [json.loads(line) for data in self.sent for line in data.split("\n")]


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def hub() -> AsyncIterator[ConnectionHub]:
    hub = ConnectionHub()
    await hub.start()
    try:
        yield hub
    finally:
        await hub.stop()


@pytest.fixture
def chat_service(mocker) -> Any:
    return mocker.MagicMock(spec=ChatService)


@pytest.fixture
def group_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def connection(group_id: uuid.UUID) -> ChatConnection:
    return ChatConnection(
        user_id=uuid.uuid4(),
        participant_id=uuid.uuid4(),
        group_id=group_id,
        outbox=Outbox(16),
    )


@pytest.fixture
def make_relay(
    hub: ConnectionHub, connection: ChatConnection, chat_service: Any, mocker
) -> Callable[..., tuple[ChatRelay, FakeWebSocket]]:
    def _make(**options: Any) -> tuple[ChatRelay, FakeWebSocket]:
        options.setdefault("write_wait", 1.0)
        options.setdefault("pong_wait", 5.0)
        options.setdefault("ping_period", 5.0)
        websocket = FakeWebSocket()
        relay = ChatRelay(websocket, hub, connection, chat_service, mocker.MagicMock(), **options)
        return relay, websocket

    return _make


def _stored(pairing: Pairing, group_id: uuid.UUID) -> ChatMessage:
    return ChatMessage(
        id=uuid.uuid4(),
        group_id=group_id,
        giver_id=pairing.giver_id,
        receiver_id=pairing.receiver_id,
        from_giver=pairing.from_giver,
        content="ciphertext",
        read_at=None,
        created_at=utcnow(),
    )


@pytest.mark.asyncio
async def test_message_without_pairing_is_discarded_and_connection_stays_open(
    hub: ConnectionHub, connection: ChatConnection, chat_service: Any, make_relay
) -> None:
    chat_service.resolve_pairing.return_value = None
    await hub.register(connection)
    relay, websocket = make_relay()
    task = asyncio.create_task(relay.serve())

    websocket.push_json({"content": "Are you there?", "role": "giftee"})
    await eventually(lambda: chat_service.resolve_pairing.called)
    await asyncio.sleep(0.05)

    chat_service.resolve_pairing.assert_called_once_with(
        relay.db, connection.participant_id, "receiver"
    )
    chat_service.store_message.assert_not_called()
    assert not task.done()
    assert hub.connection_count() == 1
    assert websocket.sent == []

    websocket.disconnect()
    await asyncio.wait_for(task, timeout=2)
    assert hub.connection_count() == 0


@pytest.mark.asyncio
async def test_valid_message_is_persisted_and_routed_to_both_ends(
    hub: ConnectionHub,
    connection: ChatConnection,
    chat_service: Any,
    group_id: uuid.UUID,
    make_relay,
) -> None:
    receiver = ChatConnection(
        user_id=uuid.uuid4(), participant_id=uuid.uuid4(), group_id=group_id, outbox=Outbox(16)
    )
    pairing = Pairing(
        giver_id=connection.participant_id, receiver_id=receiver.participant_id, from_giver=True
    )
    chat_service.resolve_pairing.return_value = pairing
    chat_service.store_message.side_effect = lambda db, gid, p, content: _stored(p, gid)
    await hub.register(connection)
    await hub.register(receiver)
    relay, websocket = make_relay()
    task = asyncio.create_task(relay.serve())

    websocket.push_json({"content": "  Hello there  ", "role": "giver"})
    await eventually(lambda: len(websocket.sent) == 1)

    chat_service.store_message.assert_called_once_with(
        relay.db, group_id, pairing, "Hello there"
    )
    [echo] = websocket.sent_frames()
    assert echo["content"] == "Hello there"
    assert echo["from_giver"] is True
    assert echo["giver_id"] == str(connection.participant_id)
    assert echo["receiver_id"] == str(receiver.participant_id)
    assert json.loads(receiver.outbox.drain_nowait()[0]) == echo

    websocket.disconnect()
    await asyncio.wait_for(task, timeout=2)


@pytest.mark.asyncio
async def test_invalid_messages_get_an_error_frame(chat_service: Any, make_relay) -> None:
    relay, websocket = make_relay()
    task = asyncio.create_task(relay.serve())

    websocket.push_text("{not json")
    websocket.push_json({"content": "   ", "role": "giver"})
    websocket.push_json({"content": "hi", "role": "elf"})
    websocket.push_json({"content": "<script>alert(1)</script>", "role": "giver"})
    await eventually(lambda: len(websocket.sent_frames()) == 4)

    errors = [frame["error"] for frame in websocket.sent_frames()]
    assert all(error.startswith("Invalid message: ") for error in errors)
    assert "empty" in errors[1]
    assert "prohibited" in errors[3]
    chat_service.resolve_pairing.assert_not_called()
    assert not task.done()

    websocket.disconnect()
    await asyncio.wait_for(task, timeout=2)


@pytest.mark.asyncio
async def test_store_failure_skips_message_but_keeps_connection(
    hub: ConnectionHub, connection: ChatConnection, chat_service: Any, make_relay
) -> None:
    chat_service.resolve_pairing.return_value = Pairing(
        giver_id=uuid.uuid4(), receiver_id=connection.participant_id, from_giver=False
    )
    chat_service.store_message.side_effect = OperationalError("INSERT", {}, Exception("locked"))
    await hub.register(connection)
    relay, websocket = make_relay()
    task = asyncio.create_task(relay.serve())

    websocket.push_json({"content": "Thank you!", "role": "receiver"})
    await eventually(lambda: chat_service.store_message.called)
    await asyncio.sleep(0.05)

    assert not task.done()
    assert websocket.sent == []
    assert hub.connection_count() == 1

    websocket.disconnect()
    await asyncio.wait_for(task, timeout=2)


@pytest.mark.asyncio
async def test_pairing_lookup_failure_skips_message_but_keeps_connection(
    hub: ConnectionHub, connection: ChatConnection, chat_service: Any, make_relay
) -> None:
    chat_service.resolve_pairing.side_effect = [
        OperationalError("SELECT", {}, Exception("connection reset")),
        None,
    ]
    await hub.register(connection)
    relay, websocket = make_relay()
    task = asyncio.create_task(relay.serve())

    websocket.push_json({"content": "First try", "role": "giver"})
    websocket.push_json({"content": "Second try", "role": "giver"})
    await eventually(lambda: chat_service.resolve_pairing.call_count == 2)
    await asyncio.sleep(0.05)

    relay.db.rollback.assert_called_once_with()
    chat_service.store_message.assert_not_called()
    assert not task.done()
    assert websocket.close_codes == []
    assert hub.connection_count() == 1

    websocket.disconnect()
    await asyncio.wait_for(task, timeout=2)


@pytest.mark.asyncio
async def test_teardown_waits_for_persistence_already_running(
    hub: ConnectionHub, connection: ChatConnection, chat_service: Any, make_relay
) -> None:
    started = threading.Event()
    release = threading.Event()
    finished = threading.Event()

    def slow_store(db: Any, gid: uuid.UUID, pairing: Pairing, content: str) -> ChatMessage:
        started.set()
        release.wait(timeout=5)
        finished.set()
        return _stored(pairing, gid)

    chat_service.resolve_pairing.return_value = Pairing(
        giver_id=connection.participant_id, receiver_id=uuid.uuid4(), from_giver=True
    )
    chat_service.store_message.side_effect = slow_store
    await hub.register(connection)
    relay, websocket = make_relay()
    task = asyncio.create_task(relay.serve())

    websocket.push_json({"content": "Wrapping paper?", "role": "giver"})
    await eventually(started.is_set)

    # Closing the outbox ends the writer while the store is still in its thread
    await hub.stop()
    await asyncio.sleep(0.1)
    assert not task.done()

    release.set()
    await asyncio.wait_for(task, timeout=2)

    assert finished.is_set()
    assert websocket.close_codes == [1000]
    # The reader was cancelled, so the stored message is never routed
    assert websocket.sent == []


@pytest.mark.asyncio
async def test_binary_frame_with_invalid_utf8_gets_an_error_frame(
    chat_service: Any, make_relay
) -> None:
    relay, websocket = make_relay()
    task = asyncio.create_task(relay.serve())

    websocket.incoming.put_nowait({"type": "websocket.receive", "bytes": b"\xff\xfe{}"})
    websocket.incoming.put_nowait(
        {
            "type": "websocket.receive",
            "bytes": json.dumps({"content": "  ", "role": "giver"}).encode("utf-8"),
        }
    )
    await eventually(lambda: len(websocket.sent_frames()) == 2)

    first, second = (frame["error"] for frame in websocket.sent_frames())
    assert first == "Invalid message: frame is not valid UTF-8"
    assert "empty" in second
    chat_service.resolve_pairing.assert_not_called()
    assert not task.done()

    websocket.disconnect()
    await asyncio.wait_for(task, timeout=2)


@pytest.mark.asyncio
async def test_oversized_frame_closes_with_message_too_big(
    hub: ConnectionHub, connection: ChatConnection, chat_service: Any, make_relay
) -> None:
    await hub.register(connection)
    relay, websocket = make_relay(max_frame_bytes=64)
    task = asyncio.create_task(relay.serve())

    websocket.push_json({"content": "x" * 200, "role": "giver"})
    await asyncio.wait_for(task, timeout=2)

    assert websocket.close_codes == [1009]
    chat_service.resolve_pairing.assert_not_called()
    assert hub.connection_count() == 0


@pytest.mark.asyncio
async def test_silent_client_is_dropped_after_read_deadline(
    hub: ConnectionHub, connection: ChatConnection, make_relay
) -> None:
    await hub.register(connection)
    relay, websocket = make_relay(pong_wait=0.05)

    await asyncio.wait_for(relay.serve(), timeout=2)

    assert websocket.close_codes == [1000]
    assert hub.connection_count() == 0


@pytest.mark.asyncio
async def test_pings_are_sent_and_pongs_extend_the_deadline(
    chat_service: Any, make_relay
) -> None:
    relay, websocket = make_relay(ping_period=0.05, pong_wait=0.3)
    task = asyncio.create_task(relay.serve())

    for _ in range(5):
        await eventually(lambda: {"type": "ping"} in websocket.sent_frames())
        websocket.sent.clear()
        websocket.push_json({"type": "pong"})

    # Kept alive well past a single read deadline
    assert not task.done()
    assert all("error" not in frame for frame in websocket.sent_frames())
    chat_service.resolve_pairing.assert_not_called()

    websocket.disconnect()
    await asyncio.wait_for(task, timeout=2)


@pytest.mark.asyncio
async def test_queued_frames_are_coalesced_into_one_write(
    connection: ChatConnection, make_relay
) -> None:
    connection.outbox.offer('{"id":"1"}')
    connection.outbox.offer('{"id":"2"}')
    relay, websocket = make_relay()
    task = asyncio.create_task(relay.serve())

    await eventually(lambda: len(websocket.sent) == 1)

    assert websocket.sent[0] == '{"id":"1"}\n{"id":"2"}'

    websocket.disconnect()
    await asyncio.wait_for(task, timeout=2)


@pytest.mark.asyncio
async def test_hub_shutdown_closes_the_connection(
    hub: ConnectionHub, connection: ChatConnection, make_relay
) -> None:
    await hub.register(connection)
    relay, websocket = make_relay()
    task = asyncio.create_task(relay.serve())
    await asyncio.sleep(0.01)

    await hub.stop()
    await asyncio.wait_for(task, timeout=2)

    assert websocket.close_codes == [1000]
