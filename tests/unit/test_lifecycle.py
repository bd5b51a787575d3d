"""Unit tests for relay connection lifecycle: binding, cleanup and the writer."""

import json
from typing import List

import pytest
from websockets.exceptions import ConnectionClosed

from voicecall.relay.lifecycle import Connection, ConnectionManager
from voicecall.relay.registry import RoomRegistry


class RecordingSocket:
    def __init__(self) -> None:
        self.sent: List[str] = []

    async def send(self, raw: str) -> None:
        self.sent.append(raw)


class ClosedSocket:
    def __init__(self) -> None:
        self.attempts = 0

    async def send(self, raw: str) -> None:
        self.attempts += 1
        raise ConnectionClosed(None, None)


def _raw(**payload) -> str:
    return json.dumps(payload)


class TestConnection:
    def test_bind_is_immutable(self) -> None:
        conn = Connection(None)
        assert conn.bind("first") is True
        assert conn.bind("second") is False
        assert conn.call_id == "first"

    def test_binding_from_target_call_id(self, manager: ConnectionManager, conn_factory) -> None:
        conn = conn_factory("x")
        manager.receive(conn, _raw(type="offer", offer={}, targetCallId="abc1234"))
        assert conn.call_id == "abc1234"

    @pytest.mark.asyncio
    async def test_writer_sends_in_order(self) -> None:
        ws = RecordingSocket()
        conn = Connection(ws)
        conn.start()
        conn.send({"type": "room_created", "callId": "abc1234"})
        conn.send({"type": "user_joined", "fromCallId": "abc1234"})

        await conn.stop()

        assert [json.loads(raw) for raw in ws.sent] == [
            {"type": "room_created", "callId": "abc1234"},
            {"type": "user_joined", "fromCallId": "abc1234"},
        ]

    @pytest.mark.asyncio
    async def test_send_to_departed_recipient_is_swallowed(self) -> None:
        ws = ClosedSocket()
        conn = Connection(ws)
        conn.start()
        conn.send({"type": "user_left", "fromCallId": "abc1234"})
        conn.send({"type": "user_left", "fromCallId": "abc1234"})

        await conn.stop()

        assert ws.attempts == 1
        assert conn.closed is True

    @pytest.mark.asyncio
    async def test_send_after_stop_is_dropped(self) -> None:
        ws = RecordingSocket()
        conn = Connection(ws)
        conn.start()
        await conn.stop()

        conn.send({"type": "user_left", "fromCallId": "abc1234"})

        assert ws.sent == []


class TestCleanup:
    @pytest.mark.asyncio
    async def test_close_notifies_remaining_member_once(self, manager: ConnectionManager, registry: RoomRegistry) -> None:
        ws_a, ws_b = RecordingSocket(), RecordingSocket()
        a = manager.open(ws_a)
        b = manager.open(ws_b)
        manager.receive(a, _raw(type="create_room", callId="abc1234"))
        manager.receive(b, _raw(type="join_room", callId="abc1234"))

        # Voluntary leave followed by the socket closing: one notification.
        manager.receive(b, _raw(type="leave_room", callId="abc1234"))
        await manager.close(b)
        await manager.close(a)

        types_a = [json.loads(raw)["type"] for raw in ws_a.sent]
        assert types_a == ["room_created", "user_joined", "user_left"]
        assert "abc1234" not in registry
        assert len(manager) == 0

    @pytest.mark.asyncio
    async def test_close_without_room_is_noop(self, manager: ConnectionManager, registry: RoomRegistry) -> None:
        ws = RecordingSocket()
        conn = manager.open(ws)

        await manager.close(conn)

        assert ws.sent == []
        assert len(registry) == 0

    def test_release_twice_is_idempotent(self, manager: ConnectionManager, registry: RoomRegistry, conn_factory, sent) -> None:
        a, b = conn_factory("a"), conn_factory("b")
        manager.receive(a, _raw(type="create_room", callId="abc1234"))
        manager.receive(b, _raw(type="join_room", callId="abc1234"))
        sent(a)

        manager.release(b)
        manager.release(b)

        assert sent(a) == [{"type": "user_left", "fromCallId": "abc1234"}]
        assert registry.lookup("abc1234") == [a]

    @pytest.mark.asyncio
    async def test_close_releases_room_joined_under_other_binding(self, manager: ConnectionManager, registry: RoomRegistry, conn_factory, sent) -> None:
        a, b = conn_factory("a"), conn_factory("b")
        manager.receive(a, _raw(type="candidate", candidate={}, targetCallId="old-call"))
        manager.receive(a, _raw(type="create_room", callId="abc1234"))
        manager.receive(b, _raw(type="join_room", callId="abc1234"))
        sent(b)

        await manager.close(a)

        assert sent(b) == [{"type": "user_left", "fromCallId": "abc1234"}]
        assert registry.lookup("abc1234") == [b]
        assert a.rooms == []

    def test_release_of_bound_non_member_leaves_room_alone(self, manager: ConnectionManager, registry: RoomRegistry, conn_factory, sent) -> None:
        a, b = conn_factory("a"), conn_factory("b")
        manager.receive(a, _raw(type="create_room", callId="abc1234"))
        manager.receive(b, _raw(type="join_room", callId="abc1234"))
        sent(a)
        sent(b)

        stranger = conn_factory("x")
        manager.receive(stranger, _raw(type="candidate", candidate={}, targetCallId="abc1234"))
        sent(a)
        sent(b)
        manager.release(stranger)

        assert sent(a) == []
        assert sent(b) == []
        assert registry.lookup("abc1234") == [a, b]
