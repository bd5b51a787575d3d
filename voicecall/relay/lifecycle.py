"""Connection lifecycle for the relay.

A `Connection` wraps one client WebSocket. Outbound messages go through a
FIFO queue drained by a writer task, so routing never waits on a socket and
each recipient sees messages in the order they were routed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Union

from websockets.exceptions import ConnectionClosed

from ..net import protocol
from .registry import RoomRegistry
from .router import RelayRouter


logger = logging.getLogger(__name__)


class Connection:
    def __init__(self, websocket: Any, connection_id: Optional[str] = None):
        self.connection_id = connection_id or uuid.uuid4().hex[:12]
        self.websocket = websocket
        self.call_id: Optional[str] = None
        # Rooms this connection created or joined, in order.
        self.rooms: List[str] = []
        self.closed = False
        self.outbox: asyncio.Queue[Optional[Dict[str, Any]]] = asyncio.Queue()
        self._writer_task: Optional[asyncio.Task[None]] = None

    def __repr__(self) -> str:
        return f"Connection(id={self.connection_id}, call_id={self.call_id})"

    def bind(self, call_id: str) -> bool:
        """Bind the call identifier once; later calls are ignored."""
        if self.call_id is not None:
            return False
        self.call_id = call_id
        return True

    def send(self, payload: Dict[str, Any]) -> None:
        if self.closed:
            logger.debug("relay recipient unavailable conn=%s type=%s", self.connection_id, payload.get("type"))
            return
        self.outbox.put_nowait(payload)

    def start(self) -> None:
        if self._writer_task is None:
            self._writer_task = asyncio.create_task(self._write_loop(), name=f"relay-writer-{self.connection_id}")

    async def stop(self) -> None:
        self.closed = True
        self.outbox.put_nowait(None)
        task = self._writer_task
        self._writer_task = None
        if task is not None:
            await task

    async def _write_loop(self) -> None:
        while True:
            payload = await self.outbox.get()
            if payload is None:
                return
            try:
                await self.websocket.send(protocol.encode_message(payload))
            except ConnectionClosed:
                logger.debug("relay recipient unavailable conn=%s type=%s", self.connection_id, payload.get("type"))
                self.closed = True
                return
            except Exception:
                logger.exception("relay send failed conn=%s", self.connection_id)
                self.closed = True
                return


class ConnectionManager:
    """Binds connections to rooms and unwinds the binding on leave or close."""

    def __init__(self, registry: RoomRegistry, router: RelayRouter):
        self.registry = registry
        self.router = router
        self._connections: Dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def open(self, websocket: Any) -> Connection:
        conn = Connection(websocket)
        self._connections[conn.connection_id] = conn
        conn.start()
        logger.info("relay connection opened conn=%s", conn.connection_id)
        return conn

    def receive(self, conn: Connection, raw: Union[str, bytes]) -> None:
        try:
            msg = protocol.parse_message(raw)
        except protocol.MalformedMessage as e:
            logger.warning("relay malformed message conn=%s error=%s", conn.connection_id, e.message)
            return

        self.bind(conn, msg)
        logger.debug("relay received type=%s conn=%s", msg["type"], conn.connection_id)

        if msg["type"] == protocol.LEAVE_ROOM:
            self.release(conn)
            return
        self.router.route(conn, msg)

    def bind(self, conn: Connection, msg: Dict[str, Any]) -> None:
        call_id = protocol.bound_call_id(msg)
        if call_id is not None and conn.bind(call_id):
            logger.debug("relay connection bound conn=%s call_id=%s", conn.connection_id, call_id)

    def release(self, conn: Connection) -> None:
        """Take `conn` out of every room it created or joined.

        Membership comes from `conn.rooms`, not from the bound call id.
        Safe to call any number of times; only the call that actually
        removes the member notifies whoever is left.
        """

        rooms, conn.rooms = conn.rooms, []
        for call_id in rooms:
            remaining: List[Connection] = self.registry.remove(call_id, conn)
            if remaining:
                self.router.notify_departure(call_id, remaining)

    async def close(self, conn: Connection) -> None:
        self.release(conn)
        self._connections.pop(conn.connection_id, None)
        await conn.stop()
        logger.info("relay connection closed conn=%s call_id=%s", conn.connection_id, conn.call_id)
