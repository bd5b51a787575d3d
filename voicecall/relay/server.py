"""WebSocket transport for the relay.

Each client gets its own handler task from `websockets`; messages are handed
to the `ConnectionManager` one at a time and handled without awaiting, so
the relay behaves as a single processing path.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from ..config import RelayConfig
from .lifecycle import ConnectionManager
from .registry import RoomRegistry
from .router import RelayRouter


logger = logging.getLogger(__name__)


class RelayServer:
    def __init__(self, config: Optional[RelayConfig] = None):
        self.config = config or RelayConfig()
        self.registry = RoomRegistry()
        self.router = RelayRouter(self.registry)
        self.connections = ConnectionManager(self.registry, self.router)
        self._server: Optional[Any] = None

    @property
    def port(self) -> int:
        if self._server is None:
            raise RuntimeError("RelayServer not started")
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await websockets.serve(self.handler, self.config.host, self.config.port)
        logger.info("relay listening host=%s port=%s", self.config.host, self.port)

    async def stop(self) -> None:
        if self._server is None:
            return
        server = self._server
        self._server = None
        server.close()
        await server.wait_closed()
        logger.info("relay stopped")

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await asyncio.Future()
        finally:
            await self.stop()

    async def handler(self, websocket: Any) -> None:
        conn = self.connections.open(websocket)
        try:
            async for raw in websocket:
                try:
                    self.connections.receive(conn, raw)
                except Exception:
                    logger.exception("relay message handling failed conn=%s", conn.connection_id)
        except ConnectionClosed as e:
            logger.info("relay connection lost conn=%s code=%s", conn.connection_id, e.rcvd.code if e.rcvd else None)
        finally:
            await self.connections.close(conn)
