from typing import Any, Callable, Dict, List

import pytest

from voicecall.relay.lifecycle import Connection, ConnectionManager
from voicecall.relay.registry import RoomRegistry
from voicecall.relay.router import RelayRouter


@pytest.fixture
def registry() -> RoomRegistry:
    return RoomRegistry()


@pytest.fixture
def router(registry: RoomRegistry) -> RelayRouter:
    return RelayRouter(registry)


@pytest.fixture
def manager(registry: RoomRegistry, router: RelayRouter) -> ConnectionManager:
    return ConnectionManager(registry, router)


@pytest.fixture
def conn_factory() -> Callable[[str], Connection]:
    """Connections without a socket; outbound messages stay in the outbox."""

    def _make(name: str) -> Connection:
        return Connection(None, connection_id=name)

    return _make


@pytest.fixture
def sent() -> Callable[[Connection], List[Dict[str, Any]]]:
    """Drain and return everything queued for a connection."""

    def _drain(conn: Connection) -> List[Dict[str, Any]]:
        out = []
        while not conn.outbox.empty():
            out.append(conn.outbox.get_nowait())
        return out

    return _drain
