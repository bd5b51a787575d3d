"""Room registry: call identifier -> the (at most two) connections in it."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List

from .errors import AlreadyInRoom, RoomExists, RoomFull, RoomNotFound

if TYPE_CHECKING:
    from .lifecycle import Connection


logger = logging.getLogger(__name__)


ROOM_CAPACITY = 2


@dataclass
class Room:
    call_id: str
    members: List["Connection"] = field(default_factory=list)

    @property
    def is_full(self) -> bool:
        return len(self.members) >= ROOM_CAPACITY


class RoomRegistry:
    """Owns every active room.

    None of the methods await, so on a single event loop they never
    interleave. Empty rooms are dropped immediately.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def create(self, call_id: str, connection: "Connection") -> Room:
        if call_id in self._rooms:
            raise RoomExists(call_id)
        room = Room(call_id=call_id, members=[connection])
        self._rooms[call_id] = room
        logger.info("room created call_id=%s members=1", call_id)
        return room

    def join(self, call_id: str, connection: "Connection") -> Room:
        room = self._rooms.get(call_id)
        if room is None:
            raise RoomNotFound(call_id)
        if connection in room.members:
            raise AlreadyInRoom(call_id)
        if room.is_full:
            raise RoomFull(call_id)
        room.members.append(connection)
        logger.info("room joined call_id=%s members=%s", call_id, len(room.members))
        return room

    def lookup(self, call_id: str) -> List["Connection"]:
        room = self._rooms.get(call_id)
        if room is None:
            raise RoomNotFound(call_id)
        return list(room.members)

    def remove(self, call_id: str, connection: "Connection") -> List["Connection"]:
        """Drop `connection` from the room and return who is left.

        An empty result means there is nobody to notify: the room was
        destroyed, was missing, or never held `connection`.
        """

        room = self._rooms.get(call_id)
        if room is None or connection not in room.members:
            logger.debug("room remove no-op call_id=%s", call_id)
            return []

        room.members.remove(connection)
        if not room.members:
            del self._rooms[call_id]
            logger.info("room destroyed call_id=%s", call_id)
            return []

        logger.info("room left call_id=%s members=%s", call_id, len(room.members))
        return list(room.members)
