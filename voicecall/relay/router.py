"""Relay router.

Decides who receives what for each inbound client message. Everything here
is synchronous: registry changes and the sends they cause are queued on the
recipients before the next inbound message is looked at.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable

from ..net import protocol
from .errors import RelayError
from .registry import RoomRegistry

if TYPE_CHECKING:
    from .lifecycle import Connection


logger = logging.getLogger(__name__)


class RelayRouter:
    def __init__(self, registry: RoomRegistry):
        self.registry = registry

    def route(self, sender: "Connection", msg: Dict[str, Any]) -> None:
        mtype = msg["type"]
        try:
            if mtype == protocol.CREATE_ROOM:
                self._create_room(sender, msg["callId"])
            elif mtype == protocol.JOIN_ROOM:
                self._join_room(sender, msg["callId"])
            elif mtype in protocol.RELAYED_TYPES:
                self._relay(sender, msg)
            else:
                logger.debug("relay ignored type=%s conn=%s", mtype, sender.connection_id)
        except RelayError as e:
            logger.info("relay rejected type=%s conn=%s error=%s", mtype, sender.connection_id, e)
            sender.send(protocol.make_error(e.message))

    def notify_departure(self, call_id: str, remaining: Iterable["Connection"]) -> None:
        for member in remaining:
            member.send(protocol.make_user_left(call_id))
            logger.info("relay user_left call_id=%s to=%s", call_id, member.connection_id)

    def _create_room(self, sender: "Connection", call_id: str) -> None:
        self.registry.create(call_id, sender)
        sender.rooms.append(call_id)
        sender.send(protocol.make_room_created(call_id))

    def _join_room(self, sender: "Connection", call_id: str) -> None:
        room = self.registry.join(call_id, sender)
        sender.rooms.append(call_id)
        for member in room.members:
            if member is not sender:
                member.send(protocol.make_user_joined(call_id))
        sender.send(protocol.make_joined_room(call_id))

    def _relay(self, sender: "Connection", msg: Dict[str, Any]) -> None:
        target = msg["targetCallId"]
        if target not in self.registry:
            # No error back to the sender; the message is simply lost.
            logger.info("relay dropped type=%s target=%s reason=no-room", msg["type"], target)
            return

        from_call_id = sender.call_id or "unknown"
        delivered = 0
        for member in self.registry.lookup(target):
            if member is sender:
                continue
            member.send(protocol.make_relayed(msg, from_call_id))
            delivered += 1

        if msg["type"] == protocol.CANDIDATE:
            logger.debug("relay candidate target=%s recipients=%s", target, delivered)
        else:
            logger.info("relay %s target=%s recipients=%s", msg["type"], target, delivered)
