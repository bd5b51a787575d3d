"""Errors the relay reports back to the requesting client."""

from __future__ import annotations


class RelayError(Exception):
    """Base for request failures that are answered with an `error` message."""

    message = "Request failed"

    def __init__(self, call_id: str):
        super().__init__(f"{self.message}: {call_id}")
        self.call_id = call_id


class RoomExists(RelayError):
    message = "Room already exists"


class RoomFull(RelayError):
    message = "Room is full"


class RoomNotFound(RelayError):
    message = "Room does not exist"


class AlreadyInRoom(RelayError):
    message = "Already in room"
