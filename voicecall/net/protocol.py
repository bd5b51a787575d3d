"""Signaling protocol helpers.

Clients and the relay exchange JSON objects on a single WebSocket. Every
object carries a string `type`; the remaining fields depend on the type.
See `voicecall/relay/router.py` for authoritative relay behavior.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional, TypedDict, Union


# Client -> relay
CREATE_ROOM = "create_room"
JOIN_ROOM = "join_room"
LEAVE_ROOM = "leave_room"
OFFER = "offer"
ANSWER = "answer"
CANDIDATE = "candidate"

# Relay -> client
ROOM_CREATED = "room_created"
JOINED_ROOM = "joined_room"
USER_JOINED = "user_joined"
USER_LEFT = "user_left"
OFFER_RECEIVED = "offer_received"
ANSWER_RECEIVED = "answer_received"
CANDIDATE_RECEIVED = "candidate_received"
ERROR = "error"

# Negotiation messages and the type they are relayed as.
RELAYED_TYPES: Dict[str, str] = {
	OFFER: OFFER_RECEIVED,
	ANSWER: ANSWER_RECEIVED,
	CANDIDATE: CANDIDATE_RECEIVED,
}

# Routing field each client message must carry.
_REQUIRED_FIELDS: Dict[str, str] = {
	CREATE_ROOM: "callId",
	JOIN_ROOM: "callId",
	OFFER: "targetCallId",
	ANSWER: "targetCallId",
	CANDIDATE: "targetCallId",
}


class SessionDescriptionDict(TypedDict):
	type: str
	sdp: str


class IceCandidateDict(TypedDict, total=False):
	candidate: str
	sdpMid: Optional[str]
	sdpMLineIndex: Optional[int]


class ProtocolError(Exception):
	def __init__(self, message: str):
		super().__init__(message)
		self.message = message


class MalformedMessage(ProtocolError):
	"""Raised when a payload is not a valid envelope."""


def parse_message(raw: Union[str, bytes]) -> Dict[str, Any]:
	"""Decode one envelope.

	Only the envelope itself is checked: a JSON object with a string `type`,
	plus a non-empty string routing field for the client message types that
	need one. Unknown types pass through so callers can decide to ignore them.
	"""

	try:
		msg = json.loads(raw)
	except (TypeError, ValueError) as e:
		raise MalformedMessage(f"invalid json: {e}") from e

	if not isinstance(msg, dict):
		raise MalformedMessage("envelope is not an object")

	mtype = msg.get("type")
	if not isinstance(mtype, str) or not mtype:
		raise MalformedMessage("missing type")

	field = _REQUIRED_FIELDS.get(mtype)
	if field is not None:
		value = msg.get(field)
		if not isinstance(value, str) or not value:
			raise MalformedMessage(f"{mtype} requires {field}")

	return msg


def encode_message(payload: Dict[str, Any]) -> str:
	return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def bound_call_id(msg: Dict[str, Any]) -> Optional[str]:
	"""Return the call identifier a message carries, if any."""
	for field in ("callId", "targetCallId"):
		value = msg.get(field)
		if isinstance(value, str) and value:
			return value
	return None


def make_create_room(call_id: str) -> Dict[str, Any]:
	return {"type": CREATE_ROOM, "callId": call_id}


def make_join_room(call_id: str) -> Dict[str, Any]:
	return {"type": JOIN_ROOM, "callId": call_id}


def make_leave_room(call_id: str) -> Dict[str, Any]:
	return {"type": LEAVE_ROOM, "callId": call_id}


def make_offer(target_call_id: str, offer: SessionDescriptionDict) -> Dict[str, Any]:
	return {"type": OFFER, "offer": offer, "targetCallId": target_call_id}


def make_answer(target_call_id: str, answer: SessionDescriptionDict) -> Dict[str, Any]:
	return {"type": ANSWER, "answer": answer, "targetCallId": target_call_id}


def make_candidate(target_call_id: str, candidate: IceCandidateDict) -> Dict[str, Any]:
	return {"type": CANDIDATE, "candidate": candidate, "targetCallId": target_call_id}


def make_room_created(call_id: str) -> Dict[str, Any]:
	return {"type": ROOM_CREATED, "callId": call_id}


def make_joined_room(call_id: str) -> Dict[str, Any]:
	return {"type": JOINED_ROOM, "callId": call_id}


def make_user_joined(call_id: str) -> Dict[str, Any]:
	return {"type": USER_JOINED, "fromCallId": call_id}


def make_user_left(call_id: str) -> Dict[str, Any]:
	return {"type": USER_LEFT, "fromCallId": call_id}


def make_error(message: str) -> Dict[str, Any]:
	return {"type": ERROR, "message": message}


def make_relayed(msg: Dict[str, Any], from_call_id: str) -> Dict[str, Any]:
	"""Copy a negotiation message for delivery to the other member.

	Everything but the type tag is kept as sent; `fromCallId` is added.
	"""

	return {**msg, "type": RELAYED_TYPES[msg["type"]], "fromCallId": from_call_id}
