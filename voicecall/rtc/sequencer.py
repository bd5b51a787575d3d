"""Endpoint-side negotiation sequencer.

One call is a small state machine. Everything that can move it (user
commands, relay messages, callbacks from the negotiation stack) is posted to
a queue as an `Event` and applied in order by `run()`, one `step()` at a
time. The only suspension points are waiting for the next event and waiting
on the negotiation stack inside a step.

    IDLE -create-> AWAITING_ROOM_ACK -room_created-> AWAITING_PEER
         -user_joined-> AWAITING_ANSWER -answer_received-> AWAITING_CONNECT
    IDLE -join-> AWAITING_ROOM_ACK -joined_room-> AWAITING_OFFER
         -offer_received-> AWAITING_CONNECT
    AWAITING_CONNECT -connected-> CONNECTED
    any -user_left / hang-up / fatal error / relay lost-> CLOSED
"""

from __future__ import annotations

import asyncio
import enum
import logging
import random
import string
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from ..net import protocol
from .webrtc_peer import PeerCallbacks


logger = logging.getLogger(__name__)


AsyncCallback = Callable[..., Awaitable[None]]
SendMessage = Callable[[Dict[str, Any]], Awaitable[None]]

CALL_ID_LENGTH = 7
_CALL_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_call_id(length: int = CALL_ID_LENGTH) -> str:
    return "".join(random.choices(_CALL_ID_ALPHABET, k=length))


class CallState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_ROOM_ACK = "awaiting-room-ack"
    AWAITING_PEER = "awaiting-peer"
    AWAITING_OFFER = "awaiting-offer"
    AWAITING_ANSWER = "awaiting-answer"
    AWAITING_CONNECT = "awaiting-connect"
    CONNECTED = "connected"
    CLOSED = "closed"


class NegotiationPeer(Protocol):
    @property
    def has_remote_description(self) -> bool: ...

    async def create_offer(self) -> protocol.SessionDescriptionDict: ...

    async def create_answer(self) -> protocol.SessionDescriptionDict: ...

    async def set_remote_description(self, description: Any, expected_type: str) -> None: ...

    async def add_ice_candidate(self, candidate_obj: Any) -> None: ...

    async def close(self) -> None: ...


PeerFactory = Callable[[PeerCallbacks], Awaitable[NegotiationPeer]]


class EventKind(str, enum.Enum):
    CREATE = "create"
    JOIN = "join"
    HANG_UP = "hang-up"
    RELAY = "relay"
    RELAY_LOST = "relay-lost"
    CONNECTION_STATE = "connection-state"
    LOCAL_CANDIDATE = "local-candidate"


@dataclass(frozen=True)
class Event:
    kind: EventKind
    payload: Any = None


class SequencerError(Exception):
    pass


@dataclass
class SequencerCallbacks:
    on_log: Optional[AsyncCallback] = None  # (message: str)
    on_state: Optional[AsyncCallback] = None  # (state: CallState)
    on_error: Optional[AsyncCallback] = None  # (error: str)


class NegotiationSequencer:
    def __init__(
        self,
        send: SendMessage,
        peer_factory: PeerFactory,
        callbacks: Optional[SequencerCallbacks] = None,
    ):
        self._send = send
        self._peer_factory = peer_factory
        self._callbacks = callbacks or SequencerCallbacks()

        self.state = CallState.IDLE
        self.call_id: Optional[str] = None
        self._peer: Optional[NegotiationPeer] = None
        self._creator = False
        self._room_acked = False

        self._events: asyncio.Queue[Event] = asyncio.Queue()
        self._closed_evt = asyncio.Event()

    @property
    def peer(self) -> Optional[NegotiationPeer]:
        return self._peer

    # Inputs. None of these block; they only queue an event.

    def create(self, call_id: Optional[str] = None) -> str:
        call_id = call_id or generate_call_id()
        self.post(Event(EventKind.CREATE, call_id))
        return call_id

    def join(self, call_id: str) -> None:
        self.post(Event(EventKind.JOIN, call_id))

    def hang_up(self) -> None:
        self.post(Event(EventKind.HANG_UP))

    def deliver(self, msg: Dict[str, Any]) -> None:
        self.post(Event(EventKind.RELAY, msg))

    def relay_lost(self) -> None:
        self.post(Event(EventKind.RELAY_LOST))

    def post(self, event: Event) -> None:
        self._events.put_nowait(event)

    def peer_callbacks(self) -> PeerCallbacks:
        return PeerCallbacks(
            on_log=self._log,
            on_connection_state=self._on_connection_state,
            on_local_candidate=self._on_local_candidate,
        )

    async def _on_connection_state(self, state: str) -> None:
        self.post(Event(EventKind.CONNECTION_STATE, state))

    async def _on_local_candidate(self, candidate: protocol.IceCandidateDict) -> None:
        self.post(Event(EventKind.LOCAL_CANDIDATE, candidate))

    # Processing

    async def run(self) -> None:
        """Apply queued events until the call is closed."""
        while self.state is not CallState.CLOSED:
            event = await self._events.get()
            await self.step(event)

    async def wait_closed(self) -> None:
        await self._closed_evt.wait()

    def reset(self) -> None:
        """Return a closed sequencer to IDLE for a new call."""
        if self.state is not CallState.CLOSED:
            raise SequencerError(f"cannot reset from state {self.state.value}")
        while not self._events.empty():
            self._events.get_nowait()
        self.call_id = None
        self._peer = None
        self._creator = False
        self._room_acked = False
        self._closed_evt.clear()
        self.state = CallState.IDLE
        logger.info("call reset")

    async def step(self, event: Event) -> None:
        if self.state is CallState.CLOSED:
            logger.debug("call event ignored (closed) kind=%s", event.kind.value)
            return
        try:
            await self._dispatch(event)
        except Exception as e:
            logger.exception("call failed state=%s event=%s", self.state.value, event.kind.value)
            await self._error(str(e) or type(e).__name__)
            await self._close("error", notify=True)

    async def _dispatch(self, event: Event) -> None:
        kind = event.kind
        if kind is EventKind.CREATE or kind is EventKind.JOIN:
            await self._start(event.payload, creator=kind is EventKind.CREATE)
        elif kind is EventKind.HANG_UP:
            await self._close("hang-up", notify=True)
        elif kind is EventKind.RELAY_LOST:
            await self._close("relay-lost", notify=False)
        elif kind is EventKind.CONNECTION_STATE:
            await self._handle_connection_state(event.payload)
        elif kind is EventKind.LOCAL_CANDIDATE:
            if self.call_id is not None:
                await self._send(protocol.make_candidate(self.call_id, event.payload))
        elif kind is EventKind.RELAY:
            await self._handle_relay(event.payload)

    async def _start(self, call_id: str, *, creator: bool) -> None:
        if self.state is not CallState.IDLE:
            await self._error(f"call already in progress state={self.state.value}")
            return
        self.call_id = call_id
        self._creator = creator
        if creator:
            await self._send(protocol.make_create_room(call_id))
        else:
            await self._send(protocol.make_join_room(call_id))
        await self._set_state(CallState.AWAITING_ROOM_ACK)

    async def _handle_relay(self, msg: Dict[str, Any]) -> None:
        mtype = msg.get("type")

        if mtype == protocol.ROOM_CREATED and self._expecting_ack(creator=True):
            await self._room_acknowledged(CallState.AWAITING_PEER)

        elif mtype == protocol.JOINED_ROOM and self._expecting_ack(creator=False):
            await self._room_acknowledged(CallState.AWAITING_OFFER)

        elif mtype == protocol.USER_JOINED and self.state is CallState.AWAITING_PEER:
            assert self._peer is not None and self.call_id is not None
            offer = await self._peer.create_offer()
            await self._send(protocol.make_offer(self.call_id, offer))
            await self._set_state(CallState.AWAITING_ANSWER)

        elif mtype == protocol.OFFER_RECEIVED:
            if self.state is not CallState.AWAITING_OFFER:
                logger.info("call offer ignored state=%s", self.state.value)
                return
            assert self._peer is not None and self.call_id is not None
            await self._peer.set_remote_description(msg.get("offer"), "offer")
            answer = await self._peer.create_answer()
            await self._send(protocol.make_answer(self.call_id, answer))
            await self._set_state(CallState.AWAITING_CONNECT)

        elif mtype == protocol.ANSWER_RECEIVED:
            await self._handle_answer(msg)

        elif mtype == protocol.CANDIDATE_RECEIVED:
            await self._handle_remote_candidate(msg.get("candidate"))

        elif mtype == protocol.USER_LEFT:
            await self._log("The other user has left the call.")
            await self._close("peer-left", notify=False)

        elif mtype == protocol.ERROR:
            await self._error(str(msg.get("message", "error")))
            if self.state is CallState.AWAITING_ROOM_ACK:
                await self._close("rejected", notify=False)

        else:
            logger.debug("call message ignored type=%s state=%s", mtype, self.state.value)

    def _expecting_ack(self, *, creator: bool) -> bool:
        return self.state is CallState.AWAITING_ROOM_ACK and self._creator == creator

    async def _room_acknowledged(self, next_state: CallState) -> None:
        self._room_acked = True
        # Built right away so candidates arriving early have somewhere to go.
        self._peer = await self._peer_factory(self.peer_callbacks())
        await self._set_state(next_state)

    async def _handle_answer(self, msg: Dict[str, Any]) -> None:
        if self.state not in (CallState.AWAITING_ANSWER, CallState.AWAITING_CONNECT, CallState.CONNECTED):
            logger.info("call answer ignored state=%s", self.state.value)
            return
        assert self._peer is not None
        if self._peer.has_remote_description:
            logger.info("call duplicate answer ignored")
            return
        await self._peer.set_remote_description(msg.get("answer"), "answer")
        if self.state is CallState.AWAITING_ANSWER:
            await self._set_state(CallState.AWAITING_CONNECT)

    async def _handle_remote_candidate(self, candidate: Any) -> None:
        if self._peer is None:
            logger.warning("call candidate dropped (no peer connection) state=%s", self.state.value)
            return
        if not candidate:
            return
        try:
            await self._peer.add_ice_candidate(candidate)
        except Exception as e:
            logger.warning("call candidate rejected error=%s", e)

    async def _handle_connection_state(self, state: str) -> None:
        if state == "connected" and self.state is CallState.AWAITING_CONNECT:
            await self._set_state(CallState.CONNECTED)
        elif state == "failed":
            await self._error("Call failed")
            await self._close("failed", notify=True)

    async def _close(self, reason: str, *, notify: bool) -> None:
        if self.state is CallState.CLOSED:
            return

        if notify and self._room_acked and self.call_id is not None:
            try:
                await self._send(protocol.make_leave_room(self.call_id))
            except Exception as e:
                logger.warning("call leave_room not sent error=%s", e)

        peer = self._peer
        self._peer = None
        if peer is not None:
            try:
                await peer.close()
            except Exception:
                logger.exception("call peer close failed")

        logger.info("call closed call_id=%s reason=%s", self.call_id, reason)
        await self._set_state(CallState.CLOSED)
        self._closed_evt.set()

    async def _set_state(self, state: CallState) -> None:
        if state is self.state:
            return
        logger.info("call state %s -> %s call_id=%s", self.state.value, state.value, self.call_id)
        self.state = state
        if self._callbacks.on_state:
            await self._callbacks.on_state(state)

    async def _error(self, error: str) -> None:
        logger.warning("call error: %s", error)
        if self._callbacks.on_error:
            await self._callbacks.on_error(error)

    async def _log(self, message: str) -> None:
        if self._callbacks.on_log:
            await self._callbacks.on_log(message)
