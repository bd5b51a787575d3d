"""Shared fixtures: an in-memory stand-in for the aiortc negotiation context."""

from typing import Any, Dict, List, Optional

import pytest

from voicecall.rtc.webrtc_peer import PeerCallbacks


class FakePeer:
    """Records what the sequencer asks of the negotiation stack."""

    def __init__(self, callbacks: PeerCallbacks) -> None:
        self.callbacks = callbacks
        self.local_description: Optional[Dict[str, Any]] = None
        self.remote_descriptions: List[Dict[str, Any]] = []
        self.candidates: List[Dict[str, Any]] = []
        self.reject_candidates = False
        self.closed = False

    @property
    def has_remote_description(self) -> bool:
        return bool(self.remote_descriptions)

    async def create_offer(self) -> Dict[str, Any]:
        self.local_description = {"type": "offer", "sdp": "v=0 fake-offer"}
        return self.local_description

    async def create_answer(self) -> Dict[str, Any]:
        if not self.remote_descriptions:
            raise RuntimeError("no remote offer")
        self.local_description = {"type": "answer", "sdp": "v=0 fake-answer"}
        return self.local_description

    async def set_remote_description(self, description: Any, expected_type: str) -> None:
        if not isinstance(description, dict) or description.get("type") != expected_type:
            raise ValueError(f"invalid {expected_type} description")
        self.remote_descriptions.append(description)

    async def add_ice_candidate(self, candidate_obj: Any) -> None:
        if self.reject_candidates:
            raise ValueError("bad candidate")
        self.candidates.append(candidate_obj)

    async def close(self) -> None:
        self.closed = True


class FakePeerFactory:
    def __init__(self) -> None:
        self.peers: List[FakePeer] = []
        self.error: Optional[Exception] = None

    async def __call__(self, callbacks: PeerCallbacks) -> FakePeer:
        if self.error is not None:
            raise self.error
        peer = FakePeer(callbacks)
        self.peers.append(peer)
        return peer

    @property
    def peer(self) -> FakePeer:
        return self.peers[-1]


@pytest.fixture
def peer_factory() -> FakePeerFactory:
    return FakePeerFactory()
