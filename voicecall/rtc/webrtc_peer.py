"""The one WebRTC connection an endpoint holds during a call (audio only)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from aiortc import (
    RTCIceCandidate,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.rtcconfiguration import RTCConfiguration
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from ..net.protocol import IceCandidateDict, SessionDescriptionDict
from .audio import LocalAudio, RemoteAudioSink


AsyncPeerCallback = Callable[..., Awaitable[None]]

_CANDIDATE_PREFIX = "candidate:"


def candidate_to_json(candidate: RTCIceCandidate) -> IceCandidateDict:
    return {
        "candidate": _CANDIDATE_PREFIX + candidate_to_sdp(candidate),
        "sdpMid": candidate.sdpMid,
        "sdpMLineIndex": candidate.sdpMLineIndex,
    }


def candidate_from_json(obj: Dict[str, Any]) -> Optional[RTCIceCandidate]:
    """Parse a browser-style candidate dict.

    Returns None for the empty end-of-candidates marker.
    """

    cand_sdp = obj.get("candidate")
    if not isinstance(cand_sdp, str):
        raise ValueError("missing candidate")
    if cand_sdp.startswith(_CANDIDATE_PREFIX):
        cand_sdp = cand_sdp[len(_CANDIDATE_PREFIX):]
    if not cand_sdp:
        return None
    cand = candidate_from_sdp(cand_sdp)
    cand.sdpMid = obj.get("sdpMid")
    cand.sdpMLineIndex = obj.get("sdpMLineIndex")
    return cand


def description_to_json(description: RTCSessionDescription) -> SessionDescriptionDict:
    return {"type": description.type, "sdp": description.sdp}


def description_from_json(obj: Any, expected_type: str) -> RTCSessionDescription:
    if not isinstance(obj, dict) or not isinstance(obj.get("sdp"), str):
        raise ValueError(f"invalid {expected_type} description")
    return RTCSessionDescription(sdp=obj["sdp"], type=obj.get("type") or expected_type)


@dataclass
class PeerCallbacks:
    on_log: Optional[AsyncPeerCallback] = None  # (msg: str)
    on_connection_state: Optional[AsyncPeerCallback] = None  # (state: str)
    on_local_candidate: Optional[AsyncPeerCallback] = None  # (candidate: dict)


class WebRTCPeer:
    """aiortc-backed negotiation context used by the sequencer."""

    def __init__(
        self,
        local_audio: Optional[LocalAudio] = None,
        remote_sink: Optional[RemoteAudioSink] = None,
        callbacks: Optional[PeerCallbacks] = None,
        rtc_config: Optional[RTCConfiguration] = None,
    ):
        self._callbacks = callbacks or PeerCallbacks()
        self._pc = RTCPeerConnection(configuration=rtc_config)
        self._remote_sink = remote_sink or RemoteAudioSink()
        self._local_audio = local_audio
        self._closed = False

        if local_audio is not None and local_audio.track is not None:
            # audio-only: send microphone to peer
            self._pc.addTrack(local_audio.track)

        @self._pc.on("icecandidate")
        async def on_icecandidate(event) -> None:
            if event is None or event.candidate is None:
                return
            if self._callbacks.on_local_candidate:
                await self._callbacks.on_local_candidate(candidate_to_json(event.candidate))

        @self._pc.on("connectionstatechange")
        async def on_connectionstatechange() -> None:
            state = self._pc.connectionState
            await self._log(f"pc connectionState={state}")
            if self._callbacks.on_connection_state:
                await self._callbacks.on_connection_state(state)

        @self._pc.on("track")
        async def on_track(track) -> None:
            await self._log(f"pc remote track kind={track.kind}")
            if track.kind == "audio":
                await self._remote_sink.start(track)

    @property
    def has_remote_description(self) -> bool:
        return self._pc.remoteDescription is not None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._remote_sink.stop()
        finally:
            try:
                await self._pc.close()
            finally:
                if self._local_audio is not None:
                    self._local_audio.close()

    async def create_offer(self) -> SessionDescriptionDict:
        offer = await self._pc.createOffer()
        await self._pc.setLocalDescription(offer)
        assert self._pc.localDescription is not None
        return description_to_json(self._pc.localDescription)

    async def create_answer(self) -> SessionDescriptionDict:
        answer = await self._pc.createAnswer()
        await self._pc.setLocalDescription(answer)
        assert self._pc.localDescription is not None
        return description_to_json(self._pc.localDescription)

    async def set_remote_description(self, description: Any, expected_type: str) -> None:
        await self._pc.setRemoteDescription(description_from_json(description, expected_type))

    async def add_ice_candidate(self, candidate_obj: Any) -> None:
        if not isinstance(candidate_obj, dict):
            raise ValueError("candidate is not an object")
        cand = candidate_from_json(candidate_obj)
        if cand is None:
            return
        await self._pc.addIceCandidate(cand)

    async def _log(self, msg: str) -> None:
        if self._callbacks.on_log:
            await self._callbacks.on_log(msg)
