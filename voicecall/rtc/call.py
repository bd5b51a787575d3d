"""Call controller: one endpoint's signaling connection, sequencer and media."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from ..config import EndpointConfig
from ..net.signaling_client import SignalingCallbacks, SignalingClient
from .audio import LocalAudio, RemoteAudioSink
from .sequencer import CallState, NegotiationSequencer, PeerFactory, SequencerCallbacks, SequencerError
from .webrtc_peer import PeerCallbacks, WebRTCPeer


logger = logging.getLogger(__name__)


AsyncCallback = Callable[..., Awaitable[None]]


@dataclass
class CallCallbacks:
    on_log: Optional[AsyncCallback] = None  # (message: str)
    on_state: Optional[AsyncCallback] = None  # (state: CallState)
    on_error: Optional[AsyncCallback] = None  # (error: str)


class CallController:
    def __init__(
        self,
        config: EndpointConfig,
        callbacks: Optional[CallCallbacks] = None,
        peer_factory: Optional[PeerFactory] = None,
    ):
        self.config = config
        self._callbacks = callbacks or CallCallbacks()
        self._local_audio: Optional[LocalAudio] = None
        self._muted = False
        self._run_task: Optional[asyncio.Task[None]] = None

        self.signaling = SignalingClient(
            config.server_url,
            SignalingCallbacks(
                on_log=self._log,
                on_message=self._on_message,
                on_disconnected=self._on_disconnected,
                on_error=self._on_signaling_error,
            ),
        )
        self.sequencer = NegotiationSequencer(
            send=self.signaling.send,
            peer_factory=peer_factory or self._create_peer,
            callbacks=SequencerCallbacks(
                on_log=self._log,
                on_state=self._on_state,
                on_error=self._on_error,
            ),
        )

    @property
    def state(self) -> CallState:
        return self.sequencer.state

    @property
    def call_id(self) -> Optional[str]:
        return self.sequencer.call_id

    async def start(self) -> None:
        if not self.signaling.is_connected:
            await self.signaling.connect()
        if self._run_task is None or self._run_task.done():
            self._run_task = asyncio.create_task(self.sequencer.run(), name="call-sequencer")

    async def reset(self) -> None:
        """Get ready for another call once the current one has closed.

        Reconnects to the relay if the previous call ended because the
        connection was lost.
        """
        if self.state is not CallState.CLOSED:
            raise SequencerError(f"cannot reset from state {self.state.value}")
        if self._run_task is not None:
            await self._run_task
            self._run_task = None
        self.sequencer.reset()
        await self.start()

    def create_call(self, call_id: Optional[str] = None) -> str:
        return self.sequencer.create(call_id)

    def join_call(self, call_id: str) -> None:
        self.sequencer.join(call_id)

    def hang_up(self) -> None:
        self.sequencer.hang_up()

    def set_muted(self, muted: bool) -> None:
        self._muted = muted
        if self._local_audio is not None:
            self._local_audio.set_muted(muted)

    async def wait_closed(self) -> None:
        await self.sequencer.wait_closed()

    async def shutdown(self) -> None:
        logger.info("call shutdown state=%s", self.state.value)
        if self.state is not CallState.CLOSED:
            self.hang_up()
        if self._run_task is not None:
            await self._run_task
            self._run_task = None
        await self.signaling.disconnect()

    async def _create_peer(self, callbacks: PeerCallbacks) -> WebRTCPeer:
        local_audio = LocalAudio.create(allow_silence=self.config.allow_silence)
        local_audio.set_muted(self._muted)
        try:
            peer = WebRTCPeer(
                local_audio=local_audio,
                remote_sink=RemoteAudioSink(record_path=self.config.record_path),
                callbacks=callbacks,
                rtc_config=self.config.rtc_configuration(),
            )
        except Exception:
            local_audio.close()
            raise
        self._local_audio = local_audio
        logger.debug("call created peer connection call_id=%s", self.call_id)
        return peer

    async def _on_message(self, msg: Dict[str, Any]) -> None:
        self.sequencer.deliver(msg)

    async def _on_disconnected(self) -> None:
        self.sequencer.relay_lost()

    async def _on_signaling_error(self, error: str, payload: Dict[str, Any]) -> None:
        logger.warning("call signaling error=%s", error)

    async def _on_state(self, state: CallState) -> None:
        if state is CallState.CLOSED:
            self._local_audio = None
        if self._callbacks.on_state:
            await self._callbacks.on_state(state)

    async def _on_error(self, error: str) -> None:
        if self._callbacks.on_error:
            await self._callbacks.on_error(error)

    async def _log(self, message: str) -> None:
        if self._callbacks.on_log:
            await self._callbacks.on_log(message)
