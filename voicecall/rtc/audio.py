"""Audio helpers for aiortc.

- Capture a local microphone track (pulse, then alsa), optionally falling
  back to a silent track so calls can still be negotiated without a mic.
- Consume the remote track: record to a file, play to the default output if
  ffmpeg supports it, else discard.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import av
from aiortc import MediaStreamTrack
from aiortc.contrib.media import MediaBlackhole, MediaPlayer, MediaRecorder
from aiortc.mediastreams import AudioStreamTrack


logger = logging.getLogger(__name__)


class MicrophoneUnavailable(Exception):
	pass


class MutableAudioTrack(MediaStreamTrack):
	"""Pass-through audio track whose frames can be silenced."""

	kind = "audio"

	def __init__(self, source: MediaStreamTrack):
		super().__init__()
		self._source = source
		self.muted = False

	async def recv(self):  # type: ignore[override]
		frame = await self._source.recv()
		if self.muted and isinstance(frame, av.AudioFrame):
			for plane in frame.planes:
				plane.update(bytes(plane.buffer_size))
		return frame

	def stop(self) -> None:  # type: ignore[override]
		try:
			self._source.stop()
		finally:
			super().stop()


# PulseAudio is typical on desktop Linux, ALSA is the fallback.
_BACKENDS = (("default", "pulse"), ("default", "alsa"))


def _try_create_player() -> Tuple[Optional[MediaPlayer], Optional[str]]:
	"""Try to create a microphone capture player on the default device."""
	for device, backend in _BACKENDS:
		try:
			return MediaPlayer(device, format=backend), backend
		except Exception as e:
			logger.debug("audio capture unavailable backend=%s device=%s error=%s", backend, device, e)
	return None, None


@dataclass
class LocalAudio:
	"""Owns the underlying media player so its track stays alive."""

	player: Optional[MediaPlayer]
	track: Optional[MutableAudioTrack]
	backend: Optional[str] = None

	@classmethod
	def create(cls, *, allow_silence: bool = False) -> "LocalAudio":
		player, backend = _try_create_player()
		if player is not None and player.audio is not None:
			logger.info("local audio backend=%s", backend)
			return cls(player=player, track=MutableAudioTrack(player.audio), backend=backend)

		if not allow_silence:
			raise MicrophoneUnavailable("no microphone could be opened")

		logger.warning("local audio backend=silence (no microphone)")
		return cls(player=None, track=MutableAudioTrack(AudioStreamTrack()), backend="silence")

	def set_muted(self, muted: bool) -> None:
		if self.track is not None:
			self.track.muted = muted
			logger.info("local audio muted=%s", muted)

	def close(self) -> None:
		"""Best-effort stop for the underlying ffmpeg process."""
		t = self.track
		self.player = None
		self.track = None
		if t is not None:
			t.stop()


@dataclass
class RemoteAudioSink:
	"""Consumes the remote audio track.

	With `record_path` set the track is written to that file. Otherwise
	playback to the default device is attempted, falling back to discarding.
	"""

	record_path: Optional[str] = None
	_recorder: Optional[Any] = None
	_started: bool = False

	def _open_recorder(self) -> Tuple[Any, str]:
		if self.record_path:
			return MediaRecorder(self.record_path), f"file:{self.record_path}"

		for device, backend in _BACKENDS:
			try:
				return MediaRecorder(device, format=backend), f"{backend}:{device}"
			except Exception as e:
				logger.debug("audio playback unavailable backend=%s device=%s error=%s", backend, device, e)
		return MediaBlackhole(), "blackhole"

	async def start(self, track: MediaStreamTrack) -> None:
		if self._started:
			return

		recorder, sink = self._open_recorder()
		logger.info("remote audio sink=%s track_kind=%s", sink, getattr(track, "kind", None))

		recorder.addTrack(track)
		await recorder.start()
		self._recorder = recorder
		self._started = True

	async def stop(self) -> None:
		if not self._started or not self._recorder:
			return
		try:
			await self._recorder.stop()
		finally:
			self._recorder = None
			self._started = False
