"""WebSocket signaling client.

This is intentionally unaware of aiortc. It only speaks the JSON protocol
implemented by the relay (`voicecall/relay`), handing every inbound message
to `on_message` in arrival order.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from . import protocol


logger = logging.getLogger(__name__)


AsyncCallback = Callable[..., Awaitable[None]]


@dataclass
class SignalingCallbacks:
	on_log: Optional[AsyncCallback] = None  # (message: str)
	on_message: Optional[AsyncCallback] = None  # (msg: dict)
	on_disconnected: Optional[AsyncCallback] = None  # ()
	on_error: Optional[AsyncCallback] = None  # (error: str, payload: dict)


class SignalingClient:
	def __init__(self, url: str, callbacks: Optional[SignalingCallbacks] = None):
		self.url = url
		self.callbacks = callbacks or SignalingCallbacks()

		# websockets' protocol types moved between versions; keep runtime-safe.
		self._ws: Optional[Any] = None
		self._recv_task: Optional[asyncio.Task[None]] = None
		self._send_lock = asyncio.Lock()

	@property
	def is_connected(self) -> bool:
		return self._ws is not None and self._ws.state is State.OPEN

	async def connect(self) -> None:
		if self._recv_task and not self._recv_task.done():
			return

		await self._log(f"Connecting to {self.url}")
		logger.info("signaling connect url=%s", self.url)
		try:
			self._ws = await websockets.connect(self.url)
		except Exception:
			logger.exception("signaling connect failed url=%s", self.url)
			await self._emit_error("connect-failed", {"url": self.url})
			raise
		self._recv_task = asyncio.create_task(self._recv_loop(), name="signaling-recv")

	async def disconnect(self) -> None:
		await self._log("Disconnecting")
		logger.info("signaling disconnect")
		ws = self._ws
		self._ws = None
		task = self._recv_task
		self._recv_task = None
		if task:
			task.cancel()
			try:
				await task
			except asyncio.CancelledError:
				pass

		if ws is not None:
			await ws.close()

	async def send(self, payload: Dict[str, Any]) -> None:
		if not self.is_connected:
			raise RuntimeError("Signaling not connected")
		mtype = payload.get("type")
		target = payload.get("targetCallId") or payload.get("callId")
		if mtype == protocol.CANDIDATE:
			logger.debug("signaling send type=candidate call_id=%s", target)
		else:
			logger.info("signaling send type=%s call_id=%s", mtype, target)
		raw = protocol.encode_message(payload)
		async with self._send_lock:
			await self._ws.send(raw)

	async def _recv_loop(self) -> None:
		assert self._ws is not None
		ws = self._ws
		logger.debug("signaling recv loop started")

		try:
			async for raw in ws:
				try:
					msg = json.loads(raw)
				except json.JSONDecodeError:
					await self._emit_error("invalid-json", {"raw": raw})
					continue

				if not isinstance(msg, dict):
					await self._emit_error("invalid-message", {"msg": msg})
					continue

				mtype = msg.get("type")
				if not isinstance(mtype, str):
					await self._emit_error("missing-type", msg)
					continue

				if mtype == protocol.CANDIDATE_RECEIVED:
					logger.debug("signaling recv type=candidate_received from=%s", msg.get("fromCallId"))
				elif mtype == protocol.ERROR:
					logger.warning("signaling recv type=error message=%s", msg.get("message"))
				else:
					logger.info("signaling recv type=%s call_id=%s", mtype, msg.get("callId") or msg.get("fromCallId"))

				if self.callbacks.on_message:
					await self.callbacks.on_message(msg)

		except asyncio.CancelledError:
			raise
		except ConnectionClosed as e:
			logger.info("signaling connection closed code=%s", e.rcvd.code if e.rcvd else None)
		except Exception as e:
			logger.exception("signaling recv loop crashed")
			await self._emit_error(f"recv-loop-exception: {e}", {})
		else:
			logger.info("signaling connection closed by relay")
		finally:
			logger.debug("signaling recv loop stopped")
			if self._ws is ws:
				self._ws = None

		await ws.close()
		if self.callbacks.on_disconnected:
			await self.callbacks.on_disconnected()

	async def _emit_error(self, error: str, payload: Dict[str, Any]) -> None:
		await self._log(f"Signaling error: {error}")
		if self.callbacks.on_error:
			await self.callbacks.on_error(error, payload)

	async def _log(self, message: str) -> None:
		if self.callbacks.on_log:
			await self.callbacks.on_log(message)
