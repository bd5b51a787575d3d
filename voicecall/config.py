from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from aiortc import RTCConfiguration, RTCIceServer


DEFAULT_ICE_SERVERS = [
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
]


def _env_truthy(name: str) -> bool:
    v = os.environ.get(name, "").strip().casefold()
    return v in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    v = os.environ.get(name)
    if v is None:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    v = os.environ.get(name)
    if v is None:
        return list(default)
    return [item.strip() for item in v.split(",") if item.strip()]


@dataclass
class RelayConfig:
    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_env(cls) -> "RelayConfig":
        port = _env_int("PORT", cls.port)
        return cls(
            host=os.environ.get("VOICECALL_RELAY_HOST", cls.host),
            port=_env_int("VOICECALL_RELAY_PORT", port),
        )


@dataclass
class EndpointConfig:
    server_url: str = "ws://127.0.0.1:8080"
    ice_servers: List[str] = field(default_factory=lambda: list(DEFAULT_ICE_SERVERS))
    allow_silence: bool = False
    record_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> "EndpointConfig":
        return cls(
            server_url=os.environ.get("VOICECALL_SERVER_URL", cls.server_url),
            ice_servers=_env_list("VOICECALL_ICE_SERVERS", DEFAULT_ICE_SERVERS),
            allow_silence=_env_truthy("VOICECALL_ALLOW_SILENCE"),
        )

    def rtc_configuration(self) -> RTCConfiguration:
        return RTCConfiguration(iceServers=[RTCIceServer(urls=url) for url in self.ice_servers])
