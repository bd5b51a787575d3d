from __future__ import annotations

import logging
import os
from typing import Optional


# Libraries that log every ICE check or frame at INFO.
_CHATTY_LOGGERS = ("aioice", "aiortc", "websockets")


def resolve_level(level: Optional[str] = None) -> str:
    """Pick the log level: explicit argument, then VOICECALL_LOG_LEVEL, then VOICECALL_LOG."""
    return (level or os.environ.get("VOICECALL_LOG_LEVEL") or os.environ.get("VOICECALL_LOG") or "INFO").upper()


def setup_logging(level: Optional[str] = None) -> None:
    """Configure console logging for the relay and the endpoint CLI.

    Below DEBUG the WebRTC and WebSocket libraries are held at WARNING so
    the call's own `event key=value` lines stay readable.
    """

    effective_level = resolve_level(level)

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=effective_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    else:
        root.setLevel(effective_level)

    library_level = logging.DEBUG if effective_level == "DEBUG" else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
