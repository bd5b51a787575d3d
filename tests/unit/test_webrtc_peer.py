"""Unit tests for the browser-compatible candidate and description helpers."""

import pytest

from voicecall.rtc.webrtc_peer import (
    candidate_from_json,
    candidate_to_json,
    description_from_json,
    description_to_json,
)

BROWSER_CANDIDATE = {
    "candidate": "candidate:842163049 1 udp 1677729535 203.0.113.7 46154 typ srflx raddr 0.0.0.0 rport 0",
    "sdpMid": "0",
    "sdpMLineIndex": 0,
}


def test_parses_browser_candidate() -> None:
    cand = candidate_from_json(BROWSER_CANDIDATE)

    assert cand is not None
    assert cand.foundation == "842163049"
    assert cand.ip == "203.0.113.7"
    assert cand.port == 46154
    assert cand.type == "srflx"
    assert cand.sdpMid == "0"
    assert cand.sdpMLineIndex == 0


def test_candidate_json_uses_browser_prefix() -> None:
    out = candidate_to_json(candidate_from_json(BROWSER_CANDIDATE))

    assert out["candidate"].startswith("candidate:842163049 1 udp")
    assert out["sdpMid"] == "0"
    assert out["sdpMLineIndex"] == 0


def test_end_of_candidates_marker() -> None:
    assert candidate_from_json({"candidate": "", "sdpMid": "0"}) is None


def test_candidate_requires_string() -> None:
    with pytest.raises(ValueError):
        candidate_from_json({"sdpMid": "0"})


def test_description_from_browser_json() -> None:
    desc = description_from_json({"type": "offer", "sdp": "v=0\r\n"}, "offer")
    assert desc.type == "offer"
    assert description_to_json(desc) == {"type": "offer", "sdp": "v=0\r\n"}


@pytest.mark.parametrize("obj", [None, "v=0", {"type": "offer"}, {"sdp": 5}])
def test_description_rejects_invalid(obj) -> None:
    with pytest.raises(ValueError):
        description_from_json(obj, "offer")
