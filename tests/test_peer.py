"""Tests covering conversions between relayed payloads and aiortc objects."""

from __future__ import annotations

import pytest

from duocall.client.negotiation import NegotiationApplyFailure
from duocall.client.peer import candidate_from_payload, description_from_dict, description_to_dict

BROWSER_CANDIDATE = {
    "candidate": "candidate:842163049 1 udp 1677729535 192.0.2.10 54400 typ srflx raddr 10.0.0.5 rport 54400 generation 0",
    "sdpMid": "0",
    "sdpMLineIndex": 0,
}


def test_candidate_from_browser_payload() -> None:
    candidate = candidate_from_payload(BROWSER_CANDIDATE)

    assert candidate.foundation == "842163049"
    assert candidate.ip == "192.0.2.10"
    assert candidate.port == 54400
    assert candidate.type == "srflx"
    assert candidate.relatedAddress == "10.0.0.5"
    assert candidate.sdpMid == "0"
    assert candidate.sdpMLineIndex == 0


@pytest.mark.parametrize("line", ["candidate:", "candidate:1 1 udp", "candidate:x y udp z 1.2.3.4 p typ host"])
def test_invalid_candidate_raises_apply_failure(line: str) -> None:
    with pytest.raises(NegotiationApplyFailure):
        candidate_from_payload({"candidate": line, "sdpMid": "0"})


def test_description_round_trip() -> None:
    description = description_from_dict({"type": "offer", "sdp": "v=0\r\n"})

    assert description_to_dict(description) == {"type": "offer", "sdp": "v=0\r\n"}


@pytest.mark.parametrize("payload", [{"sdp": "v=0"}, {"type": "bogus", "sdp": "v=0"}])
def test_invalid_description_raises_apply_failure(payload: dict) -> None:
    with pytest.raises(NegotiationApplyFailure):
        description_from_dict(payload)
