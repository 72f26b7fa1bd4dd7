"""
aiortc-backed peer link driven by :class:`~duocall.client.negotiation.NegotiationSession`.

aiortc gathers ICE candidates while the local description is set and embeds
them in the SDP, so this link never emits trickled candidates of its own. It
still applies candidates trickled by browser peers.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence

from aiortc import (
    MediaStreamTrack,
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.contrib.media import MediaBlackhole
from aiortc.sdp import candidate_from_sdp

from .negotiation import Candidate, Description, NegotiationApplyFailure

LOG = logging.getLogger(__name__)

DEFAULT_ICE_SERVERS: Sequence[str] = ("stun:stun.l.google.com:19302",)

CANDIDATE_PREFIX = "candidate:"


def description_to_dict(description: RTCSessionDescription) -> Description:
    return {"type": description.type, "sdp": description.sdp}


def description_from_dict(payload: Description) -> RTCSessionDescription:
    try:
        return RTCSessionDescription(sdp=str(payload["sdp"]), type=str(payload["type"]))
    except (KeyError, ValueError) as exc:
        raise NegotiationApplyFailure(f"invalid session description: {exc}") from exc


def candidate_from_payload(payload: Candidate):
    """Convert a browser ``RTCIceCandidateInit`` object into an aiortc candidate."""

    sdp = str(payload.get("candidate") or "")
    if sdp.startswith(CANDIDATE_PREFIX):
        sdp = sdp[len(CANDIDATE_PREFIX):]
    try:
        candidate = candidate_from_sdp(sdp)
    except (AssertionError, ValueError, IndexError) as exc:
        raise NegotiationApplyFailure(f"invalid ICE candidate {sdp!r}") from exc
    candidate.sdpMid = payload.get("sdpMid")
    candidate.sdpMLineIndex = payload.get("sdpMLineIndex")
    return candidate


class AiortcPeerLink:
    def __init__(
        self,
        *,
        ice_servers: Iterable[str] = DEFAULT_ICE_SERVERS,
        local_tracks: Iterable[MediaStreamTrack] = (),
        sink: Optional[Any] = None,
        on_state_change: Optional[Callable[[str], None]] = None,
    ) -> None:
        servers = list(ice_servers)
        configuration = RTCConfiguration(iceServers=[RTCIceServer(urls=servers)] if servers else [])
        self.pc = RTCPeerConnection(configuration=configuration)
        self._local_tracks: List[MediaStreamTrack] = list(local_tracks)
        self._sink = sink if sink is not None else MediaBlackhole()
        self._sink_started = False
        self._on_state_change = on_state_change
        self._closed = False

        for track in self._local_tracks:
            self.pc.addTrack(track)

        @self.pc.on("track")
        def _on_track(track: MediaStreamTrack) -> None:
            LOG.info("Receiving remote %s track", track.kind)
            self._sink.addTrack(track)

        @self.pc.on("connectionstatechange")
        async def _on_connection_state_change() -> None:
            state = self.pc.connectionState
            LOG.info("Peer connection state is %s", state)
            if state == "connected" and not self._sink_started:
                self._sink_started = True
                await self._sink.start()
            if self._on_state_change is not None:
                self._on_state_change(state)

    async def create_offer(self) -> Description:
        if not self.pc.getTransceivers():
            self.pc.addTransceiver("audio", direction="recvonly")
            self.pc.addTransceiver("video", direction="recvonly")
        offer = await self.pc.createOffer()
        await self.pc.setLocalDescription(offer)
        return description_to_dict(self.pc.localDescription)

    async def create_answer(self) -> Description:
        answer = await self.pc.createAnswer()
        await self.pc.setLocalDescription(answer)
        return description_to_dict(self.pc.localDescription)

    async def set_remote_description(self, description: Description) -> None:
        await self.pc.setRemoteDescription(description_from_dict(description))

    async def add_candidate(self, candidate: Candidate) -> None:
        await self.pc.addIceCandidate(candidate_from_payload(candidate))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for track in self._local_tracks:
            track.stop()
        if self._sink_started:
            await self._sink.stop()
        await self.pc.close()


__all__ = [
    "AiortcPeerLink",
    "DEFAULT_ICE_SERVERS",
    "candidate_from_payload",
    "description_from_dict",
    "description_to_dict",
]
