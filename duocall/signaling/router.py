"""
Dispatch of inbound signaling frames.
"""

from __future__ import annotations

import logging

from .messages import (
    RELAYED_KINDS,
    SERVER_KINDS,
    MalformedMessage,
    MessageKind,
    UnknownMessageType,
    error_frame,
    parse_frame,
)
from .registry import Participant, RoomFull, RoomRegistry

LOG = logging.getLogger(__name__)


class RelayRouter:
    """
    Interpret ``join`` frames and forward negotiation frames to room peers.

    Dispatch never awaits: fan-out hands each frame to the recipient's
    outbound queue, so one call is a single step relative to other
    connection events.
    """

    def __init__(self, registry: RoomRegistry) -> None:
        self.registry = registry

    def dispatch(self, sender: Participant, raw: str) -> None:
        try:
            frame = parse_frame(raw)
        except MalformedMessage as exc:
            LOG.debug("Dropping malformed frame from %s: %s", sender.session_id, exc)
            return
        except UnknownMessageType as exc:
            LOG.debug("Dropping frame from %s: %s", sender.session_id, exc)
            return

        if frame.kind is MessageKind.JOIN:
            self._handle_join(sender, frame.get("room"))
            return

        if frame.kind in RELAYED_KINDS:
            self.relay(sender, raw, kind=frame.kind)
            return

        if frame.kind in SERVER_KINDS:
            LOG.debug("Ignoring client-sent %s frame from %s", frame.kind.value, sender.session_id)
            return

        LOG.debug("No handler for %s frame from %s", frame.kind.value, sender.session_id)

    def _handle_join(self, sender: Participant, room_id: object) -> None:
        try:
            notifications = self.registry.join(room_id, sender)
        except RoomFull as exc:
            LOG.info("Rejecting %s: %s", sender.session_id, exc)
            sender.deliver(error_frame("room-full", str(exc), room=exc.room_id))
            return
        for recipient, text in notifications:
            recipient.deliver(text)

    def relay(self, sender: Participant, raw: str, *, kind: MessageKind) -> int:
        """Forward ``raw`` unchanged to the sender's peers; returns the fan-out count."""

        peers = self.registry.peers_of(sender)
        if not peers:
            LOG.debug(
                "Dropping %s from %s: no peer in room %s",
                kind.value,
                sender.session_id,
                sender.room_id,
            )
            return 0

        delivered = 0
        for peer in peers:
            if not peer.is_open:
                continue
            peer.deliver(raw)
            delivered += 1
        return delivered


__all__ = ["RelayRouter"]
