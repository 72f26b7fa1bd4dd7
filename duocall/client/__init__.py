"""
Python call client: negotiation state machine, aiortc peer link and the
signaling WebSocket client.
"""

from __future__ import annotations

from .call import CallClient, generate_room_id
from .negotiation import NegotiationSession, NegotiationState

__all__ = ["CallClient", "NegotiationSession", "NegotiationState", "generate_room_id"]
