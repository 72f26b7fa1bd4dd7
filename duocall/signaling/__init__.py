"""
Room pairing and signaling relay.
"""

from __future__ import annotations

from .messages import MessageKind, Role
from .registry import RoomFull, RoomRegistry
from .router import RelayRouter
from .server import SignalingManager, SignalingSession

__all__ = [
    "MessageKind",
    "RelayRouter",
    "Role",
    "RoomFull",
    "RoomRegistry",
    "SignalingManager",
    "SignalingSession",
]
