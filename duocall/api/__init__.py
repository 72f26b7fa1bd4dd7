"""
HTTP and WebSocket surface of the signaling server.
"""

from __future__ import annotations

from .server import create_app

__all__ = ["create_app"]
