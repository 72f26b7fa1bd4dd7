"""
duocall: a two-party call signaling relay.

The server pairs two clients per room, assigns the caller/callee roles and
relays session descriptions, ICE candidates and transcript translations
between them. The :mod:`duocall.client` package offers a Python peer built on
aiortc.
"""

from __future__ import annotations

from .config import ServerConfig, load_config

__all__ = [
    "ServerConfig",
    "load_config",
]

__version__ = "0.1.0"
