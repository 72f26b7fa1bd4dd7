"""Utility helpers shared by the server and client."""

from .logging import configure_logging

__all__ = ["configure_logging"]
