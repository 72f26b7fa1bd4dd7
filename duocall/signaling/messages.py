"""
Signaling message kinds and frame helpers.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class SignalingError(RuntimeError):
    """Base class for signaling related errors."""


class MalformedMessage(SignalingError):
    """Raised when a frame is not a JSON object."""


class UnknownMessageType(SignalingError):
    """Raised when a frame carries a type outside :class:`MessageKind`."""


class MessageKind(str, Enum):
    JOIN = "join"
    READY = "ready"
    OFFER = "offer"
    ANSWER = "answer"
    CANDIDATE = "candidate"
    TRANSLATION = "translation"
    ERROR = "error"


class Role(str, Enum):
    CALLER = "caller"
    CALLEE = "callee"

    @classmethod
    def for_position(cls, index: int) -> "Role":
        return cls.CALLER if index == 0 else cls.CALLEE


# Kinds forwarded verbatim between room members.
RELAYED_KINDS = frozenset(
    {
        MessageKind.OFFER,
        MessageKind.ANSWER,
        MessageKind.CANDIDATE,
        MessageKind.TRANSLATION,
    }
)

# Kinds only the server may originate.
SERVER_KINDS = frozenset({MessageKind.READY, MessageKind.ERROR})


@dataclass(frozen=True)
class Frame:
    """
    A decoded signaling frame.

    ``raw`` keeps the text exactly as received so relayed frames can be
    forwarded without re-serialisation.
    """

    kind: MessageKind
    payload: Dict[str, Any]
    raw: str

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)


def parse_frame(raw: str) -> Frame:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedMessage(f"invalid JSON: {exc}") from None
    if not isinstance(payload, dict):
        raise MalformedMessage("frame must be a JSON object")

    message_type = payload.get("type")
    if not isinstance(message_type, str):
        raise UnknownMessageType(f"missing or non-string type: {message_type!r}")
    try:
        kind = MessageKind(message_type)
    except ValueError:
        raise UnknownMessageType(f"unknown type {message_type!r}") from None
    return Frame(kind=kind, payload=payload, raw=raw)


def encode(kind: MessageKind, **fields: Any) -> str:
    payload: Dict[str, Any] = {"type": kind.value}
    payload.update(fields)
    return json.dumps(payload)


def ready_frame(role: Role) -> str:
    return encode(MessageKind.READY, role=role.value)


def error_frame(code: str, message: str, *, room: Optional[str] = None) -> str:
    fields: Dict[str, Any] = {"code": code, "message": message}
    if room is not None:
        fields["room"] = room
    return encode(MessageKind.ERROR, **fields)


__all__ = [
    "Frame",
    "MalformedMessage",
    "MessageKind",
    "RELAYED_KINDS",
    "Role",
    "SERVER_KINDS",
    "SignalingError",
    "UnknownMessageType",
    "encode",
    "error_frame",
    "parse_frame",
    "ready_frame",
]
