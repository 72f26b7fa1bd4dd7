"""
WebSocket call client: joins a room and feeds relayed frames to the
negotiation state machine in receipt order.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
import string
from typing import Callable, Iterable, Optional

from pydantic import ValidationError
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from ..api.schemas import TranslationMessage
from ..signaling.messages import MalformedMessage, MessageKind, Role, UnknownMessageType, encode, parse_frame
from .negotiation import NegotiationError, NegotiationSession, NegotiationState, PeerLink

LOG = logging.getLogger(__name__)

ROOM_ID_ALPHABET = string.digits + string.ascii_uppercase
ROOM_ID_LENGTH = 6


def generate_room_id(length: int = ROOM_ID_LENGTH) -> str:
    return "".join(secrets.choice(ROOM_ID_ALPHABET) for _ in range(length))


class CallClient:
    """
    One signaling connection per call.

    ``peer_factory`` builds a fresh peer link for every call attempt; by
    default an :class:`~duocall.client.peer.AiortcPeerLink` fed with the
    tracks returned by ``media_factory``.
    """

    def __init__(
        self,
        url: str,
        *,
        peer_factory: Optional[Callable[[], PeerLink]] = None,
        media_factory: Optional[Callable[[], Iterable]] = None,
        on_translation: Optional[Callable[[TranslationMessage], None]] = None,
        on_error: Optional[Callable[[str, str], None]] = None,
        on_state_change: Optional[Callable[[NegotiationState], None]] = None,
    ) -> None:
        self.url = url
        self.room_id: Optional[str] = None
        self._media_factory = media_factory
        self._on_translation = on_translation
        self._on_error = on_error
        self._websocket: Optional[ClientConnection] = None
        self._reader: Optional[asyncio.Task] = None
        self._ending = False
        self.negotiation = NegotiationSession(
            self.send,
            peer_factory or self._default_peer,
            on_state_change=on_state_change,
        )

    def _default_peer(self) -> PeerLink:
        from .peer import AiortcPeerLink

        tracks = list(self._media_factory()) if self._media_factory is not None else []
        return AiortcPeerLink(local_tracks=tracks, on_state_change=self.negotiation.on_connection_state)

    @property
    def is_connected(self) -> bool:
        return self._websocket is not None

    async def connect(self, room_id: Optional[str] = None) -> str:
        """Open the signaling channel and join ``room_id`` (generated when empty)."""

        if self._websocket is not None:
            raise NegotiationError("a call is already in progress")

        room = (room_id or "").strip() or generate_room_id()
        self._websocket = await connect(self.url)
        self.room_id = room
        self.negotiation.begin()
        await self.send(encode(MessageKind.JOIN, room=room))
        LOG.info("Joined room %s; waiting for peer", room)
        self._reader = asyncio.create_task(self._read_loop(self._websocket))
        return room

    async def wait(self) -> None:
        """Block until the signaling channel closes or the call is ended."""

        if self._reader is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader

    async def send(self, text: str) -> None:
        websocket = self._websocket
        if websocket is None:
            LOG.debug("Dropping outbound frame: not connected")
            return
        try:
            await websocket.send(text)
        except ConnectionClosed:
            LOG.debug("Dropping outbound frame: channel closed")

    async def send_translation(
        self,
        translated_text: str,
        *,
        target_language: str,
        source_language: Optional[str] = None,
        detected_language: Optional[str] = None,
    ) -> None:
        message = TranslationMessage(
            translated_text=translated_text,
            source_language=source_language,
            target_language=target_language,
            detected_language=detected_language,
        )
        await self.send(message.model_dump_json(by_alias=True))

    async def _read_loop(self, websocket: ClientConnection) -> None:
        try:
            async for text in websocket:
                if isinstance(text, bytes):
                    text = text.decode("utf-8", errors="replace")
                await self.handle_frame(text)
        except ConnectionClosed:
            pass
        finally:
            if not self._ending:
                LOG.info("Signaling channel lost")
                self.negotiation.channel_lost()

    async def handle_frame(self, text: str) -> None:
        try:
            frame = parse_frame(text)
        except (MalformedMessage, UnknownMessageType) as exc:
            LOG.debug("Dropping frame: %s", exc)
            return

        if frame.kind is MessageKind.READY:
            try:
                role = Role(frame.get("role"))
            except ValueError:
                LOG.debug("Dropping ready with unknown role %r", frame.get("role"))
                return
            await self.negotiation.on_ready(role)
        elif frame.kind is MessageKind.OFFER:
            await self.negotiation.on_offer(frame.get("offer"))
        elif frame.kind is MessageKind.ANSWER:
            await self.negotiation.on_answer(frame.get("answer"))
        elif frame.kind is MessageKind.CANDIDATE:
            await self.negotiation.on_candidate(frame.get("candidate"))
        elif frame.kind is MessageKind.TRANSLATION:
            self._handle_translation(frame.payload)
        elif frame.kind is MessageKind.ERROR:
            code = str(frame.get("code") or "error")
            message = str(frame.get("message") or "")
            LOG.warning("Server error %s: %s", code, message)
            if self._on_error is not None:
                try:
                    self._on_error(code, message)
                except Exception:
                    LOG.exception("Error callback failed.")

    def _handle_translation(self, payload: dict) -> None:
        try:
            message = TranslationMessage.model_validate(payload)
        except ValidationError as exc:
            LOG.debug("Dropping invalid translation frame: %s", exc)
            return
        if self._on_translation is not None:
            try:
                self._on_translation(message)
            except Exception:
                LOG.exception("Translation callback failed.")

    async def end_call(self) -> None:
        """
        Release media, the peer link and the signaling channel.

        Safe at any point; afterwards :meth:`connect` may start a new call.
        """

        self._ending = True
        try:
            reader, self._reader = self._reader, None
            if reader is not None and reader is not asyncio.current_task():
                reader.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await reader

            await self.negotiation.reset()

            websocket, self._websocket = self._websocket, None
            if websocket is not None:
                await websocket.close()
            self.room_id = None
        finally:
            self._ending = False


__all__ = ["CallClient", "generate_room_id"]
