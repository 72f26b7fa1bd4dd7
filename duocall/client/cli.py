"""
Command line call client.

Examples
--------
Create a room and wait for a browser to join it::

    duocall-client --url ws://localhost:8080/

Join an existing room, streaming a local file and recording the peer::

    duocall-client --room ABC123 --play-from clip.mp4 --record-to peer.mp4
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional

from ..utils.logging import configure_logging
from .call import CallClient
from .negotiation import NegotiationState

LOG = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="duocall command line client")
    parser.add_argument("--url", default="ws://localhost:8080/", help="signaling server WebSocket URL")
    parser.add_argument("--room", default=None, help="room to join; a new id is generated when omitted")
    parser.add_argument("--play-from", default=None, help="media file streamed to the peer")
    parser.add_argument("--record-to", default=None, help="file the peer's media is recorded to")
    parser.add_argument("--log-level", default="INFO", help="root log level")
    return parser.parse_args(argv)


async def run_call(args: argparse.Namespace) -> None:
    from aiortc.contrib.media import MediaPlayer, MediaRecorder

    from .peer import AiortcPeerLink

    def media_tracks() -> list:
        if not args.play_from:
            return []
        player = MediaPlayer(args.play_from)
        return [track for track in (player.audio, player.video) if track is not None]

    client: CallClient

    def peer_factory() -> AiortcPeerLink:
        sink = MediaRecorder(args.record_to) if args.record_to else None
        return AiortcPeerLink(
            local_tracks=media_tracks(),
            sink=sink,
            on_state_change=client.negotiation.on_connection_state,
        )

    def on_state_change(state: NegotiationState) -> None:
        LOG.info("Call state: %s", state.value)

    client = CallClient(
        args.url,
        peer_factory=peer_factory,
        on_translation=lambda message: LOG.info(
            "Translation (%s): %s", message.target_language, message.translated_text
        ),
        on_state_change=on_state_change,
    )

    room = await client.connect(args.room)
    LOG.info("Room id: %s (share it with your peer)", room)
    try:
        await client.wait()
    finally:
        await client.end_call()


def run(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(args.log_level)
    try:
        asyncio.run(run_call(args))
    except KeyboardInterrupt:
        LOG.info("Call ended by user.")


if __name__ == "__main__":
    run()
