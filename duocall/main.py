"""
Signaling server entrypoint.

Resolves configuration, initialises logging and serves the FastAPI app with
uvicorn until interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from .api.server import create_app
from .config import ServerConfig, load_config
from .utils.logging import configure_logging

LOG = logging.getLogger(__name__)


async def serve(config: ServerConfig) -> None:
    """
    Run the signaling server inside an asyncio loop.

    Parameters
    ----------
    config:
        Resolved server configuration; ``host`` and ``port`` select the bind
        address.
    """

    import uvicorn

    @asynccontextmanager
    async def app_lifespan(_app) -> AsyncIterator[None]:
        LOG.info("Signaling server listening on http://%s:%s (profile=%s)", config.host, config.port, config.profile)
        try:
            yield
        finally:
            LOG.info("Signaling server shutting down")

    app = create_app(config=config, lifespan=app_lifespan)
    server_config = uvicorn.Config(
        app=app,
        host=config.host,
        port=config.port,
        log_config=None,
        log_level="info",
        reload=False,
    )
    server = uvicorn.Server(config=server_config)

    def _handle_signal(signum: int, frame: Optional[object]) -> None:
        LOG.info("Received signal %s, shutting down server...", signum)
        server.should_exit = True

    for signame in ("SIGINT", "SIGTERM"):
        signal.signal(getattr(signal, signame), _handle_signal)

    await server.serve()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="duocall signaling server")
    parser.add_argument("--profile", default=None, help="configuration profile to load")
    parser.add_argument("--host", default=None, help="bind host (overrides profile and environment)")
    parser.add_argument("--port", type=int, default=None, help="bind port (overrides PORT)")
    parser.add_argument("--log-level", default="INFO", help="root log level")
    return parser.parse_args(argv)


def run(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(args.log_level)
    config = load_config(args.profile).with_overrides(host=args.host, port=args.port)

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        LOG.info("Server interrupted by user.")


if __name__ == "__main__":
    run()
