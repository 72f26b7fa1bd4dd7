"""
FastAPI surface: signaling WebSocket, health check, speech proxies and the
static web client.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Callable, Optional

import httpx
from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from ..config import ServerConfig
from ..signaling.server import SignalingManager
from . import schemas
from .upstream import SpeechServices, UpstreamError

LOG = logging.getLogger(__name__)


def create_app(
    *,
    config: Optional[ServerConfig] = None,
    manager: Optional[SignalingManager] = None,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
    lifespan: Optional[Callable[[FastAPI], AsyncContextManager[None]]] = None,
) -> FastAPI:
    server_config = config or ServerConfig()
    signaling = manager or SignalingManager(
        queue_size=server_config.send_queue_size,
        idle_room_timeout=server_config.idle_room_timeout,
        sweep_interval=server_config.sweep_interval,
    )
    speech = SpeechServices(server_config, transport=upstream_transport)

    @asynccontextmanager
    async def app_lifespan(app: FastAPI) -> AsyncIterator[None]:
        await signaling.start()
        try:
            if lifespan is not None:
                async with lifespan(app):
                    yield
            else:
                yield
        finally:
            await signaling.stop()

    app = FastAPI(title="duocall signaling server", lifespan=app_lifespan)
    app.state.signaling = signaling
    app.state.config = server_config
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await signaling.run(websocket)

    # The bundled web client connects to the page host root.
    @app.websocket("/")
    async def websocket_root(websocket: WebSocket) -> None:
        await signaling.run(websocket)

    @app.get("/healthz")
    async def healthz() -> dict:
        return {
            "status": "ok",
            "profile": server_config.profile,
            "rooms": signaling.registry.room_count(),
            "connections": signaling.connection_count,
        }

    @app.post("/api/speech-to-text", response_model=schemas.SpeechToTextResponse)
    async def speech_to_text(payload: schemas.SpeechToTextRequest) -> schemas.SpeechToTextResponse:
        try:
            return await speech.transcribe(payload)
        except UpstreamError as exc:
            raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    @app.post("/api/translate", response_model=schemas.TranslateResponse)
    async def translate(payload: schemas.TranslateRequest) -> schemas.TranslateResponse:
        try:
            return await speech.translate(payload)
        except UpstreamError as exc:
            raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    static_dir = server_config.static_dir
    if static_dir is not None and static_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="web-client")
    elif static_dir is not None:
        LOG.info("Static directory %s not found; web client not served", static_dir)

    return app


__all__ = ["create_app"]
