"""
WebSocket sessions and the manager that wires them to the relay.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from typing import Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

from .messages import Role, error_frame
from .registry import RoomRegistry
from .router import RelayRouter

LOG = logging.getLogger(__name__)


class SignalingSession:
    """Track per-connection state and run the receive/send loops."""

    def __init__(self, manager: "SignalingManager", websocket: WebSocket, *, queue_size: int) -> None:
        self.manager = manager
        self.websocket = websocket
        self.session_id = uuid.uuid4().hex
        self.room_id: Optional[str] = None
        self.role: Optional[Role] = None
        self.send_queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._stop_event = asyncio.Event()
        self._closing = False
        self.logger = LOG.getChild(f"ws.{self.session_id[:8]}")

    @property
    def is_stopped(self) -> bool:
        return self._stop_event.is_set()

    @property
    def is_open(self) -> bool:
        return not self._stop_event.is_set()

    async def run(self) -> None:
        try:
            await self.websocket.accept()
        except Exception:  # pragma: no cover
            self.logger.exception("Failed to accept WebSocket connection")
            return

        self.manager.register(self)
        try:
            async with asyncio.TaskGroup() as task_group:
                task_group.create_task(self._recv_loop())
                task_group.create_task(self._send_loop())
        except asyncio.CancelledError:
            raise
        except Exception:  # pragma: no cover
            self.logger.exception("Signaling session crashed")
        finally:
            self.manager.unregister(self)
            await self.close(code=1000)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        if self._closing:
            return
        self._closing = True
        self._stop_event.set()
        with contextlib.suppress(RuntimeError, OSError, WebSocketDisconnect):
            await self.websocket.close(code=code, reason=reason)

    def deliver(self, text: str) -> None:
        """Queue ``text`` for sending without blocking; drops on backpressure."""

        if self.is_stopped:
            return
        try:
            self.send_queue.put_nowait(text)
        except asyncio.QueueFull:
            self.logger.debug("Dropping outbound frame due to backpressure")

    async def _recv_loop(self) -> None:
        try:
            while not self.is_stopped:
                try:
                    message = await self.websocket.receive()
                except asyncio.CancelledError:
                    raise
                except (RuntimeError, WebSocketDisconnect):
                    break
                except Exception:  # pragma: no cover - safety net
                    self.logger.exception("Failed to receive message")
                    break

                if message.get("type") == "websocket.disconnect":
                    self.logger.debug("Client disconnected (code=%s)", message.get("code"))
                    break

                text = message.get("text")
                if text is None:
                    data = message.get("bytes")
                    if data is None:
                        continue
                    try:
                        text = data.decode("utf-8")
                    except UnicodeDecodeError:
                        self.logger.debug("Dropping undecodable binary frame")
                        continue

                try:
                    self.manager.router.dispatch(self, text)
                except Exception:  # pragma: no cover - guard rails
                    self.logger.exception("Unhandled error while processing message")
        finally:
            self._stop_event.set()

    async def _send_loop(self) -> None:
        try:
            while not self.is_stopped:
                try:
                    text = await asyncio.wait_for(self.send_queue.get(), timeout=0.5)
                except asyncio.TimeoutError:
                    continue

                try:
                    await self.websocket.send_text(text)
                except asyncio.CancelledError:
                    raise
                except WebSocketDisconnect:
                    break
                except (RuntimeError, OSError) as exc:
                    self.logger.debug("Send after close ignored: %s", exc)
                    break
                except Exception:  # pragma: no cover
                    self.logger.exception("Failed to send message")
                    break
                finally:
                    self.send_queue.task_done()
        finally:
            self._stop_event.set()


class SignalingManager:
    """Own the room registry and relay router shared by every session."""

    def __init__(
        self,
        *,
        registry: Optional[RoomRegistry] = None,
        queue_size: int = 64,
        idle_room_timeout: float = 0.0,
        sweep_interval: float = 30.0,
    ) -> None:
        self.registry = registry or RoomRegistry()
        self.router = RelayRouter(self.registry)
        self.queue_size = max(1, int(queue_size))
        self.idle_room_timeout = max(0.0, float(idle_room_timeout))
        self.sweep_interval = max(0.1, float(sweep_interval))

        self._sessions: Dict[str, SignalingSession] = {}
        self._sweep_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def connection_count(self) -> int:
        return len(self._sessions)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        if self.idle_room_timeout > 0:
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False

        if self._sweep_task:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

        for session in list(self._sessions.values()):
            await session.close(code=1001, reason="server shutdown")

    async def run(self, websocket: WebSocket) -> None:
        session = SignalingSession(self, websocket, queue_size=self.queue_size)
        await session.run()

    def register(self, session: SignalingSession) -> None:
        self._sessions[session.session_id] = session
        LOG.info("Signaling client connected session=%s", session.session_id)

    def unregister(self, session: SignalingSession) -> None:
        self._sessions.pop(session.session_id, None)
        room_id = self.registry.leave(session)
        LOG.info("Signaling client disconnected session=%s room=%s", session.session_id, room_id)

    def sweep_idle_rooms(self, now: Optional[float] = None) -> int:
        expired = self.registry.expire_idle(self.idle_room_timeout, now=now)
        for room_id, member in expired:
            member.deliver(
                error_frame(
                    "room-expired",
                    f"room {room_id!r} expired waiting for a peer",
                    room=room_id,
                )
            )
        return len(expired)

    async def _sweep_loop(self) -> None:
        try:
            while self._running:
                await asyncio.sleep(self.sweep_interval)
                if not self._running:
                    break
                try:
                    self.sweep_idle_rooms()
                except Exception:  # pragma: no cover
                    LOG.exception("Idle room sweep failed.")
        except asyncio.CancelledError:
            pass
        finally:
            self._sweep_task = None


__all__ = ["SignalingManager", "SignalingSession"]
