"""
Per-call negotiation state machine.

One :class:`NegotiationSession` drives a single call attempt: it waits for the
server to assign a role, exchanges session descriptions through the relay and
holds back connectivity candidates until the remote description is applied.
Handlers are awaited one at a time by the caller, so no two negotiation steps
of the same attempt ever overlap.
"""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Protocol

from ..signaling.messages import MessageKind, Role, encode

LOG = logging.getLogger(__name__)

Description = Dict[str, Any]
Candidate = Dict[str, Any]
SendCallable = Callable[[str], Awaitable[None]]


class NegotiationError(RuntimeError):
    """Base class for negotiation related errors."""


class NegotiationApplyFailure(NegotiationError):
    """Raised by a peer link when a description or candidate cannot be applied."""


class NegotiationState(str, Enum):
    IDLE = "idle"
    AWAITING_ROLE = "awaiting-role"
    INITIATOR_OFFERING = "initiator-offering"
    RESPONDER_WAITING = "responder-waiting"
    DESCRIPTION_EXCHANGED = "description-exchanged"
    CONNECTED = "connected"
    FAILED = "failed"
    DISCONNECTED = "disconnected"


# States in which the remote description has not been applied yet.
PRE_DESCRIPTION_STATES = frozenset(
    {
        NegotiationState.AWAITING_ROLE,
        NegotiationState.INITIATOR_OFFERING,
        NegotiationState.RESPONDER_WAITING,
    }
)

REMOTE_APPLIED_STATES = frozenset(
    {
        NegotiationState.DESCRIPTION_EXCHANGED,
        NegotiationState.CONNECTED,
    }
)

TERMINAL_STATES = frozenset({NegotiationState.FAILED, NegotiationState.DISCONNECTED})


class PeerLink(Protocol):
    """The peer connection operations the state machine relies on."""

    async def create_offer(self) -> Description: ...

    async def create_answer(self) -> Description: ...

    async def set_remote_description(self, description: Description) -> None: ...

    async def add_candidate(self, candidate: Candidate) -> None: ...

    async def close(self) -> None: ...


PeerLinkFactory = Callable[[], PeerLink]


def is_end_of_candidates(candidate: Optional[Candidate]) -> bool:
    if not candidate:
        return True
    return not candidate.get("candidate")


class NegotiationSession:
    def __init__(
        self,
        send: SendCallable,
        peer_factory: PeerLinkFactory,
        *,
        on_state_change: Optional[Callable[[NegotiationState], None]] = None,
    ) -> None:
        self._send = send
        self._peer_factory = peer_factory
        self._on_state_change = on_state_change
        self._state = NegotiationState.IDLE
        self._role: Optional[Role] = None
        self._peer: Optional[PeerLink] = None
        self._pending_candidates: Deque[Candidate] = deque()

    # ------------------------------------------------------------------ views

    @property
    def state(self) -> NegotiationState:
        return self._state

    @property
    def role(self) -> Optional[Role]:
        return self._role

    @property
    def peer(self) -> Optional[PeerLink]:
        return self._peer

    @property
    def ready_received(self) -> bool:
        return self._state not in (NegotiationState.IDLE, NegotiationState.AWAITING_ROLE)

    @property
    def remote_description_applied(self) -> bool:
        return self._state in REMOTE_APPLIED_STATES

    @property
    def pending_candidates(self) -> list:
        return list(self._pending_candidates)

    # ------------------------------------------------------------------ helpers

    def _transition(self, state: NegotiationState) -> None:
        if state is self._state:
            return
        LOG.debug("Negotiation %s -> %s", self._state.value, state.value)
        self._state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception:  # pragma: no cover - observer failures must not break negotiation
                LOG.exception("Negotiation state observer failed.")

    def _ensure_peer(self) -> PeerLink:
        if self._peer is None:
            self._peer = self._peer_factory()
        return self._peer

    async def _apply_candidate(self, candidate: Candidate) -> bool:
        try:
            await self._ensure_peer().add_candidate(candidate)
        except Exception:
            LOG.warning("Failed to apply ICE candidate %r", candidate.get("candidate"), exc_info=True)
            return False
        return True

    async def _drain_candidates(self) -> int:
        applied = 0
        while self._pending_candidates:
            candidate = self._pending_candidates.popleft()
            if await self._apply_candidate(candidate):
                applied += 1
        return applied

    async def _apply_remote(self, description: Optional[Description], kind: MessageKind) -> bool:
        if not isinstance(description, dict):
            LOG.warning("Ignoring %s without a session description", kind.value)
            return False
        try:
            await self._ensure_peer().set_remote_description(description)
        except Exception:
            LOG.warning("Failed to apply remote %s", kind.value, exc_info=True)
            return False
        self._transition(NegotiationState.DESCRIPTION_EXCHANGED)
        await self._drain_candidates()
        return True

    # ------------------------------------------------------------------ events

    def begin(self) -> None:
        """Start a call attempt; the join frame has been sent."""

        if self._state is not NegotiationState.IDLE:
            raise NegotiationError(f"cannot begin from state {self._state.value}")
        self._transition(NegotiationState.AWAITING_ROLE)

    async def on_ready(self, role: Role) -> None:
        if self._state is not NegotiationState.AWAITING_ROLE:
            LOG.debug("Ignoring ready in state %s", self._state.value)
            return

        self._role = role
        self._ensure_peer()
        if role is Role.CALLEE:
            self._transition(NegotiationState.RESPONDER_WAITING)
            return

        self._transition(NegotiationState.INITIATOR_OFFERING)
        try:
            offer = await self._ensure_peer().create_offer()
        except Exception:
            LOG.warning("Failed to create offer", exc_info=True)
            return
        await self._send(encode(MessageKind.OFFER, offer=offer))
        LOG.info("Offer sent; waiting for answer")

    async def on_offer(self, description: Optional[Description]) -> None:
        if self._state is not NegotiationState.RESPONDER_WAITING:
            LOG.debug("Ignoring offer in state %s", self._state.value)
            return
        if not await self._apply_remote(description, MessageKind.OFFER):
            return

        try:
            answer = await self._ensure_peer().create_answer()
        except Exception:
            LOG.warning("Failed to create answer", exc_info=True)
            return
        await self._send(encode(MessageKind.ANSWER, answer=answer))
        LOG.info("Answer sent; establishing connection")

    async def on_answer(self, description: Optional[Description]) -> None:
        if self._state is not NegotiationState.INITIATOR_OFFERING:
            LOG.debug("Ignoring answer in state %s", self._state.value)
            return
        await self._apply_remote(description, MessageKind.ANSWER)

    async def on_candidate(self, candidate: Optional[Candidate]) -> None:
        if candidate is None:
            return
        if not isinstance(candidate, dict):
            LOG.debug("Dropping malformed candidate payload %r", candidate)
            return
        if is_end_of_candidates(candidate):
            return
        if self._state in PRE_DESCRIPTION_STATES:
            self._pending_candidates.append(candidate)
            return
        if self._state in REMOTE_APPLIED_STATES:
            await self._apply_candidate(candidate)
            return
        LOG.debug("Dropping candidate in state %s", self._state.value)

    def on_connection_state(self, state: str) -> None:
        """Map the peer link's connection state onto the negotiation state."""

        if self._state is NegotiationState.IDLE:
            return
        if state == "connected":
            if self._state is NegotiationState.DESCRIPTION_EXCHANGED:
                self._transition(NegotiationState.CONNECTED)
        elif state == "failed":
            self._transition(NegotiationState.FAILED)
        elif state in {"disconnected", "closed"}:
            self._transition(NegotiationState.DISCONNECTED)

    def channel_lost(self) -> None:
        if self._state is NegotiationState.IDLE:
            return
        self._transition(NegotiationState.DISCONNECTED)

    async def reset(self) -> None:
        """
        Release the peer link and return to ``idle``.

        Safe to call in any state and more than once.
        """

        peer, self._peer = self._peer, None
        self._pending_candidates.clear()
        self._role = None
        try:
            if peer is not None:
                await peer.close()
        except Exception:
            LOG.warning("Error while closing peer link", exc_info=True)
        finally:
            self._transition(NegotiationState.IDLE)


__all__ = [
    "NegotiationApplyFailure",
    "NegotiationError",
    "NegotiationSession",
    "NegotiationState",
    "PeerLink",
    "is_end_of_candidates",
]
