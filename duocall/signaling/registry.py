"""
In-memory room registry pairing two participants per room.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .messages import Role, SignalingError, ready_frame

LOG = logging.getLogger(__name__)

ROOM_CAPACITY = 2

MonotonicCallable = Callable[[], float]


class RoomFull(SignalingError):
    """Raised when joining a room that already holds two members."""

    def __init__(self, room_id: str) -> None:
        super().__init__(f"room {room_id!r} is full")
        self.room_id = room_id


class Participant(Protocol):
    session_id: str
    room_id: Optional[str]
    role: Optional[Role]

    @property
    def is_open(self) -> bool: ...

    def deliver(self, text: str) -> None: ...


# (recipient, text frame) pairs handed back for delivery outside the lock.
Notification = Tuple[Participant, str]


@dataclass
class Room:
    room_id: str
    last_activity: float
    members: List[Participant] = field(default_factory=list)

    @property
    def is_full(self) -> bool:
        return len(self.members) >= ROOM_CAPACITY


class RoomRegistry:
    """
    Owns the room id → members mapping.

    Each public method performs its whole mutation under a single lock so
    membership changes and the role-assignment check never interleave.
    """

    def __init__(self, *, monotonic: Optional[MonotonicCallable] = None) -> None:
        self._lock = threading.RLock()
        self._rooms: Dict[str, Room] = {}
        self._monotonic: MonotonicCallable = monotonic if monotonic is not None else time.monotonic

    # ------------------------------------------------------------------ helpers

    def _leave_locked(self, participant: Participant) -> Optional[str]:
        room_id = participant.room_id
        participant.room_id = None
        participant.role = None
        if room_id is None:
            return None
        room = self._rooms.get(room_id)
        if room is None:
            return None
        room.members = [member for member in room.members if member is not participant]
        room.last_activity = self._monotonic()
        if not room.members:
            del self._rooms[room_id]
            LOG.info("Room %s removed", room_id)
        else:
            # The next pairing reassigns roles by position.
            for member in room.members:
                member.role = None
        return room_id

    def _assign_roles_locked(self, room: Room) -> List[Notification]:
        notifications: List[Notification] = []
        for index, member in enumerate(room.members):
            role = Role.for_position(index)
            member.role = role
            if member.is_open:
                notifications.append((member, ready_frame(role)))
        LOG.info(
            "Room %s paired caller=%s callee=%s",
            room.room_id,
            room.members[0].session_id,
            room.members[1].session_id,
        )
        return notifications

    # ------------------------------------------------------------------ public API

    def join(self, room_id: object, participant: Participant) -> List[Notification]:
        """
        Add ``participant`` to ``room_id`` and return the ``ready`` frames due.

        Invalid identifiers are ignored. Raises :class:`RoomFull` when the room
        already holds two members.
        """

        if not isinstance(room_id, str) or not room_id.strip():
            LOG.debug("Ignoring join with invalid room id %r", room_id)
            return []

        with self._lock:
            if participant.room_id == room_id:
                return []

            room = self._rooms.get(room_id)
            if room is not None and room.is_full:
                raise RoomFull(room_id)

            if participant.room_id is not None:
                self._leave_locked(participant)

            now = self._monotonic()
            if room is None:
                room = Room(room_id=room_id, last_activity=now)
                self._rooms[room_id] = room
                LOG.info("Room %s created by %s", room_id, participant.session_id)

            room.members.append(participant)
            room.last_activity = now
            participant.room_id = room_id

            if len(room.members) == ROOM_CAPACITY:
                return self._assign_roles_locked(room)
            return []

    def leave(self, participant: Participant) -> Optional[str]:
        """Remove ``participant`` from its room; returns the room id it left."""

        with self._lock:
            return self._leave_locked(participant)

    def peers_of(self, participant: Participant) -> List[Participant]:
        with self._lock:
            room_id = participant.room_id
            if room_id is None:
                return []
            room = self._rooms.get(room_id)
            if room is None:
                return []
            room.last_activity = self._monotonic()
            return [member for member in room.members if member is not participant]

    def expire_idle(self, max_idle: float, now: Optional[float] = None) -> List[Tuple[str, Participant]]:
        """
        Drop single-member rooms idle for longer than ``max_idle`` seconds.

        Returns ``(room_id, member)`` for every participant removed.
        """

        if max_idle <= 0:
            return []
        if now is None:
            now = self._monotonic()

        expired: List[Tuple[str, Participant]] = []
        with self._lock:
            for room_id, room in list(self._rooms.items()):
                if len(room.members) != 1:
                    continue
                idle_for = now - room.last_activity
                if idle_for < max_idle:
                    continue
                member = room.members[0]
                self._leave_locked(member)
                expired.append((room_id, member))
                LOG.info("Room %s expired after %.0fs idle", room_id, idle_for)
        return expired

    def members(self, room_id: str) -> List[Participant]:
        with self._lock:
            room = self._rooms.get(room_id)
            return list(room.members) if room is not None else []

    def room_count(self) -> int:
        with self._lock:
            return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        with self._lock:
            return room_id in self._rooms


__all__ = ["Notification", "Participant", "ROOM_CAPACITY", "Room", "RoomFull", "RoomRegistry"]
