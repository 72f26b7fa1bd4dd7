"""Tests covering frame dispatch and fan-out."""

from __future__ import annotations

import json
from typing import List, Optional

from duocall.signaling.messages import Role
from duocall.signaling.registry import RoomRegistry
from duocall.signaling.router import RelayRouter


class FakeParticipant:
    def __init__(self, name: str) -> None:
        self.session_id = name
        self.room_id: Optional[str] = None
        self.role: Optional[Role] = None
        self.is_open = True
        self.outbox: List[str] = []

    def deliver(self, text: str) -> None:
        self.outbox.append(text)


def _join(router: RelayRouter, participant: FakeParticipant, room: str) -> None:
    router.dispatch(participant, json.dumps({"type": "join", "room": room}))


def _paired_room():
    router = RelayRouter(RoomRegistry())
    alice, bob = FakeParticipant("alice"), FakeParticipant("bob")
    _join(router, alice, "ABC123")
    _join(router, bob, "ABC123")
    alice.outbox.clear()
    bob.outbox.clear()
    return router, alice, bob


def test_join_sends_ready_to_both_members() -> None:
    router = RelayRouter(RoomRegistry())
    alice, bob = FakeParticipant("alice"), FakeParticipant("bob")

    _join(router, alice, "ABC123")
    assert alice.outbox == []

    _join(router, bob, "ABC123")
    assert [json.loads(text) for text in alice.outbox] == [{"type": "ready", "role": "caller"}]
    assert [json.loads(text) for text in bob.outbox] == [{"type": "ready", "role": "callee"}]


def test_offer_is_forwarded_byte_identical_to_peer_only() -> None:
    router, alice, bob = _paired_room()
    carol = FakeParticipant("carol")
    _join(router, carol, "OTHER")

    raw = '{"type":"offer",  "offer": {"type": "offer", "sdp": "v=0\\r\\n"}}'
    router.dispatch(alice, raw)

    assert bob.outbox == [raw]
    assert alice.outbox == []
    assert carol.outbox == []


def test_relay_preserves_send_order() -> None:
    router, alice, bob = _paired_room()
    frames = [
        json.dumps({"type": "candidate", "candidate": {"candidate": f"candidate:{index}"}})
        for index in range(5)
    ]
    for frame in frames:
        router.dispatch(bob, frame)

    assert alice.outbox == frames


def test_translation_is_relayed() -> None:
    router, alice, bob = _paired_room()
    raw = json.dumps(
        {
            "type": "translation",
            "translatedText": "hola",
            "sourceLanguage": "en",
            "targetLanguage": "es",
            "detectedLanguage": "en",
        }
    )
    router.dispatch(bob, raw)

    assert alice.outbox == [raw]


def test_relay_from_orphaned_sender_is_dropped() -> None:
    router = RelayRouter(RoomRegistry())
    loner = FakeParticipant("loner")

    router.dispatch(loner, json.dumps({"type": "offer", "offer": {}}))
    _join(router, loner, "SOLO")
    router.dispatch(loner, json.dumps({"type": "candidate", "candidate": None}))

    assert loner.outbox == []


def test_frames_after_peer_leaves_are_dropped() -> None:
    router, alice, bob = _paired_room()
    router.registry.leave(alice)

    assert "ABC123" in router.registry
    router.dispatch(bob, json.dumps({"type": "offer", "offer": {}}))

    router.registry.leave(bob)
    assert "ABC123" not in router.registry
    router.dispatch(bob, json.dumps({"type": "candidate", "candidate": {}}))

    assert alice.outbox == []
    assert bob.outbox == []


def test_malformed_and_unknown_frames_are_dropped() -> None:
    router, alice, bob = _paired_room()

    for raw in ("not json", "[1, 2]", '"offer"', '{"room": "x"}', '{"type": "ping"}', '{"type": 5}'):
        router.dispatch(alice, raw)

    assert alice.outbox == []
    assert bob.outbox == []
    assert alice.room_id == "ABC123"


def test_client_cannot_forge_server_frames() -> None:
    router, alice, bob = _paired_room()

    router.dispatch(alice, json.dumps({"type": "ready", "role": "caller"}))
    router.dispatch(bob, json.dumps({"type": "ready", "role": "caller"}))
    router.dispatch(alice, json.dumps({"type": "error", "code": "room-full"}))

    assert alice.outbox == []
    assert bob.outbox == []
    assert (alice.role, bob.role) == (Role.CALLER, Role.CALLEE)

    router.dispatch(alice, json.dumps({"type": "offer", "offer": {"type": "offer", "sdp": "v=0"}}))
    assert len(bob.outbox) == 1


def test_join_to_full_room_answers_with_error() -> None:
    router, alice, bob = _paired_room()
    carol = FakeParticipant("carol")

    _join(router, carol, "ABC123")

    assert [json.loads(text)["code"] for text in carol.outbox] == ["room-full"]
    assert json.loads(carol.outbox[0])["room"] == "ABC123"
    assert alice.outbox == []
    assert bob.outbox == []
    assert carol.room_id is None


def test_room_refilled_after_departure_sends_fresh_ready() -> None:
    router, alice, bob = _paired_room()
    carol = FakeParticipant("carol")

    router.registry.leave(bob)
    _join(router, carol, "ABC123")

    assert [json.loads(text) for text in alice.outbox] == [{"type": "ready", "role": "caller"}]
    assert [json.loads(text) for text in carol.outbox] == [{"type": "ready", "role": "callee"}]

    router.dispatch(carol, json.dumps({"type": "answer", "answer": {"type": "answer", "sdp": "v=0"}}))
    assert json.loads(alice.outbox[-1])["type"] == "answer"
    assert bob.outbox == []
