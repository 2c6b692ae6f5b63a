from datetime import datetime, timezone

import pytest

from meetings.services.normalizer import (
    RoomEventType,
    RoomEventValidationError,
    canonical_event_type,
    normalize_room_event,
)


@pytest.mark.parametrize(
    "name,expected",
    [
        ("muc-room-created", RoomEventType.ROOM_CREATED),
        ("muc-room-destroyed", RoomEventType.ROOM_DESTROYED),
        ("muc-occupant-joined", RoomEventType.OCCUPANT_JOINED),
        ("occupant_left", RoomEventType.OCCUPANT_LEFT),
        ("muc-role-changed", RoomEventType.ROLE_CHANGED),
        ("muc-affiliation-changed", RoomEventType.AFFILIATION_CHANGED),
        ("HOST_ASSIGNED", RoomEventType.HOST_ASSIGNED),
        ("HOST_LEFT", RoomEventType.HOST_LEFT),
        ("muc-occupant-pre-join", RoomEventType.IGNORED),
        ("something-else", RoomEventType.IGNORED),
    ],
)
def test_canonical_event_type_accepts_both_naming_styles(name, expected):
    assert canonical_event_type(name) is expected


def test_normalize_room_created_reads_epoch_timestamp():
    event = normalize_room_event(
        {
            "event_name": "muc-room-created",
            "room_name": "standup",
            "room_jid": "standup@conference.meet.example.com",
            "created_at": 1700000000,
            "is_breakout": False,
        }
    )

    assert event.event_type is RoomEventType.ROOM_CREATED
    assert event.identity.room_name == "standup"
    assert event.identity.room_jid == "standup@conference.meet.example.com"
    assert event.occurred_at == datetime.fromtimestamp(1700000000, tz=timezone.utc)
    assert event.is_actionable


def test_normalize_occupant_joined_uses_occupant_joined_at():
    event = normalize_room_event(
        {
            "event_name": "muc-occupant-joined",
            "room_name": "standup",
            "occupant": {"name": "bob", "joined_at": 1700000100},
        }
    )

    assert event.occurred_at == datetime.fromtimestamp(1700000100, tz=timezone.utc)


def test_normalize_host_event_accepts_type_and_room_fields():
    event = normalize_room_event({"type": "HOST_ASSIGNED", "room": "standup", "email": "host@example.com"})

    assert event.event_type is RoomEventType.HOST_ASSIGNED
    assert event.identity.room_name == "standup"
    assert event.email == "host@example.com"
    assert event.is_host_event
    assert event.occurred_at is None


def test_normalize_unknown_event_is_ignored_not_rejected():
    event = normalize_room_event({"event_name": "muc-occupant-pre-join"})

    assert event.event_type is RoomEventType.IGNORED
    assert not event.is_actionable


def test_normalize_rejects_missing_event_name():
    with pytest.raises(RoomEventValidationError, match="Missing event_name/type"):
        normalize_room_event({"room_name": "standup"})


def test_normalize_rejects_occupant_event_without_room_identity():
    with pytest.raises(RoomEventValidationError):
        normalize_room_event({"event_name": "muc-occupant-joined", "occupant": {"joined_at": 1}})


def test_normalize_rejects_host_event_without_email():
    with pytest.raises(RoomEventValidationError):
        normalize_room_event({"type": "HOST_LEFT", "room": "standup"})


def test_normalize_rejects_non_object_body():
    with pytest.raises(RoomEventValidationError):
        normalize_room_event(["muc-room-created"])
