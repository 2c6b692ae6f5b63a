"""Normalize room server (Prosody MUC) webhook payloads into typed events.

Two field-naming conventions are in circulation: the event-sync module posts
``event_name`` / ``room_name`` while the host-tracking hooks post ``type`` /
``room``. Event names also come both as ``muc-occupant-joined`` and as
``occupant_joined``. All of that shape-guessing is confined to this module.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from core.timestamps import coerce_epoch


class RoomEventValidationError(ValueError):
    """Raised when a room server payload is missing required identifying fields."""


class RoomEventType(str, Enum):
    ROOM_CREATED = "room_created"
    ROOM_DESTROYED = "room_destroyed"
    OCCUPANT_JOINED = "occupant_joined"
    OCCUPANT_LEFT = "occupant_left"
    ROLE_CHANGED = "role_changed"
    AFFILIATION_CHANGED = "affiliation_changed"
    HOST_ASSIGNED = "host_assigned"
    HOST_LEFT = "host_left"
    IGNORED = "ignored"


ROOM_IDENTITY_EVENTS = frozenset(
    {
        RoomEventType.ROOM_CREATED,
        RoomEventType.ROOM_DESTROYED,
        RoomEventType.OCCUPANT_JOINED,
        RoomEventType.OCCUPANT_LEFT,
        RoomEventType.ROLE_CHANGED,
        RoomEventType.AFFILIATION_CHANGED,
        RoomEventType.HOST_ASSIGNED,
        RoomEventType.HOST_LEFT,
    }
)

HOST_EVENTS = frozenset({RoomEventType.HOST_ASSIGNED, RoomEventType.HOST_LEFT})

_KNOWN_TYPES = {member.value: member for member in RoomEventType if member is not RoomEventType.IGNORED}

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class RoomIdentity:
    room_name: Optional[str] = None
    room_jid: Optional[str] = None
    is_breakout: bool = False
    breakout_room_id: Optional[str] = None
    is_lobby: bool = False
    lobby_room_id: Optional[str] = None

    @property
    def is_present(self) -> bool:
        return bool(self.room_name or self.room_jid)

    @property
    def label(self) -> str:
        return self.room_jid or self.room_name or "unknown"


@dataclass(frozen=True)
class RoomEvent:
    event_type: RoomEventType
    event_name: str
    identity: RoomIdentity
    email: Optional[str] = None
    occurred_at: Optional[datetime] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_actionable(self) -> bool:
        return self.event_type is not RoomEventType.IGNORED

    @property
    def is_host_event(self) -> bool:
        return self.event_type in HOST_EVENTS


def canonical_event_type(event_name: str) -> RoomEventType:
    key = event_name.strip().lower().replace("-", "_")
    if key.startswith("muc_"):
        key = key[len("muc_"):]
    return _KNOWN_TYPES.get(key, RoomEventType.IGNORED)


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def _extract_identity(payload: Mapping[str, Any]) -> RoomIdentity:
    return RoomIdentity(
        room_name=_clean_str(payload.get("room_name") or payload.get("room")),
        room_jid=_clean_str(payload.get("room_jid")),
        is_breakout=_coerce_bool(payload.get("is_breakout")),
        breakout_room_id=_clean_str(payload.get("breakout_room_id")),
        is_lobby=_coerce_bool(payload.get("is_lobby")),
        lobby_room_id=_clean_str(payload.get("lobby_room_id")),
    )


def _extract_occurred_at(event_type: RoomEventType, payload: Mapping[str, Any]) -> Optional[datetime]:
    occupant = payload.get("occupant")
    occupant = occupant if isinstance(occupant, Mapping) else {}

    if event_type is RoomEventType.ROOM_CREATED:
        return coerce_epoch(payload.get("created_at"))
    if event_type is RoomEventType.ROOM_DESTROYED:
        return coerce_epoch(payload.get("destroyed_at"))
    if event_type is RoomEventType.OCCUPANT_JOINED:
        return coerce_epoch(occupant.get("joined_at"))
    if event_type is RoomEventType.OCCUPANT_LEFT:
        return coerce_epoch(occupant.get("left_at"))
    return None


def normalize_room_event(payload: Any) -> RoomEvent:
    """Validate a decoded room server payload and map it onto a :class:`RoomEvent`.

    Unknown event names are not an error: they come back classified as
    ``RoomEventType.IGNORED`` so the ingress can still acknowledge them.
    """

    if not isinstance(payload, Mapping):
        raise RoomEventValidationError("Request body must be a JSON object")

    raw_name = payload.get("event_name")
    if raw_name is None:
        raw_name = payload.get("type")
    event_name = _clean_str(raw_name) if isinstance(raw_name, str) else None
    if not event_name:
        raise RoomEventValidationError("Missing event_name/type")

    event_type = canonical_event_type(event_name)
    identity = _extract_identity(payload)
    email = _clean_str(payload.get("email"))

    if event_type in ROOM_IDENTITY_EVENTS and not identity.is_present:
        raise RoomEventValidationError(f"Event {event_name} requires room_name or room_jid")

    if event_type in HOST_EVENTS and not email:
        raise RoomEventValidationError(f"Event {event_name} requires email")

    return RoomEvent(
        event_type=event_type,
        event_name=event_name,
        identity=identity,
        email=email,
        occurred_at=_extract_occurred_at(event_type, payload),
        payload=dict(payload),
    )
