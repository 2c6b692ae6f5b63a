"""Find-or-create resolution of meetings from partial room identities."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Tuple

from django.db import IntegrityError, transaction
from django.db.models import Q, QuerySet

from meetings.models import Meeting
from meetings.services.normalizer import RoomIdentity

logger = logging.getLogger(__name__)


def _identity_queryset(identity: RoomIdentity) -> QuerySet:
    if identity.room_jid:
        return Meeting.objects.filter(room_jid=identity.room_jid)
    return Meeting.objects.filter(room_name=identity.room_name, is_breakout=identity.is_breakout)


def _default_room_name(identity: RoomIdentity) -> str:
    if identity.room_name:
        return identity.room_name
    # room@conference.example.com -> room
    return identity.room_jid.split("@", 1)[0] or identity.room_jid


def find_ongoing_meeting(identity: RoomIdentity) -> Optional[Meeting]:
    meeting = (
        _identity_queryset(identity)
        .filter(status=Meeting.Status.ONGOING)
        .order_by("-started_at", "-id")
        .first()
    )
    if meeting is not None or not (identity.room_jid and identity.room_name):
        return meeting

    # A meeting first seen without a JID stored the room name in room_jid; adopt it.
    placeholder = (
        Meeting.objects.filter(
            status=Meeting.Status.ONGOING,
            room_name=identity.room_name,
            room_jid=identity.room_name,
            is_breakout=identity.is_breakout,
        )
        .order_by("-started_at", "-id")
        .first()
    )
    if placeholder is None:
        return None

    try:
        with transaction.atomic():
            placeholder.room_jid = identity.room_jid
            placeholder.save(update_fields=["room_jid", "updated_at"])
    except IntegrityError:
        # Another delivery already created the ongoing meeting under the real JID.
        placeholder.refresh_from_db()
        return _identity_queryset(identity).filter(status=Meeting.Status.ONGOING).first()
    logger.info("Meeting %s adopted room JID %s.", placeholder.pk, identity.room_jid)
    return placeholder


def find_ended_meeting_covering(identity: RoomIdentity, occurred_at: datetime) -> Optional[Meeting]:
    """Return the ended meeting whose lifetime contains ``occurred_at`` (late deliveries)."""
    return (
        _identity_queryset(identity)
        .filter(
            Q(status=Meeting.Status.ENDED),
            Q(started_at__lte=occurred_at),
            Q(ended_at__gte=occurred_at),
        )
        .order_by("-started_at", "-id")
        .first()
    )


def create_ongoing_meeting(identity: RoomIdentity, *, started_at: datetime) -> Tuple[Meeting, bool]:
    """Insert a new ongoing meeting, deferring to a concurrently created one when it exists."""
    try:
        with transaction.atomic():
            meeting = Meeting.objects.create(
                room_name=_default_room_name(identity),
                room_jid=identity.room_jid or identity.room_name,
                is_breakout=identity.is_breakout,
                breakout_room_id=identity.breakout_room_id,
                is_lobby=identity.is_lobby,
                lobby_room_id=identity.lobby_room_id,
                status=Meeting.Status.ONGOING,
                started_at=started_at,
            )
    except IntegrityError:
        existing = find_ongoing_meeting(identity)
        if existing is None:
            raise
        logger.info("Concurrent meeting creation for %s; reusing meeting %s.", identity.label, existing.pk)
        return existing, False

    logger.info("Created meeting %s for room %s.", meeting.pk, identity.label)
    return meeting, True


def resolve_meeting(
    identity: RoomIdentity,
    *,
    received_at: datetime,
    occurred_at: Optional[datetime] = None,
    starts_session: bool = False,
) -> Tuple[Meeting, bool]:
    """Find or create the meeting an event belongs to.

    Preference order: the ongoing meeting for the identity, then an ended meeting
    whose lifetime covers ``occurred_at``, then the latest meeting for the
    identity, then a new ongoing meeting. Only events that open a session
    (``starts_session``) skip the latest-meeting fallback, so stragglers that
    arrive after the room was destroyed never reopen it.
    Returns ``(meeting, created)``.
    """

    if not identity.is_present:
        raise ValueError("room_name or room_jid required to resolve a meeting")

    meeting = find_ongoing_meeting(identity)
    if meeting is not None:
        return meeting, False

    if occurred_at is not None:
        meeting = find_ended_meeting_covering(identity, occurred_at)
        if meeting is not None:
            logger.info(
                "Attributing late event at %s to ended meeting %s.",
                occurred_at.isoformat(),
                meeting.pk,
            )
            return meeting, False

    if not starts_session:
        meeting = _identity_queryset(identity).order_by("-started_at", "-id").first()
        if meeting is not None:
            logger.info("Attributing event for %s to latest meeting %s.", identity.label, meeting.pk)
            return meeting, False

    return create_ongoing_meeting(identity, started_at=occurred_at or received_at)


def resolve_meeting_for_destroy(
    identity: RoomIdentity,
    *,
    received_at: datetime,
    occurred_at: Optional[datetime] = None,
) -> Tuple[Meeting, bool]:
    """Resolve the meeting a room-destroyed event ends.

    Falls back to the most recent meeting of any status, and finally creates one,
    so a destroy that arrives after upstream cleanup still leaves a record.
    """

    if not identity.is_present:
        raise ValueError("room_name or room_jid required to resolve a meeting")

    meeting = find_ongoing_meeting(identity)
    if meeting is not None:
        return meeting, False

    meeting = _identity_queryset(identity).order_by("-started_at", "-id").first()
    if meeting is not None:
        return meeting, False

    return create_ongoing_meeting(identity, started_at=occurred_at or received_at)
