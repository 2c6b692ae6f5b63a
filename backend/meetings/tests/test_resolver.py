from datetime import datetime, timedelta, timezone

import pytest

from meetings.models import Meeting, MeetingEvent
from meetings.services.normalizer import RoomIdentity, normalize_room_event
from meetings.services.reconciliation import MeetingReconciler
from meetings.services.resolver import resolve_meeting, resolve_meeting_for_destroy

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
JID = "standup@conference.meet.example.com"


def _created(**extra):
    payload = {"event_name": "muc-room-created", "room_name": "standup", "room_jid": JID}
    payload.update(extra)
    return normalize_room_event(payload)


@pytest.mark.django_db
def test_replayed_room_created_keeps_single_ongoing_meeting():
    reconciler = MeetingReconciler()

    for _ in range(3):
        reconciler.apply(_created(), received_at=NOW)

    assert Meeting.objects.count() == 1
    meeting = Meeting.objects.get()
    assert meeting.status == Meeting.Status.ONGOING
    assert meeting.events.filter(event_type=MeetingEvent.EventType.ROOM_CREATED).count() == 3


@pytest.mark.django_db
def test_resolve_meeting_without_jid_falls_back_to_name_and_breakout_flag():
    identity = RoomIdentity(room_name="standup")
    meeting, created = resolve_meeting(identity, received_at=NOW)
    again, created_again = resolve_meeting(identity, received_at=NOW)

    assert created is True
    assert created_again is False
    assert again.pk == meeting.pk
    assert meeting.room_jid == "standup"

    breakout, breakout_created = resolve_meeting(RoomIdentity(room_name="standup", is_breakout=True), received_at=NOW)
    assert breakout_created is True
    assert breakout.pk != meeting.pk


@pytest.mark.django_db
def test_placeholder_meeting_adopts_jid_when_it_arrives():
    placeholder, _ = resolve_meeting(RoomIdentity(room_name="standup"), received_at=NOW)

    meeting, created = resolve_meeting(RoomIdentity(room_name="standup", room_jid=JID), received_at=NOW)

    assert created is False
    assert meeting.pk == placeholder.pk
    placeholder.refresh_from_db()
    assert placeholder.room_jid == JID


@pytest.mark.django_db
def test_resolve_meeting_derives_room_name_from_jid():
    meeting, _ = resolve_meeting(RoomIdentity(room_jid=JID), received_at=NOW)

    assert meeting.room_name == "standup"


@pytest.mark.django_db
def test_late_event_is_attached_to_ended_meeting_covering_it():
    reconciler = MeetingReconciler()
    start = int(NOW.timestamp())
    reconciler.apply(_created(created_at=start), received_at=NOW)
    reconciler.apply(
        normalize_room_event(
            {"event_name": "muc-room-destroyed", "room_name": "standup", "room_jid": JID, "destroyed_at": start + 600}
        ),
        received_at=NOW + timedelta(minutes=10),
    )

    late_join = normalize_room_event(
        {
            "event_name": "muc-occupant-joined",
            "room_name": "standup",
            "room_jid": JID,
            "occupant": {"joined_at": start + 60},
        }
    )
    reconciler.apply(late_join, received_at=NOW + timedelta(minutes=15))

    assert Meeting.objects.count() == 1
    meeting = Meeting.objects.get()
    assert meeting.status == Meeting.Status.ENDED
    assert meeting.events.filter(event_type=MeetingEvent.EventType.OCCUPANT_JOINED).count() == 1


@pytest.mark.django_db
def test_repeated_destroy_keeps_original_end_time():
    reconciler = MeetingReconciler()
    start = int(NOW.timestamp())
    reconciler.apply(_created(created_at=start), received_at=NOW)

    for offset in (600, 900):
        reconciler.apply(
            normalize_room_event(
                {
                    "event_name": "muc-room-destroyed",
                    "room_name": "standup",
                    "room_jid": JID,
                    "destroyed_at": start + offset,
                }
            ),
            received_at=NOW + timedelta(seconds=offset),
        )

    meeting = Meeting.objects.get()
    assert meeting.status == Meeting.Status.ENDED
    assert meeting.ended_at == datetime.fromtimestamp(start + 600, tz=timezone.utc)
    assert meeting.events.filter(event_type=MeetingEvent.EventType.ROOM_DESTROYED).count() == 2


@pytest.mark.django_db
def test_destroy_for_unknown_room_still_records_a_meeting():
    meeting, created = resolve_meeting_for_destroy(RoomIdentity(room_jid=JID), received_at=NOW)

    assert created is True
    assert meeting.started_at == NOW


@pytest.mark.django_db
def test_new_meeting_after_end_starts_fresh():
    reconciler = MeetingReconciler()
    reconciler.apply(_created(), received_at=NOW)
    reconciler.apply(
        normalize_room_event({"event_name": "muc-room-destroyed", "room_name": "standup", "room_jid": JID}),
        received_at=NOW + timedelta(minutes=5),
    )
    reconciler.apply(_created(), received_at=NOW + timedelta(hours=1))

    assert Meeting.objects.count() == 2
    assert Meeting.objects.filter(status=Meeting.Status.ONGOING).count() == 1


@pytest.mark.django_db
def test_untimed_events_after_destroy_attach_to_ended_meeting():
    reconciler = MeetingReconciler()
    reconciler.apply(_created(), received_at=NOW)
    reconciler.apply(
        normalize_room_event({"event_name": "muc-room-destroyed", "room_name": "standup", "room_jid": JID}),
        received_at=NOW + timedelta(minutes=5),
    )

    reconciler.apply(
        normalize_room_event({"type": "HOST_LEFT", "room": "standup", "room_jid": JID, "email": "host@example.com"}),
        received_at=NOW + timedelta(minutes=5, seconds=1),
    )
    reconciler.apply(
        normalize_room_event({"event_name": "muc-occupant-role-changed", "room_name": "standup", "room_jid": JID}),
        received_at=NOW + timedelta(minutes=5, seconds=2),
    )

    assert Meeting.objects.count() == 1
    assert Meeting.objects.filter(status=Meeting.Status.ONGOING).count() == 0
    meeting = Meeting.objects.get()
    assert meeting.events.filter(event_type=MeetingEvent.EventType.HOST_LEFT).count() == 1
    assert meeting.events.filter(event_type=MeetingEvent.EventType.ROLE_CHANGED).count() == 1


@pytest.mark.django_db
def test_session_opening_event_skips_latest_meeting_fallback():
    identity = RoomIdentity(room_name="standup", room_jid=JID)
    ended, _ = resolve_meeting(identity, received_at=NOW)
    ended.status = Meeting.Status.ENDED
    ended.ended_at = NOW + timedelta(minutes=5)
    ended.save()

    straggler, straggler_created = resolve_meeting(identity, received_at=NOW + timedelta(minutes=6))
    fresh, fresh_created = resolve_meeting(
        identity, received_at=NOW + timedelta(hours=1), starts_session=True
    )

    assert straggler_created is False
    assert straggler.pk == ended.pk
    assert fresh_created is True
    assert fresh.status == Meeting.Status.ONGOING
