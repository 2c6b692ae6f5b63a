"""Meeting lifecycle records reconciled from room server webhooks."""
from django.db import models
from django.db.models import Q


class Meeting(models.Model):
    """A single lifetime of a conference room, from creation until it is destroyed."""

    class Status(models.TextChoices):
        ONGOING = "ongoing", "Ongoing"
        ENDED = "ended", "Ended"

    id = models.BigAutoField(primary_key=True)
    room_name = models.CharField(max_length=255)
    room_jid = models.CharField(
        max_length=255,
        help_text="Room JID; falls back to the room name when the server did not send one",
    )
    is_breakout = models.BooleanField(default=False)
    breakout_room_id = models.CharField(max_length=255, blank=True, null=True)
    is_lobby = models.BooleanField(default=False)
    lobby_room_id = models.CharField(max_length=255, blank=True, null=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ONGOING)
    started_at = models.DateTimeField()
    ended_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "meetings"
        verbose_name = "Meeting"
        verbose_name_plural = "Meetings"
        ordering = ["-started_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["room_jid", "is_breakout"],
                condition=Q(status="ongoing"),
                name="unique_ongoing_meeting_per_room",
            ),
        ]
        indexes = [
            models.Index(fields=["room_name", "is_breakout"], name="meeting_room_name_idx"),
            models.Index(fields=["started_at"], name="meeting_started_at_idx"),
        ]

    @property
    def is_ongoing(self) -> bool:
        return self.status == self.Status.ONGOING

    def __str__(self):
        return f"Meeting<{self.room_jid}:{self.status}>"


class MeetingEvent(models.Model):
    """Append-only log of every state-affecting room server delivery."""

    class EventType(models.TextChoices):
        ROOM_CREATED = "room_created", "Room created"
        ROOM_DESTROYED = "room_destroyed", "Room destroyed"
        OCCUPANT_JOINED = "occupant_joined", "Occupant joined"
        OCCUPANT_LEFT = "occupant_left", "Occupant left"
        ROLE_CHANGED = "role_changed", "Role changed"
        AFFILIATION_CHANGED = "affiliation_changed", "Affiliation changed"
        HOST_ASSIGNED = "host_assigned", "Host assigned"
        HOST_LEFT = "host_left", "Host left"

    id = models.BigAutoField(primary_key=True)
    meeting = models.ForeignKey(Meeting, on_delete=models.CASCADE, related_name="events")
    event_type = models.CharField(max_length=50, choices=EventType.choices)
    timestamp = models.DateTimeField(
        help_text="Occurrence time from the payload, or ingestion time when the payload has none",
    )
    metadata = models.JSONField(default=dict)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "meeting_events"
        verbose_name = "Meeting event"
        verbose_name_plural = "Meeting events"
        ordering = ["timestamp", "id"]
        indexes = [
            models.Index(fields=["meeting", "timestamp"], name="meeting_event_timeline_idx"),
            models.Index(fields=["event_type"], name="meeting_event_type_idx"),
        ]

    def __str__(self):
        return f"MeetingEvent<{self.meeting_id}:{self.event_type}>"
