"""Apply normalized room server events to meetings, the event log and host sessions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from django.db import transaction

from core.observability.metrics import (
    WEBHOOK_RECONCILIATION_COUNT,
    WEBHOOK_RECONCILIATION_FAILURE_COUNT,
)
from meetings.models import Meeting, MeetingEvent
from meetings.services.host_sessions import HostSessionService
from meetings.services.normalizer import RoomEvent, RoomEventType
from meetings.services.resolver import resolve_meeting, resolve_meeting_for_destroy

SOURCE = "room_server"


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of applying one room server event."""

    status: str
    detail: str = ""
    meeting_id: Optional[int] = None

    PROCESSED = "processed"
    IGNORED = "ignored"
    PARTIAL = "partial"


def append_meeting_event(
    meeting: Meeting,
    event_type: str,
    *,
    metadata: dict,
    timestamp: datetime,
) -> MeetingEvent:
    return MeetingEvent.objects.create(
        meeting=meeting,
        event_type=event_type,
        timestamp=timestamp,
        metadata=metadata,
    )


class MeetingReconciler:
    """Room lifecycle state machine: none -> ongoing -> ended (terminal).

    Occupant, role and affiliation events never change the meeting status; they
    only append to the event log, creating the meeting on first sight.
    """

    def __init__(
        self,
        *,
        logger: Optional[logging.Logger] = None,
        host_sessions: Optional[HostSessionService] = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.host_sessions = host_sessions or HostSessionService(logger=self.logger)

    def apply(self, event: RoomEvent, *, received_at: datetime) -> ReconcileResult:
        handler: Optional[Callable[..., ReconcileResult]] = self._handlers().get(event.event_type)
        if handler is None:
            self.logger.info("Unhandled room event type: %s, ignoring", event.event_name)
            return ReconcileResult(status=ReconcileResult.IGNORED, detail="Unsupported event type")

        result = handler(event, received_at)
        WEBHOOK_RECONCILIATION_COUNT.labels(source=SOURCE, step=event.event_type.value, result=result.status).inc()
        return result

    def _handlers(self) -> Dict[RoomEventType, Callable[..., ReconcileResult]]:
        return {
            RoomEventType.ROOM_CREATED: self._handle_room_created,
            RoomEventType.ROOM_DESTROYED: self._handle_room_destroyed,
            RoomEventType.OCCUPANT_JOINED: self._handle_occupant_activity,
            RoomEventType.OCCUPANT_LEFT: self._handle_occupant_activity,
            RoomEventType.ROLE_CHANGED: self._handle_occupant_activity,
            RoomEventType.AFFILIATION_CHANGED: self._handle_occupant_activity,
            RoomEventType.HOST_ASSIGNED: self._handle_host_event,
            RoomEventType.HOST_LEFT: self._handle_host_event,
        }

    def _handle_room_created(self, event: RoomEvent, received_at: datetime) -> ReconcileResult:
        with transaction.atomic():
            meeting, created = resolve_meeting(
                event.identity,
                received_at=received_at,
                occurred_at=event.occurred_at,
                starts_session=True,
            )
            append_meeting_event(
                meeting,
                MeetingEvent.EventType.ROOM_CREATED,
                metadata=event.payload,
                timestamp=event.occurred_at or received_at,
            )

        detail = "Meeting created" if created else "Existing meeting reused"
        return ReconcileResult(status=ReconcileResult.PROCESSED, detail=detail, meeting_id=meeting.pk)

    def _handle_room_destroyed(self, event: RoomEvent, received_at: datetime) -> ReconcileResult:
        ended_at = event.occurred_at or received_at

        with transaction.atomic():
            meeting, _ = resolve_meeting_for_destroy(
                event.identity,
                received_at=received_at,
                occurred_at=event.occurred_at,
            )
            if meeting.is_ongoing:
                meeting.status = Meeting.Status.ENDED
                meeting.ended_at = ended_at
                meeting.save(update_fields=["status", "ended_at", "updated_at"])
                detail = "Meeting ended"
            else:
                detail = "Meeting already ended"
            append_meeting_event(
                meeting,
                MeetingEvent.EventType.ROOM_DESTROYED,
                metadata=event.payload,
                timestamp=ended_at,
            )

        return ReconcileResult(status=ReconcileResult.PROCESSED, detail=detail, meeting_id=meeting.pk)

    def _handle_occupant_activity(self, event: RoomEvent, received_at: datetime) -> ReconcileResult:
        with transaction.atomic():
            meeting, _ = resolve_meeting(
                event.identity,
                received_at=received_at,
                occurred_at=event.occurred_at,
            )
            append_meeting_event(
                meeting,
                event.event_type.value,
                metadata=event.payload,
                timestamp=event.occurred_at or received_at,
            )

        return ReconcileResult(status=ReconcileResult.PROCESSED, meeting_id=meeting.pk)

    def _handle_host_event(self, event: RoomEvent, received_at: datetime) -> ReconcileResult:
        # The user mutation and the meeting event are independent writes.
        room = event.identity.label
        failures = []

        try:
            if event.event_type is RoomEventType.HOST_ASSIGNED:
                self.host_sessions.assign(email=event.email, room=room, now=received_at)
            else:
                self.host_sessions.release(email=event.email, room=room, now=received_at)
        except Exception:
            self.logger.exception(
                "Error processing host event %s for %s in room %s",
                event.event_name,
                event.email,
                room,
            )
            WEBHOOK_RECONCILIATION_FAILURE_COUNT.labels(source=SOURCE, step="host_session").inc()
            failures.append("host_session")

        meeting_id = None
        try:
            with transaction.atomic():
                meeting, _ = resolve_meeting(
                    event.identity,
                    received_at=received_at,
                    occurred_at=received_at,
                )
                append_meeting_event(
                    meeting,
                    event.event_type.value,
                    metadata={
                        "room_name": event.identity.room_name,
                        "room_jid": event.identity.room_jid,
                        "email": event.email,
                    },
                    timestamp=received_at,
                )
            meeting_id = meeting.pk
        except Exception:
            self.logger.exception(
                "Error recording %s meeting event for room %s",
                event.event_type.value,
                room,
            )
            WEBHOOK_RECONCILIATION_FAILURE_COUNT.labels(source=SOURCE, step="host_meeting_event").inc()
            failures.append("host_meeting_event")

        if failures:
            return ReconcileResult(
                status=ReconcileResult.PARTIAL,
                detail=f"Failed steps: {', '.join(failures)}",
                meeting_id=meeting_id,
            )
        return ReconcileResult(status=ReconcileResult.PROCESSED, meeting_id=meeting_id)
