"""Celery tasks for room server webhook reconciliation."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from celery import shared_task
from django.utils import timezone

from core.observability.metrics import WEBHOOK_RECONCILIATION_FAILURE_COUNT
from core.timestamps import parse_iso_timestamp
from meetings.services.normalizer import RoomEventValidationError, normalize_room_event
from meetings.services.reconciliation import MeetingReconciler, SOURCE

logger = logging.getLogger(__name__)


@shared_task(queue="meetings", ignore_result=True)
def process_room_event_async(payload: Dict[str, Any], received_at: Optional[str] = None) -> Dict[str, Any]:
    """Reconcile one room server delivery.

    Runs after the delivery has been acknowledged, so every failure is logged
    and swallowed here; consistency is restored by the next delivery.
    """

    try:
        event = normalize_room_event(payload)
    except RoomEventValidationError as exc:
        logger.warning("Discarding invalid room event: %s", exc)
        return {"status": "rejected", "detail": str(exc)}

    received = parse_iso_timestamp(received_at) or timezone.now()

    try:
        result = MeetingReconciler(logger=logger).apply(event, received_at=received)
    except Exception as exc:
        logger.exception(
            "Error processing room event %s for room %s",
            event.event_name,
            event.identity.label,
        )
        WEBHOOK_RECONCILIATION_FAILURE_COUNT.labels(source=SOURCE, step=event.event_type.value).inc()
        return {"status": "error", "detail": str(exc)}

    logger.info(
        "Processed room event %s for room %s: %s",
        event.event_name,
        event.identity.label,
        result.detail or result.status,
    )
    return {"status": result.status, "detail": result.detail, "meeting_id": result.meeting_id}
