"""Celery tasks for Paddle webhook reconciliation."""
from __future__ import annotations

import logging
from typing import Any, Dict

from celery import shared_task

from billing.services.paddle import PaddlePayloadError, SUPPORTED_EVENT_TYPES, extract_webhook_data
from billing.services.reconciliation import SOURCE, BillingReconciler
from core.observability.metrics import WEBHOOK_RECONCILIATION_FAILURE_COUNT

logger = logging.getLogger(__name__)


@shared_task(queue="billing", ignore_result=True)
def process_paddle_event_async(event: Dict[str, Any]) -> Dict[str, Any]:
    """Reconcile one verified Paddle event.

    The delivery was acknowledged before this runs; failures are logged and
    swallowed. Paddle redelivers on its own schedule, and every step is safe
    to repeat.
    """

    event_type = event.get("event_type") if isinstance(event, dict) else None
    if event_type not in SUPPORTED_EVENT_TYPES:
        logger.info("Ignoring unsupported Paddle event type %s", event_type)
        return {"status": "ignored", "event_type": event_type}

    try:
        data = extract_webhook_data(event)
    except PaddlePayloadError as exc:
        logger.warning("Discarding malformed Paddle event: %s", exc)
        return {"status": "rejected", "detail": str(exc)}

    try:
        result = BillingReconciler(logger=logger).apply(data)
    except Exception as exc:
        logger.exception("Error processing Paddle event %s (%s)", data.event_id, data.event_type)
        WEBHOOK_RECONCILIATION_FAILURE_COUNT.labels(source=SOURCE, step="event").inc()
        return {"status": "error", "detail": str(exc)}

    logger.info("Successfully processed %s event %s: %s", data.event_type, data.event_id, result.status)
    return result.as_dict()
