"""Paddle Billing webhook endpoint."""
from __future__ import annotations

import logging

from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.services.paddle import (
    SIGNATURE_HEADER,
    SUPPORTED_EVENT_TYPES,
    PaddlePayloadError,
    decode_event,
    verify_signature,
)
from billing.services.reconciliation import SOURCE
from billing.tasks import process_paddle_event_async
from core.observability.logging import log_webhook_event
from core.observability.metrics import WEBHOOK_DELIVERY_COUNT

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name="dispatch")
class PaddleWebhookView(APIView):
    """Verify Paddle notifications against the raw body and enqueue them."""

    authentication_classes = []
    permission_classes = []
    http_method_names = ["post"]

    def post(self, request, *args, **kwargs):  # noqa: D401 - DRF signature
        try:
            return self._handle(request)
        except Exception:
            logger.exception("Error handling Paddle webhook.")
            WEBHOOK_DELIVERY_COUNT.labels(source=SOURCE, outcome="error").inc()
            return Response({"error": "Internal server error"}, status=500)

    def _handle(self, request):
        signature = request.headers.get(SIGNATURE_HEADER)
        if not signature:
            logger.warning("Paddle webhook received without a signature header.")
            WEBHOOK_DELIVERY_COUNT.labels(source=SOURCE, outcome="unauthorized").inc()
            return Response({"error": "Missing signature"}, status=401)

        # Verified against the exact bytes; the body is not parsed before this.
        raw_body = request.body
        if not verify_signature(raw_body, signature):
            logger.warning("Paddle webhook signature verification failed.")
            WEBHOOK_DELIVERY_COUNT.labels(source=SOURCE, outcome="unauthorized").inc()
            return Response({"error": "Invalid signature"}, status=401)

        try:
            event = decode_event(raw_body)
        except PaddlePayloadError as exc:
            logger.warning("Rejected Paddle webhook: %s", exc)
            WEBHOOK_DELIVERY_COUNT.labels(source=SOURCE, outcome="invalid").inc()
            return Response({"error": str(exc)}, status=400)

        event_type = event.get("event_type")
        event_id = event.get("event_id")
        if event_type not in SUPPORTED_EVENT_TYPES:
            logger.info("Unhandled Paddle event type: %s, ignoring", event_type)
            WEBHOOK_DELIVERY_COUNT.labels(source=SOURCE, outcome="ignored").inc()
            return Response({"success": True}, status=200)

        process_paddle_event_async.delay(event)
        log_webhook_event(
            message="Queued Paddle event",
            source=SOURCE,
            event_type=event_type,
            event_id=event_id,
            target=logger,
        )
        WEBHOOK_DELIVERY_COUNT.labels(source=SOURCE, outcome="queued").inc()
        return Response({"success": True}, status=200)
