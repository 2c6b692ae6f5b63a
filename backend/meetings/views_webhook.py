"""Room server (Prosody) webhook endpoint."""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from django.http import HttpResponse
from django.utils import timezone
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework.response import Response
from rest_framework.views import APIView

from core.observability.logging import log_webhook_event
from core.observability.metrics import WEBHOOK_DELIVERY_COUNT
from meetings.services.auth import verify_bearer_token
from meetings.services.normalizer import RoomEventValidationError, normalize_room_event
from meetings.services.reconciliation import SOURCE
from meetings.tasks import process_room_event_async

logger = logging.getLogger(__name__)

_INVALID = object()


@method_decorator(csrf_exempt, name="dispatch")
class RoomServerWebhookView(APIView):
    """Authenticate room server events, validate them and hand them to a worker."""

    authentication_classes = []
    permission_classes = []
    http_method_names = ["post"]

    def post(self, request, *args, **kwargs):  # noqa: D401 - DRF signature
        try:
            return self._handle(request)
        except Exception:
            logger.exception("Error handling room server webhook.")
            WEBHOOK_DELIVERY_COUNT.labels(source=SOURCE, outcome="error").inc()
            return Response({"error": "Internal server error"}, status=500)

    def _handle(self, request):
        if not verify_bearer_token(request.headers.get("Authorization")):
            logger.warning("Invalid or missing room server webhook token.")
            WEBHOOK_DELIVERY_COUNT.labels(source=SOURCE, outcome="unauthorized").inc()
            return Response({"error": "Unauthorized"}, status=401)

        payload = self._decode_payload(request.body)
        if payload is _INVALID:
            logger.warning("Invalid JSON in room server webhook body.")
            WEBHOOK_DELIVERY_COUNT.labels(source=SOURCE, outcome="invalid").inc()
            return Response({"error": "Invalid JSON in request body"}, status=400)

        try:
            event = normalize_room_event(payload)
        except RoomEventValidationError as exc:
            logger.warning("Rejected room server webhook: %s", exc)
            WEBHOOK_DELIVERY_COUNT.labels(source=SOURCE, outcome="invalid").inc()
            return Response({"error": str(exc)}, status=400)

        if not event.is_actionable:
            logger.info("Unhandled room event type: %s, ignoring", event.event_name)
            WEBHOOK_DELIVERY_COUNT.labels(source=SOURCE, outcome="ignored").inc()
            return HttpResponse(status=200)

        process_room_event_async.delay(event.payload, timezone.now().isoformat())
        log_webhook_event(
            message="Queued room server event",
            source=SOURCE,
            event_type=event.event_name,
            extra={"room": event.identity.label},
            target=logger,
        )
        WEBHOOK_DELIVERY_COUNT.labels(source=SOURCE, outcome="queued").inc()
        return HttpResponse(status=200)

    @staticmethod
    def _decode_payload(body: bytes) -> Optional[Any]:
        if not body:
            return _INVALID
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return _INVALID
