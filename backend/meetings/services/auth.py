"""Shared-secret authentication for room server webhooks."""
from __future__ import annotations

import hmac
from typing import Optional

from django.conf import settings

BEARER_PREFIX = "Bearer "


def extract_bearer_token(header: Optional[str]) -> str:
    if not header or not header.startswith(BEARER_PREFIX):
        return ""
    return header[len(BEARER_PREFIX):].strip()


def verify_bearer_token(header: Optional[str], secret: Optional[str] = None) -> bool:
    """Return ``True`` when the ``Authorization`` header carries the configured secret.

    An unconfigured secret rejects every request rather than accepting every request.
    """

    expected = secret if secret is not None else getattr(settings, "ROOM_WEBHOOK_SECRET", "")
    token = extract_bearer_token(header)
    if not expected or not token:
        return False
    return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))
