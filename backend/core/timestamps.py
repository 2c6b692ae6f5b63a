"""Timestamp coercion shared by the webhook normalizers."""
from __future__ import annotations

from datetime import datetime, timezone as dt_timezone
from typing import Any, Optional

from django.utils.dateparse import parse_datetime


def coerce_epoch(value: Any) -> Optional[datetime]:
    """Convert an epoch-seconds value (int, float or numeric string) to an aware UTC datetime."""
    if value in (None, "") or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(float(value), tz=dt_timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def parse_iso_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp such as ``2024-04-12T10:18:49.738972Z``.

    Naive values are treated as UTC. Returns ``None`` for anything unparsable.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = parse_datetime(value.strip())
    except ValueError:
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt_timezone.utc)
    return parsed
