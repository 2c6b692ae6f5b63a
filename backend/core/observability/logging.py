"""Structured logging helper for webhook ingress and reconciliation."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("core.webhooks")


def log_webhook_event(*, message: str, source: str, event_type: Optional[str] = None,
                      event_id: Optional[str] = None, level: int = logging.INFO,
                      extra: Optional[Dict[str, Any]] = None,
                      target: Optional[logging.Logger] = None) -> None:
    payload: Dict[str, Any] = {"message": message, "source": source}
    if event_type:
        payload["event_type"] = event_type
    if event_id:
        payload["event_id"] = event_id
    if extra:
        payload.update(extra)
    (target or logger).log(level, payload)
