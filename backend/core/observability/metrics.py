"""Prometheus metrics helpers for webhook ingestion."""
from __future__ import annotations

from prometheus_client import Counter

WEBHOOK_DELIVERY_COUNT = Counter(
    "webhook_delivery_total",
    "Inbound webhook deliveries by source and ingress outcome",
    labelnames=("source", "outcome"),
)

WEBHOOK_RECONCILIATION_COUNT = Counter(
    "webhook_reconciliation_total",
    "Reconciliation steps applied per source, step and result",
    labelnames=("source", "step", "result"),
)

WEBHOOK_RECONCILIATION_FAILURE_COUNT = Counter(
    "webhook_reconciliation_failure_total",
    "Reconciliation steps that raised and were swallowed after acknowledgement",
    labelnames=("source", "step"),
)

DIRECTORY_STALE_UPDATE_COUNT = Counter(
    "directory_stale_update_total",
    "Directory attribute updates dropped because a newer update was already applied",
)
