"""Paddle Billing webhook verification, payload extraction and API helpers."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import requests
from django.conf import settings
from paddle_billing import Client, Environment, Options
from paddle_billing.Exceptions.ApiError import ApiError
from paddle_billing.Notifications import Secret, Verifier

from core.timestamps import parse_iso_timestamp

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Paddle-Signature"

SUPPORTED_EVENT_TYPES = frozenset(
    {
        "transaction.created",
        "subscription.created",
        "transaction.updated",
        "subscription.updated",
        "customer.created",
        "customer.updated",
        "business.created",
        "business.updated",
    }
)


class PaddleConfigurationError(RuntimeError):
    """Raised when mandatory Paddle configuration is missing."""


class PaddleServiceError(RuntimeError):
    """Raised when the Paddle API returns an operational error."""


class PaddlePayloadError(ValueError):
    """Raised when a verified webhook body is not a usable Paddle event."""


# ---------------------------------------------------------------------------
# Signature verification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _SignedRequest:
    """The request shape ``paddle_billing.Notifications.Verifier`` reads."""

    body: bytes
    headers: Mapping[str, str]

    @property
    def content(self) -> bytes:
        return self.body

    @property
    def data(self) -> bytes:
        return self.body


def verify_signature(
    raw_body: Union[bytes, str],
    signature_header: Optional[str],
    *,
    secret: Optional[str] = None,
    max_variance_seconds: Optional[int] = None,
) -> bool:
    """Check a ``Paddle-Signature`` header against the exact request bytes.

    Delegates to the Paddle SDK verifier, which rejects signatures older than
    ``max_variance_seconds``. Returns ``False`` instead of raising for any
    malformed or mismatching input.
    """

    webhook_secret = secret if secret is not None else getattr(settings, "PADDLE_WEBHOOK_SECRET", "")
    if not webhook_secret:
        logger.error("PADDLE_WEBHOOK_SECRET is not configured; rejecting webhook.")
        return False
    if not signature_header:
        return False

    if max_variance_seconds is None:
        max_variance_seconds = int(getattr(settings, "PADDLE_WEBHOOK_MAX_VARIANCE_SECONDS", 5))

    body = raw_body if isinstance(raw_body, bytes) else raw_body.encode("utf-8")
    request = _SignedRequest(body=body, headers={SIGNATURE_HEADER: signature_header})
    try:
        return bool(Verifier(maximum_variance=max_variance_seconds).verify(request, Secret(webhook_secret)))
    except Exception as exc:
        logger.warning("Paddle-Signature header %r rejected: %s", signature_header, exc)
        return False


# ---------------------------------------------------------------------------
# Payload extraction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SubscriptionItemData:
    price_id: str
    product_id: Optional[str] = None
    quantity: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SubscriptionData:
    id: str
    customer_id: Optional[str] = None
    business_id: Optional[str] = None
    status: Optional[str] = None
    collection_mode: Optional[str] = None
    currency_code: Optional[str] = None
    billing_interval: Optional[str] = None
    billing_frequency: Optional[int] = None
    next_billed_at: Optional[datetime] = None
    scheduled_change: Optional[Dict[str, Any]] = None
    items: Tuple[SubscriptionItemData, ...] = ()
    # False when the payload carried no "items" key at all.
    items_present: bool = False
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_quantity(self) -> int:
        """Seat count: the sum of item quantities, 1 when nothing is known."""
        return sum(item.quantity or 0 for item in self.items) or 1


@dataclass(frozen=True)
class CustomerData:
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BusinessData:
    id: str
    customer_id: Optional[str] = None
    name: Optional[str] = None
    tax_identifier: Optional[str] = None
    address: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionData:
    id: str
    status: Optional[str] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PaddleWebhookData:
    """Everything one delivery can tell us; each sub-record is reconciled on its own."""

    event_type: str
    event_id: Optional[str] = None
    occurred_at: Optional[str] = None
    customer: Optional[CustomerData] = None
    business: Optional[BusinessData] = None
    subscription: Optional[SubscriptionData] = None
    transaction: Optional[TransactionData] = None

    @property
    def occurred_at_datetime(self) -> Optional[datetime]:
        return parse_iso_timestamp(self.occurred_at)


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _int_or_none(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _extract_items(raw_items: Any) -> Tuple[SubscriptionItemData, ...]:
    items: List[SubscriptionItemData] = []
    if not isinstance(raw_items, list):
        return ()
    for raw in raw_items:
        if not isinstance(raw, Mapping):
            continue
        price = raw.get("price") if isinstance(raw.get("price"), Mapping) else {}
        price_id = _str_or_none(raw.get("price_id") or price.get("id"))
        if not price_id:
            logger.warning("Skipping Paddle subscription item without a price id: %s", raw)
            continue
        items.append(
            SubscriptionItemData(
                price_id=price_id,
                product_id=_str_or_none(raw.get("product_id") or price.get("product_id")),
                quantity=_int_or_none(raw.get("quantity")),
                raw=dict(raw),
            )
        )
    return tuple(items)


def _extract_subscription(data: Mapping[str, Any]) -> Optional[SubscriptionData]:
    subscription_id = _str_or_none(data.get("id"))
    if not subscription_id:
        return None
    billing_cycle = data.get("billing_cycle") if isinstance(data.get("billing_cycle"), Mapping) else {}
    scheduled_change = data.get("scheduled_change")
    return SubscriptionData(
        id=subscription_id,
        customer_id=_str_or_none(data.get("customer_id")),
        business_id=_str_or_none(data.get("business_id")),
        status=_str_or_none(data.get("status")),
        collection_mode=_str_or_none(data.get("collection_mode")),
        currency_code=_str_or_none(data.get("currency_code")),
        billing_interval=_str_or_none(billing_cycle.get("interval")),
        billing_frequency=_int_or_none(billing_cycle.get("frequency")),
        next_billed_at=parse_iso_timestamp(data.get("next_billed_at")),
        scheduled_change=dict(scheduled_change) if isinstance(scheduled_change, Mapping) else None,
        items=_extract_items(data.get("items")),
        items_present="items" in data,
        raw=dict(data),
    )


def _extract_customer(data: Mapping[str, Any]) -> Optional[CustomerData]:
    customer_id = _str_or_none(data.get("id"))
    if not customer_id:
        return None
    return CustomerData(
        id=customer_id,
        email=_str_or_none(data.get("email")),
        name=_str_or_none(data.get("name")),
        raw=dict(data),
    )


def _extract_business(data: Mapping[str, Any]) -> Optional[BusinessData]:
    business_id = _str_or_none(data.get("id"))
    if not business_id:
        return None
    address = data.get("address") if isinstance(data.get("address"), Mapping) else {}
    return BusinessData(
        id=business_id,
        customer_id=_str_or_none(data.get("customer_id")),
        name=_str_or_none(data.get("name")),
        tax_identifier=_str_or_none(data.get("tax_identifier")),
        address=dict(address),
        raw=dict(data),
    )


def _extract_transaction(data: Mapping[str, Any]) -> Optional[TransactionData]:
    transaction_id = _str_or_none(data.get("id"))
    if not transaction_id:
        return None
    return TransactionData(
        id=transaction_id,
        status=_str_or_none(data.get("status")),
        customer_id=_str_or_none(data.get("customer_id")),
        subscription_id=_str_or_none(data.get("subscription_id")),
        raw=dict(data),
    )


def extract_webhook_data(event: Mapping[str, Any]) -> PaddleWebhookData:
    """Map a Paddle notification envelope onto :class:`PaddleWebhookData`.

    The primary sub-record follows the ``event_type`` prefix. Customer and
    business objects embedded in other entities (``data.customer``,
    ``data.business``) are picked up as well.
    """

    if not isinstance(event, Mapping):
        raise PaddlePayloadError("Paddle event must be a JSON object.")

    event_type = _str_or_none(event.get("event_type"))
    if not event_type:
        raise PaddlePayloadError("Paddle event is missing event_type.")

    data = event.get("data")
    data = data if isinstance(data, Mapping) else {}
    entity = event_type.split(".", 1)[0]

    customer = business = subscription = transaction = None
    if entity == "subscription":
        subscription = _extract_subscription(data)
    elif entity == "transaction":
        transaction = _extract_transaction(data)
    elif entity == "customer":
        customer = _extract_customer(data)
    elif entity == "business":
        business = _extract_business(data)

    embedded_customer = data.get("customer")
    if customer is None and isinstance(embedded_customer, Mapping):
        customer = _extract_customer(embedded_customer)
    embedded_business = data.get("business")
    if business is None and isinstance(embedded_business, Mapping):
        business = _extract_business(
            {"customer_id": data.get("customer_id"), **dict(embedded_business)}
        )

    return PaddleWebhookData(
        event_type=event_type,
        event_id=_str_or_none(event.get("event_id") or event.get("notification_id")),
        occurred_at=_str_or_none(event.get("occurred_at")),
        customer=customer,
        business=business,
        subscription=subscription,
        transaction=transaction,
    )


def decode_event(raw_body: bytes) -> Dict[str, Any]:
    """Decode a verified webhook body into the event envelope."""

    try:
        event = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise PaddlePayloadError("Malformed Paddle webhook payload.") from exc
    if not isinstance(event, dict) or not event.get("event_type"):
        raise PaddlePayloadError("Paddle webhook payload is missing event_type.")
    return event


# ---------------------------------------------------------------------------
# REST API
# ---------------------------------------------------------------------------

_ENVIRONMENTS = {
    "production": Environment.PRODUCTION,
    "sandbox": Environment.SANDBOX,
}


def _is_not_found(exc: ApiError) -> bool:
    response = getattr(exc, "response", None)
    if getattr(response, "status_code", None) == 404:
        return True
    return getattr(exc, "error_code", None) == "entity_not_found"


class PaddleClient:
    """Thin wrapper over the Paddle SDK client for the lookups reconciliation needs."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        environment: Optional[str] = None,
        client: Optional[Client] = None,
    ):
        self.api_key = api_key if api_key is not None else getattr(settings, "PADDLE_API_KEY", "")
        self.environment = (environment or getattr(settings, "PADDLE_ENVIRONMENT", "production")).lower()
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            if not self.api_key:
                raise PaddleConfigurationError("PADDLE_API_KEY is not configured.")
            if self.environment not in _ENVIRONMENTS:
                raise PaddleConfigurationError(f"Unknown PADDLE_ENVIRONMENT {self.environment!r}.")
            self._client = Client(self.api_key, options=Options(_ENVIRONMENTS[self.environment]))
        return self._client

    def fetch_customer(self, customer_id: str) -> Optional[CustomerData]:
        """Fetch a customer by id; ``None`` when Paddle does not know it."""

        if not customer_id:
            raise ValueError("customer_id is required.")
        try:
            customer = self.client.customers.get(customer_id)
        except ApiError as exc:
            if _is_not_found(exc):
                return None
            logger.warning("Paddle API error fetching customer %s: %s", customer_id, exc)
            raise PaddleServiceError(str(exc)) from exc
        except requests.RequestException as exc:
            logger.warning("Paddle API request for customer %s failed: %s", customer_id, exc)
            raise PaddleServiceError(str(exc)) from exc

        return CustomerData(
            id=customer.id,
            email=getattr(customer, "email", None),
            name=getattr(customer, "name", None),
            raw={
                "id": customer.id,
                "email": getattr(customer, "email", None),
                "name": getattr(customer, "name", None),
            },
        )
