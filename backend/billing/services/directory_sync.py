"""Mirror subscription state onto identity directory user attributes."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from core.observability.metrics import DIRECTORY_STALE_UPDATE_COUNT
from core.timestamps import parse_iso_timestamp

from .directory import DirectoryUser, KeycloakDirectoryClient
from .paddle import PaddleClient, PaddleConfigurationError, PaddleServiceError, SubscriptionData

LAST_UPDATE_ATTRIBUTE = "paddle_last_update"


def build_subscription_attributes(subscription: SubscriptionData, occurred_at: str) -> Dict[str, List[str]]:
    """Directory attributes describing ``subscription``; every value is a list of strings."""

    attributes: Dict[str, List[str]] = {
        "paddle_subscription_id": [subscription.id],
        "paddle_subscription_status": [subscription.status or ""],
        LAST_UPDATE_ATTRIBUTE: [occurred_at],
        "paddle_collection_mode": [subscription.collection_mode or ""],
        "paddle_customer_id": [subscription.customer_id or ""],
        "paddle_product_id": [item.product_id or "" for item in subscription.items],
        "paddle_price_id": [item.price_id for item in subscription.items],
        "paddle_quantity": [
            "" if item.quantity is None else str(item.quantity) for item in subscription.items
        ],
    }
    if subscription.scheduled_change:
        attributes["paddle_scheduled_change"] = [json.dumps(subscription.scheduled_change)]
    return attributes


def is_stale(stored_last_update: Optional[str], occurred_at: datetime) -> bool:
    """True when the stored update is at least as new as ``occurred_at``.

    An unreadable stored value never blocks an update.
    """

    stored = parse_iso_timestamp(stored_last_update)
    if stored is None:
        return False
    return stored >= occurred_at


class DirectoryUserResolver:
    """Find the directory user a Paddle subscription or customer belongs to."""

    def __init__(
        self,
        *,
        directory: Optional[KeycloakDirectoryClient] = None,
        paddle: Optional[PaddleClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.directory = directory or KeycloakDirectoryClient()
        self.paddle = paddle or PaddleClient()
        self.logger = logger or logging.getLogger(__name__)

    def by_subscription(self, subscription_id: str) -> Optional[DirectoryUser]:
        return self.directory.get_user(subscription_id=subscription_id)

    def by_email(self, email: str) -> Optional[DirectoryUser]:
        return self.directory.get_user(email=email)

    def resolve(
        self,
        subscription_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> Optional[DirectoryUser]:
        user = self.by_subscription(subscription_id) if subscription_id else None
        if user is not None or not customer_id:
            return user

        self.logger.info(
            "No directory user found for subscription %s; looking up Paddle customer %s.",
            subscription_id,
            customer_id,
        )
        try:
            customer = self.paddle.fetch_customer(customer_id)
        except (PaddleConfigurationError, PaddleServiceError):
            self.logger.exception("Error fetching Paddle customer %s", customer_id)
            return None

        if customer is None or not customer.email:
            return None

        user = self.by_email(customer.email)
        self.logger.info("Directory lookup by email %s: %s", customer.email, "found" if user else "not found")
        return user


@dataclass(frozen=True)
class DirectorySyncResult:
    status: str
    user_id: Optional[str] = None
    detail: str = ""

    UPDATED = "updated"
    STALE = "stale"
    NO_USER = "no_user"
    SKIPPED = "skipped"


class DirectorySynchronizer:
    """Merge subscription attributes into the directory user, newest event wins."""

    def __init__(
        self,
        *,
        resolver: Optional[DirectoryUserResolver] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.resolver = resolver or DirectoryUserResolver(logger=self.logger)

    @property
    def directory(self) -> KeycloakDirectoryClient:
        return self.resolver.directory

    def sync_subscription(self, subscription: SubscriptionData, occurred_at: Optional[str]) -> DirectorySyncResult:
        occurred = parse_iso_timestamp(occurred_at)
        if occurred is None:
            self.logger.warning(
                "Subscription %s event has no usable occurred_at (%r); directory not updated.",
                subscription.id,
                occurred_at,
            )
            return DirectorySyncResult(status=DirectorySyncResult.SKIPPED, detail="Missing occurred_at")

        user = self.resolver.resolve(subscription.id, subscription.customer_id)
        if user is None:
            self.logger.info(
                "No directory user found for subscription %s or customer %s",
                subscription.id,
                subscription.customer_id,
            )
            return DirectorySyncResult(status=DirectorySyncResult.NO_USER)

        if is_stale(user.first_attribute(LAST_UPDATE_ATTRIBUTE), occurred):
            self.logger.info("Skipping older or duplicate subscription update for directory user %s", user.id)
            DIRECTORY_STALE_UPDATE_COUNT.inc()
            return DirectorySyncResult(status=DirectorySyncResult.STALE, user_id=user.id)

        merged = dict(user.attributes)
        merged.update(build_subscription_attributes(subscription, occurred_at))
        self.directory.update_user_attributes(user, merged)

        self.logger.info("Updated directory user %s with subscription %s", user.id, subscription.id)
        return DirectorySyncResult(status=DirectorySyncResult.UPDATED, user_id=user.id)
