"""Apply verified Paddle webhook data to the local store and the identity directory."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from django.db import transaction

from billing.models import PaddleBusiness, PaddleCustomer, PaddleSubscription, PaddleSubscriptionItem
from core.observability.logging import log_webhook_event
from core.observability.metrics import WEBHOOK_RECONCILIATION_COUNT, WEBHOOK_RECONCILIATION_FAILURE_COUNT
from core.upsert import MergePolicy, upsert_by_lookup

from .directory import DirectoryConfigurationError
from .directory_sync import DirectorySynchronizer, DirectorySyncResult, DirectoryUserResolver
from .paddle import BusinessData, CustomerData, PaddleWebhookData, SubscriptionData, TransactionData
from .resolver import (
    is_org_plan_price,
    resolve_customer_link,
    resolve_organization_for_owner,
    resolve_user_by_email,
)

SOURCE = "paddle"

SUBSCRIPTION_POLICIES = {
    "user": MergePolicy.KEEP_EXISTING_IF_NULL,
    "organization": MergePolicy.KEEP_EXISTING_IF_NULL,
    "is_org_subscription": MergePolicy.STICKY_TRUE,
    "paddle_customer_id": MergePolicy.KEEP_EXISTING_IF_NULL,
    "last_event_at": MergePolicy.KEEP_EXISTING_IF_NULL,
}


@dataclass(frozen=True)
class StepResult:
    status: str
    detail: str = ""

    APPLIED = "applied"
    SKIPPED = "skipped"
    STALE = "stale"
    FAILED = "failed"


@dataclass
class BillingReconcileResult:
    """Per-step outcome of one Paddle delivery."""

    event_type: str
    steps: Dict[str, StepResult] = field(default_factory=dict)

    PROCESSED = "processed"
    PARTIAL = "partial"

    @property
    def status(self) -> str:
        if any(step.status == StepResult.FAILED for step in self.steps.values()):
            return self.PARTIAL
        return self.PROCESSED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "event_type": self.event_type,
            "steps": {name: step.status for name, step in self.steps.items()},
        }


def _address_value(address: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = address.get(key)
        if value:
            return str(value)
    return None


class BillingReconciler:
    """Runs customer, business, subscription, directory and transaction steps in order.

    Each step is isolated: a failure is logged and counted, and the remaining
    steps still run.
    """

    def __init__(
        self,
        *,
        logger: Optional[logging.Logger] = None,
        directory_sync: Optional[DirectorySynchronizer] = None,
        user_resolver: Optional[DirectoryUserResolver] = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.user_resolver = user_resolver or DirectoryUserResolver(logger=self.logger)
        self.directory_sync = directory_sync or DirectorySynchronizer(
            resolver=self.user_resolver, logger=self.logger
        )

    def apply(self, data: PaddleWebhookData) -> BillingReconcileResult:
        result = BillingReconcileResult(event_type=data.event_type)

        if data.customer:
            self._run_step(result, "customer", data, lambda: self.upsert_customer(data.customer))
        if data.business:
            self._run_step(result, "business", data, lambda: self.upsert_business(data.business))
        if data.subscription:
            self._run_step(
                result,
                "subscription",
                data,
                lambda: self.upsert_subscription(data.subscription, data),
            )
            self._run_step(
                result,
                "directory",
                data,
                lambda: self.sync_directory(data.subscription, data.occurred_at),
            )
        if data.transaction:
            self._run_step(
                result,
                "transaction",
                data,
                lambda: self.resolve_transaction(data.transaction, data.event_type),
            )

        return result

    def _run_step(
        self,
        result: BillingReconcileResult,
        step: str,
        data: PaddleWebhookData,
        action: Callable[[], StepResult],
    ) -> None:
        try:
            outcome = action()
        except Exception as exc:
            self.logger.exception("Error reconciling %s for Paddle event %s", step, data.event_id or data.event_type)
            WEBHOOK_RECONCILIATION_FAILURE_COUNT.labels(source=SOURCE, step=step).inc()
            outcome = StepResult(status=StepResult.FAILED, detail=str(exc))

        result.steps[step] = outcome
        WEBHOOK_RECONCILIATION_COUNT.labels(source=SOURCE, step=step, result=outcome.status).inc()
        log_webhook_event(
            message=f"Paddle {step} step {outcome.status}",
            source=SOURCE,
            event_type=data.event_type,
            event_id=data.event_id,
            level=logging.WARNING if outcome.status == StepResult.FAILED else logging.INFO,
            extra={"detail": outcome.detail} if outcome.detail else None,
            target=self.logger,
        )

    # ------------------------------------------------------------------
    # Store steps
    # ------------------------------------------------------------------

    def upsert_customer(self, customer: CustomerData) -> StepResult:
        user = resolve_user_by_email(customer.email)
        if user is None:
            self.logger.warning(
                "Skipping Paddle customer %s (%s) - no matching user",
                customer.id,
                customer.email,
            )
            return StepResult(status=StepResult.SKIPPED, detail="No matching user")

        other = PaddleCustomer.objects.filter(user=user).exclude(paddle_customer_id=customer.id).first()
        if other is not None:
            self.logger.warning(
                "Skipping Paddle customer %s - user %s is already linked to customer %s",
                customer.id,
                user.pk,
                other.paddle_customer_id,
            )
            return StepResult(status=StepResult.SKIPPED, detail="User linked to another customer")

        upsert = upsert_by_lookup(
            PaddleCustomer,
            lookup={"paddle_customer_id": customer.id},
            values={
                "user": user,
                "email": customer.email,
                "name": customer.name,
                "raw_payload": customer.raw,
            },
        )
        return StepResult(status=StepResult.APPLIED, detail="created" if upsert.created else "updated")

    def upsert_business(self, business: BusinessData) -> StepResult:
        if not business.customer_id or resolve_customer_link(business.customer_id) is None:
            self.logger.warning(
                "Skipping Paddle business %s - customer %s not linked",
                business.id,
                business.customer_id,
            )
            return StepResult(status=StepResult.SKIPPED, detail="Customer not linked")

        address = business.address
        upsert = upsert_by_lookup(
            PaddleBusiness,
            lookup={"paddle_business_id": business.id},
            values={
                "paddle_customer_id": business.customer_id,
                "name": business.name,
                "tax_id": business.tax_identifier,
                "country": _address_value(address, "country_code"),
                "city": _address_value(address, "city"),
                "region": _address_value(address, "region"),
                "postal_code": _address_value(address, "postal_code"),
                "first_line": _address_value(address, "first_line", "line1"),
                "second_line": _address_value(address, "second_line", "line2"),
                "raw_payload": business.raw,
            },
        )
        return StepResult(status=StepResult.APPLIED, detail="created" if upsert.created else "updated")

    def upsert_subscription(self, subscription: SubscriptionData, data: PaddleWebhookData) -> StepResult:
        occurred_at = data.occurred_at_datetime
        existing = PaddleSubscription.objects.filter(paddle_subscription_id=subscription.id).first()

        computed_org = any(is_org_plan_price(item.price_id) for item in subscription.items)
        effective_org = computed_org or bool(existing and existing.is_org_subscription)

        link = resolve_customer_link(subscription.customer_id)
        user = link.user if link else None
        organization = resolve_organization_for_owner(user) if effective_org else None

        # An older event may still fill in ownership, but never rolls back state.
        stale = bool(
            existing
            and existing.last_event_at
            and occurred_at
            and existing.last_event_at > occurred_at
        )

        values: Dict[str, Any] = {
            "user": user,
            "organization": organization,
            "is_org_subscription": computed_org,
        }
        if not stale:
            if subscription.items_present or existing is None:
                values["quantity"] = subscription.total_quantity
            values.update(
                paddle_customer_id=subscription.customer_id or (None if existing else ""),
                paddle_business_id=subscription.business_id,
                status=subscription.status,
                collection_mode=subscription.collection_mode,
                currency=subscription.currency_code,
                billing_interval=subscription.billing_interval,
                billing_frequency=subscription.billing_frequency,
                next_billed_at=subscription.next_billed_at,
                scheduled_change=subscription.scheduled_change,
                raw_payload=subscription.raw,
                last_event_at=occurred_at,
            )

        with transaction.atomic():
            upsert = upsert_by_lookup(
                PaddleSubscription,
                lookup={"paddle_subscription_id": subscription.id},
                values=values,
                policies=SUBSCRIPTION_POLICIES,
            )
            if not stale and subscription.items_present:
                self.replace_items(upsert.instance, subscription)

        if stale:
            self.logger.info(
                "Paddle subscription %s event at %s is older than stored %s; only ownership merged",
                subscription.id,
                occurred_at,
                existing.last_event_at,
            )
            return StepResult(status=StepResult.STALE)
        return StepResult(status=StepResult.APPLIED, detail="created" if upsert.created else "updated")

    def replace_items(self, subscription: PaddleSubscription, data: SubscriptionData) -> None:
        PaddleSubscriptionItem.objects.filter(subscription=subscription).delete()
        PaddleSubscriptionItem.objects.bulk_create(
            [
                PaddleSubscriptionItem(
                    subscription=subscription,
                    paddle_price_id=item.price_id,
                    paddle_product_id=item.product_id,
                    product_type=(
                        PaddleSubscriptionItem.PRODUCT_TYPE_ORG_SEATS
                        if is_org_plan_price(item.price_id)
                        else PaddleSubscriptionItem.PRODUCT_TYPE_INDIVIDUAL
                    ),
                    quantity=item.quantity if item.quantity is not None else 1,
                    raw_item=item.raw,
                )
                for item in data.items
            ]
        )

    # ------------------------------------------------------------------
    # Directory steps
    # ------------------------------------------------------------------

    def sync_directory(self, subscription: SubscriptionData, occurred_at: Optional[str]) -> StepResult:
        try:
            outcome = self.directory_sync.sync_subscription(subscription, occurred_at)
        except DirectoryConfigurationError as exc:
            self.logger.warning("Identity directory not configured; skipping subscription sync: %s", exc)
            return StepResult(status=StepResult.SKIPPED, detail="Directory not configured")

        if outcome.status == DirectorySyncResult.UPDATED:
            return StepResult(status=StepResult.APPLIED, detail=outcome.user_id or "")
        if outcome.status == DirectorySyncResult.STALE:
            return StepResult(status=StepResult.STALE, detail=outcome.user_id or "")
        return StepResult(status=StepResult.SKIPPED, detail=outcome.detail or outcome.status)

    def resolve_transaction(self, tx: TransactionData, event_type: str) -> StepResult:
        try:
            user = self.user_resolver.resolve(tx.subscription_id, tx.customer_id)
        except DirectoryConfigurationError as exc:
            self.logger.warning("Identity directory not configured; transaction %s not resolved: %s", tx.id, exc)
            return StepResult(status=StepResult.SKIPPED, detail="Directory not configured")

        if user is None:
            self.logger.info(
                "No directory user found for transaction %s (subscription %s, customer %s)",
                tx.id,
                tx.subscription_id,
                tx.customer_id,
            )
            return StepResult(status=StepResult.SKIPPED, detail="No user")

        if event_type == "transaction.updated" and tx.status == "paid":
            self.logger.info("Subscription payment %s completed for directory user %s", tx.id, user.id)
            return StepResult(status=StepResult.APPLIED, detail="payment")

        return StepResult(status=StepResult.APPLIED, detail=user.id)
