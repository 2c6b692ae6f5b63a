"""Management command to push stored Paddle subscriptions back through reconciliation."""
from __future__ import annotations

from typing import Iterable, Optional

from django.core.management.base import BaseCommand

from billing.models import PaddleSubscription
from billing.services.paddle import extract_webhook_data
from billing.services.reconciliation import BillingReconciler, BillingReconcileResult


class Command(BaseCommand):
    help = (
        "Re-apply the last stored payload of Paddle subscriptions, e.g. after the identity "
        "directory was unreachable while the original webhook was processed."
    )

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--subscription-id",
            dest="subscription_ids",
            action="append",
            help="Resync only the specified Paddle subscription id. Can be supplied multiple times.",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=None,
            help="Maximum number of subscriptions to resync in this run.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the subscriptions that would be resynced without contacting any service.",
        )

    def handle(self, *args, **options) -> None:
        subscription_ids: Optional[Iterable[str]] = options.get("subscription_ids")
        limit: Optional[int] = options.get("limit")
        dry_run: bool = options.get("dry_run")

        queryset = PaddleSubscription.objects.exclude(raw_payload={}).order_by("created_at")
        if subscription_ids:
            queryset = queryset.filter(paddle_subscription_id__in=list(subscription_ids))
        if limit is not None:
            queryset = queryset[:limit]

        subscriptions = list(queryset)
        if not subscriptions:
            self.stdout.write(self.style.WARNING("No stored subscriptions matched the requested filters."))
            return

        reconciler = None if dry_run else BillingReconciler()
        processed = 0
        failed = 0

        for subscription in subscriptions:
            self.stdout.write(f"Resyncing Paddle subscription {subscription.paddle_subscription_id}")
            if dry_run:
                continue

            if subscription.last_event_at is None:
                self.stdout.write(
                    self.style.WARNING("  no stored event time; identity directory will not be updated")
                )

            event = {
                "event_type": "subscription.updated",
                "occurred_at": subscription.last_event_at.isoformat() if subscription.last_event_at else None,
                "data": subscription.raw_payload,
            }
            result = reconciler.apply(extract_webhook_data(event))
            if result.status == BillingReconcileResult.PROCESSED:
                processed += 1
            else:
                failed += 1
                self.stdout.write(self.style.ERROR(f"  steps: {result.as_dict()['steps']}"))

        if dry_run:
            self.stdout.write(self.style.WARNING(f"Dry run complete. {len(subscriptions)} subscriptions would be resynced."))
            return

        summary = f"Resync complete. processed={processed} failed={failed}"
        if failed:
            self.stdout.write(self.style.WARNING(summary))
        else:
            self.stdout.write(self.style.SUCCESS(summary))
