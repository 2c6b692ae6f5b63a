"""Local-store lookups that link Paddle records to users and organizations."""
from __future__ import annotations

from typing import Iterable, Optional

from django.conf import settings
from django.contrib.auth import get_user_model

from billing.models import PaddleCustomer
from organizations.models import Organization

User = get_user_model()


def resolve_user_by_email(email: Optional[str]):
    """Case-insensitive email match; ``None`` when no single user matches."""
    if not email:
        return None
    return User.objects.filter(email__iexact=email.strip()).order_by("pk").first()


def resolve_customer_link(paddle_customer_id: Optional[str]) -> Optional[PaddleCustomer]:
    if not paddle_customer_id:
        return None
    return (
        PaddleCustomer.objects.select_related("user")
        .filter(paddle_customer_id=paddle_customer_id)
        .first()
    )


def resolve_organization_for_owner(user) -> Optional[Organization]:
    """First organization (by primary key) owned by ``user``."""
    if user is None:
        return None
    return Organization.objects.filter(owner=user).order_by("pk").first()


def org_seat_price_ids() -> Iterable[str]:
    return [price_id for price_id in getattr(settings, "PADDLE_ORG_SEAT_PRICE_IDS", []) if price_id]


def is_org_plan_price(price_id: Optional[str]) -> bool:
    return bool(price_id) and price_id in org_seat_price_ids()
