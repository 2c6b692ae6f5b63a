"""Local mirror of Paddle customers, businesses and subscriptions."""
from django.conf import settings
from django.db import models


class PaddleCustomer(models.Model):
    """Paddle customer linked to a local user by email."""

    paddle_customer_id = models.CharField(max_length=64, unique=True)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="paddle_customer",
        help_text="Local user whose email matched the Paddle customer",
    )
    email = models.EmailField(blank=True, null=True)
    name = models.CharField(max_length=255, blank=True, null=True)
    raw_payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "paddle_customers"
        verbose_name = "Paddle customer"
        verbose_name_plural = "Paddle customers"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.paddle_customer_id} ({self.email or self.user_id})"


class PaddleBusiness(models.Model):
    """Business (company) details a Paddle customer supplied at checkout."""

    paddle_business_id = models.CharField(max_length=64, unique=True)
    paddle_customer_id = models.CharField(max_length=64, db_index=True)
    name = models.CharField(max_length=255, blank=True, null=True)
    tax_id = models.CharField(max_length=128, blank=True, null=True)
    country = models.CharField(max_length=2, blank=True, null=True)
    city = models.CharField(max_length=255, blank=True, null=True)
    region = models.CharField(max_length=255, blank=True, null=True)
    postal_code = models.CharField(max_length=32, blank=True, null=True)
    first_line = models.CharField(max_length=255, blank=True, null=True)
    second_line = models.CharField(max_length=255, blank=True, null=True)
    raw_payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "paddle_businesses"
        verbose_name = "Paddle business"
        verbose_name_plural = "Paddle businesses"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.name or self.paddle_business_id}"


class PaddleSubscription(models.Model):
    """Latest known state of a Paddle subscription and who it belongs to."""

    paddle_subscription_id = models.CharField(max_length=64, unique=True)
    paddle_customer_id = models.CharField(max_length=64, db_index=True)
    paddle_business_id = models.CharField(max_length=64, blank=True, null=True)
    status = models.CharField(max_length=32, blank=True, null=True)
    collection_mode = models.CharField(max_length=32, blank=True, null=True)
    quantity = models.PositiveIntegerField(default=1, help_text="Total seats across all items")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="paddle_subscriptions",
        null=True,
        blank=True,
    )
    organization = models.ForeignKey(
        "organizations.Organization",
        on_delete=models.SET_NULL,
        related_name="paddle_subscriptions",
        null=True,
        blank=True,
    )
    is_org_subscription = models.BooleanField(
        default=False,
        help_text="Set once any item is billed at an organization seat price; never cleared",
    )
    currency = models.CharField(max_length=3, blank=True, null=True)
    billing_interval = models.CharField(max_length=16, blank=True, null=True)
    billing_frequency = models.PositiveIntegerField(blank=True, null=True)
    next_billed_at = models.DateTimeField(blank=True, null=True)
    scheduled_change = models.JSONField(blank=True, null=True)
    raw_payload = models.JSONField(default=dict, blank=True)
    last_event_at = models.DateTimeField(
        blank=True,
        null=True,
        help_text="occurred_at of the newest webhook applied to this row",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "paddle_subscriptions"
        verbose_name = "Paddle subscription"
        verbose_name_plural = "Paddle subscriptions"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="paddle_subscription_status_idx"),
        ]

    def __str__(self):
        return f"{self.paddle_subscription_id} [{self.status}]"


class PaddleSubscriptionItem(models.Model):
    PRODUCT_TYPE_ORG_SEATS = "org_seats"
    PRODUCT_TYPE_INDIVIDUAL = "individual"
    PRODUCT_TYPE_CHOICES = [
        (PRODUCT_TYPE_ORG_SEATS, "Organization seats"),
        (PRODUCT_TYPE_INDIVIDUAL, "Individual"),
    ]

    subscription = models.ForeignKey(
        PaddleSubscription,
        on_delete=models.CASCADE,
        related_name="items",
    )
    paddle_price_id = models.CharField(max_length=64)
    paddle_product_id = models.CharField(max_length=64, blank=True, null=True)
    product_type = models.CharField(max_length=32, choices=PRODUCT_TYPE_CHOICES)
    quantity = models.PositiveIntegerField(default=1)
    raw_item = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "paddle_subscription_items"
        verbose_name = "Paddle subscription item"
        verbose_name_plural = "Paddle subscription items"
        ordering = ["id"]

    def __str__(self):
        return f"{self.paddle_price_id} x{self.quantity}"
