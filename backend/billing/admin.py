from django.contrib import admin

from .models import PaddleBusiness, PaddleCustomer, PaddleSubscription, PaddleSubscriptionItem


@admin.register(PaddleCustomer)
class PaddleCustomerAdmin(admin.ModelAdmin):
    """Customers are linked by webhook reconciliation; edits here are rarely needed."""

    list_display = ("id", "paddle_customer_id", "email", "name", "user", "updated_at")
    search_fields = ("paddle_customer_id", "email", "user__username", "user__email")
    list_select_related = ("user",)
    raw_id_fields = ("user",)
    readonly_fields = ("raw_payload", "created_at", "updated_at")
    ordering = ("-created_at",)


@admin.register(PaddleBusiness)
class PaddleBusinessAdmin(admin.ModelAdmin):
    list_display = ("id", "paddle_business_id", "paddle_customer_id", "name", "country", "updated_at")
    search_fields = ("paddle_business_id", "paddle_customer_id", "name", "tax_id")
    list_filter = ("country",)
    readonly_fields = ("raw_payload", "created_at", "updated_at")
    ordering = ("-created_at",)


class PaddleSubscriptionItemInline(admin.TabularInline):
    model = PaddleSubscriptionItem
    extra = 0
    can_delete = False
    fields = ("paddle_price_id", "paddle_product_id", "product_type", "quantity", "created_at")
    readonly_fields = fields


@admin.register(PaddleSubscription)
class PaddleSubscriptionAdmin(admin.ModelAdmin):
    """Read-mostly view of the subscription mirror."""

    list_display = (
        "id",
        "paddle_subscription_id",
        "status",
        "quantity",
        "is_org_subscription",
        "user",
        "organization",
        "last_event_at",
    )
    list_filter = ("status", "is_org_subscription", "collection_mode", "billing_interval")
    search_fields = (
        "paddle_subscription_id",
        "paddle_customer_id",
        "paddle_business_id",
        "user__email",
        "organization__name",
    )
    list_select_related = ("user", "organization")
    raw_id_fields = ("user", "organization")
    readonly_fields = ("is_org_subscription", "raw_payload", "last_event_at", "created_at", "updated_at")
    ordering = ("-created_at",)
    inlines = [PaddleSubscriptionItemInline]
