from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("organizations", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="PaddleBusiness",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("paddle_business_id", models.CharField(max_length=64, unique=True)),
                ("paddle_customer_id", models.CharField(db_index=True, max_length=64)),
                ("name", models.CharField(blank=True, max_length=255, null=True)),
                ("tax_id", models.CharField(blank=True, max_length=128, null=True)),
                ("country", models.CharField(blank=True, max_length=2, null=True)),
                ("city", models.CharField(blank=True, max_length=255, null=True)),
                ("region", models.CharField(blank=True, max_length=255, null=True)),
                ("postal_code", models.CharField(blank=True, max_length=32, null=True)),
                ("first_line", models.CharField(blank=True, max_length=255, null=True)),
                ("second_line", models.CharField(blank=True, max_length=255, null=True)),
                ("raw_payload", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Paddle business",
                "verbose_name_plural": "Paddle businesses",
                "db_table": "paddle_businesses",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="PaddleCustomer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("paddle_customer_id", models.CharField(max_length=64, unique=True)),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                ("name", models.CharField(blank=True, max_length=255, null=True)),
                ("raw_payload", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.OneToOneField(
                        help_text="Local user whose email matched the Paddle customer",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="paddle_customer",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Paddle customer",
                "verbose_name_plural": "Paddle customers",
                "db_table": "paddle_customers",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="PaddleSubscription",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("paddle_subscription_id", models.CharField(max_length=64, unique=True)),
                ("paddle_customer_id", models.CharField(db_index=True, max_length=64)),
                ("paddle_business_id", models.CharField(blank=True, max_length=64, null=True)),
                ("status", models.CharField(blank=True, max_length=32, null=True)),
                ("collection_mode", models.CharField(blank=True, max_length=32, null=True)),
                ("quantity", models.PositiveIntegerField(default=1, help_text="Total seats across all items")),
                (
                    "is_org_subscription",
                    models.BooleanField(
                        default=False,
                        help_text="Set once any item is billed at an organization seat price; never cleared",
                    ),
                ),
                ("currency", models.CharField(blank=True, max_length=3, null=True)),
                ("billing_interval", models.CharField(blank=True, max_length=16, null=True)),
                ("billing_frequency", models.PositiveIntegerField(blank=True, null=True)),
                ("next_billed_at", models.DateTimeField(blank=True, null=True)),
                ("scheduled_change", models.JSONField(blank=True, null=True)),
                ("raw_payload", models.JSONField(blank=True, default=dict)),
                (
                    "last_event_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="occurred_at of the newest webhook applied to this row",
                        null=True,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "organization",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="paddle_subscriptions",
                        to="organizations.organization",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="paddle_subscriptions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Paddle subscription",
                "verbose_name_plural": "Paddle subscriptions",
                "db_table": "paddle_subscriptions",
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status"], name="paddle_subscription_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="PaddleSubscriptionItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("paddle_price_id", models.CharField(max_length=64)),
                ("paddle_product_id", models.CharField(blank=True, max_length=64, null=True)),
                (
                    "product_type",
                    models.CharField(
                        choices=[("org_seats", "Organization seats"), ("individual", "Individual")],
                        max_length=32,
                    ),
                ),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("raw_item", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "subscription",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="billing.paddlesubscription",
                    ),
                ),
            ],
            options={
                "verbose_name": "Paddle subscription item",
                "verbose_name_plural": "Paddle subscription items",
                "db_table": "paddle_subscription_items",
                "ordering": ["id"],
            },
        ),
    ]
