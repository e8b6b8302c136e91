import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Deal",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
                ("name", models.CharField(max_length=200, verbose_name="name")),
                ("description", models.TextField(blank=True, default="", verbose_name="description")),
                ("category", models.CharField(blank=True, default="", max_length=100, verbose_name="category")),
                ("min_qty_for_discount", models.PositiveIntegerField(default=1, verbose_name="minimum quantity for discount")),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("inactive", "Inactive")],
                        db_index=True,
                        default="active",
                        max_length=10,
                        verbose_name="status",
                    ),
                ),
                ("deal_starts_at", models.DateTimeField(blank=True, null=True, verbose_name="starts at")),
                ("deal_ends_at", models.DateTimeField(blank=True, db_index=True, null=True, verbose_name="ends at")),
                ("total_sold", models.PositiveBigIntegerField(default=0, verbose_name="units sold")),
                (
                    "total_revenue",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=16, verbose_name="revenue"),
                ),
                (
                    "distributor",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="deals",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="distributor",
                    ),
                ),
            ],
            options={
                "verbose_name": "Deal",
                "verbose_name_plural": "Deals",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(min_qty_for_discount__gte=1),
                        name="deal_min_qty_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DealSize",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("size", models.CharField(max_length=100, verbose_name="size")),
                ("original_cost", models.DecimalField(decimal_places=2, max_digits=12, verbose_name="original cost")),
                ("discount_price", models.DecimalField(decimal_places=2, max_digits=12, verbose_name="discount price")),
                ("bottles_per_case", models.PositiveIntegerField(blank=True, null=True, verbose_name="bottles per case")),
                (
                    "deal",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="sizes",
                        to="deals.deal",
                        verbose_name="deal",
                    ),
                ),
            ],
            options={
                "verbose_name": "Deal size",
                "verbose_name_plural": "Deal sizes",
                "ordering": ["deal", "size"],
                "constraints": [
                    models.UniqueConstraint(fields=("deal", "size"), name="deal_size_unique"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DiscountTier",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tier_quantity", models.PositiveIntegerField(verbose_name="tier quantity")),
                ("tier_discount_percent", models.DecimalField(decimal_places=2, max_digits=5, verbose_name="discount percent")),
                (
                    "deal",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discount_tiers",
                        to="deals.deal",
                        verbose_name="deal",
                    ),
                ),
            ],
            options={
                "verbose_name": "Discount tier",
                "verbose_name_plural": "Discount tiers",
                "ordering": ["deal", "tier_quantity"],
                "constraints": [
                    models.UniqueConstraint(fields=("deal", "tier_quantity"), name="deal_tier_quantity_unique"),
                    models.CheckConstraint(
                        condition=models.Q(tier_discount_percent__gt=0, tier_discount_percent__lt=100),
                        name="deal_tier_percent_range",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DealNotificationEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sent_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "deal",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="notification_entries",
                        to="deals.deal",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="deal_notification_entries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Deal notification entry",
                "verbose_name_plural": "Deal notification history",
                "ordering": ["sent_at"],
                "indexes": [
                    models.Index(fields=["deal", "user", "sent_at"], name="deal_notif_user_sent_idx"),
                ],
            },
        ),
    ]
