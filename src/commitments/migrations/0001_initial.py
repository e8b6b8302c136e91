import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

STATUS_CHOICES = [
    ("pending", "Pending"),
    ("approved", "Approved"),
    ("declined", "Declined"),
    ("cancelled", "Cancelled"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("deals", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Commitment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
                (
                    "status",
                    models.CharField(
                        choices=STATUS_CHOICES,
                        db_index=True,
                        default="pending",
                        max_length=10,
                        verbose_name="status",
                    ),
                ),
                (
                    "total_price",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14, verbose_name="total price"),
                ),
                (
                    "applied_discount_percent",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        max_digits=5,
                        verbose_name="applied discount %",
                    ),
                ),
                ("distributor_response", models.TextField(blank=True, default="", verbose_name="distributor response")),
                ("modified_by_distributor", models.BooleanField(default=False, verbose_name="modified by distributor")),
                (
                    "modified_total_price",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        max_digits=14,
                        null=True,
                        verbose_name="modified total price",
                    ),
                ),
                ("decided_at", models.DateTimeField(blank=True, null=True, verbose_name="decided at")),
                (
                    "payment_status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("paid", "Paid"), ("failed", "Failed")],
                        default="pending",
                        max_length=10,
                        verbose_name="payment status",
                    ),
                ),
                ("version", models.PositiveIntegerField(default=1, verbose_name="version")),
                (
                    "applied_discount_tier",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="deals.discounttier",
                        verbose_name="applied discount tier",
                    ),
                ),
                (
                    "deal",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="commitments",
                        to="deals.deal",
                        verbose_name="deal",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="commitments",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="member",
                    ),
                ),
            ],
            options={
                "verbose_name": "Commitment",
                "verbose_name_plural": "Commitments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["deal", "status"], name="commitment_deal_status_idx"),
                    models.Index(fields=["user", "status"], name="commitment_user_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SizeCommitment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "kind",
                    models.CharField(
                        choices=[("original", "Original"), ("modified", "Modified")],
                        default="original",
                        max_length=10,
                    ),
                ),
                ("size", models.CharField(max_length=100, verbose_name="size")),
                ("quantity", models.PositiveIntegerField(verbose_name="quantity")),
                ("price_per_unit", models.DecimalField(decimal_places=4, max_digits=12, verbose_name="unit price")),
                ("total_price", models.DecimalField(decimal_places=2, max_digits=14, verbose_name="line total")),
                (
                    "commitment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="size_lines",
                        to="commitments.commitment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Size commitment",
                "verbose_name_plural": "Size commitments",
                "ordering": ["commitment", "kind", "size"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("commitment", "kind", "size"),
                        name="size_commitment_unique_size",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(quantity__gt=0),
                        name="size_commitment_quantity_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CommitmentStatusChange",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("previous_status", models.CharField(choices=STATUS_CHOICES, max_length=10)),
                ("new_status", models.CharField(choices=STATUS_CHOICES, max_length=10)),
                ("distributor_response", models.TextField(blank=True, default="")),
                ("commitment_details", models.JSONField(default=dict)),
                (
                    "processed_by",
                    models.CharField(
                        choices=[("distributor", "Distributor"), ("admin", "Admin")],
                        default="distributor",
                        max_length=12,
                    ),
                ),
                ("processed_for_email", models.BooleanField(db_index=True, default=False)),
                ("email_sent_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "commitment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="status_changes",
                        to="commitments.commitment",
                    ),
                ),
                (
                    "deal",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="commitment_status_changes",
                        to="deals.deal",
                    ),
                ),
                (
                    "processed_by_user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="commitment_status_changes",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="member",
                    ),
                ),
            ],
            options={
                "verbose_name": "Commitment status change",
                "verbose_name_plural": "Commitment status changes",
                "ordering": ["-created_at"],
            },
        ),
    ]
