"""Models for the commitments app."""
from decimal import Decimal

from django.conf import settings
from django.db import models

from core.models import TimeStampedModel


class Commitment(TimeStampedModel):
    """A member's pledge to buy quantities of a deal's sizes.

    ``version`` is bumped on every write by :mod:`commitments.services`; a
    write whose version no longer matches is rejected as a conflict.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        APPROVED = "approved", "Approved"
        DECLINED = "declined", "Declined"
        CANCELLED = "cancelled", "Cancelled"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        FAILED = "failed", "Failed"

    TERMINAL_STATUSES = frozenset({Status.APPROVED, Status.DECLINED, Status.CANCELLED})

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="commitments",
        verbose_name="member",
    )
    deal = models.ForeignKey(
        "deals.Deal",
        on_delete=models.PROTECT,
        related_name="commitments",
        verbose_name="deal",
    )
    status = models.CharField(
        "status",
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    total_price = models.DecimalField(
        "total price",
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
    )

    # Tier snapshot taken at the last pricing run
    applied_discount_tier = models.ForeignKey(
        "deals.DiscountTier",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        verbose_name="applied discount tier",
    )
    applied_discount_percent = models.DecimalField(
        "applied discount %",
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
    )

    # Distributor decision
    distributor_response = models.TextField("distributor response", blank=True, default="")
    modified_by_distributor = models.BooleanField("modified by distributor", default=False)
    modified_total_price = models.DecimalField(
        "modified total price",
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
    )
    decided_at = models.DateTimeField("decided at", null=True, blank=True)

    payment_status = models.CharField(
        "payment status",
        max_length=10,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    version = models.PositiveIntegerField("version", default=1)

    class Meta:
        verbose_name = "Commitment"
        verbose_name_plural = "Commitments"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["deal", "status"], name="commitment_deal_status_idx"),
            models.Index(fields=["user", "status"], name="commitment_user_status_idx"),
        ]
        constraints = [
            # One live commitment per member and deal; later commits re-price it.
            models.UniqueConstraint(
                fields=["user", "deal"],
                condition=models.Q(status="pending"),
                name="commitment_one_pending_per_user_deal",
            ),
        ]

    def __str__(self):
        return f"{self.user} - {self.deal} ({self.get_status_display()})"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def _lines(self, kind):
        cache = getattr(self, "_prefetched_objects_cache", {})
        if "size_lines" in cache:
            return [line for line in cache["size_lines"] if line.kind == kind]
        return list(self.size_lines.filter(kind=kind).order_by("size"))

    @property
    def size_commitments(self):
        return self._lines(SizeCommitment.Kind.ORIGINAL)

    @property
    def modified_size_commitments(self):
        return self._lines(SizeCommitment.Kind.MODIFIED)

    @property
    def total_quantity(self):
        return sum(line.quantity for line in self.size_commitments)

    @property
    def modified_quantity(self):
        if not self.modified_by_distributor:
            return None
        lines = self.modified_size_commitments
        return sum(line.quantity for line in lines) if lines else None

    @property
    def final_quantity(self):
        modified = self.modified_quantity
        return modified if modified is not None else self.total_quantity

    @property
    def final_total_price(self):
        if self.modified_by_distributor and self.modified_total_price is not None:
            return self.modified_total_price
        return self.total_price


class SizeCommitment(models.Model):
    """One size line of a commitment, either as committed or as modified by the distributor."""

    class Kind(models.TextChoices):
        ORIGINAL = "original", "Original"
        MODIFIED = "modified", "Modified"

    commitment = models.ForeignKey(
        Commitment,
        on_delete=models.CASCADE,
        related_name="size_lines",
    )
    kind = models.CharField(max_length=10, choices=Kind.choices, default=Kind.ORIGINAL)
    size = models.CharField("size", max_length=100)
    quantity = models.PositiveIntegerField("quantity")
    price_per_unit = models.DecimalField("unit price", max_digits=14, decimal_places=6)
    total_price = models.DecimalField("line total", max_digits=14, decimal_places=2)

    class Meta:
        verbose_name = "Size commitment"
        verbose_name_plural = "Size commitments"
        ordering = ["commitment", "kind", "size"]
        constraints = [
            models.UniqueConstraint(
                fields=["commitment", "kind", "size"],
                name="size_commitment_unique_size",
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="size_commitment_quantity_positive",
            ),
        ]

    def __str__(self):
        return f"{self.size} x {self.quantity} @ {self.price_per_unit}"


class CommitmentStatusChange(models.Model):
    """Record of one distributor decision on a commitment.

    Picked up by the daily summary e-mail job through ``processed_for_email``.
    """

    class ProcessedBy(models.TextChoices):
        DISTRIBUTOR = "distributor", "Distributor"
        ADMIN = "admin", "Admin"

    commitment = models.ForeignKey(
        Commitment,
        on_delete=models.CASCADE,
        related_name="status_changes",
    )
    deal = models.ForeignKey(
        "deals.Deal",
        on_delete=models.CASCADE,
        related_name="commitment_status_changes",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="commitment_status_changes",
        verbose_name="member",
    )
    previous_status = models.CharField(max_length=10, choices=Commitment.Status.choices)
    new_status = models.CharField(max_length=10, choices=Commitment.Status.choices)
    distributor_response = models.TextField(blank=True, default="")
    commitment_details = models.JSONField(default=dict)
    processed_by = models.CharField(
        max_length=12,
        choices=ProcessedBy.choices,
        default=ProcessedBy.DISTRIBUTOR,
    )
    processed_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    processed_for_email = models.BooleanField(default=False, db_index=True)
    email_sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = "Commitment status change"
        verbose_name_plural = "Commitment status changes"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.commitment_id}: {self.previous_status} -> {self.new_status}"
