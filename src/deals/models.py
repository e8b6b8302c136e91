"""Models for the deals app."""
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import TimeStampedModel


# ---------------------------------------------------------------------------
# Deal
# ---------------------------------------------------------------------------

class Deal(TimeStampedModel):
    """A distributor's bulk-purchase offer.

    The size catalogue (:class:`DealSize`) and the volume discount ladder
    (:class:`DiscountTier`) are owned by the deal.  ``total_sold`` and
    ``total_revenue`` are running aggregates maintained exclusively by
    :mod:`deals.ledger` when a commitment is approved.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        INACTIVE = "inactive", "Inactive"

    name = models.CharField("name", max_length=200)
    description = models.TextField("description", blank=True, default="")
    category = models.CharField("category", max_length=100, blank=True, default="")
    distributor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="deals",
        verbose_name="distributor",
    )
    min_qty_for_discount = models.PositiveIntegerField(
        "minimum quantity for discount",
        default=1,
    )
    status = models.CharField(
        "status",
        max_length=10,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True,
    )
    deal_starts_at = models.DateTimeField("starts at", null=True, blank=True)
    deal_ends_at = models.DateTimeField("ends at", null=True, blank=True, db_index=True)

    # ------------------------------------------------------------------
    # Aggregates (ledger-owned)
    # ------------------------------------------------------------------
    total_sold = models.PositiveBigIntegerField("units sold", default=0)
    total_revenue = models.DecimalField(
        "revenue",
        max_digits=16,
        decimal_places=2,
        default=Decimal("0.00"),
    )

    class Meta:
        verbose_name = "Deal"
        verbose_name_plural = "Deals"
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(min_qty_for_discount__gte=1),
                name="deal_min_qty_positive",
            ),
        ]

    def __str__(self):
        return self.name

    @property
    def is_active(self):
        return self.status == self.Status.ACTIVE

    @property
    def has_expired(self):
        return self.deal_ends_at is not None and self.deal_ends_at <= timezone.now()

    def size_catalogue(self) -> dict:
        """Return ``{size: DealSize}`` for this deal."""
        return {entry.size: entry for entry in self.sizes.all()}

    def ordered_tiers(self) -> list:
        return list(self.discount_tiers.order_by("tier_quantity"))

    def notification_history(self):
        """Return ``{user_id: [sent_at, ...]}``; see :func:`deals.ledger.notification_history`."""
        from deals.ledger import notification_history

        return notification_history(self)


class DealSize(models.Model):
    """One size variant in a deal's catalogue."""

    deal = models.ForeignKey(
        Deal,
        on_delete=models.CASCADE,
        related_name="sizes",
        verbose_name="deal",
    )
    size = models.CharField("size", max_length=100)
    original_cost = models.DecimalField("original cost", max_digits=12, decimal_places=2)
    discount_price = models.DecimalField("discount price", max_digits=12, decimal_places=2)
    bottles_per_case = models.PositiveIntegerField("bottles per case", null=True, blank=True)

    class Meta:
        verbose_name = "Deal size"
        verbose_name_plural = "Deal sizes"
        ordering = ["deal", "size"]
        constraints = [
            models.UniqueConstraint(fields=["deal", "size"], name="deal_size_unique"),
        ]

    def __str__(self):
        return f"{self.deal.name} - {self.size}"

    @property
    def savings_per_unit(self):
        return self.original_cost - self.discount_price


class DiscountTier(models.Model):
    """Volume discount rule: at ``tier_quantity`` units, take ``tier_discount_percent`` off.

    Tiers of one deal are strictly increasing in both quantity and percent,
    and the first tier lies above the deal's minimum quantity.  These
    invariants are checked by :func:`deals.services.validate_discount_tiers`.
    """

    deal = models.ForeignKey(
        Deal,
        on_delete=models.CASCADE,
        related_name="discount_tiers",
        verbose_name="deal",
    )
    tier_quantity = models.PositiveIntegerField("tier quantity")
    tier_discount_percent = models.DecimalField("discount percent", max_digits=5, decimal_places=2)

    class Meta:
        verbose_name = "Discount tier"
        verbose_name_plural = "Discount tiers"
        ordering = ["deal", "tier_quantity"]
        constraints = [
            models.UniqueConstraint(fields=["deal", "tier_quantity"], name="deal_tier_quantity_unique"),
            models.CheckConstraint(
                condition=models.Q(tier_discount_percent__gt=0, tier_discount_percent__lt=100),
                name="deal_tier_percent_range",
            ),
        ]

    def __str__(self):
        return f"{self.tier_quantity}+ units: {self.tier_discount_percent}% off"


# ---------------------------------------------------------------------------
# Ledger-owned rows
# ---------------------------------------------------------------------------

class AppendOnlyError(Exception):
    """Raised when code tries to rewrite or remove an append-only row."""


class DealNotificationEntry(models.Model):
    """One entry of a deal's per-member notification history.

    Rows are only ever inserted.
    """

    deal = models.ForeignKey(
        Deal,
        on_delete=models.CASCADE,
        related_name="notification_entries",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="deal_notification_entries",
    )
    sent_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Deal notification entry"
        verbose_name_plural = "Deal notification history"
        ordering = ["sent_at"]
        indexes = [
            models.Index(fields=["deal", "user", "sent_at"], name="deal_notif_user_sent_idx"),
        ]

    def __str__(self):
        return f"{self.deal_id} -> {self.user_id} @ {self.sent_at:%Y-%m-%d %H:%M}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AppendOnlyError("Notification history entries cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AppendOnlyError("Notification history entries cannot be deleted.")


class DealLedgerEntry(models.Model):
    """Marker proving that a commitment event was applied to the deal totals.

    The unique ``(commitment, event)`` pair is what makes the aggregate
    update happen at most once per approval.
    """

    class Event(models.TextChoices):
        APPROVAL = "approval", "Approval"

    deal = models.ForeignKey(
        Deal,
        on_delete=models.CASCADE,
        related_name="ledger_entries",
    )
    commitment = models.ForeignKey(
        "commitments.Commitment",
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )
    event = models.CharField(max_length=20, choices=Event.choices, default=Event.APPROVAL)
    quantity = models.PositiveIntegerField()
    revenue = models.DecimalField(max_digits=14, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Deal ledger entry"
        verbose_name_plural = "Deal ledger"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["commitment", "event"], name="ledger_commitment_event_unique"),
        ]

    def __str__(self):
        return f"{self.event} {self.commitment_id}: +{self.quantity} / +{self.revenue}"
