"""Service functions for the deals app."""
import logging
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from commitments.exceptions import DealValidationError, NotFound
from core.services import safe_audit_log
from deals.models import Deal, DealSize, DiscountTier

logger = logging.getLogger("groupbuy")


def _decimal(value, field):
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise DealValidationError(f"{field} must be a number.") from None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_sizes(sizes):
    """Return normalised size dicts or raise :class:`DealValidationError`."""
    if not sizes:
        raise DealValidationError("A deal needs at least one size.")

    cleaned = []
    seen = set()
    for raw in sizes:
        size = str(raw.get("size") or "").strip()
        if not size:
            raise DealValidationError("Every size needs a name.")
        if size in seen:
            raise DealValidationError(f"Size '{size}' is listed twice.")
        seen.add(size)

        original_cost = _decimal(raw.get("original_cost"), f"Original cost of '{size}'")
        discount_price = _decimal(raw.get("discount_price"), f"Discount price of '{size}'")
        if discount_price <= 0:
            raise DealValidationError(f"Discount price of '{size}' must be positive.")
        if discount_price >= original_cost:
            raise DealValidationError(
                f"Discount price of '{size}' must be lower than its original cost."
            )
        cleaned.append({
            "size": size,
            "original_cost": original_cost,
            "discount_price": discount_price,
            "bottles_per_case": raw.get("bottles_per_case"),
        })
    return cleaned


def validate_discount_tiers(tiers, min_qty_for_discount):
    """Sort *tiers* and check they climb in both quantity and percent.

    The first tier must sit above the deal minimum.
    """
    cleaned = sorted(
        (
            {
                "tier_quantity": int(tier["tier_quantity"]),
                "tier_discount_percent": _decimal(tier["tier_discount_percent"], "Tier discount"),
            }
            for tier in tiers or ()
        ),
        key=lambda tier: tier["tier_quantity"],
    )
    if not cleaned:
        return cleaned

    if cleaned[0]["tier_quantity"] <= min_qty_for_discount:
        raise DealValidationError(
            "The first discount tier must be above the minimum quantity for discount."
        )
    for tier in cleaned:
        if not Decimal("0") < tier["tier_discount_percent"] < Decimal("100"):
            raise DealValidationError("Tier discounts must be between 0 and 100 percent.")
    for previous, current in zip(cleaned, cleaned[1:]):
        if current["tier_quantity"] <= previous["tier_quantity"]:
            raise DealValidationError("Discount tier quantities must increase with each tier.")
        if current["tier_discount_percent"] <= previous["tier_discount_percent"]:
            raise DealValidationError("Discount percentages must increase with each tier.")
    return cleaned


# ---------------------------------------------------------------------------
# create_deal
# ---------------------------------------------------------------------------

@transaction.atomic
def create_deal(
    distributor,
    name,
    sizes,
    min_qty_for_discount,
    deal_ends_at,
    deal_starts_at=None,
    discount_tiers=None,
    description="",
    category="",
) -> Deal:
    """Create an active deal with its size catalogue and discount tiers.

    Parameters
    ----------
    distributor : accounts.models.User
        Owner of the deal.
    name : str
        Deal name.
    sizes : list of dict
        ``{"size", "original_cost", "discount_price", "bottles_per_case"}``.
    min_qty_for_discount : int
        Minimum total quantity of a commitment (at least 1).
    deal_ends_at : datetime
        Must be in the future and after ``deal_starts_at``.
    deal_starts_at : datetime, optional
        Defaults to now.
    discount_tiers : list of dict, optional
        ``{"tier_quantity", "tier_discount_percent"}``.

    Returns
    -------
    Deal
    """
    name = (name or "").strip()
    if not name:
        raise DealValidationError("A deal needs a name.")
    try:
        min_qty_for_discount = int(min_qty_for_discount)
    except (TypeError, ValueError):
        raise DealValidationError("Minimum quantity for discount must be a whole number.") from None
    if min_qty_for_discount < 1:
        raise DealValidationError("Minimum quantity for discount must be at least 1.")

    now = timezone.now()
    deal_starts_at = deal_starts_at or now
    if deal_ends_at is None:
        raise DealValidationError("A deal needs an end date.")
    if deal_ends_at <= deal_starts_at:
        raise DealValidationError("Deal end date must be after its start date.")
    if deal_ends_at <= now:
        raise DealValidationError("Deal end date must be in the future.")

    clean_sizes = validate_sizes(sizes)
    clean_tiers = validate_discount_tiers(discount_tiers, min_qty_for_discount)

    deal = Deal.objects.create(
        name=name,
        description=description or "",
        category=category or "",
        distributor=distributor,
        min_qty_for_discount=min_qty_for_discount,
        status=Deal.Status.ACTIVE,
        deal_starts_at=deal_starts_at,
        deal_ends_at=deal_ends_at,
    )
    DealSize.objects.bulk_create([DealSize(deal=deal, **size) for size in clean_sizes])
    DiscountTier.objects.bulk_create([DiscountTier(deal=deal, **tier) for tier in clean_tiers])

    message = (
        f"{distributor.display_name} created deal '{deal.name}' with "
        f"{len(clean_sizes)} size(s), minimum {min_qty_for_discount} units."
    )
    _after_commit_notify_admins(deal, distributor, "deal_created", "New deal", message)
    transaction.on_commit(lambda: safe_audit_log(
        actor=distributor,
        action="DEAL_CREATED",
        entity_type="Deal",
        entity_id=deal.pk,
        message=message,
    ))
    logger.info("Deal %s created by %s", deal.pk, distributor)
    return deal


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

def _after_commit_notify_admins(deal, sender, sub_type, title, message):
    from accounts.models import User
    from notifications.models import Notification
    from notifications.services import notify_users_by_role, run_after_commit

    run_after_commit(lambda: notify_users_by_role(
        User.Role.ADMIN,
        sender=sender,
        type=Notification.Type.DEAL,
        sub_type=sub_type,
        title=title,
        message=message,
        related_id=deal.pk,
        related_model="Deal",
        priority=Notification.Priority.MEDIUM,
    ))


@transaction.atomic
def set_deal_status(deal, status, actor=None) -> Deal:
    """Switch *deal* between active and inactive and tell everyone involved.

    Members with a live commitment on the deal are notified, as are admins.
    """
    from accounts.models import User
    from commitments.models import Commitment
    from notifications.models import Notification
    from notifications.services import notify_users, run_after_commit

    if status not in Deal.Status.values:
        raise DealValidationError(f"Unknown deal status '{status}'.")

    try:
        locked = Deal.objects.select_for_update().get(pk=getattr(deal, "pk", deal))
    except (Deal.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFound("Deal", getattr(deal, "pk", deal)) from None

    previous = locked.status
    if previous == status:
        return locked
    locked.status = status
    locked.save(update_fields=["status", "updated_at"])

    member_ids = (
        Commitment.objects
        .filter(deal=locked)
        .exclude(status=Commitment.Status.CANCELLED)
        .values_list("user_id", flat=True)
        .distinct()
    )
    members = list(User.objects.filter(pk__in=member_ids, is_active=True))
    sender = actor or locked.distributor
    message = f"Deal '{locked.name}' is now {status}."

    run_after_commit(lambda: notify_users(
        members,
        sender=sender,
        type=Notification.Type.DEAL,
        sub_type="deal_status_changed",
        title="Deal status changed",
        message=message,
        related_id=locked.pk,
        related_model="Deal",
        priority=(
            Notification.Priority.HIGH if status == Deal.Status.INACTIVE
            else Notification.Priority.MEDIUM
        ),
    ))
    _after_commit_notify_admins(
        locked,
        sender,
        "deal_status_changed",
        "Deal status changed",
        f"{sender.display_name if sender else 'System'} changed deal '{locked.name}' "
        f"from {previous} to {status}.",
    )
    transaction.on_commit(lambda: safe_audit_log(
        actor=actor,
        action="DEAL_STATUS_CHANGED",
        entity_type="Deal",
        entity_id=locked.pk,
        message=f"{previous} -> {status}",
        before={"status": previous},
        after={"status": status},
    ))
    logger.info("Deal %s status %s -> %s", locked.pk, previous, status)
    return locked


def deactivate_expired_deals(now=None) -> int:
    """Mark every active deal whose end date has passed as inactive.

    Returns the number of deals switched off.
    """
    now = now or timezone.now()
    expired = list(
        Deal.objects
        .filter(status=Deal.Status.ACTIVE, deal_ends_at__isnull=False, deal_ends_at__lte=now)
        .values_list("pk", flat=True)
    )
    for deal_id in expired:
        set_deal_status(deal_id, Deal.Status.INACTIVE)
    return len(expired)
