"""Deal aggregate ledger.

Running totals on :class:`deals.models.Deal` change only through this
module, and only when a commitment is approved.  Each approval is applied
at most once: the :class:`DealLedgerEntry` marker is inserted first, and the
unique ``(commitment, event)`` constraint turns a duplicate request into a
no-op.  Totals are bumped with ``F()`` expressions so concurrent approvals
on the same deal never lose an update.
"""
import logging
from collections import OrderedDict
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from deals.models import Deal, DealLedgerEntry, DealNotificationEntry

logger = logging.getLogger("groupbuy")


def increment_deal_totals(deal_id, delta_sold: int, delta_revenue: Decimal) -> None:
    """Atomically add to a deal's ``total_sold`` and ``total_revenue``."""
    updated = Deal.objects.filter(pk=deal_id).update(
        total_sold=F("total_sold") + delta_sold,
        total_revenue=F("total_revenue") + delta_revenue,
        updated_at=timezone.now(),
    )
    if updated != 1:
        raise Deal.DoesNotExist(f"Deal {deal_id} does not exist.")


def append_notification_history(deal_id, user_id, sent_at=None) -> DealNotificationEntry:
    return DealNotificationEntry.objects.create(
        deal_id=deal_id,
        user_id=user_id,
        sent_at=sent_at or timezone.now(),
    )


@transaction.atomic
def record_approval(commitment, *, quantity: int, revenue: Decimal, now=None) -> bool:
    """Apply an approved commitment to its deal's aggregates.

    Parameters
    ----------
    commitment : Commitment
        The commitment that has just been approved.
    quantity : int
        Units to add to ``total_sold`` (the commitment's final quantity).
    revenue : Decimal
        Amount to add to ``total_revenue`` (the commitment's final price).
    now : datetime, optional
        Timestamp recorded in the notification history.

    Returns
    -------
    bool
        ``True`` when the totals were updated, ``False`` when this approval
        had already been recorded.
    """
    _entry, created = DealLedgerEntry.objects.get_or_create(
        commitment=commitment,
        event=DealLedgerEntry.Event.APPROVAL,
        defaults={
            "deal_id": commitment.deal_id,
            "quantity": quantity,
            "revenue": revenue,
        },
    )
    if not created:
        logger.info(
            "Approval of commitment %s already applied to deal %s; skipping.",
            commitment.pk,
            commitment.deal_id,
        )
        return False

    increment_deal_totals(commitment.deal_id, quantity, revenue)
    append_notification_history(commitment.deal_id, commitment.user_id, sent_at=now)

    logger.info(
        "Deal %s totals +%s units / +%s revenue (commitment %s).",
        commitment.deal_id,
        quantity,
        revenue,
        commitment.pk,
    )
    return True


def notification_history(deal) -> "OrderedDict[str, list]":
    """Return ``{user_id: [sent_at, ...]}`` for *deal*, oldest first."""
    history = OrderedDict()
    for user_id, sent_at in (
        DealNotificationEntry.objects
        .filter(deal=deal)
        .order_by("sent_at", "pk")
        .values_list("user_id", "sent_at")
    ):
        history.setdefault(str(user_id), []).append(sent_at)
    return history
