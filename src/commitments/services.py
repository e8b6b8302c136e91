"""Commitment workflow: create, revise, cancel and decide on commitments.

Every operation runs in one database transaction.  The commitment row is
locked with ``select_for_update()`` and written back with an optimistic
``version`` check, so two requests racing on the same commitment cannot
both win: the loser gets :class:`~commitments.exceptions.Conflict`.
Validation happens before any write; a rejected call leaves the
commitment exactly as it was.

Notifications, audit entries, e-mails and SMS are queued to run after
commit and can never fail the operation that triggered them.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from accounts.models import User
from commitments.exceptions import (
    BelowMinimumQuantity,
    Conflict,
    InvalidStatus,
    NotFound,
    StorageError,
    UnknownSize,
    ValidationError,
)
from commitments.models import Commitment, CommitmentStatusChange, SizeCommitment
from commitments.pricing import price_size_lines
from commitments.state_machine import (
    DISTRIBUTOR,
    MEMBER,
    catalogue_lines,
    check_transition,
    normalize_size_quantities,
    plan_revision,
    validate_distributor_override,
    validate_status_value,
)
from core.services import safe_audit_log
from deals.ledger import record_approval
from deals.models import Deal
from notifications.models import Notification
from notifications.services import (
    create_notification,
    notify_users_by_role,
    queue_member_messages,
    run_after_commit,
)

logger = logging.getLogger("groupbuy")

Status = Commitment.Status


@dataclass(frozen=True)
class Revised:
    commitment: Commitment
    cancelled = False


@dataclass(frozen=True)
class Cancelled:
    commitment: Commitment
    cancelled = True


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _pk(value):
    return getattr(value, "pk", value)


def _get_or_not_found(queryset, entity, pk):
    try:
        return queryset.get(pk=_pk(pk))
    except (ObjectDoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise NotFound(entity, _pk(pk)) from None


def load_deal(deal_id) -> Deal:
    return _get_or_not_found(
        Deal.objects.select_related("distributor").prefetch_related("sizes", "discount_tiers"),
        "Deal",
        deal_id,
    )


def load_user(user_id) -> User:
    return _get_or_not_found(User.objects.filter(is_active=True), "User", user_id)


def load_commitment(commitment_id) -> Commitment:
    return _get_or_not_found(
        Commitment.objects.select_related("deal", "user").prefetch_related("size_lines"),
        "Commitment",
        commitment_id,
    )


def _lock_commitment(commitment_id) -> Commitment:
    return _get_or_not_found(
        Commitment.objects.select_for_update(of=("self",)),
        "Commitment",
        commitment_id,
    )


def _ensure_owner(commitment, user_id):
    # Foreign commitments look the same as missing ones.
    if str(commitment.user_id) != str(_pk(user_id)):
        raise NotFound("Commitment", commitment.pk)


def _check_version(commitment, expected_version):
    if expected_version is None:
        return
    try:
        expected_version = int(expected_version)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid expected_version '{expected_version}'.") from None
    if expected_version != commitment.version:
        raise Conflict(
            f"Commitment was modified (version {commitment.version}, "
            f"expected {expected_version}); reload and retry.",
            commitment_id=commitment.pk,
        )


# ---------------------------------------------------------------------------
# Persistence helpers
# ---------------------------------------------------------------------------

@contextmanager
def _unit_of_work(operation):
    try:
        with transaction.atomic():
            yield
    except IntegrityError as exc:
        # Another request won a unique constraint, e.g. one pending commitment per member and deal.
        logger.warning("%s lost a race: %s", operation, exc)
        raise Conflict(f"{operation} raced with another request; reload and retry.") from exc
    except DatabaseError as exc:
        logger.error("%s failed at the database layer: %s", operation, exc, exc_info=True)
        raise StorageError(f"{operation} could not be saved.") from exc


def _write_commitment(commitment, **changes):
    """``UPDATE ... WHERE id = ? AND version = ?`` and bump the version."""
    now = timezone.now()
    updated = Commitment.objects.filter(pk=commitment.pk, version=commitment.version).update(
        version=F("version") + 1,
        updated_at=now,
        **changes,
    )
    if updated != 1:
        raise Conflict(commitment_id=commitment.pk)
    for field, value in changes.items():
        setattr(commitment, field, value)
    commitment.version += 1
    commitment.updated_at = now


def _replace_lines(commitment, kind, lines):
    SizeCommitment.objects.filter(commitment=commitment, kind=kind).delete()
    SizeCommitment.objects.bulk_create([
        SizeCommitment(
            commitment=commitment,
            kind=kind,
            size=line.size,
            quantity=line.quantity,
            price_per_unit=line.price_per_unit,
            total_price=line.total_price,
        )
        for line in lines
    ])
    getattr(commitment, "_prefetched_objects_cache", {}).pop("size_lines", None)


def _pricing_fields(result):
    return {
        "total_price": result.final_total,
        "applied_discount_tier": result.applied_tier,
        "applied_discount_percent": result.discount_percent,
    }


def _tolerance():
    return Decimal(str(settings.PRICE_TOLERANCE))


def _line_dicts(lines):
    return [
        {
            "size": line.size,
            "quantity": line.quantity,
            "price_per_unit": str(line.price_per_unit),
            "total_price": str(line.total_price),
        }
        for line in lines
    ]


def commitment_snapshot(commitment) -> dict:
    """JSON-safe picture of a commitment's status, lines and totals."""
    return {
        "status": commitment.status,
        "total_price": str(commitment.total_price),
        "quantity": commitment.total_quantity,
        "size_commitments": _line_dicts(commitment.size_commitments),
        "applied_discount_percent": str(commitment.applied_discount_percent),
        "modified_by_distributor": commitment.modified_by_distributor,
        "modified_total_price": (
            str(commitment.modified_total_price)
            if commitment.modified_total_price is not None else None
        ),
        "modified_size_commitments": _line_dicts(commitment.modified_size_commitments),
        "distributor_response": commitment.distributor_response,
        "payment_status": commitment.payment_status,
        "version": commitment.version,
    }


# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------

def _currency(amount):
    return f"{settings.CURRENCY_SYMBOL}{amount}"


def _member_template_data(commitment, deal, **extra):
    data = {
        "commitment_id": str(commitment.pk),
        "user_name": commitment.user.display_name,
        "deal_name": deal.name,
        "quantity": commitment.final_quantity,
        "total_price": str(commitment.final_total_price),
        "discount_percent": str(commitment.applied_discount_percent),
        "size_lines": _line_dicts(commitment.size_commitments),
    }
    data.update(extra)
    return data


def _notify_admins(commitment, sender, sub_type, title, message):
    notify_users_by_role(
        User.Role.ADMIN,
        sender=sender,
        type=Notification.Type.COMMITMENT,
        sub_type=sub_type,
        title=title,
        message=message,
        related_id=commitment.pk,
        related_model="Commitment",
        priority=Notification.Priority.MEDIUM,
    )


def _audit(actor, action, commitment, message, before=None, after=None):
    def _write():
        safe_audit_log(
            actor=actor,
            action=action,
            entity_type="Commitment",
            entity_id=commitment.pk,
            message=message,
            before=before,
            after=after,
        )
    return _write


def _queue_member_update(commitment, deal, sub_type, template_key, title, message, before=None):
    """Tell the distributor and admins about a member's own change."""
    member = commitment.user
    after = commitment_snapshot(commitment)
    template_data = _member_template_data(commitment, deal)

    run_after_commit(
        lambda: create_notification(
            recipient=deal.distributor,
            sender=member,
            type=Notification.Type.COMMITMENT,
            sub_type=sub_type,
            title=title,
            message=message,
            related_id=commitment.pk,
            related_model="Commitment",
            priority=Notification.Priority.HIGH,
        ),
        lambda: _notify_admins(commitment, member, sub_type, title, message),
        _audit(member, sub_type.upper(), commitment, message, before=before, after=after),
        lambda: queue_member_messages(member, template_key, template_data),
    )


# ---------------------------------------------------------------------------
# create_commitment
# ---------------------------------------------------------------------------

def _requested_quantities(quantity_or_size_lines, catalogue):
    if isinstance(quantity_or_size_lines, bool):
        raise ValidationError("Quantity must be a whole number.")
    if isinstance(quantity_or_size_lines, int):
        if len(catalogue) != 1:
            raise UnknownSize(
                catalogue,
                message="This deal is sold in several sizes; commit to each size separately.",
            )
        if quantity_or_size_lines < 0:
            raise ValidationError("Quantity cannot be negative.")
        (size,) = catalogue
        return {size: quantity_or_size_lines}
    return normalize_size_quantities(quantity_or_size_lines)


def create_commitment(deal_id, user_id, quantity_or_size_lines) -> Commitment:
    """Create a pending commitment, or re-price the member's live one.

    Parameters
    ----------
    deal_id : uuid
        The deal to commit to; it must be active.
    user_id : uuid
        The committing member.
    quantity_or_size_lines : int or list of dict
        A plain quantity for single-size deals, otherwise
        ``[{"size": ..., "quantity": ...}, ...]``.  Unit prices always come
        from the deal catalogue.

    Returns
    -------
    Commitment
    """
    with _unit_of_work("create_commitment"):
        deal = load_deal(deal_id)
        user = load_user(user_id)
        if not deal.is_active:
            raise InvalidStatus(f"Deal '{deal.name}' is not active.")
        if deal.has_expired:
            raise InvalidStatus(f"Deal '{deal.name}' has ended.")

        catalogue = deal.size_catalogue()
        lines = catalogue_lines(_requested_quantities(quantity_or_size_lines, catalogue), catalogue)
        if not lines:
            raise BelowMinimumQuantity(0, deal.min_qty_for_discount)
        result = price_size_lines(lines, deal.min_qty_for_discount, deal.ordered_tiers())

        existing = (
            Commitment.objects
            .select_for_update(of=("self",))
            .filter(user=user, deal=deal, status=Status.PENDING)
            .order_by("created_at")
            .first()
        )
        if existing is not None:
            before = commitment_snapshot(existing)
            _write_commitment(existing, **_pricing_fields(result))
            _replace_lines(existing, SizeCommitment.Kind.ORIGINAL, result.lines)
            commitment, created = existing, False
        else:
            before = None
            commitment = Commitment.objects.create(
                user=user,
                deal=deal,
                status=Status.PENDING,
                **_pricing_fields(result),
            )
            _replace_lines(commitment, SizeCommitment.Kind.ORIGINAL, result.lines)
            created = True

        commitment.user = user
        message = (
            f"{user.display_name} committed to {result.total_quantity} units of "
            f"{deal.name} for {_currency(result.final_total)}."
        )
        _queue_member_update(
            commitment,
            deal,
            sub_type="commitment_created" if created else "commitment_updated",
            template_key="commitment_created" if created else "commitment_updated",
            title="New commitment" if created else "Commitment updated",
            message=message,
            before=before,
        )

    logger.info(
        "Commitment %s %s: deal=%s user=%s qty=%s total=%s tier=%s",
        commitment.pk,
        "created" if created else "re-priced",
        deal.pk,
        user.pk,
        result.total_quantity,
        result.final_total,
        result.discount_percent,
    )
    return commitment


# ---------------------------------------------------------------------------
# revise_commitment_sizes
# ---------------------------------------------------------------------------

def revise_commitment_sizes(commitment_id, user_id, size_lines, expected_version=None):
    """Replace a pending commitment's size lines.

    All-zero quantities cancel the commitment and keep its last totals.

    Returns
    -------
    Revised or Cancelled
    """
    with _unit_of_work("revise_commitment_sizes"):
        commitment = _lock_commitment(commitment_id)
        _ensure_owner(commitment, user_id)
        _check_version(commitment, expected_version)
        deal = load_deal(commitment.deal_id)
        before = commitment_snapshot(commitment)

        plan = plan_revision(commitment, size_lines, deal.size_catalogue())
        if plan.cancels:
            _write_commitment(commitment, status=Status.CANCELLED, decided_at=timezone.now())
            _queue_member_update(
                commitment,
                deal,
                sub_type="commitment_cancelled",
                template_key="commitment_cancelled",
                title="Commitment cancelled",
                message=f"{commitment.user.display_name} cancelled their commitment to {deal.name}.",
                before=before,
            )
            outcome = Cancelled(commitment)
        else:
            result = price_size_lines(plan.lines, deal.min_qty_for_discount, deal.ordered_tiers())
            _write_commitment(commitment, **_pricing_fields(result))
            _replace_lines(commitment, SizeCommitment.Kind.ORIGINAL, result.lines)
            _queue_member_update(
                commitment,
                deal,
                sub_type="commitment_updated",
                template_key="commitment_updated",
                title="Commitment updated",
                message=(
                    f"{commitment.user.display_name} changed their commitment to "
                    f"{deal.name}: {result.total_quantity} units, {_currency(result.final_total)}."
                ),
                before=before,
            )
            outcome = Revised(commitment)

    logger.info(
        "Commitment %s revised by member: %s",
        commitment.pk,
        "cancelled" if outcome.cancelled else f"total={commitment.total_price}",
    )
    return outcome


# ---------------------------------------------------------------------------
# cancel_commitment
# ---------------------------------------------------------------------------

def cancel_commitment(commitment_id, user_id, expected_version=None) -> Commitment:
    """Member self-cancel of a pending commitment."""
    with _unit_of_work("cancel_commitment"):
        commitment = _lock_commitment(commitment_id)
        _ensure_owner(commitment, user_id)
        _check_version(commitment, expected_version)
        check_transition(commitment.status, Status.CANCELLED, MEMBER)
        deal = load_deal(commitment.deal_id)
        before = commitment_snapshot(commitment)

        _write_commitment(commitment, status=Status.CANCELLED, decided_at=timezone.now())
        _queue_member_update(
            commitment,
            deal,
            sub_type="commitment_cancelled",
            template_key="commitment_cancelled",
            title="Commitment cancelled",
            message=f"{commitment.user.display_name} cancelled their commitment to {deal.name}.",
            before=before,
        )

    logger.info("Commitment %s cancelled by its member.", commitment.pk)
    return commitment


# ---------------------------------------------------------------------------
# update_commitment_status
# ---------------------------------------------------------------------------

def update_commitment_status(
    commitment_id,
    status,
    distributor_response=None,
    modified_quantity=None,
    modified_total_price=None,
    modified_size_commitments=None,
    actor=None,
    expected_version=None,
) -> Commitment:
    """Apply a distributor decision to a pending commitment.

    Parameters
    ----------
    commitment_id : uuid
        The commitment to decide on.
    status : str
        Target status; ``pending`` keeps the commitment open, e.g. for a
        counter-proposal.
    distributor_response : str, optional
        Free-text message shown to the member.
    modified_quantity : int, optional
        Overridden total quantity; must meet the deal minimum.
    modified_total_price : Decimal, optional
        Overridden total; must match the catalogue price of the modified
        quantity within ``settings.PRICE_TOLERANCE``.
    modified_size_commitments : list of dict, optional
        Overridden per-size quantities.
    actor : User, optional
        The distributor or admin making the decision.
    expected_version : int, optional
        Version the caller last saw; a mismatch raises ``Conflict``.

    Returns
    -------
    Commitment
    """
    validate_status_value(status)

    with _unit_of_work("update_commitment_status"):
        commitment = _lock_commitment(commitment_id)
        _check_version(commitment, expected_version)
        check_transition(commitment.status, status, DISTRIBUTOR)
        deal = load_deal(commitment.deal_id)
        override = validate_distributor_override(
            commitment,
            deal,
            modified_quantity=modified_quantity,
            modified_total_price=modified_total_price,
            modified_size_lines=modified_size_commitments,
            tolerance=_tolerance(),
        )

        previous_status = commitment.status
        before = commitment_snapshot(commitment)
        changes = {
            "status": status,
            "modified_by_distributor": override is not None,
            "modified_total_price": override.total_price if override else None,
        }
        if distributor_response is not None:
            changes["distributor_response"] = distributor_response
        if status != Status.PENDING:
            changes["decided_at"] = timezone.now()

        _write_commitment(commitment, **changes)
        _replace_lines(commitment, SizeCommitment.Kind.MODIFIED, override.lines if override else ())
        after = commitment_snapshot(commitment)

        if status in (Status.APPROVED, Status.DECLINED):
            is_admin = bool(actor and getattr(actor, "is_admin", False))
            CommitmentStatusChange.objects.create(
                commitment=commitment,
                deal=deal,
                user_id=commitment.user_id,
                previous_status=previous_status,
                new_status=status,
                distributor_response=commitment.distributor_response,
                commitment_details={
                    "quantity": commitment.final_quantity,
                    "total_price": str(commitment.final_total_price),
                    "size_commitments": after["size_commitments"],
                    "modified_size_commitments": after["modified_size_commitments"],
                    "modified_by_distributor": commitment.modified_by_distributor,
                },
                processed_by=(
                    CommitmentStatusChange.ProcessedBy.ADMIN if is_admin
                    else CommitmentStatusChange.ProcessedBy.DISTRIBUTOR
                ),
                processed_by_user=actor,
            )

        if status == Status.APPROVED:
            record_approval(
                commitment,
                quantity=commitment.final_quantity,
                revenue=commitment.final_total_price,
            )

        member = User.objects.get(pk=commitment.user_id)
        commitment.user = member
        sender = actor or deal.distributor
        summary = f"{commitment.final_quantity} units, {_currency(commitment.final_total_price)}"
        if override:
            summary += " (modified by the distributor)"
        title = f"Commitment {status}"
        message = f"Your commitment to {deal.name} is now {status}: {summary}."
        template_data = _member_template_data(
            commitment,
            deal,
            previous_status=previous_status,
            new_status=status,
            distributor_response=commitment.distributor_response,
            modified_by_distributor=commitment.modified_by_distributor,
        )
        run_after_commit(
            lambda: create_notification(
                recipient=member,
                sender=sender,
                type=Notification.Type.COMMITMENT,
                sub_type=f"commitment_{status}",
                title=title,
                message=message,
                related_id=commitment.pk,
                related_model="Commitment",
                priority=Notification.Priority.HIGH,
            ),
            lambda: _notify_admins(
                commitment,
                sender,
                f"commitment_{status}",
                title,
                f"{member.display_name}'s commitment to {deal.name}: "
                f"{previous_status} -> {status}, {summary}.",
            ),
            _audit(
                actor,
                "COMMITMENT_STATUS_CHANGED",
                commitment,
                f"{previous_status} -> {status}; {summary}",
                before=before,
                after=after,
            ),
            lambda: queue_member_messages(member, "commitment_status_changed", template_data),
        )

    logger.info(
        "Commitment %s: %s -> %s (modified=%s, qty=%s, total=%s)",
        commitment.pk,
        previous_status,
        status,
        commitment.modified_by_distributor,
        commitment.final_quantity,
        commitment.final_total_price,
    )
    return commitment
