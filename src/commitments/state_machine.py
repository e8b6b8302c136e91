"""Commitment status transitions and the guards attached to them.

A commitment starts ``pending``.  ``approved``, ``declined`` and
``cancelled`` are terminal: nothing leaves them, not even a repeated
distributor decision.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from commitments.exceptions import (
    BelowMinimumQuantity,
    InvalidOverride,
    InvalidStatus,
    PriceMismatch,
    UnknownSize,
    ValidationError,
)
from commitments.models import Commitment
from commitments.pricing import (
    DEFAULT_TOLERANCE,
    ZERO,
    SizeLine,
    quantize_money,
    reconciles,
    to_decimal,
)

Status = Commitment.Status

MEMBER = "member"
DISTRIBUTOR = "distributor"
ACTORS = (MEMBER, DISTRIBUTOR)

# (actor, current status) -> statuses that actor may move the commitment to.
TRANSITIONS = {
    (MEMBER, Status.PENDING): frozenset({Status.PENDING, Status.CANCELLED}),
    (DISTRIBUTOR, Status.PENDING): frozenset({
        Status.PENDING,
        Status.APPROVED,
        Status.DECLINED,
        Status.CANCELLED,
    }),
}


def is_terminal(status) -> bool:
    return status in Commitment.TERMINAL_STATUSES


def validate_status_value(status) -> str:
    if status not in Status.values:
        raise InvalidStatus(
            f"Unknown status '{status}'. Expected one of: {', '.join(Status.values)}."
        )
    return status


def check_transition(current, target, actor) -> None:
    """Raise :class:`InvalidStatus` unless *actor* may move *current* to *target*."""
    validate_status_value(target)
    if actor not in ACTORS:
        raise InvalidStatus(f"Unknown actor '{actor}'.")
    if is_terminal(current):
        raise InvalidStatus(f"Commitment is already {current}; it can no longer change.")
    allowed = TRANSITIONS.get((actor, current), frozenset())
    if target not in allowed:
        raise InvalidStatus(f"A {actor} cannot move a {current} commitment to {target}.")


def ensure_mutable(commitment) -> None:
    if commitment.is_terminal:
        raise InvalidStatus(
            f"Commitment is already {commitment.status}; its sizes and prices are final."
        )


# ---------------------------------------------------------------------------
# Size line normalisation
# ---------------------------------------------------------------------------

def normalize_size_quantities(size_lines: Iterable[Mapping]) -> dict:
    """Turn ``[{"size": ..., "quantity": ...}, ...]`` into ``{size: quantity}``.

    Duplicate sizes are summed.  Zero lines are kept so the caller can
    still validate the size names.
    """
    quantities = {}
    for raw in size_lines:
        size = str(raw["size"]).strip()
        try:
            quantity = int(raw["quantity"])
        except (TypeError, ValueError):
            raise ValidationError(f"Quantity for size '{size}' must be a whole number.") from None
        if quantity < 0:
            raise ValidationError(f"Quantity for size '{size}' cannot be negative.")
        quantities[size] = quantities.get(size, 0) + quantity
    return quantities


def ensure_known_sizes(sizes: Iterable[str], catalogue: Mapping) -> None:
    unknown = set(sizes) - set(catalogue)
    if unknown:
        raise UnknownSize(unknown)


def catalogue_lines(quantities: Mapping[str, int], catalogue: Mapping) -> list:
    """Build :class:`SizeLine` objects at catalogue prices, dropping zero lines."""
    ensure_known_sizes(quantities, catalogue)
    return [
        SizeLine(size=size, quantity=quantity, price_per_unit=catalogue[size].discount_price)
        for size, quantity in sorted(quantities.items())
        if quantity > 0
    ]


# ---------------------------------------------------------------------------
# Member revision
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RevisionPlan:
    target_status: str
    lines: tuple

    @property
    def cancels(self) -> bool:
        return self.target_status == Status.CANCELLED


def plan_revision(commitment, size_lines: Iterable[Mapping], catalogue: Mapping) -> RevisionPlan:
    """Decide what a member's size edit means for *commitment*.

    All-zero quantities are a cancellation; anything else re-prices the
    commitment on its non-zero lines.
    """
    ensure_mutable(commitment)
    lines = catalogue_lines(normalize_size_quantities(size_lines), catalogue)
    target = Status.PENDING if lines else Status.CANCELLED
    check_transition(commitment.status, target, MEMBER)
    return RevisionPlan(target_status=target, lines=tuple(lines))


# ---------------------------------------------------------------------------
# Distributor override
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Override:
    lines: tuple
    quantity: int
    total_price: Decimal
    reference_unit_price: Decimal


def reference_unit_price(lines: Iterable[SizeLine]) -> Decimal:
    """Quantity-weighted catalogue unit price of *lines*."""
    lines = list(lines)
    quantity = sum(line.quantity for line in lines)
    if not quantity:
        return ZERO
    return sum((line.price_per_unit * line.quantity for line in lines), ZERO) / quantity


def validate_distributor_override(
    commitment,
    deal,
    modified_quantity: Optional[int] = None,
    modified_total_price=None,
    modified_size_lines: Optional[Iterable[Mapping]] = None,
    tolerance=DEFAULT_TOLERANCE,
) -> Optional[Override]:
    """Check a distributor's quantity/price override.

    Returns ``None`` when nothing is overridden.  Otherwise the override is
    priced at catalogue ``discount_price`` with no tier applied, and a
    supplied ``modified_total_price`` must match that within *tolerance*.

    Raises
    ------
    BelowMinimumQuantity
        Modified quantity under the deal minimum.
    UnknownSize
        A modified line names a size the deal does not sell.
    InvalidOverride
        A bare ``modified_quantity`` on a multi-size commitment, or a
        quantity that disagrees with the modified lines.
    PriceMismatch
        The supplied total does not reconcile.
    """
    if modified_quantity is None and modified_total_price is None and not modified_size_lines:
        return None

    minimum = deal.min_qty_for_discount
    if modified_quantity is not None:
        modified_quantity = int(modified_quantity)
        if modified_quantity < minimum:
            raise BelowMinimumQuantity(modified_quantity, minimum)

    catalogue = deal.size_catalogue()
    current = commitment.size_commitments

    if modified_size_lines:
        lines = catalogue_lines(normalize_size_quantities(modified_size_lines), catalogue)
        quantity = sum(line.quantity for line in lines)
        if modified_quantity is not None and modified_quantity != quantity:
            raise InvalidOverride(
                f"Modified quantity {modified_quantity} does not match the "
                f"modified size lines ({quantity})."
            )
    else:
        current_quantity = sum(line.quantity for line in current)
        quantity = modified_quantity if modified_quantity is not None else current_quantity
        if len(current) == 1:
            quantities = {current[0].size: quantity}
        elif quantity == current_quantity:
            quantities = {line.size: line.quantity for line in current}
        else:
            raise InvalidOverride(
                "This commitment spans several sizes; send modified size lines "
                "to change its quantity."
            )
        lines = catalogue_lines(quantities, catalogue)

    if quantity < minimum:
        raise BelowMinimumQuantity(quantity, minimum)

    lines = tuple(line.priced() for line in lines)
    expected = quantize_money(sum((line.total_price for line in lines), ZERO))
    if modified_total_price is not None:
        supplied = to_decimal(modified_total_price)
        if not reconciles(supplied, expected, tolerance):
            raise PriceMismatch(supplied, expected)

    return Override(
        lines=lines,
        quantity=quantity,
        total_price=expected,
        reference_unit_price=reference_unit_price(lines),
    )
