"""Pricing calculator for commitment size lines.

Pure functions only: no database access, no settings, no clock.  Given the
same input they always return the same output.

Money is handled as :class:`~decimal.Decimal`.  Unit prices are quantised
to six places, which holds a two-place price times a two-place discount
exactly.  Line totals and commitment totals are rounded to cents, half
up.  Discount tiers are matched on the total quantity across every size
of a commitment, never per size.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

from commitments.exceptions import BelowMinimumQuantity

CENT = Decimal("0.01")
UNIT_PRICE_QUANTUM = Decimal("0.000001")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")
DEFAULT_TOLERANCE = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_unit_price(value) -> Decimal:
    return to_decimal(value).quantize(UNIT_PRICE_QUANTUM, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SizeLine:
    """One ``(size, quantity, unit price)`` entry of a commitment."""

    size: str
    quantity: int
    price_per_unit: Decimal
    total_price: Decimal = ZERO

    def priced(self) -> "SizeLine":
        unit = quantize_unit_price(self.price_per_unit)
        return replace(self, price_per_unit=unit, total_price=quantize_money(unit * self.quantity))


@dataclass(frozen=True)
class Tier:
    """Lightweight discount tier; model instances with the same fields also work."""

    tier_quantity: int
    tier_discount_percent: Decimal


@dataclass(frozen=True)
class LineTotals:
    lines: tuple
    raw_total: Decimal
    total_quantity: int


@dataclass(frozen=True)
class PricingResult:
    final_total: Decimal
    applied_tier: Optional[object]
    lines: tuple
    total_quantity: int
    raw_total: Decimal

    @property
    def discount_percent(self) -> Decimal:
        if self.applied_tier is None:
            return ZERO
        return to_decimal(self.applied_tier.tier_discount_percent)


# ---------------------------------------------------------------------------
# Calculations
# ---------------------------------------------------------------------------

def compute_line_totals(size_lines: Iterable[SizeLine], min_qty: int) -> LineTotals:
    """Price each line at its own unit price and sum them.

    Raises
    ------
    ValueError
        If no lines are given or a line has a non-positive quantity.  Zero
        lines mean "remove this size" and must be filtered by the caller.
    BelowMinimumQuantity
        If the summed quantity is under *min_qty*.
    """
    lines = tuple(size_lines)
    if not lines:
        raise ValueError("At least one size line is required for pricing.")
    for line in lines:
        if line.quantity <= 0:
            raise ValueError(
                f"Size line '{line.size}' has quantity {line.quantity}; "
                "filter zero lines before pricing."
            )

    total_quantity = sum(line.quantity for line in lines)
    if total_quantity < min_qty:
        raise BelowMinimumQuantity(total_quantity, min_qty)

    priced = tuple(line.priced() for line in lines)
    raw_total = sum((line.total_price for line in priced), ZERO)
    return LineTotals(lines=priced, raw_total=raw_total, total_quantity=total_quantity)


def select_discount_tier(total_quantity: int, tiers: Iterable):
    """Return the highest tier whose threshold is met, or ``None``."""
    applied = None
    for tier in sorted(tiers, key=lambda t: t.tier_quantity):
        if tier.tier_quantity > total_quantity:
            break
        applied = tier
    return applied


def apply_discount_tier(
    raw_total,
    total_quantity: int,
    tiers: Iterable,
    lines: Sequence[SizeLine] = (),
) -> PricingResult:
    """Apply the best qualifying tier to *raw_total* and to each line.

    With a tier, every unit price becomes ``price * (1 - percent / 100)``
    and line totals are recomputed from the new unit price.  The final
    total is always ``raw_total * (1 - percent / 100)`` rounded to cents;
    each rewritten line total is rounded on its own, so their sum can be
    off by up to half a cent per line.
    """
    raw_total = quantize_money(raw_total)
    lines = tuple(lines)
    tier = select_discount_tier(total_quantity, tiers)
    if tier is None:
        return PricingResult(
            final_total=raw_total,
            applied_tier=None,
            lines=lines,
            total_quantity=total_quantity,
            raw_total=raw_total,
        )

    factor = 1 - to_decimal(tier.tier_discount_percent) / HUNDRED
    updated = tuple(
        replace(line, price_per_unit=line.price_per_unit * factor).priced()
        for line in lines
    )
    final_total = quantize_money(raw_total * factor)

    return PricingResult(
        final_total=final_total,
        applied_tier=tier,
        lines=updated,
        total_quantity=total_quantity,
        raw_total=raw_total,
    )


def price_size_lines(size_lines: Iterable[SizeLine], min_qty: int, tiers: Iterable) -> PricingResult:
    totals = compute_line_totals(size_lines, min_qty)
    return apply_discount_tier(totals.raw_total, totals.total_quantity, tiers, totals.lines)


def reconciles(expected, actual, tolerance=DEFAULT_TOLERANCE) -> bool:
    """``True`` when two amounts differ by no more than *tolerance*."""
    return abs(to_decimal(expected) - to_decimal(actual)) <= to_decimal(tolerance)
