"""Pricing calculator: line totals, tier selection and discount rewrite."""
from decimal import Decimal

import pytest
from hypothesis import given, settings as hypothesis_settings
from hypothesis import strategies as st

from commitments.exceptions import BelowMinimumQuantity
from commitments.pricing import (
    SizeLine,
    Tier,
    apply_discount_tier,
    compute_line_totals,
    price_size_lines,
    quantize_money,
    reconciles,
    select_discount_tier,
)

TIERS = [Tier(100, Decimal("10")), Tier(200, Decimal("15")), Tier(500, Decimal("25"))]


class TestComputeLineTotals:
    def test_single_line_without_tier(self):
        totals = compute_line_totals([SizeLine("Large", 60, Decimal("10.00"))], min_qty=50)

        assert totals.total_quantity == 60
        assert totals.raw_total == Decimal("600.00")
        assert totals.lines[0].total_price == Decimal("600.00")

    def test_sums_across_sizes(self):
        totals = compute_line_totals(
            [SizeLine("Large", 30, Decimal("10.00")), SizeLine("Medium", 25, Decimal("8.00"))],
            min_qty=50,
        )
        assert totals.total_quantity == 55
        assert totals.raw_total == Decimal("500.00")

    def test_below_minimum_raises(self):
        with pytest.raises(BelowMinimumQuantity) as excinfo:
            compute_line_totals([SizeLine("Large", 49, Decimal("10.00"))], min_qty=50)
        assert excinfo.value.quantity == 49
        assert excinfo.value.minimum == 50
        assert excinfo.value.code == "BELOW_MINIMUM_QUANTITY"

    def test_zero_quantity_line_is_a_caller_error(self):
        with pytest.raises(ValueError):
            compute_line_totals(
                [SizeLine("Large", 60, Decimal("10.00")), SizeLine("Medium", 0, Decimal("8.00"))],
                min_qty=50,
            )

    def test_empty_input_is_rejected(self):
        with pytest.raises(ValueError):
            compute_line_totals([], min_qty=1)


class TestSelectDiscountTier:
    @pytest.mark.parametrize(
        "quantity, expected",
        [(99, None), (100, 100), (199, 100), (200, 200), (10_000, 500)],
    )
    def test_highest_qualifying_tier(self, quantity, expected):
        tier = select_discount_tier(quantity, TIERS)
        assert (tier.tier_quantity if tier else None) == expected

    def test_unsorted_tiers_are_handled(self):
        tier = select_discount_tier(250, list(reversed(TIERS)))
        assert tier.tier_quantity == 200


class TestApplyDiscountTier:
    def test_tier_rewrites_unit_prices(self):
        result = price_size_lines([SizeLine("Large", 120, Decimal("10.00"))], 50, TIERS)

        assert result.raw_total == Decimal("1200.00")
        assert result.final_total == Decimal("1080.00")
        assert result.applied_tier.tier_quantity == 100
        assert result.discount_percent == Decimal("10")
        assert result.lines[0].price_per_unit == Decimal("9.0000")
        assert result.lines[0].total_price == Decimal("1080.00")

    def test_tier_is_based_on_total_quantity_across_sizes(self):
        # Neither size reaches 100 on its own.
        result = price_size_lines(
            [SizeLine("Large", 60, Decimal("10.00")), SizeLine("Medium", 50, Decimal("8.00"))],
            50,
            TIERS,
        )
        assert result.applied_tier.tier_quantity == 100
        assert result.final_total == Decimal("900.00")
        assert [line.price_per_unit for line in result.lines] == [Decimal("9.0000"), Decimal("7.2000")]

    def test_no_tier_leaves_lines_untouched(self):
        lines = (SizeLine("Large", 80, Decimal("8.00"), Decimal("640.00")),)
        result = apply_discount_tier(Decimal("640.00"), 80, TIERS, lines)

        assert result.applied_tier is None
        assert result.final_total == Decimal("640.00")
        assert result.lines == lines
        assert result.discount_percent == Decimal("0.00")

    def test_without_lines_discounts_raw_total(self):
        result = apply_discount_tier(Decimal("1200"), 120, TIERS)
        assert result.final_total == Decimal("1080.00")

    def test_unit_prices_keep_six_places(self):
        result = price_size_lines(
            [SizeLine("Small", 100, Decimal("3.33"))],
            1,
            [Tier(100, Decimal("12.5"))],
        )
        # 3.33 * 0.875 = 2.91375
        assert result.lines[0].price_per_unit == Decimal("2.91375")
        assert result.final_total == Decimal("291.38")

    def test_final_total_is_discounted_raw_total(self):
        result = price_size_lines(
            [SizeLine("Large", 1000, Decimal("3.33"))],
            50,
            [Tier(100, Decimal("7.25"))],
        )
        # 3330.00 * 0.9275 = 3088.575
        assert result.lines[0].price_per_unit == Decimal("3.088575")
        assert result.final_total == Decimal("3088.58")

    def test_multi_size_total_is_rounded_once(self):
        result = price_size_lines(
            [
                SizeLine("Large", 333, Decimal("3.33")),
                SizeLine("Medium", 333, Decimal("2.21")),
                SizeLine("Small", 333, Decimal("1.17")),
            ],
            50,
            [Tier(100, Decimal("7.25"))],
        )
        assert result.raw_total == Decimal("2234.43")
        assert result.final_total == quantize_money(Decimal("2234.43") * Decimal("0.9275"))
        assert reconciles(result.final_total, sum(line.total_price for line in result.lines), Decimal("0.02"))


def test_reconciles_within_one_cent():
    assert reconciles(Decimal("900.00"), Decimal("900.01"))
    assert reconciles("900", 900)
    assert not reconciles(Decimal("900.00"), Decimal("900.02"))


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

prices = st.decimals(min_value=Decimal("1.00"), max_value=Decimal("500.00"), places=2)

size_lines = st.lists(
    st.tuples(st.sampled_from(["Small", "Medium", "Large", "Magnum"]), st.integers(1, 400), prices),
    min_size=1,
    max_size=4,
    unique_by=lambda item: item[0],
).map(lambda items: [SizeLine(size, quantity, price) for size, quantity, price in items])


@given(lines=size_lines)
@hypothesis_settings(max_examples=100)
def test_pricing_is_pure_and_repeatable(lines):
    first = price_size_lines(lines, 1, TIERS)
    second = price_size_lines(lines, 1, TIERS)

    assert first == second
    if first.applied_tier is None:
        assert first.final_total == first.raw_total
    else:
        factor = 1 - first.discount_percent / 100
        assert first.final_total == quantize_money(first.raw_total * factor)
    # Each line is rounded on its own: at most half a cent of drift per line.
    drift = abs(first.final_total - sum(line.total_price for line in first.lines))
    assert drift <= Decimal("0.005") * (len(first.lines) + 1)
    # Re-applying to the same raw input gives the same answer again.
    again = apply_discount_tier(first.raw_total, first.total_quantity, TIERS, compute_line_totals(lines, 1).lines)
    assert again == first


@given(
    price=prices,
    below=st.integers(min_value=50, max_value=99),
    above=st.integers(min_value=100, max_value=1_000),
)
@hypothesis_settings(max_examples=100)
def test_crossing_a_tier_never_raises_the_unit_cost(price, below, above):
    small = price_size_lines([SizeLine("Large", below, price)], 50, TIERS)
    large = price_size_lines([SizeLine("Large", above, price)], 50, TIERS)

    assert large.lines[0].price_per_unit < small.lines[0].price_per_unit
    assert large.final_total / above <= small.final_total / below
