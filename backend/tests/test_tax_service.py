"""GST arithmetic: integer cents, basis points, half away from zero."""

import pytest

from barrelpos.services.tax_service import (
    LineTotals,
    PriceBreakdown,
    gst_for,
    line_totals,
    order_totals,
    price_from_ex_gst,
    round_half_away_from_zero,
)


@pytest.mark.parametrize("numerator,denominator,expected", [
    (9090, 100, 91),     # 90.9 -> 91
    (9050, 100, 91),     # 90.5 -> 91
    (9049, 100, 90),
    (-9050, 100, -91),   # away from zero on the negative side too
    (0, 100, 0),
])
def test_round_half_away_from_zero(numerator, denominator, expected):
    assert round_half_away_from_zero(numerator, denominator) == expected


def test_round_rejects_non_positive_denominator():
    with pytest.raises(ValueError):
        round_half_away_from_zero(1, 0)


def test_price_from_ex_gst_at_ten_percent():
    assert price_from_ex_gst(909, 1000) == PriceBreakdown(909, 91, 1000)
    assert price_from_ex_gst(455, 1000) == PriceBreakdown(455, 46, 501)   # 45.5 rounds up
    assert price_from_ex_gst(0, 1000) == PriceBreakdown(0, 0, 0)


def test_inclusive_price_is_always_ex_plus_gst():
    for ex in range(0, 2000, 7):
        breakdown = price_from_ex_gst(ex, 1000)
        assert breakdown.inc_gst_cents == breakdown.ex_gst_cents + breakdown.gst_cents
        assert breakdown.gst_cents == gst_for(ex, 1000)


def test_zero_rate_has_no_gst():
    assert price_from_ex_gst(1234, 0) == PriceBreakdown(1234, 0, 1234)


def test_price_rejects_floats_and_negative_rates():
    with pytest.raises(TypeError):
        price_from_ex_gst(9.09, 1000)
    with pytest.raises(ValueError):
        price_from_ex_gst(909, -1)


def test_line_totals_multiply_unit_values():
    unit = price_from_ex_gst(909, 1000)
    line = line_totals(unit, 3)
    assert line == LineTotals(subtotal_cents=2727, tax_cents=273, total_cents=3000)


def test_line_discount_comes_off_the_total():
    unit = price_from_ex_gst(909, 1000)
    line = line_totals(unit, 2, discount_cents=150)
    assert line.subtotal_cents == 1818
    assert line.tax_cents == 182
    assert line.total_cents == 1850
    assert not line.clamped


def test_line_discount_larger_than_line_clamps_to_zero():
    unit = price_from_ex_gst(909, 1000)
    line = line_totals(unit, 1, discount_cents=5000)
    assert line.total_cents == 0
    assert line.clamped


def test_order_totals_sum_of_lines_minus_discount():
    unit = price_from_ex_gst(909, 1000)
    lines = [line_totals(unit, 2), line_totals(price_from_ex_gst(455, 1000), 1, discount_cents=1)]
    totals = order_totals(lines, discount_cents=100)

    assert totals.total_cents == sum(line.total_cents for line in lines) - 100
    assert totals.total_cents == totals.subtotal_cents - totals.discount_cents + totals.tax_cents
    assert totals.tax_cents == 182 + 46


def test_order_discount_larger_than_items_clamps_to_zero():
    totals = order_totals([line_totals(price_from_ex_gst(909, 1000), 1)], discount_cents=5000)
    assert totals.total_cents == 0
    assert totals.clamped


def test_empty_order_totals_are_zero():
    totals = order_totals([])
    assert (totals.subtotal_cents, totals.tax_cents, totals.total_cents) == (0, 0, 0)
