# Overview: GST arithmetic; the only place money values are derived.

"""
TaxEngine.

All amounts are integer cents and rates are integer basis points
(1000 bps = 10%). GST is derived once per unit from the ex-GST price,
rounded half away from zero, and the inclusive price is always
ex + gst. Nothing here is ever re-derived from an inclusive price.

Pure functions only: no database access, no clock, no logging.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


BPS_DENOMINATOR = 10000


@dataclass(frozen=True)
class PriceBreakdown:
    ex_gst_cents: int
    gst_cents: int
    inc_gst_cents: int


@dataclass(frozen=True)
class LineTotals:
    subtotal_cents: int
    tax_cents: int
    total_cents: int
    clamped: bool = False


@dataclass(frozen=True)
class OrderTotals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int
    clamped: bool = False


def round_half_away_from_zero(numerator: int, denominator: int) -> int:
    """Integer division rounding .5 away from zero."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    sign = -1 if numerator < 0 else 1
    quotient, remainder = divmod(abs(numerator), denominator)
    if remainder * 2 >= denominator:
        quotient += 1
    return sign * quotient


def gst_for(amount_ex_gst_cents: int, rate_bps: int) -> int:
    return round_half_away_from_zero(amount_ex_gst_cents * rate_bps, BPS_DENOMINATOR)


def price_from_ex_gst(amount_ex_gst_cents: int, rate_bps: int) -> PriceBreakdown:
    """
    Split an ex-GST unit price into ex / gst / inc.

    >>> price_from_ex_gst(909, 1000)
    PriceBreakdown(ex_gst_cents=909, gst_cents=91, inc_gst_cents=1000)
    """
    if not isinstance(amount_ex_gst_cents, int) or not isinstance(rate_bps, int):
        raise TypeError("amount and rate must be integers")
    if rate_bps < 0:
        raise ValueError("rate_bps must be >= 0")
    gst = gst_for(amount_ex_gst_cents, rate_bps)
    return PriceBreakdown(
        ex_gst_cents=amount_ex_gst_cents,
        gst_cents=gst,
        inc_gst_cents=amount_ex_gst_cents + gst,
    )


def line_totals(unit: PriceBreakdown, quantity: int, discount_cents: int = 0) -> LineTotals:
    """
    subtotal = qty * unit_ex, tax = qty * unit_gst,
    total = subtotal + tax - discount (never below zero).
    """
    subtotal = quantity * unit.ex_gst_cents
    tax = quantity * unit.gst_cents
    total = subtotal + tax - (discount_cents or 0)
    clamped = total < 0
    return LineTotals(
        subtotal_cents=subtotal,
        tax_cents=tax,
        total_cents=max(0, total),
        clamped=clamped,
    )


def order_totals(lines: Iterable, discount_cents: int = 0) -> OrderTotals:
    """
    Aggregate line totals into order totals.

    `lines` yields objects with total_cents and tax_cents (LineTotals or
    OrderItem rows). Line discounts are already inside each line total, so
    subtotal = sum(total - tax) and total = subtotal - discount + tax.
    """
    subtotal = 0
    tax = 0
    for line in lines:
        subtotal += line.total_cents - line.tax_cents
        tax += line.tax_cents
    discount = discount_cents or 0
    total = subtotal - discount + tax
    clamped = total < 0
    return OrderTotals(
        subtotal_cents=subtotal,
        discount_cents=discount,
        tax_cents=tax,
        total_cents=max(0, total),
        clamped=clamped,
    )
