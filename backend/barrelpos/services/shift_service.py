# Overview: Cash shifts; open/close, order attachment and drawer reconciliation.

"""
ShiftLedger.

RULES:
- A user has at most one OPEN shift across all stores.
- Orders join the open shift of the cashier who creates them, or of the
  cashier who later records their payment. Orders with no shift are valid
  and stay out of every drawer count.
- Closing groups COMPLETED payments on the shift's orders by tender class.
  Cash is counted net of change handed back.
- Deleting a shift is a soft delete and never touches its orders.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import (
    BusinessRuleError,
    NoActiveShiftError,
    ShiftAlreadyOpenError,
    ValidationError,
    INVALID_SHIFT_STATUS,
)
from ..extensions import db
from ..models import Order, Payment, Shift
from ..models.orders import ORDER_COMPLETED, PAYMENT_COMPLETED
from ..models.shifts import SHIFT_CLOSED, SHIFT_OPEN, SHIFT_RECONCILED, SHIFT_SUSPENDED
from barrelpos.time_utils import utcnow
from .catalog_service import get_store
from .concurrency import run_with_retry
from .document_service import SHIFT_DOCUMENT, next_document_number
from .persistence import save_all
from .stores import shifts


CASH_METHODS = ("CASH",)
CARD_METHODS = ("CREDIT_CARD", "DEBIT_CARD")


def tender_class(method: str) -> str:
    if method in CASH_METHODS:
        return "cash"
    if method in CARD_METHODS:
        return "card"
    return "other"


def _non_negative(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer", errors={field: "invalid"})
    return value


def find_open_shift(user_id: int, *, store_id: int | None = None) -> Shift | None:
    return shifts.open_for_user(user_id, store_id=store_id)


def attach_order(shift: Shift, order: Order) -> Order:
    """Attach an order to an open shift. Caller persists."""
    if shift.status != SHIFT_OPEN:
        raise NoActiveShiftError(f"Shift {shift.shift_number} is not open")
    order.shift_id = shift.id
    order.shift = shift
    return order


def open_shift(user_id: int, store_id: int, starting_cash_cents: int = 0, notes: str | None = None) -> Shift:
    _non_negative(starting_cash_cents, "starting_cash_cents")

    def _op():
        get_store(store_id)
        existing = shifts.open_for_user(user_id, lock=True)
        if existing is not None:
            raise ShiftAlreadyOpenError(
                f"User already has an open shift ({existing.shift_number})",
                details={"shift_id": existing.id},
            )
        shift = Shift(
            shift_number=next_document_number(store_id=store_id, document_type=SHIFT_DOCUMENT),
            store_id=store_id,
            user_id=user_id,
            status=SHIFT_OPEN,
            start_time=utcnow(),
            starting_cash_cents=starting_cash_cents,
            notes=notes,
        )
        save_all([shift], actor_id=user_id)
        return shift

    shift = run_with_retry(_op)
    current_app.logger.info(
        "Shift %s opened by user %s with %s cents", shift.shift_number, user_id, starting_cash_cents
    )
    return shift


def sales_breakdown(shift_id: int) -> dict:
    """Completed payments on the shift's orders grouped by tender class."""
    rows = (
        db.session.query(
            Payment.payment_method,
            func.coalesce(func.sum(Payment.amount_cents - Payment.change_cents), 0),
        )
        .join(Order, Order.id == Payment.order_id)
        .filter(
            Order.shift_id == shift_id,
            Order.is_deleted.is_(False),
            Payment.status == PAYMENT_COMPLETED,
            Payment.is_deleted.is_(False),
        )
        .group_by(Payment.payment_method)
        .all()
    )
    totals = {"cash": 0, "card": 0, "other": 0}
    for method, amount in rows:
        totals[tender_class(method)] += int(amount or 0)

    completed_orders = (
        db.session.query(func.count(Order.id))
        .filter(Order.shift_id == shift_id, Order.status == ORDER_COMPLETED, Order.is_deleted.is_(False))
        .scalar()
    )
    return {
        "cash_sales_cents": totals["cash"],
        "card_sales_cents": totals["card"],
        "other_sales_cents": totals["other"],
        "total_sales_cents": totals["cash"] + totals["card"] + totals["other"],
        "total_orders": int(completed_orders or 0),
    }


def close_shift(shift_id: int, ending_cash_cents: int, actor_user_id: int | None = None,
                notes: str | None = None) -> Shift:
    """
    Close an OPEN shift and reconcile the drawer.

    expected_cash = starting_cash + cash_sales
    cash_difference = ending_cash - expected_cash (negative means short)
    """
    _non_negative(ending_cash_cents, "ending_cash_cents")

    def _op():
        shift = shifts.find(shift_id, lock=True)
        if shift is None or shift.status != SHIFT_OPEN:
            raise NoActiveShiftError(f"No open shift with id {shift_id}")

        breakdown = sales_breakdown(shift.id)
        shift.cash_sales_cents = breakdown["cash_sales_cents"]
        shift.card_sales_cents = breakdown["card_sales_cents"]
        shift.other_sales_cents = breakdown["other_sales_cents"]
        shift.total_sales_cents = breakdown["total_sales_cents"]
        shift.total_orders = breakdown["total_orders"]

        shift.ending_cash_cents = ending_cash_cents
        shift.expected_cash_cents = shift.starting_cash_cents + shift.cash_sales_cents
        shift.cash_difference_cents = ending_cash_cents - shift.expected_cash_cents
        shift.end_time = utcnow()
        shift.status = SHIFT_CLOSED
        shift.closed_by_user_id = actor_user_id
        if notes:
            shift.notes = f"{shift.notes}\n{notes}" if shift.notes else notes

        save_all([shift], actor_id=actor_user_id)
        return shift

    shift = run_with_retry(_op)
    if shift.cash_difference_cents:
        current_app.logger.warning(
            "Shift %s closed with cash difference %s cents", shift.shift_number, shift.cash_difference_cents
        )
    else:
        current_app.logger.info("Shift %s closed; drawer balanced", shift.shift_number)
    return shift


def _set_status(shift_id: int, expected: str, new_status: str, actor_user_id: int | None) -> Shift:
    def _op():
        shift = shifts.get(shift_id, lock=True)
        if shift.status != expected:
            raise BusinessRuleError(
                f"Shift {shift.shift_number} is {shift.status}, expected {expected}",
                code=INVALID_SHIFT_STATUS,
            )
        if new_status == SHIFT_OPEN:
            other = shifts.open_for_user(shift.user_id, lock=True)
            if other is not None and other.id != shift.id:
                raise ShiftAlreadyOpenError(
                    f"User already has an open shift ({other.shift_number})",
                    details={"shift_id": other.id},
                )
        shift.status = new_status
        save_all([shift], actor_id=actor_user_id)
        return shift

    return run_with_retry(_op)


def suspend_shift(shift_id: int, actor_user_id: int | None = None) -> Shift:
    return _set_status(shift_id, SHIFT_OPEN, SHIFT_SUSPENDED, actor_user_id)


def resume_shift(shift_id: int, actor_user_id: int | None = None) -> Shift:
    return _set_status(shift_id, SHIFT_SUSPENDED, SHIFT_OPEN, actor_user_id)


def reconcile_shift(shift_id: int, actor_user_id: int | None = None) -> Shift:
    return _set_status(shift_id, SHIFT_CLOSED, SHIFT_RECONCILED, actor_user_id)


def delete_shift(shift_id: int, actor_user_id: int | None = None) -> Shift:
    def _op():
        shift = shifts.get(shift_id, lock=True)
        if shift.status == SHIFT_OPEN:
            raise BusinessRuleError("Close the shift before deleting it", code=INVALID_SHIFT_STATUS)
        save_all([], deleted=[shift], actor_id=actor_user_id)
        return shift

    return run_with_retry(_op)


def get_current_shift(user_id: int) -> Shift | None:
    return shifts.open_for_user(user_id)


def current_shift_summary(user_id: int) -> dict | None:
    """Running totals for the user's open shift, or None when there is none."""
    shift = get_current_shift(user_id)
    if shift is None:
        return None
    breakdown = sales_breakdown(shift.id)
    return {
        **shift.to_dict(),
        **breakdown,
        "expected_cash_cents": shift.starting_cash_cents + breakdown["cash_sales_cents"],
    }


def list_shifts(*, store_id: int | None = None, status: str | None = None, limit: int = 50) -> list[Shift]:
    query = shifts.query()
    if store_id is not None:
        query = query.filter(Shift.store_id == store_id)
    if status:
        query = query.filter(Shift.status == status)
    return query.order_by(Shift.start_time.desc()).limit(max(1, min(limit, 500))).all()
