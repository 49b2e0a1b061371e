"""Shifts: one open shift per user, drawer reconciliation at close."""

import pytest

from barrelpos.errors import BusinessRuleError, NoActiveShiftError, ShiftAlreadyOpenError, ValidationError
from barrelpos.models.shifts import SHIFT_CLOSED, SHIFT_OPEN, SHIFT_RECONCILED, SHIFT_SUSPENDED
from barrelpos.services import order_service, payment_service, shift_service, stores


def _sell(cookie, cashier, quantity, method, amount):
    order = order_service.create_order(cookie.store_id, cashier.id, items=[
        {"product_id": cookie.id, "quantity": quantity},
    ])
    payment_service.record_payment(order.id, amount, method, cashier.id)
    return order


def test_open_shift_numbers_and_status(store, cashier):
    shift = shift_service.open_shift(cashier.id, store.id, 20000, notes="Morning")
    assert shift.shift_number == "SH-000001"
    assert shift.status == SHIFT_OPEN
    assert shift.starting_cash_cents == 20000
    assert shift_service.get_current_shift(cashier.id).id == shift.id


def test_one_open_shift_per_user_across_stores(store, other_store, cashier):
    shift = shift_service.open_shift(cashier.id, store.id, 0)
    with pytest.raises(ShiftAlreadyOpenError) as exc:
        shift_service.open_shift(cashier.id, other_store.id, 0)
    assert exc.value.details == {"shift_id": shift.id}


def test_negative_float_is_rejected(store, cashier):
    with pytest.raises(ValidationError):
        shift_service.open_shift(cashier.id, store.id, -1)


def test_close_reconciles_cash_net_of_change(cookie, cashier):
    shift = shift_service.open_shift(cashier.id, cookie.store_id, 10000)
    _sell(cookie, cashier, 2, "CASH", 2500)          # 500 change handed back
    _sell(cookie, cashier, 1, "CREDIT_CARD", 1000)
    _sell(cookie, cashier, 1, "GIFT_CARD", 1000)

    closed = shift_service.close_shift(shift.id, 11900, actor_user_id=cashier.id, notes="Short")

    assert closed.status == SHIFT_CLOSED
    assert closed.cash_sales_cents == 2000
    assert closed.card_sales_cents == 1000
    assert closed.other_sales_cents == 1000
    assert closed.total_sales_cents == 4000
    assert closed.total_orders == 3
    assert closed.expected_cash_cents == 12000
    assert closed.cash_difference_cents == -100
    assert closed.end_time is not None
    assert closed.closed_by_user_id == cashier.id
    assert shift_service.get_current_shift(cashier.id) is None


def test_orders_outside_the_shift_are_not_counted(cookie, cashier, manager):
    _sell(cookie, cashier, 1, "CASH", 1000)          # before any shift
    shift = shift_service.open_shift(cashier.id, cookie.store_id, 0)
    _sell(cookie, manager, 1, "CASH", 1000)          # another user's sale

    closed = shift_service.close_shift(shift.id, 0)
    assert closed.cash_sales_cents == 0
    assert closed.cash_difference_cents == 0


def test_close_requires_an_open_shift(store, cashier):
    shift = shift_service.open_shift(cashier.id, store.id, 0)
    shift_service.close_shift(shift.id, 0)
    with pytest.raises(NoActiveShiftError):
        shift_service.close_shift(shift.id, 0)


def test_current_summary_shows_running_totals(cookie, cashier):
    assert shift_service.current_shift_summary(cashier.id) is None
    shift_service.open_shift(cashier.id, cookie.store_id, 5000)
    _sell(cookie, cashier, 1, "CASH", 1000)

    summary = shift_service.current_shift_summary(cashier.id)
    assert summary["cash_sales_cents"] == 1000
    assert summary["expected_cash_cents"] == 6000
    assert summary["total_orders"] == 1


def test_suspend_resume_reconcile(store, cashier):
    shift = shift_service.open_shift(cashier.id, store.id, 0)

    assert shift_service.suspend_shift(shift.id).status == SHIFT_SUSPENDED
    assert shift_service.get_current_shift(cashier.id) is None
    assert shift_service.resume_shift(shift.id).status == SHIFT_OPEN

    with pytest.raises(BusinessRuleError):
        shift_service.reconcile_shift(shift.id)

    shift_service.close_shift(shift.id, 0)
    assert shift_service.reconcile_shift(shift.id).status == SHIFT_RECONCILED


def test_resume_refuses_when_another_shift_is_open(store, cashier):
    first = shift_service.open_shift(cashier.id, store.id, 0)
    shift_service.suspend_shift(first.id)
    shift_service.open_shift(cashier.id, store.id, 0)

    with pytest.raises(ShiftAlreadyOpenError):
        shift_service.resume_shift(first.id)


def test_delete_shift_is_soft_and_keeps_orders(cookie, cashier):
    shift = shift_service.open_shift(cashier.id, cookie.store_id, 0)
    order = _sell(cookie, cashier, 1, "CASH", 1000)

    with pytest.raises(BusinessRuleError):
        shift_service.delete_shift(shift.id)

    shift_service.close_shift(shift.id, 1000)
    shift_service.delete_shift(shift.id, actor_user_id=cashier.id)

    assert stores.shifts.find(shift.id) is None
    assert stores.shifts.find(shift.id, include_deleted=True).is_deleted
    assert order_service.get_order(order.id).shift_id == shift.id


def test_list_shifts_filters_by_status(store, cashier, manager):
    open_one = shift_service.open_shift(cashier.id, store.id, 0)
    closed_one = shift_service.open_shift(manager.id, store.id, 0)
    shift_service.close_shift(closed_one.id, 0)

    assert [s.id for s in shift_service.list_shifts(status=SHIFT_OPEN)] == [open_one.id]
    assert {s.id for s in shift_service.list_shifts(store_id=store.id)} == {open_one.id, closed_one.id}
