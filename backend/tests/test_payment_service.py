"""Payments: tender validation, change, auto-completion and status changes."""

import pytest

from barrelpos.errors import (
    BusinessRuleError,
    InvalidPaymentAmountError,
    ValidationError,
    ORDER_NOT_PAYABLE,
    TENDER_EXCEEDS_BALANCE,
)
from barrelpos.extensions import db
from barrelpos.models import Payment
from barrelpos.models.orders import ORDER_COMPLETED, ORDER_PROCESSING, PAYMENT_PENDING, PAYMENT_REFUNDED
from barrelpos.services import order_service, payment_service, shift_service


@pytest.fixture
def order(cookie, cashier):
    """A $20.00 order (two cookies)."""
    return order_service.create_order(cookie.store_id, cashier.id, items=[{"product_id": cookie.id, "quantity": 2}])


@pytest.mark.parametrize("amount", [0, -100, 10.5, "1000", True])
def test_invalid_amount_is_rejected_before_touching_the_order(order, cashier, amount):
    with pytest.raises(InvalidPaymentAmountError):
        payment_service.record_payment(order.id, amount, "CASH", cashier.id)
    assert db.session.query(Payment).count() == 0


def test_unknown_method_is_rejected(order, cashier):
    with pytest.raises(ValidationError):
        payment_service.record_payment(order.id, 500, "BITCOIN", cashier.id)


def test_card_last_four_must_be_digits(order, cashier):
    with pytest.raises(ValidationError):
        payment_service.record_payment(order.id, 500, "CREDIT_CARD", cashier.id, card_last_four="42a2")


def test_partial_payment_moves_order_to_processing(order, cashier):
    payment_service.record_payment(order.id, 500, "CREDIT_CARD", cashier.id, card_last_four="4242")

    order = order_service.get_order(order.id)
    assert order.status == ORDER_PROCESSING
    assert order.paid_cents == 500
    assert order.balance_due_cents == 1500


def test_cash_overpayment_gives_change_and_completes(order, cookie, cashier):
    payment = payment_service.record_payment(order.id, 2500, "CASH", cashier.id)

    order = order_service.get_order(order.id)
    assert payment.change_cents == 500
    assert payment.net_cents == 2000
    assert order.status == ORDER_COMPLETED
    assert order.paid_cents == 2500
    assert order.change_cents == 500
    assert cookie.stock_quantity == 18


def test_split_tender_completes_on_final_payment(order, cashier):
    payment_service.record_payment(order.id, 1200, "DEBIT_CARD", cashier.id)
    payment_service.record_payment(order.id, 800, "CASH", cashier.id)

    order = order_service.get_order(order.id)
    assert order.status == ORDER_COMPLETED
    summary = payment_service.get_payment_summary(order.id)
    assert summary["by_method"] == {"DEBIT_CARD": 1200, "CASH": 800}
    assert summary["balance_due_cents"] == 0


def test_non_cash_tender_cannot_exceed_balance(order, cashier):
    with pytest.raises(BusinessRuleError) as exc:
        payment_service.record_payment(order.id, 2001, "CREDIT_CARD", cashier.id)
    assert exc.value.code == TENDER_EXCEEDS_BALANCE
    assert exc.value.details == {"balance_cents": 2000, "amount_cents": 2001}


def test_completed_order_takes_no_more_payments(order, cashier):
    payment_service.record_payment(order.id, 2000, "CASH", cashier.id)
    with pytest.raises(BusinessRuleError) as exc:
        payment_service.record_payment(order.id, 100, "CASH", cashier.id)
    assert exc.value.code == ORDER_NOT_PAYABLE


def test_pending_payment_does_not_count_until_completed(order, cashier, manager):
    payment = payment_service.record_payment(order.id, 2000, "MOBILE_PAYMENT", cashier.id, status=PAYMENT_PENDING)
    order = order_service.get_order(order.id)
    assert order.paid_cents == 0
    assert order.status == ORDER_PROCESSING

    payment_service.update_payment_status(payment.id, "COMPLETED", actor_user_id=manager.id)

    order = order_service.get_order(order.id)
    assert order.paid_cents == 2000
    assert order.status == ORDER_COMPLETED


def test_failed_payment_no_longer_counts(order, cashier, manager):
    payment = payment_service.record_payment(order.id, 1500, "CREDIT_CARD", cashier.id)
    payment_service.update_payment_status(payment.id, "FAILED", actor_user_id=manager.id)

    order = order_service.get_order(order.id)
    assert order.paid_cents == 0
    assert payment_service.get_order_payments(order.id) == []
    assert len(payment_service.get_order_payments(order.id, include_inactive=True)) == 1


def test_invalid_status_is_rejected(order, cashier):
    payment = payment_service.record_payment(order.id, 100, "CASH", cashier.id)
    with pytest.raises(ValidationError):
        payment_service.update_payment_status(payment.id, "LOST")


def test_refund_marks_payments_refunded(order, cashier, manager):
    payment = payment_service.record_payment(order.id, 2000, "CASH", cashier.id)
    order_service.refund_order(order.id, "Wrong order", manager.id)

    assert payment.status == PAYMENT_REFUNDED
    assert order_service.get_order(order.id).paid_cents == 0


def test_payment_attaches_shiftless_order_to_payers_shift(order, cashier):
    assert order.shift_id is None
    shift = shift_service.open_shift(cashier.id, order.store_id, 0)

    payment_service.record_payment(order.id, 2000, "CASH", cashier.id)
    assert order_service.get_order(order.id).shift_id == shift.id
