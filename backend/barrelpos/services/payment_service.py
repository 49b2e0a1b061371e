# Overview: Payment recording; derives paid/change and completes fully paid orders.

"""
PaymentLedger.

- amount_cents is what the customer tendered. It must be > 0.
- Non-cash tender can never exceed the remaining balance. Cash may, and the
  excess is recorded as change_cents on that payment.
- Order.paid_cents is always recomputed from COMPLETED payments, so a retried
  request cannot double count.
- The first payment moves a PENDING order to PROCESSING; once paid >= total
  the order completes in the same transaction (stock decremented there).
"""

from __future__ import annotations

from flask import current_app

from ..errors import (
    BusinessRuleError,
    InvalidPaymentAmountError,
    NotFoundError,
    ValidationError,
    ORDER_NOT_PAYABLE,
    TENDER_EXCEEDS_BALANCE,
)
from ..extensions import db
from ..models import Payment
from ..models.orders import (
    ORDER_PENDING,
    ORDER_PROCESSING,
    PAYMENT_COMPLETED,
    PAYMENT_METHODS,
    PAYMENT_PENDING,
    PAYMENT_STATUSES,
)
from barrelpos.time_utils import utcnow
from . import order_service, shift_service
from .concurrency import run_with_retry
from .persistence import save_all
from .stores import orders


PAYABLE_STATUSES = (ORDER_PENDING, ORDER_PROCESSING)
INACTIVE_PAYMENT_STATUSES = ("FAILED", "CANCELLED", "REFUNDED")


def _validate_card_last_four(value: str | None) -> str | None:
    if value is None or value == "":
        return None
    value = str(value)
    if len(value) != 4 or not value.isdigit():
        raise ValidationError("card_last_four must be 4 digits", errors={"card_last_four": "invalid"})
    return value


def record_payment(
    order_id: int,
    amount_cents: int,
    method: str,
    user_id: int,
    *,
    reference: str | None = None,
    card_last_four: str | None = None,
    card_type: str | None = None,
    notes: str | None = None,
    status: str = PAYMENT_COMPLETED,
) -> Payment:
    """
    Record a tender against an order.

    Raises InvalidPaymentAmountError before touching the database when
    amount_cents <= 0.
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise InvalidPaymentAmountError(
            "Payment amount must be greater than zero", details={"amount_cents": amount_cents}
        )
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {method}", errors={"payment_method": "invalid"})
    if status not in (PAYMENT_COMPLETED, PAYMENT_PENDING):
        raise ValidationError("New payments must be COMPLETED or PENDING", errors={"status": "invalid"})
    card_last_four = _validate_card_last_four(card_last_four)

    def _op():
        order = orders.get(order_id, lock=True)
        if order.status not in PAYABLE_STATUSES:
            raise BusinessRuleError(
                f"Order {order.order_number} is {order.status} and cannot take payments",
                code=ORDER_NOT_PAYABLE,
            )

        order_service.recompute_totals(order)
        balance = max(0, order.total_cents - order_service.paid_total(order))
        change = 0
        if method == "CASH":
            change = max(0, amount_cents - balance)
        elif amount_cents > balance:
            raise BusinessRuleError(
                f"{method} payment of {amount_cents} exceeds the balance of {balance}",
                code=TENDER_EXCEEDS_BALANCE,
                details={"balance_cents": balance, "amount_cents": amount_cents},
            )

        payment = Payment(
            order_id=order.id,
            user_id=user_id,
            amount_cents=amount_cents,
            change_cents=change if status == PAYMENT_COMPLETED else 0,
            payment_method=method,
            status=status,
            reference=reference,
            card_last_four=card_last_four,
            card_type=card_type,
            notes=notes,
            paid_at=utcnow() if status == PAYMENT_COMPLETED else None,
        )
        order.payments.append(payment)

        if order.shift_id is None:
            shift = shift_service.find_open_shift(user_id, store_id=order.store_id)
            if shift is not None:
                shift_service.attach_order(shift, order)

        if order.status == ORDER_PENDING:
            order_service.transition(order, ORDER_PROCESSING)

        save_all([payment, order], actor_id=user_id, commit=False)
        order_service.recompute_paid(order)

        if status == PAYMENT_COMPLETED and order.paid_cents >= order.total_cents:
            order_service._complete_inner(order, None, user_id)

        save_all([order], actor_id=user_id)
        return payment

    payment = run_with_retry(_op)
    current_app.logger.info(
        "Payment %s recorded on order %s: %s %s (change %s)",
        payment.id, payment.order_id, payment.payment_method, payment.amount_cents, payment.change_cents,
    )
    return payment


def update_payment_status(payment_id: int, status: str, actor_user_id: int | None = None) -> Payment:
    """
    Move a payment to a new status and re-derive the order's paid amount.

    FAILED / CANCELLED / REFUNDED payments no longer count toward paid.
    A PENDING payment that becomes COMPLETED may complete the order.
    """
    if status not in PAYMENT_STATUSES:
        raise ValidationError(f"Invalid payment status: {status}", errors={"status": "invalid"})

    def _op():
        payment = db.session.get(Payment, payment_id)
        if payment is None or payment.is_deleted:
            raise NotFoundError(f"Payment {payment_id} not found")
        order = orders.get(payment.order_id, lock=True)

        payment.status = status
        if status == PAYMENT_COMPLETED and payment.paid_at is None:
            payment.paid_at = utcnow()
        if status in INACTIVE_PAYMENT_STATUSES:
            payment.change_cents = 0
        save_all([payment], actor_id=actor_user_id, commit=False)

        order_service.recompute_paid(order)
        if (
            status == PAYMENT_COMPLETED
            and order.status in PAYABLE_STATUSES
            and order.paid_cents >= order.total_cents
        ):
            order_service._complete_inner(order, None, actor_user_id)

        save_all([order], actor_id=actor_user_id)
        return payment

    payment = run_with_retry(_op)
    current_app.logger.info("Payment %s set to %s", payment.id, status)
    return payment


def get_order_payments(order_id: int, include_inactive: bool = False) -> list[Payment]:
    order = orders.get(order_id, include_deleted=True)
    payments = [p for p in order.payments if not p.is_deleted]
    if not include_inactive:
        payments = [p for p in payments if p.status not in INACTIVE_PAYMENT_STATUSES]
    return payments


def get_payment_summary(order_id: int) -> dict:
    order = orders.get(order_id, include_deleted=True)
    by_method: dict[str, int] = {}
    for payment in order.payments:
        if payment.status == PAYMENT_COMPLETED and not payment.is_deleted:
            by_method[payment.payment_method] = by_method.get(payment.payment_method, 0) + payment.net_cents
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "total_cents": order.total_cents,
        "paid_cents": order.paid_cents,
        "change_cents": order.change_cents,
        "balance_due_cents": order.balance_due_cents,
        "by_method": by_method,
    }
