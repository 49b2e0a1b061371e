# Overview: Order aggregate; lifecycle, line pricing, totals and stock decrement at completion.

"""
OrderAggregate.

LIFECYCLE:
    PENDING -> PROCESSING -> COMPLETED
    PENDING / PROCESSING / ON_HOLD -> CANCELLED
    PENDING / PROCESSING -> ON_HOLD -> PROCESSING
    COMPLETED -> REFUNDED | PARTIALLY_REFUNDED
    PARTIALLY_REFUNDED -> REFUNDED

TOTALS:
- Recomputed from non-voided items after every mutation (tax_service).
- paid_cents is the sum of COMPLETED payments, recomputed, never incremented.
- change_cents = max(0, paid - total).

STOCK:
- Stock is decremented (SALE) once per line when the order completes; the
  line remembers the ledger row in sale_transaction_id.
- Voids, cancellations and refunds reverse an outstanding decrement with a
  RETURN row and remember it in restock_transaction_id.

CONCURRENCY:
- Every mutating entry point runs under run_with_retry, re-reads the order
  with SELECT ... FOR UPDATE, re-checks status, and commits once through
  persistence.save_all. Order.version_id catches lost updates.
- _*_inner helpers only flush; they join the caller's unit of work.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import (
    BusinessRuleError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    INSUFFICIENT_PAYMENT,
    INVALID_QUANTITY,
    INVALID_STATUS_TRANSITION,
    ITEM_ALREADY_VOIDED,
    ORDER_ALREADY_CANCELLED,
    ORDER_ALREADY_COMPLETED,
    ORDER_NOT_EDITABLE,
    PRODUCT_INACTIVE,
)
from ..extensions import db
from ..models import Order, OrderItem, Payment, User
from ..models.inventory import TX_RETURN, TX_SALE
from ..models.orders import (
    ORDER_CANCELLED,
    ORDER_COMPLETED,
    ORDER_ON_HOLD,
    ORDER_PARTIALLY_REFUNDED,
    ORDER_PENDING,
    ORDER_PROCESSING,
    ORDER_REFUNDED,
    ORDER_TYPES,
    PAYMENT_COMPLETED,
    PAYMENT_REFUNDED,
)
from barrelpos.time_utils import utcnow
from . import shift_service
from .catalog_service import find_or_create_customer, get_store
from .concurrency import run_with_retry
from .document_service import next_document_number, order_document_type
from .inventory_service import apply_delta
from .persistence import save_all
from .stores import orders, products
from .tax_service import PriceBreakdown, line_totals, order_totals


ALLOWED_TRANSITIONS = {
    ORDER_PENDING: {ORDER_PROCESSING, ORDER_CANCELLED, ORDER_ON_HOLD},
    ORDER_PROCESSING: {ORDER_COMPLETED, ORDER_CANCELLED, ORDER_ON_HOLD},
    ORDER_ON_HOLD: {ORDER_PROCESSING, ORDER_CANCELLED},
    ORDER_COMPLETED: {ORDER_REFUNDED, ORDER_PARTIALLY_REFUNDED},
    ORDER_PARTIALLY_REFUNDED: {ORDER_REFUNDED},
    ORDER_CANCELLED: set(),
    ORDER_REFUNDED: set(),
}

EDITABLE_STATUSES = (ORDER_PENDING, ORDER_PROCESSING)
CANCELLABLE_STATUSES = (ORDER_PENDING, ORDER_PROCESSING, ORDER_ON_HOLD)
REFUNDABLE_STATUSES = (ORDER_COMPLETED, ORDER_PARTIALLY_REFUNDED)


# =============================================================================
# Helpers
# =============================================================================

def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


def transition(order: Order, new_status: str) -> None:
    if not can_transition(order.status, new_status):
        raise BusinessRuleError(
            f"Cannot move order {order.order_number} from {order.status} to {new_status}",
            code=INVALID_STATUS_TRANSITION,
            details={"from": order.status, "to": new_status},
        )
    order.status = new_status


def paid_total(order: Order) -> int:
    """Sum of COMPLETED payment amounts for the order, read from the database."""
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.order_id == order.id, Payment.status == PAYMENT_COMPLETED)
        .scalar()
    )
    return int(total or 0)


def recompute_totals(order: Order) -> Order:
    totals = order_totals(order.active_items, order.discount_cents)
    if totals.clamped:
        current_app.logger.warning(
            "Order %s discount %s exceeds item totals; total clamped to 0",
            order.order_number, order.discount_cents,
        )
    order.subtotal_cents = totals.subtotal_cents
    order.tax_cents = totals.tax_cents
    order.total_cents = totals.total_cents
    order.change_cents = max(0, (order.paid_cents or 0) - order.total_cents)
    return order


def recompute_paid(order: Order) -> Order:
    order.paid_cents = paid_total(order)
    order.change_cents = max(0, order.paid_cents - (order.total_cents or 0))
    return order


def _load_for_update(order_id: int) -> Order:
    return orders.get(order_id, lock=True)


def _restock_line(order: Order, item: OrderItem, actor_user_id: int | None, note: str) -> None:
    if not item.stock_outstanding:
        return
    tx = apply_delta(
        item.product_id, order.store_id, item.quantity, TX_RETURN,
        user_id=actor_user_id, order_id=order.id, reference=order.order_number, notes=note,
    )
    item.restock_transaction_id = tx.id


def _refund_completed_payments(order: Order) -> list[Payment]:
    refunded = []
    for payment in order.payments:
        if payment.status == PAYMENT_COMPLETED:
            payment.status = PAYMENT_REFUNDED
            refunded.append(payment)
    return refunded


# =============================================================================
# Items
# =============================================================================

def _parse_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise BusinessRuleError("Quantity must be greater than zero", code=INVALID_QUANTITY)
    return quantity


def _add_item_inner(order: Order, product_id: int, quantity, discount_cents: int = 0,
                    notes: str | None = None, actor_user_id: int | None = None) -> OrderItem:
    quantity = _parse_quantity(quantity)
    if not isinstance(discount_cents, int) or discount_cents < 0:
        raise ValidationError("discount_cents must be a non-negative integer")

    product = products.find(product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    if product.store_id != order.store_id:
        raise ValidationError("Product does not belong to the order's store")
    if not product.is_active:
        raise BusinessRuleError(f"{product.name} is not available", code=PRODUCT_INACTIVE,
                                details={"product_id": product.id})

    if product.track_inventory:
        already = sum(i.quantity for i in order.active_items if i.product_id == product.id)
        if already + quantity > (product.stock_quantity or 0):
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}: {product.stock_quantity} available",
                details={
                    "product_id": product.id,
                    "available": product.stock_quantity,
                    "requested": already + quantity,
                },
            )

    unit = PriceBreakdown(
        ex_gst_cents=product.price_ex_gst_cents,
        gst_cents=product.gst_amount_cents,
        inc_gst_cents=product.price_inc_gst_cents,
    )
    line = line_totals(unit, quantity, discount_cents)
    if line.clamped:
        current_app.logger.warning(
            "Line discount %s exceeds line value for product %s on order %s; clamped to 0",
            discount_cents, product.id, order.order_number,
        )

    item = OrderItem(
        product_id=product.id,
        quantity=quantity,
        unit_price_ex_gst_cents=unit.ex_gst_cents,
        unit_gst_cents=unit.gst_cents,
        unit_price_inc_gst_cents=unit.inc_gst_cents,
        discount_cents=discount_cents,
        subtotal_cents=line.subtotal_cents,
        tax_cents=line.tax_cents,
        total_cents=line.total_cents,
        notes=notes,
    )
    order.items.append(item)
    recompute_totals(order)
    save_all([order, item], actor_id=actor_user_id, commit=False)
    return item


def add_item(order_id: int, product_id: int, quantity, discount_cents: int = 0,
             notes: str | None = None, actor_user_id: int | None = None) -> OrderItem:
    def _op():
        order = _load_for_update(order_id)
        if order.status not in EDITABLE_STATUSES:
            raise BusinessRuleError(
                f"Order {order.order_number} is {order.status} and cannot be edited",
                code=ORDER_NOT_EDITABLE,
            )
        item = _add_item_inner(order, product_id, quantity, discount_cents, notes, actor_user_id)
        db.session.commit()
        return item

    return run_with_retry(_op)


def void_item(order_id: int, item_id: int, actor_user_id: int | None, reason: str | None = None) -> Order:
    """
    Void one line.

    On an open order the line simply stops counting. On a COMPLETED order the
    void is a partial refund: the decremented stock is returned and the order
    moves to PARTIALLY_REFUNDED (REFUNDED once no lines remain).
    """
    def _op():
        order = _load_for_update(order_id)
        if order.status in (ORDER_CANCELLED, ORDER_REFUNDED):
            raise BusinessRuleError(
                f"Order {order.order_number} is {order.status}", code=ORDER_NOT_EDITABLE
            )
        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found on order {order.order_number}")
        if item.is_voided:
            raise BusinessRuleError("Item is already voided", code=ITEM_ALREADY_VOIDED)

        item.is_voided = True
        item.voided_at = utcnow()
        item.voided_by_user_id = actor_user_id
        item.void_reason = reason
        _restock_line(order, item, actor_user_id, f"Void: {reason or 'no reason'}")

        if order.status in REFUNDABLE_STATUSES:
            target = ORDER_REFUNDED if not order.active_items else ORDER_PARTIALLY_REFUNDED
            if target != order.status:
                transition(order, target)

        recompute_totals(order)
        save_all([order, item], actor_id=actor_user_id)
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Voided item %s on order %s", item_id, order.order_number)
    return order


# =============================================================================
# Lifecycle
# =============================================================================

def create_order(
    store_id: int,
    user_id: int,
    *,
    order_type: str = "TAKE_AWAY",
    items=(),
    customer_id: int | None = None,
    customer: dict | None = None,
    table_number: str | None = None,
    notes: str | None = None,
    discount_cents: int = 0,
    number_prefix: str | None = None,
    attach_shift: bool = True,
) -> Order:
    """
    Open an order with its initial items in one transaction.

    items: iterable of dicts {product_id, quantity, discount_cents?, notes?}.
    customer: {phone, name?, address?} to find or create the customer in the
    same transaction; a rejected order leaves no customer row behind.
    The order joins the cashier's open shift at this store when there is one.
    """
    if order_type not in ORDER_TYPES:
        raise ValidationError(f"Invalid order type: {order_type}", errors={"order_type": "invalid"})
    if not isinstance(discount_cents, int) or discount_cents < 0:
        raise ValidationError("discount_cents must be a non-negative integer")
    items = list(items or [])
    for line in items:
        if not isinstance(line, dict) or "product_id" not in line or "quantity" not in line:
            raise ValidationError("Each item needs product_id and quantity")

    def _op():
        get_store(store_id)
        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            raise NotFoundError(f"User {user_id} not found")

        order_customer_id = customer_id
        if customer:
            order_customer_id = find_or_create_customer(
                customer.get("phone"),
                name=customer.get("name"),
                address=customer.get("address"),
                actor_id=user_id,
            ).id

        order = Order(
            store_id=store_id,
            user_id=user_id,
            order_number=next_document_number(
                store_id=store_id,
                document_type=order_document_type(number_prefix),
                prefix=number_prefix,
            ),
            status=ORDER_PENDING,
            order_type=order_type,
            customer_id=order_customer_id,
            table_number=table_number,
            notes=notes,
            discount_cents=discount_cents,
        )
        if attach_shift:
            shift = shift_service.find_open_shift(user_id, store_id=store_id)
            if shift is not None:
                shift_service.attach_order(shift, order)

        recompute_totals(order)
        save_all([order], actor_id=user_id, commit=False)
        for line in items:
            _add_item_inner(
                order,
                line["product_id"],
                line["quantity"],
                line.get("discount_cents", 0) or 0,
                line.get("notes"),
                user_id,
            )
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Order %s created: store=%s user=%s items=%s total=%s",
        order.order_number, store_id, user_id, len(items), order.total_cents,
    )
    return order


def _complete_inner(order: Order, paid_amount_cents: int | None, actor_user_id: int | None) -> Order:
    if order.status == ORDER_COMPLETED:
        return order
    if order.status == ORDER_PENDING:
        transition(order, ORDER_PROCESSING)

    recompute_totals(order)
    paid = paid_total(order) if paid_amount_cents is None else paid_amount_cents
    if paid < order.total_cents:
        raise BusinessRuleError(
            f"Paid amount {paid} is less than order total {order.total_cents}",
            code=INSUFFICIENT_PAYMENT,
            details={"paid_cents": paid, "total_cents": order.total_cents},
        )
    transition(order, ORDER_COMPLETED)
    order.paid_cents = paid
    order.change_cents = max(0, paid - order.total_cents)
    order.completed_at = utcnow()

    for item in order.active_items:
        if item.sale_transaction_id is not None or not item.product.track_inventory:
            continue
        tx = apply_delta(
            item.product_id, order.store_id, -item.quantity, TX_SALE,
            user_id=actor_user_id or order.user_id, order_id=order.id, reference=order.order_number,
        )
        item.sale_transaction_id = tx.id

    save_all([order, *order.items], actor_id=actor_user_id, commit=False)
    current_app.logger.info(
        "Order %s completed: total=%s paid=%s change=%s",
        order.order_number, order.total_cents, order.paid_cents, order.change_cents,
    )
    return order


def complete_order(order_id: int, paid_amount_cents: int | None = None,
                   actor_user_id: int | None = None) -> Order:
    """
    Complete an order and decrement stock for its lines.

    paid_amount_cents defaults to the recomputed total of completed payments.
    Completing an already COMPLETED order returns it unchanged.
    """
    if paid_amount_cents is not None and (not isinstance(paid_amount_cents, int) or paid_amount_cents < 0):
        raise ValidationError("paid_amount_cents must be a non-negative integer")

    def _op():
        order = _load_for_update(order_id)
        if order.status == ORDER_COMPLETED:
            return order
        _complete_inner(order, paid_amount_cents, actor_user_id)
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel_order(order_id: int, reason: str | None, actor_user_id: int | None) -> Order:
    def _op():
        order = _load_for_update(order_id)
        if order.status == ORDER_CANCELLED:
            raise BusinessRuleError(f"Order {order.order_number} is already cancelled",
                                    code=ORDER_ALREADY_CANCELLED)
        if order.status not in CANCELLABLE_STATUSES:
            raise BusinessRuleError(f"Order {order.order_number} is already {order.status}",
                                    code=ORDER_ALREADY_COMPLETED)

        for item in order.items:
            _restock_line(order, item, actor_user_id, "Order cancelled")
        refunded = _refund_completed_payments(order)

        transition(order, ORDER_CANCELLED)
        order.cancelled_at = utcnow()
        order.cancellation_reason = reason
        recompute_paid(order)
        save_all([order, *order.items, *refunded], actor_id=actor_user_id)
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s cancelled: %s", order.order_number, reason)
    return order


def refund_order(order_id: int, reason: str | None, actor_user_id: int | None) -> Order:
    """Full refund of a completed order: restock every decremented line and refund payments."""
    def _op():
        order = _load_for_update(order_id)
        if order.status not in REFUNDABLE_STATUSES:
            raise BusinessRuleError(
                f"Order {order.order_number} is {order.status} and cannot be refunded",
                code=INVALID_STATUS_TRANSITION,
            )
        for item in order.items:
            _restock_line(order, item, actor_user_id, f"Refund: {reason or 'no reason'}")
        refunded = _refund_completed_payments(order)

        transition(order, ORDER_REFUNDED)
        order.cancellation_reason = reason
        recompute_paid(order)
        save_all([order, *order.items, *refunded], actor_id=actor_user_id)
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s refunded: %s", order.order_number, reason)
    return order


def hold_order(order_id: int, actor_user_id: int | None = None) -> Order:
    def _op():
        order = _load_for_update(order_id)
        transition(order, ORDER_ON_HOLD)
        save_all([order], actor_id=actor_user_id)
        return order

    return run_with_retry(_op)


def resume_order(order_id: int, actor_user_id: int | None = None) -> Order:
    def _op():
        order = _load_for_update(order_id)
        transition(order, ORDER_PROCESSING)
        save_all([order], actor_id=actor_user_id)
        return order

    return run_with_retry(_op)


def delete_order(order_id: int, actor_user_id: int | None = None) -> Order:
    """Soft delete. Only cancelled orders, or pending orders nobody has paid for."""
    def _op():
        order = _load_for_update(order_id)
        has_payments = any(p.status == PAYMENT_COMPLETED for p in order.payments)
        deletable = order.status == ORDER_CANCELLED or (
            order.status == ORDER_PENDING and not has_payments
        )
        if not deletable:
            raise BusinessRuleError(
                f"Order {order.order_number} is {order.status} and cannot be deleted",
                code=ORDER_NOT_EDITABLE,
            )
        save_all([], deleted=[order, *order.items], actor_id=actor_user_id)
        return order

    return run_with_retry(_op)


def get_order(order_id: int, include_deleted: bool = False) -> Order:
    return orders.get(order_id, include_deleted=include_deleted)
