from __future__ import annotations

from ..extensions import db
from barrelpos.time_utils import to_utc_z
from .base import AuditMixin


# Order lifecycle
ORDER_PENDING = "PENDING"
ORDER_PROCESSING = "PROCESSING"
ORDER_COMPLETED = "COMPLETED"
ORDER_CANCELLED = "CANCELLED"
ORDER_REFUNDED = "REFUNDED"
ORDER_PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
ORDER_ON_HOLD = "ON_HOLD"

ORDER_STATUSES = [
    ORDER_PENDING,
    ORDER_PROCESSING,
    ORDER_COMPLETED,
    ORDER_CANCELLED,
    ORDER_REFUNDED,
    ORDER_PARTIALLY_REFUNDED,
    ORDER_ON_HOLD,
]

ORDER_TYPES = ["DINE_IN", "TAKE_AWAY", "DELIVERY", "PICKUP"]

# Tender
PAYMENT_METHODS = [
    "CASH",
    "CREDIT_CARD",
    "DEBIT_CARD",
    "MOBILE_PAYMENT",
    "GIFT_CARD",
    "LOYALTY_POINTS",
    "OTHER",
]

PAYMENT_PENDING = "PENDING"
PAYMENT_COMPLETED = "COMPLETED"
PAYMENT_FAILED = "FAILED"
PAYMENT_REFUNDED = "REFUNDED"
PAYMENT_PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
PAYMENT_CANCELLED = "CANCELLED"

PAYMENT_STATUSES = [
    PAYMENT_PENDING,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_REFUNDED,
    PAYMENT_PARTIALLY_REFUNDED,
    PAYMENT_CANCELLED,
]


class Order(AuditMixin, db.Model):
    """
    Order aggregate root.

    TOTALS (integer cents, always recomputed from non-voided items):
    - subtotal_cents = sum(item.total - item.tax)
    - tax_cents      = sum(item.tax)
    - total_cents    = subtotal - discount + tax, clamped at 0
    - paid_cents     = sum(amount) of COMPLETED payments
    - change_cents   = max(0, paid - total)

    CONCURRENCY: version_id is an optimistic lock; mutating services also
    re-read the row with SELECT ... FOR UPDATE before re-checking status.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("store_id", "order_number", name="uq_orders_store_number"),
        db.Index("ix_orders_store_status_created", "store_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    status = db.Column(db.String(24), nullable=False, default=ORDER_PENDING, index=True)
    order_type = db.Column(db.String(16), nullable=False, default="TAKE_AWAY")
    table_number = db.Column(db.String(16), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("orders", lazy=True))
    user = db.relationship("User", foreign_keys=[user_id])
    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    shift = db.relationship("Shift", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.id",
    )
    payments = db.relationship(
        "Payment",
        backref="order",
        lazy=True,
        order_by="Payment.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order {self.order_number} status={self.status}>"

    @property
    def active_items(self) -> list:
        return [item for item in self.items if not item.is_voided]

    @property
    def balance_due_cents(self) -> int:
        return max(0, self.total_cents - self.paid_cents)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "store_id": self.store_id,
            "user_id": self.user_id,
            "shift_id": self.shift_id,
            "customer_id": self.customer_id,
            "status": self.status,
            "order_type": self.order_type,
            "table_number": self.table_number,
            "notes": self.notes,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "change_cents": self.change_cents,
            "balance_due_cents": self.balance_due_cents,
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
            **self.audit_dict(),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class OrderItem(AuditMixin, db.Model):
    """
    One order line.

    Unit prices are copied from the product at add time and frozen.
    sale_transaction_id is set once stock was decremented for the line;
    restock_transaction_id once that decrement was reversed.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_ex_gst_cents = db.Column(db.Integer, nullable=False)
    unit_gst_cents = db.Column(db.Integer, nullable=False)
    unit_price_inc_gst_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(500), nullable=True)

    is_voided = db.Column(db.Boolean, nullable=False, default=False)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    sale_transaction_id = db.Column(db.Integer, db.ForeignKey("inventory_transactions.id"), nullable=True)
    restock_transaction_id = db.Column(db.Integer, db.ForeignKey("inventory_transactions.id"), nullable=True)

    product = db.relationship("Product")

    @property
    def stock_outstanding(self) -> bool:
        """True while this line holds a stock decrement that was not reversed."""
        return self.sale_transaction_id is not None and self.restock_transaction_id is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_ex_gst_cents": self.unit_price_ex_gst_cents,
            "unit_gst_cents": self.unit_gst_cents,
            "unit_price_inc_gst_cents": self.unit_price_inc_gst_cents,
            "discount_cents": self.discount_cents,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "is_voided": self.is_voided,
            "voided_at": to_utc_z(self.voided_at),
            "void_reason": self.void_reason,
            "voided_by_user_id": self.voided_by_user_id,
        }


class Payment(AuditMixin, db.Model):
    """
    A tender recorded against an order.

    amount_cents is what the customer handed over; change_cents is the cash
    given back on this payment, so amount - change is what the till keeps.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_order_status", "order_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    change_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(24), nullable=False)
    status = db.Column(db.String(24), nullable=False, default=PAYMENT_COMPLETED, index=True)

    reference = db.Column(db.String(128), nullable=True)
    card_last_four = db.Column(db.String(4), nullable=True)
    card_type = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.String(500), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def net_cents(self) -> int:
        return self.amount_cents - (self.change_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "amount_cents": self.amount_cents,
            "change_cents": self.change_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "reference": self.reference,
            "card_last_four": self.card_last_four,
            "card_type": self.card_type,
            "notes": self.notes,
            "paid_at": to_utc_z(self.paid_at),
        }
