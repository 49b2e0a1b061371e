from __future__ import annotations

from ..extensions import db
from barrelpos.time_utils import utcnow, to_utc_z


TX_PURCHASE = "PURCHASE"
TX_SALE = "SALE"
TX_RETURN = "RETURN"
TX_ADJUSTMENT = "ADJUSTMENT"
TX_TRANSFER = "TRANSFER"
TX_DAMAGE = "DAMAGE"
TX_THEFT = "THEFT"
TX_INITIAL_STOCK = "INITIAL_STOCK"

# Reasons the sale/receiving path may use; these never drive stock negative.
SALE_PATH_TYPES = [TX_SALE, TX_RETURN, TX_PURCHASE, TX_INITIAL_STOCK]
# Administrative corrections; allowed to drive stock negative.
OVERRIDE_TYPES = [TX_ADJUSTMENT, TX_TRANSFER, TX_DAMAGE, TX_THEFT]

TRANSACTION_TYPES = SALE_PATH_TYPES + OVERRIDE_TYPES


class InventoryTransaction(db.Model):
    """
    Append-only stock ledger.

    Every change to Product.stock_quantity has exactly one row here with the
    signed quantity and the before/after snapshot. Rows are never updated or
    deleted, so there are no audit/soft-delete columns beyond created_*.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    unit_cost_cents = db.Column(db.Integer, nullable=True)
    total_cost_cents = db.Column(db.Integer, nullable=True)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by_user_id = db.Column(db.Integer, nullable=True)

    product = db.relationship("Product", backref=db.backref("inventory_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "supplier_id": self.supplier_id,
            "type": self.type,
            "quantity": self.quantity,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "reference": self.reference,
            "notes": self.notes,
            "occurred_at": to_utc_z(self.occurred_at),
        }
