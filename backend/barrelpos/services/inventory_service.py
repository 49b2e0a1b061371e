# Overview: Stock ledger; the only writer of Product.stock_quantity.

"""
InventoryLedger invariants (authoritative):

- Every stock change writes exactly one InventoryTransaction row carrying
  the signed quantity and the before/after snapshot, in the same
  transaction as the Product.stock_quantity update.
- Product.stock_quantity == SUM(InventoryTransaction.quantity) per product.
- The product row is locked (SELECT ... FOR UPDATE) before it is read.
- Sale-path reasons (SALE, RETURN, PURCHASE, INITIAL_STOCK) never drive a
  tracked product negative. Administrative reasons (ADJUSTMENT, TRANSFER,
  DAMAGE, THEFT) go through apply_override_delta and may.

apply_delta / apply_override_delta only flush: they join the caller's
unit of work. adjust_stock / receive_stock / set_initial_stock are the
committed entry points used by routes and the CLI.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryTransaction, Product
from ..models.inventory import (
    OVERRIDE_TYPES,
    SALE_PATH_TYPES,
    TX_INITIAL_STOCK,
    TX_PURCHASE,
)
from barrelpos.time_utils import utcnow
from .concurrency import run_with_retry
from .persistence import save_all
from .stores import products


def _lock_product(product_id: int, store_id: int | None) -> Product:
    product = products.find(product_id, lock=True)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    if store_id is not None and product.store_id != store_id:
        raise ValidationError("Product does not belong to store")
    return product


def _apply_inner(
    *,
    product: Product,
    delta: int,
    reason: str,
    user_id: int | None,
    order_id: int | None = None,
    supplier_id: int | None = None,
    unit_cost_cents: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
    allow_negative: bool,
) -> InventoryTransaction:
    if not isinstance(delta, int) or isinstance(delta, bool):
        raise ValidationError("quantity must be an integer")
    if delta == 0:
        raise ValidationError("quantity must be non-zero")

    before = product.stock_quantity or 0
    after = before + delta
    if delta < 0 and after < 0 and product.track_inventory and not allow_negative:
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}: {before} available, {-delta} required",
            details={"product_id": product.id, "available": before, "requested": -delta},
        )

    tx = InventoryTransaction(
        product_id=product.id,
        store_id=product.store_id,
        user_id=user_id,
        order_id=order_id,
        supplier_id=supplier_id,
        type=reason,
        quantity=delta,
        stock_before=before,
        stock_after=after,
        unit_cost_cents=unit_cost_cents,
        total_cost_cents=unit_cost_cents * abs(delta) if unit_cost_cents is not None else None,
        reference=reference,
        notes=notes,
        occurred_at=utcnow(),
    )
    product.stock_quantity = after

    save_all([tx, product], actor_id=user_id, commit=False)

    if product.track_inventory and after <= product.low_stock_threshold:
        current_app.logger.info(
            "Low stock: product=%s stock=%s threshold=%s", product.id, after, product.low_stock_threshold
        )
    return tx


def apply_delta(
    product_id: int,
    store_id: int | None,
    delta: int,
    reason: str,
    *,
    user_id: int | None,
    order_id: int | None = None,
    supplier_id: int | None = None,
    unit_cost_cents: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> InventoryTransaction:
    """Sale-path stock movement. Raises InsufficientStockError instead of going negative."""
    if reason not in SALE_PATH_TYPES:
        raise ValidationError(f"{reason} is not a sale-path inventory reason")
    product = _lock_product(product_id, store_id)
    return _apply_inner(
        product=product,
        delta=delta,
        reason=reason,
        user_id=user_id,
        order_id=order_id,
        supplier_id=supplier_id,
        unit_cost_cents=unit_cost_cents,
        reference=reference,
        notes=notes,
        allow_negative=False,
    )


def apply_override_delta(
    product_id: int,
    store_id: int | None,
    delta: int,
    reason: str,
    *,
    user_id: int | None,
    reference: str | None = None,
    notes: str | None = None,
) -> InventoryTransaction:
    """Administrative correction. May drive stock negative; always leaves a ledger row."""
    if reason not in OVERRIDE_TYPES:
        raise ValidationError(f"{reason} is not an adjustment reason")
    product = _lock_product(product_id, store_id)
    tx = _apply_inner(
        product=product,
        delta=delta,
        reason=reason,
        user_id=user_id,
        reference=reference,
        notes=notes,
        allow_negative=True,
    )
    if tx.stock_after < 0:
        current_app.logger.warning(
            "Stock override left product %s negative (%s) via %s", product.id, tx.stock_after, reason
        )
    return tx


# =============================================================================
# Committed entry points
# =============================================================================

def adjust_stock(product_id: int, delta: int, reason: str, *, user_id: int, store_id: int | None = None,
                 reference: str | None = None, notes: str | None = None) -> InventoryTransaction:
    def _op():
        tx = apply_override_delta(
            product_id, store_id, delta, reason, user_id=user_id, reference=reference, notes=notes
        )
        db.session.commit()
        return tx

    tx = run_with_retry(_op)
    current_app.logger.info("Stock adjusted: product=%s delta=%s reason=%s", product_id, delta, reason)
    return tx


def receive_stock(product_id: int, quantity: int, *, user_id: int, store_id: int | None = None,
                  supplier_id: int | None = None, unit_cost_cents: int | None = None,
                  reference: str | None = None, notes: str | None = None) -> InventoryTransaction:
    if not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    def _op():
        tx = apply_delta(
            product_id, store_id, quantity, TX_PURCHASE,
            user_id=user_id, supplier_id=supplier_id, unit_cost_cents=unit_cost_cents,
            reference=reference, notes=notes,
        )
        db.session.commit()
        return tx

    return run_with_retry(_op)


def set_initial_stock(product_id: int, quantity: int, *, user_id: int | None,
                      store_id: int | None = None) -> InventoryTransaction | None:
    """Seed stock for a product. Zero is a no-op."""
    if not isinstance(quantity, int) or quantity < 0:
        raise ValidationError("quantity must be a non-negative integer")
    if quantity == 0:
        return None

    def _op():
        tx = apply_delta(product_id, store_id, quantity, TX_INITIAL_STOCK, user_id=user_id,
                         notes="Initial stock")
        db.session.commit()
        return tx

    return run_with_retry(_op)


# =============================================================================
# Ledger checks
# =============================================================================

def ledger_quantity(product_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(InventoryTransaction.quantity), 0))
        .filter(InventoryTransaction.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def verify_ledger(product_id: int) -> bool:
    """True when the materialized stock matches the ledger."""
    product = products.get(product_id, include_deleted=True)
    return (product.stock_quantity or 0) == ledger_quantity(product_id)


def find_ledger_mismatches(store_id: int | None = None) -> list[dict]:
    ledger = (
        db.session.query(
            InventoryTransaction.product_id,
            func.sum(InventoryTransaction.quantity).label("ledger_qty"),
        )
        .group_by(InventoryTransaction.product_id)
        .subquery()
    )
    query = (
        db.session.query(Product, func.coalesce(ledger.c.ledger_qty, 0))
        .outerjoin(ledger, ledger.c.product_id == Product.id)
    )
    if store_id is not None:
        query = query.filter(Product.store_id == store_id)

    mismatches = []
    for product, ledger_qty in query.all():
        if (product.stock_quantity or 0) != int(ledger_qty or 0):
            mismatches.append({
                "product_id": product.id,
                "sku": product.sku,
                "stock_quantity": product.stock_quantity,
                "ledger_quantity": int(ledger_qty or 0),
            })
    return mismatches


def get_transactions(product_id: int, limit: int = 100) -> list[InventoryTransaction]:
    products.get(product_id, include_deleted=True)
    limit = max(1, min(limit, 500))
    return (
        db.session.query(InventoryTransaction)
        .filter(InventoryTransaction.product_id == product_id)
        .order_by(InventoryTransaction.id.desc())
        .limit(limit)
        .all()
    )
