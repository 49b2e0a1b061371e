# Overview: Flask API routes for stock adjustments, receiving and the ledger view.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_role
from ..errors import ValidationError, success_response
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import inventory_service
from ..services.stores import products
from ..validation import coerce_cents, coerce_int, json_body, optional_str

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/adjust")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def adjust_stock_route():
    """
    Administrative stock correction.

    Request body:
    {
        "product_id": 7,
        "delta": -3,
        "reason": "DAMAGE",      (ADJUSTMENT | TRANSFER | DAMAGE | THEFT)
        "reference": "...",      (optional)
        "notes": "..."           (optional)
    }

    Returns:
        201: {transaction, product}
    """
    data = json_body()
    product_id = coerce_int(data.get("product_id"), "product_id", minimum=1)
    delta = coerce_int(data.get("delta"), "delta")
    if delta == 0:
        raise ValidationError("delta must not be zero", errors={"delta": "invalid"})

    tx = inventory_service.adjust_stock(
        product_id,
        delta,
        data.get("reason") or "ADJUSTMENT",
        user_id=g.current_user.id,
        reference=optional_str(data.get("reference"), "reference", max_length=100),
        notes=optional_str(data.get("notes"), "notes", max_length=500),
    )
    return success_response(
        {"transaction": tx.to_dict(), "product": products.get(product_id).to_dict()},
        message="Stock adjusted",
        status=201,
    )


@inventory_bp.post("/receive")
@require_auth
def receive_stock_route():
    """
    Book received stock (PURCHASE).

    Request body:
    {
        "product_id": 7,
        "quantity": 24,
        "supplier_id": 2,           (optional)
        "unit_cost_cents": 150,     (optional)
        "reference": "INV-991",     (optional)
        "notes": "..."              (optional)
    }
    """
    data = json_body()
    product_id = coerce_int(data.get("product_id"), "product_id", minimum=1)
    tx = inventory_service.receive_stock(
        product_id,
        coerce_int(data.get("quantity"), "quantity", minimum=1),
        user_id=g.current_user.id,
        supplier_id=coerce_int(data.get("supplier_id"), "supplier_id", required=False, minimum=1),
        unit_cost_cents=coerce_cents(data.get("unit_cost_cents"), "unit_cost_cents", required=False),
        reference=optional_str(data.get("reference"), "reference", max_length=100),
        notes=optional_str(data.get("notes"), "notes", max_length=500),
    )
    return success_response(
        {"transaction": tx.to_dict(), "product": products.get(product_id).to_dict()},
        message="Stock received",
        status=201,
    )


@inventory_bp.get("/products/<int:product_id>/transactions")
@require_auth
def product_transactions_route(product_id: int):
    """Ledger rows for a product, newest first, plus whether the ledger balances."""
    limit = coerce_int(request.args.get("limit"), "limit", required=False, minimum=1) or 100
    transactions = inventory_service.get_transactions(product_id, limit=limit)
    return success_response({
        "product_id": product_id,
        "transactions": [tx.to_dict() for tx in transactions],
        "ledger_quantity": inventory_service.ledger_quantity(product_id),
        "ledger_matches": inventory_service.verify_ledger(product_id),
    })
