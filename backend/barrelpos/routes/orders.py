# Overview: Flask API routes for the order lifecycle, line items and tenders.

"""
Order API Routes

DESIGN:
- Routes parse and coerce input, then call order_service / payment_service
- Every state change is one service call (one unit of work)
- Domain errors propagate to the app-wide error handler

SECURITY:
- Every route requires a valid session
- Refunds and deletions require a manager or admin
"""

from flask import Blueprint, g

from ..decorators import require_auth, require_role
from ..errors import ValidationError, success_response
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import order_service, payment_service
from ..validation import coerce_cents, coerce_int, json_body, optional_str

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


# =============================================================================
# ORDER CREATION AND READS
# =============================================================================

def _parse_items(raw) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("items must be a list", errors={"items": "invalid"})
    items = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{index}] must be an object", errors={"items": "invalid"})
        items.append({
            "product_id": coerce_int(entry.get("product_id"), f"items[{index}].product_id", minimum=1),
            "quantity": coerce_int(entry.get("quantity"), f"items[{index}].quantity"),
            "discount_cents": coerce_cents(entry.get("discount_cents"), f"items[{index}].discount_cents",
                                           required=False) or 0,
            "notes": optional_str(entry.get("notes"), f"items[{index}].notes", max_length=500),
        })
    return items


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Open an order.

    Request body:
    {
        "store_id": 1,                 (optional, defaults to the user's store)
        "order_type": "TAKE_AWAY",     (DINE_IN | TAKE_AWAY | DELIVERY)
        "items": [{"product_id": 7, "quantity": 2, "discount_cents": 0, "notes": "..."}],
        "customer_id": 3,              (optional)
        "table_number": "12",          (optional)
        "discount_cents": 0,           (optional)
        "notes": "..."                 (optional)
    }

    Returns:
        201: order with items
    """
    data = json_body()
    store_id = coerce_int(data.get("store_id"), "store_id", required=False, minimum=1) or g.current_user.store_id
    if store_id is None:
        raise ValidationError("store_id is required", errors={"store_id": "required"})

    order = order_service.create_order(
        store_id,
        g.current_user.id,
        order_type=data.get("order_type") or "TAKE_AWAY",
        items=_parse_items(data.get("items")),
        customer_id=coerce_int(data.get("customer_id"), "customer_id", required=False, minimum=1),
        table_number=optional_str(data.get("table_number"), "table_number", max_length=20),
        notes=optional_str(data.get("notes"), "notes", max_length=1000),
        discount_cents=coerce_cents(data.get("discount_cents"), "discount_cents", required=False) or 0,
    )
    return success_response(order.to_dict(), message="Order created", status=201)


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    order = order_service.get_order(order_id)
    return success_response(order.to_dict())


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def delete_order_route(order_id: int):
    """Soft-delete a cancelled order, or a pending one with no completed payments."""
    order = order_service.delete_order(order_id, actor_user_id=g.current_user.id)
    return success_response({"id": order.id, "is_deleted": order.is_deleted}, message="Order deleted")


# =============================================================================
# LINE ITEMS
# =============================================================================

@orders_bp.post("/<int:order_id>/items")
@require_auth
def add_item_route(order_id: int):
    """
    Add a line to an open order.

    Request body:
    {
        "product_id": 7,
        "quantity": 2,
        "discount_cents": 0,   (optional)
        "notes": "..."         (optional)
    }
    """
    data = json_body()
    item = order_service.add_item(
        order_id,
        coerce_int(data.get("product_id"), "product_id", minimum=1),
        coerce_int(data.get("quantity"), "quantity"),
        discount_cents=coerce_cents(data.get("discount_cents"), "discount_cents", required=False) or 0,
        notes=optional_str(data.get("notes"), "notes", max_length=500),
        actor_user_id=g.current_user.id,
    )
    order = order_service.get_order(order_id)
    return success_response({"item": item.to_dict(), "order": order.to_dict()}, status=201)


@orders_bp.post("/<int:order_id>/items/<int:item_id>/void")
@require_auth
def void_item_route(order_id: int, item_id: int):
    """
    Void a line. On a completed order this is a partial refund and returns stock.

    Request body: {"reason": "..."} (optional)
    """
    data = json_body()
    order = order_service.void_item(
        order_id, item_id, g.current_user.id, reason=optional_str(data.get("reason"), "reason", max_length=500)
    )
    return success_response(order.to_dict(), message="Item voided")


# =============================================================================
# PAYMENTS
# =============================================================================

@orders_bp.post("/<int:order_id>/payments")
@require_auth
def add_payment_route(order_id: int):
    """
    Record a tender against an order.

    Request body:
    {
        "amount_cents": 1000,
        "payment_method": "CASH",   (CASH | CREDIT_CARD | DEBIT_CARD | MOBILE_PAYMENT | ...)
        "status": "COMPLETED",      (optional, COMPLETED | PENDING)
        "reference": "AUTH-123",    (optional)
        "card_last_four": "4242",   (optional)
        "card_type": "VISA",        (optional)
        "notes": "..."              (optional)
    }

    Returns:
        201: {payment, order}
    """
    data = json_body()
    method = data.get("payment_method") or data.get("method")
    if not method:
        raise ValidationError("payment_method is required", errors={"payment_method": "required"})

    payment = payment_service.record_payment(
        order_id,
        coerce_int(data.get("amount_cents"), "amount_cents"),
        method,
        g.current_user.id,
        reference=optional_str(data.get("reference"), "reference", max_length=100),
        card_last_four=optional_str(data.get("card_last_four"), "card_last_four", max_length=4),
        card_type=optional_str(data.get("card_type"), "card_type", max_length=20),
        notes=optional_str(data.get("notes"), "notes", max_length=500),
        status=data.get("status") or "COMPLETED",
    )
    order = order_service.get_order(order_id)
    return success_response({"payment": payment.to_dict(), "order": order.to_dict()},
                            message="Payment recorded", status=201)


@orders_bp.get("/<int:order_id>/payments")
@require_auth
def list_payments_route(order_id: int):
    """Payments for an order plus the paid / balance summary."""
    payments = payment_service.get_order_payments(order_id, include_inactive=True)
    return success_response({
        "payments": [p.to_dict() for p in payments],
        "summary": payment_service.get_payment_summary(order_id),
    })


# =============================================================================
# LIFECYCLE
# =============================================================================

@orders_bp.post("/<int:order_id>/complete")
@require_auth
def complete_order_route(order_id: int):
    """
    Complete an order and decrement stock.

    Request body: {"paid_amount_cents": 2000} (optional)
    """
    data = json_body()
    order = order_service.complete_order(
        order_id,
        coerce_cents(data.get("paid_amount_cents"), "paid_amount_cents", required=False),
        actor_user_id=g.current_user.id,
    )
    return success_response(order.to_dict(), message="Order completed")


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    data = json_body()
    order = order_service.cancel_order(
        order_id, optional_str(data.get("reason"), "reason", max_length=500), g.current_user.id
    )
    return success_response(order.to_dict(), message="Order cancelled")


@orders_bp.post("/<int:order_id>/hold")
@require_auth
def hold_order_route(order_id: int):
    order = order_service.hold_order(order_id, actor_user_id=g.current_user.id)
    return success_response(order.to_dict(), message="Order on hold")


@orders_bp.post("/<int:order_id>/resume")
@require_auth
def resume_order_route(order_id: int):
    order = order_service.resume_order(order_id, actor_user_id=g.current_user.id)
    return success_response(order.to_dict(), message="Order resumed")


@orders_bp.post("/<int:order_id>/refund")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def refund_order_route(order_id: int):
    """
    Refund a completed order in full; stock for every outstanding line is returned.

    Request body: {"reason": "..."} (optional)
    """
    data = json_body()
    order = order_service.refund_order(
        order_id, optional_str(data.get("reason"), "reason", max_length=500), g.current_user.id
    )
    return success_response(order.to_dict(), message="Order refunded")
