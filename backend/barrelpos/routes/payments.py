# Overview: Flask API routes for payment status changes.

from flask import Blueprint, g

from ..decorators import require_auth, require_role
from ..errors import ValidationError, success_response
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import order_service, payment_service
from ..validation import json_body

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/<int:payment_id>/status")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_payment_status_route(payment_id: int):
    """
    Move a payment to a new status.

    Request body:
    {
        "status": "FAILED"   (PENDING | COMPLETED | FAILED | REFUNDED | PARTIALLY_REFUNDED | CANCELLED)
    }

    Returns:
        200: {payment, order} with the order's paid amount re-derived
    """
    data = json_body()
    status = data.get("status")
    if not status:
        raise ValidationError("status is required", errors={"status": "required"})

    payment = payment_service.update_payment_status(payment_id, status, actor_user_id=g.current_user.id)
    order = order_service.get_order(payment.order_id)
    return success_response({"payment": payment.to_dict(), "order": order.to_dict()})
