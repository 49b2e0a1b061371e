# Overview: Flask API routes for cashier shifts (open, close, status changes).

from flask import Blueprint, g

from ..decorators import require_auth, require_role
from ..errors import NoActiveShiftError, ValidationError, success_response
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import shift_service
from ..validation import coerce_cents, coerce_int, json_body, optional_str

shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


@shifts_bp.post("/open")
@require_auth
def open_shift_route():
    """
    Open a shift for the current user.

    Request body:
    {
        "store_id": 1,                (optional, defaults to the user's store)
        "starting_cash_cents": 20000,
        "notes": "..."                (optional)
    }

    Returns:
        201: shift
        422: SHIFT_ALREADY_OPEN
    """
    data = json_body()
    store_id = coerce_int(data.get("store_id"), "store_id", required=False, minimum=1) or g.current_user.store_id
    if store_id is None:
        raise ValidationError("store_id is required", errors={"store_id": "required"})

    shift = shift_service.open_shift(
        g.current_user.id,
        store_id,
        coerce_cents(data.get("starting_cash_cents"), "starting_cash_cents", required=False) or 0,
        notes=optional_str(data.get("notes"), "notes", max_length=1000),
    )
    return success_response(shift.to_dict(), message="Shift opened", status=201)


@shifts_bp.post("/<int:shift_id>/close")
@require_auth
def close_shift_route(shift_id: int):
    """
    Close a shift and reconcile the drawer.

    Request body:
    {
        "ending_cash_cents": 35000,
        "notes": "..."               (optional)
    }
    """
    data = json_body()
    shift = shift_service.close_shift(
        shift_id,
        coerce_cents(data.get("ending_cash_cents"), "ending_cash_cents"),
        actor_user_id=g.current_user.id,
        notes=optional_str(data.get("notes"), "notes", max_length=1000),
    )
    return success_response(shift.to_dict(), message="Shift closed")


@shifts_bp.get("/current")
@require_auth
def current_shift_route():
    """Open shift of the current user with running sales totals."""
    summary = shift_service.current_shift_summary(g.current_user.id)
    if summary is None:
        raise NoActiveShiftError("No open shift for this user")
    return success_response(summary)


@shifts_bp.post("/<int:shift_id>/suspend")
@require_auth
def suspend_shift_route(shift_id: int):
    shift = shift_service.suspend_shift(shift_id, actor_user_id=g.current_user.id)
    return success_response(shift.to_dict(), message="Shift suspended")


@shifts_bp.post("/<int:shift_id>/resume")
@require_auth
def resume_shift_route(shift_id: int):
    shift = shift_service.resume_shift(shift_id, actor_user_id=g.current_user.id)
    return success_response(shift.to_dict(), message="Shift resumed")


@shifts_bp.post("/<int:shift_id>/reconcile")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def reconcile_shift_route(shift_id: int):
    shift = shift_service.reconcile_shift(shift_id, actor_user_id=g.current_user.id)
    return success_response(shift.to_dict(), message="Shift reconciled")
