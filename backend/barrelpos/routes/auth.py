# Overview: Flask API routes for login and logout.

from flask import Blueprint, current_app, g

from ..decorators import require_auth
from ..errors import ValidationError, success_response
from ..services import auth_service, session_service
from ..validation import json_body

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body:
    {
        "username": "cashier1",   (or "email")
        "password": "..."
    }

    Returns:
        200: {user, token, expires_at}
        401: AUTH_INVALID_CREDENTIALS
    """
    data = json_body()
    username = data.get("username") or data.get("email")
    password = data.get("password")
    if not username or not password:
        raise ValidationError("username and password are required",
                              errors={"username": "required", "password": "required"})

    user = auth_service.authenticate(username, password)
    session, token = session_service.create_session(user)
    current_app.logger.info("User %s logged in", user.username)

    return success_response({
        "user": user.to_dict(),
        "token": token,
        "expires_at": session.to_dict()["expires_at"],
    })


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session token."""
    session_service.revoke_session(g.session_token)
    current_app.logger.info("User %s logged out", g.current_user.username)
    return success_response(None, message="Logged out")
