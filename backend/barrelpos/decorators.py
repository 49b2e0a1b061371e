# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import g, request

from .errors import AuthenticationError, PermissionDeniedError
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user (the acting User) and g.session_token (plaintext
    token, used by logout). Raises AuthenticationError -> 401.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            raise AuthenticationError("Authentication required")

        user = session_service.validate_session(token)
        if user is None:
            raise AuthenticationError("Invalid or expired token")

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Restrict a route to users holding one of `roles`. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = g.get("current_user")
            if user is None:
                raise AuthenticationError("Authentication required")
            if user.role not in roles:
                raise PermissionDeniedError(
                    "You do not have permission to perform this action",
                    details={"required_roles": list(roles)},
                )
            return f(*args, **kwargs)

        return decorated_function

    return decorator
