# Overview: Staff accounts and password checks.

"""
Authentication service.

Every order, payment and stock movement is attributed to a user, so the
POS needs just enough auth to know who is acting: bcrypt password hashes,
login by username, and an active flag.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..errors import AuthenticationError, ValidationError, AUTH_INVALID_CREDENTIALS
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_CASHIER, VALID_ROLES
from .persistence import live, save_all


def validate_password_strength(password: str) -> None:
    if not password or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long", errors={"password": "too_short"})
    if not re.search(r"[A-Za-z]", password) or not re.search(r"\d", password):
        raise ValidationError("Password must contain letters and digits", errors={"password": "too_weak"})


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; a malformed hash never matches."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    *,
    store_id: int | None = None,
    role: str = ROLE_CASHIER,
    full_name: str | None = None,
    actor_id: int | None = None,
) -> User:
    if not username or not username.strip():
        raise ValidationError("Username is required", errors={"username": "required"})
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role: {role}", errors={"role": "invalid"})

    username = username.strip()
    clash = db.session.query(User).filter(db.or_(User.username == username, User.email == email)).first()
    if clash is not None:
        raise ValidationError("Username or email already exists", errors={"username": "duplicate"})

    user = User(
        username=username,
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        store_id=store_id,
        role=role,
        is_active=True,
    )
    save_all([user], actor_id=actor_id)
    return user


def authenticate(username: str, password: str) -> User:
    """Return the active user matching the credentials or raise AuthenticationError."""
    user = (
        live(db.session.query(User), User)
        .filter(User.username == (username or "").strip())
        .first()
    )
    if user is None or not user.is_active or not verify_password(password or "", user.password_hash):
        current_app.logger.info("Failed login for %r", username)
        raise AuthenticationError("Invalid username or password", code=AUTH_INVALID_CREDENTIALS)
    return user
