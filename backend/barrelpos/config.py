# backend/barrelpos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int | None) -> int | None:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return int(value)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/barrelpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///barrelpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Tax (basis points, 1000 = 10% GST)
    DEFAULT_GST_RATE_BPS = _env_int("DEFAULT_GST_RATE_BPS", 1000)

    # Auth sessions
    SESSION_ABSOLUTE_TIMEOUT_HOURS = _env_int("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_HOURS = _env_int("SESSION_IDLE_TIMEOUT_HOURS", 2)

    # WhatsApp Business (Graph API) channel
    WHATSAPP_ENABLED = _env_bool("WHATSAPP_ENABLED", True)
    WHATSAPP_ACCESS_TOKEN = os.environ.get("WHATSAPP_ACCESS_TOKEN", "")
    WHATSAPP_PHONE_NUMBER_ID = os.environ.get("WHATSAPP_PHONE_NUMBER_ID", "")
    WHATSAPP_VERIFY_TOKEN = os.environ.get("WHATSAPP_VERIFY_TOKEN", "")
    WHATSAPP_API_VERSION = os.environ.get("WHATSAPP_API_VERSION", "v18.0")
    WHATSAPP_API_BASE_URL = os.environ.get("WHATSAPP_API_BASE_URL", "https://graph.facebook.com")
    WHATSAPP_HTTP_TIMEOUT_SECONDS = float(os.environ.get("WHATSAPP_HTTP_TIMEOUT_SECONDS", "10"))
    WHATSAPP_SESSION_TIMEOUT_HOURS = _env_int("WHATSAPP_SESSION_TIMEOUT_HOURS", 1)
    WHATSAPP_PLACED_SESSION_RETENTION_MINUTES = _env_int("WHATSAPP_PLACED_SESSION_RETENTION_MINUTES", 5)
    WHATSAPP_DEFAULT_STORE_ID = _env_int("WHATSAPP_DEFAULT_STORE_ID", None)
    WHATSAPP_ORDER_USER_ID = _env_int("WHATSAPP_ORDER_USER_ID", None)
    WHATSAPP_BUSINESS_NAME = os.environ.get("WHATSAPP_BUSINESS_NAME", "Cookie Barrel")
    WHATSAPP_MAX_ITEM_QUANTITY = _env_int("WHATSAPP_MAX_ITEM_QUANTITY", 50)
    WHATSAPP_SESSION_BACKEND = os.environ.get("WHATSAPP_SESSION_BACKEND", "memory")
