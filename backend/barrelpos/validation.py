# Overview: Strict request-body coercion shared by the API routes.

from __future__ import annotations

from typing import Any

from flask import request

from .errors import ValidationError

# Maximum money value: $9,999,999.99 (999,999,999 cents)
MAX_CENTS = 999_999_999


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def coerce_int(value: Any, field: str, *, required: bool = True, minimum: int | None = None,
               maximum: int | None = None) -> int | None:
    """
    Accept ints and plain-digit strings only.

    Floats, decimals, scientific notation and booleans are rejected so that
    money never silently loses precision.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required", errors={field: "required"})
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", errors={field: "invalid"})
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer", errors={field: "invalid"})
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", errors={field: "invalid"})
    else:
        raise ValidationError(f"{field} must be an integer", errors={field: "invalid"})

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", errors={field: "too_small"})
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", errors={field: "too_large"})
    return result


def coerce_cents(value: Any, field: str, *, required: bool = True, minimum: int | None = 0) -> int | None:
    return coerce_int(value, field, required=required, minimum=minimum, maximum=MAX_CENTS)


def optional_str(value: Any, field: str, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", errors={field: "invalid"})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} is too long (max {max_length})", errors={field: "too_long"})
    return value or None


def required_str(value: Any, field: str, *, max_length: int = 255) -> str:
    result = optional_str(value, field, max_length=max_length)
    if result is None:
        raise ValidationError(f"{field} is required", errors={field: "required"})
    return result
