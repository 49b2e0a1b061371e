# Overview: Error taxonomy, response envelope, and the single boundary translator.

"""
Error taxonomy for the POS core.

Services raise the most specific member; routes never build error responses
by hand. register_error_handlers() maps every PosError to the standard
envelope:

    {"success": false, "error": {"errorCode": ..., "message": ..., "errors": {...}}}

STATUS MAPPING:
- ValidationError        400
- AuthenticationError    401
- PermissionDeniedError  403
- NotFoundError          404
- BusinessRuleError      422 (expected, recoverable by the caller)
- InfrastructureError    500 (persistence / external service failure)
"""

from __future__ import annotations

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException


# =============================================================================
# ERROR CODES (stable, machine-readable)
# =============================================================================

VALIDATION_FAILED = "VALIDATION_FAILED"
AUTH_REQUIRED = "AUTH_REQUIRED"
AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
FORBIDDEN = "FORBIDDEN"
NOT_FOUND = "NOT_FOUND"

BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
SHIFT_ALREADY_OPEN = "SHIFT_ALREADY_OPEN"
NO_ACTIVE_SHIFT = "NO_ACTIVE_SHIFT"
INVALID_PAYMENT_AMOUNT = "INVALID_PAYMENT_AMOUNT"
INVALID_QUANTITY = "INVALID_QUANTITY"
INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
INSUFFICIENT_PAYMENT = "INSUFFICIENT_PAYMENT"
ORDER_ALREADY_COMPLETED = "ORDER_ALREADY_COMPLETED"
ORDER_ALREADY_CANCELLED = "ORDER_ALREADY_CANCELLED"
ORDER_NOT_EDITABLE = "ORDER_NOT_EDITABLE"
ORDER_NOT_PAYABLE = "ORDER_NOT_PAYABLE"
PRODUCT_INACTIVE = "PRODUCT_INACTIVE"
ITEM_ALREADY_VOIDED = "ITEM_ALREADY_VOIDED"
TENDER_EXCEEDS_BALANCE = "TENDER_EXCEEDS_BALANCE"
INVALID_SHIFT_STATUS = "INVALID_SHIFT_STATUS"

SYS_INTERNAL_ERROR = "SYS_INTERNAL_ERROR"
SYS_DATABASE_ERROR = "SYS_DATABASE_ERROR"
SYS_EXTERNAL_SERVICE_ERROR = "SYS_EXTERNAL_SERVICE_ERROR"

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred. Please try again later"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class PosError(Exception):
    """Base for every error the core raises on purpose."""

    status_code = 500
    default_code = SYS_INTERNAL_ERROR

    def __init__(self, message: str, *, code: str | None = None, details: dict | None = None,
                 errors: dict | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.errors = errors

    def to_dict(self) -> dict:
        body = {"errorCode": self.code, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(PosError):
    """Malformed or missing input."""
    status_code = 400
    default_code = VALIDATION_FAILED


class AuthenticationError(PosError):
    status_code = 401
    default_code = AUTH_REQUIRED


class PermissionDeniedError(PosError):
    status_code = 403
    default_code = FORBIDDEN


class NotFoundError(PosError):
    status_code = 404
    default_code = NOT_FOUND


class BusinessRuleError(PosError):
    """A domain invariant would be violated."""
    status_code = 422
    default_code = BUSINESS_RULE_VIOLATION


class InsufficientStockError(BusinessRuleError):
    default_code = INSUFFICIENT_STOCK


class ShiftAlreadyOpenError(BusinessRuleError):
    default_code = SHIFT_ALREADY_OPEN


class NoActiveShiftError(BusinessRuleError):
    default_code = NO_ACTIVE_SHIFT


class InvalidPaymentAmountError(BusinessRuleError):
    default_code = INVALID_PAYMENT_AMOUNT


class InfrastructureError(PosError):
    """Persistence or external-service failure; the unit of work was rolled back."""
    status_code = 500
    default_code = SYS_DATABASE_ERROR


# =============================================================================
# ENVELOPE
# =============================================================================

def success_response(data=None, message: str | None = None, status: int = 200):
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return jsonify(body), status


def error_response(error: PosError):
    return jsonify({"success": False, "error": error.to_dict()}), error.status_code


def _expose_internal_detail() -> bool:
    return bool(current_app.debug or current_app.testing)


def register_error_handlers(app) -> None:
    """Install the boundary translator for the whole app."""

    @app.errorhandler(PosError)
    def handle_pos_error(error: PosError):
        if error.status_code >= 500:
            current_app.logger.exception("System error %s: %s", error.code, error.message)
            if not _expose_internal_detail():
                return error_response(InfrastructureError(INTERNAL_ERROR_MESSAGE, code=error.code))
        else:
            current_app.logger.info("Request rejected (%s): %s", error.code, error.message)
        return error_response(error)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        code = {
            400: VALIDATION_FAILED,
            401: AUTH_REQUIRED,
            403: FORBIDDEN,
            404: NOT_FOUND,
        }.get(error.code, SYS_INTERNAL_ERROR)
        body = {"success": False, "error": {"errorCode": code, "message": error.description}}
        return jsonify(body), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        current_app.logger.exception("Unhandled error")
        message = str(error) if _expose_internal_detail() else INTERNAL_ERROR_MESSAGE
        body = {"success": False, "error": {"errorCode": SYS_INTERNAL_ERROR, "message": message}}
        return jsonify(body), 500
