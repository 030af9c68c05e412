"""Custom exception hierarchy and handlers."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from vendorhub.core.enums import ErrorKindEnum

logger = logging.getLogger(__name__)

ERROR_MESSAGES: dict[str, str] = {
    "BOOKING_REQUEST_NOT_FOUND": "Booking request not found",
    "SERVICE_NOT_FOUND": "Service not found",
    "SERVICE_NOT_AVAILABLE": "Service is not available for booking",
    "CLIENT_NOT_FOUND": "Client not found",
    "INVALID_BOOKING_TIME": "Invalid booking time",
    "INVALID_SERVICE_PRICING": "Service pricing is not configured correctly",
    "INVALID_PRICING_OPTION": "Invalid pricing option",
    "INVALID_SERVICE_TYPE": "Invalid service listing type",
    "BOOKING_CONFLICT": "The requested time overlaps an existing booking",
    "FORBIDDEN": "You do not have permission to access this booking request",
    "INVALID_BOOKING_STATUS": "Booking request status does not allow this operation",
    "INVALID_SETUP_INTENT": "Setup intent does not match this booking request",
    "SETUP_INTENT_NOT_COMPLETED": "Payment method setup has not been completed",
    "PAYMENT_METHOD_NOT_FOUND": "Payment method not found on setup intent",
    "PAYMENT_INTENT_NOT_FOUND": "No payment attempt is recorded for this booking request",
    "CARD_DECLINED": "The card was declined",
    "AUTHENTICATION_REQUIRED": "The card requires authentication by the cardholder",
    "STRIPE_AUTH_ERROR": "Payment processor authentication failed",
    "STRIPE_API_ERROR": "Payment processor is unavailable",
    "PAYMENT_FAILED": "Payment failed",
    "INVALID_WEBHOOK_SIGNATURE": "Webhook signature verification failed",
    "INTERNAL_SERVER_ERROR": "Internal server error",
}


def get_error_message(error_key: str | None, default: str = "Request failed") -> str:
    """Translate an error key into a human-readable message."""
    if error_key is None:
        return default
    return ERROR_MESSAGES.get(error_key, default)


class AppException(Exception):
    """Base application exception."""

    status_code = 400
    code = ErrorKindEnum.VALIDATION
    default_error_key: str | None = None

    def __init__(
        self,
        message: str | None = None,
        *,
        error_key: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        self.error_key = error_key or self.default_error_key
        self.message = message or get_error_message(self.error_key)
        self.data = data
        super().__init__(self.message)


class ValidationException(AppException):
    """Raised when request input or listing configuration is invalid."""

    status_code = 400
    code = ErrorKindEnum.VALIDATION


class NotFoundException(AppException):
    """Raised when entity is not found."""

    status_code = 404
    code = ErrorKindEnum.NOT_FOUND


class ForbiddenException(AppException):
    """Raised when user has no rights for operation."""

    status_code = 403
    code = ErrorKindEnum.FORBIDDEN
    default_error_key = "FORBIDDEN"


class ConflictException(AppException):
    """Raised when a booking window overlaps a reserving booking."""

    status_code = 409
    code = ErrorKindEnum.CONFLICT
    default_error_key = "BOOKING_CONFLICT"


class InvalidStateException(AppException):
    """Raised when current status does not permit the operation."""

    status_code = 400
    code = ErrorKindEnum.INVALID_STATE
    default_error_key = "INVALID_BOOKING_STATUS"


class PaymentMethodException(AppException):
    """Raised when the saved payment method cannot be confirmed."""

    status_code = 400
    code = ErrorKindEnum.PAYMENT_METHOD_ERROR


class PaymentFailureException(AppException):
    """Raised when a charge attempt fails at the processor."""

    status_code = 402
    code = ErrorKindEnum.PAYMENT_FAILURE
    default_error_key = "PAYMENT_FAILED"


class InternalException(AppException):
    """Raised on unexpected storage or integration faults."""

    status_code = 500
    code = ErrorKindEnum.INTERNAL
    default_error_key = "INTERNAL_SERVER_ERROR"


def error_body(
    code: str,
    message: str,
    error_key: str | None = None,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the unified error envelope."""
    error: dict[str, Any] = {"code": code, "message": message}
    if error_key is not None:
        error["key"] = error_key
    if data:
        error["data"] = data
    return {"error": error}


async def app_exception_handler(_: Request, exc: AppException) -> JSONResponse:
    """Handle custom domain exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.code), exc.message, exc.error_key, exc.data),
    )


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions in unified shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body("http_error", str(exc.detail)),
        headers=exc.headers,
    )


async def unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(
        status_code=500,
        content=error_body(str(ErrorKindEnum.INTERNAL), get_error_message("INTERNAL_SERVER_ERROR")),
    )


def register_exception_handlers(app) -> None:
    """Register global exception handlers."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
