"""Custom exceptions and handlers for consistent error responses.

Every application error is rendered as:

    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable error message",
            "details": {...}  // optional
        }
    }

Operator-facing failures (missing secrets, unhandled errors) are logged
in full but answered with a generic message.
"""

import logging
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class FarmConnectException(Exception):
    """Base exception for FarmConnect application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class InvalidRequestError(FarmConnectException):
    """Malformed or missing request fields."""

    def __init__(self, message: str, error_code: str = "INVALID_REQUEST"):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=error_code,
        )


class WebhookSignatureError(FarmConnectException):
    """Gateway webhook signature could not be verified."""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="INVALID_SIGNATURE",
        )


class ConfigurationError(FarmConnectException):
    """A required secret or setting is missing."""

    def __init__(self, message: str = "Service is not configured"):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="CONFIGURATION_ERROR",
        )


class ResourceNotFoundError(FarmConnectException):
    """Exception for resources not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class PermissionDeniedError(FarmConnectException):
    """Exception for permission denied."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
        )


class InvalidTransitionError(FarmConnectException):
    """Requested order status change is not in the transition table."""

    def __init__(self, current: str, requested: str):
        super().__init__(
            message=f"Cannot move order from {current} to {requested}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="INVALID_TRANSITION",
        )


class ConcurrentUpdateError(FarmConnectException):
    """Order kept changing underneath a status write."""

    def __init__(self, order_id: str):
        super().__init__(
            message=f"Order {order_id} was modified concurrently, please retry",
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONCURRENT_UPDATE",
        )


class GatewayError(FarmConnectException):
    """The payment gateway rejected or failed a request."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="GATEWAY_ERROR",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Create standardized error response."""
    content = {
        "error": {
            "code": error_code,
            "message": message,
        }
    }

    if details:
        content["error"]["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content,
    )


def _context(request: Request, **extra) -> dict:
    return {"path": request.url.path, "method": request.method, **extra}


# Unique constraints whose violation means "this already happened"
DUPLICATE_CONSTRAINTS = {
    "invoices.payment_id": "Payment already has an invoice",
    "invoices.invoice_number": "Invoice number already issued, please retry",
    "payments.stripe_session_id": "Checkout session already has a payment",
    "uq_payments_stripe_session_id": "Checkout session already has a payment",
    "uq_payout_intent_order_recipient": "Payout already queued for this recipient",
    "processed_webhook_events": "Event already processed",
}


async def farmconnect_exception_handler(
    request: Request,
    exc: FarmConnectException,
) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "%s %s -> %s: %s",
        request.method, request.url.path, exc.error_code, exc.message,
        extra=_context(request, error_code=exc.error_code),
    )

    # Operator-facing details stay in the log
    message = exc.message
    if isinstance(exc, GatewayError):
        message = "Payment gateway error"

    return create_error_response(
        status_code=exc.status_code,
        message=message,
        error_code=exc.error_code,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "HTTP %s on %s: %s", exc.status_code, request.url.path, exc.detail,
            extra=_context(request),
        )

    response = create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )
    for name, value in (getattr(exc, "headers", None) or {}).items():
        response.headers[name] = value
    return response


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Flatten pydantic errors to [{field, message, type}]."""
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        "Validation error on %s (%d field(s))", request.url.path, len(errors),
        extra=_context(request),
    )

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


async def database_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    error_msg = str(getattr(exc, "orig", exc))
    logger.error(
        "Integrity error on %s: %s", request.url.path, error_msg,
        extra=_context(request),
    )

    for constraint, message in DUPLICATE_CONSTRAINTS.items():
        if constraint in error_msg:
            return create_error_response(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                message=message,
                error_code="DUPLICATE_RECORD",
            )

    lowered = error_msg.lower()
    if "unique" in lowered:
        message, error_code = "A record with this value already exists", "DUPLICATE_RECORD"
    elif "foreign key" in lowered:
        message, error_code = "Referenced record does not exist", "FOREIGN_KEY_VIOLATION"
    else:
        message, error_code = "Database constraint violation", "INTEGRITY_ERROR"

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message=message,
        error_code=error_code,
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    logger.error(
        "Database unavailable on %s: %s", request.url.path, exc,
        extra=_context(request),
    )

    return create_error_response(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        message="Database temporarily unavailable. Please try again.",
        error_code="DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Anything unhandled: full traceback in the log, nothing leaked to the client."""
    logger.exception(
        "Unhandled %s on %s", type(exc).__name__, request.url.path,
        extra=_context(request),
    )

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(FarmConnectException, farmconnect_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, database_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
