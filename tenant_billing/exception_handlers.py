"""
Exception handlers for the billing API.

Every failure leaves the API in the same envelope:

{
    "error": {
        "status_code": 409,
        "error_code": "BILLING_DUPLICATE_PENDING_INVOICE",
        "message": "An unresolved invoice already exists for tenant 3 and tier 7",
        "type": "Conflict",
        "details": {"tenant_id": 3, "tier_id": 7},
        "path": "/api/v1/tenants/3/tier-change"
    }
}
"""

import logging
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tenant_billing.exceptions import BillingError, ErrorCode

logger = logging.getLogger(__name__)

UNPROCESSABLE = 422

# Error codes for framework-raised HTTPExceptions (unknown routes, bad methods)
HTTP_STATUS_ERROR_CODES = {
    status.HTTP_401_UNAUTHORIZED: ErrorCode.AUTH_FAILED,
    status.HTTP_403_FORBIDDEN: ErrorCode.AUTH_PERMISSION_DENIED,
    status.HTTP_404_NOT_FOUND: ErrorCode.RESOURCE_NOT_FOUND,
    status.HTTP_405_METHOD_NOT_ALLOWED: ErrorCode.VALIDATION_FAILED,
    status.HTTP_409_CONFLICT: ErrorCode.VALIDATION_DUPLICATE_RESOURCE,
    UNPROCESSABLE: ErrorCode.VALIDATION_FAILED,
}


def error_type(status_code: int) -> str:
    if status_code == UNPROCESSABLE:
        return "Validation Error"
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def error_body(
    request: Request,
    status_code: int,
    message: str,
    error_code: ErrorCode | str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    error: dict[str, Any] = {
        "status_code": status_code,
        "error_code": error_code.value if isinstance(error_code, ErrorCode) else error_code,
        "message": message,
        "type": error_type(status_code),
        "path": request.url.path,
    }
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error})


async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    # Rule violations are expected traffic; only 5xx is an error in the log
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "%s on %s: %s",
        exc.error_code.value,
        request.url.path,
        exc.message,
        extra={"error_details": exc.details},
    )
    return error_body(request, exc.status_code, exc.message, exc.error_code, exc.details)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning("HTTP %d on %s: %s", exc.status_code, request.url.path, exc.detail)
    error_code = HTTP_STATUS_ERROR_CODES.get(exc.status_code, ErrorCode.UNKNOWN_ERROR)
    return error_body(request, exc.status_code, str(exc.detail), error_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Flatten pydantic errors to field/message pairs."""
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning("Invalid request to %s: %d field error(s)", request.url.path, len(errors))
    return error_body(
        request,
        UNPROCESSABLE,
        "Validation error",
        ErrorCode.VALIDATION_FAILED,
        {"validation_errors": errors},
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled %s during %s %s", type(exc).__name__, request.method, request.url.path)
    return error_body(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        ErrorCode.INTERNAL_ERROR,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BillingError, billing_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
