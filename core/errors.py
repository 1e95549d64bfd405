"""Domain error taxonomy and its HTTP mapping.

Services raise these exceptions when a business rule is violated. The API
layer registers a single handler that renders them as
``{"error": message, "code": CODE}`` with the status carried by the class,
so route handlers never translate errors by hand.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for failures that are safe to show to callers."""

    code = "INTERNAL"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(DomainError):
    """Missing or malformed input."""

    code = "VALIDATION"
    status_code = 400


class NotFoundError(DomainError):
    """A referenced product, order or bundle does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class InvalidStateTransition(DomainError):
    """An order status change that the lifecycle does not allow."""

    code = "INVALID_STATE_TRANSITION"
    status_code = 400


class InsufficientStock(DomainError):
    """A booking asked for more units than are free in the date range."""

    code = "INSUFFICIENT_STOCK"
    status_code = 409


class RateLimited(DomainError):
    code = "RATE_LIMITED"
    status_code = 429


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.info(
        "%s %s rejected: %s (%s)",
        request.method, request.url.path, exc.message, exc.code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = [
        ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "error": "Missing or invalid parameters",
            "code": ValidationError.code,
            "details": {"fields": [f for f in fields if f]},
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": DomainError.code},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
