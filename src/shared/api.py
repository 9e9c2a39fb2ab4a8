"""Standard JSON error responses for the checkout HTTP surface."""

import time

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError
from pydantic import BaseModel

from shared.errors import CheckoutError, ReconciliationError

logger = structlog.get_logger(__name__)


class ErrorDetail(BaseModel):
    code: str
    reason: str
    attempted_amount: int | None = None
    temp_order_id: str | None = None
    fields: dict | None = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail
    timestamp: float


def _respond(status_code: int, detail: ErrorDetail) -> JSONResponse:
    body = ErrorResponse(error=detail, timestamp=time.time())
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    log = logger.error if isinstance(exc, ReconciliationError) else logger.warning
    log(
        "Checkout request failed",
        path=request.url.path,
        code=exc.code,
        reason=exc.reason,
        temp_order_id=exc.temp_order_id,
    )
    return _respond(exc.http_status, ErrorDetail(**exc.to_failure_view()))


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.warning("Validation failed", path=request.url.path, messages=exc.messages)
    return _respond(
        400,
        ErrorDetail(code="validation_error", reason="Request failed validation", fields=exc.messages),
    )


async def not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return _respond(404, ErrorDetail(code="not_found", reason=str(exc)))


def add_error_handlers(app: FastAPI) -> None:
    """Register the checkout error handlers on a FastAPI app."""
    app.add_exception_handler(CheckoutError, checkout_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(ObjectNotFoundError, not_found_handler)
