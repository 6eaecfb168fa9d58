"""Translate domain failures into the service's JSON error envelope."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from schemas import ErrorBody, ValidationErrorBody

from ..domain.errors import (
    AccountNotFound,
    BenefitError,
    ConcurrencyConflict,
    InactiveAccount,
    InsufficientBalance,
    InvalidTransfer,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[BenefitError], int], ...] = (
    (AccountNotFound, status.HTTP_404_NOT_FOUND),
    (ConcurrencyConflict, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InvalidTransfer, status.HTTP_400_BAD_REQUEST),
    (InactiveAccount, status.HTTP_400_BAD_REQUEST),
    (InsufficientBalance, status.HTTP_400_BAD_REQUEST),
)


def status_for(exc: BenefitError) -> int:
    """Return the HTTP status assigned to a domain error type."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def handle_benefit_error(request: Request, exc: BenefitError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info("%s %s -> %s: %s", request.method, request.url.path, status_code, exc)
    if isinstance(exc, ValidationError):
        body: ErrorBody = ValidationErrorBody(
            status=status_code,
            message="validation failed",
            timestamp=_now(),
            path=request.url.path,
            errors=exc.errors,
        )
    else:
        body = ErrorBody(status=status_code, message=str(exc), timestamp=_now(), path=request.url.path)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: dict[str, str] = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        errors.setdefault(".".join(location) or "body", error.get("msg", "invalid value"))
    logger.info("%s %s -> 400: %s", request.method, request.url.path, errors)
    body = ValidationErrorBody(
        status=status.HTTP_400_BAD_REQUEST,
        message="validation failed",
        timestamp=_now(),
        path=request.url.path,
        errors=errors,
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump(mode="json"))


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    body = ErrorBody(
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message=f"internal server error: {exc}",
        timestamp=_now(),
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body.model_dump(mode="json"),
    )


def install_error_handlers(app: FastAPI) -> None:
    """Register the domain, request-validation and catch-all handlers on ``app``."""
    app.add_exception_handler(BenefitError, handle_benefit_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)
