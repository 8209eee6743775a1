"""
Translation of typed workflow errors into HTTP responses.

Every error body has the form ``{"error": {"code", "message", "details"}}``.
``details`` carries the exception's structured attributes in camelCase.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel

from procurement_kernel.exceptions import (
    AuditChainBrokenError,
    AuthenticationError,
    AuthorizationError,
    ConcurrencyConflict,
    DuplicateEntityError,
    ExternalServiceError,
    InvalidStateTransition,
    NoEligibleVendors,
    NotFoundError,
    ProcurementError,
    QuoteAlreadySelected,
    ValidationError,
)
from procurement_kernel.logging_config import get_logger

logger = get_logger("api.errors")

HTTP_STATUS: dict[type[ProcurementError], int] = {
    ValidationError: 400,
    InvalidStateTransition: 400,
    AuthenticationError: 401,
    AuthorizationError: 403,
    NotFoundError: 404,
    ConcurrencyConflict: 409,
    QuoteAlreadySelected: 409,
    DuplicateEntityError: 409,
    NoEligibleVendors: 422,
    AuditChainBrokenError: 500,
    ExternalServiceError: 502,
}


def status_for(exc: ProcurementError) -> int:
    for cls in type(exc).__mro__:
        if cls in HTTP_STATUS:
            return HTTP_STATUS[cls]
    return 500


def error_body(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"error": {"code": code, "message": message, "details": jsonable_encoder(details or {})}}


def _details(exc: ProcurementError) -> dict[str, Any]:
    return {to_camel(name): value for name, value in exc.details().items()}


async def procurement_error_handler(request: Request, exc: ProcurementError) -> JSONResponse:
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "http_request_rejected",
        extra={
            "path": request.url.path,
            "status_code": status_code,
            "error_code": exc.code,
        },
    )
    return JSONResponse(
        status_code=status_code,
        content=error_body(exc.code, str(exc), _details(exc)),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": [str(part) for part in e.get("loc", ())], "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    logger.info(
        "http_request_invalid",
        extra={"path": request.url.path, "error_count": len(errors)},
    )
    return JSONResponse(
        status_code=400,
        content=error_body(ValidationError.code, "Request body failed validation", {"errors": errors}),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProcurementError, procurement_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
