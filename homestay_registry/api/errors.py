"""Map domain exceptions to JSON error responses"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from homestay_registry.api.dependencies import get_request_id
from homestay_registry.domain.exceptions import (
    AuthorizationError,
    ConflictError,
    DomainException,
    ExternalGatewayError,
    FatalStoreError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)


def error_body(exc: DomainException) -> dict:
    body = {"error": str(exc)}
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    if isinstance(exc, ConflictError):
        body["retryable"] = True
    if isinstance(exc, InvalidTransitionError) and exc.current_status:
        body["current_status"] = exc.current_status
    if isinstance(exc, ExternalGatewayError) and exc.gateway:
        body["gateway"] = exc.gateway
    return body


def status_for(exc: DomainException) -> int:
    if isinstance(exc, ValidationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, AuthorizationError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ExternalGatewayError):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, FatalStoreError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_400_BAD_REQUEST


async def domain_exception_handler(request: Request, exc: DomainException):
    """Handle domain-level exceptions"""
    code = status_for(exc)
    log = logging.error if code >= 500 else logging.warning
    log(f"{exc.__class__.__name__}: {exc}", extra={"request_id": get_request_id(request), "status": code})
    return JSONResponse(status_code=code, content=error_body(exc))


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=getattr(exc, "headers", None))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "header")]
    body = {"error": first.get("msg", "Invalid request"), "details": jsonable_errors(errors)}
    if loc:
        body["field"] = ".".join(loc)
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=body)


def jsonable_errors(errors) -> list:
    return [{"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg"), "type": e.get("type")} for e in errors]


async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler"""
    logging.error(f"Unexpected error: {exc}", exc_info=True, extra={"request_id": get_request_id(request)})
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
