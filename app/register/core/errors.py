from decimal import Decimal

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import OperationalError

from app.register.core.error_catalog import AppError, ErrorCatalog, StoreError
from app.register.core.metrics import metrics


_HTTP_STATUS_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


def _set_error_context(request: Request, code: str, exc: Exception | None = None) -> None:
    request.state.error_code = code
    if exc is not None:
        request.state.error_class = exc.__class__.__name__


def _is_lock_timeout(exc: Exception) -> bool:
    if isinstance(exc, StoreError):
        exc = exc.cause
    if isinstance(exc, OperationalError):
        message = str(exc).lower()
        return any(
            token in message
            for token in (
                "lock timeout",
                "deadlock detected",
                "database is locked",
                "could not obtain lock",
            )
        )
    return False


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", "")


def _http_error_code(status_code: int) -> str:
    return _HTTP_STATUS_CODES.get(status_code, "HTTP_ERROR")


def _json_safe(value):
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_json_safe(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_json_safe(item) for item in value)
    return value


def _validation_error_details(exc: RequestValidationError) -> dict:
    errors = []
    for error in exc.errors():
        loc = list(error.get("loc", []))
        field = ".".join(str(item) for item in loc if item not in {"body", "query", "path", "header"}) or None
        errors.append(
            {
                "field": field,
                "message": error.get("msg", "Invalid value"),
                "type": error.get("type", "validation_error"),
                "loc": loc,
                "input": _json_safe(error.get("input")),
            }
        )
    return {"errors": errors}


def error_response(code: str, message: str, details: object, trace_id: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "code": code,
            "message": message,
            "details": _json_safe(details),
            "trace_id": trace_id,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if _is_lock_timeout(exc):
            return _lock_timeout_response(request, exc)
        _set_error_context(request, exc.error.code, exc)
        return error_response(
            exc.error.code,
            exc.error.message,
            exc.details,
            _trace_id(request),
            exc.error.status_code,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        code = _http_error_code(exc.status_code)
        _set_error_context(request, code, exc)
        detail = exc.detail
        return error_response(
            code,
            str(detail) if detail is not None else "HTTP error",
            None,
            _trace_id(request),
            exc.status_code,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        _set_error_context(request, ErrorCatalog.VALIDATION_ERROR.code, exc)
        return error_response(
            ErrorCatalog.VALIDATION_ERROR.code,
            ErrorCatalog.VALIDATION_ERROR.message,
            _validation_error_details(exc),
            _trace_id(request),
            ErrorCatalog.VALIDATION_ERROR.status_code,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        if _is_lock_timeout(exc):
            return _lock_timeout_response(request, exc)
        _set_error_context(request, ErrorCatalog.INTERNAL_ERROR.code, exc)
        return error_response(
            ErrorCatalog.INTERNAL_ERROR.code,
            ErrorCatalog.INTERNAL_ERROR.message,
            {"type": exc.__class__.__name__},
            _trace_id(request),
            ErrorCatalog.INTERNAL_ERROR.status_code,
        )


def _lock_timeout_response(request: Request, exc: Exception) -> JSONResponse:
    _set_error_context(request, ErrorCatalog.LOCK_TIMEOUT.code, exc)
    metrics.increment_lock_wait_timeout()
    return error_response(
        ErrorCatalog.LOCK_TIMEOUT.code,
        ErrorCatalog.LOCK_TIMEOUT.message,
        {"type": exc.__class__.__name__},
        _trace_id(request),
        ErrorCatalog.LOCK_TIMEOUT.status_code,
    )
