"""Request ids, request logging, and JSON error responses for the API."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from time import perf_counter
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crew_control.core.config import settings
from crew_control.core.errors import (
    CrewError,
    DependencyValidationError,
    InvalidTransitionError,
    NetworkError,
    NotFoundError,
    PersistenceError,
    SchemaMissingError,
)
from crew_control.core.logging import get_logger
from crew_control.schemas.errors import DependencyErrorDetail

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"
_HEALTH_PATHS = frozenset({"/health", "/healthz", "/readyz"})

# First match wins, so subclasses precede their bases.
_CREW_ERROR_STATUS: tuple[tuple[type[CrewError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (SchemaMissingError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (NetworkError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for_error(exc: CrewError) -> int:
    for error_type, code in _CREW_ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_422_UNPROCESSABLE_ENTITY


def _get_request_id(request: Request) -> str | None:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    return None


def _error_payload(*, detail: Any, request_id: str | None, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"detail": detail}
    if request_id is not None:
        payload["request_id"] = request_id
    payload.update(extra)
    return payload


def _json_safe(value: Any) -> Any:
    """Make validation error details serialisable, bytes included."""
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_json_safe(item) for item in value]
    if value is None or isinstance(value, str | int | float | bool):
        return value
    return str(value)


def _json_response(request: Request, status_code: int, payload: dict[str, Any]) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=jsonable_encoder(payload))
    request_id = _get_request_id(request)
    if request_id is not None:
        response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def _request_validation_exception_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, RequestValidationError):
        raise TypeError("Expected RequestValidationError")
    return _json_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        _error_payload(detail=_json_safe(exc.errors()), request_id=_get_request_id(request)),
    )


async def _response_validation_exception_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, ResponseValidationError):
        raise TypeError("Expected ResponseValidationError")
    logger.error(
        "http.response.validation_failed",
        extra={"path": request.url.path, "request_id": _get_request_id(request)},
    )
    return _json_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        _error_payload(detail="Internal Server Error", request_id=_get_request_id(request)),
    )


async def _http_exception_exception_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, StarletteHTTPException):
        raise TypeError("Expected StarletteHTTPException")
    response = _json_response(
        request,
        exc.status_code,
        _error_payload(detail=exc.detail, request_id=_get_request_id(request)),
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def _crew_error_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, CrewError):
        raise TypeError("Expected CrewError")
    status_code = status_for_error(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "http.request.crew_error",
        extra={"path": request.url.path, "code": exc.code, "status_code": status_code},
    )
    detail: Any = exc.message
    if isinstance(exc, DependencyValidationError):
        detail = DependencyErrorDetail(message=exc.message, task_ids=exc.task_ids).model_dump()
    return _json_response(
        request,
        status_code,
        _error_payload(
            detail=detail,
            request_id=_get_request_id(request),
            code=exc.code,
            retryable=exc.retryable,
        ),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    logger.exception(
        "http.request.unhandled_error",
        extra={"path": request.url.path, "request_id": _get_request_id(request)},
        exc_info=exc,
    )
    return _json_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        _error_payload(detail="Internal Server Error", request_id=_get_request_id(request)),
    )


def _incoming_request_id(request: Request) -> str:
    raw = request.headers.get(REQUEST_ID_HEADER, "").strip()
    return raw or uuid4().hex


def install_error_handling(app: FastAPI) -> None:
    """Attach request-id middleware and exception handlers to an app."""

    @app.middleware("http")
    async def _request_context(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = _incoming_request_id(request)
        request.state.request_id = request_id
        started = perf_counter()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        path = request.url.path
        if path in _HEALTH_PATHS and not settings.request_log_include_health:
            return response
        duration_ms = int((perf_counter() - started) * 1000)
        context = {
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "request_id": request_id,
        }
        slow_ms = settings.request_log_slow_ms
        if slow_ms and duration_ms >= slow_ms:
            logger.warning("http.request.slow", extra={**context, "slow_threshold_ms": slow_ms})
        else:
            logger.info("http.request.complete", extra=context)
        return response

    app.add_exception_handler(RequestValidationError, _request_validation_exception_handler)
    app.add_exception_handler(ResponseValidationError, _response_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_exception_handler)
    app.add_exception_handler(CrewError, _crew_error_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
