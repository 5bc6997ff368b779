"""
FastAPI Middleware

Provides request/response middleware for:
- Correlation ID injection
- Request logging with the authenticated actor
- Error envelopes for application, validation and unexpected errors
"""
import time
from typing import Callable
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from rutapay.core.logging import (
    get_logger,
    set_correlation_id,
    get_correlation_id
)
from rutapay.core.exceptions import AppException, ErrorCode, ValidationException

logger = get_logger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds X-Correlation-ID (or a fresh id) to the request and echoes it back"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = set_correlation_id(request.headers.get("X-Correlation-ID"))
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


def _actor(request: Request) -> dict:
    """Who made the call, as recorded by the auth dependency"""
    return {
        "actor_id": getattr(request.state, "actor_id", None),
        "actor_role": getattr(request.state, "actor_role", None),
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One line when a request arrives and one when it finishes"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        method, path = request.method, request.url.path

        logger.info(
            f"Request started: {method} {path}",
            extra_data={
                "method": method,
                "path": path,
                "query_params": dict(request.query_params),
                "client_host": request.client.host if request.client else None,
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {method} {path}",
                extra_data={
                    "method": method,
                    "path": path,
                    "duration_seconds": round(time.perf_counter() - started, 4),
                    "error": str(e),
                    **_actor(request),
                },
                exc_info=True
            )
            raise

        log = logger.info if response.status_code < 400 else logger.warning
        log(
            f"Request completed: {method} {path}",
            extra_data={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_seconds": round(time.perf_counter() - started, 4),
                **_actor(request),
            }
        )
        return response


def _error_response(exc: AppException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"X-Correlation-ID": get_correlation_id()}
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning(
        f"Application exception: {exc.error_code.value}",
        extra_data={
            "error_code": exc.error_code.value,
            "message": exc.message,
            "details": exc.details,
            "path": request.url.path,
        }
    )
    return _error_response(exc)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and query strings get the same envelope as ValidationException"""
    errors = exc.errors()
    first = errors[0] if errors else {}
    # loc looks like ("body", "route_id") or ("query", "limit")
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(location) or None

    validation_error = ValidationException(first.get("msg", "Invalid request"), field=field)
    validation_error.details["errors"] = len(errors)

    logger.info(
        "Request validation failed",
        extra_data={"path": request.url.path, "field": field, "errors": len(errors)}
    )
    return _error_response(validation_error)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected becomes a bare 500; the traceback stays in the log"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra_data={
            "exception_type": type(exc).__name__,
            "message": str(exc),
            "path": request.url.path,
        },
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": ErrorCode.INTERNAL_ERROR.value,
                "message": "An unexpected error occurred",
                "details": {}
            }
        },
        headers={"X-Correlation-ID": get_correlation_id()}
    )


def setup_middleware(app: FastAPI) -> None:
    # Last added is outermost: CorrelationId runs first so request logs carry the id
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
