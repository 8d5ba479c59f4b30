"""
Shared API Middleware
=====================

Correlation ids, access logging and the mapping from application
exceptions to HTTP responses.

Error bodies share one shape:
    {"detail", "error_type", "details", "correlation_id", "timestamp"}
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple, Type

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from sla_sentinel.config import settings
from sla_sentinel.core import (
    ApplicationException,
    DependencyUnavailable,
    EvaluationTimeout,
    PredictorRejected,
    PredictorUnavailable,
    ResourceNotFoundException,
    SyncAlreadyRunning,
    ValidationException,
)
from sla_sentinel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

# First match wins; subclasses must precede their bases
STATUS_BY_EXCEPTION: List[Tuple[Type[ApplicationException], int]] = [
    (ResourceNotFoundException, 404),
    (ValidationException, 400),
    (DependencyUnavailable, 503),
    (PredictorUnavailable, 503),
    (EvaluationTimeout, 503),
    (PredictorRejected, 502),
    (SyncAlreadyRunning, 409),
]


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Reuses the caller's correlation id or mints one, and echoes it back."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """One access log line per request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        context = {
            "correlation_id": _correlation_id(request),
            "method": request.method,
            "path": request.url.path,
        }

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={**context, "error": str(e), "response_time_ms": _elapsed_ms(started)}
            )
            raise

        logger.info(
            "Request completed",
            extra={**context, "status_code": response.status_code, "response_time_ms": _elapsed_ms(started)}
        )
        return response


def status_for(exc: ApplicationException) -> int:
    for exc_type, status_code in STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return status_code
    return 500


def _error_response(
    request: Request,
    status_code: int,
    detail: str,
    error_type: str,
    details: Optional[dict] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": detail,
            "error_type": error_type,
            "details": details or {},
            "correlation_id": _correlation_id(request),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    )


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    status_code = status_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "Application exception",
        extra={
            "correlation_id": _correlation_id(request),
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
            "status_code": status_code
        }
    )
    return _error_response(request, status_code, exc.message, type(exc).__name__, exc.details)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort for anything not raised as an ApplicationException."""
    logger.exception(
        "Unhandled exception",
        extra={
            "correlation_id": _correlation_id(request),
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__
        }
    )
    # Internal details only leave the process in development
    details = {"debug_info": str(exc)} if settings.environment == "development" else None
    return _error_response(request, 500, "Internal server error", "InternalError", details)
