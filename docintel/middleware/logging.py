"""
Request logging and structlog processors.

Correlation IDs are carried in a context variable so that every log line
emitted while handling a request (or running a task) can be tied together.
"""
import functools
import time
import uuid
from contextvars import ContextVar
from typing import Any, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

logger = structlog.get_logger(__name__)

# Keys whose values never reach the log output
SENSITIVE_FIELDS = {
    "password", "token", "authorization", "api_key", "secret",
    "account_number", "tax_id", "ssn", "social_security",
}

SLOW_REQUEST_MS = 1000


def get_correlation_id() -> str:
    return correlation_id.get()


def set_correlation_id(value: str = "") -> str:
    """Set (or generate) the correlation ID for the current context."""
    value = value or str(uuid.uuid4())
    correlation_id.set(value)
    return value


def redact_sensitive_data(data: Any, depth: int = 0) -> Any:
    """Recursively replace values of sensitive keys with "[REDACTED]"."""
    if depth > 5 or not isinstance(data, dict):
        return data

    redacted = {}
    for key, value in data.items():
        if any(sensitive in str(key).lower() for sensitive in SENSITIVE_FIELDS):
            redacted[key] = "[REDACTED]"
        elif isinstance(value, dict):
            redacted[key] = redact_sensitive_data(value, depth + 1)
        elif isinstance(value, list):
            redacted[key] = [redact_sensitive_data(item, depth + 1) for item in value]
        else:
            redacted[key] = value
    return redacted


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Reads or assigns X-Correlation-ID and echoes it on the response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_correlation_id(request.headers.get("X-Correlation-ID", ""))
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its status and duration."""

    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        request_info = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }
        logger.info("request_started", **request_info)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                **request_info,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info("request_completed", **request_info, status_code=response.status_code, duration_ms=duration_ms)
        if duration_ms > SLOW_REQUEST_MS:
            logger.warning("slow_request", **request_info, duration_ms=duration_ms)
        return response


def log_performance(operation_name: str):
    """
    Decorator logging the duration and outcome of a synchronous operation.

    Usage:
        @log_performance("process_document")
        def run(...):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    "operation_failed",
                    operation=operation_name,
                    error=str(e),
                    error_type=type(e).__name__,
                    duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
                raise
            logger.info(
                "operation_completed",
                operation=operation_name,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            return result
        return wrapper
    return decorator


def add_correlation_id_processor(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Structlog processor adding the correlation ID to every entry."""
    event_dict["correlation_id"] = get_correlation_id()
    return event_dict


def redact_sensitive_processor(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Structlog processor redacting sensitive values."""
    return redact_sensitive_data(event_dict)
