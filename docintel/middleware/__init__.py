"""Middleware package."""
from docintel.middleware.logging import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    add_correlation_id_processor,
    get_correlation_id,
    redact_sensitive_processor,
)

__all__ = [
    "CorrelationIdMiddleware",
    "RequestLoggingMiddleware",
    "add_correlation_id_processor",
    "get_correlation_id",
    "redact_sensitive_processor",
]
