"""
FastAPI application entry point.

Configures logging, error tracking, middleware and routes.
"""
import traceback

import sentry_sdk
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from docintel.api.routes import monitoring, processing
from docintel.config import get_settings
from docintel.database import init_db
from docintel.exceptions import DocIntelError
from docintel.middleware.logging import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    add_correlation_id_processor,
    redact_sensitive_data,
    redact_sensitive_processor,
)

settings = get_settings()

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=monitoring.VERSION,
        traces_sample_rate=0.1,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        send_default_pii=False,
        before_send=lambda event, hint: redact_sensitive_data(event),
    )

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        add_correlation_id_processor,
        redact_sensitive_processor,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

app = FastAPI(
    title="DocIntel API",
    description="""
## Financial Document Intelligence API

Recognizes document templates in OCR output, extracts and validates typed
fields, and files documents through prioritized rules.

| Stage | Endpoint |
|-------|----------|
| End to end | `POST /api/v1/documents/{id}/process` |
| Template recognition | `POST /api/v1/recognize` |
| Field extraction | `POST /api/v1/extract` |
| Filing | `POST /api/v1/documents/{id}/file` |
    """,
    version=monitoring.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Processing", "description": "Recognition, extraction and filing"},
        {"name": "Monitoring", "description": "Health checks"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)

# Order matters: correlation ID first
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(processing.router, prefix="/api/v1", tags=["Processing"])
app.include_router(monitoring.router, tags=["Monitoring"])


@app.exception_handler(DocIntelError)
async def docintel_exception_handler(request: Request, exc: DocIntelError):
    """Handle all DocIntel exceptions."""
    logger.error(
        "docintel_error",
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details,
        path=str(request.url.path),
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions with consistent format."""
    sentry_sdk.capture_exception(exc)

    logger.error(
        "unhandled_error",
        error_type=type(exc).__name__,
        message=str(exc),
        path=str(request.url.path),
        traceback=traceback.format_exc(),
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "error_code": "DCI-999",
            "message": "An unexpected error occurred. Please try again.",
            "details": {"error_type": type(exc).__name__} if settings.debug else {},
        },
    )


@app.on_event("startup")
async def startup_event() -> None:
    """Initialize application on startup."""
    logger.info("Starting DocIntel API", debug=settings.debug, environment=settings.environment)
    if not settings.sentry_dsn:
        logger.warning("Sentry error tracking not configured (SENTRY_DSN not set)")

    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    init_db()

    logger.info("DocIntel API started successfully")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Cleanup on application shutdown."""
    logger.info("Shutting down DocIntel API")
