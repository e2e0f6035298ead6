"""FastAPI application entry point with global error handling."""
from __future__ import annotations

import os
import sys

# Add src/ to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import get_settings
from core.exceptions import (
    BusinessRuleError,
    ConcurrencyConflictError,
    ConfigurationError,
    ConsentViolationError,
    DatabaseError,
    DealEngineError,
    DncBlockedError,
    ExternalServiceError,
    ImmutableRecordError,
    NotFoundError,
    RetentionViolationError,
    ServiceUnavailableError,
    ValidationError,
)
from core.logging_config import get_context_logger, get_logger, setup_logging
from api.routes import compliance, deals, health, jobs, rules

LOGGER = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Most specific first; the first isinstance match decides the status code
ERROR_STATUS: List[Tuple[Type[DealEngineError], int]] = [
    (DncBlockedError, 403),
    (ConsentViolationError, 200),
    (ConcurrencyConflictError, 409),
    (ValidationError, 400),
    (NotFoundError, 404),
    (BusinessRuleError, 422),
    (ImmutableRecordError, 409),
    (RetentionViolationError, 409),
    (ServiceUnavailableError, 503),
    (DatabaseError, 503),
    (ExternalServiceError, 502),
    (ConfigurationError, 500),
]


def status_for(exc: DealEngineError) -> int:
    for exc_type, status_code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return 500


def error_body(exc: DealEngineError) -> Dict[str, Any]:
    body = exc.to_dict()
    violation_type = getattr(exc, "violation_type", None)
    if violation_type:
        body["violation_type"] = violation_type
    return body


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Sets up logging and creates missing tables. Startup does not fail when
    the database is unreachable so the health check can report it.
    """
    settings = get_settings()
    setup_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        json_format=settings.log_format == "json",
    )
    LOGGER.info(
        "API application starting",
        extra={"extra_data": {
            "environment": settings.environment,
            "phone_crypto_configured": settings.is_phone_crypto_configured(),
        }},
    )
    if not settings.is_phone_crypto_configured():
        LOGGER.warning("PHONE_HASH_KEY / PHONE_ENCRYPTION_KEY not set; compliance routes will fail")

    from core.db import init_db, validate_database

    db_status = validate_database()
    if db_status["status"] == "missing_tables":
        LOGGER.warning(
            "Missing database tables detected - creating",
            extra={"extra_data": {"missing": db_status["tables_missing"]}},
        )
        init_db(create_missing_only=True)
    elif db_status["status"] == "error":
        LOGGER.error(
            "Database validation failed - app will start without database",
            extra={"extra_data": {"errors": db_status["errors"]}},
        )

    yield
    LOGGER.info("API application shutting down")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance with:
        - CORS and request-id middleware
        - Exception handlers mapping the error hierarchy to HTTP
        - All API routes
    """
    settings = get_settings()
    application = FastAPI(
        title="Deal Decision & Compliance Engine",
        description="Deal qualification, lifecycle and TCPA contact compliance API",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # -------------------------------------------------------------------------
    # Middleware
    # -------------------------------------------------------------------------
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    # -------------------------------------------------------------------------
    # Exception Handlers
    # -------------------------------------------------------------------------

    @application.exception_handler(DealEngineError)
    async def engine_error_handler(request: Request, exc: DealEngineError) -> JSONResponse:
        """Translate the error hierarchy into JSON bodies with stable codes."""
        status_code = status_for(exc)
        log = get_context_logger(
            __name__, request_id=getattr(request.state, "request_id", None)
        )
        if status_code >= 500:
            log.error(
                "%s on %s: %s", exc.error_code, request.url.path, exc,
                exc_info=exc.__cause__ is not None,
            )
        else:
            log.warning("%s on %s: %s", exc.error_code, request.url.path, exc)
        return JSONResponse(status_code=status_code, content=error_body(exc))

    @application.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed request bodies are validation errors like any other."""
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid request",
                "code": ValidationError.error_code,
                "detail": exc.errors(),
            },
        )

    # -------------------------------------------------------------------------
    # Routers
    # -------------------------------------------------------------------------
    application.include_router(health.router, tags=["Health"])
    application.include_router(deals.router, prefix="/deals", tags=["Deals"])
    application.include_router(rules.router, prefix="/rules", tags=["Rules"])
    application.include_router(compliance.router, prefix="/compliance", tags=["Compliance"])
    application.include_router(jobs.router, tags=["Jobs"])

    return application


# Create the application instance
app = create_app()


__all__ = ["app", "create_app", "error_body", "status_for"]
