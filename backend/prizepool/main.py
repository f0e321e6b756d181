"""FastAPI application entry point.

Mini-tournament prize-pool API: escrowed organizer deposits, credit-paid
registration and instant-payment prize distribution.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from prizepool.api import (
    credits_router,
    payout_keys_router,
    tournaments_router,
    webhooks_router,
)
from prizepool.config import get_settings
from prizepool.logging_config import bind_context, clear_context, configure_logging, get_logger
from prizepool.middleware.sentry import init_sentry
from prizepool.tournament.event_bus import init_event_bus
from prizepool.utils.db import close_db, get_engine, init_db
from prizepool.utils.errors import (
    AuthorizationError,
    CapacityError,
    ExternalGatewayError,
    InsufficientFundsError,
    NotFoundError,
    PrizePoolError,
    SignatureError,
    StateError,
    ValidationError,
)
from prizepool.utils.json_utils import ORJSONResponse
from prizepool.utils.redis_client import close_redis, get_redis, init_redis

settings = get_settings()

configure_logging(
    log_level=settings.log_level,
    json_logs=settings.app_env == "production",
    app_env=settings.app_env,
)
logger = get_logger(__name__)

sentry_enabled = init_sentry(
    dsn=settings.sentry_dsn,
    environment=settings.app_env,
    traces_sample_rate=settings.sentry_traces_sample_rate
    if settings.app_env == "production"
    else 0.0,
)
if sentry_enabled:
    logger.info("Sentry error tracking initialized")
elif settings.app_env == "production":
    logger.warning("Sentry DSN not configured - error tracking disabled")


# =============================================================================
# Lifespan Events
# =============================================================================


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting application...")

    try:
        await init_db()
        logger.info("Database connection established")

        redis_instance = await init_redis()
        if redis_instance is None:
            logger.info("Redis not configured, tournament events stay in-process")
        init_event_bus(redis_instance)

        logger.info("Application startup complete")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("Shutting down application...")
    try:
        await close_db()
        await close_redis()
        logger.info("Application shutdown complete")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Prize Pool API",
    version="1.0.0",
    description="Community mini-tournaments with escrowed prize pools",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)


# =============================================================================
# Middleware
# =============================================================================


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to add X-Request-ID header to all requests and responses."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = datetime.now(timezone.utc)

        clear_context()
        bind_context(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            clear_context()

        response.headers["X-Request-ID"] = request_id

        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Duration: {duration:.3f}s - "
            f"Request-ID: {request_id}"
        )
        return response


app.add_middleware(RequestIDMiddleware)

cors_origins = [origin.strip() for origin in settings.cors_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID", "X-User-Id"],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# Error Handlers
# =============================================================================

# 구체적인 클래스가 먼저 오도록 순서 유지
ERROR_STATUS_CODES: list[tuple[type[PrizePoolError], int]] = [
    (CapacityError, status.HTTP_409_CONFLICT),
    (InsufficientFundsError, status.HTTP_402_PAYMENT_REQUIRED),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (StateError, status.HTTP_409_CONFLICT),
    (SignatureError, status.HTTP_401_UNAUTHORIZED),
    (ExternalGatewayError, status.HTTP_502_BAD_GATEWAY),
]


def status_code_for(exc: PrizePoolError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def get_request_id(request: Request) -> str:
    """Get request ID from request state or headers."""
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return request.headers.get("X-Request-ID", str(uuid.uuid4()))


def create_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
        "traceId": trace_id,
    }


@app.exception_handler(PrizePoolError)
async def prizepool_error_handler(request: Request, exc: PrizePoolError) -> ORJSONResponse:
    """Handle domain errors."""
    trace_id = get_request_id(request)
    status_code = status_code_for(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log("prizepool_error", code=exc.code, message=exc.message, trace_id=trace_id)

    return ORJSONResponse(
        status_code=status_code,
        content=create_error_response(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            trace_id=trace_id,
        ),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> ORJSONResponse:
    """Handle HTTP exceptions."""
    trace_id = get_request_id(request)

    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = {**exc.detail, "traceId": trace_id}
    else:
        content = create_error_response(
            code="HTTP_ERROR",
            message=str(exc.detail),
            trace_id=trace_id,
        )

    return ORJSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Handle unexpected exceptions."""
    trace_id = get_request_id(request)

    logger.error(
        "unexpected_error",
        error_type=type(exc).__name__,
        error_message=str(exc),
        trace_id=trace_id,
        exc_info=True,
    )

    message = "Internal server error"
    if settings.app_debug:
        message = f"{type(exc).__name__}: {exc}"

    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            code="INTERNAL_ERROR",
            message=message,
            trace_id=trace_id,
        ),
    )


# =============================================================================
# Health Check Endpoints
# =============================================================================


@app.get("/health", tags=["Health"], summary="Health check endpoint")
async def health_check() -> dict[str, Any]:
    """Check application health status including database and Redis."""
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0",
        "services": {
            "database": "unknown",
            "redis": "not configured",
        },
    }

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["services"]["database"] = "healthy"
    except Exception as e:
        health_status["services"]["database"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"
        logger.error(f"Database health check failed: {e}")

    current_redis = get_redis()
    if current_redis is not None:
        try:
            await current_redis.ping()
            health_status["services"]["redis"] = "healthy"
        except Exception as e:
            health_status["services"]["redis"] = f"unhealthy: {str(e)}"
            health_status["status"] = "degraded"
            logger.error(f"Redis health check failed: {e}")

    return health_status


@app.get("/health/live", tags=["Health"], summary="Liveness probe")
async def liveness_probe() -> dict[str, str]:
    return {"status": "alive"}


# =============================================================================
# API Routers
# =============================================================================

app.include_router(tournaments_router)
app.include_router(payout_keys_router)
app.include_router(credits_router)
app.include_router(webhooks_router)
