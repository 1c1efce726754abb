"""
Main Application - FastAPI application setup.
"""

import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from readmeter.api.admin_routes import router as admin_router
from readmeter.api.routes import router
from readmeter.api.status_routes import router as status_router
from readmeter.config import settings
from readmeter.db.session import close_engines, get_write_session
from readmeter.exceptions import (
    InvalidAmountError,
    LimitExceededError,
    StorageUnavailableError,
    TierRequiredError,
)
from readmeter.models.api import (
    DenialReason,
    LimitExceededResponse,
    Tier,
    TierRequiredResponse,
)
from readmeter.observability import get_logger, metrics, setup_logging, setup_tracing
from readmeter.observability.logging import log_context
from readmeter.observability.tracing import instrument_fastapi
from readmeter.services.limit_catalog import LimitCatalog

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)


async def seed_feature_limits() -> int:
    """Insert any missing default limit rows. Admin edits are preserved."""
    async with get_write_session() as session:
        return await LimitCatalog(session).seed_defaults(overwrite=False)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Seeds default feature limits on startup, closes engines on shutdown.
    """
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
    )

    if settings.seed_feature_limits_on_startup:
        seeded = await seed_feature_limits()
        logger.info("startup_feature_limits_seeded", count=seeded)

    yield

    logger.info("application_shutting_down")
    await close_engines()
    logger.info("database_engines_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


# ============================================================================
# Exception Handlers
# ============================================================================

DENIAL_MESSAGES = {
    DenialReason.LIMIT_EXCEEDED: "Daily limit reached",
    DenialReason.NOT_CONFIGURED: "Feature not available on your plan",
}


@app.exception_handler(LimitExceededError)
async def limit_exceeded_handler(request: Request, exc: LimitExceededError) -> JSONResponse:
    """Denied entitlement checks become 429 with everything needed for an upgrade prompt."""
    decision = exc.decision
    reason = decision.reason or DenialReason.LIMIT_EXCEEDED
    body = LimitExceededResponse(
        error=DENIAL_MESSAGES[reason],
        code=reason,
        feature_key=decision.feature_key,
        plan=decision.tier,
        used=decision.used or 0,
        limit=decision.limit or 0,
        remaining=decision.remaining or 0,
    )
    return JSONResponse(status_code=429, content=body.model_dump(mode="json"))


@app.exception_handler(TierRequiredError)
async def tier_required_handler(request: Request, exc: TierRequiredError) -> JSONResponse:
    """Tier-gated routes reject with 403 PREMIUM_REQUIRED."""
    if Tier.TRIAL in exc.allowed:
        error = "Premium or Trial subscription required"
        message = "This feature is not available in the free plan"
    else:
        error = "Premium subscription required"
        message = (
            "This feature is only available for Premium users. "
            f"Your current plan: {exc.tier.value}"
        )
    body = TierRequiredResponse(error=error, plan=exc.tier, message=message)
    return JSONResponse(status_code=403, content=body.model_dump(mode="json"))


@app.exception_handler(InvalidAmountError)
async def invalid_amount_handler(request: Request, exc: InvalidAmountError) -> JSONResponse:
    """Bad unit amounts are client errors."""
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(StorageUnavailableError)
async def storage_unavailable_handler(
    request: Request, exc: StorageUnavailableError
) -> JSONResponse:
    """Never approve when usage cannot be verified."""
    logger.error(
        "storage_unavailable",
        path=request.url.path,
        operation=exc.operation,
        error=exc.message,
    )
    metrics.record_error("StorageUnavailableError", exc.operation)
    return JSONResponse(
        status_code=503,
        content={"detail": "Usage storage temporarily unavailable"},
        headers={"Retry-After": "5"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Log detailed validation errors for debugging."""
    sanitized_errors: list[dict[str, Any]] = []
    for error in exc.errors():
        sanitized: dict[str, Any] = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": error.get("input"),
        }
        # ctx may contain non-serializable objects
        if "ctx" in error:
            sanitized["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        sanitized_errors.append(sanitized)

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=sanitized_errors,
        body_preview=str(exc.body)[:500] if exc.body else None,
    )
    return JSONResponse(
        status_code=422,
        content={"detail": sanitized_errors},
    )


# Setup tracing
setup_tracing()
instrument_fastapi(app)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Log all HTTP requests with timing."""
    start_time = time.perf_counter()
    request_id = request.headers.get("X-Request-ID", "unknown")
    endpoint = request.url.path
    method = request.method

    logger.info("request_started", method=method, path=endpoint, request_id=request_id)
    metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).inc()

    try:
        with log_context(request_id=request_id):
            response = await call_next(request)
        duration = time.perf_counter() - start_time
        metrics.record_http_request(endpoint, method, response.status_code, duration)

        logger.info(
            "request_completed",
            method=method,
            path=endpoint,
            status_code=response.status_code,
            duration_seconds=duration,
            request_id=request_id,
        )
        return response
    except Exception as e:
        duration = time.perf_counter() - start_time
        metrics.record_http_request(endpoint, method, 500, duration)
        metrics.record_error(type(e).__name__, "http_request")

        logger.error(
            "request_failed",
            method=method,
            path=endpoint,
            error=str(e),
            duration_seconds=duration,
            request_id=request_id,
            exc_info=True,
        )
        raise
    finally:
        metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).dec()


# Register routes
app.include_router(router)  # User entitlement and usage routes
app.include_router(admin_router)  # Admin feature-limit routes
app.include_router(status_router)  # Health and status


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """Prometheus metrics in text exposition format."""
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "readmeter.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
