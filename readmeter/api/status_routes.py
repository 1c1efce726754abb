"""
Status API routes - Health checks for the entitlements service.

Public endpoints (no auth). /v1/status is cached briefly so repeated
polling does not hammer the database.
"""

import time
from datetime import UTC, datetime
from enum import Enum

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from readmeter.config import settings
from readmeter.db.session import get_read_db, get_write_db
from readmeter.models.api import HealthResponse

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

DEGRADED_LATENCY_THRESHOLD = 1000  # ms

# Cache last status result for 10 seconds
_status_cache: dict[str, tuple[datetime, "ServiceStatusResponse"]] = {}
_CACHE_TTL_SECONDS = 10


class StatusLevel(str, Enum):
    """Status levels for health checks."""

    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"


class ProviderStatus(BaseModel):
    """Status of a single dependency."""

    status: StatusLevel
    latency_ms: int | None = None
    last_check: str = Field(..., description="ISO 8601 timestamp")
    message: str | None = None


class ServiceStatusResponse(BaseModel):
    """Response for /v1/status endpoint."""

    service: str = "readmeter"
    status: StatusLevel
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str
    providers: dict[str, ProviderStatus]


def classify_latency(latency_ms: int) -> StatusLevel:
    """Operational below the degraded threshold, degraded above it."""
    if latency_ms > DEGRADED_LATENCY_THRESHOLD:
        return StatusLevel.DEGRADED
    return StatusLevel.OPERATIONAL


async def check_database(db: AsyncSession) -> ProviderStatus:
    """Check database connectivity with SELECT 1."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("database_health_check_failed", error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Connection failed",
        )

    latency_ms = int((time.perf_counter() - start) * 1000)
    level = classify_latency(latency_ms)
    return ProviderStatus(
        status=level,
        latency_ms=latency_ms,
        last_check=timestamp,
        message="High latency" if level == StatusLevel.DEGRADED else None,
    )


def calculate_overall_status(providers: dict[str, ProviderStatus]) -> StatusLevel:
    """Worst provider status wins."""
    statuses = [p.status for p in providers.values()]

    if StatusLevel.OUTAGE in statuses:
        return StatusLevel.OUTAGE
    if StatusLevel.DEGRADED in statuses:
        return StatusLevel.DEGRADED
    return StatusLevel.OPERATIONAL


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse | JSONResponse:
    """Liveness with a database ping. 503 when the database is unreachable."""
    provider = await check_database(db)
    timestamp = datetime.now(UTC).isoformat()

    if provider.status == StatusLevel.OUTAGE:
        body = HealthResponse(status="unhealthy", database="disconnected", timestamp=timestamp)
        return JSONResponse(status_code=503, content=body.model_dump())

    return HealthResponse(status="healthy", database="connected", timestamp=timestamp)


@router.get("/v1/status", response_model=ServiceStatusResponse)
async def get_status(db: AsyncSession = Depends(get_write_db)) -> ServiceStatusResponse:
    """
    Service status for status page aggregation.

    Cached for 10 seconds.
    """
    cache_key = "status"
    now = datetime.now(UTC)

    if cache_key in _status_cache:
        cached_time, cached_response = _status_cache[cache_key]
        age_seconds = (now - cached_time).total_seconds()
        if age_seconds < _CACHE_TTL_SECONDS:
            logger.debug("status_cache_hit", age_seconds=age_seconds)
            return cached_response

    providers = {"database": await check_database(db)}

    response = ServiceStatusResponse(
        status=calculate_overall_status(providers),
        timestamp=now.isoformat(),
        version=settings.api_version,
        providers=providers,
    )
    _status_cache[cache_key] = (now, response)
    return response
