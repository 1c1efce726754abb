"""
Admin API routes for managing feature limits and inspecting usage.

Protected by admin JWT authentication.
Read routes allow the viewer role, write routes require admin.
"""

from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from readmeter.api.admin_dependencies import AdminPrincipal, get_current_admin, require_admin_role
from readmeter.api.routes import parse_feature_key
from readmeter.db.session import get_read_db, get_write_db
from readmeter.exceptions import AccountNotFoundError
from readmeter.models.api import (
    AccountUsageResponse,
    BulkUpsertFeatureLimitsRequest,
    FeatureLimitListResponse,
    FeatureLimitResponse,
    SeedFeatureLimitsResponse,
    Tier,
    UpsertFeatureLimitRequest,
)
from readmeter.models.domain import FeatureLimitData, LimitUpdate
from readmeter.services.accounts import AccountService
from readmeter.services.limit_catalog import LimitCatalog
from readmeter.services.usage_ledger import UsageLedger, usage_date

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


def parse_tier(value: str) -> Tier:
    """Path parameter to Tier, 400 when unknown."""
    try:
        return Tier(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown plan type: {value}",
        ) from exc


def _limit_response(limit: FeatureLimitData) -> FeatureLimitResponse:
    return FeatureLimitResponse(
        plan_type=limit.tier,
        feature_key=limit.feature_key,
        daily_limit=limit.daily_limit,
        monthly_limit=limit.monthly_limit,
        is_unlimited=limit.is_unlimited,
    )


def _log_admin_action(
    admin: AdminPrincipal, action: str, resource_type: str, resource_id: str, **details: Any
) -> None:
    logger.info(
        "admin_action",
        admin_subject=admin.subject,
        admin_email=admin.email,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        **details,
    )


# ============================================================================
# Feature Limits
# ============================================================================


@router.get("/feature-limits", response_model=FeatureLimitListResponse)
async def list_feature_limits(
    plan_type: str | None = Query(None, description="Only this tier"),
    db: AsyncSession = Depends(get_read_db),
    admin: AdminPrincipal = Depends(get_current_admin),
) -> FeatureLimitListResponse:
    """
    List feature limits ordered by tier and feature.

    Accessible by: admin, viewer
    """
    tier = parse_tier(plan_type) if plan_type else None
    limits = await LimitCatalog(db).list_all(tier)
    return FeatureLimitListResponse(limits=[_limit_response(limit) for limit in limits])


@router.put(
    "/feature-limits/{plan_type}/{feature_key}",
    response_model=FeatureLimitResponse,
)
async def upsert_feature_limit(
    plan_type: str,
    feature_key: str,
    request: UpsertFeatureLimitRequest,
    db: AsyncSession = Depends(get_write_db),
    admin: AdminPrincipal = Depends(require_admin_role),
) -> FeatureLimitResponse:
    """
    Create or replace one (plan_type, feature_key) limit.

    Accessible by: admin only
    """
    tier = parse_tier(plan_type)
    key = parse_feature_key(feature_key)

    limit = await LimitCatalog(db).upsert_limit(
        tier,
        key,
        daily_limit=request.daily_limit,
        monthly_limit=request.monthly_limit,
        is_unlimited=request.is_unlimited,
    )

    _log_admin_action(
        admin,
        "update_feature_limit",
        "feature_limits",
        f"{tier.value}/{key.value}",
        daily_limit=limit.daily_limit,
        monthly_limit=limit.monthly_limit,
        is_unlimited=limit.is_unlimited,
    )
    return _limit_response(limit)


@router.put("/feature-limits/{plan_type}", response_model=FeatureLimitListResponse)
async def bulk_upsert_feature_limits(
    plan_type: str,
    request: BulkUpsertFeatureLimitsRequest,
    db: AsyncSession = Depends(get_write_db),
    admin: AdminPrincipal = Depends(require_admin_role),
) -> FeatureLimitListResponse:
    """
    Replace several limits of one tier in a single transaction.

    Accessible by: admin only
    """
    tier = parse_tier(plan_type)

    seen = [item.feature_key for item in request.limits]
    if len(seen) != len(set(seen)):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Duplicate feature_key in bulk update",
        )

    updates = [
        LimitUpdate(
            feature_key=item.feature_key,
            daily_limit=item.daily_limit,
            monthly_limit=item.monthly_limit,
            is_unlimited=item.is_unlimited,
        )
        for item in request.limits
    ]
    limits = await LimitCatalog(db).upsert_many(tier, updates)

    _log_admin_action(
        admin,
        "bulk_update_feature_limits",
        "feature_limits",
        tier.value,
        feature_keys=[limit.feature_key.value for limit in limits],
    )
    return FeatureLimitListResponse(limits=[_limit_response(limit) for limit in limits])


@router.post("/feature-limits/seed", response_model=SeedFeatureLimitsResponse)
async def seed_feature_limits(
    overwrite: bool = Query(False, description="Reset existing rows to defaults"),
    db: AsyncSession = Depends(get_write_db),
    admin: AdminPrincipal = Depends(require_admin_role),
) -> SeedFeatureLimitsResponse:
    """
    Write the default limit table.

    Accessible by: admin only
    """
    seeded = await LimitCatalog(db).seed_defaults(overwrite=overwrite)
    _log_admin_action(
        admin, "seed_feature_limits", "feature_limits", "defaults", overwrite=overwrite
    )
    return SeedFeatureLimitsResponse(seeded=seeded)


# ============================================================================
# Account Usage
# ============================================================================


@router.get("/accounts/{account_id}/usage", response_model=AccountUsageResponse)
async def get_account_usage(
    account_id: UUID,
    day: date | None = Query(None, alias="date", description="Defaults to today"),
    db: AsyncSession = Depends(get_read_db),
    admin: AdminPrincipal = Depends(get_current_admin),
) -> AccountUsageResponse:
    """
    Usage counters of one account for one day.

    Accessible by: admin, viewer
    """
    try:
        await AccountService(db).get_snapshot(account_id)
    except AccountNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        ) from exc

    snapshot = await UsageLedger(db).get_usage_snapshot(
        account_id, day or usage_date(datetime.now(UTC))
    )
    return AccountUsageResponse(
        account_id=snapshot.account_id,
        usage_date=snapshot.usage_date,
        usage=snapshot.counters,
        words_read=snapshot.words_read,
    )
