"""
API Routes - FastAPI endpoints for entitlement checks and usage reporting.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from structlog import get_logger

from readmeter.api.dependencies import get_current_account, get_entitlement_gate
from readmeter.exceptions import LimitExceededError, StorageUnavailableError
from readmeter.models.api import (
    WORDS_READ_COUNTER,
    CommitUsageRequest,
    CommitUsageResponse,
    EntitlementCheckRequest,
    EntitlementDecisionResponse,
    FeatureKey,
    FeatureLimitView,
    FeatureQuotaResponse,
    LimitExceededResponse,
    MyLimitsResponse,
    ReadingProgressRequest,
    ReadingProgressResponse,
    UsageSummaryResponse,
)
from readmeter.models.domain import AccountSnapshot
from readmeter.observability.metrics import metrics
from readmeter.services.entitlement_gate import EntitlementGate

logger = get_logger(__name__)
router = APIRouter(tags=["entitlements"])


def parse_feature_key(value: str) -> FeatureKey:
    """Path parameter to FeatureKey, 400 when unknown."""
    try:
        return FeatureKey(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown feature key: {value}",
        ) from exc


async def _commit_usage(
    gate: EntitlementGate,
    account_id: UUID,
    counter: FeatureKey | str,
    units: int,
) -> bool:
    """
    Commit usage without failing the caller.

    The delegated work has already succeeded when this runs, so a storage
    failure is logged and reported instead of raised.
    """
    key = counter.value if isinstance(counter, FeatureKey) else counter
    try:
        await gate.commit(account_id, counter, units)
    except StorageUnavailableError as exc:
        logger.error(
            "usage_commit_failed",
            account_id=str(account_id),
            counter=key,
            units=units,
            error=exc.message,
        )
        metrics.record_usage_commit(key, False, units)
        return False
    return True


# ============================================================================
# Entitlement Check / Commit
# ============================================================================


@router.post(
    "/v1/entitlements/check",
    response_model=EntitlementDecisionResponse,
    responses={429: {"model": LimitExceededResponse}},
)
async def check_entitlement(
    request: EntitlementCheckRequest,
    account: AccountSnapshot = Depends(get_current_account),
    gate: EntitlementGate = Depends(get_entitlement_gate),
) -> EntitlementDecisionResponse:
    """
    Check whether the caller may consume units of a feature now.

    Does not record usage. Denials are returned as 429 with used, limit,
    remaining and plan so the client can render an upgrade prompt.
    """
    decision = await gate.check_and_reserve(account, request.feature_key, request.units)
    if decision.denied:
        raise LimitExceededError(decision)

    return EntitlementDecisionResponse(
        approved=True,
        feature_key=decision.feature_key,
        plan=decision.tier,
        used=decision.used,
        limit=decision.limit,
        remaining=decision.remaining,
        is_unlimited=decision.is_unlimited,
    )


@router.post("/v1/entitlements/commit", response_model=CommitUsageResponse)
async def commit_usage(
    request: CommitUsageRequest,
    account: AccountSnapshot = Depends(get_current_account),
    gate: EntitlementGate = Depends(get_entitlement_gate),
) -> CommitUsageResponse:
    """
    Record units actually consumed after the delegated work succeeded.

    Never fails with 5xx on storage errors; recorded=false instead.
    """
    recorded = await _commit_usage(gate, account.account_id, request.feature_key, request.units)
    return CommitUsageResponse(
        recorded=recorded,
        feature_key=request.feature_key,
        units=request.units,
    )


@router.post("/v1/usage/reading-progress", response_model=ReadingProgressResponse)
async def report_reading_progress(
    request: ReadingProgressRequest,
    account: AccountSnapshot = Depends(get_current_account),
    gate: EntitlementGate = Depends(get_entitlement_gate),
) -> ReadingProgressResponse:
    """
    Record characters read, listening minutes and words read for today.

    Each non-zero amount is committed independently.
    """
    amounts: list[tuple[FeatureKey | str, int]] = [
        (FeatureKey.CHARACTERS, request.characters_read),
        (FeatureKey.LISTENING_TIME, request.listening_minutes),
        (WORDS_READ_COUNTER, request.words_read),
    ]

    recorded: list[str] = []
    failed: list[str] = []
    for counter, units in amounts:
        if units <= 0:
            continue
        name = counter.value if isinstance(counter, FeatureKey) else counter
        if await _commit_usage(gate, account.account_id, counter, units):
            recorded.append(name)
        else:
            failed.append(name)

    return ReadingProgressResponse(success=not failed, recorded=recorded, failed=failed)


# ============================================================================
# Limits / Usage Views
# ============================================================================


@router.get("/v1/limits", response_model=MyLimitsResponse)
async def get_my_limits(
    account: AccountSnapshot = Depends(get_current_account),
    gate: EntitlementGate = Depends(get_entitlement_gate),
) -> MyLimitsResponse:
    """Feature limits for the caller's resolved tier. Unlimited shows the sentinel."""
    tier, limits = await gate.limits_for(account)
    sentinel = gate.unlimited_sentinel

    return MyLimitsResponse(
        plan_type=tier,
        limits={
            key: FeatureLimitView(
                daily=limit.display_daily(sentinel),
                monthly=limit.display_monthly(sentinel),
                unlimited=limit.is_unlimited,
            )
            for key, limit in limits.items()
        },
    )


@router.get("/v1/usage", response_model=UsageSummaryResponse)
async def get_my_usage(
    account: AccountSnapshot = Depends(get_current_account),
    gate: EntitlementGate = Depends(get_entitlement_gate),
) -> UsageSummaryResponse:
    """Plan, daily limits and today's usage for every feature."""
    summary = await gate.summarize(account)
    return UsageSummaryResponse(plan=summary.plan, limits=summary.limits, usage=summary.usage)


@router.get("/v1/usage/{feature_key}", response_model=FeatureQuotaResponse)
async def get_feature_quota(
    feature_key: str,
    account: AccountSnapshot = Depends(get_current_account),
    gate: EntitlementGate = Depends(get_entitlement_gate),
) -> FeatureQuotaResponse:
    """Today's and this month's usage for one feature, with the next reset time."""
    quota = await gate.get_quota(account, parse_feature_key(feature_key))

    return FeatureQuotaResponse(
        feature_key=quota.feature_key,
        plan_type=quota.tier,
        today_usage=quota.daily_used,
        daily_limit=quota.daily_limit,
        today_remaining=quota.daily_remaining,
        monthly_usage=quota.monthly_used,
        monthly_limit=quota.monthly_limit,
        monthly_remaining=quota.monthly_remaining,
        is_unlimited=quota.is_unlimited,
        next_reset=quota.next_reset.isoformat(),
    )
