"""
Entitlement Gate - May this account consume N units of a feature right now?

Composes the plan resolver, limit catalog and usage ledger. Checks never
mutate state; commits record actual consumption after the delegated work
has succeeded. Each feature is checked and committed independently.

Fail-closed: a missing limit row denies, and a storage error propagates
as StorageUnavailableError instead of approving.
"""

import time
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from readmeter.config import settings
from readmeter.exceptions import LimitExceededError, NotConfiguredError
from readmeter.models.api import DenialReason, FeatureKey, Tier
from readmeter.models.domain import (
    AccountSnapshot,
    Decision,
    FeatureLimitData,
    FeatureQuota,
    UsageSummary,
)
from readmeter.observability.metrics import metrics
from readmeter.observability.tracing import trace_operation
from readmeter.services.limit_catalog import LimitCatalog
from readmeter.services.plan_resolver import display_plan, resolve_tier
from readmeter.services.usage_ledger import (
    UsageLedger,
    next_reset_at,
    usage_date,
    validate_amount,
)

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def _not_configured(tier: Tier, feature_key: FeatureKey, requested: int) -> Decision:
    return Decision(
        approved=False,
        feature_key=feature_key,
        tier=tier,
        requested=requested,
        used=0,
        limit=0,
        remaining=0,
        is_unlimited=False,
        reason=DenialReason.NOT_CONFIGURED,
    )


def _monthly_remaining(limit: FeatureLimitData, used: int, sentinel: int) -> int | None:
    if limit.is_unlimited:
        return sentinel
    if limit.monthly_limit == 0:
        return None
    return max(0, limit.monthly_limit - used)


class EntitlementGate:
    """Daily-cap enforcement for metered features."""

    def __init__(self, session: AsyncSession, unlimited_sentinel: int | None = None) -> None:
        """Initialize gate with database session."""
        self.session = session
        self.catalog = LimitCatalog(session)
        self.ledger = UsageLedger(session)
        self.unlimited_sentinel = unlimited_sentinel or settings.unlimited_sentinel

    # ========================================================================
    # Check / commit
    # ========================================================================

    async def check_and_reserve(
        self,
        account: AccountSnapshot,
        feature_key: FeatureKey,
        requested_units: int,
        now: datetime | None = None,
    ) -> Decision:
        """
        Decide whether requested_units of feature_key may be consumed now.

        Performs no writes. A request for 0 units is approved whenever a
        limit row exists, so callers can probe the remaining quota.

        Raises:
            InvalidAmountError: requested_units is negative or not an int
            StorageUnavailableError: Catalog or ledger unreachable
        """
        requested = validate_amount(requested_units)
        now = now or _utc_now()
        start = time.perf_counter()

        with trace_operation(
            "entitlement_check",
            account_id=account.account_id,
            feature_key=feature_key.value,
            requested_units=requested,
        ) as span:
            tier = resolve_tier(account, now)
            span.set_attribute("tier", tier.value)

            try:
                limit = await self.catalog.get_limit(tier, feature_key)
            except NotConfiguredError:
                logger.warning(
                    "entitlement_not_configured",
                    account_id=str(account.account_id),
                    tier=tier.value,
                    feature_key=feature_key.value,
                )
                decision = _not_configured(tier, feature_key, requested)
                self._record(decision, start)
                return decision

            if limit.is_unlimited:
                decision = Decision(
                    approved=True,
                    feature_key=feature_key,
                    tier=tier,
                    requested=requested,
                    used=None,
                    limit=None,
                    remaining=None,
                    is_unlimited=True,
                )
                self._record(decision, start)
                return decision

            used = await self.ledger.get_usage(account.account_id, usage_date(now), feature_key)
            remaining = max(0, limit.daily_limit - used)
            approved = requested == 0 or used + requested <= limit.daily_limit

            decision = Decision(
                approved=approved,
                feature_key=feature_key,
                tier=tier,
                requested=requested,
                used=used,
                limit=limit.daily_limit,
                remaining=remaining,
                is_unlimited=False,
                reason=None if approved else DenialReason.LIMIT_EXCEEDED,
            )
            span.set_attribute("approved", approved)

        if decision.denied:
            logger.info(
                "entitlement_denied",
                account_id=str(account.account_id),
                tier=tier.value,
                feature_key=feature_key.value,
                used=used,
                limit=limit.daily_limit,
                requested=requested,
            )
        self._record(decision, start)
        return decision

    async def require(
        self,
        account: AccountSnapshot,
        feature_key: FeatureKey,
        requested_units: int = 1,
        now: datetime | None = None,
    ) -> Decision:
        """
        check_and_reserve that raises on denial.

        Raises:
            LimitExceededError: Denied (limit exceeded or not configured)
        """
        decision = await self.check_and_reserve(account, feature_key, requested_units, now)
        if decision.denied:
            raise LimitExceededError(decision)
        return decision

    async def commit(
        self,
        account_id: UUID,
        feature_key: FeatureKey | str,
        actual_units: int,
        now: datetime | None = None,
    ) -> None:
        """
        Record actual consumption for today.

        May push usage above the daily limit; the next check is denied.

        Raises:
            InvalidAmountError: actual_units is negative or not an int
            StorageUnavailableError: Ledger unreachable
        """
        now = now or _utc_now()
        key = feature_key.value if isinstance(feature_key, FeatureKey) else feature_key

        with trace_operation(
            "usage_commit", account_id=account_id, feature_key=key, units=actual_units
        ):
            await self.ledger.increment(account_id, usage_date(now), feature_key, actual_units)

        metrics.record_usage_commit(key, True, actual_units)

    # ========================================================================
    # Views
    # ========================================================================

    async def limits_for(
        self, account: AccountSnapshot, now: datetime | None = None
    ) -> tuple[Tier, dict[FeatureKey, FeatureLimitData]]:
        """Resolved tier and its configured limits."""
        tier = resolve_tier(account, now or _utc_now())
        return tier, await self.catalog.list_limits(tier)

    async def get_quota(
        self,
        account: AccountSnapshot,
        feature_key: FeatureKey,
        now: datetime | None = None,
    ) -> FeatureQuota:
        """
        Daily and monthly standing for one feature.

        Monthly figures are informational. A missing limit row shows as 0.
        A monthly limit of 0 is not enforced, so its remaining is None.
        """
        now = now or _utc_now()
        tier = resolve_tier(account, now)
        today = usage_date(now)

        try:
            limit = await self.catalog.get_limit(tier, feature_key)
        except NotConfiguredError:
            limit = FeatureLimitData(
                tier=tier,
                feature_key=feature_key,
                daily_limit=0,
                monthly_limit=0,
                is_unlimited=False,
            )

        daily_used = await self.ledger.get_usage(account.account_id, today, feature_key)
        monthly_used = await self.ledger.get_monthly_usage(
            account.account_id, today, feature_key
        )

        daily_limit = limit.display_daily(self.unlimited_sentinel)
        monthly_limit = limit.display_monthly(self.unlimited_sentinel)

        return FeatureQuota(
            feature_key=feature_key,
            tier=tier,
            daily_used=daily_used,
            daily_limit=daily_limit,
            daily_remaining=(
                self.unlimited_sentinel if limit.is_unlimited else max(0, daily_limit - daily_used)
            ),
            monthly_used=monthly_used,
            monthly_limit=monthly_limit,
            monthly_remaining=_monthly_remaining(limit, monthly_used, self.unlimited_sentinel),
            is_unlimited=limit.is_unlimited,
            next_reset=next_reset_at(now),
        )

    async def summarize(
        self, account: AccountSnapshot, now: datetime | None = None
    ) -> UsageSummary:
        """
        Plan, per-feature limits and today's usage for the usage dashboard.

        Unlimited features render as the unlimited sentinel; unconfigured
        features render as 0.
        """
        now = now or _utc_now()
        tier, limits = await self.limits_for(account, now)
        snapshot = await self.ledger.get_usage_snapshot(account.account_id, usage_date(now))

        return UsageSummary(
            plan=display_plan(account, now),
            tier=tier,
            limits={
                key: (
                    limits[key].display_daily(self.unlimited_sentinel) if key in limits else 0
                )
                for key in FeatureKey
            },
            usage={key: snapshot.get(key) for key in FeatureKey},
        )

    # ========================================================================
    # Helpers
    # ========================================================================

    def _record(self, decision: Decision, start: float) -> None:
        if decision.approved:
            outcome = "approved"
        else:
            outcome = (decision.reason or DenialReason.LIMIT_EXCEEDED).value
        metrics.record_entitlement_check(
            feature_key=decision.feature_key.value,
            tier=decision.tier.value,
            outcome=outcome,
            duration=time.perf_counter() - start,
        )
