"""
Limit Catalog - Per-tier feature limits.

Read-heavy, write-rare table keyed by (plan_type, feature_key). Reads are
never cached so an admin sees their own write immediately. Storage failures
surface as StorageUnavailableError, never as a default limit.
"""

import time

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from readmeter.db.models import FeatureLimit, utc_now
from readmeter.db.upsert import dialect_insert
from readmeter.exceptions import NotConfiguredError, StorageUnavailableError
from readmeter.models.api import FeatureKey, Tier
from readmeter.models.domain import FeatureLimitData, LimitUpdate
from readmeter.observability.metrics import metrics

logger = get_logger(__name__)


def _limit(
    tier: Tier,
    feature_key: FeatureKey,
    daily: int = 0,
    monthly: int = 0,
    unlimited: bool = False,
) -> FeatureLimitData:
    return FeatureLimitData(
        tier=tier,
        feature_key=feature_key,
        daily_limit=daily,
        monthly_limit=monthly,
        is_unlimited=unlimited,
    )


# Defaults written by seed_defaults(). Unlimited rows keep 0 for both limits.
DEFAULT_FEATURE_LIMITS: tuple[FeatureLimitData, ...] = (
    # Free
    _limit(Tier.FREE, FeatureKey.CHARACTERS, daily=10000),
    _limit(Tier.FREE, FeatureKey.LISTENING_TIME, daily=20),
    _limit(Tier.FREE, FeatureKey.TRANSLATIONS),
    _limit(Tier.FREE, FeatureKey.VOICE_COMMANDS),
    _limit(Tier.FREE, FeatureKey.OCR_PAGES),
    _limit(Tier.FREE, FeatureKey.SOCIAL_MEDIA_CONTROL, daily=1),
    _limit(Tier.FREE, FeatureKey.DOWNLOADS),
    _limit(Tier.FREE, FeatureKey.ACTION_POINTS),
    _limit(Tier.FREE, FeatureKey.SUMMARIES),
    _limit(Tier.FREE, FeatureKey.CHATBOT_QUESTIONS),
    _limit(Tier.FREE, FeatureKey.NATURAL_VOICES),
    _limit(Tier.FREE, FeatureKey.ADS_FREE),
    # Trial
    _limit(Tier.TRIAL, FeatureKey.CHARACTERS, daily=40000),
    _limit(Tier.TRIAL, FeatureKey.LISTENING_TIME, daily=30),
    _limit(Tier.TRIAL, FeatureKey.TRANSLATIONS, daily=1),
    _limit(Tier.TRIAL, FeatureKey.VOICE_COMMANDS, daily=10),
    _limit(Tier.TRIAL, FeatureKey.OCR_PAGES, daily=5, monthly=150),
    _limit(Tier.TRIAL, FeatureKey.SOCIAL_MEDIA_CONTROL, unlimited=True),
    _limit(Tier.TRIAL, FeatureKey.DOWNLOADS, daily=1),
    _limit(Tier.TRIAL, FeatureKey.ACTION_POINTS, daily=2),
    _limit(Tier.TRIAL, FeatureKey.SUMMARIES, daily=2),
    _limit(Tier.TRIAL, FeatureKey.CHATBOT_QUESTIONS, daily=2),
    _limit(Tier.TRIAL, FeatureKey.NATURAL_VOICES, unlimited=True),
    _limit(Tier.TRIAL, FeatureKey.ADS_FREE, unlimited=True),
    # Premium
    _limit(Tier.PREMIUM, FeatureKey.CHARACTERS, daily=500000),
    _limit(Tier.PREMIUM, FeatureKey.LISTENING_TIME, unlimited=True),
    _limit(Tier.PREMIUM, FeatureKey.TRANSLATIONS, unlimited=True),
    _limit(Tier.PREMIUM, FeatureKey.VOICE_COMMANDS, unlimited=True),
    _limit(Tier.PREMIUM, FeatureKey.OCR_PAGES, daily=300, monthly=9000),
    _limit(Tier.PREMIUM, FeatureKey.SOCIAL_MEDIA_CONTROL, unlimited=True),
    _limit(Tier.PREMIUM, FeatureKey.DOWNLOADS, unlimited=True),
    _limit(Tier.PREMIUM, FeatureKey.ACTION_POINTS, unlimited=True),
    _limit(Tier.PREMIUM, FeatureKey.SUMMARIES, unlimited=True),
    _limit(Tier.PREMIUM, FeatureKey.CHATBOT_QUESTIONS, unlimited=True),
    _limit(Tier.PREMIUM, FeatureKey.NATURAL_VOICES, unlimited=True),
    _limit(Tier.PREMIUM, FeatureKey.ADS_FREE, unlimited=True),
)


def _row_to_domain(row: FeatureLimit) -> FeatureLimitData:
    return FeatureLimitData(
        tier=Tier(row.plan_type),
        feature_key=FeatureKey(row.feature_key),
        daily_limit=row.daily_limit,
        monthly_limit=row.monthly_limit or 0,
        is_unlimited=bool(row.is_unlimited),
    )


class LimitCatalog:
    """Lookup and admin mutation of (tier, feature_key) limits."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with database session."""
        self.session = session

    async def _storage_failure(
        self, operation: str, exc: SQLAlchemyError
    ) -> StorageUnavailableError:
        await self.session.rollback()
        logger.error("limit_catalog_storage_error", operation=operation, error=str(exc))
        metrics.record_error(error_type=type(exc).__name__, operation=operation)
        return StorageUnavailableError(operation, str(exc))

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_limit(self, tier: Tier, feature_key: FeatureKey) -> FeatureLimitData:
        """
        Look up one limit row.

        Raises:
            NotConfiguredError: No row for (tier, feature_key)
            StorageUnavailableError: Database error
        """
        stmt = select(FeatureLimit).where(
            FeatureLimit.plan_type == tier.value,
            FeatureLimit.feature_key == feature_key.value,
        )
        start = time.perf_counter()
        try:
            result = await self.session.execute(stmt)
            row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            metrics.record_db_query("get_limit", False, time.perf_counter() - start)
            raise await self._storage_failure("get_limit", exc) from exc
        metrics.record_db_query("get_limit", True, time.perf_counter() - start)

        if row is None:
            raise NotConfiguredError(tier, feature_key)
        return _row_to_domain(row)

    async def list_limits(self, tier: Tier) -> dict[FeatureKey, FeatureLimitData]:
        """All configured limits for a tier, keyed by feature."""
        return {limit.feature_key: limit for limit in await self.list_all(tier)}

    async def list_all(self, tier: Tier | None = None) -> list[FeatureLimitData]:
        """All limit rows ordered by tier and feature, optionally for one tier."""
        stmt = select(FeatureLimit).order_by(FeatureLimit.plan_type, FeatureLimit.feature_key)
        if tier is not None:
            stmt = stmt.where(FeatureLimit.plan_type == tier.value)

        try:
            result = await self.session.execute(stmt)
            rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise await self._storage_failure("list_limits", exc) from exc

        limits: list[FeatureLimitData] = []
        for row in rows:
            try:
                limits.append(_row_to_domain(row))
            except ValueError:
                logger.warning(
                    "feature_limit_row_skipped",
                    plan_type=row.plan_type,
                    feature_key=row.feature_key,
                )
        return limits

    # ========================================================================
    # Admin writes
    # ========================================================================

    async def _upsert(self, limit: FeatureLimitData, overwrite: bool = True) -> None:
        stmt = dialect_insert(self.session, FeatureLimit.__table__).values(
            plan_type=limit.tier.value,
            feature_key=limit.feature_key.value,
            daily_limit=limit.daily_limit,
            monthly_limit=limit.monthly_limit,
            is_unlimited=limit.is_unlimited,
        )
        if overwrite:
            stmt = stmt.on_conflict_do_update(
                index_elements=["plan_type", "feature_key"],
                set_={
                    "daily_limit": stmt.excluded.daily_limit,
                    "monthly_limit": stmt.excluded.monthly_limit,
                    "is_unlimited": stmt.excluded.is_unlimited,
                    "updated_at": utc_now(),
                },
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=["plan_type", "feature_key"])
        await self.session.execute(stmt)

    async def upsert_limit(
        self,
        tier: Tier,
        feature_key: FeatureKey,
        daily_limit: int,
        monthly_limit: int = 0,
        is_unlimited: bool = False,
    ) -> FeatureLimitData:
        """
        Create or replace one (tier, feature_key) row.

        Idempotent. Other rows are untouched.

        Raises:
            ValueError: Negative limits
            StorageUnavailableError: Database error
        """
        limit = _limit(tier, feature_key, daily_limit, monthly_limit, is_unlimited)
        try:
            await self._upsert(limit)
            await self.session.commit()
        except SQLAlchemyError as exc:
            raise await self._storage_failure("upsert_limit", exc) from exc

        metrics.record_limit_update(tier.value)
        logger.info(
            "feature_limit_upserted",
            plan_type=tier.value,
            feature_key=feature_key.value,
            daily_limit=daily_limit,
            monthly_limit=monthly_limit,
            is_unlimited=is_unlimited,
        )
        return limit

    async def upsert_many(self, tier: Tier, updates: list[LimitUpdate]) -> list[FeatureLimitData]:
        """Upsert several rows of one tier in a single transaction."""
        limits = [
            _limit(tier, u.feature_key, u.daily_limit, u.monthly_limit, u.is_unlimited)
            for u in updates
        ]
        try:
            for limit in limits:
                await self._upsert(limit)
            await self.session.commit()
        except SQLAlchemyError as exc:
            raise await self._storage_failure("upsert_many", exc) from exc

        metrics.record_limit_update(tier.value, len(limits))
        logger.info(
            "feature_limits_bulk_upserted",
            plan_type=tier.value,
            count=len(limits),
            feature_keys=[limit.feature_key.value for limit in limits],
        )
        return limits

    async def seed_defaults(self, overwrite: bool = False) -> int:
        """
        Write DEFAULT_FEATURE_LIMITS.

        With overwrite=False existing rows (including admin edits) are kept
        and only missing pairs are inserted. With overwrite=True every pair
        is reset to its default. Both are idempotent.

        Returns:
            Number of default rows processed
        """
        try:
            for limit in DEFAULT_FEATURE_LIMITS:
                await self._upsert(limit, overwrite=overwrite)
            await self.session.commit()
        except SQLAlchemyError as exc:
            raise await self._storage_failure("seed_defaults", exc) from exc

        logger.info(
            "feature_limits_seeded",
            count=len(DEFAULT_FEATURE_LIMITS),
            overwrite=overwrite,
        )
        return len(DEFAULT_FEATURE_LIMITS)
