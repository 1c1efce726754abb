"""
Usage Ledger - Per-account, per-day usage counters.

One user_usage row per (account_id, usage_date). Rows are created lazily by
the first increment of the day and only ever mutated through a single
INSERT ... ON CONFLICT DO UPDATE SET col = col + :amount statement, so
concurrent increments for the same row are serialized by the database and
never lose updates. The application never reads a counter and writes it back.
"""

import time
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from readmeter.db.models import USAGE_COUNTER_COLUMNS, UsageCounter, utc_now
from readmeter.db.upsert import dialect_insert
from readmeter.exceptions import InvalidAmountError, StorageUnavailableError
from readmeter.models.api import WORDS_READ_COUNTER, FeatureKey
from readmeter.models.domain import UsageSnapshot
from readmeter.observability.metrics import metrics

logger = get_logger(__name__)


# ============================================================================
# Day boundaries
# ============================================================================


def usage_date(now: datetime) -> date:
    """
    Day key for usage counters: the server's local calendar date.

    Naive instants are UTC, matching the trial expiry check, and are
    converted to server local time like aware ones.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone().date()


def next_reset_at(now: datetime) -> datetime:
    """Local midnight at the start of the day after usage_date(now)."""
    tomorrow = usage_date(now) + timedelta(days=1)
    return datetime(tomorrow.year, tomorrow.month, tomorrow.day).astimezone()


def month_bounds(day: date) -> tuple[date, date]:
    """First day of day's month and first day of the following month."""
    start = day.replace(day=1)
    if start.month == 12:
        return start, start.replace(year=start.year + 1, month=1)
    return start, start.replace(month=start.month + 1)


def validate_amount(amount: object) -> int:
    """Units must be a non-negative int. Booleans are rejected."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidAmountError(amount)
    return amount


def _counter_key(counter: FeatureKey | str) -> str:
    return counter.value if isinstance(counter, Enum) else counter


def _column_name(counter: FeatureKey | str) -> str:
    key = _counter_key(counter)
    try:
        return USAGE_COUNTER_COLUMNS[key]
    except KeyError:
        raise ValueError(f"Unknown usage counter: {key}") from None


class UsageLedger:
    """Atomic read and increment of daily usage counters."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with database session."""
        self.session = session
        self._table = UsageCounter.__table__

    async def _storage_failure(
        self, operation: str, exc: SQLAlchemyError
    ) -> StorageUnavailableError:
        await self.session.rollback()
        logger.error("usage_ledger_storage_error", operation=operation, error=str(exc))
        metrics.record_error(error_type=type(exc).__name__, operation=operation)
        return StorageUnavailableError(operation, str(exc))

    async def get_usage(self, account_id: UUID, day: date, counter: FeatureKey | str) -> int:
        """Current value of one counter. 0 when the day has no row yet."""
        column = self._table.c[_column_name(counter)]
        stmt = select(column).where(
            self._table.c.account_id == account_id,
            self._table.c.usage_date == day,
        )
        start = time.perf_counter()
        try:
            result = await self.session.execute(stmt)
            value = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            metrics.record_db_query("get_usage", False, time.perf_counter() - start)
            raise await self._storage_failure("get_usage", exc) from exc
        metrics.record_db_query("get_usage", True, time.perf_counter() - start)

        return int(value or 0)

    async def increment(
        self, account_id: UUID, day: date, counter: FeatureKey | str, amount: int
    ) -> None:
        """
        Atomically add amount to a counter, creating the day's row if absent.

        Commits on success.

        Raises:
            InvalidAmountError: Negative or non-integer amount
            StorageUnavailableError: Database error (transaction rolled back)
        """
        amount = validate_amount(amount)
        column_name = _column_name(counter)
        column = self._table.c[column_name]

        stmt = dialect_insert(self.session, self._table).values(
            account_id=account_id,
            usage_date=day,
            **{column_name: amount},
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["account_id", "usage_date"],
            set_={column_name: column + amount, "updated_at": utc_now()},
        )

        start = time.perf_counter()
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as exc:
            metrics.record_db_query("increment_usage", False, time.perf_counter() - start)
            raise await self._storage_failure("increment_usage", exc) from exc
        metrics.record_db_query("increment_usage", True, time.perf_counter() - start)

        logger.debug(
            "usage_incremented",
            account_id=str(account_id),
            usage_date=day.isoformat(),
            counter=_counter_key(counter),
            amount=amount,
        )

    async def get_usage_snapshot(self, account_id: UUID, day: date) -> UsageSnapshot:
        """Every feature counter plus words_read for one day. Zeros when no row."""
        stmt = select(UsageCounter).where(
            UsageCounter.account_id == account_id,
            UsageCounter.usage_date == day,
        )
        try:
            result = await self.session.execute(stmt)
            row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise await self._storage_failure("get_usage_snapshot", exc) from exc

        if row is None:
            return UsageSnapshot(
                account_id=account_id,
                usage_date=day,
                counters={key: 0 for key in FeatureKey},
                words_read=0,
            )

        return UsageSnapshot(
            account_id=account_id,
            usage_date=day,
            counters={
                key: int(getattr(row, USAGE_COUNTER_COLUMNS[key.value]) or 0)
                for key in FeatureKey
            },
            words_read=int(getattr(row, USAGE_COUNTER_COLUMNS[WORDS_READ_COUNTER]) or 0),
        )

    async def get_monthly_usage(
        self, account_id: UUID, day: date, counter: FeatureKey | str
    ) -> int:
        """Sum of one counter over the calendar month containing day."""
        column = self._table.c[_column_name(counter)]
        month_start, next_month = month_bounds(day)
        stmt = select(func.coalesce(func.sum(column), 0)).where(
            self._table.c.account_id == account_id,
            self._table.c.usage_date >= month_start,
            self._table.c.usage_date < next_month,
        )
        try:
            result = await self.session.execute(stmt)
            total = result.scalar_one()
        except SQLAlchemyError as exc:
            raise await self._storage_failure("get_monthly_usage", exc) from exc

        return int(total or 0)
