"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID

from readmeter.models.api import DenialReason, FeatureKey, Tier


@dataclass(frozen=True)
class AccountSnapshot:
    """Billing-relevant account fields read at evaluation time."""

    account_id: UUID
    plan: str | None
    is_trial: bool
    trial_end_date: datetime | None
    subscription_status: str | None = None
    subscription_end_date: datetime | None = None


@dataclass(frozen=True)
class FeatureLimitData:
    """Immutable feature limit row for one (tier, feature_key)."""

    tier: Tier
    feature_key: FeatureKey
    daily_limit: int
    monthly_limit: int
    is_unlimited: bool

    def __post_init__(self) -> None:
        """Validate limit constraints."""
        if self.daily_limit < 0:
            raise ValueError(f"daily_limit cannot be negative: {self.daily_limit}")
        if self.monthly_limit < 0:
            raise ValueError(f"monthly_limit cannot be negative: {self.monthly_limit}")

    def display_daily(self, unlimited_sentinel: int) -> int:
        """Daily limit as rendered to clients."""
        return unlimited_sentinel if self.is_unlimited else self.daily_limit

    def display_monthly(self, unlimited_sentinel: int) -> int:
        """Monthly limit as rendered to clients."""
        return unlimited_sentinel if self.is_unlimited else self.monthly_limit


@dataclass(frozen=True)
class LimitUpdate:
    """Admin intent to set one feature's limits within a tier."""

    feature_key: FeatureKey
    daily_limit: int
    monthly_limit: int = 0
    is_unlimited: bool = False


@dataclass(frozen=True)
class Decision:
    """Outcome of an entitlement check. Carries everything a denial body needs."""

    approved: bool
    feature_key: FeatureKey
    tier: Tier
    requested: int
    used: int | None
    limit: int | None
    remaining: int | None
    is_unlimited: bool
    reason: DenialReason | None = None

    @property
    def denied(self) -> bool:
        return not self.approved


@dataclass(frozen=True)
class UsageSnapshot:
    """All counters for one account on one day."""

    account_id: UUID
    usage_date: date
    counters: dict[FeatureKey, int] = field(default_factory=dict)
    words_read: int = 0

    def get(self, feature_key: FeatureKey) -> int:
        return self.counters.get(feature_key, 0)


@dataclass(frozen=True)
class FeatureQuota:
    """Daily and monthly standing for one feature."""

    feature_key: FeatureKey
    tier: Tier
    daily_used: int
    daily_limit: int
    daily_remaining: int
    monthly_used: int
    monthly_limit: int
    monthly_remaining: int | None
    is_unlimited: bool
    next_reset: datetime


@dataclass(frozen=True)
class UsageSummary:
    """Plan, limits and today's usage for the usage dashboard."""

    plan: str
    tier: Tier
    limits: dict[FeatureKey, int]
    usage: dict[FeatureKey, int]
