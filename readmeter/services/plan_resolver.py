"""
Plan Resolver - Derives an account's entitlement tier.

Pure functions, no I/O. Every gate evaluation recomputes the tier from the
account snapshot and the evaluation instant; nothing is cached.
"""

from datetime import UTC, datetime

from readmeter.models.api import Tier
from readmeter.models.domain import AccountSnapshot

FREE_PLAN = "free"
PREMIUM_MARKER = "premium"
TRIAL_PLAN_DISPLAY = "trial"


def _as_aware(value: datetime) -> datetime:
    """Naive timestamps from the store are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_trial_active(account: AccountSnapshot, now: datetime) -> bool:
    """Trial applies only while the trial flag is set and the end date is in the future."""
    if not account.is_trial or account.trial_end_date is None:
        return False
    return _as_aware(account.trial_end_date) > _as_aware(now)


def resolve_tier_for_limits(plan: object) -> Tier:
    """
    Map a raw plan string to its base tier, ignoring trial state.

    "premium", "premium-monthly" and "premium-yearly" all map to premium.
    Anything else, including None, empty strings and non-string values,
    maps to free.
    """
    if not isinstance(plan, str):
        return Tier.FREE
    normalized = plan.strip().lower()
    if not normalized or normalized == FREE_PLAN:
        return Tier.FREE
    if PREMIUM_MARKER in normalized:
        return Tier.PREMIUM
    return Tier.FREE


def resolve_tier(account: AccountSnapshot, now: datetime) -> Tier:
    """Resolve the entitlement tier for an account at a given instant."""
    if is_trial_active(account, now):
        return Tier.TRIAL
    return resolve_tier_for_limits(account.plan)


def display_plan(account: AccountSnapshot, now: datetime) -> str:
    """
    Plan label for the usage summary.

    The raw plan string for paying accounts, "trial" during an active
    trial, "free" otherwise.
    """
    if is_trial_active(account, now):
        return TRIAL_PLAN_DISPLAY
    if resolve_tier_for_limits(account.plan) == Tier.PREMIUM:
        return str(account.plan).strip()
    return FREE_PLAN
