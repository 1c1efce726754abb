"""
Tests for EntitlementGate decision logic with mocked catalog and ledger.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from conftest import NOW, make_limit, make_snapshot
from hypothesis import given
from hypothesis import strategies as st

from readmeter.exceptions import (
    InvalidAmountError,
    LimitExceededError,
    NotConfiguredError,
    StorageUnavailableError,
)
from readmeter.models.api import DenialReason, FeatureKey, Tier
from readmeter.models.domain import UsageSnapshot
from readmeter.services.entitlement_gate import EntitlementGate
from readmeter.services.limit_catalog import LimitCatalog
from readmeter.services.usage_ledger import UsageLedger, usage_date


async def _missing_limit(tier, feature_key):
    raise NotConfiguredError(tier, feature_key)


def make_gate(limit=None, used=0, not_configured=False, sentinel=999999) -> EntitlementGate:
    """Gate whose catalog returns limit and whose ledger reports used."""
    gate = EntitlementGate(MagicMock(), unlimited_sentinel=sentinel)

    gate.catalog = MagicMock(spec=LimitCatalog)
    if not_configured:
        gate.catalog.get_limit = AsyncMock(side_effect=_missing_limit)
    else:
        gate.catalog.get_limit = AsyncMock(return_value=limit)
    gate.catalog.list_limits = AsyncMock(return_value={})

    gate.ledger = MagicMock(spec=UsageLedger)
    gate.ledger.get_usage = AsyncMock(return_value=used)
    gate.ledger.get_monthly_usage = AsyncMock(return_value=used)
    gate.ledger.increment = AsyncMock()
    return gate


class TestCheckAndReserve:
    """Tests for the decision itself."""

    async def test_under_limit_is_approved(self, free_account):
        """used + requested within the cap is approved with remaining."""
        gate = make_gate(make_limit(Tier.FREE, FeatureKey.CHARACTERS, daily_limit=10000), used=9000)

        decision = await gate.check_and_reserve(free_account, FeatureKey.CHARACTERS, 1000, NOW)

        assert decision.approved is True
        assert decision.used == 9000
        assert decision.limit == 10000
        assert decision.remaining == 1000
        assert decision.reason is None
        assert decision.tier == Tier.FREE

    async def test_over_limit_is_denied(self, free_account):
        """used + requested above the cap is LIMIT_EXCEEDED."""
        gate = make_gate(make_limit(Tier.FREE, FeatureKey.CHARACTERS, daily_limit=10000), used=9000)

        decision = await gate.check_and_reserve(free_account, FeatureKey.CHARACTERS, 1001, NOW)

        assert decision.denied
        assert decision.reason == DenialReason.LIMIT_EXCEEDED
        assert decision.remaining == 1000

    async def test_zero_limit_denies_one_unit(self, free_account):
        """A 0 daily limit blocks the feature."""
        gate = make_gate(make_limit(Tier.FREE, FeatureKey.OCR_PAGES, daily_limit=0))

        decision = await gate.check_and_reserve(free_account, FeatureKey.OCR_PAGES, 1, NOW)

        assert decision.denied
        assert (decision.used, decision.limit, decision.remaining) == (0, 0, 0)

    async def test_zero_unit_probe_is_approved_when_over(self, free_account):
        """Probing with 0 units is approved even when usage is past the cap."""
        gate = make_gate(make_limit(Tier.FREE, FeatureKey.CHARACTERS, daily_limit=10), used=15)

        decision = await gate.check_and_reserve(free_account, FeatureKey.CHARACTERS, 0, NOW)

        assert decision.approved
        assert decision.remaining == 0

    async def test_not_configured_denies(self, free_account):
        """A missing limit row denies with NOT_CONFIGURED and zeros."""
        gate = make_gate(not_configured=True)

        decision = await gate.check_and_reserve(free_account, FeatureKey.SUMMARIES, 1, NOW)

        assert decision.denied
        assert decision.reason == DenialReason.NOT_CONFIGURED
        assert (decision.used, decision.limit, decision.remaining) == (0, 0, 0)
        gate.ledger.get_usage.assert_not_called()

    async def test_not_configured_denies_zero_unit_probe(self, free_account):
        """Fail-closed wins over the zero-unit probe."""
        gate = make_gate(not_configured=True)

        decision = await gate.check_and_reserve(free_account, FeatureKey.SUMMARIES, 0, NOW)

        assert decision.reason == DenialReason.NOT_CONFIGURED

    async def test_unlimited_skips_usage_read(self, premium_account):
        """Unlimited features approve without reading the ledger."""
        gate = make_gate(make_limit(Tier.PREMIUM, FeatureKey.TRANSLATIONS, is_unlimited=True))

        decision = await gate.check_and_reserve(
            premium_account, FeatureKey.TRANSLATIONS, 10**9, NOW
        )

        assert decision.approved
        assert decision.is_unlimited
        assert (decision.used, decision.limit, decision.remaining) == (None, None, None)
        gate.ledger.get_usage.assert_not_called()

    async def test_tier_is_resolved_from_account(self, trial_account):
        """The catalog is asked for the resolved tier."""
        gate = make_gate(make_limit(Tier.TRIAL, FeatureKey.OCR_PAGES, daily_limit=5))

        await gate.check_and_reserve(trial_account, FeatureKey.OCR_PAGES, 1, NOW)

        gate.catalog.get_limit.assert_awaited_once_with(Tier.TRIAL, FeatureKey.OCR_PAGES)

    async def test_usage_read_for_todays_key(self, free_account):
        """Usage is read for the day of the evaluation instant."""
        gate = make_gate(make_limit(Tier.FREE, FeatureKey.CHARACTERS, daily_limit=10))

        await gate.check_and_reserve(free_account, FeatureKey.CHARACTERS, 1, NOW)

        gate.ledger.get_usage.assert_awaited_once_with(
            free_account.account_id, usage_date(NOW), FeatureKey.CHARACTERS
        )

    async def test_naive_instant_judges_trial_and_day_alike(self):
        """A naive instant is UTC for both the trial check and the day key."""
        naive_now = NOW.replace(tzinfo=None)
        account = make_snapshot(is_trial=True, trial_end_date=NOW + timedelta(seconds=1))
        gate = make_gate(make_limit(Tier.TRIAL, FeatureKey.OCR_PAGES, daily_limit=5))

        decision = await gate.check_and_reserve(account, FeatureKey.OCR_PAGES, 1, naive_now)

        assert decision.tier == Tier.TRIAL
        gate.ledger.get_usage.assert_awaited_once_with(
            account.account_id, usage_date(NOW), FeatureKey.OCR_PAGES
        )

    @pytest.mark.parametrize("amount", [-1, 1.5, True])
    async def test_invalid_amount(self, free_account, amount):
        """Invalid amounts raise before any lookup."""
        gate = make_gate(make_limit())
        with pytest.raises(InvalidAmountError):
            await gate.check_and_reserve(free_account, FeatureKey.OCR_PAGES, amount, NOW)
        gate.catalog.get_limit.assert_not_called()

    async def test_catalog_storage_error_propagates(self, free_account):
        """Storage failures are never turned into approvals."""
        gate = make_gate()
        gate.catalog.get_limit = AsyncMock(side_effect=StorageUnavailableError("get_limit", "x"))

        with pytest.raises(StorageUnavailableError):
            await gate.check_and_reserve(free_account, FeatureKey.OCR_PAGES, 1, NOW)

    async def test_ledger_storage_error_propagates(self, free_account):
        """A failing usage read denies by raising."""
        gate = make_gate(make_limit(Tier.FREE, FeatureKey.CHARACTERS, daily_limit=10))
        gate.ledger.get_usage = AsyncMock(side_effect=StorageUnavailableError("get_usage", "x"))

        with pytest.raises(StorageUnavailableError):
            await gate.check_and_reserve(free_account, FeatureKey.CHARACTERS, 1, NOW)

    async def test_check_never_writes(self, free_account):
        """Checks do not increment usage."""
        gate = make_gate(make_limit(Tier.FREE, FeatureKey.CHARACTERS, daily_limit=10))

        await gate.check_and_reserve(free_account, FeatureKey.CHARACTERS, 1, NOW)

        gate.ledger.increment.assert_not_called()

    @given(
        limit=st.integers(min_value=0, max_value=100_000),
        used=st.integers(min_value=0, max_value=200_000),
        requested=st.integers(min_value=1, max_value=100_000),
    )
    async def test_decision_matches_arithmetic(self, limit, used, requested):
        """Approved exactly when used + requested <= limit."""
        gate = make_gate(make_limit(Tier.FREE, FeatureKey.CHARACTERS, daily_limit=limit), used=used)

        decision = await gate.check_and_reserve(
            make_snapshot(), FeatureKey.CHARACTERS, requested, NOW
        )

        assert decision.approved is (used + requested <= limit)
        assert decision.remaining == max(0, limit - used)


class TestRequire:
    """Tests for the raising variant."""

    async def test_denial_raises_with_decision(self, free_account):
        """Denied checks raise LimitExceededError carrying the decision."""
        gate = make_gate(make_limit(Tier.FREE, FeatureKey.OCR_PAGES, daily_limit=0))

        with pytest.raises(LimitExceededError) as exc_info:
            await gate.require(free_account, FeatureKey.OCR_PAGES, 1, NOW)

        assert exc_info.value.decision.reason == DenialReason.LIMIT_EXCEEDED

    async def test_approval_returns_decision(self, free_account):
        """Approved checks return the decision."""
        gate = make_gate(make_limit(Tier.FREE, FeatureKey.CHARACTERS, daily_limit=10))
        decision = await gate.require(free_account, FeatureKey.CHARACTERS, 1, NOW)
        assert decision.approved


class TestCommit:
    """Tests for usage commits."""

    async def test_commit_increments_todays_counter(self):
        """Commit adds the actual units to today's row."""
        gate = make_gate()
        account_id = uuid4()

        await gate.commit(account_id, FeatureKey.OCR_PAGES, 3, NOW)

        gate.ledger.increment.assert_awaited_once_with(
            account_id, usage_date(NOW), FeatureKey.OCR_PAGES, 3
        )

    async def test_commit_storage_error_propagates(self):
        """The gate reports commit failures; callers decide how to surface them."""
        gate = make_gate()
        gate.ledger.increment = AsyncMock(side_effect=StorageUnavailableError("increment", "x"))

        with pytest.raises(StorageUnavailableError):
            await gate.commit(uuid4(), FeatureKey.OCR_PAGES, 3, NOW)


class TestViews:
    """Tests for quota and summary views."""

    async def test_quota_for_capped_feature(self, trial_account):
        """Daily and monthly figures come from the ledger."""
        gate = make_gate(
            make_limit(Tier.TRIAL, FeatureKey.OCR_PAGES, daily_limit=5, monthly_limit=150),
            used=2,
        )
        gate.ledger.get_monthly_usage = AsyncMock(return_value=40)

        quota = await gate.get_quota(trial_account, FeatureKey.OCR_PAGES, NOW)

        assert quota.tier == Tier.TRIAL
        assert (quota.daily_used, quota.daily_limit, quota.daily_remaining) == (2, 5, 3)
        assert (quota.monthly_used, quota.monthly_limit, quota.monthly_remaining) == (40, 150, 110)
        assert quota.next_reset > NOW

    async def test_quota_for_unlimited_feature_shows_sentinel(self, premium_account):
        """Unlimited features render the sentinel for limits and remaining."""
        gate = make_gate(
            make_limit(Tier.PREMIUM, FeatureKey.SUMMARIES, is_unlimited=True), sentinel=999999
        )

        quota = await gate.get_quota(premium_account, FeatureKey.SUMMARIES, NOW)

        assert quota.is_unlimited
        assert quota.daily_limit == 999999
        assert quota.daily_remaining == 999999
        assert quota.monthly_remaining == 999999

    async def test_quota_without_monthly_limit_has_no_monthly_remaining(self, free_account):
        """A monthly limit of 0 is not a used-up monthly quota."""
        gate = make_gate(
            make_limit(Tier.FREE, FeatureKey.CHARACTERS, daily_limit=10000, monthly_limit=0),
            used=1200,
        )

        quota = await gate.get_quota(free_account, FeatureKey.CHARACTERS, NOW)

        assert quota.monthly_limit == 0
        assert quota.monthly_remaining is None
        assert quota.daily_remaining == 8800

    async def test_quota_for_unconfigured_feature_is_zero(self, free_account):
        """A missing row shows as a 0 limit."""
        gate = make_gate(not_configured=True)

        quota = await gate.get_quota(free_account, FeatureKey.SUMMARIES, NOW)

        assert quota.daily_limit == 0
        assert quota.daily_remaining == 0
        assert quota.monthly_remaining is None

    async def test_summary_covers_every_feature(self, premium_account):
        """Summary maps every feature; unlimited as sentinel, unconfigured as 0."""
        gate = make_gate()
        gate.catalog.list_limits = AsyncMock(
            return_value={
                FeatureKey.CHARACTERS: make_limit(
                    Tier.PREMIUM, FeatureKey.CHARACTERS, daily_limit=500000
                ),
                FeatureKey.ADS_FREE: make_limit(
                    Tier.PREMIUM, FeatureKey.ADS_FREE, is_unlimited=True
                ),
            }
        )
        gate.ledger.get_usage_snapshot = AsyncMock(
            return_value=UsageSnapshot(
                account_id=premium_account.account_id,
                usage_date=usage_date(NOW),
                counters={FeatureKey.CHARACTERS: 1200},
            )
        )

        summary = await gate.summarize(premium_account, NOW)

        assert summary.plan == "premium-yearly"
        assert summary.tier == Tier.PREMIUM
        assert set(summary.limits) == set(FeatureKey)
        assert summary.limits[FeatureKey.CHARACTERS] == 500000
        assert summary.limits[FeatureKey.ADS_FREE] == 999999
        assert summary.limits[FeatureKey.SUMMARIES] == 0
        assert summary.usage[FeatureKey.CHARACTERS] == 1200
        assert summary.usage[FeatureKey.OCR_PAGES] == 0

    async def test_summary_for_trial_account(self):
        """Active trials display as 'trial'."""
        account = make_snapshot(is_trial=True, trial_end_date=NOW + timedelta(days=1))
        gate = make_gate()
        gate.ledger.get_usage_snapshot = AsyncMock(
            return_value=UsageSnapshot(account_id=account.account_id, usage_date=usage_date(NOW))
        )

        summary = await gate.summarize(account, NOW)

        assert summary.plan == "trial"
        assert summary.tier == Tier.TRIAL
        gate.catalog.list_limits.assert_awaited_once_with(Tier.TRIAL)
