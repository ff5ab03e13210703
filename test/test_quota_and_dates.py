"""
Tests for quota values and billing date arithmetic.
"""

from datetime import datetime, timedelta

import pytest

from tenant_billing.utils.billing_dates import (
    billing_period,
    days_remaining,
    grace_deadline,
    month_start,
    trial_end,
)
from tenant_billing.utils.quota import UNLIMITED, Bounded, Unlimited, quota_from_limit

NOW = datetime(2026, 3, 10, 12, 0, 0)


class TestQuota:
    """Tests for the Unlimited | Bounded quota value."""

    def test_minus_one_is_unlimited(self):
        assert quota_from_limit(-1) == Unlimited()
        assert quota_from_limit(None) == Unlimited()

    def test_non_negative_is_bounded(self):
        assert quota_from_limit(0) == Bounded(0)
        assert quota_from_limit(40) == Bounded(40)

    def test_other_negatives_rejected(self):
        with pytest.raises(ValueError):
            quota_from_limit(-5)

    def test_bounded_allows_up_to_limit(self):
        quota = Bounded(40)
        assert quota.allows(39) is True
        assert quota.allows(40) is False
        assert quota.allows(38, additional=2) is True
        assert quota.allows(38, additional=3) is False

    def test_bounded_remaining_never_negative(self):
        quota = Bounded(40)
        assert quota.remaining(10) == 30
        assert quota.remaining(45) == 0

    def test_bounded_reached(self):
        assert Bounded(40).is_reached(40) is True
        assert Bounded(40).is_reached(39) is False

    def test_unlimited_never_reached(self):
        quota = Unlimited()
        assert quota.allows(10**9) is True
        assert quota.is_reached(10**9) is False
        assert quota.remaining(10**9) is None
        assert quota.as_limit() == UNLIMITED

    def test_zero_quota_allows_nothing(self):
        assert Bounded(0).allows(0) is False


class TestBillingDates:
    """Tests for pure date helpers."""

    def test_trial_end(self):
        assert trial_end(NOW, 15) == NOW + timedelta(days=15)

    def test_billing_period_uses_plan_days(self):
        assert billing_period(NOW, 30) == (NOW, NOW + timedelta(days=30))
        assert billing_period(NOW, 365) == (NOW, NOW + timedelta(days=365))

    def test_grace_deadline(self):
        assert grace_deadline(NOW, 2) == NOW + timedelta(days=2)

    def test_days_remaining_rounds_up(self):
        assert days_remaining(NOW + timedelta(days=4, hours=1), NOW) == 5
        assert days_remaining(NOW + timedelta(days=5), NOW) == 5
        assert days_remaining(NOW + timedelta(seconds=1), NOW) == 1

    def test_days_remaining_never_negative(self):
        assert days_remaining(NOW - timedelta(days=3), NOW) == 0
        assert days_remaining(NOW, NOW) == 0
        assert days_remaining(None, NOW) == 0

    def test_month_start(self):
        assert month_start(datetime(2026, 3, 17, 8, 30, 15, 5)) == datetime(2026, 3, 1)
