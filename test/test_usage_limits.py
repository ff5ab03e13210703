"""
Tests for product, order and storage quota checks.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from conftest import T0
from tenant_billing.services import usage_service


class TestProductLimit:
    """Tests for the product quota."""

    async def test_at_limit_cannot_add(self, db, active_tenant, add_products):
        await add_products(active_tenant, 40)

        result = await usage_service.check_product_limit(active_tenant, db)

        assert result == {
            "can_add": False,
            "current_count": 40,
            "limit": 40,
            "remaining": 0,
            "tier_name": "Basic",
        }

    async def test_below_limit_can_add(self, db, active_tenant, add_products):
        await add_products(active_tenant, 39)

        result = await usage_service.check_product_limit(active_tenant, db)

        assert result["can_add"] is True
        assert result["remaining"] == 1

    async def test_unlimited(self, db, make_tier, make_tenant, add_products):
        await make_tier("Trial", "0", country="SA", product_limit=-1)
        tenant = await make_tenant("Unlimited Store", country="SA")
        await add_products(tenant, 500)

        result = await usage_service.check_product_limit(tenant, db)

        assert result["can_add"] is True
        assert result["limit"] == -1
        assert result["remaining"] == -1

    async def test_counts_only_own_products(self, db, ae_catalog, make_tenant, add_products):
        mine = await make_tenant("Mine")
        theirs = await make_tenant("Theirs")
        await add_products(theirs, 10)

        result = await usage_service.check_product_limit(mine, db)

        assert result["current_count"] == 0
        assert result["can_add"] is True


class TestOrderLimit:
    """Tests for the monthly order quota."""

    async def test_over_limit_still_accepts_orders(self, db, active_tenant, add_orders):
        await add_orders(active_tenant, 45)

        result = await usage_service.check_order_limit(active_tenant, db)

        assert result == {
            "limit_reached": True,
            "can_accept_orders": True,
            "can_modify_orders": False,
            "current_count": 45,
            "limit": 40,
            "remaining": 0,
            "tier_name": "Basic",
        }

    async def test_below_limit(self, db, active_tenant, add_orders):
        await add_orders(active_tenant, 39)

        result = await usage_service.check_order_limit(active_tenant, db)

        assert result["limit_reached"] is False
        assert result["can_modify_orders"] is True
        assert result["remaining"] == 1

    async def test_cancelled_and_returned_not_counted(self, db, active_tenant, add_orders):
        await add_orders(active_tenant, 38)
        await add_orders(active_tenant, 5, status="CANCELLED")
        await add_orders(active_tenant, 5, status="RETURNED")
        await add_orders(active_tenant, 1, status="DELIVERED")

        result = await usage_service.check_order_limit(active_tenant, db)

        assert result["current_count"] == 39
        assert result["limit_reached"] is False

    async def test_counts_from_start_of_subscription_month(self, db, active_tenant, add_orders):
        # Subscribed 2026-03-10: orders from 2026-03-01 count, February does not
        await add_orders(active_tenant, 10, created_at=datetime(2026, 2, 27))
        await add_orders(active_tenant, 3, created_at=datetime(2026, 3, 1, 0, 0, 1))
        await add_orders(active_tenant, 2, created_at=T0 + timedelta(days=20))

        result = await usage_service.check_order_limit(active_tenant, db)

        assert usage_service.order_period_start(active_tenant) == datetime(2026, 3, 1)
        assert result["current_count"] == 5

    async def test_trial_counts_from_signup_month(self, db, trial_tenant, add_orders):
        await add_orders(trial_tenant, 4)

        result = await usage_service.check_order_limit(trial_tenant, db)

        assert usage_service.order_period_start(trial_tenant) == datetime(2026, 3, 1)
        assert result["current_count"] == 4
        assert result["limit"] == 10
        assert result["tier_name"] == "Trial"


class TestStorageLimit:
    """Tests for the storage allowance."""

    async def test_fits(self, db, make_tier, make_tenant):
        await make_tier("Trial", "0", country="SA", storage_limit_mb=500)
        tenant = await make_tenant("Media Store", country="SA")
        tenant.storage_used_mb = Decimal("450")
        await db.commit()

        result = await usage_service.check_storage_limit(tenant, db, additional_mb=50)

        assert result["can_upload"] is True
        assert result["remaining_mb"] == Decimal("50")
        assert result["limit_mb"] == 500

    async def test_does_not_fit(self, db, make_tier, make_tenant):
        await make_tier("Trial", "0", country="SA", storage_limit_mb=500)
        tenant = await make_tenant("Media Store", country="SA")
        tenant.storage_used_mb = Decimal("450")
        await db.commit()

        result = await usage_service.check_storage_limit(tenant, db, additional_mb=Decimal("50.5"))

        assert result["can_upload"] is False

    async def test_unlimited_storage(self, db, trial_tenant):
        result = await usage_service.check_storage_limit(trial_tenant, db, additional_mb=10_000)

        assert result["can_upload"] is True
        assert result["limit_mb"] == -1
