"""
Usage Limiter

Read-only quota checks against the tenant's current tier. Nothing here
writes billing state, and nothing takes a lock: two orders placed at the
same moment may both pass the check and overshoot the quota slightly.
That overshoot is acceptable; the order quota only restricts what the
dashboard may edit, never what customers may place.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_billing.models.storefront import NON_BILLABLE_ORDER_STATUSES, Order, Product
from tenant_billing.models.tenant import Tenant
from tenant_billing.models.tier import Tier
from tenant_billing.services import tier_service
from tenant_billing.utils.billing_dates import month_start
from tenant_billing.utils.quota import Bounded, Quota

logger = logging.getLogger(__name__)


def _remaining(quota: Quota, current: int) -> int:
    remaining = quota.remaining(current)
    return quota.as_limit() if remaining is None else remaining


async def _tenant_tier(tenant: Tenant, db: AsyncSession) -> Tier:
    return await tier_service.get_tier(tenant.current_tier_id, db)


def order_period_start(tenant: Tenant) -> datetime:
    """First day of the month containing subscription start, or signup when never subscribed."""
    return month_start(tenant.subscription_starts_at or tenant.created_at)


async def count_products(tenant_id: int, db: AsyncSession) -> int:
    result = await db.scalar(select(func.count(Product.id)).where(Product.tenant_id == tenant_id))
    return result or 0


async def count_billable_orders(tenant_id: int, since: datetime, db: AsyncSession) -> int:
    result = await db.scalar(
        select(func.count(Order.id)).where(
            Order.tenant_id == tenant_id,
            Order.created_at >= since,
            Order.status.not_in(NON_BILLABLE_ORDER_STATUSES),
        )
    )
    return result or 0


async def check_product_limit(tenant: Tenant, db: AsyncSession) -> dict:
    """Whether the dashboard may add another product."""
    tier = await _tenant_tier(tenant, db)
    quota = tier.product_quota
    current = await count_products(tenant.id, db)

    return {
        "can_add": quota.allows(current),
        "current_count": current,
        "limit": quota.as_limit(),
        "remaining": _remaining(quota, current),
        "tier_name": tier.name,
    }


async def check_order_limit(tenant: Tenant, db: AsyncSession) -> dict:
    """
    Order quota for the current billing period.

    Customers can always place orders. Once the quota is met the dashboard
    may no longer edit or transition existing orders.
    """
    tier = await _tenant_tier(tenant, db)
    quota = tier.order_quota
    current = await count_billable_orders(tenant.id, order_period_start(tenant), db)
    limit_reached = quota.is_reached(current)

    if limit_reached:
        logger.info("Tenant %d reached order quota: %d/%d", tenant.id, current, quota.as_limit())

    return {
        "limit_reached": limit_reached,
        "can_accept_orders": True,
        "can_modify_orders": not limit_reached,
        "current_count": current,
        "limit": quota.as_limit(),
        "remaining": _remaining(quota, current),
        "tier_name": tier.name,
    }


async def check_storage_limit(tenant: Tenant, db: AsyncSession, additional_mb: Decimal | int = 0) -> dict:
    """Whether `additional_mb` more storage fits in the tier's allowance."""
    tier = await _tenant_tier(tenant, db)
    quota = tier.storage_quota
    used = Decimal(tenant.storage_used_mb or 0)
    additional = Decimal(additional_mb)

    if isinstance(quota, Bounded):
        can_upload = used + additional <= quota.limit
        remaining = max(Decimal(0), Decimal(quota.limit) - used)
    else:
        can_upload = True
        remaining = Decimal(quota.as_limit())

    return {
        "can_upload": can_upload,
        "used_mb": used,
        "limit_mb": quota.as_limit(),
        "remaining_mb": remaining,
        "tier_name": tier.name,
    }
