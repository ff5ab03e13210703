"""
Tier Catalog Service

Country-scoped subscription tier lookup and administrator CRUD.
All functions accept an injected AsyncSession.

Tier edits only change the catalog row. Invoices copy amount, currency and
period dates when they are created, so editing or retiring a tier never
touches approved invoices or a tenant's running period.
"""

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_billing.exceptions import DuplicateResourceError, NoTierAvailableError, TierNotFoundError
from tenant_billing.models.tier import TRIAL_TIER_NAME, Tier

logger = logging.getLogger(__name__)

MUTABLE_TIER_FIELDS = {
    "country_name",
    "tier_order",
    "price",
    "currency",
    "plan_days",
    "trial_days",
    "overdue_grace_days",
    "product_limit",
    "order_limit_per_month",
    "storage_limit_mb",
    "is_active",
}


def normalize_country(country: str) -> str:
    return country.strip().upper()


async def get_tier(tier_id: int, db: AsyncSession) -> Tier:
    """Return a Tier by primary key or raise TierNotFoundError."""
    tier = await db.get(Tier, tier_id)
    if tier is None:
        raise TierNotFoundError(tier_id)
    return tier


async def get_tier_by_name(country: str, name: str, db: AsyncSession) -> Tier | None:
    result = await db.execute(select(Tier).where(Tier.country == normalize_country(country), Tier.name == name))
    return result.scalars().first()


async def list_tiers(country: str, db: AsyncSession, include_inactive: bool = False) -> list[Tier]:
    """Tiers for a country ordered by tier_order ascending, for display and tier-change menus."""
    query = select(Tier).where(Tier.country == normalize_country(country))
    if not include_inactive:
        query = query.where(Tier.is_active.is_(True))
    result = await db.execute(query.order_by(Tier.tier_order, Tier.price, Tier.id))
    return list(result.scalars().all())


async def list_countries(db: AsyncSession) -> list[str]:
    """Countries that have at least one active tier."""
    result = await db.execute(select(Tier.country).where(Tier.is_active.is_(True)).distinct().order_by(Tier.country))
    return list(result.scalars().all())


async def resolve_default_tier(country: str, db: AsyncSession) -> Tier:
    """
    Pick the tier a new tenant in `country` starts on.

    The active "Trial" tier wins; otherwise the lowest-order active tier.
    Raises NoTierAvailableError when the country has no active tiers.
    """
    country = normalize_country(country)
    trial = await db.execute(
        select(Tier).where(Tier.country == country, Tier.name == TRIAL_TIER_NAME, Tier.is_active.is_(True))
    )
    tier = trial.scalars().first()
    if tier is not None:
        return tier

    tiers = await list_tiers(country, db)
    if not tiers:
        logger.warning("No active tier for country %s", country)
        raise NoTierAvailableError(country)
    return tiers[0]


async def cheapest_paid_tier(country: str, db: AsyncSession) -> Tier | None:
    """Lowest-priced active non-trial tier; used as the default trial conversion target."""
    result = await db.execute(
        select(Tier)
        .where(
            Tier.country == normalize_country(country),
            Tier.is_active.is_(True),
            Tier.name != TRIAL_TIER_NAME,
        )
        .order_by(Tier.price, Tier.tier_order, Tier.id)
    )
    return result.scalars().first()


async def create_tier(
    country: str,
    name: str,
    price: Decimal,
    db: AsyncSession,
    **fields,
) -> Tier:
    """Create a catalog entry. At most one tier may exist per (country, name)."""
    country = normalize_country(country)
    if await get_tier_by_name(country, name, db) is not None:
        raise DuplicateResourceError("Tier", "country/name", f"{country}/{name}")

    unknown = set(fields) - MUTABLE_TIER_FIELDS
    if unknown:
        raise ValueError(f"Unknown tier fields: {sorted(unknown)}")

    tier = Tier(country=country, name=name, price=Decimal(price), **fields)
    db.add(tier)
    await db.commit()
    await db.refresh(tier)
    logger.info("Tier created: id=%d country=%s name=%s price=%s", tier.id, tier.country, tier.name, tier.price)
    return tier


async def update_tier(tier_id: int, updates: dict, db: AsyncSession) -> Tier:
    """
    Apply a partial update to a Tier.

    Only keys in MUTABLE_TIER_FIELDS are changed; country and name are fixed
    once created.
    """
    tier = await get_tier(tier_id, db)
    for field, value in updates.items():
        if field in MUTABLE_TIER_FIELDS:
            setattr(tier, field, value)
    await db.commit()
    await db.refresh(tier)
    logger.info("Tier updated: id=%d fields=%s", tier.id, sorted(set(updates) & MUTABLE_TIER_FIELDS))
    return tier


async def retire_tier(tier_id: int, db: AsyncSession) -> Tier:
    """
    Mark a tier inactive.

    Existing subscribers keep it until they change tier; it is no longer
    offered to new tenants or as a tier-change target.
    """
    tier = await get_tier(tier_id, db)
    tier.is_active = False
    await db.commit()
    await db.refresh(tier)
    logger.info("Tier retired: id=%d country=%s name=%s", tier.id, tier.country, tier.name)
    return tier
