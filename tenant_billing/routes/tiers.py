"""
Tier Catalog Routes

GET    /api/v1/tiers?country=AE     → active tiers for a country, by tier_order
GET    /api/v1/tiers/countries      → countries with at least one active tier
POST   /api/v1/tiers                → create tier (superadmin)
PUT    /api/v1/tiers/{id}           → update tier (superadmin)
POST   /api/v1/tiers/{id}/retire    → retire tier (superadmin)
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_billing.auth import ROLE_SUPERADMIN, Principal, require_role
from tenant_billing.database import get_db
from tenant_billing.schemas.tier import TierCreate, TierResponse, TierUpdate
from tenant_billing.services import tier_service

router = APIRouter(tags=["Tiers"])
logger = logging.getLogger(__name__)


@router.get("/tiers", response_model=list[TierResponse])
async def list_tiers_route(
    country: str = Query(..., min_length=2, max_length=2),
    db: AsyncSession = Depends(get_db),
) -> list[TierResponse]:
    """Tiers offered in a country, cheapest-first by tier_order."""
    tiers = await tier_service.list_tiers(country, db)
    return [TierResponse.model_validate(t) for t in tiers]


@router.get("/tiers/countries", response_model=list[str])
async def list_countries_route(db: AsyncSession = Depends(get_db)) -> list[str]:
    return await tier_service.list_countries(db)


@router.post("/tiers", response_model=TierResponse, status_code=status.HTTP_201_CREATED)
async def create_tier_route(
    payload: TierCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role([ROLE_SUPERADMIN])),
) -> TierResponse:
    fields = payload.model_dump(exclude={"country", "name", "price"})
    tier = await tier_service.create_tier(payload.country, payload.name, payload.price, db, **fields)
    logger.info("Tier %d created by %s", tier.id, principal.subject)
    return TierResponse.model_validate(tier)


@router.put("/tiers/{tier_id}", response_model=TierResponse)
async def update_tier_route(
    tier_id: int,
    payload: TierUpdate,
    db: AsyncSession = Depends(get_db),
    _principal: Principal = Depends(require_role([ROLE_SUPERADMIN])),
) -> TierResponse:
    """Partial update; omitted fields are left unchanged."""
    updates = payload.model_dump(exclude_unset=True, exclude_none=True)
    tier = await tier_service.update_tier(tier_id, updates, db)
    return TierResponse.model_validate(tier)


@router.post("/tiers/{tier_id}/retire", response_model=TierResponse)
async def retire_tier_route(
    tier_id: int,
    db: AsyncSession = Depends(get_db),
    _principal: Principal = Depends(require_role([ROLE_SUPERADMIN])),
) -> TierResponse:
    """Stop offering a tier. Tenants already on it keep it."""
    tier = await tier_service.retire_tier(tier_id, db)
    return TierResponse.model_validate(tier)
