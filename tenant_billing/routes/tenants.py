"""
Tenant Subscription Routes

POST   /api/v1/tenants                          → sign up a tenant on its country's default tier (superadmin)
GET    /api/v1/tenants                          → list tenants (superadmin)
GET    /api/v1/tenants/{id}                     → tenant record, evaluated
GET    /api/v1/tenants/{id}/status              → status banner data
GET    /api/v1/tenants/{id}/limits/products     → product quota check
GET    /api/v1/tenants/{id}/limits/orders       → order quota check
GET    /api/v1/tenants/{id}/limits/storage      → storage quota check
POST   /api/v1/tenants/{id}/tier-change         → invoice for a tier change
POST   /api/v1/tenants/{id}/trial-conversion    → first paid invoice after trial
POST   /api/v1/tenants/{id}/renewal-invoice     → invoice for the next period
POST   /api/v1/tenants/{id}/cancel              → cancel subscription
POST   /api/v1/tenants/{id}/pause               → pause subscription
POST   /api/v1/tenants/{id}/resume              → resume paused subscription
GET    /api/v1/tenants/{id}/invoices            → the tenant's invoices

Tenant tokens may only reach their own tenant; superadmin reaches any.
"""

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_billing.auth import ROLE_SUPERADMIN, Principal, ensure_tenant_access, get_current_principal, require_role
from tenant_billing.database import get_db
from tenant_billing.models.tenant import Tenant, TenantStatus
from tenant_billing.schemas.invoice import InvoiceResponse
from tenant_billing.schemas.tenant import (
    CancelRequest,
    CancelResponse,
    TenantCreate,
    TenantResponse,
    TenantStatusResponse,
    TierChangeRequest,
)
from tenant_billing.schemas.usage import OrderLimitResponse, ProductLimitResponse, StorageLimitResponse
from tenant_billing.services import invoice_service, tier_service, usage_service
from tenant_billing.services.billing_service import BillingStateMachine

router = APIRouter(tags=["Tenants"])
logger = logging.getLogger(__name__)


# ── Dependencies ──────────────────────────────────────────────────────────────


def get_billing(db: AsyncSession = Depends(get_db)) -> BillingStateMachine:
    return BillingStateMachine(db)


async def get_accessible_tenant(
    tenant_id: int,
    principal: Principal = Depends(get_current_principal),
    billing: BillingStateMachine = Depends(get_billing),
) -> Tenant:
    """Resolve the path tenant after checking the caller may act on it."""
    ensure_tenant_access(principal, tenant_id)
    return await billing.get_tenant(tenant_id)


# ── Routes ────────────────────────────────────────────────────────────────────


@router.post("/tenants", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant_route(
    payload: TenantCreate,
    billing: BillingStateMachine = Depends(get_billing),
    principal: Principal = Depends(require_role([ROLE_SUPERADMIN])),
) -> TenantResponse:
    """Create a tenant and start its trial on the country's default tier."""
    tenant = await billing.create_tenant(payload.name, payload.country)
    logger.info("Tenant %d signed up by %s", tenant.id, principal.subject)
    return TenantResponse.model_validate(tenant)


@router.get("/tenants", response_model=list[TenantResponse])
async def list_tenants_route(
    status_filter: Optional[TenantStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    billing: BillingStateMachine = Depends(get_billing),
    _principal: Principal = Depends(require_role([ROLE_SUPERADMIN])),
) -> list[TenantResponse]:
    tenants = await billing.list_tenants(
        status=status_filter.value if status_filter else None,
        skip=skip,
        limit=limit,
    )
    return [TenantResponse.model_validate(t) for t in tenants]


@router.get("/tenants/{tenant_id}", response_model=TenantResponse)
async def get_tenant_route(
    tenant: Tenant = Depends(get_accessible_tenant),
    billing: BillingStateMachine = Depends(get_billing),
) -> TenantResponse:
    await billing.evaluate(tenant)
    return TenantResponse.model_validate(tenant)


@router.get("/tenants/{tenant_id}/status", response_model=TenantStatusResponse)
async def get_tenant_status_route(
    tenant: Tenant = Depends(get_accessible_tenant),
    billing: BillingStateMachine = Depends(get_billing),
) -> TenantStatusResponse:
    return TenantStatusResponse(**await billing.get_status(tenant))


@router.get("/tenants/{tenant_id}/limits/products", response_model=ProductLimitResponse)
async def check_product_limit_route(
    tenant: Tenant = Depends(get_accessible_tenant),
    db: AsyncSession = Depends(get_db),
) -> ProductLimitResponse:
    return ProductLimitResponse(**await usage_service.check_product_limit(tenant, db))


@router.get("/tenants/{tenant_id}/limits/orders", response_model=OrderLimitResponse)
async def check_order_limit_route(
    tenant: Tenant = Depends(get_accessible_tenant),
    db: AsyncSession = Depends(get_db),
) -> OrderLimitResponse:
    return OrderLimitResponse(**await usage_service.check_order_limit(tenant, db))


@router.get("/tenants/{tenant_id}/limits/storage", response_model=StorageLimitResponse)
async def check_storage_limit_route(
    additional_mb: Decimal = Query(Decimal(0), ge=0),
    tenant: Tenant = Depends(get_accessible_tenant),
    db: AsyncSession = Depends(get_db),
) -> StorageLimitResponse:
    return StorageLimitResponse(**await usage_service.check_storage_limit(tenant, db, additional_mb))


@router.post("/tenants/{tenant_id}/tier-change", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def request_tier_change_route(
    payload: TierChangeRequest,
    tenant: Tenant = Depends(get_accessible_tenant),
    billing: BillingStateMachine = Depends(get_billing),
) -> InvoiceResponse:
    """Raise a PENDING invoice for moving to another tier. The tier changes on approval."""
    new_tier = await tier_service.get_tier(payload.tier_id, billing.db)
    invoice = await billing.request_tier_change(tenant, new_tier)
    return InvoiceResponse.model_validate(invoice)


@router.post(
    "/tenants/{tenant_id}/trial-conversion",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_trial_conversion_route(
    payload: Optional[TierChangeRequest] = None,
    tenant: Tenant = Depends(get_accessible_tenant),
    billing: BillingStateMachine = Depends(get_billing),
) -> InvoiceResponse:
    """First paid invoice. Without a tier_id the current paid tier or the cheapest paid tier is used."""
    tier = await tier_service.get_tier(payload.tier_id, billing.db) if payload else None
    invoice = await billing.request_trial_conversion(tenant, tier)
    return InvoiceResponse.model_validate(invoice)


@router.post(
    "/tenants/{tenant_id}/renewal-invoice",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_renewal_invoice_route(
    tenant: Tenant = Depends(get_accessible_tenant),
    billing: BillingStateMachine = Depends(get_billing),
) -> InvoiceResponse:
    invoice = await billing.create_renewal_invoice(tenant)
    return InvoiceResponse.model_validate(invoice)


@router.post("/tenants/{tenant_id}/cancel", response_model=CancelResponse)
async def cancel_subscription_route(
    payload: Optional[CancelRequest] = None,
    tenant: Tenant = Depends(get_accessible_tenant),
    billing: BillingStateMachine = Depends(get_billing),
) -> CancelResponse:
    """Cancel from any status. Cancelling twice is a no-op reported as cancelled=false."""
    cancelled = await billing.cancel(tenant, reason=payload.reason if payload else None)
    return CancelResponse(cancelled=cancelled, tenant=TenantResponse.model_validate(tenant))


@router.post("/tenants/{tenant_id}/pause", response_model=TenantResponse)
async def pause_subscription_route(
    tenant: Tenant = Depends(get_accessible_tenant),
    billing: BillingStateMachine = Depends(get_billing),
) -> TenantResponse:
    return TenantResponse.model_validate(await billing.pause(tenant))


@router.post("/tenants/{tenant_id}/resume", response_model=TenantResponse)
async def resume_subscription_route(
    tenant: Tenant = Depends(get_accessible_tenant),
    billing: BillingStateMachine = Depends(get_billing),
) -> TenantResponse:
    return TenantResponse.model_validate(await billing.resume(tenant))


@router.get("/tenants/{tenant_id}/invoices", response_model=list[InvoiceResponse])
async def list_tenant_invoices_route(
    tenant_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _tenant: Tenant = Depends(get_accessible_tenant),
    db: AsyncSession = Depends(get_db),
) -> list[InvoiceResponse]:
    invoices = await invoice_service.list_invoices(db, tenant_id=tenant_id, skip=skip, limit=limit)
    return [InvoiceResponse.model_validate(i) for i in invoices]
