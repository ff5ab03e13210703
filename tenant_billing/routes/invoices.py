"""
Invoice Routes

GET    /api/v1/invoices                       → list invoices (superadmin: all, tenant: own)
GET    /api/v1/invoices/{id}                  → invoice detail
POST   /api/v1/invoices/{id}/receipt          → attach proof of payment
POST   /api/v1/invoices/{id}/start-review     → mark as under review (superadmin)
POST   /api/v1/invoices/{id}/review           → approve or reject (superadmin)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_billing.auth import ROLE_SUPERADMIN, Principal, ensure_tenant_access, get_current_principal, require_role
from tenant_billing.database import get_db
from tenant_billing.models.invoice import Invoice, InvoiceStatus
from tenant_billing.routes.tenants import get_billing
from tenant_billing.schemas.invoice import (
    InvoiceResponse,
    InvoiceReview,
    ReceiptSubmission,
    ReviewDecision,
    ReviewResponse,
)
from tenant_billing.services import invoice_service
from tenant_billing.services.billing_service import BillingStateMachine

router = APIRouter(tags=["Invoices"])
logger = logging.getLogger(__name__)


async def get_accessible_invoice(
    invoice_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> Invoice:
    invoice = await invoice_service.get_invoice(invoice_id, db)
    ensure_tenant_access(principal, invoice.tenant_id)
    return invoice


@router.get("/invoices", response_model=list[InvoiceResponse])
async def list_invoices_route(
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    tenant_id: Optional[int] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> list[InvoiceResponse]:
    """Superadmin sees every invoice (optionally one tenant's); tenants see their own."""
    if not principal.is_superadmin:
        tenant_id = principal.tenant_id
    invoices = await invoice_service.list_invoices(
        db,
        tenant_id=tenant_id,
        status=status_filter.value if status_filter else None,
        skip=skip,
        limit=limit,
    )
    return [InvoiceResponse.model_validate(i) for i in invoices]


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice_route(invoice: Invoice = Depends(get_accessible_invoice)) -> InvoiceResponse:
    return InvoiceResponse.model_validate(invoice)


@router.post("/invoices/{invoice_id}/receipt", response_model=InvoiceResponse)
async def submit_receipt_route(
    payload: ReceiptSubmission,
    invoice: Invoice = Depends(get_accessible_invoice),
    db: AsyncSession = Depends(get_db),
) -> InvoiceResponse:
    invoice = await invoice_service.submit_receipt(invoice, payload.receipt_url, db, payment_date=payload.payment_date)
    return InvoiceResponse.model_validate(invoice)


@router.post("/invoices/{invoice_id}/start-review", response_model=InvoiceResponse)
async def start_review_route(
    invoice: Invoice = Depends(get_accessible_invoice),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role([ROLE_SUPERADMIN])),
) -> InvoiceResponse:
    invoice = await invoice_service.start_review(invoice, principal.subject, db)
    return InvoiceResponse.model_validate(invoice)


@router.post("/invoices/{invoice_id}/review", response_model=ReviewResponse)
async def review_invoice_route(
    payload: InvoiceReview,
    invoice: Invoice = Depends(get_accessible_invoice),
    billing: BillingStateMachine = Depends(get_billing),
    principal: Principal = Depends(require_role([ROLE_SUPERADMIN])),
) -> ReviewResponse:
    """
    Approve or reject a submitted invoice.

    Approval activates the tenant on the invoice's tier in the same
    transaction. Rejection leaves the tenant untouched.
    """
    if payload.decision == ReviewDecision.APPROVE:
        tenant = await billing.approve_invoice(invoice, reviewer=principal.subject)
    else:
        await billing.reject_invoice(invoice, payload.rejection_reason, reviewer=principal.subject)
        tenant = await billing.get_tenant(invoice.tenant_id)
    return ReviewResponse(invoice=InvoiceResponse.model_validate(invoice), tenant_status=tenant.status)
