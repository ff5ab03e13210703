"""
Invoice Ledger Service

Invoice numbering, insertion and the tenant-side receipt workflow.
Approval and rejection change tenant state as well, so they live on
BillingStateMachine.

Invoice numbers look like INV-YYYYMM-NNNNNN. The counter starts at the
total number of invoices plus one and walks forward past taken numbers.
Generation and insert share one transaction; if a concurrent insert takes
the same number first, the unique constraint rejects ours and the whole
attempt is retried.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_billing.config import settings
from tenant_billing.exceptions import (
    BillingError,
    DuplicatePendingInvoiceError,
    InvalidTransitionError,
    InvoiceNotFoundError,
)
from tenant_billing.models.invoice import OPEN_INVOICE_STATUSES, Invoice, InvoiceStatus
from tenant_billing.utils.billing_dates import utc_now

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV"


def format_invoice_number(moment: datetime, counter: int) -> str:
    return f"{INVOICE_PREFIX}-{moment:%Y%m}-{counter:06d}"


async def _invoice_number_taken(number: str, db: AsyncSession) -> bool:
    result = await db.execute(select(Invoice.id).where(Invoice.invoice_number == number))
    return result.first() is not None


async def generate_invoice_number(db: AsyncSession, now: datetime | None = None) -> str:
    """Next free invoice number for the month of `now`. Must run in the inserting transaction."""
    now = now or utc_now()
    total = await db.scalar(select(func.count(Invoice.id)))
    counter = (total or 0) + 1
    number = format_invoice_number(now, counter)
    while await _invoice_number_taken(number, db):
        counter += 1
        number = format_invoice_number(now, counter)
    return number


async def has_open_invoice(tenant_id: int, tier_id: int, db: AsyncSession, exclude_id: int | None = None) -> bool:
    """True if (tenant, tier) already has a PENDING, SUBMITTED or UNDER_REVIEW invoice."""
    query = select(Invoice.id).where(
        Invoice.tenant_id == tenant_id,
        Invoice.tier_id == tier_id,
        Invoice.status.in_(OPEN_INVOICE_STATUSES),
    )
    if exclude_id is not None:
        query = query.where(Invoice.id != exclude_id)
    result = await db.execute(query)
    return result.first() is not None


async def insert_invoice(fields: dict[str, Any], db: AsyncSession, now: datetime | None = None) -> Invoice:
    """
    Number and insert a new PENDING invoice in a single transaction.

    `fields` holds plain column values; ORM instances loaded earlier in the
    session are expired by a rollback, so nothing here reads from them.

    Raises DuplicatePendingInvoiceError if the open-invoice index rejects the
    row, i.e. another request for the same (tenant, tier) committed first.
    """
    now = now or utc_now()
    tenant_id = fields["tenant_id"]
    tier_id = fields["tier_id"]

    for attempt in range(1, settings.invoice_number_max_attempts + 1):
        number = await generate_invoice_number(db, now)
        invoice = Invoice(
            invoice_number=number,
            status=InvoiceStatus.PENDING.value,
            created_at=now,
            updated_at=now,
            **fields,
        )
        db.add(invoice)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            if await has_open_invoice(tenant_id, tier_id, db):
                logger.info("Tenant %d: concurrent invoice for tier %d already open", tenant_id, tier_id)
                raise DuplicatePendingInvoiceError(tenant_id, tier_id) from None
            logger.info("Invoice number %s taken on attempt %d, retrying", number, attempt)
            continue

        await db.refresh(invoice)
        logger.info(
            "Invoice created: %s tenant=%d tier=%d type=%s amount=%s %s",
            invoice.invoice_number,
            invoice.tenant_id,
            invoice.tier_id,
            invoice.invoice_type,
            invoice.amount,
            invoice.currency,
        )
        return invoice

    raise BillingError(
        f"Could not allocate an invoice number after {settings.invoice_number_max_attempts} attempts",
        details={"tenant_id": tenant_id, "tier_id": tier_id},
    )


async def get_invoice(invoice_id: int, db: AsyncSession) -> Invoice:
    invoice = await db.get(Invoice, invoice_id)
    if invoice is None:
        raise InvoiceNotFoundError(invoice_id)
    return invoice


async def get_invoice_by_number(invoice_number: str, db: AsyncSession) -> Invoice:
    result = await db.execute(select(Invoice).where(Invoice.invoice_number == invoice_number))
    invoice = result.scalars().first()
    if invoice is None:
        raise InvoiceNotFoundError(invoice_number)
    return invoice


async def list_invoices(
    db: AsyncSession,
    tenant_id: int | None = None,
    status: str | None = None,
    skip: int = 0,
    limit: int = 50,
) -> list[Invoice]:
    """Newest first, optionally filtered by tenant and status."""
    query = select(Invoice)
    if tenant_id is not None:
        query = query.where(Invoice.tenant_id == tenant_id)
    if status is not None:
        query = query.where(Invoice.status == status)
    result = await db.execute(query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).offset(skip).limit(limit))
    return list(result.scalars().all())


async def transition_invoice(
    invoice: Invoice,
    from_statuses: tuple[str, ...],
    operation: str,
    db: AsyncSession,
    **values: Any,
) -> None:
    """
    Write `values` onto the invoice row only while its stored status is one of `from_statuses`.

    The in-memory status may be stale when two sessions hold the same invoice,
    so the check runs in the UPDATE itself. Does not commit. When the row has
    already moved on, the transaction is rolled back, the instance reloaded and
    InvalidTransitionError raised.
    """
    invoice_id = invoice.id
    result = await db.execute(
        update(Invoice)
        .where(Invoice.id == invoice_id, Invoice.status.in_(from_statuses))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        await db.refresh(invoice)
        logger.warning("Invoice %d is %s, cannot %s it", invoice_id, invoice.status, operation)
        raise InvalidTransitionError(invoice.status, operation, "Invoice")


def can_resubmit(invoice: Invoice, now: datetime) -> bool:
    """A rejected invoice accepts a new receipt for a limited window after review."""
    if invoice.status != InvoiceStatus.REJECTED.value:
        return False
    reviewed = invoice.review_date or invoice.updated_at or invoice.created_at
    return now <= reviewed + timedelta(days=settings.rejected_invoice_resubmit_days)


async def submit_receipt(
    invoice: Invoice,
    receipt_url: str,
    db: AsyncSession,
    payment_date: datetime | None = None,
    now: datetime | None = None,
) -> Invoice:
    """
    Attach proof of payment: PENDING or REJECTED -> SUBMITTED.

    Resubmitting a rejected invoice is allowed within the resubmit window and
    only while no other open invoice exists for the same (tenant, tier).
    """
    now = now or utc_now()
    if invoice.status == InvoiceStatus.REJECTED.value:
        if not can_resubmit(invoice, now):
            raise InvalidTransitionError(invoice.status, "submit a receipt for an expired", "Invoice")
        if await has_open_invoice(invoice.tenant_id, invoice.tier_id, db, exclude_id=invoice.id):
            raise DuplicatePendingInvoiceError(invoice.tenant_id, invoice.tier_id)
    elif invoice.status != InvoiceStatus.PENDING.value:
        raise InvalidTransitionError(invoice.status, "submit a receipt for", "Invoice")

    invoice_id = invoice.id
    tenant_id = invoice.tenant_id
    tier_id = invoice.tier_id
    previous_status = invoice.status

    try:
        await transition_invoice(
            invoice,
            (previous_status,),
            "submit a receipt for",
            db,
            status=InvoiceStatus.SUBMITTED.value,
            payment_receipt_url=receipt_url,
            payment_date=payment_date or now,
            submission_date=now,
            rejection_reason=None,
            updated_at=now,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicatePendingInvoiceError(tenant_id, tier_id) from None

    await db.refresh(invoice)
    logger.info("Invoice %d: %s -> SUBMITTED", invoice_id, previous_status)
    return invoice


async def start_review(invoice: Invoice, reviewer: str, db: AsyncSession, now: datetime | None = None) -> Invoice:
    """Administrator picks up a submitted invoice: SUBMITTED -> UNDER_REVIEW."""
    now = now or utc_now()
    if invoice.status != InvoiceStatus.SUBMITTED.value:
        raise InvalidTransitionError(invoice.status, "start review of", "Invoice")

    await transition_invoice(
        invoice,
        (InvoiceStatus.SUBMITTED.value,),
        "start review of",
        db,
        status=InvoiceStatus.UNDER_REVIEW.value,
        reviewed_by=reviewer,
        updated_at=now,
    )
    await db.commit()
    await db.refresh(invoice)
    logger.info("Invoice %d: SUBMITTED -> UNDER_REVIEW by %s", invoice.id, reviewer)
    return invoice
