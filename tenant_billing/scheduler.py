"""
Billing sweep job.

Status correctness never depends on this job; evaluate() runs on every
tenant-facing call. The sweep raises invoices ahead of time (trial
conversions and renewals) and settles statuses for tenants nobody has
looked at recently.
"""

import logging
from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from tenant_billing import database
from tenant_billing.config import settings
from tenant_billing.exceptions import BillingError
from tenant_billing.models.invoice import OPEN_INVOICE_STATUSES, Invoice
from tenant_billing.models.tenant import Tenant, TenantStatus
from tenant_billing.services.billing_service import BillingStateMachine
from tenant_billing.utils.billing_dates import utc_now

scheduler = AsyncIOScheduler()

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "billing_sweep"


async def _tenant_ids(db, *conditions) -> list[int]:
    result = await db.execute(select(Tenant.id).where(*conditions).order_by(Tenant.id))
    return list(result.scalars().all())


async def _has_any_open_invoice(db, tenant_id: int) -> bool:
    result = await db.execute(
        select(Invoice.id).where(Invoice.tenant_id == tenant_id, Invoice.status.in_(OPEN_INVOICE_STATUSES))
    )
    return result.first() is not None


async def run_billing_sweep(now: datetime | None = None, session_factory=None) -> dict:
    """
    One pass over all tenants.

    1. Every non-terminal tenant is evaluated.
    2. Trials ending within `trial_invoice_lead_days` get a TRIAL_CONVERSION invoice.
    3. ACTIVE subscriptions ending within `renewal_invoice_lead_days` get a RENEWAL invoice.

    Only periods that have not ended yet are invoiced ahead; lapsed tenants
    request their own invoice. Tenants with any open invoice are skipped.
    A failure for one tenant is logged and recorded; the sweep carries on.
    """
    now = now or utc_now()
    session_factory = session_factory or database.AsyncSessionLocal
    results = {
        "trial_conversion_invoices": 0,
        "renewal_invoices": 0,
        "status_changes": 0,
        "errors": [],
    }

    async with session_factory() as db:
        billing = BillingStateMachine(db)

        for tenant_id in await _tenant_ids(
            db,
            Tenant.status.in_(
                (TenantStatus.TRIAL.value, TenantStatus.ACTIVE.value, TenantStatus.OVERDUE.value)
            ),
        ):
            try:
                tenant = await billing.get_tenant(tenant_id)
                before = tenant.status
                if await billing.evaluate(tenant, now=now) != before:
                    results["status_changes"] += 1
            except (BillingError, SQLAlchemyError) as e:
                await db.rollback()
                message = e.message if isinstance(e, BillingError) else str(e)
                logger.warning("Status evaluation for tenant %d failed: %s", tenant_id, message)
                results["errors"].append(f"Status evaluation for tenant {tenant_id}: {message}")

        trial_cutoff = now + timedelta(days=settings.trial_invoice_lead_days)
        for tenant_id in await _tenant_ids(
            db,
            Tenant.status == TenantStatus.TRIAL.value,
            Tenant.subscription_starts_at.is_(None),
            Tenant.trial_ends_at > now,
            Tenant.trial_ends_at <= trial_cutoff,
        ):
            if await _has_any_open_invoice(db, tenant_id):
                continue
            try:
                tenant = await billing.get_tenant(tenant_id)
                await billing.request_trial_conversion(tenant, now=now)
                results["trial_conversion_invoices"] += 1
            except BillingError as e:
                await db.rollback()
                logger.warning("Trial invoice for tenant %d failed: %s", tenant_id, e.message)
                results["errors"].append(f"Trial invoice for tenant {tenant_id}: {e.message}")

        renewal_cutoff = now + timedelta(days=settings.renewal_invoice_lead_days)
        for tenant_id in await _tenant_ids(
            db,
            Tenant.status == TenantStatus.ACTIVE.value,
            Tenant.subscription_ends_at > now,
            Tenant.subscription_ends_at <= renewal_cutoff,
        ):
            if await _has_any_open_invoice(db, tenant_id):
                continue
            try:
                tenant = await billing.get_tenant(tenant_id)
                await billing.create_renewal_invoice(tenant, now=now)
                results["renewal_invoices"] += 1
            except BillingError as e:
                await db.rollback()
                logger.warning("Renewal invoice for tenant %d failed: %s", tenant_id, e.message)
                results["errors"].append(f"Renewal invoice for tenant {tenant_id}: {e.message}")

    logger.info(
        "[Scheduler] Billing sweep at %s: %d trial invoices, %d renewals, %d status changes, %d errors",
        now.isoformat(),
        results["trial_conversion_invoices"],
        results["renewal_invoices"],
        results["status_changes"],
        len(results["errors"]),
    )
    return results


def schedule_billing_sweep(interval_minutes: int | None = None) -> None:
    scheduler.add_job(
        run_billing_sweep,
        trigger=IntervalTrigger(minutes=interval_minutes or settings.billing_sweep_interval_minutes),
        id=SWEEP_JOB_ID,
        replace_existing=True,
    )
    logger.info("[Scheduler] Billing sweep scheduled every %d minutes", interval_minutes or settings.billing_sweep_interval_minutes)
