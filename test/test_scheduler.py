"""
Tests for the billing sweep job.
"""

from datetime import timedelta
from unittest.mock import patch

from sqlalchemy import select

from conftest import T0, TestSessionLocal
from tenant_billing.exceptions import TierNotFoundError
from tenant_billing.models import Invoice, InvoiceType, Tenant, TenantStatus
from tenant_billing.scheduler import SWEEP_JOB_ID, run_billing_sweep, schedule_billing_sweep, scheduler
from tenant_billing.services.billing_service import BillingStateMachine


async def invoices_for(tenant_id: int) -> list[Invoice]:
    async with TestSessionLocal() as session:
        result = await session.execute(select(Invoice).where(Invoice.tenant_id == tenant_id).order_by(Invoice.id))
        return list(result.scalars().all())


class TestBillingSweep:
    """Tests for run_billing_sweep."""

    async def test_nothing_due(self, trial_tenant):
        results = await run_billing_sweep(now=T0 + timedelta(days=1), session_factory=TestSessionLocal)

        assert results == {"trial_conversion_invoices": 0, "renewal_invoices": 0, "status_changes": 0, "errors": []}

    async def test_trial_conversion_invoice_ahead_of_trial_end(self, trial_tenant, ae_catalog):
        results = await run_billing_sweep(now=T0 + timedelta(days=12), session_factory=TestSessionLocal)

        invoices = await invoices_for(trial_tenant.id)
        assert results["trial_conversion_invoices"] == 1
        assert len(invoices) == 1
        assert invoices[0].invoice_type == InvoiceType.TRIAL_CONVERSION.value
        assert invoices[0].tier_id == ae_catalog["starter"].id

    async def test_open_invoice_skips_tenant(self, trial_tenant):
        now = T0 + timedelta(days=12)
        await run_billing_sweep(now=now, session_factory=TestSessionLocal)
        results = await run_billing_sweep(now=now + timedelta(hours=1), session_factory=TestSessionLocal)

        assert results["trial_conversion_invoices"] == 0
        assert len(await invoices_for(trial_tenant.id)) == 1

    async def test_renewal_invoice(self, active_tenant, ae_catalog):
        results = await run_billing_sweep(now=T0 + timedelta(days=26), session_factory=TestSessionLocal)

        invoices = await invoices_for(active_tenant.id)
        assert results["renewal_invoices"] == 1
        assert invoices[-1].invoice_type == InvoiceType.RENEWAL.value
        assert invoices[-1].tier_id == ae_catalog["basic"].id
        assert invoices[-1].billing_period_start == T0 + timedelta(days=30)

    async def test_statuses_are_settled(self, trial_tenant, make_tenant):
        cancelled = await make_tenant("Closed Store")
        async with TestSessionLocal() as session:
            stored = await session.get(Tenant, cancelled.id)
            stored.status = TenantStatus.CANCELLED.value
            await session.commit()

        results = await run_billing_sweep(now=T0 + timedelta(days=40), session_factory=TestSessionLocal)

        async with TestSessionLocal() as session:
            assert (await session.get(Tenant, trial_tenant.id)).status == TenantStatus.SUSPENDED.value
            assert (await session.get(Tenant, cancelled.id)).status == TenantStatus.CANCELLED.value
        assert results["status_changes"] == 1
        assert results["trial_conversion_invoices"] == 0
        assert await invoices_for(trial_tenant.id) == []

    async def test_failing_tenant_does_not_stop_evaluation(self, trial_tenant, make_tenant):
        healthy = await make_tenant("Second Store")
        evaluate = BillingStateMachine.evaluate

        async def evaluate_or_fail(self, tenant, now=None):
            if tenant.id == trial_tenant.id:
                raise TierNotFoundError(tenant.current_tier_id)
            return await evaluate(self, tenant, now)

        with patch.object(BillingStateMachine, "evaluate", evaluate_or_fail):
            results = await run_billing_sweep(now=T0 + timedelta(days=40), session_factory=TestSessionLocal)

        assert results["status_changes"] == 1
        assert len(results["errors"]) == 1
        assert results["errors"][0].startswith(f"Status evaluation for tenant {trial_tenant.id}:")
        async with TestSessionLocal() as session:
            assert (await session.get(Tenant, trial_tenant.id)).status == TenantStatus.TRIAL.value
            assert (await session.get(Tenant, healthy.id)).status == TenantStatus.SUSPENDED.value

    def test_schedule_job(self):
        schedule_billing_sweep(interval_minutes=15)
        try:
            job = scheduler.get_job(SWEEP_JOB_ID)
            assert job is not None
            assert job.trigger.interval == timedelta(minutes=15)
        finally:
            scheduler.remove_job(SWEEP_JOB_ID)
