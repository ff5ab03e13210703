"""
Billing State Machine

Owns every tenant status change. Nothing else in the code base writes
Tenant.status or the subscription dates; routes, the optional sweep job and
tests all go through the named operations below.

    TRIAL     -> ACTIVE (approved invoice), OVERDUE (trial expired), CANCELLED
    ACTIVE    -> OVERDUE (period ended unpaid), PAUSED, CANCELLED
    OVERDUE   -> ACTIVE (approved invoice), SUSPENDED (grace elapsed), PAUSED, CANCELLED
    SUSPENDED -> ACTIVE (approved invoice), CANCELLED
    PAUSED    -> ACTIVE (resume while period still running), CANCELLED
    CANCELLED -> (terminal)

Time-based transitions are applied lazily by evaluate(), which every
tenant-facing operation runs first, so observed status is correct without a
scheduler. Every operation takes an optional `now` for deterministic tests.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_billing.config import settings
from tenant_billing.exceptions import (
    CannotTargetTrialError,
    DuplicatePendingInvoiceError,
    InvalidTransitionError,
    SameTierPriceError,
    SubscriptionExpiredError,
    TenantNotFoundError,
    TierNotFoundError,
)
from tenant_billing.models.invoice import OPEN_INVOICE_STATUSES, Invoice, InvoiceStatus, InvoiceType
from tenant_billing.models.tenant import TERMINAL_STATUSES, Tenant, TenantStatus
from tenant_billing.models.tier import Tier
from tenant_billing.services import invoice_service, tier_service
from tenant_billing.utils.billing_dates import (
    billing_period,
    days_remaining,
    grace_deadline,
    trial_end,
    utc_now,
)

logger = logging.getLogger(__name__)

APPROVABLE_INVOICE_STATUSES = (InvoiceStatus.SUBMITTED.value, InvoiceStatus.UNDER_REVIEW.value)
REJECTABLE_INVOICE_STATUSES = OPEN_INVOICE_STATUSES
# Statuses from which an approved invoice re-activates the tenant
ACTIVATABLE_STATUSES = (
    TenantStatus.TRIAL.value,
    TenantStatus.ACTIVE.value,
    TenantStatus.OVERDUE.value,
    TenantStatus.SUSPENDED.value,
)
TIER_CHANGE_BLOCKED_STATUSES = TERMINAL_STATUSES | {TenantStatus.PAUSED.value}
PAUSABLE_STATUSES = (TenantStatus.ACTIVE.value, TenantStatus.OVERDUE.value)
RENEWABLE_STATUSES = (TenantStatus.ACTIVE.value, TenantStatus.OVERDUE.value, TenantStatus.SUSPENDED.value)
CONVERTIBLE_STATUSES = (TenantStatus.TRIAL.value, TenantStatus.OVERDUE.value, TenantStatus.SUSPENDED.value)


def classify_tier_change(current: Tier, new: Tier) -> InvoiceType:
    """UPGRADE or DOWNGRADE by exact price comparison; equal prices are rejected."""
    current_price = Decimal(current.price)
    new_price = Decimal(new.price)
    if new_price == current_price:
        raise SameTierPriceError(new_price)
    return InvoiceType.UPGRADE if new_price > current_price else InvoiceType.DOWNGRADE


class BillingStateMachine:
    """Tenant billing lifecycle operations bound to one database session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============== Lookups ==============

    async def get_tenant(self, tenant_id: int) -> Tenant:
        tenant = await self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        return tenant

    async def get_tenant_tier(self, tenant: Tenant) -> Tier:
        return await tier_service.get_tier(tenant.current_tier_id, self.db)

    async def list_tenants(self, status: str | None = None, skip: int = 0, limit: int = 50) -> list[Tenant]:
        query = select(Tenant)
        if status is not None:
            query = query.where(Tenant.status == status)
        result = await self.db.execute(query.order_by(Tenant.id).offset(skip).limit(limit))
        return list(result.scalars().all())

    # ============== Onboarding ==============

    async def onboard(self, tenant: Tenant, country: str, now: datetime | None = None) -> Tenant:
        """
        Assign the country's default tier and start the trial.

        The tier is resolved before anything is written, so NoTierAvailableError
        leaves no tenant row behind.
        """
        now = now or utc_now()
        tier = await tier_service.resolve_default_tier(country, self.db)

        tenant.country = tier.country
        tenant.currency = tier.currency
        tenant.current_tier_id = tier.id
        tenant.status = TenantStatus.TRIAL.value
        tenant.trial_ends_at = trial_end(now, tier.trial_days)
        tenant.next_billing_date = tenant.trial_ends_at
        if tenant.created_at is None:
            tenant.created_at = now
        tenant.updated_at = now

        self.db.add(tenant)
        await self.db.commit()
        await self.db.refresh(tenant)
        logger.info(
            "Tenant %d onboarded: country=%s tier=%s trial_ends_at=%s",
            tenant.id,
            tenant.country,
            tier.name,
            tenant.trial_ends_at.isoformat(),
        )
        return tenant

    async def create_tenant(self, name: str, country: str, now: datetime | None = None) -> Tenant:
        """Create and onboard a tenant in one step."""
        tenant = Tenant(name=name, country=tier_service.normalize_country(country))
        return await self.onboard(tenant, country, now=now)

    # ============== Time-based evaluation ==============

    def _advance(self, tenant: Tenant, tier: Tier | None, now: datetime) -> bool:
        """Apply every time-based transition that is due. Returns True if anything changed."""
        changed = False

        if tenant.status == TenantStatus.TRIAL.value and tenant.trial_ends_at and now > tenant.trial_ends_at:
            self._mark_overdue(tenant, tenant.trial_ends_at)
            changed = True
        elif (
            tenant.status == TenantStatus.ACTIVE.value
            and tenant.subscription_ends_at
            and now > tenant.subscription_ends_at
        ):
            self._mark_overdue(tenant, tenant.subscription_ends_at)
            changed = True

        if tenant.status == TenantStatus.OVERDUE.value:
            since = tenant.overdue_since or tenant.subscription_ends_at or tenant.trial_ends_at
            grace_days = tier.overdue_grace_days if tier is not None else settings.default_grace_days
            if since is not None and now > grace_deadline(since, grace_days):
                tenant.status = TenantStatus.SUSPENDED.value
                changed = True

        return changed

    @staticmethod
    def _mark_overdue(tenant: Tenant, missed_deadline: datetime) -> None:
        tenant.status = TenantStatus.OVERDUE.value
        tenant.overdue_since = missed_deadline

    async def evaluate(self, tenant: Tenant, now: datetime | None = None) -> str:
        """
        Bring a tenant's status up to date with the clock.

        Idempotent and cheap: writes only when a transition fires. A tenant
        whose trial ended long ago goes TRIAL -> OVERDUE -> SUSPENDED in one call.
        """
        now = now or utc_now()
        if tenant.status not in (TenantStatus.TRIAL.value, TenantStatus.ACTIVE.value, TenantStatus.OVERDUE.value):
            return tenant.status

        previous = tenant.status
        tier = await self.db.get(Tier, tenant.current_tier_id)
        if not self._advance(tenant, tier, now):
            return tenant.status

        tenant.updated_at = now
        await self.db.commit()
        logger.info("Tenant %d: %s -> %s (evaluated at %s)", tenant.id, previous, tenant.status, now.isoformat())
        return tenant.status

    # ============== Invoice creation ==============

    async def _create_invoice(
        self,
        tenant: Tenant,
        tier: Tier,
        invoice_type: InvoiceType,
        period_start: datetime,
        due_date: datetime,
        now: datetime,
        previous_tier_id: int | None = None,
    ) -> Invoice:
        if await invoice_service.has_open_invoice(tenant.id, tier.id, self.db):
            raise DuplicatePendingInvoiceError(tenant.id, tier.id)

        start, end = billing_period(period_start, tier.plan_days)
        fields: dict[str, Any] = {
            "tenant_id": tenant.id,
            "tier_id": tier.id,
            "previous_tier_id": previous_tier_id,
            "invoice_type": invoice_type.value,
            "amount": Decimal(tier.price),
            "currency": tier.currency,
            "billing_period_start": start,
            "billing_period_end": end,
            "due_date": due_date,
        }
        return await invoice_service.insert_invoice(fields, self.db, now=now)

    def _check_target_tier(self, tenant: Tenant, tier: Tier) -> None:
        # A retired tier stays valid for tenants already on it
        if tier.country != tenant.country or (not tier.is_active and tier.id != tenant.current_tier_id):
            raise TierNotFoundError(tier.id)
        if tier.is_trial:
            raise CannotTargetTrialError(tier.id)

    async def request_tier_change(self, tenant: Tenant, new_tier: Tier, now: datetime | None = None) -> Invoice:
        """
        Create the invoice for moving `tenant` onto `new_tier`.

        Classified UPGRADE or DOWNGRADE by price alone, also for a tenant still
        on its first tier; TRIAL_CONVERSION comes only from request_trial_conversion.
        The new period runs plan_days from now and payment is due in
        `invoice_due_days`.
        """
        now = now or utc_now()
        await self.evaluate(tenant, now)
        if tenant.status in TIER_CHANGE_BLOCKED_STATUSES:
            raise InvalidTransitionError(tenant.status, "request a tier change for")

        self._check_target_tier(tenant, new_tier)
        current = await self.get_tenant_tier(tenant)
        change_type = classify_tier_change(current, new_tier)
        invoice = await self._create_invoice(
            tenant,
            new_tier,
            change_type,
            period_start=now,
            due_date=now + timedelta(days=settings.invoice_due_days),
            now=now,
            previous_tier_id=current.id,
        )
        logger.info(
            "Tenant %d requested %s from tier %d to %d: %s",
            invoice.tenant_id,
            change_type.value,
            invoice.previous_tier_id,
            invoice.tier_id,
            invoice.invoice_number,
        )
        return invoice

    async def request_trial_conversion(
        self, tenant: Tenant, tier: Tier | None = None, now: datetime | None = None
    ) -> Invoice:
        """
        First paid invoice for a tenant still on (or just past) its trial.

        Unlike a tier change, the target may be the tenant's own tier when it
        is a paid tier. Without an explicit target, a paid current tier is kept,
        otherwise the cheapest active paid tier in the country is used.
        """
        now = now or utc_now()
        await self.evaluate(tenant, now)
        if tenant.status not in CONVERTIBLE_STATUSES or tenant.subscription_starts_at is not None:
            raise InvalidTransitionError(tenant.status, "convert the trial of")

        current = await self.get_tenant_tier(tenant)
        if tier is None:
            tier = current if not current.is_trial else await tier_service.cheapest_paid_tier(tenant.country, self.db)
            if tier is None:
                raise TierNotFoundError()
        self._check_target_tier(tenant, tier)

        period_start = tenant.trial_ends_at if tenant.trial_ends_at and tenant.trial_ends_at > now else now
        return await self._create_invoice(
            tenant,
            tier,
            InvoiceType.TRIAL_CONVERSION,
            period_start=period_start,
            due_date=period_start,
            now=now,
            previous_tier_id=current.id if current.id != tier.id else None,
        )

    async def create_renewal_invoice(self, tenant: Tenant, now: datetime | None = None) -> Invoice:
        """
        Invoice the next period of the tenant's current tier.

        The period continues from subscription_ends_at when that is still in
        the future, otherwise it starts now. Payment is due at period start.
        """
        now = now or utc_now()
        await self.evaluate(tenant, now)
        if tenant.status not in RENEWABLE_STATUSES:
            raise InvalidTransitionError(tenant.status, "renew")

        tier = await self.get_tenant_tier(tenant)
        if tier.is_trial:
            raise CannotTargetTrialError(tier.id)

        ends_at = tenant.subscription_ends_at
        period_start = ends_at if ends_at is not None and ends_at > now else now
        return await self._create_invoice(
            tenant,
            tier,
            InvoiceType.RENEWAL,
            period_start=period_start,
            due_date=period_start,
            now=now,
        )

    # ============== Administrator review ==============

    def _apply_invoice_to_tenant(self, tenant: Tenant, invoice: Invoice, now: datetime) -> None:
        tenant.current_tier_id = invoice.tier_id
        tenant.currency = invoice.currency
        tenant.status = TenantStatus.ACTIVE.value
        if tenant.subscription_starts_at is None:
            tenant.subscription_starts_at = now
        tenant.subscription_ends_at = invoice.billing_period_end
        tenant.next_billing_date = invoice.billing_period_end
        tenant.overdue_since = None
        tenant.updated_at = now

    @staticmethod
    def _review_values(reviewer: str | None, now: datetime) -> dict[str, Any]:
        values: dict[str, Any] = {"review_date": now, "updated_at": now}
        if reviewer:
            values["reviewed_by"] = reviewer
        return values

    async def approve_invoice(self, invoice: Invoice, reviewer: str | None = None, now: datetime | None = None) -> Tenant:
        """
        Approve a submitted invoice and activate the tenant on its tier.

        Invoice and tenant change in one transaction; any failure rolls both back.
        The invoice row only moves if it is still SUBMITTED or UNDER_REVIEW in
        the database, so a second reviewer acting on a stale copy gets
        InvalidTransitionError.
        """
        now = now or utc_now()
        if invoice.status not in APPROVABLE_INVOICE_STATUSES:
            raise InvalidTransitionError(invoice.status, "approve", "Invoice")

        invoice_id = invoice.id
        tenant_id = invoice.tenant_id
        tenant = await self.db.get(Tenant, tenant_id, populate_existing=True, with_for_update=True)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        if tenant.status not in ACTIVATABLE_STATUSES:
            raise InvalidTransitionError(tenant.status, "approve an invoice for")

        previous_status = tenant.status
        await invoice_service.transition_invoice(
            invoice,
            APPROVABLE_INVOICE_STATUSES,
            "approve",
            self.db,
            status=InvoiceStatus.APPROVED.value,
            rejection_reason=None,
            **self._review_values(reviewer, now),
        )
        try:
            self._apply_invoice_to_tenant(tenant, invoice, now)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.error("Approval of invoice %d for tenant %d rolled back", invoice_id, tenant_id)
            raise

        await self.db.refresh(tenant)
        await self.db.refresh(invoice)
        logger.info(
            "Invoice %s approved by %s; tenant %d: %s -> ACTIVE until %s",
            invoice.invoice_number,
            reviewer,
            tenant.id,
            previous_status,
            tenant.subscription_ends_at.isoformat(),
        )
        return tenant

    async def reject_invoice(
        self,
        invoice: Invoice,
        reason: str,
        reviewer: str | None = None,
        now: datetime | None = None,
    ) -> Invoice:
        """Reject an open invoice. The tenant's status and tier are left alone."""
        now = now or utc_now()
        if not invoice.is_open:
            raise InvalidTransitionError(invoice.status, "reject", "Invoice")

        await invoice_service.transition_invoice(
            invoice,
            REJECTABLE_INVOICE_STATUSES,
            "reject",
            self.db,
            status=InvoiceStatus.REJECTED.value,
            rejection_reason=reason,
            **self._review_values(reviewer, now),
        )
        await self.db.commit()
        await self.db.refresh(invoice)
        logger.info("Invoice %s rejected by %s: %s", invoice.invoice_number, reviewer, reason)
        return invoice

    # ============== Manual lifecycle ==============

    async def cancel(self, tenant: Tenant, reason: str | None = None, now: datetime | None = None) -> bool:
        """
        Cancel from any non-terminal status.

        Returns False, changing nothing, if the tenant was already cancelled.
        """
        now = now or utc_now()
        if tenant.is_cancelled:
            logger.info("Tenant %d already cancelled", tenant.id)
            return False

        previous = tenant.status
        tenant.status = TenantStatus.CANCELLED.value
        tenant.cancelled_at = now
        tenant.cancellation_reason = reason
        tenant.overdue_since = None
        tenant.updated_at = now
        await self.db.commit()
        await self.db.refresh(tenant)
        logger.info("Tenant %d: %s -> CANCELLED (%s)", tenant.id, previous, reason or "no reason given")
        return True

    async def pause(self, tenant: Tenant, now: datetime | None = None) -> Tenant:
        """Pause an ACTIVE or OVERDUE subscription."""
        now = now or utc_now()
        await self.evaluate(tenant, now)
        if tenant.status not in PAUSABLE_STATUSES:
            raise InvalidTransitionError(tenant.status, "pause")

        previous = tenant.status
        tenant.status = TenantStatus.PAUSED.value
        tenant.paused_at = now
        tenant.updated_at = now
        await self.db.commit()
        await self.db.refresh(tenant)
        logger.info("Tenant %d: %s -> PAUSED", tenant.id, previous)
        return tenant

    async def resume(self, tenant: Tenant, now: datetime | None = None) -> Tenant:
        """Resume a paused subscription whose paid period has not ended."""
        now = now or utc_now()
        if tenant.status != TenantStatus.PAUSED.value:
            raise InvalidTransitionError(tenant.status, "resume")
        if tenant.subscription_ends_at is None or tenant.subscription_ends_at < now:
            raise SubscriptionExpiredError(tenant.id, tenant.subscription_ends_at)

        tenant.status = TenantStatus.ACTIVE.value
        tenant.paused_at = None
        tenant.updated_at = now
        await self.db.commit()
        await self.db.refresh(tenant)
        logger.info("Tenant %d: PAUSED -> ACTIVE", tenant.id)
        return tenant

    # ============== Status summary ==============

    async def get_status(self, tenant: Tenant, now: datetime | None = None) -> dict:
        """Status banner data: evaluated status, tier and remaining days."""
        now = now or utc_now()
        status = await self.evaluate(tenant, now)
        tier = await self.get_tenant_tier(tenant)

        trial_left = days_remaining(tenant.trial_ends_at, now)
        subscription_left = days_remaining(tenant.subscription_ends_at, now)
        if status == TenantStatus.TRIAL.value:
            ending_soon = tenant.trial_ends_at is not None and trial_left <= settings.ending_soon_days
        elif status == TenantStatus.ACTIVE.value:
            ending_soon = tenant.subscription_ends_at is not None and subscription_left <= settings.ending_soon_days
        else:
            ending_soon = False

        return {
            "tenant_id": tenant.id,
            "status": status,
            "tier": {
                "id": tier.id,
                "name": tier.name,
                "price": tier.price,
                "currency": tier.currency,
                "plan_days": tier.plan_days,
            },
            "trial_days_remaining": trial_left,
            "subscription_days_remaining": subscription_left,
            "ending_soon": ending_soon,
            "trial_ends_at": tenant.trial_ends_at,
            "subscription_ends_at": tenant.subscription_ends_at,
            "next_billing_date": tenant.next_billing_date,
            "is_payment_overdue": tenant.is_payment_overdue,
        }
