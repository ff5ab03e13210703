"""
Payment invoice ledger.

An invoice is an immutable intent once created. Only its status dimension
(and the receipt/review fields that go with it) changes afterwards, and only
forward.
"""

import enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, text

from tenant_billing.database import Base
from tenant_billing.utils.billing_dates import utc_now


class InvoiceType(str, enum.Enum):
    TRIAL_CONVERSION = "TRIAL_CONVERSION"  # first payment after trial
    RENEWAL = "RENEWAL"
    UPGRADE = "UPGRADE"
    DOWNGRADE = "DOWNGRADE"


class InvoiceStatus(str, enum.Enum):
    PENDING = "PENDING"  # created, no receipt yet
    SUBMITTED = "SUBMITTED"  # receipt uploaded
    UNDER_REVIEW = "UNDER_REVIEW"  # picked up by an administrator
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


OPEN_INVOICE_STATUSES = (
    InvoiceStatus.PENDING.value,
    InvoiceStatus.SUBMITTED.value,
    InvoiceStatus.UNDER_REVIEW.value,
)

_OPEN_STATUS_PREDICATE = text("status IN ('PENDING', 'SUBMITTED', 'UNDER_REVIEW')")


class Invoice(Base):
    __tablename__ = "payment_invoices"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    tier_id = Column(Integer, ForeignKey("subscription_tiers.id"), nullable=False)
    previous_tier_id = Column(Integer, ForeignKey("subscription_tiers.id"), nullable=True)

    invoice_number = Column(String(32), nullable=False, unique=True)
    invoice_type = Column(String(20), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default=InvoiceStatus.PENDING.value)

    billing_period_start = Column(DateTime, nullable=False)
    billing_period_end = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)

    payment_receipt_url = Column(Text, nullable=True)
    payment_date = Column(DateTime, nullable=True)
    submission_date = Column(DateTime, nullable=True)
    review_date = Column(DateTime, nullable=True)
    reviewed_by = Column(String(100), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("idx_payment_invoices_tenant", "tenant_id"),
        Index("idx_payment_invoices_status", "status"),
        Index("idx_payment_invoices_due_date", "due_date"),
        # At most one unresolved invoice per (tenant, target tier)
        Index(
            "uq_payment_invoices_open_per_tier",
            "tenant_id",
            "tier_id",
            unique=True,
            postgresql_where=_OPEN_STATUS_PREDICATE,
            sqlite_where=_OPEN_STATUS_PREDICATE,
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_INVOICE_STATUSES

    def __repr__(self) -> str:
        return f"<Invoice(number={self.invoice_number}, type={self.invoice_type}, status={self.status})>"
