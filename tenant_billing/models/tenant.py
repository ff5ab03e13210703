"""
Tenant model.

Each Tenant is one storefront account subject to billing. Tenants are never
deleted; CANCELLED is terminal but the row stays for audit.
"""

import enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text

from tenant_billing.database import Base
from tenant_billing.utils.billing_dates import utc_now


class TenantStatus(str, enum.Enum):
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"
    SUSPENDED = "SUSPENDED"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({TenantStatus.CANCELLED.value})


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    country = Column(String(2), nullable=False)
    currency = Column(String(3), nullable=True)  # copied from the assigned tier

    current_tier_id = Column(Integer, ForeignKey("subscription_tiers.id"), nullable=False)
    status = Column(String(20), nullable=False, default=TenantStatus.TRIAL.value)

    trial_ends_at = Column(DateTime, nullable=True)
    subscription_starts_at = Column(DateTime, nullable=True)
    subscription_ends_at = Column(DateTime, nullable=True)
    next_billing_date = Column(DateTime, nullable=True)
    overdue_since = Column(DateTime, nullable=True)  # the missed deadline, not when it was noticed

    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    paused_at = Column(DateTime, nullable=True)

    storage_used_mb = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("idx_tenant_status", "status"),
        Index("idx_tenant_country", "country"),
    )

    @property
    def is_payment_overdue(self) -> bool:
        return self.overdue_since is not None

    @property
    def is_cancelled(self) -> bool:
        return self.status == TenantStatus.CANCELLED.value

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, status={self.status}, tier_id={self.current_tier_id})>"
