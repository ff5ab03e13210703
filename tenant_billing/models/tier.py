"""
Subscription tier catalog.

One row per (country, name). Country-level settings (currency, trial and
grace lengths) live on the tier itself; there is no separate per-country
config table.
"""

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, Numeric, String, UniqueConstraint

from tenant_billing.database import Base
from tenant_billing.utils.billing_dates import utc_now
from tenant_billing.utils.quota import Quota, quota_from_limit

TRIAL_TIER_NAME = "Trial"


class Tier(Base):
    __tablename__ = "subscription_tiers"

    id = Column(Integer, primary_key=True, index=True)
    country = Column(String(2), nullable=False)  # ISO 3166-1 alpha-2, e.g. "AE"
    country_name = Column(String(100), nullable=False, default="")
    name = Column(String(50), nullable=False)  # "Trial" | "Basic" | "Premium" ...
    tier_order = Column(Integer, nullable=False, default=0)  # 0 = trial

    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    plan_days = Column(Integer, nullable=False, default=30)
    trial_days = Column(Integer, nullable=False, default=15)
    overdue_grace_days = Column(Integer, nullable=False, default=2)

    # -1 = unlimited
    product_limit = Column(Integer, nullable=False, default=-1)
    order_limit_per_month = Column(Integer, nullable=False, default=-1)
    storage_limit_mb = Column(Integer, nullable=False, default=-1)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint("country", "name", name="uq_subscription_tiers_country_name"),
        Index("idx_subscription_tiers_country_order", "country", "tier_order"),
    )

    @property
    def is_trial(self) -> bool:
        return self.name == TRIAL_TIER_NAME

    @property
    def product_quota(self) -> Quota:
        return quota_from_limit(self.product_limit)

    @property
    def order_quota(self) -> Quota:
        return quota_from_limit(self.order_limit_per_month)

    @property
    def storage_quota(self) -> Quota:
        return quota_from_limit(self.storage_limit_mb)

    def __repr__(self) -> str:
        return f"<Tier(id={self.id}, country={self.country}, name={self.name}, price={self.price})>"
