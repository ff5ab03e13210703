"""
Storefront resources counted by the usage limiter.

The storefront owns these tables; the billing engine only reads them.
Order status values belong to the fulfillment flow and are opaque here
apart from the two that do not count toward the monthly quota.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from tenant_billing.database import Base
from tenant_billing.utils.billing_dates import utc_now

NON_BILLABLE_ORDER_STATUSES = ("CANCELLED", "RETURNED")


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (Index("idx_products_tenant", "tenant_id"),)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(30), nullable=False, default="PENDING")
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (Index("idx_orders_tenant_created", "tenant_id", "created_at"),)
