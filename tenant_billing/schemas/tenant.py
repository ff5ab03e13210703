from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TenantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    country: str = Field(..., min_length=2, max_length=2, description="ISO 3166-1 alpha-2 country code.")


class TenantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    country: str
    currency: Optional[str]
    current_tier_id: int
    status: str
    trial_ends_at: Optional[datetime]
    subscription_starts_at: Optional[datetime]
    subscription_ends_at: Optional[datetime]
    next_billing_date: Optional[datetime]
    overdue_since: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    paused_at: Optional[datetime]
    created_at: datetime


class TierSummary(BaseModel):
    id: int
    name: str
    price: Decimal
    currency: str
    plan_days: int


class TenantStatusResponse(BaseModel):
    """Evaluated status for the dashboard banner."""

    tenant_id: int
    status: str
    tier: TierSummary
    trial_days_remaining: int
    subscription_days_remaining: int
    ending_soon: bool
    trial_ends_at: Optional[datetime]
    subscription_ends_at: Optional[datetime]
    next_billing_date: Optional[datetime]
    is_payment_overdue: bool


class TierChangeRequest(BaseModel):
    tier_id: int = Field(..., description="Target tier in the tenant's country.")


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class CancelResponse(BaseModel):
    cancelled: bool = Field(..., description="False when the tenant was already cancelled.")
    tenant: TenantResponse
