from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TierCreate(BaseModel):
    country: str = Field(..., min_length=2, max_length=2, description="ISO 3166-1 alpha-2 country code.")
    country_name: str = Field("", max_length=100)
    name: str = Field(..., min_length=1, max_length=50, description="Display name; 'Trial' marks the trial tier.")
    tier_order: int = Field(0, ge=0)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    currency: str = Field("USD", min_length=3, max_length=3)
    plan_days: int = Field(30, gt=0)
    trial_days: int = Field(15, ge=0)
    overdue_grace_days: int = Field(2, ge=0)
    product_limit: int = Field(-1, ge=-1, description="-1 means unlimited.")
    order_limit_per_month: int = Field(-1, ge=-1, description="-1 means unlimited.")
    storage_limit_mb: int = Field(-1, ge=-1, description="-1 means unlimited.")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "country": "AE",
                "country_name": "United Arab Emirates",
                "name": "Basic",
                "tier_order": 1,
                "price": "60.00",
                "currency": "AED",
                "plan_days": 30,
                "product_limit": 40,
                "order_limit_per_month": 40,
                "storage_limit_mb": 500,
            }
        }
    )


class TierUpdate(BaseModel):
    country_name: Optional[str] = Field(None, max_length=100)
    tier_order: Optional[int] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    plan_days: Optional[int] = Field(None, gt=0)
    trial_days: Optional[int] = Field(None, ge=0)
    overdue_grace_days: Optional[int] = Field(None, ge=0)
    product_limit: Optional[int] = Field(None, ge=-1)
    order_limit_per_month: Optional[int] = Field(None, ge=-1)
    storage_limit_mb: Optional[int] = Field(None, ge=-1)
    is_active: Optional[bool] = None


class TierResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    country: str
    country_name: str
    name: str
    tier_order: int
    price: Decimal
    currency: str
    plan_days: int
    trial_days: int
    overdue_grace_days: int
    product_limit: int
    order_limit_per_month: int
    storage_limit_mb: int
    is_active: bool
    created_at: datetime
