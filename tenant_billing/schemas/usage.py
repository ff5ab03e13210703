from decimal import Decimal

from pydantic import BaseModel, Field


class ProductLimitResponse(BaseModel):
    can_add: bool
    current_count: int
    limit: int = Field(..., description="-1 means unlimited.")
    remaining: int = Field(..., description="-1 means unlimited.")
    tier_name: str


class OrderLimitResponse(BaseModel):
    limit_reached: bool
    can_accept_orders: bool = Field(..., description="Customers may always place orders.")
    can_modify_orders: bool = Field(..., description="False once the period's quota is met.")
    current_count: int
    limit: int
    remaining: int
    tier_name: str


class StorageLimitResponse(BaseModel):
    can_upload: bool
    used_mb: Decimal
    limit_mb: int
    remaining_mb: Decimal
    tier_name: str
