from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_number: str
    tenant_id: int
    tier_id: int
    previous_tier_id: Optional[int]
    invoice_type: str
    amount: Decimal
    currency: str
    status: str
    billing_period_start: datetime
    billing_period_end: datetime
    due_date: datetime
    payment_receipt_url: Optional[str]
    payment_date: Optional[datetime]
    submission_date: Optional[datetime]
    review_date: Optional[datetime]
    reviewed_by: Optional[str]
    rejection_reason: Optional[str]
    created_at: datetime


class ReceiptSubmission(BaseModel):
    receipt_url: str = Field(..., min_length=1, description="Location of the uploaded proof of payment.")
    payment_date: Optional[datetime] = Field(None, description="When the tenant paid; defaults to now.")


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class InvoiceReview(BaseModel):
    decision: ReviewDecision
    rejection_reason: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def reason_required_for_rejection(self) -> "InvoiceReview":
        if self.decision == ReviewDecision.REJECT and not (self.rejection_reason or "").strip():
            raise ValueError("rejection_reason is required when rejecting an invoice")
        return self


class ReviewResponse(BaseModel):
    invoice: InvoiceResponse
    tenant_status: str
