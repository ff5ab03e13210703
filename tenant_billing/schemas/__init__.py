from .invoice import InvoiceResponse, InvoiceReview, ReceiptSubmission, ReviewDecision, ReviewResponse
from .tenant import (
    CancelRequest,
    CancelResponse,
    TenantCreate,
    TenantResponse,
    TenantStatusResponse,
    TierChangeRequest,
)
from .tier import TierCreate, TierResponse, TierUpdate
from .usage import OrderLimitResponse, ProductLimitResponse, StorageLimitResponse

# Define the public API of this module
__all__ = [
    "CancelRequest",
    "CancelResponse",
    "InvoiceResponse",
    "InvoiceReview",
    "OrderLimitResponse",
    "ProductLimitResponse",
    "ReceiptSubmission",
    "ReviewDecision",
    "ReviewResponse",
    "StorageLimitResponse",
    "TenantCreate",
    "TenantResponse",
    "TenantStatusResponse",
    "TierChangeRequest",
    "TierCreate",
    "TierResponse",
    "TierUpdate",
]
