from .invoice import Invoice, InvoiceStatus, InvoiceType
from .storefront import Order, Product
from .tenant import Tenant, TenantStatus
from .tier import Tier

__all__ = [
    "Invoice",
    "InvoiceStatus",
    "InvoiceType",
    "Order",
    "Product",
    "Tenant",
    "TenantStatus",
    "Tier",
]
