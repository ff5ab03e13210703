"""
Billing Exception Classes

Every failure the billing engine can report is a typed subclass of
BillingError. Services raise them, routes let them propagate, and
exception_handlers renders them into a consistent JSON error body.
"""

from enum import Enum
from typing import Any

from fastapi import status


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in the `error_code` field."""

    # Catalog
    NO_TIER_AVAILABLE = "BILLING_NO_TIER_AVAILABLE"

    # State machine
    INVALID_TRANSITION = "BILLING_INVALID_TRANSITION"
    SUBSCRIPTION_EXPIRED = "BILLING_SUBSCRIPTION_EXPIRED"

    # Tier change
    DUPLICATE_PENDING_INVOICE = "BILLING_DUPLICATE_PENDING_INVOICE"
    SAME_TIER_PRICE = "BILLING_SAME_TIER_PRICE"
    CANNOT_TARGET_TRIAL = "BILLING_CANNOT_TARGET_TRIAL"

    # Resources
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_TENANT_NOT_FOUND = "RESOURCE_TENANT_NOT_FOUND"
    RESOURCE_TIER_NOT_FOUND = "RESOURCE_TIER_NOT_FOUND"
    RESOURCE_INVOICE_NOT_FOUND = "RESOURCE_INVOICE_NOT_FOUND"
    VALIDATION_DUPLICATE_RESOURCE = "VALIDATION_DUPLICATE_RESOURCE"
    VALIDATION_FAILED = "VALIDATION_FAILED"

    # Auth
    AUTH_FAILED = "AUTH_FAILED"
    AUTH_PERMISSION_DENIED = "AUTH_PERMISSION_DENIED"

    # Generic
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class BillingError(Exception):
    """Base exception class for all billing engine errors"""

    error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if error_code is not None:
            self.error_code = error_code
        super().__init__(self.message)


# ============================================================================
# Tier Catalog
# ============================================================================


class NoTierAvailableError(BillingError):
    """Raised when a country has no active tier to assign"""

    error_code = ErrorCode.NO_TIER_AVAILABLE

    def __init__(self, country: str):
        super().__init__(
            message=f"No active subscription tier is configured for country '{country}'",
            status_code=422,
            details={"country": country},
        )


# ============================================================================
# Billing State Machine
# ============================================================================


class InvalidTransitionError(BillingError):
    """Raised when an operation is not legal from the current status"""

    error_code = ErrorCode.INVALID_TRANSITION

    def __init__(self, current_status: str, operation: str, resource_type: str = "Tenant"):
        super().__init__(
            message=f"Cannot {operation} {resource_type} in status '{current_status}'",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource_type": resource_type, "current_status": current_status, "operation": operation},
        )


class SubscriptionExpiredError(BillingError):
    """Raised when resuming a paused subscription whose period has ended"""

    error_code = ErrorCode.SUBSCRIPTION_EXPIRED

    def __init__(self, tenant_id: Any, subscription_ends_at: Any = None):
        super().__init__(
            message="Cannot resume - subscription expired. Please renew.",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "tenant_id": tenant_id,
                "subscription_ends_at": subscription_ends_at.isoformat() if subscription_ends_at else None,
            },
        )


class DuplicatePendingInvoiceError(BillingError):
    """Raised when an unresolved invoice already exists for the same tenant and tier"""

    error_code = ErrorCode.DUPLICATE_PENDING_INVOICE

    def __init__(self, tenant_id: Any, tier_id: Any):
        super().__init__(
            message="An unresolved invoice already exists for this tier",
            status_code=status.HTTP_409_CONFLICT,
            details={"tenant_id": tenant_id, "tier_id": tier_id},
        )


class SameTierPriceError(BillingError):
    """Raised when the requested tier costs exactly the same as the current one"""

    error_code = ErrorCode.SAME_TIER_PRICE

    def __init__(self, price: Any):
        super().__init__(
            message="Requested tier has the same price as the current tier",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"price": str(price)},
        )


class CannotTargetTrialError(BillingError):
    """Raised when a tier change targets a trial tier"""

    error_code = ErrorCode.CANNOT_TARGET_TRIAL

    def __init__(self, tier_id: Any):
        super().__init__(
            message="The trial tier cannot be requested as a tier change",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"tier_id": tier_id},
        )


# ============================================================================
# Resource Not Found Exceptions
# ============================================================================


class NotFoundError(BillingError):
    """Base class for resource not found errors"""

    error_code = ErrorCode.RESOURCE_NOT_FOUND

    def __init__(self, resource_type: str, resource_id: Any | None = None):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message = f"{resource_type} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class TenantNotFoundError(NotFoundError):
    error_code = ErrorCode.RESOURCE_TENANT_NOT_FOUND

    def __init__(self, tenant_id: Any | None = None):
        super().__init__(resource_type="Tenant", resource_id=tenant_id)


class TierNotFoundError(NotFoundError):
    error_code = ErrorCode.RESOURCE_TIER_NOT_FOUND

    def __init__(self, tier_id: Any | None = None):
        super().__init__(resource_type="Tier", resource_id=tier_id)


class InvoiceNotFoundError(NotFoundError):
    error_code = ErrorCode.RESOURCE_INVOICE_NOT_FOUND

    def __init__(self, invoice_id: Any | None = None):
        super().__init__(resource_type="Invoice", resource_id=invoice_id)


# ============================================================================
# Validation & Auth
# ============================================================================


class DuplicateResourceError(BillingError):
    """Raised when attempting to create a duplicate resource"""

    error_code = ErrorCode.VALIDATION_DUPLICATE_RESOURCE

    def __init__(self, resource_type: str, field: str, value: Any):
        super().__init__(
            message=f"{resource_type} with {field} '{value}' already exists",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource_type": resource_type, "field": field, "value": value},
        )


class AuthenticationError(BillingError):
    """Raised when a bearer token is missing or invalid"""

    error_code = ErrorCode.AUTH_FAILED

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message=message, status_code=status.HTTP_401_UNAUTHORIZED)


class AuthorizationError(BillingError):
    """Raised when the caller lacks permission for an action"""

    error_code = ErrorCode.AUTH_PERMISSION_DENIED

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(message=message, status_code=status.HTTP_403_FORBIDDEN)
