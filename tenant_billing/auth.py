import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt

from tenant_billing.config import settings
from tenant_billing.exceptions import AuthenticationError, AuthorizationError
from tenant_billing.utils.billing_dates import utc_now

logger = logging.getLogger(__name__)

ROLE_TENANT = "tenant"
ROLE_SUPERADMIN = "superadmin"
ROLES = (ROLE_TENANT, ROLE_SUPERADMIN)

# OAuth2 scheme for token validation
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The caller identified by a bearer token."""

    subject: str
    role: str
    tenant_id: int | None = None

    @property
    def is_superadmin(self) -> bool:
        return self.role == ROLE_SUPERADMIN


# Function to create an access token with an expiration time
def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    if "sub" not in to_encode:
        raise ValueError("Missing 'sub' claim in token data.")
    if to_encode.get("role") not in ROLES:
        raise ValueError(f"Token role must be one of {ROLES}")

    expire = utc_now() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Principal:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except ExpiredSignatureError:
        logger.warning("Token expired")
        raise AuthenticationError("Token has expired") from None
    except JWTError as e:
        logger.warning("JWT decoding failed: %s", e)
        raise AuthenticationError("Invalid token") from None

    subject = payload.get("sub")
    role = payload.get("role")
    if subject is None or role not in ROLES:
        raise AuthenticationError("Token is missing 'sub' or has an unknown role")

    tenant_id = payload.get("tenant_id")
    if role == ROLE_TENANT and tenant_id is None:
        raise AuthenticationError("Tenant token is missing 'tenant_id'")
    return Principal(subject=str(subject), role=role, tenant_id=int(tenant_id) if tenant_id is not None else None)


async def get_current_principal(token: str | None = Depends(oauth2_scheme)) -> Principal:
    if not token:
        raise AuthenticationError("Not authenticated")
    return decode_access_token(token)


def require_role(required_roles: list[str]) -> Callable[..., Principal]:
    async def _principal_with_role(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in required_roles:
            logger.warning("Role '%s' denied; requires one of %s", principal.role, required_roles)
            raise AuthorizationError(f"Role '{principal.role}' does not have access to this resource.")
        return principal

    return _principal_with_role


def ensure_tenant_access(principal: Principal, tenant_id: int) -> None:
    """Tenant tokens may only act on their own tenant; superadmin may act on any."""
    if principal.is_superadmin:
        return
    if principal.tenant_id != tenant_id:
        logger.warning("Principal %s (tenant %s) denied access to tenant %d", principal.subject, principal.tenant_id, tenant_id)
        raise AuthorizationError("You may only access your own tenant")
