"""
Pytest configuration and fixtures for billing engine tests
"""

import os
import sys
import tempfile
from collections.abc import AsyncGenerator
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH119, PTH120

# Point the app at a file-backed SQLite database BEFORE importing it.
# Concurrency tests need real separate connections, which :memory: cannot give.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="tenant_billing_test_")
os.environ["DATABASE_URL"] = os.getenv(
    "TEST_DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"  # noqa: PTH118
)
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-billing-engine-tests")

import tenant_billing.database as database_module  # noqa: E402
from tenant_billing.auth import ROLE_SUPERADMIN, ROLE_TENANT, create_access_token  # noqa: E402
from tenant_billing.database import Base  # noqa: E402
from tenant_billing.models import Order, Product, Tenant, Tier  # noqa: E402
from tenant_billing.services.billing_service import BillingStateMachine  # noqa: E402

test_engine = database_module.engine
TestSessionLocal = database_module.AsyncSessionLocal

# Fixed reference clock for deterministic lifecycle tests
T0 = datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture(scope="function", autouse=True)
async def setup_test_database():
    """Create a fresh schema for every test function."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(scope="function")
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
def billing(db: AsyncSession) -> BillingStateMachine:
    return BillingStateMachine(db)


@pytest.fixture
def make_tier(db: AsyncSession):
    """Factory for catalog tiers; quotas default to unlimited."""

    async def _make_tier(name: str, price: str | Decimal, country: str = "AE", **fields) -> Tier:
        fields.setdefault("currency", "AED")
        fields.setdefault("tier_order", 0 if name == "Trial" else 1)
        tier = Tier(country=country, name=name, price=Decimal(price), **fields)
        db.add(tier)
        await db.commit()
        await db.refresh(tier)
        return tier

    return _make_tier


@pytest.fixture
async def ae_catalog(make_tier) -> dict[str, Tier]:
    """A typical country catalog: a free trial plus three paid tiers."""
    return {
        "trial": await make_tier("Trial", "0", tier_order=0, trial_days=15, product_limit=10, order_limit_per_month=10),
        "basic": await make_tier("Basic", "60", tier_order=1, product_limit=40, order_limit_per_month=40),
        "standard": await make_tier("Standard", "120", tier_order=2, product_limit=200, order_limit_per_month=500),
        "starter": await make_tier("Starter", "40", tier_order=1, product_limit=20, order_limit_per_month=20),
    }


@pytest.fixture
def make_tenant(billing: BillingStateMachine):
    async def _make_tenant(name: str = "Test Store", country: str = "AE", now: datetime = T0) -> Tenant:
        return await billing.create_tenant(name, country, now=now)

    return _make_tenant


@pytest.fixture
async def trial_tenant(ae_catalog, make_tenant) -> Tenant:
    return await make_tenant()


@pytest.fixture
async def active_tenant(ae_catalog, trial_tenant: Tenant, billing: BillingStateMachine) -> Tenant:
    """Tenant that paid for Basic at T0 and is ACTIVE until T0 + 30 days."""
    from tenant_billing.services import invoice_service

    invoice = await billing.request_tier_change(trial_tenant, ae_catalog["basic"], now=T0)
    await invoice_service.submit_receipt(invoice, "https://receipts.example/basic.pdf", billing.db, now=T0)
    return await billing.approve_invoice(invoice, reviewer="admin@example.com", now=T0)


@pytest.fixture
def add_products(db: AsyncSession):
    async def _add_products(tenant: Tenant, count: int) -> None:
        db.add_all([Product(tenant_id=tenant.id, name=f"Product {i}") for i in range(count)])
        await db.commit()

    return _add_products


@pytest.fixture
def add_orders(db: AsyncSession):
    async def _add_orders(tenant: Tenant, count: int, status: str = "PENDING", created_at: datetime = T0) -> None:
        db.add_all([Order(tenant_id=tenant.id, status=status, created_at=created_at) for _ in range(count)])
        await db.commit()

    return _add_orders


def tenant_token(tenant_id: int) -> str:
    return create_access_token({"sub": f"owner-{tenant_id}@example.com", "role": ROLE_TENANT, "tenant_id": tenant_id})


def superadmin_token() -> str:
    return create_access_token({"sub": "admin@example.com", "role": ROLE_SUPERADMIN})


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
