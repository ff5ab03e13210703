"""
Tests for the billing HTTP API.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import auth_headers, superadmin_token, tenant_token
from main import app

ADMIN = auth_headers(superadmin_token())


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
async def signed_up(client, ae_catalog) -> dict:
    response = await client.post("/api/v1/tenants", json={"name": "Souk Store", "country": "AE"}, headers=ADMIN)
    assert response.status_code == 201
    return response.json()


class TestHealthAndAuth:
    """Tests for health check and authentication errors."""

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "X-Request-ID" in response.headers

    async def test_missing_token(self, client, signed_up):
        response = await client.get(f"/api/v1/tenants/{signed_up['id']}/status")

        assert response.status_code == 401
        assert response.json()["error"]["error_code"] == "AUTH_FAILED"

    async def test_garbage_token(self, client, signed_up):
        response = await client.get(
            f"/api/v1/tenants/{signed_up['id']}/status", headers=auth_headers("not-a-jwt")
        )
        assert response.status_code == 401

    async def test_other_tenant_forbidden(self, client, signed_up):
        response = await client.get(
            f"/api/v1/tenants/{signed_up['id']}/status", headers=auth_headers(tenant_token(signed_up["id"] + 1))
        )

        assert response.status_code == 403
        assert response.json()["error"]["error_code"] == "AUTH_PERMISSION_DENIED"

    async def test_tenant_cannot_create_tiers(self, client, signed_up):
        response = await client.post(
            "/api/v1/tiers",
            json={"country": "AE", "name": "Gold", "price": "500"},
            headers=auth_headers(tenant_token(signed_up["id"])),
        )
        assert response.status_code == 403


class TestTierRoutes:
    """Tests for the tier catalog endpoints."""

    async def test_list_tiers(self, client, ae_catalog):
        response = await client.get("/api/v1/tiers", params={"country": "ae"})

        assert response.status_code == 200
        names = [t["name"] for t in response.json()]
        assert names[0] == "Trial"
        assert set(names) == {"Trial", "Starter", "Basic", "Standard"}

    async def test_create_update_retire(self, client):
        created = await client.post(
            "/api/v1/tiers",
            json={"country": "SA", "name": "Basic", "price": "50.00", "currency": "SAR", "product_limit": 40},
            headers=ADMIN,
        )
        assert created.status_code == 201
        tier_id = created.json()["id"]

        updated = await client.put(f"/api/v1/tiers/{tier_id}", json={"price": "55.00"}, headers=ADMIN)
        assert updated.status_code == 200
        assert updated.json()["price"] == "55.00"
        assert updated.json()["product_limit"] == 40

        retired = await client.post(f"/api/v1/tiers/{tier_id}/retire", headers=ADMIN)
        assert retired.json()["is_active"] is False

        listed = await client.get("/api/v1/tiers", params={"country": "SA"})
        assert listed.json() == []

    async def test_duplicate_tier(self, client, ae_catalog):
        response = await client.post(
            "/api/v1/tiers", json={"country": "AE", "name": "Basic", "price": "70"}, headers=ADMIN
        )
        assert response.status_code == 409

    async def test_countries(self, client, ae_catalog):
        response = await client.get("/api/v1/tiers/countries")
        assert response.json() == ["AE"]


class TestTenantRoutes:
    """Tests for signup, status and lifecycle endpoints."""

    async def test_signup_starts_trial(self, signed_up, ae_catalog):
        assert signed_up["status"] == "TRIAL"
        assert signed_up["current_tier_id"] == ae_catalog["trial"].id
        assert signed_up["currency"] == "AED"

    async def test_signup_without_tiers(self, client):
        response = await client.post("/api/v1/tenants", json={"name": "Nowhere", "country": "ZZ"}, headers=ADMIN)

        assert response.status_code == 422
        assert response.json()["error"]["error_code"] == "BILLING_NO_TIER_AVAILABLE"

    async def test_status(self, client, signed_up):
        response = await client.get(
            f"/api/v1/tenants/{signed_up['id']}/status", headers=auth_headers(tenant_token(signed_up["id"]))
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "TRIAL"
        assert body["tier"]["name"] == "Trial"
        assert body["trial_days_remaining"] == 15
        assert body["ending_soon"] is False

    async def test_missing_tenant(self, client):
        response = await client.get("/api/v1/tenants/999/status", headers=ADMIN)

        assert response.status_code == 404
        assert response.json()["error"]["error_code"] == "RESOURCE_TENANT_NOT_FOUND"

    async def test_limits(self, client, signed_up):
        headers = auth_headers(tenant_token(signed_up["id"]))

        products = await client.get(f"/api/v1/tenants/{signed_up['id']}/limits/products", headers=headers)
        orders = await client.get(f"/api/v1/tenants/{signed_up['id']}/limits/orders", headers=headers)
        storage = await client.get(f"/api/v1/tenants/{signed_up['id']}/limits/storage", headers=headers)

        assert products.json() == {"can_add": True, "current_count": 0, "limit": 10, "remaining": 10, "tier_name": "Trial"}
        assert orders.json()["can_accept_orders"] is True
        assert orders.json()["limit"] == 10
        assert storage.json()["can_upload"] is True
        assert storage.json()["limit_mb"] == -1

    async def test_cancel_twice(self, client, signed_up):
        headers = auth_headers(tenant_token(signed_up["id"]))
        url = f"/api/v1/tenants/{signed_up['id']}/cancel"

        first = await client.post(url, json={"reason": "Closing"}, headers=headers)
        second = await client.post(url, headers=headers)

        assert first.json()["cancelled"] is True
        assert first.json()["tenant"]["status"] == "CANCELLED"
        assert second.status_code == 200
        assert second.json()["cancelled"] is False
        assert second.json()["tenant"]["cancellation_reason"] == "Closing"

    async def test_pause_trial_conflict(self, client, signed_up):
        response = await client.post(
            f"/api/v1/tenants/{signed_up['id']}/pause", headers=auth_headers(tenant_token(signed_up["id"]))
        )

        assert response.status_code == 409
        assert response.json()["error"]["error_code"] == "BILLING_INVALID_TRANSITION"

    async def test_list_tenants_superadmin_only(self, client, signed_up):
        assert (await client.get("/api/v1/tenants", headers=ADMIN)).status_code == 200
        denied = await client.get("/api/v1/tenants", headers=auth_headers(tenant_token(signed_up["id"])))
        assert denied.status_code == 403


class TestPaymentFlow:
    """End-to-end tier change: request, receipt, review."""

    async def test_upgrade_flow(self, client, signed_up, ae_catalog):
        tenant_id = signed_up["id"]
        owner = auth_headers(tenant_token(tenant_id))

        requested = await client.post(
            f"/api/v1/tenants/{tenant_id}/tier-change", json={"tier_id": ae_catalog["basic"].id}, headers=owner
        )
        assert requested.status_code == 201
        invoice = requested.json()
        assert invoice["invoice_number"].startswith("INV-")
        assert invoice["invoice_type"] == "UPGRADE"
        assert invoice["amount"] == "60.00"

        duplicate = await client.post(
            f"/api/v1/tenants/{tenant_id}/tier-change", json={"tier_id": ae_catalog["basic"].id}, headers=owner
        )
        assert duplicate.status_code == 409
        assert duplicate.json()["error"]["error_code"] == "BILLING_DUPLICATE_PENDING_INVOICE"

        receipt = await client.post(
            f"/api/v1/invoices/{invoice['id']}/receipt",
            json={"receipt_url": "https://receipts.example/1.pdf"},
            headers=owner,
        )
        assert receipt.json()["status"] == "SUBMITTED"

        self_review = await client.post(
            f"/api/v1/invoices/{invoice['id']}/review", json={"decision": "approve"}, headers=owner
        )
        assert self_review.status_code == 403

        started = await client.post(f"/api/v1/invoices/{invoice['id']}/start-review", headers=ADMIN)
        assert started.json()["status"] == "UNDER_REVIEW"
        assert started.json()["reviewed_by"] == "admin@example.com"

        approved = await client.post(
            f"/api/v1/invoices/{invoice['id']}/review", json={"decision": "approve"}, headers=ADMIN
        )
        assert approved.status_code == 200
        assert approved.json()["invoice"]["status"] == "APPROVED"
        assert approved.json()["tenant_status"] == "ACTIVE"

        status = await client.get(f"/api/v1/tenants/{tenant_id}/status", headers=owner)
        assert status.json()["status"] == "ACTIVE"
        assert status.json()["tier"]["name"] == "Basic"
        assert status.json()["subscription_days_remaining"] == 30

    async def test_trial_tier_cannot_be_targeted(self, client, signed_up, ae_catalog):
        owner = auth_headers(tenant_token(signed_up["id"]))

        trial = await client.post(
            f"/api/v1/tenants/{signed_up['id']}/tier-change", json={"tier_id": ae_catalog["trial"].id}, headers=owner
        )
        assert trial.status_code == 400
        assert trial.json()["error"]["error_code"] == "BILLING_CANNOT_TARGET_TRIAL"

    async def test_reject_requires_reason(self, client, signed_up, ae_catalog):
        owner = auth_headers(tenant_token(signed_up["id"]))
        invoice = (
            await client.post(
                f"/api/v1/tenants/{signed_up['id']}/tier-change", json={"tier_id": ae_catalog["basic"].id}, headers=owner
            )
        ).json()

        missing = await client.post(f"/api/v1/invoices/{invoice['id']}/review", json={"decision": "reject"}, headers=ADMIN)
        assert missing.status_code == 422

        rejected = await client.post(
            f"/api/v1/invoices/{invoice['id']}/review",
            json={"decision": "reject", "rejection_reason": "No receipt attached"},
            headers=ADMIN,
        )
        assert rejected.json()["invoice"]["status"] == "REJECTED"
        assert rejected.json()["tenant_status"] == "TRIAL"

    async def test_invoice_visibility(self, client, signed_up, ae_catalog):
        owner = auth_headers(tenant_token(signed_up["id"]))
        stranger = auth_headers(tenant_token(signed_up["id"] + 1))
        invoice = (
            await client.post(
                f"/api/v1/tenants/{signed_up['id']}/tier-change", json={"tier_id": ae_catalog["basic"].id}, headers=owner
            )
        ).json()

        assert (await client.get(f"/api/v1/invoices/{invoice['id']}", headers=owner)).status_code == 200
        assert (await client.get(f"/api/v1/invoices/{invoice['id']}", headers=stranger)).status_code == 403
        assert len((await client.get("/api/v1/invoices", headers=owner)).json()) == 1
        assert (await client.get("/api/v1/invoices", headers=stranger)).json() == []
        assert len((await client.get("/api/v1/invoices", headers=ADMIN)).json()) == 1
