# tests/test_access_api.py
from __future__ import annotations

import pytest

from storefront.core.access import AccessResolver, StoreUnavailable
from storefront.core.roles import AppRole, PERMISSIONS
from storefront.core.security import create_access_token, decode_access_token
from storefront.crud.user_role import upsert_role_grant

from conftest import create_user, sign_in


class DownStore:
    async def list_role_grants(self, user_id):
        raise StoreUnavailable("store offline")


class CrashingStore:
    async def list_role_grants(self, user_id):
        raise RuntimeError("unexpected driver error")


@pytest.mark.asyncio
async def test_sign_in_creates_customer_session(client, registry):
    headers = await sign_in(client, registry, "Shopper@Example.com")

    r = await client.get("/api/v1/auth/me", headers=headers)
    assert r.status_code == 200
    assert r.json()["email"] == "shopper@example.com"

    r = await client.get("/api/v1/access/me", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["state"] == "resolved"
    assert body["role"] == "customer"
    assert body["label"] == "Customer"
    assert body["is_staff"] is False
    assert body["permissions"] == []
    assert body["degraded"] is False


@pytest.mark.asyncio
async def test_access_snapshot_before_resolution_hides_everything(client, registry, db):
    await create_user(db, "boss@example.com", role=AppRole.SUPER_ADMIN)

    r = await client.post("/api/v1/auth/request-code", json={"email": "boss@example.com"})
    code = r.json()["code"]
    r = await client.post("/api/v1/auth/verify-code", json={"email": "boss@example.com", "code": code})
    headers = {"Authorization": f"Bearer {r.json()['access_token']}"}

    body = (await client.get("/api/v1/access/me", headers=headers)).json()
    if body["state"] != "resolved":
        assert body["role"] is None
        assert body["is_staff"] is False
        assert body["permissions"] == []

    # Guarded routes wait for the role instead of failing.
    r = await client.get("/api/v1/admin/dashboard", headers=headers)
    assert r.status_code == 200
    assert r.json()["role"] == "super_admin"


@pytest.mark.asyncio
async def test_staff_member_sees_label_and_permissions(client, registry, db):
    await create_user(db, "books@example.com", role=AppRole.FINANCE)
    headers = await sign_in(client, registry, "books@example.com")

    body = (await client.get("/api/v1/access/me", headers=headers)).json()
    assert body["role"] == "finance"
    assert body["label"] == "Finance / Accounting"
    assert body["is_staff"] is True
    assert body["permissions"] == ["view_all_orders", "view_analytics", "view_financial_reports"]


@pytest.mark.asyncio
async def test_invalid_code_rejected(client):
    await client.post("/api/v1/auth/request-code", json={"email": "x@example.com"})
    r = await client.post("/api/v1/auth/verify-code", json={"email": "x@example.com", "code": "000000"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_code_is_single_use(client):
    r = await client.post("/api/v1/auth/request-code", json={"email": "once@example.com"})
    code = r.json()["code"]
    first = await client.post("/api/v1/auth/verify-code", json={"email": "once@example.com", "code": code})
    second = await client.post("/api/v1/auth/verify-code", json={"email": "once@example.com", "code": code})
    assert first.status_code == 200
    assert second.status_code == 401


@pytest.mark.asyncio
async def test_sign_out_invalidates_token(client, registry):
    headers = await sign_in(client, registry, "leaving@example.com")

    r = await client.post("/api/v1/auth/sign-out", headers=headers)
    assert r.status_code == 204
    assert len(registry) == 0

    r = await client.get("/api/v1/access/me", headers=headers)
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_token_without_live_session_rejected(client, db):
    user = await create_user(db, "ghost@example.com")

    no_sid = create_access_token(subject=str(user.id))
    r = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {no_sid}"})
    assert r.status_code == 401

    stale = create_access_token(subject=str(user.id), session_id="from-before-restart")
    r = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {stale}"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_token_for_other_user_rejected(client, registry, db):
    other = await create_user(db, "other@example.com")
    headers = await sign_in(client, registry, "me@example.com")
    sid = decode_access_token(headers["Authorization"].split()[1]).sid

    forged = create_access_token(subject=str(other.id), session_id=sid)
    r = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {forged}"})
    assert r.status_code == 401

    assert (await client.get("/api/v1/auth/me", headers=headers)).status_code == 200


@pytest.mark.asyncio
async def test_refresh_picks_up_role_change(client, registry, db):
    user = await create_user(db, "promoted@example.com")
    headers = await sign_in(client, registry, "promoted@example.com")

    await upsert_role_grant(db, user.id, AppRole.ORDER_FULFILLMENT)
    await db.commit()

    # Running session keeps its role until refreshed.
    assert (await client.get("/api/v1/access/me", headers=headers)).json()["role"] == "customer"

    r = await client.post("/api/v1/access/me/refresh", headers=headers)
    assert r.status_code == 200
    assert r.json()["role"] == "order_fulfillment"
    assert r.json()["state"] == "resolved"


@pytest.mark.asyncio
async def test_role_catalog_listing(client):
    r = await client.get("/api/v1/access/roles")
    assert r.status_code == 200
    roles = r.json()
    assert [x["role"] for x in roles] == [
        "customer",
        "marketing",
        "finance",
        "customer_support",
        "order_fulfillment",
        "product_staff",
        "admin",
        "super_admin",
    ]
    assert roles[0]["is_staff"] is False
    assert roles[0]["rank"] == -1
    assert roles[-1]["permissions"] == sorted(PERMISSIONS)


@pytest.mark.asyncio
async def test_update_profile_name(client, registry):
    headers = await sign_in(client, registry, "named@example.com")
    r = await client.patch("/api/v1/auth/me", json={"full_name": "  Ada   Lovelace "}, headers=headers)
    assert r.status_code == 200
    assert r.json()["full_name"] == "Ada Lovelace"


# ---------------------------------------------------------
# Dashboard
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_dashboard_rejects_customers(client, registry):
    headers = await sign_in(client, registry, "window@example.com")
    r = await client.get("/api/v1/admin/dashboard", headers=headers)
    assert r.status_code == 403
    assert r.json()["detail"]["code"] == "rbac_staff_only"


@pytest.mark.asyncio
async def test_dashboard_sections_follow_permissions(client, registry, db):
    await create_user(db, "support@example.com", role=AppRole.CUSTOMER_SUPPORT)
    headers = await sign_in(client, registry, "support@example.com")

    r = await client.get("/api/v1/admin/dashboard", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["label"] == "Customer Support"
    assert [s["key"] for s in body["sections"]] == ["orders", "customers"]
    assert body["summary"]["recent_orders"] == 0
    assert body["summary"]["products"] is None
    # Staff accounts are not counted as customers.
    assert body["summary"]["customers"] == 0


@pytest.mark.asyncio
async def test_super_admin_sees_every_section(client, registry, db):
    await create_user(db, "root@example.com", role=AppRole.SUPER_ADMIN)
    await create_user(db, "buyer@example.com")
    headers = await sign_in(client, registry, "root@example.com")

    body = (await client.get("/api/v1/admin/dashboard", headers=headers)).json()
    assert [s["key"] for s in body["sections"]] == ["analytics", "orders", "customers", "products", "staff"]
    assert body["summary"]["customers"] == 1
    assert body["summary"]["products"] == 0
    assert body["summary"]["revenue"] == "0.00"


@pytest.mark.asyncio
async def test_store_outage_yields_retryable_notice(client, registry, db):
    await create_user(db, "admin@example.com", role=AppRole.ADMIN)
    registry.resolver = AccessResolver(DownStore())
    headers = await sign_in(client, registry, "admin@example.com")

    body = (await client.get("/api/v1/access/me", headers=headers)).json()
    assert body["role"] == "customer"
    assert body["degraded"] is True

    r = await client.get("/api/v1/admin/dashboard", headers=headers)
    assert r.status_code == 503
    assert r.json()["detail"]["retryable"] is True

    # Browsing is unaffected.
    assert (await client.get("/api/v1/products")).status_code == 200


@pytest.mark.asyncio
async def test_unexpected_store_error_on_fresh_check_is_retryable(client, registry, db):
    await create_user(db, "owner@example.com", role=AppRole.SUPER_ADMIN)
    await create_user(db, "hire@example.com")
    headers = await sign_in(client, registry, "owner@example.com")

    registry.resolver = AccessResolver(CrashingStore())

    r = await client.post("/api/v1/admin/staff", json={"email": "hire@example.com", "role": "finance"}, headers=headers)
    assert r.status_code == 503
    assert r.json()["detail"]["retryable"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("role", [AppRole.CUSTOMER_SUPPORT, AppRole.ORDER_FULFILLMENT, AppRole.MARKETING])
async def test_dashboard_hides_revenue_without_financial_reports(client, registry, db, role):
    await create_user(db, "staff@example.com", role=role)
    headers = await sign_in(client, registry, "staff@example.com")

    r = await client.get("/api/v1/admin/dashboard", headers=headers)
    assert r.status_code == 200
    assert r.json()["summary"]["revenue"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("role", [AppRole.FINANCE, AppRole.ADMIN])
async def test_dashboard_shows_revenue_with_financial_reports(client, registry, db, role):
    await create_user(db, "staff@example.com", role=role)
    headers = await sign_in(client, registry, "staff@example.com")

    r = await client.get("/api/v1/admin/dashboard", headers=headers)
    assert r.status_code == 200
    assert r.json()["summary"]["revenue"] == "0.00"
