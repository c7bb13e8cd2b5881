import pytest
from fastapi import HTTPException

from billing.entitlements import EntitlementService
from models.entities import AccessGrant, AccessType


def test_require_access_without_grant(store):
    svc = EntitlementService(store)
    with pytest.raises(HTTPException) as exc:
        svc.require_access("u_alice", "mega-menu")
    assert exc.value.status_code == 402


def test_require_access_with_grant(store):
    store.access.create(AccessGrant(user_id="u_alice", snippet_id="mega-menu", access_type=AccessType.PURCHASE))
    grant = EntitlementService(store).require_access("u_alice", "mega-menu")
    assert grant.access_type is AccessType.PURCHASE


def test_status_for_unknown_user(store):
    with pytest.raises(HTTPException) as exc:
        EntitlementService(store).subscription_status("u_nobody")
    assert exc.value.status_code == 404


def test_access_endpoint(client, store):
    store.access.create(AccessGrant(user_id="u_alice", snippet_id="mega-menu", access_type=AccessType.SUBSCRIPTION))
    r = client.get("/api/snippets/mega-menu/access", params={"user_id": "u_alice"})
    assert r.json() == {"ok": True, "snippet_id": "mega-menu", "has_access": True, "access_type": "subscription"}

    r = client.get("/api/snippets/sticky-cart/access", params={"user_id": "u_alice"})
    assert r.json()["has_access"] is False

    r = client.get("/api/snippets/sticky-cart/code-access", params={"user_id": "u_alice"})
    assert r.status_code == 402


def test_billing_status_endpoint(client, store):
    store.users.update("u_alice", {"subscription_status": "active", "subscription_plan": "monthly"})
    r = client.get("/api/billing/status", params={"user_id": "u_alice"})
    assert r.status_code == 200
    assert r.json()["subscription_status"] == "active"
    assert r.json()["plan"] == "monthly"


def test_health_reports_store(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["store"]["ok"] is True


def test_health_degraded_when_store_times_out(client, store):
    store.users.timeout = True
    body = client.get("/health").json()
    assert body["ok"] is False
    assert body["store"]["error_type"] == "StoreTimeout"
