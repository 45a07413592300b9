from datetime import datetime, timedelta

import pytest

from backoffice.errors import PreconditionFailed, ValidationFailed
from backoffice.plans import activate, effective_plan_id, is_subscription_active, start_trial

from conftest import PASSWORD, add_member, login, register, set_plan


def test_register_login_and_me(client):
    headers = register(client)
    resp = client.get("/api/auth/me", headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"] == {"email": "owner@acme.test", "profilename": "Olive Owner", "business": "Acme", "role": "Admin"}
    assert body["plan"]["id"] == "basic"
    assert body["entitlements"] == {"chat": False, "automations": False, "notebook": False}


def test_login_sets_http_only_cookie(client):
    register(client)
    resp = client.post("/api/auth/login", json={"email": "Owner@Acme.test", "password": PASSWORD})
    assert resp.status_code == 200
    cookie = resp.headers["set-cookie"]
    assert cookie.startswith("token=")
    assert "HttpOnly" in cookie
    assert "samesite=strict" in cookie.lower()
    assert client.get("/api/auth/me").status_code == 200

    client.post("/api/auth/logout")
    assert client.get("/api/auth/me").status_code == 401


def test_duplicate_email_or_business_is_rejected(client):
    register(client)
    dup_email = client.post(
        "/api/auth/register", json={"email": "owner@acme.test", "password": "x", "business": "Other"}
    )
    assert dup_email.status_code == 400
    dup_business = client.post(
        "/api/auth/register", json={"email": "new@acme.test", "password": "x", "business": "Acme"}
    )
    assert dup_business.status_code == 400
    assert dup_business.json()["detail"] == "Business already exists"


def test_bad_credentials(client):
    register(client)
    assert client.post("/api/auth/login", json={"email": "owner@acme.test", "password": "nope"}).status_code == 401
    assert client.post("/api/auth/login", json={"email": "ghost@acme.test", "password": "nope"}).status_code == 401


def test_missing_or_forged_token_is_rejected(client):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/orders", headers={"Authorization": "Bearer not-a-token"}).status_code == 401


def test_invited_account_sets_password_once(client):
    admin = register(client)
    resp = client.post("/api/accounts", json={"email": "invitee@acme.test", "role": "Guest"}, headers=admin)
    assert resp.status_code == 201
    assert "password_hash" not in resp.json()["user"]

    check = client.post("/api/auth/check-email", json={"email": "invitee@acme.test"}).json()
    assert check == {"exists": True, "has_password": False}
    assert client.post("/api/auth/check-email", json={"email": "nobody@acme.test"}).json() == {"exists": False}

    assert client.post("/api/auth/setup-password", json={"email": "invitee@acme.test", "password": "first"}).status_code == 200
    again = client.post("/api/auth/setup-password", json={"email": "invitee@acme.test", "password": "second"})
    assert again.status_code == 400
    login(client, "invitee@acme.test", password="first")


def test_profile_update_touches_only_profile_fields(client):
    headers = register(client)
    resp = client.put("/api/auth/profile", json={"profilename": "Olive O.", "phone": "+1 555 0100"}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["profilename"] == "Olive O."
    assert body["phone"] == "+1 555 0100"
    assert body["role"] == "Admin"
    assert "password_hash" not in body


# ---------- accounts ----------

def test_seat_limit_follows_plan(client, test_engine):
    admin = register(client)
    for n in range(4):
        add_member(client, admin, f"member{n}@acme.test")
    resp = client.post("/api/accounts", json={"email": "sixth@acme.test", "role": "Guest", "password": "x"}, headers=admin)
    assert resp.status_code == 403
    assert "up to 5 accounts" in resp.json()["detail"]

    set_plan(test_engine, "Acme", "pro")
    resp = client.post("/api/accounts", json={"email": "sixth@acme.test", "role": "Guest", "password": "x"}, headers=admin)
    assert resp.status_code == 201


def test_account_management_is_admin_only_and_tenant_scoped(client):
    admin = register(client)
    guest = add_member(client, admin, "guest@acme.test")
    outsider = register(client, email="boss@globex.test", business="Globex")

    accounts = client.get("/api/accounts", headers=admin).json()
    assert [a["email"] for a in accounts] == ["owner@acme.test", "guest@acme.test"]
    guest_id = accounts[1]["id"]

    assert client.post("/api/accounts", json={"email": "x@acme.test", "role": "Guest"}, headers=guest).status_code == 403
    assert client.delete(f"/api/accounts/{guest_id}", headers=outsider).status_code == 404
    assert client.post("/api/accounts", json={"email": "guest@acme.test", "role": "Guest"}, headers=admin).status_code == 409

    resp = client.put(f"/api/accounts/{guest_id}", json={"email": "guest@acme.test", "role": "Manager"}, headers=admin)
    assert resp.status_code == 200
    assert client.get("/api/auth/me", headers=guest).json()["user"]["role"] == "Manager"

    assert client.delete(f"/api/accounts/{accounts[0]['id']}", headers=admin).status_code == 400
    assert client.delete(f"/api/accounts/{guest_id}", headers=admin).status_code == 200
    assert client.get("/api/auth/me", headers=guest).status_code == 401


# ---------- plans ----------

def test_members_inherit_the_admin_plan(client, test_engine):
    admin = register(client)
    guest = add_member(client, admin, "guest@acme.test")
    set_plan(test_engine, "Acme", "enterprise")
    body = client.get("/api/auth/me", headers=guest).json()
    assert body["plan"]["id"] == "enterprise"
    assert body["entitlements"] == {"chat": True, "automations": True, "notebook": True}


def test_subscription_activity_rules():
    now = datetime(2024, 5, 1, 12, 0)
    assert not is_subscription_active(None, now)
    assert is_subscription_active({"status": "active", "plan_id": "pro"}, now)
    assert is_subscription_active({"status": "trial", "trial_ends_at": "2024-05-02T00:00:00Z"}, now)
    assert not is_subscription_active({"status": "trial", "trial_ends_at": "2024-04-30T00:00:00"}, now)
    assert not is_subscription_active({"status": "canceled", "plan_id": "pro"}, now)
    assert effective_plan_id({"status": "inactive", "plan_id": "enterprise"}, now) == "basic"
    assert effective_plan_id({"status": "active", "plan_id": "gold"}, now) == "basic"


def test_trial_is_one_time():
    now = datetime(2024, 5, 1)
    sub = start_trial(None, "pro", now)
    assert sub["status"] == "trial"
    assert sub["trial_used"] is True
    assert sub["trial_ends_at"] == (now + timedelta(days=14)).isoformat()

    with pytest.raises(PreconditionFailed):
        start_trial(sub, "enterprise", now)

    expired = dict(sub, trial_ends_at=(now - timedelta(days=1)).isoformat())
    with pytest.raises(PreconditionFailed):
        start_trial(expired, "pro", now)

    with pytest.raises(ValidationFailed):
        start_trial(None, "gold", now)


def test_activation_keeps_first_active_since():
    first = activate({"trial_used": True}, "pro", "PAY-1", datetime(2024, 1, 1))
    renewed = activate(first, "enterprise", "PAY-2", datetime(2024, 2, 1))
    assert renewed["active_since"] == first["active_since"]
    assert renewed["last_paid_at"] == datetime(2024, 2, 1).isoformat()
    assert renewed["plan_id"] == "enterprise"
    assert renewed["trial_used"] is True


def test_subscription_endpoints(client, fake_paypal):
    admin = register(client)
    plans = client.get("/api/subscription/plans").json()
    assert [p["id"] for p in plans] == ["basic", "pro", "enterprise"]
    assert plans[2]["seat_limit"] is None

    resp = client.post("/api/subscription/trial", json={"plan_id": "pro"}, headers=admin)
    assert resp.status_code == 200
    assert client.get("/api/auth/me", headers=admin).json()["plan"]["id"] == "pro"
    assert client.post("/api/subscription/trial", json={"plan_id": "pro"}, headers=admin).status_code == 400

    order = client.post("/api/subscription/order", json={"plan_id": "enterprise"}, headers=admin).json()
    assert fake_paypal.created[0]["amount"] == 49.99

    fake_paypal.capture_status = "DECLINED"
    declined = client.post(
        "/api/subscription/capture", json={"order_id": order["order_id"], "plan_id": "enterprise"}, headers=admin
    )
    assert declined.status_code == 400
    assert client.get("/api/auth/me", headers=admin).json()["plan"]["id"] == "pro"

    fake_paypal.capture_status = "COMPLETED"
    captured = client.post(
        "/api/subscription/capture", json={"order_id": order["order_id"], "plan_id": "enterprise"}, headers=admin
    )
    assert captured.status_code == 200
    assert captured.json()["subscription"]["status"] == "active"
    assert client.get("/api/auth/me", headers=admin).json()["plan"]["id"] == "enterprise"


def test_admin_cannot_demote_themselves(client):
    admin = register(client)
    own_id = client.get("/api/accounts", headers=admin).json()[0]["id"]

    resp = client.put(f"/api/accounts/{own_id}", json={"email": "owner@acme.test", "role": "Guest"}, headers=admin)
    assert resp.status_code == 400
    assert client.get("/api/auth/me", headers=admin).json()["user"]["role"] == "Admin"

    renamed = client.put(f"/api/accounts/{own_id}", json={"email": "boss@acme.test", "role": "Admin"}, headers=admin)
    assert renamed.status_code == 200


def test_capture_is_bound_to_the_plan_that_was_ordered(client, fake_paypal):
    admin = register(client)
    order = client.post("/api/subscription/order", json={"plan_id": "basic"}, headers=admin).json()
    assert fake_paypal.created[0]["amount"] == 4.99

    upgraded = client.post(
        "/api/subscription/capture", json={"order_id": order["order_id"], "plan_id": "enterprise"}, headers=admin
    )
    assert upgraded.status_code == 400
    unknown = client.post("/api/subscription/capture", json={"order_id": "PAYPAL-99", "plan_id": "basic"}, headers=admin)
    assert unknown.status_code == 400
    assert fake_paypal.captured == []
    assert client.get("/api/auth/me", headers=admin).json()["plan"]["id"] == "basic"

    resp = client.post("/api/subscription/capture", json={"order_id": order["order_id"], "plan_id": "basic"}, headers=admin)
    assert resp.status_code == 200
    subscription = resp.json()["subscription"]
    assert subscription["plan_id"] == "basic"
    assert "pending_paypal_order_id" not in subscription

    replay = client.post("/api/subscription/capture", json={"order_id": order["order_id"], "plan_id": "basic"}, headers=admin)
    assert replay.status_code == 400
