import threading

import pytest

from config import settings
from services import customer_import, identity
from services.portal import current_period_label
from services.session_token import create_session_token


DEMO_PASSWORD = settings.DEMO_ACCOUNT_PASSWORD
ADMIN_AUTH_HEADER = {"Authorization": f"Bearer {create_session_token('u1', role='admin')['token']}"}
CUSTOMER_AUTH_HEADER = {"Authorization": f"Bearer {create_session_token('u2')['token']}"}


@pytest.mark.asyncio
async def test_sign_in_returns_session_for_username_or_email(integration_client):
    resp = await integration_client.post(
        "/auth/sign-in",
        json={"identifier": "demo_user", "credential": DEMO_PASSWORD},
    )
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["user_id"] == "u2"
    assert payload["role"] == "customer"
    assert payload["session_token"]
    assert "passwordHash" not in payload["account"]

    by_email = await integration_client.post(
        "/auth/sign-in",
        json={"identifier": "ADMIN@nexusconnect.net", "credential": DEMO_PASSWORD},
    )
    assert by_email.status_code == 200
    assert by_email.json()["role"] == "admin"

    me_resp = await integration_client.get(
        "/auth/me",
        headers={"Authorization": f"Bearer {payload['session_token']}"},
    )
    assert me_resp.status_code == 200
    assert me_resp.json()["account"]["id"] == "u2"


@pytest.mark.asyncio
async def test_sign_in_rejects_bad_credentials(integration_client):
    resp = await integration_client.post(
        "/auth/sign-in",
        json={"identifier": "demo_user", "credential": "wrong"},
    )
    assert resp.status_code == 401

    missing = await integration_client.post(
        "/auth/sign-in",
        json={"identifier": "nobody", "credential": DEMO_PASSWORD},
    )
    assert missing.status_code == 401


@pytest.mark.asyncio
async def test_generate_pay_and_rerun_scenario(integration_client):
    generate_resp = await integration_client.post(
        "/invoices/generate",
        json={"period": "August"},
        headers=ADMIN_AUTH_HEADER,
    )
    assert generate_resp.status_code == 200
    assert generate_resp.json() == {"period": "August", "created": 1}

    list_resp = await integration_client.get(
        "/invoices?userId=u2&status=pending",
        headers=ADMIN_AUTH_HEADER,
    )
    assert list_resp.status_code == 200
    pending = [item for item in list_resp.json()["items"] if item["billingMonth"] == "August"]
    assert len(pending) == 1
    invoice = pending[0]
    # Demo customer is on p4 (Basic Plus, 650).
    assert invoice["amount"] == 650
    assert invoice["type"] == "package"
    assert invoice["method"] == "None"

    invoice.update({"status": "paid", "method": "bKash", "date": "2024-08-05"})
    pay_resp = await integration_client.put(
        f"/invoices/{invoice['id']}",
        json=invoice,
        headers=ADMIN_AUTH_HEADER,
    )
    assert pay_resp.status_code == 200
    paid = pay_resp.json()
    assert paid["renewed_account"]["expiryDate"] == "2026-01-30"
    assert paid["renewed_account"]["status"] == "active"
    assert paid["session"] is None

    rerun = await integration_client.post(
        "/invoices/generate",
        json={"period": "August"},
        headers=ADMIN_AUTH_HEADER,
    )
    assert rerun.json()["created"] == 0


@pytest.mark.asyncio
async def test_pending_and_miscellaneous_invoices_do_not_renew(integration_client):
    charge_resp = await integration_client.post(
        "/invoices/charge",
        json={"userId": "u2", "amount": 1500, "description": "Router purchase", "billingMonth": "August 2024"},
        headers=ADMIN_AUTH_HEADER,
    )
    assert charge_resp.status_code == 200
    charge = charge_resp.json()
    assert charge["type"] == "miscellaneous"
    assert charge["status"] == "pending"

    charge.update({"status": "paid", "method": "Cash"})
    paid_charge = await integration_client.put(f"/invoices/{charge['id']}", json=charge, headers=ADMIN_AUTH_HEADER)
    assert paid_charge.json()["renewed_account"] is None

    still_pending = await integration_client.put(
        "/invoices/b2",
        json={"userId": "u2", "amount": 650, "billingMonth": "August 2024", "status": "pending"},
        headers=ADMIN_AUTH_HEADER,
    )
    assert still_pending.json()["renewed_account"] is None

    account_resp = await integration_client.get("/accounts/u2", headers=ADMIN_AUTH_HEADER)
    assert account_resp.json()["expiryDate"] == "2025-12-31"


@pytest.mark.asyncio
async def test_customer_scope_is_enforced(integration_client):
    own_resp = await integration_client.get("/invoices", headers=CUSTOMER_AUTH_HEADER)
    assert own_resp.status_code == 200
    items = own_resp.json()["items"]
    assert {item["userId"] for item in items} == {"u2"}
    # Newest first: August pending before July paid.
    assert [item["id"] for item in items] == ["b2", "b1"]

    other_resp = await integration_client.get("/invoices?userId=u1", headers=CUSTOMER_AUTH_HEADER)
    assert other_resp.status_code == 403

    for method, path in [
        ("get", "/accounts"),
        ("post", "/invoices/generate"),
        ("get", "/snapshot/export"),
        ("get", "/dashboard/admin"),
    ]:
        kwargs = {"json": {"period": "August"}} if method == "post" else {}
        resp = await getattr(integration_client, method)(path, headers=CUSTOMER_AUTH_HEADER, **kwargs)
        assert resp.status_code == 403

    anonymous = await integration_client.get("/invoices")
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_delete_account_removes_its_invoices(integration_client):
    delete_resp = await integration_client.delete("/accounts/u2", headers=ADMIN_AUTH_HEADER)
    assert delete_resp.status_code == 200
    assert delete_resp.json()["invoices_removed"] == 2

    invoices_resp = await integration_client.get("/invoices?userId=u2", headers=ADMIN_AUTH_HEADER)
    assert invoices_resp.json()["count"] == 0

    missing = await integration_client.delete("/accounts/u2", headers=ADMIN_AUTH_HEADER)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_account_create_update_and_session_refresh(integration_client):
    create_resp = await integration_client.post(
        "/accounts",
        json={
            "id": "u3",
            "username": "rahim",
            "fullName": "Rahim Khan",
            "packageId": "p2",
            "expiryDate": "2024-09-01",
            "password": "secret-pass",
        },
        headers=ADMIN_AUTH_HEADER,
    )
    assert create_resp.status_code == 200
    assert create_resp.json()["fullName"] == "Rahim Khan"

    duplicate = await integration_client.post(
        "/accounts",
        json={"id": "u3", "username": "other", "fullName": "Other", "packageId": "p2", "expiryDate": "2024-09-01"},
        headers=ADMIN_AUTH_HEADER,
    )
    assert duplicate.status_code == 409

    sign_in = await integration_client.post("/auth/sign-in", json={"identifier": "rahim", "credential": "secret-pass"})
    assert sign_in.status_code == 200

    own_update = await integration_client.put(
        "/accounts/u1",
        json={
            "username": "admin",
            "fullName": "Chief Administrator",
            "email": "admin@nexusconnect.net",
            "role": "admin",
            "packageId": "p13",
            "expiryDate": "2099-12-31",
        },
        headers=ADMIN_AUTH_HEADER,
    )
    assert own_update.status_code == 200
    assert own_update.json()["session"]["fullName"] == "Chief Administrator"

    other_update = await integration_client.put(
        "/accounts/u3",
        json={"username": "rahim", "fullName": "Rahim K.", "packageId": "p3", "expiryDate": "2024-09-01", "status": "suspended"},
        headers=ADMIN_AUTH_HEADER,
    )
    assert other_update.json()["session"] is None
    assert other_update.json()["account"]["status"] == "suspended"

    # Credential survives a full replacement that does not send a new password.
    admin_sign_in = await integration_client.post("/auth/sign-in", json={"identifier": "admin", "credential": DEMO_PASSWORD})
    assert admin_sign_in.status_code == 200


@pytest.mark.asyncio
async def test_bulk_extend_accounts(integration_client):
    resp = await integration_client.post(
        "/accounts/extend",
        json={"accountIds": ["u2", "missing"]},
        headers=ADMIN_AUTH_HEADER,
    )
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["extended"] == 1
    assert payload["accounts"][0]["expiryDate"] == "2026-01-30"


@pytest.mark.asyncio
async def test_snapshot_export_import_round_trip(integration_client):
    export_resp = await integration_client.get("/snapshot/export", headers=ADMIN_AUTH_HEADER)
    assert export_resp.status_code == 200
    exported = export_resp.json()
    assert set(exported) == {"accounts", "invoices", "exportedAt"}

    await integration_client.delete("/accounts/u2", headers=ADMIN_AUTH_HEADER)

    import_resp = await integration_client.post("/snapshot/import", json=exported, headers=ADMIN_AUTH_HEADER)
    assert import_resp.status_code == 200
    assert import_resp.json() == {"accounts": 2, "invoices": 2}

    again = (await integration_client.get("/snapshot/export", headers=ADMIN_AUTH_HEADER)).json()
    assert again["accounts"] == exported["accounts"]
    assert again["invoices"] == exported["invoices"]

    # Hashes travel with the backup, so restored customers can still sign in.
    assert all(account["passwordHash"] for account in exported["accounts"])
    sign_in = await integration_client.post("/auth/sign-in", json={"identifier": "demo_user", "credential": DEMO_PASSWORD})
    assert sign_in.status_code == 200


@pytest.mark.asyncio
async def test_malformed_import_is_rejected_without_changes(integration_client):
    before = (await integration_client.get("/snapshot/export", headers=ADMIN_AUTH_HEADER)).json()

    for payload in ({"accounts": []}, {"accounts": [], "invoices": {}}, [1, 2, 3]):
        resp = await integration_client.post("/snapshot/import", json=payload, headers=ADMIN_AUTH_HEADER)
        assert resp.status_code == 422

    after = (await integration_client.get("/snapshot/export", headers=ADMIN_AUTH_HEADER)).json()
    assert after["accounts"] == before["accounts"]
    assert after["invoices"] == before["invoices"]


@pytest.mark.asyncio
async def test_csv_customer_import(integration_client):
    csv_body = (
        "Name,Username,Password,Expiry\n"
        "Rahim Khan,rahim,,2026-01-01\n"
        "Duplicate Demo,demo_user,,\n"
        ",nameless,,\n"
    ).encode("utf-8")
    resp = await integration_client.post(
        "/accounts/import_csv",
        files={"file": ("customers.csv", csv_body, "text/csv")},
        headers=ADMIN_AUTH_HEADER,
    )
    assert resp.status_code == 200
    assert resp.json() == {"imported": 1}

    search = await integration_client.get("/accounts?q=rahim", headers=ADMIN_AUTH_HEADER)
    items = search.json()["items"]
    assert len(items) == 1
    assert items[0]["packageId"] == "p1"
    assert items[0]["expiryDate"] == "2026-01-01"

    sign_in = await integration_client.post("/auth/sign-in", json={"identifier": "rahim", "credential": "123456"})
    assert sign_in.status_code == 200

    empty = await integration_client.post(
        "/accounts/import_csv",
        files={"file": ("empty.csv", b"name,username\n", "text/csv")},
        headers=ADMIN_AUTH_HEADER,
    )
    assert empty.status_code == 422


@pytest.mark.asyncio
async def test_dashboards_and_catalog(integration_client):
    customer_resp = await integration_client.get("/dashboard/customer", headers=CUSTOMER_AUTH_HEADER)
    assert customer_resp.status_code == 200
    customer = customer_resp.json()
    assert customer["package"]["id"] == "p4"
    assert [item["id"] for item in customer["pending_invoices"]] == ["b2"]
    assert [item["id"] for item in customer["paid_invoices"]] == ["b1"]

    admin_resp = await integration_client.get("/dashboard/admin?period=July 2024", headers=ADMIN_AUTH_HEADER)
    assert admin_resp.status_code == 200
    summary = admin_resp.json()
    assert summary["total_customers"] == 1
    assert summary["revenue"] == 650
    assert summary["pending_invoices"] == 1
    assert summary["collections"] == [{"period": "July 2024", "total": 650}]

    packages = await integration_client.get("/catalog/packages")
    assert packages.json()["count"] == 14
    missing = await integration_client.get("/catalog/packages/p404")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_unknown_package_shows_as_missing_on_dashboard(integration_client):
    # Legacy data can carry a package id the catalog no longer knows.
    exported = (await integration_client.get("/snapshot/export", headers=ADMIN_AUTH_HEADER)).json()
    for account in exported["accounts"]:
        if account["id"] == "u2":
            account["packageId"] = "10 Mbps"
    restored = await integration_client.post("/snapshot/import", json=exported, headers=ADMIN_AUTH_HEADER)
    assert restored.status_code == 200

    dashboard = await integration_client.get("/dashboard/customer", headers=CUSTOMER_AUTH_HEADER)
    assert dashboard.status_code == 200
    assert dashboard.json()["package"] is None

    generated = await integration_client.post(
        "/invoices/generate",
        json={"period": "September 2024", "accountIds": ["u2"]},
        headers=ADMIN_AUTH_HEADER,
    )
    assert generated.json()["created"] == 1
    invoices = await integration_client.get("/invoices?userId=u2", headers=ADMIN_AUTH_HEADER)
    newest = invoices.json()["items"][0]
    assert newest["billingMonth"] == "September 2024"
    assert newest["amount"] == 0


@pytest.mark.asyncio
async def test_update_rejects_taken_username_and_unknown_package(integration_client):
    base = {"fullName": "Test Customer", "expiryDate": "2025-12-31"}

    taken = await integration_client.put(
        "/accounts/u2",
        json={**base, "username": "admin", "packageId": "p4"},
        headers=ADMIN_AUTH_HEADER,
    )
    assert taken.status_code == 409

    unknown_package = await integration_client.put(
        "/accounts/u2",
        json={**base, "username": "demo_user", "packageId": "bogus"},
        headers=ADMIN_AUTH_HEADER,
    )
    assert unknown_package.status_code == 422

    # Keeping its own username is not a clash.
    unchanged_name = await integration_client.put(
        "/accounts/u2",
        json={**base, "username": "demo_user", "packageId": "p5"},
        headers=ADMIN_AUTH_HEADER,
    )
    assert unchanged_name.status_code == 200

    stored = (await integration_client.get("/accounts/u2", headers=ADMIN_AUTH_HEADER)).json()
    assert stored["username"] == "demo_user"
    assert stored["packageId"] == "p5"
    sign_in = await integration_client.post("/auth/sign-in", json={"identifier": "demo_user", "credential": DEMO_PASSWORD})
    assert sign_in.json()["user_id"] == "u2"


@pytest.mark.asyncio
async def test_sign_in_quota_ignores_forwarded_header(integration_client, enforced_quotas):
    statuses = []
    for attempt in range(25):
        resp = await integration_client.post(
            "/auth/sign-in",
            json={"identifier": "demo_user", "credential": "wrong"},
            headers={"X-Forwarded-For": f"10.0.0.{attempt}"},
        )
        statuses.append(resp.status_code)

    assert statuses[:20] == [401] * 20
    assert set(statuses[20:]) == {429}


@pytest.mark.asyncio
async def test_credential_hashing_runs_off_the_event_loop(integration_client, monkeypatch):
    loop_thread = threading.get_ident()
    hashing_threads = []
    verifying_threads = []

    real_hash = customer_import.hash_credential
    real_verify = identity.verify_credential

    def tracking_hash(credential):
        hashing_threads.append(threading.get_ident())
        return real_hash(credential)

    def tracking_verify(credential, stored_hash):
        verifying_threads.append(threading.get_ident())
        return real_verify(credential, stored_hash)

    monkeypatch.setattr(customer_import, "hash_credential", tracking_hash)
    monkeypatch.setattr(identity, "verify_credential", tracking_verify)

    imported = await integration_client.post(
        "/accounts/import_csv",
        files={"file": ("customers.csv", b"name,username\nRahim Khan,rahim\nKarim Ali,karim\n", "text/csv")},
        headers=ADMIN_AUTH_HEADER,
    )
    assert imported.json() == {"imported": 2}

    sign_in = await integration_client.post("/auth/sign-in", json={"identifier": "demo_user", "credential": DEMO_PASSWORD})
    assert sign_in.status_code == 200

    assert len(hashing_threads) == 2
    assert verifying_threads
    assert loop_thread not in hashing_threads + verifying_threads


@pytest.mark.asyncio
async def test_bulk_delete_cascades(integration_client):
    resp = await integration_client.post(
        "/accounts/delete",
        json={"accountIds": ["u2", "missing"]},
        headers=ADMIN_AUTH_HEADER,
    )
    assert resp.status_code == 200
    assert resp.json() == {"deleted": ["u2"], "invoices_removed": 2}

    invoices = await integration_client.get("/invoices", headers=ADMIN_AUTH_HEADER)
    assert invoices.json()["count"] == 0

    forbidden = await integration_client.post(
        "/accounts/delete",
        json={"accountIds": ["u1"]},
        headers=CUSTOMER_AUTH_HEADER,
    )
    assert forbidden.status_code == 403


@pytest.mark.asyncio
async def test_admin_dashboard_defaults_to_bengali_period(integration_client):
    period = current_period_label()
    charge = await integration_client.post(
        "/invoices/charge",
        json={"userId": "u2", "amount": 300, "description": "Connection fee"},
        headers=ADMIN_AUTH_HEADER,
    )
    assert charge.json()["billingMonth"] == period

    paid = {**charge.json(), "status": "paid", "method": "Cash"}
    await integration_client.put(f"/invoices/{paid['id']}", json=paid, headers=ADMIN_AUTH_HEADER)

    summary = (await integration_client.get("/dashboard/admin", headers=ADMIN_AUTH_HEADER)).json()
    assert summary["period"] == period
    assert summary["revenue"] == 300
