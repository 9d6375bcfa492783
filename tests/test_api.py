# tests/test_api.py
import pytest
from fastapi.testclient import TestClient

from pharmacy_pos.core.config import settings
from pharmacy_pos.db.init_db import seed_admin
from pharmacy_pos.main import app
from pharmacy_pos.models import ActionType, AuditLog, User
from pharmacy_pos.utils.jwt import create_access_token

API = settings.API_V1_STR


@pytest.fixture()
def client(engine):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def admin(db) -> User:
    user = seed_admin(db)
    db.commit()
    return user


@pytest.fixture()
def auth(admin):
    return {"Authorization": f"Bearer {create_access_token(admin.email, admin.id)}"}


def test_health(client):
    assert client.get("/").status_code == 200


def test_login_and_me(client, admin, db):
    r = client.post(f"{API}/auth/login", json={"email": settings.ADMIN_EMAIL, "password": settings.ADMIN_PASSWORD},
                    headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
    assert r.status_code == 200
    token = r.json()["access_token"]

    me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["email"] == admin.email

    entry = db.query(AuditLog).filter(AuditLog.action == ActionType.USER_LOGIN).one()
    assert entry.ip_address == "203.0.113.7"


def test_bad_login_and_missing_token(client, admin):
    r = client.post(f"{API}/auth/login", json={"email": settings.ADMIN_EMAIL, "password": "nope"})
    assert r.status_code == 401
    assert r.json()["status"] is False

    assert client.get(f"{API}/medicines").status_code == 401


def test_sale_flow_over_http(client, auth):
    r = client.post(f"{API}/medicines", headers=auth, json={
        "name": "Crocin", "manufacturer": "GSK", "hsn_code": "30049011", "gst_percentage": "12",
        "barcode": "8901030000011",
    })
    assert r.status_code == 201, r.text
    med = r.json()

    r = client.post(f"{API}/batches", headers=auth, json={
        "medicine_id": med["id"], "batch_number": "CR-1", "expiry_date": "2099-01-31",
        "purchase_price": "8.00", "selling_price": "10.00", "quantity": 5,
    })
    assert r.status_code == 201, r.text
    batch = r.json()

    r = client.post(f"{API}/billing/bills", headers=auth, json={
        "items": [{"barcode": "8901030000011", "quantity": 2}],
        "payments": [{"mode": "CASH", "amount": "22.40"}],
    })
    assert r.status_code == 201, r.text
    bill = r.json()
    assert bill["payment_status"] == "PAID"
    assert bill["total_amount"] == "22.40"

    assert client.get(f"{API}/billing/bills/number/{bill['bill_number']}", headers=auth).json()["id"] == bill["id"]
    assert client.get(f"{API}/batches/{batch['id']}", headers=auth).json()["quantity_available"] == 3

    pdf = client.get(f"{API}/billing/bills/{bill['id']}/pdf", headers=auth)
    assert pdf.headers["content-type"] == "application/pdf"

    r = client.post(f"{API}/returns", headers=auth, json={
        "bill_id": bill["id"], "items": [{"bill_item_id": bill["items"][0]["id"], "quantity": 2}],
    })
    assert r.status_code == 201, r.text
    assert r.json()["payment_status"] == "REFUNDED"
    assert len(client.get(f"{API}/returns/bill/{bill['id']}", headers=auth).json()) == 1

    logs = client.get(f"{API}/audit-logs", headers=auth, params={"entity_type": "Bill"}).json()
    assert [l["action"] for l in logs] == ["BILL_CREATED"]


def test_error_envelope_carries_kind(client, auth):
    r = client.get(f"{API}/billing/bills/999", headers=auth)
    assert r.status_code == 404
    assert r.json()["error"]["kind"] == "NOT_FOUND"

    r = client.post(f"{API}/billing/bills", headers=auth, json={"items": [], "payments": []})
    assert r.status_code == 400
    assert r.json()["error"]["kind"] == "INVALID_INPUT"


def test_insufficient_stock_reports_numbers(client, auth, medicine, make_batch):
    make_batch(medicine, 2)
    r = client.post(f"{API}/billing/bills", headers=auth, json={
        "items": [{"medicine_id": medicine.id, "quantity": 5}],
        "payments": [{"mode": "CASH", "amount": "100"}],
    })
    assert r.status_code == 409
    err = r.json()["error"]
    assert (err["kind"], err["available"], err["required"]) == ("INSUFFICIENT_STOCK", 2, 5)


def test_audit_logs_are_admin_only(client, db):
    clerk = User(name="Clerk", email="clerk@store.test", password_hash="x", is_active=True, is_admin=False)
    db.add(clerk)
    db.commit()
    headers = {"Authorization": f"Bearer {create_access_token(clerk.email, clerk.id)}"}
    assert client.get(f"{API}/audit-logs", headers=headers).status_code == 403


def test_units_and_catalog_maintenance_over_http(client, auth, admin, medicine, make_batch):
    empty = make_batch(medicine, 0, number="NEW-1")

    r = client.post(f"{API}/batches/{empty.id}/units", headers=auth, json={"scan_codes": ["X-1", "X-2"]})
    assert r.status_code == 201, r.text
    ids = [u["id"] for u in r.json()]
    assert client.get(f"{API}/batches/{empty.id}", headers=auth).json()["quantity_available"] == 2

    found = client.get(f"{API}/medicines/scan-prefix/X-", headers=auth).json()
    assert [m["id"] for m in found] == [medicine.id]

    r = client.request("DELETE", f"{API}/batches/{empty.id}/units", headers=auth, json={"unit_ids": ids[:1]})
    assert r.status_code == 204
    units = client.get(f"{API}/batches/{empty.id}/units", headers=auth).json()
    assert [u["scan_code"] for u in units] == ["X-2"]

    all_batches = client.get(f"{API}/batches", headers=auth).json()
    assert [b["batch_number"] for b in all_batches] == ["NEW-1"]

    r = client.post(f"{API}/medicines", headers=auth, json={
        "name": "Typo", "manufacturer": "None", "hsn_code": "30049999", "gst_percentage": "5",
    })
    assert client.delete(f"{API}/medicines/{r.json()['id']}", headers=auth).status_code == 204
    assert client.delete(f"{API}/medicines/{medicine.id}", headers=auth).status_code == 409

    report = client.get(f"{API}/reports/sales/cashier/{admin.id}", headers=auth).json()
    assert (report["operator_id"], report["bill_count"]) == (admin.id, 0)
