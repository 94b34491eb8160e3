import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from artisan_booking.api.deps import get_cache, get_db, get_gateway
from artisan_booking.core.config import settings
from artisan_booking.core.security import create_access_token
from artisan_booking.main import app
from artisan_booking.services.cache import MemoryCache


def _auth(user_id: str, role: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


CUSTOMER = _auth("cust-1", "customer")
ARTISAN = _auth("art-1", "artisan")


@pytest.fixture()
def client(db, gateway):
    cache = MemoryCache()

    def _db():
        yield db

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _create(client) -> dict:
    r = client.post("/api/v1/bookings", headers=CUSTOMER, json={
        "artisan_id": "art-1",
        "offering": {"service_ref": "svc-1", "pricing": {"pricing_model": "simple_fixed", "base_price": 5000}},
        "description": "Fix the tap",
    })
    assert r.status_code == 200, r.text
    return r.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_requires_token(client):
    assert client.get("/api/v1/bookings/x").status_code == 401
    bad = {"Authorization": "Bearer not-a-jwt"}
    assert client.get("/api/v1/bookings/x", headers=bad).status_code == 401


def test_only_customers_create_bookings(client):
    r = client.post("/api/v1/bookings", headers=ARTISAN, json={
        "artisan_id": "art-2", "offering": {"pricing": {"pricing_model": "simple_fixed", "base_price": 100}},
    })
    assert r.status_code == 403


def test_booking_flow_over_http(client, gateway):
    booking = _create(client)
    assert booking["status"] == "pending"
    assert booking["estimated_price"] == 5000

    r = client.post(f"/api/v1/bookings/{booking['id']}/accept", headers=ARTISAN)
    assert r.status_code == 200
    assert r.json()["total_amount"] == 5250

    r = client.get(f"/api/v1/bookings/{booking['id']}", headers=CUSTOMER)
    assert r.json()["status"] == "accepted"

    r = client.post("/api/v1/payments/initialize", headers=CUSTOMER, json={"booking_id": booking["id"], "email": "c@example.com"})
    assert r.status_code == 200
    init = r.json()
    assert init["total_amount"] == 5250
    assert init["authorization_url"].startswith("https://checkout.test/")

    gateway.results[init["reference"]] = "success"
    r = client.get(f"/api/v1/payments/verify/{init['reference']}", headers=CUSTOMER)
    assert r.json()["status"] == "successful"
    assert client.get(f"/api/v1/bookings/{booking['id']}", headers=CUSTOMER).json()["payment_status"] == "paid"


def test_domain_errors_map_to_status_codes(client):
    booking = _create(client)
    r = client.post(f"/api/v1/bookings/{booking['id']}/start", headers=ARTISAN)
    assert r.status_code == 409
    assert r.json()["code"] == "invalid_state"

    r = client.post(f"/api/v1/bookings/{booking['id']}/accept", headers=CUSTOMER)
    assert r.status_code == 403

    r = client.post(f"/api/v1/bookings/{booking['id']}/decline", headers=ARTISAN, json={"reason": ""})
    assert r.status_code == 422

    assert client.get("/api/v1/bookings/missing", headers=CUSTOMER).status_code == 404


def test_negotiation_over_http(client):
    booking = _create(client)
    r = client.post(f"/api/v1/bookings/{booking['id']}/propose-price", headers=ARTISAN, json={"amount": 8000})
    assert r.json()["status"] == "negotiating"
    r = client.post(f"/api/v1/bookings/{booking['id']}/counter-offer", headers=CUSTOMER, json={"amount": 6000})
    assert r.status_code == 200
    r = client.post(f"/api/v1/bookings/{booking['id']}/negotiation/accept", headers=ARTISAN)
    assert r.json()["agreed_price"] == 6000
    summary = client.get(f"/api/v1/bookings/{booking['id']}", headers=ARTISAN).json()
    assert summary["negotiation"]["status"] == "agreed"


def test_webhook_checks_signature(client, monkeypatch):
    booking = _create(client)
    client.post(f"/api/v1/bookings/{booking['id']}/accept", headers=ARTISAN)
    init = client.post("/api/v1/payments/initialize", headers=CUSTOMER, json={"booking_id": booking["id"], "email": "c@example.com"}).json()

    monkeypatch.setattr(settings, "PAYSTACK_WEBHOOK_SECRET", "whsec")
    body = json.dumps({"event": "charge.success", "data": {"reference": init["reference"]}}).encode()

    r = client.post("/api/v1/payments/webhook", content=body, headers={"x-paystack-signature": "forged"})
    assert r.status_code == 400

    sig = hmac.new(b"whsec", body, hashlib.sha512).hexdigest()
    r = client.post("/api/v1/payments/webhook", content=body, headers={"x-paystack-signature": sig})
    assert r.status_code == 200
    assert r.json() == {"success": True, "handled": True, "payment_status": "successful"}
    assert client.get(f"/api/v1/bookings/{booking['id']}", headers=CUSTOMER).json()["status"] == "confirmed"
