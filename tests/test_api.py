import json
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from core.config import settings
from domain.order.entity import OrderStatus
from main import app

from tests.conftest import ADMIN, CLIENT, FREELANCER, PLAN_ID


def token_for(actor, **overrides):
    claims = {
        "sub": actor.id,
        "role": actor.role.value,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
    }
    claims.update(overrides)
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def auth(actor, **overrides):
    return {"Authorization": f"Bearer {token_for(actor, **overrides)}"}


@pytest.fixture
def client(services):
    # the lifespan is not run; the in-memory graph stands in for the container
    app.state.container = services
    return TestClient(app)


def test_routes_registered():
    routes = {r.path for r in app.routes}
    assert "/api/v1/payments/webhooks/{provider}" in routes
    assert "/api/v1/orders/{order_id}/accept" in routes
    assert "/api/v1/payouts/{order_id}/confirm" in routes


def test_order_flow_over_http(client):
    resp = client.post(
        "/api/v1/orders",
        json={"service_plan_id": PLAN_ID, "plan_tier": "standard", "requirements": "Logo"},
        headers=auth(CLIENT),
    )
    assert resp.status_code == 200
    body = resp.json()
    order = body["data"]["order"]
    assert order["status"] == "pending_acceptance"
    assert order["total_amount"] in ("10252.00", 10252.0)
    assert resp.headers.get("X-Request-ID")

    resp = client.post(f"/api/v1/orders/{order['id']}/accept", headers=auth(FREELANCER))
    assert resp.status_code == 200
    assert resp.json()["data"]["order"]["status"] == "pending_payment"

    resp = client.post(f"/api/v1/orders/{order['id']}/checkout", headers=auth(CLIENT))
    assert resp.status_code == 200
    assert resp.json()["data"]["gateway_order_id"]

    resp = client.get(f"/api/v1/orders/{order['id']}", headers=auth(CLIENT))
    assert resp.status_code == 200
    assert resp.json()["data"]["viewer_role"] == "client"


def test_errors_map_to_http_statuses(client, services):
    resp = client.post("/api/v1/orders", json={"service_plan_id": PLAN_ID, "plan_tier": "standard"})
    assert resp.status_code == 401

    expired = auth(CLIENT, exp=datetime.now(timezone.utc) - timedelta(minutes=1))
    resp = client.get("/api/v1/orders", headers=expired)
    assert resp.status_code == 401

    resp = client.get("/api/v1/orders", headers=auth(CLIENT, role="superuser"))
    assert resp.status_code == 401

    resp = client.post(
        "/api/v1/orders", json={"service_plan_id": PLAN_ID, "plan_tier": "gold"}, headers=auth(CLIENT)
    )
    assert resp.status_code == 422

    order_id = client.post(
        "/api/v1/orders", json={"service_plan_id": PLAN_ID, "plan_tier": "basic"}, headers=auth(CLIENT)
    ).json()["data"]["order"]["id"]

    resp = client.post(f"/api/v1/orders/{order_id}/accept", headers=auth(CLIENT))
    assert resp.status_code == 403

    resp = client.post(f"/api/v1/orders/{order_id}/start", headers=auth(FREELANCER))
    assert resp.status_code == 409
    assert services.store.orders[order_id].status == OrderStatus.PENDING_ACCEPTANCE

    resp = client.get("/api/v1/orders/does-not-exist", headers=auth(CLIENT))
    assert resp.status_code == 404


def test_payout_routes_are_operator_only(client):
    resp = client.get("/api/v1/payouts/manual", headers=auth(CLIENT))
    assert resp.status_code == 403

    resp = client.get("/api/v1/payouts/manual", headers=auth(ADMIN))
    assert resp.status_code == 200
    assert resp.json()["data"]["items"] == []


def test_webhook_route(client):
    body = json.dumps({"id": "evt_x", "event": "order.paid"})

    resp = client.post(
        "/api/v1/payments/webhooks/razorpay", content=body, headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["handled"] is False

    resp = client.post(
        "/api/v1/payments/webhooks/stripe", content=body, headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == 404
