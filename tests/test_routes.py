"""
Tests for the HTTP API.
"""
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from conftest import make_token, product
from milkmaster.core.session import session_manager
from milkmaster.main import app
from milkmaster.routes import deps

PROFILE = {
    "firstName": "Asha",
    "lastName": "Rao",
    "email": "asha@example.com",
    "phone": "9876543210",
    "address": "12 Dairy Lane",
    "city": "Pune",
    "state": "Maharashtra",
    "pincode": "411001",
}


@pytest.fixture
def api(storage, cart, client, mailer, backend):
    """TestClient wired to in-memory storage and the fake backend."""
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_cart_store] = lambda: cart
    app.dependency_overrides[deps.get_storefront_client] = lambda: client
    app.dependency_overrides[deps.get_otp_mailer] = lambda: mailer

    backend.on("GET", "/api/user/profile", json_body=PROFILE)
    backend.on("POST", "/api/products/validate-stock", json_body={"valid": True})
    backend.on("POST", "/api/orders", status=201, json_body={"_id": "o1", "orderNumber": "MM-1001"})

    yield TestClient(app)

    app.dependency_overrides.clear()


def sign_in(api, user_id="u1"):
    response = api.put("/api/auth/session", json={
        "token": make_token(userId=user_id, email="asha@example.com"),
        "user": {"id": user_id, "firstName": "Asha"},
    })
    assert response.status_code == 200
    return response.json()


class TestService:
    def test_health(self, api):
        response = api.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_home(self, api):
        assert "/api/cart" in api.get("/").json()["endpoints"].values()


class TestAuthRoutes:
    """Test the login hand-off."""

    def test_store_and_clear_session(self, api, storage):
        assert sign_in(api) == {"authenticated": True, "identity": "u1"}
        assert api.get("/api/auth/status").json()["identity"] == "u1"

        api.delete("/api/auth/session")

        assert api.get("/api/auth/status").json() == {"authenticated": False, "identity": None}
        assert storage.get("token") is None


class TestCartRoutes:
    """Test the cart endpoints."""

    def test_add_update_remove(self, api):
        response = api.post("/api/cart/items", json={"item": product(stock=5), "quantity": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 3
        assert body["total"] == 150.0
        assert body["items"][0]["remainingStock"] == 2

        response = api.put("/api/cart/items/p1", json={"quantity": 1})
        assert response.json()["count"] == 1

        response = api.delete("/api/cart/items/p1")
        assert response.json()["items"] == []

    def test_rejection_is_400(self, api):
        api.post("/api/cart/items", json={"item": product(stock=5), "quantity": 3})

        response = api.post("/api/cart/items", json={"item": product(stock=5), "quantity": 3})

        assert response.status_code == 400
        assert "Only 5 of Milk available" in response.json()["detail"]
        assert api.get("/api/cart").json()["count"] == 3

    def test_clear_and_toggle(self, api):
        api.post("/api/cart/items", json={"item": product()})

        assert api.delete("/api/cart").json()["count"] == 0
        assert api.post("/api/cart/toggle").json()["is_open"] is True

    def test_cart_follows_login(self, api):
        api.post("/api/cart/items", json={"item": product("anon")})
        sign_in(api)

        assert api.get("/api/cart").json()["items"] == []


class TestCheckoutRoutes:
    """Test the checkout wizard endpoints."""

    def test_start_requires_login(self, api):
        body = api.post("/api/checkout").json()

        assert body["redirect_to"] == "/login"
        assert api.get(f"/api/checkout/{body['session_id']}").status_code == 404

    def test_unknown_session(self, api):
        assert api.post("/api/checkout/missing/next").status_code == 404

    def test_cash_on_delivery_checkout(self, api, backend):
        sign_in(api)
        api.post("/api/cart/items", json={"item": product(), "quantity": 2})

        body = api.post("/api/checkout").json()
        session_id = body["session_id"]
        assert body["success"]
        assert body["session"]["delivery"]["city"] == "Pune"

        body = api.patch(f"/api/checkout/{session_id}/delivery", json={"city": "Nashik"}).json()
        assert body["session"]["delivery"]["city"] == "Nashik"

        assert api.post(f"/api/checkout/{session_id}/next").json()["session"]["step"] == "summary"
        assert api.get(f"/api/checkout/{session_id}/summary").json()["data"]["total"] == 100.0
        assert api.post(f"/api/checkout/{session_id}/next").json()["session"]["step"] == "payment"

        body = api.put(f"/api/checkout/{session_id}/payment-method", json={"method": "cod"}).json()
        assert body["session"]["payment_method"] == "cod"

        body = api.post(f"/api/checkout/{session_id}/order").json()

        assert body["success"]
        assert body["redirect_to"] == "/order-success"
        assert body["data"]["order"]["order_number"] == "MM-1001"
        assert backend.bodies("/api/orders")[0]["deliveryAddress"]["city"] == "Nashik"
        assert api.get("/api/cart").json()["count"] == 0
        assert api.get(f"/api/checkout/{session_id}").status_code == 404

    def test_failed_guard_keeps_session(self, api):
        sign_in(api)
        session_id = api.post("/api/checkout").json()["session_id"]
        api.post(f"/api/checkout/{session_id}/next")

        body = api.post(f"/api/checkout/{session_id}/next").json()

        assert not body["success"]
        assert "cart is empty" in body["message"]
        assert body["session"]["error"] == body["message"]

        assert api.delete(f"/api/checkout/{session_id}").status_code == 200
        assert api.delete(f"/api/checkout/{session_id}").status_code == 404

    def test_abandoned_sessions_are_discarded(self, api):
        stale = session_manager.create_session("u9")
        stale.updated_at = datetime.utcnow() - timedelta(hours=25)
        recent = session_manager.create_session("u9")

        api.post("/api/checkout")

        assert session_manager.get_session(stale.session_id) is None
        assert session_manager.get_session(recent.session_id) is recent
        session_manager.delete_session(recent.session_id)


class TestOrderRoutes:
    """Test the order history endpoints."""

    def test_requires_login(self, api):
        assert api.get("/api/orders").status_code == 401

    def test_list_and_cancel(self, api, backend):
        sign_in(api)
        backend.on("GET", "/api/orders", json_body=[{"_id": "o1", "userId": "u1", "total": "40"}])
        backend.on("POST", "/api/orders/o1/cancel", json_body={"order": {"_id": "o1", "status": "Cancelled"}})

        body = api.get("/api/orders").json()
        assert body["orders"] == [{"_id": "o1", "userId": "u1", "total": 40.0}]
        assert body["total_pages"] == 1

        body = api.post("/api/orders/o1/cancel", json={}).json()
        assert body["order"]["status"] == "Cancelled"

    def test_cancel_failure(self, api, backend):
        sign_in(api)
        backend.on("POST", "/api/orders/o1/cancel", status=400, json_body={"message": "Order already shipped"})

        response = api.post("/api/orders/o1/cancel", json={"reason": "Late"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Order already shipped"

    def test_filters_and_pages(self, api, backend):
        sign_in(api)
        backend.on("GET", "/api/orders", json_body=[
            {"_id": f"o{n}", "userId": "u1", "orderNumber": f"MM-10{n:02d}",
             "createdAt": f"2024-05-{n:02d}T09:30:00.000Z", "total": 10}
            for n in range(1, 13)
        ])

        body = api.get("/api/orders", params={"per_page": 5, "page": 3}).json()
        assert [o["_id"] for o in body["orders"]] == ["o11", "o12"]
        assert body["total"] == 12
        assert body["total_pages"] == 3

        body = api.get("/api/orders", params={"date_from": "2024-05-03", "date_to": "2024-05-04"}).json()
        assert [o["_id"] for o in body["orders"]] == ["o3", "o4"]

        body = api.get("/api/orders", params={"order_number": "MM-1011"}).json()
        assert [o["_id"] for o in body["orders"]] == ["o11"]

    def test_rejects_bad_page(self, api):
        sign_in(api)

        assert api.get("/api/orders", params={"page": 0}).status_code == 422
        assert api.get("/api/orders", params={"date_from": "yesterday"}).status_code == 422
