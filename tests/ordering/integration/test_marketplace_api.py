"""Integration tests for the marketplace stub API via TestClient."""

import pytest
from fastapi.testclient import TestClient
from ordering.exceptions import NetworkError


@pytest.fixture()
def client(api_app):
    return TestClient(api_app)


class TestGetOrder:
    def test_get_order_in_camel_case(self, client, marketplace, order_at):
        order = order_at("confirmed")
        marketplace.seed(order)

        response = client.get(f"/orders/{order.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == str(order.id)
        assert body["orderNumber"] == order.order_number
        assert body["status"] == "confirmed"
        assert body["items"][0]["productId"] == "prod-1"
        assert [entry["status"] for entry in body["statusHistory"]] == ["pending", "confirmed"]

    def test_unknown_order_is_404(self, client):
        response = client.get("/orders/missing")
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"


class TestUpdateStatus:
    def test_update_status(self, client, marketplace, order_at):
        order = order_at("pending")
        marketplace.seed(order)

        response = client.patch(f"/orders/{order.id}/status", json={"status": "confirmed", "note": "Accepted"})

        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"
        assert response.json()["statusHistory"][-1]["note"] == "Accepted"

    def test_invalid_transition_is_409_with_from_and_to(self, client, marketplace, order_at):
        order = order_at("pending")
        marketplace.seed(order)

        response = client.patch(f"/orders/{order.id}/status", json={"status": "delivered"})

        assert response.status_code == 409
        assert response.json() == {"error": "InvalidTransition", "from": "pending", "to": "delivered"}

    def test_unknown_status_is_422(self, client, marketplace, order_at):
        order = order_at("pending")
        marketplace.seed(order)

        response = client.patch(f"/orders/{order.id}/status", json={"status": "lost"})

        assert response.status_code == 422

    def test_unavailable_backend_is_503(self, client, marketplace, order_at):
        order = order_at("pending")
        marketplace.seed(order)
        marketplace.fail_next(str(order.id), NetworkError("db down"))

        response = client.patch(f"/orders/{order.id}/status", json={"status": "confirmed"})

        assert response.status_code == 503


class TestShipAndDeliver:
    def test_ship(self, client, marketplace, order_at):
        order = order_at("processing")
        marketplace.seed(order)

        response = client.patch(
            f"/orders/{order.id}/ship",
            json={"trackingNumber": "1Z999", "carrier": "UPS", "estimatedDelivery": "2026-11-02"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "shipped"
        assert body["trackingNumber"] == "1Z999"
        assert body["estimatedDelivery"] == "2026-11-02"

    def test_ship_requires_tracking(self, client, marketplace, order_at):
        order = order_at("processing")
        marketplace.seed(order)

        response = client.patch(f"/orders/{order.id}/ship", json={"trackingNumber": "", "carrier": "UPS"})

        assert response.status_code == 422

    def test_ship_pending_order_is_409(self, client, marketplace, order_at):
        order = order_at("pending")
        marketplace.seed(order)

        response = client.patch(f"/orders/{order.id}/ship", json={"trackingNumber": "1Z999", "carrier": "UPS"})

        assert response.status_code == 409
        assert response.json()["from"] == "pending"

    def test_deliver(self, client, marketplace, order_at):
        order = order_at("shipped")
        marketplace.seed(order)

        response = client.patch(f"/orders/{order.id}/deliver")

        assert response.status_code == 200
        assert response.json()["status"] == "delivered"

    def test_deliver_twice_is_409(self, client, marketplace, order_at):
        order = order_at("delivered")
        marketplace.seed(order)

        response = client.patch(f"/orders/{order.id}/deliver")

        assert response.status_code == 409
        assert response.json()["to"] == "delivered"


class TestBulkStatus:
    def test_bulk_status_is_207_with_per_item_results(self, client, marketplace, order_at):
        confirmed, pending = order_at("confirmed"), order_at("pending")
        marketplace.seed(confirmed, pending)

        response = client.post(
            "/orders/bulk-status",
            json={"ids": [str(confirmed.id), str(pending.id)], "status": "processing"},
        )

        assert response.status_code == 207
        results = response.json()["results"]
        assert results[0] == {"id": str(confirmed.id), "ok": True, "error": None, "reason": None}
        assert results[1]["ok"] is False
        assert results[1]["error"] == "InvalidTransition"

    def test_bulk_status_needs_ids(self, client):
        response = client.post("/orders/bulk-status", json={"ids": [], "status": "processing"})
        assert response.status_code == 422


class TestMembership:
    def test_add_and_snapshot(self, client):
        assert client.post("/wishlist/P1").status_code == 200
        assert client.post("/wishlist/P2").status_code == 200
        assert client.delete("/wishlist/P1").status_code == 200

        response = client.get("/wishlist")

        assert response.json() == {"items": ["P2"], "version": 3}

    def test_cart_and_wishlist_are_separate(self, client):
        client.post("/cart/P1")
        assert client.get("/wishlist").json()["items"] == []
        assert client.get("/cart").json()["items"] == ["P1"]

    def test_out_of_stock_is_409(self, client, marketplace):
        marketplace.mark_out_of_stock("P1")

        response = client.post("/cart/P1")

        assert response.status_code == 409
        assert response.json() == {"error": "Conflict", "detail": "Product P1 is out of stock"}

    def test_unknown_product_is_404(self, client, marketplace):
        marketplace.stock("P1")
        assert client.post("/cart/P9").status_code == 404
