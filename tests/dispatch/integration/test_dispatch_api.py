"""Integration tests for the Dispatch API endpoints via TestClient."""

import pytest
from dispatch.api.routes import order_router, store_router
from dispatch.order.order import Order
from dispatch.splitter import set_split_procedure
from dispatch.splitter.fake_adapter import FakeSplitProcedure
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain
from protean.integrations.fastapi import register_exception_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(store_router)
    app.include_router(order_router)
    register_exception_handlers(app)
    return TestClient(app)


def _register_store(client, name):
    response = client.post("/stores", json={"name": name})
    assert response.status_code == 201
    return response.json()["store_id"]


def _place_order(client, *stores):
    response = client.post(
        "/orders",
        json={
            "customer_name": "Sam Carter",
            "customer_phone": "+15550003",
            "order_code": "ORD-API",
            "items": [{"product_name": f"Item {n}", "price": 2.0, "main_store": s} for n, s in enumerate(stores)],
        },
    )
    assert response.status_code == 201
    return response.json()["order_id"]


def _split(client):
    _register_store(client, "Vendor One")
    _register_store(client, "Vendor Two")
    order_id = _place_order(client, "Vendor One", "Vendor Two")
    response = client.post(f"/orders/{order_id}/route")
    assert response.status_code == 200
    return order_id, response.json()


class TestStoresAPI:
    def test_register(self, client):
        assert _register_store(client, "Vendor One")

    def test_duplicate_is_400(self, client):
        _register_store(client, "Vendor One")
        response = client.post("/stores", json={"name": "vendor one"})
        assert response.status_code == 400


class TestRoutingAPI:
    def test_single_store_order_is_transferred(self, client):
        store_id = _register_store(client, "Vendor One")
        order_id = _place_order(client, "Vendor One", "Vendor One")

        response = client.post(f"/orders/{order_id}/route")

        assert response.status_code == 200
        assert response.json()["path"] == "transfer"
        assert current_domain.repository_for(Order).get(order_id).assigned_store_id == store_id

    def test_multi_store_order_is_split(self, client):
        _, body = _split(client)
        assert body["success"] is True
        assert body["path"] == "local"
        assert [r["store_name"] for r in body["results"]] == ["Vendor One", "Vendor Two"]

    def test_unknown_store_is_400(self, client):
        order_id = _place_order(client, "Corner Shop")
        response = client.post(f"/orders/{order_id}/route")
        assert response.status_code == 400

    def test_failed_split_is_409(self, client, monkeypatch):
        _register_store(client, "Vendor One")
        _register_store(client, "Vendor Two")
        order_id = _place_order(client, "Vendor One", "Vendor Two")
        original = Order.divide

        def divide(parent, store_name, store_id, items_data, index):
            if store_name == "Vendor Two":
                raise RuntimeError("Insert rejected")
            return original(parent, store_name=store_name, store_id=store_id, items_data=items_data, index=index)

        monkeypatch.setattr(Order, "divide", divide)

        response = client.post(f"/orders/{order_id}/split")

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["successful_splits"] == 1
        assert detail["results"][1]["success"] is False

    def test_transfer_endpoint(self, client):
        _register_store(client, "Vendor One")
        order_id = _place_order(client, "Vendor One")

        first = client.put(f"/orders/{order_id}/transfer", json={"store_name": "Vendor One"})
        second = client.put(f"/orders/{order_id}/transfer", json={"store_name": "Vendor One"})

        assert first.json() == {"changed": True}
        assert second.json() == {"changed": False}


class TestDivisionsAPI:
    def test_divisions_of_split_order(self, client):
        order_id, _ = _split(client)

        response = client.get(f"/orders/{order_id}/divisions")

        assert response.status_code == 200
        body = response.json()
        assert body["aggregate_status"] == "incomplete"
        assert body["total"] == 2
        assert body["can_deliver"] is False
        assert {d["status"] for d in body["divisions"]} == {"assigned"}

    def test_accept_then_deliver(self, client):
        order_id, body = _split(client)
        division_ids = [r["order_id"] for r in body["results"]]
        for division_id in division_ids:
            response = client.put(
                f"/orders/{division_id}/response", json={"response": "accepted", "responder_role": "admin"}
            )
            assert response.json() == {"changed": True}

        response = client.put(f"/orders/{division_ids[0]}/status", json={"status": "delivered"})

        assert response.status_code == 200
        summary = client.get(f"/orders/{order_id}/divisions").json()
        assert summary["delivered"] == 1
        assert summary["completion_percentage"] == 100

    def test_early_delivery_is_400(self, client):
        _, body = _split(client)
        response = client.put(f"/orders/{body['results'][0]['order_id']}/status", json={"status": "delivered"})
        assert response.status_code == 400

    def test_wrong_store_response_is_400(self, client):
        _, body = _split(client)
        response = client.put(
            f"/orders/{body['results'][0]['order_id']}/response",
            json={"response": "accepted", "responder_store_id": "someone-else"},
        )
        assert response.status_code == 400

    def test_rollup_endpoint(self, client):
        order_id, _ = _split(client)

        response = client.post(f"/orders/{order_id}/rollup")

        assert response.status_code == 200
        assert response.json()["parent_order_id"] == order_id

    def test_rollup_of_unsplit_order_is_404(self, client):
        _register_store(client, "Vendor One")
        order_id = _place_order(client, "Vendor One")
        response = client.post(f"/orders/{order_id}/rollup")
        assert response.status_code == 404


class TestSplitProcedureConfigAPI:
    def test_configure_fake(self, client):
        set_split_procedure(FakeSplitProcedure())
        response = client.post("/orders/split-procedure/configure", json={"should_succeed": False})
        assert response.status_code == 200
        assert response.json()["should_succeed"] is False

    def test_configure_requires_fake(self, client):
        response = client.post("/orders/split-procedure/configure", json={"should_succeed": False})
        assert response.status_code == 400

    def test_configure_blocked_in_production(self, client, monkeypatch):
        monkeypatch.setenv("PROTEAN_ENV", "production")
        response = client.post("/orders/split-procedure/configure", json={"should_succeed": False})
        assert response.status_code == 403
