"""Application tests for routing single-store orders (transfer)."""

import json

import pytest
from dispatch.completion.rollup import all_orders
from dispatch.errors import NoItemsToRoute, VendorNotFound
from dispatch.notifier import get_notifier
from dispatch.order.order import Order
from dispatch.order.placement import PlaceOrder
from dispatch.order.transfer import TransferOrder
from dispatch.planning.planner import DivisionPlanner
from dispatch.store.store import RegisterStore, Store
from protean import current_domain
from protean.exceptions import ValidationError


def _register_store(name):
    return current_domain.process(RegisterStore(name=name), asynchronous=False)


def _place_order(items, **overrides):
    defaults = {"customer_name": "Sam Carter", "customer_phone": "+15550001", "items": json.dumps(items)}
    defaults.update(overrides)
    return current_domain.process(PlaceOrder(**defaults), asynchronous=False)


class TestRegisterStore:
    def test_register_returns_id(self):
        store_id = _register_store("Vendor One")
        assert current_domain.repository_for(Store).get(store_id).name == "Vendor One"

    def test_duplicate_name_rejected(self):
        _register_store("Vendor One")
        with pytest.raises(ValidationError):
            _register_store(" vendor one ")


class TestTransferRouting:
    def test_single_store_order_is_transferred(self):
        store_id = _register_store("Vendor One")
        order_id = _place_order(
            [
                {"product_name": "Apples", "main_store": "Vendor One"},
                {"product_name": "Bread", "main_store": "Vendor One"},
            ]
        )

        outcome = DivisionPlanner().route(order_id)

        assert outcome.success
        assert outcome.path == "transfer"
        order = current_domain.repository_for(Order).get(order_id)
        assert order.assigned_store_id == store_id
        assert order.order_status == "assigned"
        assert len(all_orders()) == 1

    def test_transfer_notifies_store_once(self):
        store_id = _register_store("Vendor One")
        order_id = _place_order([{"product_name": "Apples", "main_store": "Vendor One"}])

        DivisionPlanner().route(order_id)
        DivisionPlanner().route(order_id)

        assert get_notifier().events_for("store", store_id) == ["order_assigned"]

    def test_order_level_store_name_is_used(self):
        store_id = _register_store("Vendor One")
        order_id = _place_order([{"product_name": "Apples"}], main_store_name="Vendor One")

        DivisionPlanner().route(order_id)

        assert current_domain.repository_for(Order).get(order_id).assigned_store_id == store_id

    def test_unregistered_store_fails_transfer(self):
        order_id = _place_order([{"product_name": "Apples", "main_store": "Corner Shop"}])
        with pytest.raises(VendorNotFound):
            DivisionPlanner().route(order_id)
        assert current_domain.repository_for(Order).get(order_id).order_status == "pending"

    def test_inactive_store_is_not_matched(self):
        store_id = _register_store("Vendor One")
        repo = current_domain.repository_for(Store)
        store = repo.get(store_id)
        store.deactivate()
        repo.add(store)

        order_id = _place_order([{"product_name": "Apples", "main_store": "Vendor One"}])
        with pytest.raises(VendorNotFound):
            DivisionPlanner().route(order_id)

    def test_order_without_items(self):
        order_id = _place_order([])
        with pytest.raises(NoItemsToRoute):
            DivisionPlanner().route(order_id)


class TestTransferOrderCommand:
    def test_transfer_by_name(self):
        store_id = _register_store("Vendor Two")
        order_id = _place_order([{"product_name": "Apples"}])

        changed = current_domain.process(TransferOrder(order_id=order_id, store_name="VENDOR TWO"), asynchronous=False)

        assert changed
        order = current_domain.repository_for(Order).get(order_id)
        assert order.assigned_store_id == store_id
        assert order.main_store_name == "Vendor Two"
        assert json.loads(order.items_snapshot)[0]["store_name"] == "Vendor Two"

    def test_repeat_transfer_reports_no_change(self):
        _register_store("Vendor Two")
        order_id = _place_order([{"product_name": "Apples"}])
        current_domain.process(TransferOrder(order_id=order_id, store_name="Vendor Two"), asynchronous=False)

        changed = current_domain.process(TransferOrder(order_id=order_id, store_name="Vendor Two"), asynchronous=False)

        assert changed is False

    def test_unknown_store(self):
        order_id = _place_order([{"product_name": "Apples"}])
        with pytest.raises(VendorNotFound):
            current_domain.process(TransferOrder(order_id=order_id, store_name="Nowhere"), asynchronous=False)
