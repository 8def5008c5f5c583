"""Application tests for status updates and delivery gating."""

import json

import pytest
from dispatch.completion.rollup import divisions_of
from dispatch.notifier import get_notifier
from dispatch.order.order import Order
from dispatch.order.placement import PlaceOrder
from dispatch.order.progress import UpdateOrderStatus
from dispatch.order.responses import RecordStoreResponse
from dispatch.planning.planner import DivisionPlanner
from dispatch.store.store import RegisterStore
from protean import current_domain
from protean.exceptions import ValidationError


def _split_order():
    current_domain.process(RegisterStore(name="Vendor One"), asynchronous=False)
    current_domain.process(RegisterStore(name="Vendor Two"), asynchronous=False)
    items = [
        {"product_name": "Apples", "main_store": "Vendor One"},
        {"product_name": "Bread", "main_store": "Vendor Two"},
    ]
    order_id = current_domain.process(
        PlaceOrder(customer_phone="+15550001", items=json.dumps(items)),
        asynchronous=False,
    )
    DivisionPlanner().route(order_id)
    return order_id, divisions_of(order_id)


def _accept(division):
    current_domain.process(
        RecordStoreResponse(order_id=str(division.id), response="accepted", responder_role="admin"),
        asynchronous=False,
    )


def _update(order_id, status, reason=None):
    return current_domain.process(UpdateOrderStatus(order_id=order_id, status=status, reason=reason), asynchronous=False)


class TestDeliveryGating:
    def test_cannot_deliver_while_a_store_has_not_answered(self):
        _, divisions = _split_order()
        _accept(divisions[0])

        with pytest.raises(ValidationError):
            _update(str(divisions[0].id), "delivered")

    def test_cannot_deliver_when_a_store_declined(self):
        _, divisions = _split_order()
        _accept(divisions[0])
        current_domain.process(
            RecordStoreResponse(order_id=str(divisions[1].id), response="rejected", responder_role="admin"),
            asynchronous=False,
        )

        with pytest.raises(ValidationError):
            _update(str(divisions[0].id), "delivered")

    def test_deliver_once_every_store_accepted(self):
        _, divisions = _split_order()
        for division in divisions:
            _accept(division)

        assert _update(str(divisions[0].id), "delivered")
        assert current_domain.repository_for(Order).get(str(divisions[0].id)).order_status == "delivered"

    def test_second_division_can_follow_the_first(self):
        _, divisions = _split_order()
        for division in divisions:
            _accept(division)
        _update(str(divisions[0].id), "delivered")

        assert _update(str(divisions[1].id), "delivered")

    def test_delivery_notifies_admin_and_customer(self):
        _, divisions = _split_order()
        for division in divisions:
            _accept(division)
        _update(str(divisions[0].id), "delivered")

        notifier = get_notifier()
        assert "order_delivered" in notifier.events_for("admin")
        assert notifier.events_for("customer", "+15550001") == ["order_delivered"]

    def test_return_needs_reason(self):
        _, divisions = _split_order()
        for division in divisions:
            _accept(division)

        with pytest.raises(ValidationError):
            _update(str(divisions[0].id), "returned")
        assert _update(str(divisions[0].id), "returned", reason="Damaged")

    def test_other_statuses_are_not_gated(self):
        _, divisions = _split_order()
        assert _update(str(divisions[0].id), "preparing")

    def test_repeat_status_is_noop(self):
        _, divisions = _split_order()
        _update(str(divisions[0].id), "preparing")
        assert _update(str(divisions[0].id), "preparing") is False
