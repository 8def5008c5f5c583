"""Application tests for the DivisionBoard projection."""

import json

from dispatch.completion.rollup import divisions_of
from dispatch.order.placement import PlaceOrder
from dispatch.order.progress import UpdateOrderStatus
from dispatch.order.responses import RecordStoreResponse
from dispatch.planning.planner import DivisionPlanner
from dispatch.projections.division_board import DivisionBoard
from dispatch.store.store import RegisterStore
from protean import current_domain


def _split_order():
    current_domain.process(RegisterStore(name="Vendor One"), asynchronous=False)
    current_domain.process(RegisterStore(name="Vendor Two"), asynchronous=False)
    items = [
        {"product_name": "Apples", "price": 3.0, "main_store": "Vendor One"},
        {"product_name": "Bread", "price": 4.0, "main_store": "Vendor Two"},
    ]
    order_id = current_domain.process(PlaceOrder(order_code="ORD-BOARD", items=json.dumps(items)), asynchronous=False)
    DivisionPlanner().route(order_id)
    return order_id, divisions_of(order_id)


def _row(division):
    return current_domain.repository_for(DivisionBoard).get(str(division.id))


class TestDivisionBoard:
    def test_row_per_division(self):
        order_id, divisions = _split_order()

        rows = [_row(d) for d in divisions]

        assert {r.parent_order_id for r in rows} == {order_id}
        assert {r.parent_order_code for r in rows} == {"ORD-BOARD"}
        assert {r.display_status for r in rows} == {"assigned"}
        assert sorted(r.total_amount for r in rows) == [3.0, 4.0]

    def test_store_answer_updates_row(self):
        _, divisions = _split_order()
        current_domain.process(
            RecordStoreResponse(
                order_id=str(divisions[0].id), response="unavailable", responder_role="admin", rejection_reason="Closed"
            ),
            asynchronous=False,
        )

        row = _row(divisions[0])
        assert row.display_status == "rejected"
        assert row.rejection_reason == "Closed"

    def test_status_change_updates_row(self):
        _, divisions = _split_order()
        current_domain.process(UpdateOrderStatus(order_id=str(divisions[0].id), status="preparing"), asynchronous=False)

        row = _row(divisions[0])
        assert row.order_status == "preparing"
        assert row.display_status == "processing"

    def test_originals_are_not_on_the_board(self):
        order_id, _ = _split_order()
        assert current_domain.repository_for(DivisionBoard)._dao.query.filter(division_id=order_id).all().items == []
