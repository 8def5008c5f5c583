"""Division board: one row per division, for store and admin dashboards."""

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from dispatch.completion.aggregator import view
from dispatch.domain import dispatch
from dispatch.order.events import (
    DivisionCreated,
    DivisionLinked,
    OrderStatusChanged,
    StoreResponded,
)
from dispatch.order.order import Order


@dispatch.projection
class DivisionBoard:
    division_id = Identifier(identifier=True, required=True)
    parent_order_id = Identifier(required=True)
    parent_order_code = String()
    order_code = String(required=True)
    store_id = Identifier()
    store_name = String()
    order_status = String(required=True)
    store_response_status = String()
    rejection_reason = String()
    return_reason = String()
    display_status = String(required=True)
    item_count = Integer(default=0)
    total_amount = Float(default=0.0)
    created_at = DateTime()
    updated_at = DateTime()


def _upsert(order_id, create: bool = False) -> None:
    repo = current_domain.repository_for(DivisionBoard)
    try:
        row = repo.get(str(order_id))
    except ObjectNotFoundError:
        if not create:
            return
        row = None

    order = current_domain.repository_for(Order).get(str(order_id))
    values = {
        "parent_order_id": order.parent_reference,
        "parent_order_code": order.parent_order_code,
        "order_code": order.order_code,
        "store_id": str(order.assigned_store_id) if order.assigned_store_id else None,
        "store_name": order.main_store_name,
        "order_status": order.order_status,
        "store_response_status": order.store_response_status,
        "rejection_reason": order.rejection_reason,
        "return_reason": order.effective_return_reason,
        "display_status": view(order).status.value,
        "item_count": order.items_count,
        "total_amount": order.total_amount,
        "updated_at": order.updated_at,
    }
    if row is None:
        row = DivisionBoard(division_id=str(order.id), created_at=order.created_at, **values)
    else:
        for key, value in values.items():
            setattr(row, key, value)
    repo.add(row)


@dispatch.projector(projector_for=DivisionBoard, aggregates=[Order])
class DivisionBoardProjector:
    @on(DivisionCreated)
    def on_division_created(self, event):
        _upsert(event.order_id, create=True)

    @on(DivisionLinked)
    def on_division_linked(self, event):
        _upsert(event.order_id, create=True)

    @on(StoreResponded)
    def on_store_responded(self, event):
        _upsert(event.order_id)

    @on(OrderStatusChanged)
    def on_status_changed(self, event):
        _upsert(event.order_id)
