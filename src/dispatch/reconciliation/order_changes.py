"""Publishes row-change hints for every persisted Order change.

Deletes are published by the planner, which removes split originals
outside of any event.
"""

import structlog
from protean.utils.mixins import handle

from dispatch.domain import dispatch
from dispatch.order.events import (
    AggregateStatusRecorded,
    DivisionCreated,
    DivisionLinked,
    OrderPlaced,
    OrderSplitFailed,
    OrderSplitStarted,
    OrderStatusChanged,
    OrderTransferred,
    StoreResponded,
)
from dispatch.order.order import Order
from dispatch.reconciliation.feed import ChangeKind, RowChange, get_change_feed

logger = structlog.get_logger(__name__)


def _publish(kind: ChangeKind, order_id, parent_order_id=None) -> None:
    change = RowChange(
        table="orders",
        kind=kind,
        row_id=str(order_id),
        parent_order_id=str(parent_order_id) if parent_order_id else None,
    )
    get_change_feed().publish(change)


@dispatch.event_handler(part_of=Order)
class OrderChangePublisher:
    @handle(OrderPlaced)
    def on_order_placed(self, event: OrderPlaced) -> None:
        _publish(ChangeKind.INSERT, event.order_id)

    @handle(DivisionCreated)
    def on_division_created(self, event: DivisionCreated) -> None:
        _publish(ChangeKind.INSERT, event.order_id, event.parent_order_id)

    @handle(OrderTransferred)
    def on_order_transferred(self, event: OrderTransferred) -> None:
        _publish(ChangeKind.UPDATE, event.order_id)

    @handle(OrderSplitStarted)
    def on_split_started(self, event: OrderSplitStarted) -> None:
        _publish(ChangeKind.UPDATE, event.order_id)

    @handle(OrderSplitFailed)
    def on_split_failed(self, event: OrderSplitFailed) -> None:
        _publish(ChangeKind.UPDATE, event.order_id)

    @handle(StoreResponded)
    def on_store_responded(self, event: StoreResponded) -> None:
        _publish(ChangeKind.UPDATE, event.order_id, event.parent_order_id)

    @handle(OrderStatusChanged)
    def on_status_changed(self, event: OrderStatusChanged) -> None:
        _publish(ChangeKind.UPDATE, event.order_id, event.parent_order_id)

    @handle(DivisionLinked)
    def on_division_linked(self, event: DivisionLinked) -> None:
        _publish(ChangeKind.UPDATE, event.order_id, event.parent_order_id)

    @handle(AggregateStatusRecorded)
    def on_aggregate_recorded(self, event: AggregateStatusRecorded) -> None:
        # Written by the reconciler itself; republishing would loop
        logger.debug("Aggregate status recorded", order_id=str(event.order_id), status=event.aggregate_status)
