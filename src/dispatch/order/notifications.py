"""Decides which people hear about order and division changes.

Store staff hear about new work, admins about store answers and about how
the divisions of a split order are progressing, customers about delivery
and returns.
"""

import json

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dispatch.completion.events import DivisionRollupChanged
from dispatch.completion.rollup import DivisionRollup
from dispatch.domain import dispatch
from dispatch.notifier import ADMIN_RECIPIENT, notify
from dispatch.order.events import (
    DivisionCreated,
    OrderSplitFailed,
    OrderStatusChanged,
    OrderTransferred,
    StoreResponded,
)
from dispatch.order.order import Order
from dispatch.order.statuses import AggregateStatus, OrderStatus, RecipientType

logger = structlog.get_logger(__name__)

_ROLLUP_NOTIFICATIONS = {
    AggregateStatus.COMPLETE.value: "all_stores_accepted",
    AggregateStatus.MIXED.value: "division_rejected",
    AggregateStatus.DELIVERED.value: "all_divisions_delivered",
    AggregateStatus.RETURNED.value: "all_divisions_returned",
}


@dispatch.event_handler(part_of=Order)
class OrderNotifications:
    @handle(DivisionCreated)
    def on_division_created(self, event: DivisionCreated) -> None:
        if not event.store_id:
            logger.warning("Division has no store to notify", order_id=str(event.order_id), store=event.store_name)
            return
        notify(
            RecipientType.STORE.value,
            event.store_id,
            "division_assigned",
            order_id=str(event.order_id),
            order_code=event.order_code,
            parent_order_code=event.parent_order_code,
            item_count=event.item_count,
            total_amount=event.total_amount,
        )

    @handle(OrderTransferred)
    def on_order_transferred(self, event: OrderTransferred) -> None:
        notify(
            RecipientType.STORE.value,
            event.store_id,
            "order_assigned",
            order_id=str(event.order_id),
            order_code=event.order_code,
        )

    @handle(StoreResponded)
    def on_store_responded(self, event: StoreResponded) -> None:
        notify(
            RecipientType.ADMIN.value,
            ADMIN_RECIPIENT,
            "store_responded",
            order_id=str(event.order_id),
            store_id=str(event.store_id) if event.store_id else None,
            response=event.response,
            rejection_reason=event.rejection_reason,
        )

    @handle(OrderSplitFailed)
    def on_split_failed(self, event: OrderSplitFailed) -> None:
        notify(
            RecipientType.ADMIN.value,
            ADMIN_RECIPIENT,
            "split_failed",
            order_id=str(event.order_id),
            order_code=event.order_code,
            failed_stores=json.loads(event.failed_stores),
        )

    @handle(OrderStatusChanged)
    def on_status_changed(self, event: OrderStatusChanged) -> None:
        if event.status not in (OrderStatus.DELIVERED.value, OrderStatus.RETURNED.value):
            return

        notification = f"order_{event.status}"
        payload = {"order_id": str(event.order_id), "reason": event.reason}
        notify(RecipientType.ADMIN.value, ADMIN_RECIPIENT, notification, **payload)

        try:
            order = current_domain.repository_for(Order).get(event.order_id)
        except ObjectNotFoundError:
            logger.warning("Order vanished before customer notification", order_id=str(event.order_id))
            return
        notify(RecipientType.CUSTOMER.value, order.customer_phone, notification, **payload)


@dispatch.event_handler(part_of=DivisionRollup)
class RollupNotifications:
    @handle(DivisionRollupChanged)
    def on_rollup_changed(self, event: DivisionRollupChanged) -> None:
        if event.previous_status == event.aggregate_status:
            return
        notification = _ROLLUP_NOTIFICATIONS.get(event.aggregate_status)
        if notification is None:
            return
        notify(
            RecipientType.ADMIN.value,
            ADMIN_RECIPIENT,
            notification,
            parent_order_id=str(event.parent_order_id),
            parent_order_code=event.parent_order_code,
            total_divisions=event.total_divisions,
        )
