"""Fulfillment progress: moves an order or division along its lifecycle.

A division may only be delivered or returned once every division of its
original order has been confirmed by its store.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from dispatch.completion.aggregator import summarize
from dispatch.completion.rollup import divisions_of, find_order
from dispatch.domain import dispatch
from dispatch.order.order import Order
from dispatch.order.statuses import OrderStatus

logger = structlog.get_logger(__name__)

_GATED_STATUSES = {OrderStatus.DELIVERED.value, OrderStatus.RETURNED.value}


@dispatch.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, max_length=30)
    reason = String(max_length=500)


def _assert_divisions_confirmed(division) -> None:
    reference = division.parent_reference
    parent = find_order(reference)
    parent_id = str(parent.id) if parent is not None else reference
    summary = summarize(divisions_of(parent_id, parent.order_code if parent is not None else None))
    if not summary.can_deliver:
        raise ValidationError(
            {"order_status": [f"Divisions of order {reference} are {summary.aggregate_status.value}, not complete"]}
        )


@dispatch.command_handler(part_of=Order)
class UpdateOrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_order_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if order.is_division and command.status in _GATED_STATUSES and command.status != order.order_status:
            _assert_divisions_confirmed(order)

        changed = order.change_status(command.status, reason=command.reason)
        if changed:
            repo.add(order)
            logger.info("Order status changed", order_id=str(order.id), status=command.status)
        return changed
