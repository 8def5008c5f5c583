"""Response reminders: nudge stores that have not answered an assigned order."""

import os
from datetime import UTC, datetime, timedelta

import structlog
from protean import handle
from protean.fields import Integer
from protean.utils.globals import current_domain

from dispatch.completion.rollup import all_orders
from dispatch.domain import dispatch
from dispatch.notifier import notify
from dispatch.order.order import Order
from dispatch.order.statuses import OrderStatus, RecipientType

logger = structlog.get_logger(__name__)


def _default_threshold() -> int:
    return int(os.environ.get("REMINDER_AFTER_MINUTES", "30"))


@dispatch.command(part_of="Order")
class RemindPendingStores:
    after_minutes = Integer(min_value=1)


@dispatch.command_handler(part_of=Order)
class RemindPendingStoresHandler:
    @handle(RemindPendingStores)
    def remind_pending_stores(self, command):
        cutoff = datetime.now(UTC) - timedelta(minutes=command.after_minutes or _default_threshold())
        repo = current_domain.repository_for(Order)

        reminded = 0
        for order in all_orders(order_status=OrderStatus.ASSIGNED.value):
            waiting_since = order.awaiting_response_since()
            if waiting_since is None or waiting_since > cutoff:
                continue
            sent = notify(
                RecipientType.STORE.value,
                order.assigned_store_id,
                "response_reminder",
                order_id=str(order.id),
                order_code=order.order_code,
                waiting_since=waiting_since.isoformat(),
            )
            if sent:
                order.note_reminder_sent()
                repo.add(order)
                reminded += 1

        logger.info("Response reminders sent", count=reminded)
        return reminded
