"""Store responses: the assigned store confirms or declines its order."""

from enum import Enum

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.errors import StaleWriteIgnored
from dispatch.order.order import Order

logger = structlog.get_logger(__name__)


class ResponderRole(Enum):
    STORE = "store"
    ADMIN = "admin"


@dispatch.command(part_of="Order")
class RecordStoreResponse:
    order_id = Identifier(required=True)
    response = String(required=True, max_length=20)
    rejection_reason = String(max_length=500)
    responded_at = DateTime()
    responder_role = String(choices=ResponderRole, default=ResponderRole.STORE.value)
    responder_store_id = Identifier()


@dispatch.command_handler(part_of=Order)
class RecordStoreResponseHandler:
    @handle(RecordStoreResponse)
    def record_store_response(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if command.responder_role != ResponderRole.ADMIN.value and (
            not order.assigned_store_id or str(command.responder_store_id) != str(order.assigned_store_id)
        ):
            raise ValidationError({"responder_store_id": ["Only the assigned store can respond to this order"]})

        try:
            changed = order.record_store_response(
                command.response,
                responded_at=command.responded_at,
                rejection_reason=command.rejection_reason,
            )
        except StaleWriteIgnored as e:
            logger.info(
                "Stale store response ignored",
                order_id=str(order.id),
                incoming_at=str(e.incoming_at),
                recorded_at=str(e.recorded_at),
            )
            return False

        if changed:
            repo.add(order)
            logger.info("Store response recorded", order_id=str(order.id), response=command.response)
        return changed
