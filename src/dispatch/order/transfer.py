"""Order transfer: assign a whole order to a single store."""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.errors import VendorNotFound
from dispatch.order.order import Order
from dispatch.store.store import find_store_by_id, find_store_by_name

logger = structlog.get_logger(__name__)


@dispatch.command(part_of="Order")
class TransferOrder:
    """Assign the order to a store, identified by id or by name."""

    order_id = Identifier(required=True)
    store_name = String(required=True, max_length=255)
    store_id = Identifier()


@dispatch.command_handler(part_of=Order)
class TransferOrderHandler:
    @handle(TransferOrder)
    def transfer_order(self, command):
        store = find_store_by_id(command.store_id) or find_store_by_name(command.store_name)
        if store is None:
            raise VendorNotFound(command.store_name)

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.transfer_to(str(store.id), store.name)
        if changed:
            repo.add(order)
            logger.info("Order transferred", order_id=str(order.id), store_id=str(store.id))
        else:
            logger.info("Order already assigned to store", order_id=str(order.id), store_id=str(store.id))
        return changed
