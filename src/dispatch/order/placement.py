"""Order placement: command and handler."""

import json

from protean import handle
from protean.fields import String, Text
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.order.order import Order


@dispatch.command(part_of="Order")
class PlaceOrder:
    """Record a customer order; it waits in ``pending`` until routed."""

    customer_name = String(max_length=255)
    customer_phone = String(max_length=50)
    customer_address = String(max_length=500)
    customer_notes = Text()
    main_store_name = String(max_length=255)
    order_details = Text()
    order_code = String(max_length=50)
    items = Text(required=True)  # JSON list of item dicts


@dispatch.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        order = Order.place(
            items_data=items_data,
            customer_name=command.customer_name,
            customer_phone=command.customer_phone,
            customer_address=command.customer_address,
            customer_notes=command.customer_notes,
            main_store_name=command.main_store_name,
            order_details=command.order_details,
            order_code=command.order_code,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)
