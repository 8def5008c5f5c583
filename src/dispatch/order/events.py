"""Domain events for the Order aggregate.

Events are versioned, immutable facts. They drive the division board
projection, the change feed watched by the reconciler, and notifications.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from dispatch.domain import dispatch


@dispatch.event(part_of="Order")
class OrderPlaced:
    """A customer order was recorded and awaits routing."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_code = String(required=True)
    customer_name = String()
    main_store_name = String()
    item_count = Integer(required=True)
    total_amount = Float(required=True)
    placed_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class OrderTransferred:
    """A single-store order was assigned directly to its store."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_code = String(required=True)
    store_id = Identifier(required=True)
    store_name = String(required=True)
    previous_status = String(required=True)
    transferred_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class DivisionCreated:
    """A per-store division was created from an original order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_code = String(required=True)
    parent_order_id = Identifier(required=True)
    parent_order_code = String()
    store_id = Identifier()  # empty when the store could not be resolved
    store_name = String(required=True)
    item_count = Integer(required=True)
    total_amount = Float(required=True)
    created_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class OrderSplitStarted:
    """All divisions exist; the original order is about to be removed."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_code = String(required=True)
    division_count = Integer(required=True)
    started_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class OrderSplitFailed:
    """At least one store group failed; the original order was kept."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_code = String(required=True)
    failed_stores = Text(required=True)  # JSON list of store names
    outcomes = Text(required=True)  # JSON list of per-group outcomes
    failed_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class StoreResponded:
    """The assigned store confirmed or declined its order."""

    __version__ = 1

    order_id = Identifier(required=True)
    parent_order_id = Identifier()
    store_id = Identifier()
    response = String(required=True)
    rejection_reason = String()
    responded_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class OrderStatusChanged:
    """An order or division moved along its fulfillment lifecycle."""

    __version__ = 1

    order_id = Identifier(required=True)
    parent_order_id = Identifier()
    store_id = Identifier()
    previous_status = String(required=True)
    status = String(required=True)
    reason = String()
    changed_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class AggregateStatusRecorded:
    """The derived status of an original order's divisions was written back."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String()
    aggregate_status = String(required=True)
    recorded_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class DivisionLinked:
    """A legacy division row got its explicit parent link."""

    __version__ = 1

    order_id = Identifier(required=True)
    parent_order_id = Identifier(required=True)
    parent_reference = String(required=True)
    linked_at = DateTime(required=True)
