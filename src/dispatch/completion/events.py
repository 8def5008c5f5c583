"""Domain events for the DivisionRollup aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from dispatch.domain import dispatch


@dispatch.event(part_of="DivisionRollup")
class DivisionRollupChanged:
    """The derived status or counts of an original order's divisions changed."""

    __version__ = 1

    parent_order_id = Identifier(required=True)
    parent_order_code = String()
    previous_status = String()
    aggregate_status = String(required=True)
    total_divisions = Integer(required=True)
    accepted_count = Integer(required=True)
    rejected_count = Integer(required=True)
    delivered_count = Integer(required=True)
    returned_count = Integer(required=True)
    changed_at = DateTime(required=True)
