"""Dispatch error taxonomy.

Routing errors a caller can fix (no items, unknown store) are validation
errors, so the API layer maps them to 400 like any other invariant breach.
The rest describe degraded paths that callers reconcile rather than retry.
"""

from protean.exceptions import ValidationError


class NoItemsToRoute(ValidationError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__({"items": [f"Order {order_id} has no items to route"]})


class VendorNotFound(ValidationError):
    def __init__(self, store_name: str):
        self.store_name = store_name
        super().__init__({"store_name": [f"Store '{store_name}' is not registered"]})


class DispatchError(Exception):
    """Base class for non-validation dispatch failures."""


class PartialSplitFailure(DispatchError):
    """One or more store groups could not be turned into a division."""

    def __init__(self, order_id: str, failed: list[dict]):
        self.order_id = order_id
        self.failed = failed
        stores = ", ".join(f"{r['store_name']} ({r.get('error') or 'unknown error'})" for r in failed)
        super().__init__(f"Split of order {order_id} failed for: {stores}")


class RemoteProcedureUnavailable(DispatchError):
    """The remote split procedure could not be used; the local path takes over."""


class AggregationInputMissing(DispatchError):
    """An order marked as split has no divisions to aggregate."""

    def __init__(self, parent_order_id: str):
        self.parent_order_id = parent_order_id
        super().__init__(f"No divisions found for split order {parent_order_id}")


class StaleWriteIgnored(DispatchError):
    """A store response older than the one already recorded was dropped."""

    def __init__(self, order_id: str, incoming_at, recorded_at):
        self.order_id = order_id
        self.incoming_at = incoming_at
        self.recorded_at = recorded_at
        super().__init__(f"Response for order {order_id} at {incoming_at} is older than {recorded_at}")


class FeedUnavailable(DispatchError):
    """The change-notification transport dropped; callers fall back to polling."""
