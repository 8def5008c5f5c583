"""Dispatch bounded context: routing customer orders to stores.

Splits multi-store orders into per-store divisions (or transfers single-store
orders directly) and keeps each original order's aggregate status derived from
its divisions. Uses CQRS: orders are plain aggregates persisted row by row,
because the split procedure has no multi-row transaction to lean on.
"""

from protean.domain import Domain

from dispatch.utils.logging import configure_logging

configure_logging()

dispatch = Domain(name="dispatch")
