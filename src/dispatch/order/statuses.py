"""Status taxonomy for orders, divisions and store responses.

Pure data. The synonym sets collapse the two spellings stores use for the
same answer: ``available``/``accepted`` both mean the store can fulfill,
``unavailable``/``rejected`` both mean it declined.
"""

from enum import Enum


class OrderStatus(Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    RETURNED = "returned"
    REJECTED = "rejected"
    CUSTOMER_REJECTED = "customer_rejected"
    SPLITTING = "splitting"
    SPLIT_FAILED = "split_failed"


class StoreResponseStatus(Enum):
    PENDING = "pending"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class DivisionStatus(Enum):
    """Display status of a single division."""

    DELIVERED = "delivered"
    RETURNED = "returned"
    REJECTED = "rejected"
    ACCEPTED = "accepted"
    ASSIGNED = "assigned"
    PROCESSING = "processing"
    PENDING = "pending"


class AggregateStatus(Enum):
    """Overall status of an original order, derived from all its divisions."""

    DELIVERED = "delivered"
    RETURNED = "returned"
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    MIXED = "mixed"
    PROCESSING = "processing"
    EMPTY = "empty"


class RecipientType(Enum):
    STORE = "store"
    ADMIN = "admin"
    CUSTOMER = "customer"


ACCEPTED_RESPONSES = frozenset({StoreResponseStatus.AVAILABLE.value, StoreResponseStatus.ACCEPTED.value})
DECLINED_RESPONSES = frozenset({StoreResponseStatus.UNAVAILABLE.value, StoreResponseStatus.REJECTED.value})
# ``None`` stands for "the store has not answered yet"
OPEN_RESPONSES = frozenset({None, "", StoreResponseStatus.PENDING.value})

# An order in one of these states is on its way out and never active
TRANSIENT_STATUSES = frozenset({OrderStatus.SPLITTING.value})

UNKNOWN_STORE = "Unknown store"
