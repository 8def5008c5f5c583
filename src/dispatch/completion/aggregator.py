"""Completion aggregation: one canonical derivation of division and order status.

Everything here is a pure function of the current division rows: the same
set of rows always yields the same result, whatever order the changes that
produced them arrived in. Dashboards, delivery gating and the rollup writer
all read these functions rather than re-deriving status themselves.
"""

from dataclasses import dataclass

from dispatch.order.statuses import (
    ACCEPTED_RESPONSES,
    DECLINED_RESPONSES,
    OPEN_RESPONSES,
    AggregateStatus,
    DivisionStatus,
    OrderStatus,
)

_PROCESSING_STATES = {OrderStatus.PREPARING.value, OrderStatus.READY.value}
_AWAITING_STATES = {OrderStatus.PENDING.value, OrderStatus.ASSIGNED.value}


@dataclass(frozen=True)
class DivisionState:
    """The fields of a division that status derivation depends on."""

    order_id: str | None = None
    store_name: str | None = None
    order_status: str | None = None
    store_response_status: str | None = None
    rejection_reason: str | None = None

    @classmethod
    def from_record(cls, record) -> "DivisionState":
        """Build from an Order aggregate, a cached row dict or another DivisionState."""
        if isinstance(record, cls):
            return record
        get = record.get if isinstance(record, dict) else lambda key: getattr(record, key, None)
        order_id = get("order_id") or get("id")
        return cls(
            order_id=str(order_id) if order_id else None,
            store_name=get("assigned_store_name") or get("main_store_name") or get("store_name"),
            order_status=get("order_status"),
            store_response_status=get("store_response_status"),
            rejection_reason=get("rejection_reason"),
        )


@dataclass(frozen=True)
class DivisionView:
    state: DivisionState
    status: DivisionStatus
    rejection_reason: str | None = None


@dataclass(frozen=True)
class CompletionSummary:
    aggregate_status: AggregateStatus
    total: int
    accepted: int
    rejected: int
    pending: int
    delivered: int
    returned: int
    divisions: tuple[DivisionView, ...] = ()

    @property
    def completion_percentage(self) -> int:
        if not self.total:
            return 0
        return round(self.accepted / self.total * 100)

    @property
    def can_deliver(self) -> bool:
        return self.aggregate_status in (AggregateStatus.COMPLETE, AggregateStatus.DELIVERED)


def division_status(record) -> DivisionStatus:
    """Display status of one division. First matching rule wins."""
    d = DivisionState.from_record(record)
    if d.order_status == OrderStatus.DELIVERED.value:
        return DivisionStatus.DELIVERED
    if d.order_status == OrderStatus.RETURNED.value:
        return DivisionStatus.RETURNED
    if d.store_response_status in DECLINED_RESPONSES or d.order_status == OrderStatus.REJECTED.value:
        return DivisionStatus.REJECTED
    if d.store_response_status in ACCEPTED_RESPONSES:
        return DivisionStatus.ACCEPTED
    if d.order_status == OrderStatus.ASSIGNED.value:
        return DivisionStatus.ASSIGNED
    if d.order_status in _PROCESSING_STATES:
        return DivisionStatus.PROCESSING
    return DivisionStatus.PENDING


def view(record) -> DivisionView:
    d = DivisionState.from_record(record)
    status = division_status(d)
    return DivisionView(
        state=d,
        status=status,
        rejection_reason=d.rejection_reason if status == DivisionStatus.REJECTED else None,
    )


def aggregate_status(records) -> AggregateStatus:
    """Overall status of an original order from all of its divisions."""
    divisions = [DivisionState.from_record(r) for r in records]
    if not divisions:
        return AggregateStatus.EMPTY

    statuses = [division_status(d) for d in divisions]
    if all(s == DivisionStatus.DELIVERED for s in statuses):
        return AggregateStatus.DELIVERED
    if all(s == DivisionStatus.RETURNED for s in statuses):
        return AggregateStatus.RETURNED

    any_rejected = any(s == DivisionStatus.REJECTED for s in statuses)
    if all(d.store_response_status in ACCEPTED_RESPONSES for d in divisions) and not any_rejected:
        return AggregateStatus.COMPLETE
    if any(d.store_response_status in OPEN_RESPONSES or d.order_status in _AWAITING_STATES for d in divisions):
        return AggregateStatus.INCOMPLETE
    if any_rejected:
        return AggregateStatus.MIXED
    return AggregateStatus.PROCESSING


def summarize(records) -> CompletionSummary:
    divisions = [DivisionState.from_record(r) for r in records]
    return CompletionSummary(
        aggregate_status=aggregate_status(divisions),
        total=len(divisions),
        accepted=sum(1 for d in divisions if d.store_response_status in ACCEPTED_RESPONSES),
        rejected=sum(1 for d in divisions if d.store_response_status in DECLINED_RESPONSES),
        pending=sum(1 for d in divisions if d.store_response_status in OPEN_RESPONSES),
        delivered=sum(1 for d in divisions if d.order_status == OrderStatus.DELIVERED.value),
        returned=sum(1 for d in divisions if d.order_status == OrderStatus.RETURNED.value),
        divisions=tuple(view(d) for d in divisions),
    )


def can_deliver(records) -> bool:
    return summarize(records).can_deliver
