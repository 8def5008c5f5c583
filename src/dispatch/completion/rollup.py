"""Division rollup: persists the aggregate status of each split order.

The rollup is keyed by the original order's id so it outlives the original
row, which is deleted once its divisions exist. Recomputing is always from
the current division rows, so running the rollup any number of times, in
any order relative to the division updates, converges on the same record.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from dispatch.completion.aggregator import CompletionSummary, summarize
from dispatch.completion.events import DivisionRollupChanged
from dispatch.domain import dispatch
from dispatch.errors import AggregationInputMissing
from dispatch.order.order import Order
from dispatch.order.provenance import SPLIT_MARKERS, is_split_division, references_parent
from dispatch.order.statuses import AggregateStatus, OrderStatus

logger = structlog.get_logger(__name__)


@dispatch.aggregate
class DivisionRollup:
    parent_order_id = Identifier(identifier=True, required=True)
    parent_order_code = String(max_length=50)
    aggregate_status = String(choices=AggregateStatus, default=AggregateStatus.EMPTY.value)
    total_divisions = Integer(default=0)
    accepted_count = Integer(default=0)
    rejected_count = Integer(default=0)
    pending_count = Integer(default=0)
    delivered_count = Integer(default=0)
    returned_count = Integer(default=0)
    completion_percentage = Integer(default=0)
    updated_at = DateTime()

    @classmethod
    def start(cls, parent_order_id: str, parent_order_code: str | None = None):
        return cls(parent_order_id=parent_order_id, parent_order_code=parent_order_code)

    def record(self, summary: CompletionSummary) -> bool:
        """Copy the summary onto the rollup. Returns False when nothing changed."""
        values = {
            "aggregate_status": summary.aggregate_status.value,
            "total_divisions": summary.total,
            "accepted_count": summary.accepted,
            "rejected_count": summary.rejected,
            "pending_count": summary.pending,
            "delivered_count": summary.delivered,
            "returned_count": summary.returned,
            "completion_percentage": summary.completion_percentage,
        }
        if self.updated_at is not None and all(getattr(self, k) == v for k, v in values.items()):
            return False

        previous_status = self.aggregate_status if self.updated_at is not None else None
        now = datetime.now(UTC)
        for key, value in values.items():
            setattr(self, key, value)
        self.updated_at = now
        self.raise_(
            DivisionRollupChanged(
                parent_order_id=str(self.parent_order_id),
                parent_order_code=self.parent_order_code,
                previous_status=previous_status,
                aggregate_status=self.aggregate_status,
                total_divisions=self.total_divisions,
                accepted_count=self.accepted_count,
                rejected_count=self.rejected_count,
                delivered_count=self.delivered_count,
                returned_count=self.returned_count,
                changed_at=now,
            )
        )
        return True


# ---------------------------------------------------------------------------
# Division lookups
# ---------------------------------------------------------------------------
_PAGE_SIZE = 500


def all_orders(**filters) -> list:
    """Every Order matching ``filters``, fetched page by page."""
    query = current_domain.repository_for(Order)._dao.query
    if filters:
        query = query.filter(**filters)
    orders, offset = [], 0
    while True:
        page = query.offset(offset).limit(_PAGE_SIZE).all().items
        orders.extend(page)
        if len(page) < _PAGE_SIZE:
            return orders
        offset += _PAGE_SIZE


def find_order(reference: str | None):
    """Order by id, falling back to order code. None when it no longer exists."""
    if not reference:
        return None
    repo = current_domain.repository_for(Order)
    try:
        return repo.get(str(reference))
    except ObjectNotFoundError:
        matches = repo._dao.query.filter(order_code=str(reference)).all().items
        return matches[0] if matches else None


def unlinked_divisions(reference: str | None = None) -> list:
    """Legacy divisions: rows tied to their original order only by a split note.

    With ``reference``, only notes naming that id or code are fetched.
    """
    found = {}
    for marker in SPLIT_MARKERS:
        needle = f"{marker} {reference}" if reference else marker
        for order in all_orders(parent_order_id__isnull=True, order_details__icontains=needle):
            if is_split_division(order.order_details):
                found[str(order.id)] = order
    return list(found.values())


def divisions_of(parent_order_id: str, parent_order_code: str | None = None) -> list:
    """Every division of a parent: linked by ``parent_order_id`` or by a legacy split note."""
    references = [str(r) for r in (parent_order_id, parent_order_code) if r]

    found = {}
    for reference in references:
        for division in all_orders(parent_order_id=reference):
            found[str(division.id)] = division
        for candidate in unlinked_divisions(reference):
            if references_parent(candidate.order_details, *references):
                found[str(candidate.id)] = candidate

    return sorted(found.values(), key=lambda d: (d.order_code or "", str(d.id)))


def roll_up(parent_reference: str) -> CompletionSummary | None:
    """Recompute and persist the rollup of one original order.

    Returns None for orders that were never split.
    """
    parent = find_order(parent_reference)
    parent_id = str(parent.id) if parent is not None else str(parent_reference)
    divisions = divisions_of(parent_id, parent.order_code if parent is not None else None)

    rollup_repo = current_domain.repository_for(DivisionRollup)
    try:
        rollup = rollup_repo.get(parent_id)
    except ObjectNotFoundError:
        rollup = None

    if not divisions:
        if parent is not None and parent.order_status == OrderStatus.SPLITTING.value:
            raise AggregationInputMissing(parent_id)
        if rollup is None:
            return None

    summary = summarize(divisions)
    if rollup is None:
        if parent is not None:
            parent_code = parent.order_code
        else:
            parent_code = next((d.parent_order_code for d in divisions if d.parent_order_code), None)
        rollup = DivisionRollup.start(parent_id, parent_code)
    if rollup.record(summary):
        rollup_repo.add(rollup)
        logger.info(
            "Division rollup recorded",
            parent_order_id=parent_id,
            aggregate_status=summary.aggregate_status.value,
            divisions=summary.total,
        )

    if parent is not None and parent.record_aggregate(summary.aggregate_status.value):
        current_domain.repository_for(Order).add(parent)
    return summary


def current_rollup(parent_order_id: str):
    try:
        return current_domain.repository_for(DivisionRollup).get(str(parent_order_id))
    except ObjectNotFoundError:
        return None


# ---------------------------------------------------------------------------
# Command + handler
# ---------------------------------------------------------------------------
@dispatch.command(part_of="DivisionRollup")
class RollupDivisions:
    """Recompute the aggregate status of one original order."""

    parent_order_id = String(required=True, max_length=255)  # id, or code for legacy rows


@dispatch.command_handler(part_of=DivisionRollup)
class RollupDivisionsHandler:
    @handle(RollupDivisions)
    def rollup_divisions(self, command):
        return roll_up(command.parent_order_id)
