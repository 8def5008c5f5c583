"""Division planner: routes an order to its store(s).

An order whose items come from one store is transferred to it. An order
with items from two or more stores is split into one division per store.

The split is a saga of independent writes, each its own command:

    CreateDivision × N  →  MarkOrderSplitting  →  RemoveSplitOrder

The original order is marked and removed only after every division exists.
If any division cannot be created the original is kept, moved to
``split_failed`` with the per-group outcomes, and a later split creates
only the divisions that are still missing. A split interrupted after the
original was marked is finished by running it again.

A remote split procedure, when configured, is tried first; the local saga
runs whenever it is unavailable or reports failure.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from dispatch.completion.rollup import divisions_of
from dispatch.domain import dispatch
from dispatch.errors import NoItemsToRoute, RemoteProcedureUnavailable, VendorNotFound
from dispatch.order.order import Order
from dispatch.order.statuses import TRANSIENT_STATUSES, OrderStatus
from dispatch.order.transfer import TransferOrder
from dispatch.planning.grouping import StoreGroup, group_items, name_key
from dispatch.planning.outcome import GroupOutcome, SplitOutcome
from dispatch.reconciliation.feed import ChangeKind, RowChange, get_change_feed
from dispatch.splitter import get_split_procedure
from dispatch.store.store import active_stores

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Saga steps
# ---------------------------------------------------------------------------
@dispatch.command(part_of="Order")
class CreateDivision:
    parent_order_id = Identifier(required=True)
    store_name = String(required=True, max_length=255)
    store_id = Identifier()
    items = Text(required=True)  # JSON list of item dicts
    index = Integer(required=True, min_value=1)


@dispatch.command(part_of="Order")
class MarkOrderSplitting:
    order_id = Identifier(required=True)
    division_count = Integer(required=True)


@dispatch.command(part_of="Order")
class RemoveSplitOrder:
    order_id = Identifier(required=True)


@dispatch.command(part_of="Order")
class MarkSplitFailed:
    order_id = Identifier(required=True)
    outcomes = Text(required=True)  # JSON list of group outcomes


@dispatch.command_handler(part_of=Order)
class SplitStepsHandler:
    @handle(CreateDivision)
    def create_division(self, command):
        repo = current_domain.repository_for(Order)
        parent = repo.get(command.parent_order_id)
        division = Order.divide(
            parent,
            store_name=command.store_name,
            store_id=command.store_id,
            items_data=json.loads(command.items),
            index=command.index,
        )
        repo.add(division)
        return str(division.id)

    @handle(MarkOrderSplitting)
    def mark_order_splitting(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.mark_splitting(command.division_count)
        repo.add(order)

    @handle(RemoveSplitOrder)
    def remove_split_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if order.order_status != OrderStatus.SPLITTING.value:
            raise ValidationError({"order_status": ["Only an order marked as splitting can be removed"]})
        repo._dao.delete(order)

    @handle(MarkSplitFailed)
    def mark_split_failed(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.mark_split_failed(json.loads(command.outcomes))
        repo.add(order)


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------
def plan_groups(order) -> list[StoreGroup]:
    return group_items(order.line_items(), order.main_store_name, active_stores())


def _division_keys(division) -> set[str]:
    keys = {name_key(division.main_store_name)}
    if division.assigned_store_id:
        keys.add(str(division.assigned_store_id))
    return keys


def _unrouted_warning(group: StoreGroup) -> str | None:
    if group.is_resolved:
        return None
    return f"Store '{group.store_name}' is not registered; division left without a store"


class DivisionPlanner:
    """Routes orders. Pass ``split_procedure`` to bypass the configured adapter."""

    def __init__(self, split_procedure=None):
        self._split_procedure = split_procedure

    @property
    def split_procedure(self):
        return self._split_procedure or get_split_procedure()

    def route(self, order_id: str) -> SplitOutcome:
        """Transfer or split, depending on how many stores the items belong to."""
        order = current_domain.repository_for(Order).get(order_id)
        groups = plan_groups(order)
        if not groups:
            raise NoItemsToRoute(str(order_id))
        if len(groups) == 1:
            return self.transfer(order, groups[0])
        return self._split(order, groups)

    def transfer(self, order, group: StoreGroup) -> SplitOutcome:
        if not group.is_resolved:
            raise VendorNotFound(group.store_name)
        current_domain.process(
            TransferOrder(order_id=str(order.id), store_name=group.store_name, store_id=group.store_id),
            asynchronous=False,
        )
        return SplitOutcome.from_results(
            [GroupOutcome(store_name=group.store_name, success=True, order_id=str(order.id))],
            path="transfer",
        )

    def split(self, order_id: str) -> SplitOutcome:
        order = current_domain.repository_for(Order).get(order_id)
        groups = plan_groups(order)
        if not groups:
            raise NoItemsToRoute(str(order_id))
        if len(groups) < 2:
            raise ValidationError({"items": ["All items belong to one store; transfer the order instead"]})
        return self._split(order, groups)

    def _split(self, order, groups: list[StoreGroup]) -> SplitOutcome:
        order_id = str(order.id)
        if order.order_status in TRANSIENT_STATUSES:
            # Interrupted after MarkOrderSplitting; every division already exists
            logger.warning("Resuming interrupted split", order_id=order_id)
            return self._split_locally(order, groups)

        order.assert_routable()
        try:
            outcome = SplitOutcome.from_payload(self.split_procedure.split(order_id), path="remote")
        except RemoteProcedureUnavailable as e:
            logger.info("Remote split unavailable, splitting locally", order_id=order_id, reason=str(e))
        else:
            if outcome.success:
                logger.info(
                    "Order split remotely",
                    order_id=order_id,
                    successful_splits=outcome.successful_splits,
                    total_stores=outcome.total_stores,
                )
                self._publish_removal(order_id)
                return outcome
            logger.warning(
                "Remote split reported failure, splitting locally",
                order_id=order_id,
                failed=[r.store_name for r in outcome.failures],
            )

        return self._split_locally(order, groups)

    def _split_locally(self, order, groups: list[StoreGroup]) -> SplitOutcome:
        order_id = str(order.id)
        existing = {}
        for division in divisions_of(order_id, order.order_code):
            for key in _division_keys(division):
                existing.setdefault(key, division)

        results = []
        for index, group in enumerate(groups, start=1):
            division = existing.get(group.key) or existing.get(name_key(group.store_name))
            if division is not None:
                results.append(
                    GroupOutcome(
                        store_name=group.store_name,
                        success=True,
                        order_id=str(division.id),
                        warning=_unrouted_warning(group),
                    )
                )
                continue

            try:
                division_id = current_domain.process(
                    CreateDivision(
                        parent_order_id=order_id,
                        store_name=group.store_name,
                        store_id=group.store_id,
                        items=json.dumps(group.items),
                        index=index,
                    ),
                    asynchronous=False,
                )
            except Exception as e:
                logger.error(
                    "Division creation failed",
                    order_id=order_id,
                    store_name=group.store_name,
                    error=str(e),
                )
                results.append(GroupOutcome(store_name=group.store_name, success=False, error=str(e)))
                continue

            if not group.is_resolved:
                logger.warning("Division created without a store", order_id=order_id, store_name=group.store_name)
            results.append(
                GroupOutcome(
                    store_name=group.store_name,
                    success=True,
                    order_id=division_id,
                    warning=_unrouted_warning(group),
                )
            )

        outcome = SplitOutcome.from_results(results, path="local")
        if outcome.success:
            if order.order_status not in TRANSIENT_STATUSES:
                current_domain.process(
                    MarkOrderSplitting(order_id=order_id, division_count=outcome.total_stores),
                    asynchronous=False,
                )
            current_domain.process(RemoveSplitOrder(order_id=order_id), asynchronous=False)
            self._publish_removal(order_id)
            logger.info("Order split", order_id=order_id, divisions=outcome.successful_splits)
        else:
            current_domain.process(
                MarkSplitFailed(order_id=order_id, outcomes=json.dumps([r.to_dict() for r in results])),
                asynchronous=False,
            )
            logger.warning(
                "Order split incomplete, original kept",
                order_id=order_id,
                failed=[r.store_name for r in outcome.failures],
            )
        return outcome

    @staticmethod
    def _publish_removal(order_id: str) -> None:
        get_change_feed().publish(RowChange(table="orders", kind=ChangeKind.DELETE, row_id=order_id))
