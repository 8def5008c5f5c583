"""Reconciler: keeps every split order's rollup converged with its divisions.

Two relations are watched over the change feed: ``orders`` (rows without a
parent) and ``divisions`` (rows with one). Each change is treated as a hint:
the row is refetched by id, its cache entry replaced, and the rollup of the
affected parent order(s) recomputed. A periodic full refetch runs in every
connection state and heals whatever the feed missed, duplicated or
reordered. While the feed is down the cached rows keep being served.

State Machine (per relation):
    DISCONNECTED → CONNECTING → LIVE → DEGRADED → CONNECTING
"""

import asyncio
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from dispatch.completion.aggregator import CompletionSummary, summarize
from dispatch.completion.rollup import RollupDivisions, all_orders
from dispatch.errors import AggregationInputMissing, FeedUnavailable
from dispatch.order.order import Order
from dispatch.order.statuses import TRANSIENT_STATUSES, OrderStatus
from dispatch.planning.planner import DivisionPlanner
from dispatch.reconciliation.feed import ChangeKind, RowChange, get_change_feed

logger = structlog.get_logger(__name__)


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    LIVE = "live"
    DEGRADED = "degraded"


_VALID_TRANSITIONS = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {ConnectionState.LIVE, ConnectionState.DEGRADED},
    ConnectionState.LIVE: {ConnectionState.DEGRADED, ConnectionState.DISCONNECTED},
    ConnectionState.DEGRADED: {ConnectionState.CONNECTING, ConnectionState.DISCONNECTED},
}

# Original orders in these states have (or are getting) divisions
_SPLIT_STATES = {OrderStatus.SPLITTING.value, OrderStatus.SPLIT_FAILED.value}


def snapshot(order) -> dict:
    """The cached form of an Order row."""
    return {
        "id": str(order.id),
        "order_code": order.order_code,
        "parent_order_id": order.parent_reference,
        "order_status": order.order_status,
        "store_response_status": order.store_response_status,
        "store_response_at": order.store_response_at,
        "rejection_reason": order.rejection_reason,
        "assigned_store_id": str(order.assigned_store_id) if order.assigned_store_id else None,
        "assigned_store_name": order.assigned_store_name,
        "main_store_name": order.main_store_name,
        "aggregate_status": order.aggregate_status,
        "items_count": order.items_count,
        "total_amount": order.total_amount,
        "updated_at": order.updated_at,
    }


@dataclass
class WatchedRelation:
    name: str
    state: ConnectionState = ConnectionState.DISCONNECTED
    rows: dict[str, dict] = field(default_factory=dict)
    last_error: str | None = None

    @property
    def subscriber(self) -> str:
        return f"reconciler:{self.name}"

    def accepts(self, row: dict) -> bool:
        is_division = bool(row.get("parent_order_id"))
        return is_division if self.name == "divisions" else not is_division

    def move_to(self, target: ConnectionState) -> None:
        if target not in _VALID_TRANSITIONS[self.state]:
            raise ValueError(f"Cannot move {self.name} from {self.state.value} to {target.value}")
        logger.info("Relation state changed", relation=self.name, from_state=self.state.value, to_state=target.value)
        self.state = target


class Reconciler:
    """Applies change hints and periodic refetches to the rollups."""

    def __init__(
        self,
        feed=None,
        interval: float | None = None,
        batch_size: int = 100,
        stalled_after: float | None = None,
    ):
        self._feed = feed
        if interval is None:
            interval = float(os.environ.get("RECONCILE_INTERVAL_SECONDS", "30"))
        if stalled_after is None:
            stalled_after = float(os.environ.get("STALLED_SPLIT_SECONDS", "60"))
        self.interval = interval
        self.stalled_after = stalled_after
        self.batch_size = batch_size
        self.relations = {name: WatchedRelation(name) for name in ("orders", "divisions")}

    @property
    def feed(self):
        return self._feed or get_change_feed()

    def state_of(self, relation: str) -> ConnectionState:
        return self.relations[relation].state

    # -------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------
    def connect(self) -> None:
        """Subscribe every relation that is not live yet."""
        for relation in self.relations.values():
            if relation.state == ConnectionState.LIVE:
                continue
            if relation.state != ConnectionState.CONNECTING:
                relation.move_to(ConnectionState.CONNECTING)
            try:
                self.feed.subscribe(relation.subscriber, "orders")
            except FeedUnavailable as e:
                self._degrade(relation, e)
            else:
                relation.last_error = None
                relation.move_to(ConnectionState.LIVE)

    def disconnect(self) -> None:
        for relation in self.relations.values():
            if relation.state in (ConnectionState.LIVE, ConnectionState.DEGRADED):
                relation.move_to(ConnectionState.DISCONNECTED)

    def _degrade(self, relation: WatchedRelation, error: Exception) -> None:
        relation.last_error = str(error)
        relation.move_to(ConnectionState.DEGRADED)
        logger.warning("Change feed unavailable, relying on refetch", relation=relation.name, error=str(error))

    # -------------------------------------------------------------------
    # Incremental path
    # -------------------------------------------------------------------
    def drain(self) -> int:
        """Apply the change hints waiting on live relations. Returns how many rows were refetched."""
        pending: dict[str, RowChange] = {}
        hinted_parents: set[str] = set()
        for relation in self.relations.values():
            if relation.state != ConnectionState.LIVE:
                continue
            try:
                changes = self.feed.poll(relation.subscriber, self.batch_size)
            except FeedUnavailable as e:
                self._degrade(relation, e)
                continue
            for change in changes:
                # Both relations see every row; the refetch makes one application enough
                pending[change.row_id] = change
                if change.parent_order_id:
                    hinted_parents.add(change.parent_order_id)

        affected: set[str] = set(hinted_parents)
        for change in pending.values():
            affected |= self._apply(change)
        for parent_id in sorted(affected):
            self._rollup(parent_id)
        return len(pending)

    def handle_change(self, change: RowChange) -> set[str]:
        """Apply one change hint and roll up the parents it touches."""
        affected = self._apply(change)
        if change.parent_order_id:
            affected.add(change.parent_order_id)
        for parent_id in sorted(affected):
            self._rollup(parent_id)
        return affected

    def _apply(self, change: RowChange) -> set[str]:
        affected = set()
        previous = self._cached(change.row_id)
        if previous is not None and previous.get("parent_order_id"):
            affected.add(previous["parent_order_id"])

        try:
            row = self._fetch(change.row_id)
        except Exception as e:
            logger.error("Refetch after change failed", row_id=change.row_id, error=str(e))
            return affected

        self._evict(change.row_id)
        if row is None:
            # A removed original keeps its rollup
            if change.kind == ChangeKind.DELETE or previous is not None:
                affected.add(change.row_id)
            return affected

        self._store(row)
        if row["parent_order_id"]:
            affected.add(row["parent_order_id"])
        elif row["order_status"] in _SPLIT_STATES or row["aggregate_status"]:
            affected.add(row["id"])
        return affected

    # -------------------------------------------------------------------
    # Full refetch
    # -------------------------------------------------------------------
    def refresh(self) -> int:
        """Refetch every row and roll up every parent. Returns the number of parents rolled up."""
        if any(r.state == ConnectionState.DEGRADED for r in self.relations.values()):
            self.connect()

        try:
            rows = [snapshot(order) for order in all_orders()]
        except Exception as e:
            logger.error("Full refetch failed", error=str(e))
            return 0

        parents = {row["parent_order_id"] for row in self.relations["divisions"].rows.values()}
        for relation in self.relations.values():
            relation.rows = {row["id"]: row for row in rows if relation.accepts(row)}
        parents |= {row["parent_order_id"] for row in rows if row["parent_order_id"]}
        parents |= {row["id"] for row in rows if not row["parent_order_id"] and row["order_status"] in _SPLIT_STATES}
        self._resume_stalled_splits(rows)

        for parent_id in sorted(p for p in parents if p):
            self._rollup(parent_id)
        logger.debug("Full refetch complete", rows=len(rows), parents=len(parents))
        return len(parents)

    def _resume_stalled_splits(self, rows: list[dict]) -> None:
        """Finish splits whose original has sat in a transient state for ``stalled_after`` seconds."""
        cutoff = datetime.now(UTC) - timedelta(seconds=self.stalled_after)
        for row in rows:
            if row["parent_order_id"] or row["order_status"] not in TRANSIENT_STATUSES:
                continue
            updated_at = row["updated_at"]
            if updated_at is not None and updated_at.tzinfo is None:
                updated_at = updated_at.replace(tzinfo=UTC)
            if updated_at is not None and updated_at > cutoff:
                continue

            try:
                outcome = DivisionPlanner().split(row["id"])
            except Exception as e:
                logger.error("Resuming stalled split failed", order_id=row["id"], error=str(e))
                continue
            logger.info("Stalled split resumed", order_id=row["id"], success=outcome.success)

            self._evict(row["id"])
            current = self._fetch(row["id"])
            if current is not None:
                self._store(current)

    # -------------------------------------------------------------------
    # Cached reads
    # -------------------------------------------------------------------
    def cached_divisions(self, parent_order_id: str) -> list[dict]:
        rows = self.relations["divisions"].rows.values()
        return sorted(
            (row for row in rows if row["parent_order_id"] == str(parent_order_id)),
            key=lambda row: (row["order_code"] or "", row["id"]),
        )

    def summary_for(self, parent_order_id: str) -> CompletionSummary:
        """Aggregate from cached rows; available while the feed is down."""
        return summarize(self.cached_divisions(parent_order_id))

    def _cached(self, row_id: str) -> dict | None:
        for relation in self.relations.values():
            if row_id in relation.rows:
                return relation.rows[row_id]
        return None

    def _evict(self, row_id: str) -> None:
        for relation in self.relations.values():
            relation.rows.pop(row_id, None)

    def _store(self, row: dict) -> None:
        for relation in self.relations.values():
            if relation.accepts(row):
                relation.rows[row["id"]] = row

    @staticmethod
    def _fetch(row_id: str) -> dict | None:
        try:
            return snapshot(current_domain.repository_for(Order).get(row_id))
        except ObjectNotFoundError:
            return None

    @staticmethod
    def _rollup(parent_id: str) -> None:
        try:
            current_domain.process(RollupDivisions(parent_order_id=parent_id), asynchronous=False)
        except AggregationInputMissing as e:
            logger.warning("Split order has no divisions", parent_order_id=parent_id, error=str(e))
        except Exception as e:
            logger.error("Rollup failed", parent_order_id=parent_id, error=str(e))

    # -------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------
    async def run(self, stop: asyncio.Event, tick: float = 1.0, domain=None) -> None:
        """Drain hints every ``tick`` seconds and refetch every ``interval`` seconds until ``stop`` is set.

        Drains and refetches run in a worker thread so the event loop keeps
        serving other tasks; ``domain`` defaults to the active one.
        """
        if domain is None:
            domain = current_domain._get_current_object()
        loop = asyncio.get_running_loop()
        self.connect()
        await self._off_loop(domain, self.refresh)
        next_refresh = loop.time() + self.interval
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=tick)
            except TimeoutError:
                pass
            if stop.is_set():
                break
            await self._off_loop(domain, self.drain)
            if loop.time() >= next_refresh:
                await self._off_loop(domain, self.refresh)
                next_refresh = loop.time() + self.interval
        self.disconnect()
        logger.info("Reconciler stopped")

    @staticmethod
    async def _off_loop(domain, step):
        def _work():
            with domain.domain_context():
                return step()

        return await asyncio.to_thread(_work)
