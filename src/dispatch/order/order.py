"""Order aggregate (CQRS): customer orders and the per-store divisions cut from them.

A division is an Order row whose ``parent_order_id`` points at the original
order it was split from. Divisions live independently after creation; the
original order is removed once every division exists.

State Machine:
    PENDING → ASSIGNED → PREPARING → READY → DELIVERED → RETURNED
    {ASSIGNED, PREPARING} → {REJECTED, CUSTOMER_REJECTED, RETURNED, DELIVERED}
    READY → {RETURNED, CUSTOMER_REJECTED}
    {PENDING, ASSIGNED, REJECTED, SPLIT_FAILED} → SPLITTING (then deleted)
    {PENDING, ASSIGNED, REJECTED, SPLIT_FAILED, SPLITTING} → SPLIT_FAILED

An interrupted split leaves the original in SPLITTING; re-running the split
resumes it.
"""

import json
from datetime import UTC, datetime
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
)

from dispatch.domain import dispatch
from dispatch.errors import StaleWriteIgnored
from dispatch.order.events import (
    AggregateStatusRecorded,
    DivisionCreated,
    DivisionLinked,
    OrderPlaced,
    OrderSplitFailed,
    OrderSplitStarted,
    OrderStatusChanged,
    OrderTransferred,
    StoreResponded,
)
from dispatch.order.provenance import parse_parent_reference, parse_return_reason, split_note
from dispatch.order.statuses import (
    ACCEPTED_RESPONSES,
    DECLINED_RESPONSES,
    AggregateStatus,
    OrderStatus,
    StoreResponseStatus,
)

_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.REJECTED, OrderStatus.CUSTOMER_REJECTED},
    OrderStatus.ASSIGNED: {
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.DELIVERED,
        OrderStatus.RETURNED,
        OrderStatus.REJECTED,
        OrderStatus.CUSTOMER_REJECTED,
    },
    OrderStatus.PREPARING: {
        OrderStatus.READY,
        OrderStatus.DELIVERED,
        OrderStatus.RETURNED,
        OrderStatus.REJECTED,
        OrderStatus.CUSTOMER_REJECTED,
    },
    OrderStatus.READY: {OrderStatus.DELIVERED, OrderStatus.RETURNED, OrderStatus.CUSTOMER_REJECTED},
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},
    OrderStatus.RETURNED: set(),  # terminal
    OrderStatus.REJECTED: set(),  # re-routed through transfer/split only
    OrderStatus.CUSTOMER_REJECTED: set(),  # terminal
    OrderStatus.SPLITTING: set(),  # about to be deleted
    OrderStatus.SPLIT_FAILED: set(),  # re-routed through split only
}

# States from which an order may be transferred or split
_ROUTABLE_STATES = {
    OrderStatus.PENDING,
    OrderStatus.ASSIGNED,
    OrderStatus.REJECTED,
    OrderStatus.SPLIT_FAILED,
}

_RESPONDABLE_STATES = {OrderStatus.ASSIGNED, OrderStatus.PREPARING, OrderStatus.READY}

_STORE_RESPONSES = {s.value for s in StoreResponseStatus} - {StoreResponseStatus.PENDING.value}


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def effective_price(price: float | None, discounted_price: float | None) -> float:
    """Discounted price when one is set, list price otherwise."""
    if discounted_price and discounted_price > 0:
        return float(discounted_price)
    return float(price or 0.0)


def line_total(item: dict) -> float:
    return effective_price(item.get("price"), item.get("discounted_price")) * int(item.get("quantity") or 1)


def _item_fields(data: dict) -> dict:
    """Normalize an inbound item dict into OrderItem field values."""
    return {
        "product_id": str(data["product_id"]) if data.get("product_id") else None,
        "product_name": data.get("product_name") or data.get("name") or "Unknown product",
        "quantity": int(data.get("quantity") or 1),
        "price": float(data.get("price") or 0.0),
        "discounted_price": float(data.get("discounted_price") or 0.0),
        "store_id": str(data["store_id"]) if data.get("store_id") else None,
        "main_store": data.get("main_store") or None,
        "main_store_name": data.get("main_store_name") or None,
        "store_name": data.get("store_name") or None,
    }


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@dispatch.entity(part_of="Order")
class OrderItem:
    """A normalized line item. ``main_store``/``main_store_name`` are the store
    attribution captured at checkout; ``store_name`` is the resolved store
    written back when the order is routed.
    """

    product_id = String(max_length=100)
    product_name = String(required=True, max_length=255)
    quantity = Integer(default=1, min_value=1)
    price = Float(default=0.0, min_value=0.0)
    discounted_price = Float(default=0.0, min_value=0.0)
    store_id = Identifier()
    main_store = String(max_length=255)
    main_store_name = String(max_length=255)
    store_name = String(max_length=255)

    def as_line(self) -> dict:
        return {
            "id": str(self.id),
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "price": self.price,
            "discounted_price": self.discounted_price,
            "store_id": str(self.store_id) if self.store_id else None,
            "main_store": self.main_store,
            "main_store_name": self.main_store_name,
            "store_name": self.store_name,
        }


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@dispatch.aggregate
class Order:
    order_code = String(required=True, max_length=50)
    customer_name = String(max_length=255)
    customer_phone = String(max_length=50)
    customer_address = String(max_length=500)
    customer_notes = Text()
    order_status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    assigned_store_id = Identifier()
    assigned_store_name = String(max_length=255)
    main_store_name = String(max_length=255)
    order_details = Text()
    items = HasMany(OrderItem)
    items_snapshot = Text()  # JSON list, denormalized copy of the line items
    total_amount = Float(default=0.0)

    # Division link
    parent_order_id = Identifier()
    parent_order_code = String(max_length=50)

    # Store response
    store_response_status = String(choices=StoreResponseStatus)
    store_response_at = DateTime()
    rejection_reason = String(max_length=500)
    return_reason = String(max_length=500)

    # Split bookkeeping on original orders
    aggregate_status = String(choices=AggregateStatus)
    split_outcomes = Text()  # JSON list of per-group outcomes of the last failed split

    reminded_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory methods
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        items_data: list[dict],
        customer_name: str | None = None,
        customer_phone: str | None = None,
        customer_address: str | None = None,
        customer_notes: str | None = None,
        main_store_name: str | None = None,
        order_details: str | None = None,
        order_code: str | None = None,
    ):
        """Record a customer order. Routing happens separately."""
        now = datetime.now(UTC)
        order = cls(
            order_code=order_code or f"ORD-{uuid4().hex[:8].upper()}",
            customer_name=customer_name,
            customer_phone=customer_phone,
            customer_address=customer_address,
            customer_notes=customer_notes,
            main_store_name=main_store_name,
            order_details=order_details,
            order_status=OrderStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            order.add_items(OrderItem(**_item_fields(item_data)))
        order._refresh_snapshot()
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_code=order.order_code,
                customer_name=customer_name or "",
                main_store_name=main_store_name or "",
                item_count=len(items_data),
                total_amount=order.total_amount,
                placed_at=now,
            )
        )
        return order

    @classmethod
    def divide(cls, parent, store_name: str, store_id: str | None, items_data: list[dict], index: int):
        """Create the division of ``parent`` that a single store fulfills.

        Customer fields are copied from the parent. ``store_id`` is None when
        the store could not be resolved; the division is kept unrouted rather
        than dropped.
        """
        now = datetime.now(UTC)
        division = cls(
            order_code=f"{parent.order_code}-{index}",
            customer_name=parent.customer_name,
            customer_phone=parent.customer_phone,
            customer_address=parent.customer_address,
            customer_notes=parent.customer_notes,
            order_status=OrderStatus.ASSIGNED.value,
            assigned_store_id=store_id,
            assigned_store_name=store_name if store_id else None,
            main_store_name=store_name,
            order_details=split_note(parent.order_code),
            parent_order_id=str(parent.id),
            parent_order_code=parent.order_code,
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            fields = _item_fields(item_data)
            fields.update(main_store=store_name, main_store_name=store_name, store_name=store_name)
            if store_id:
                fields["store_id"] = store_id
            division.add_items(OrderItem(**fields))
        division._refresh_snapshot()
        division.raise_(
            DivisionCreated(
                order_id=str(division.id),
                order_code=division.order_code,
                parent_order_id=str(parent.id),
                parent_order_code=parent.order_code,
                store_id=store_id,
                store_name=store_name,
                item_count=len(items_data),
                total_amount=division.total_amount,
                created_at=now,
            )
        )
        return division

    # -------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------
    @property
    def parent_reference(self) -> str | None:
        """Id (or legacy code) of the original order this division came from."""
        if self.parent_order_id:
            return str(self.parent_order_id)
        return parse_parent_reference(self.order_details)

    @property
    def is_division(self) -> bool:
        return self.parent_reference is not None

    @property
    def effective_return_reason(self) -> str | None:
        return self.return_reason or parse_return_reason(self.order_details)

    @property
    def items_count(self) -> int:
        return len(self.line_items())

    def line_items(self) -> list[dict]:
        """Normalized items when present, otherwise the denormalized snapshot."""
        if self.items:
            return [item.as_line() for item in self.items]
        if self.items_snapshot:
            return json.loads(self.items_snapshot)
        return []

    def _refresh_snapshot(self) -> None:
        lines = self.line_items()
        self.items_snapshot = json.dumps(lines)
        self.total_amount = round(sum(line_total(line) for line in lines), 2)

    def assert_routable(self) -> None:
        current = OrderStatus(self.order_status)
        if current not in _ROUTABLE_STATES:
            raise ValidationError({"order_status": [f"Cannot route order in {current.value} state"]})

    # -------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------
    def transfer_to(self, store_id: str, store_name: str) -> bool:
        """Assign the whole order to one store and stamp its name on every item.

        Returns False when the order already carries exactly this assignment.
        """
        self.assert_routable()
        lines = self.line_items()
        already_assigned = (
            self.order_status == OrderStatus.ASSIGNED.value
            and str(self.assigned_store_id or "") == str(store_id)
            and self.assigned_store_name == store_name
            and self.main_store_name == store_name
            and all(
                line.get("main_store") == store_name
                and line.get("main_store_name") == store_name
                and line.get("store_name") == store_name
                for line in lines
            )
        )
        if already_assigned:
            return False

        now = datetime.now(UTC)
        previous_status = self.order_status
        self.order_status = OrderStatus.ASSIGNED.value
        self.assigned_store_id = store_id
        self.assigned_store_name = store_name
        self.main_store_name = store_name
        if self.items:
            for item in self.items:
                item.main_store = store_name
                item.main_store_name = store_name
                item.store_name = store_name
            self._refresh_snapshot()
        else:
            for line in lines:
                line.update(main_store=store_name, main_store_name=store_name, store_name=store_name)
            self.items_snapshot = json.dumps(lines)
        self.updated_at = now
        self.raise_(
            OrderTransferred(
                order_id=str(self.id),
                order_code=self.order_code,
                store_id=store_id,
                store_name=store_name,
                previous_status=previous_status,
                transferred_at=now,
            )
        )
        return True

    def mark_splitting(self, division_count: int) -> None:
        """Flag the original as on its way out; it must not be treated as active."""
        self.assert_routable()
        now = datetime.now(UTC)
        self.order_status = OrderStatus.SPLITTING.value
        self.split_outcomes = None
        self.updated_at = now
        self.raise_(
            OrderSplitStarted(
                order_id=str(self.id),
                order_code=self.order_code,
                division_count=division_count,
                started_at=now,
            )
        )

    def mark_split_failed(self, outcomes: list[dict]) -> None:
        """Keep the original (with all its items) and record what went wrong."""
        if self.order_status != OrderStatus.SPLITTING.value:
            self.assert_routable()
        now = datetime.now(UTC)
        failed_stores = [o["store_name"] for o in outcomes if not o["success"]]
        self.order_status = OrderStatus.SPLIT_FAILED.value
        self.split_outcomes = json.dumps(outcomes)
        self.updated_at = now
        self.raise_(
            OrderSplitFailed(
                order_id=str(self.id),
                order_code=self.order_code,
                failed_stores=json.dumps(failed_stores),
                outcomes=self.split_outcomes,
                failed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Store response
    # -------------------------------------------------------------------
    def record_store_response(
        self,
        response: str,
        responded_at: datetime | None = None,
        rejection_reason: str | None = None,
    ) -> bool:
        """Record the store's accept/decline answer; most recent answer wins.

        Raises StaleWriteIgnored when the answer predates the recorded one.
        Returns False when the exact same answer was already recorded.
        """
        if response not in _STORE_RESPONSES:
            raise ValidationError({"response": [f"Unknown store response '{response}'"]})

        incoming_at = _aware(responded_at) or datetime.now(UTC)
        recorded_at = _aware(self.store_response_at)
        if recorded_at is not None and incoming_at < recorded_at:
            raise StaleWriteIgnored(str(self.id), incoming_at, recorded_at)
        if recorded_at == incoming_at and self.store_response_status == response:
            return False

        current = OrderStatus(self.order_status)
        if current not in _RESPONDABLE_STATES:
            raise ValidationError({"order_status": [f"Cannot record a store response in {current.value} state"]})
        if response in DECLINED_RESPONSES and not rejection_reason:
            rejection_reason = self.rejection_reason

        self.store_response_status = response
        self.store_response_at = incoming_at
        self.rejection_reason = rejection_reason if response in DECLINED_RESPONSES else None
        self.updated_at = datetime.now(UTC)
        self.raise_(
            StoreResponded(
                order_id=str(self.id),
                parent_order_id=self.parent_reference,
                store_id=str(self.assigned_store_id) if self.assigned_store_id else None,
                response=response,
                rejection_reason=self.rejection_reason,
                responded_at=incoming_at,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Fulfillment lifecycle
    # -------------------------------------------------------------------
    def change_status(self, status: str, reason: str | None = None) -> bool:
        """Move the order along its lifecycle. Re-applying the current status is a no-op."""
        target = OrderStatus(status)
        current = OrderStatus(self.order_status)
        if target == current:
            return False
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"order_status": [f"Cannot transition from {current.value} to {target.value}"]})
        if target == OrderStatus.RETURNED and not (reason and reason.strip()):
            raise ValidationError({"reason": ["A return reason is required"]})
        if (
            self.is_division
            and target in (OrderStatus.DELIVERED, OrderStatus.RETURNED)
            and self.store_response_status not in ACCEPTED_RESPONSES
        ):
            raise ValidationError({"store_response_status": ["The store has not confirmed this division"]})

        now = datetime.now(UTC)
        self.order_status = target.value
        if target == OrderStatus.RETURNED:
            self.return_reason = reason.strip()
        elif target in (OrderStatus.REJECTED, OrderStatus.CUSTOMER_REJECTED) and reason:
            self.rejection_reason = reason.strip()
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                parent_order_id=self.parent_reference,
                store_id=str(self.assigned_store_id) if self.assigned_store_id else None,
                previous_status=current.value,
                status=target.value,
                reason=reason,
                changed_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Aggregate write-back
    # -------------------------------------------------------------------
    def record_aggregate(self, aggregate_status: str) -> bool:
        """Persist the derived status of this order's divisions. Idempotent."""
        AggregateStatus(aggregate_status)
        if self.aggregate_status == aggregate_status:
            return False

        now = datetime.now(UTC)
        previous = self.aggregate_status
        self.aggregate_status = aggregate_status
        self.updated_at = now
        self.raise_(
            AggregateStatusRecorded(
                order_id=str(self.id),
                previous_status=previous,
                aggregate_status=aggregate_status,
                recorded_at=now,
            )
        )
        return True

    def awaiting_response_since(self) -> datetime | None:
        """When the assigned store was last nudged or, failing that, assigned."""
        if self.order_status != OrderStatus.ASSIGNED.value or self.store_response_status in ACCEPTED_RESPONSES:
            return None
        if self.store_response_status in DECLINED_RESPONSES or not self.assigned_store_id:
            return None
        return _aware(self.reminded_at or self.updated_at or self.created_at)

    def note_reminder_sent(self) -> None:
        self.reminded_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Legacy migration
    # -------------------------------------------------------------------
    def link_parent(self, parent_order_id: str, parent_order_code: str | None = None) -> bool:
        """Give a legacy division the explicit link its text note implied."""
        if self.parent_order_id:
            return False
        reference = parse_parent_reference(self.order_details)
        if reference is None:
            raise ValidationError({"order_details": ["Order carries no split note to link from"]})

        now = datetime.now(UTC)
        self.parent_order_id = parent_order_id
        self.parent_order_code = parent_order_code
        self.updated_at = now
        self.raise_(
            DivisionLinked(
                order_id=str(self.id),
                parent_order_id=parent_order_id,
                parent_reference=reference,
                linked_at=now,
            )
        )
        return True
