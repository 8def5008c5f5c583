"""Application tests for the reconciler: change hints, degraded mode and refetch."""

import asyncio
import json
import threading

import pytest
from dispatch.completion.rollup import current_rollup, divisions_of
from dispatch.order.order import Order
from dispatch.order.placement import PlaceOrder
from dispatch.order.responses import RecordStoreResponse
from dispatch.planning.planner import CreateDivision, DivisionPlanner, MarkOrderSplitting, plan_groups
from dispatch.reconciliation.feed import ChangeKind, RowChange, get_change_feed
from dispatch.reconciliation.reconciler import ConnectionState, Reconciler
from dispatch.store.store import RegisterStore
from protean import current_domain
from protean.exceptions import ObjectNotFoundError


def _place_split_ready_order():
    current_domain.process(RegisterStore(name="Vendor One"), asynchronous=False)
    current_domain.process(RegisterStore(name="Vendor Two"), asynchronous=False)
    items = [
        {"product_name": "Apples", "main_store": "Vendor One"},
        {"product_name": "Bread", "main_store": "Vendor Two"},
    ]
    return current_domain.process(PlaceOrder(items=json.dumps(items)), asynchronous=False)


def _accept(division):
    current_domain.process(
        RecordStoreResponse(order_id=str(division.id), response="accepted", responder_role="admin"),
        asynchronous=False,
    )


def _live_reconciler():
    reconciler = Reconciler(interval=60)
    reconciler.connect()
    return reconciler


class TestConnection:
    def test_connect_makes_relations_live(self):
        reconciler = _live_reconciler()
        assert reconciler.state_of("orders") == ConnectionState.LIVE
        assert reconciler.state_of("divisions") == ConnectionState.LIVE

    def test_connect_while_feed_down_degrades(self):
        get_change_feed().fail()
        reconciler = _live_reconciler()
        assert reconciler.state_of("divisions") == ConnectionState.DEGRADED
        assert reconciler.relations["divisions"].last_error == "Connection lost"

    def test_disconnect(self):
        reconciler = _live_reconciler()
        reconciler.disconnect()
        assert reconciler.state_of("orders") == ConnectionState.DISCONNECTED


class TestDrain:
    def test_split_hints_produce_a_rollup(self):
        order_id = _place_split_ready_order()
        reconciler = _live_reconciler()
        DivisionPlanner().route(order_id)

        reconciler.drain()

        rollup = current_rollup(order_id)
        assert rollup.total_divisions == 2
        assert rollup.aggregate_status == "incomplete"
        assert len(reconciler.cached_divisions(order_id)) == 2

    def test_response_hint_updates_rollup(self):
        order_id = _place_split_ready_order()
        reconciler = _live_reconciler()
        DivisionPlanner().route(order_id)
        reconciler.drain()

        for division in divisions_of(order_id):
            _accept(division)
        reconciler.drain()

        assert current_rollup(order_id).aggregate_status == "complete"
        assert reconciler.summary_for(order_id).can_deliver

    def test_nothing_pending(self):
        assert _live_reconciler().drain() == 0

    def test_duplicate_hints_converge(self):
        order_id = _place_split_ready_order()
        reconciler = _live_reconciler()
        DivisionPlanner().route(order_id)
        reconciler.drain()
        division = divisions_of(order_id)[0]
        _accept(division)
        change = RowChange(table="orders", kind=ChangeKind.UPDATE, row_id=str(division.id), parent_order_id=order_id)

        reconciler.handle_change(change)
        first = current_rollup(order_id).updated_at
        reconciler.handle_change(change)

        assert current_rollup(order_id).updated_at == first
        assert current_rollup(order_id).accepted_count == 1

    def test_hint_for_vanished_row_is_harmless(self):
        reconciler = _live_reconciler()
        affected = reconciler.handle_change(RowChange(table="orders", kind=ChangeKind.UPDATE, row_id="missing"))
        assert affected == set()


class TestDegradedMode:
    def test_feed_loss_keeps_serving_cached_rows(self):
        order_id = _place_split_ready_order()
        reconciler = _live_reconciler()
        DivisionPlanner().route(order_id)
        reconciler.drain()

        get_change_feed().fail()
        reconciler.drain()

        assert reconciler.state_of("divisions") == ConnectionState.DEGRADED
        assert reconciler.summary_for(order_id).total == 2

    def test_refresh_heals_missed_changes(self):
        order_id = _place_split_ready_order()
        reconciler = _live_reconciler()
        DivisionPlanner().route(order_id)
        reconciler.drain()
        get_change_feed().fail()
        reconciler.drain()

        for division in divisions_of(order_id):
            _accept(division)
        reconciler.refresh()

        assert current_rollup(order_id).aggregate_status == "complete"
        assert reconciler.summary_for(order_id).accepted == 2

    def test_refresh_reconnects_after_recovery(self):
        get_change_feed().fail()
        reconciler = _live_reconciler()

        get_change_feed().recover()
        reconciler.refresh()

        assert reconciler.state_of("orders") == ConnectionState.LIVE
        assert reconciler.state_of("divisions") == ConnectionState.LIVE

    def test_refresh_without_feed_rolls_up_everything(self):
        order_id = _place_split_ready_order()
        DivisionPlanner().route(order_id)

        parents = Reconciler(interval=60).refresh()

        assert parents == 1
        assert current_rollup(order_id).total_divisions == 2


class TestRunLoop:
    def test_run_until_stopped(self):
        order_id = _place_split_ready_order()
        DivisionPlanner().route(order_id)
        reconciler = Reconciler(interval=60)

        async def _run_briefly():
            stop = asyncio.Event()
            asyncio.get_running_loop().call_later(0.05, stop.set)
            await reconciler.run(stop, tick=0.01)

        asyncio.run(_run_briefly())

        assert current_rollup(order_id).total_divisions == 2
        assert reconciler.state_of("orders") == ConnectionState.DISCONNECTED

    def test_refresh_and_drain_run_off_the_event_loop(self):
        reconciler = Reconciler(interval=0)
        threads = []
        refresh, drain = reconciler.refresh, reconciler.drain

        def _refresh():
            threads.append(threading.get_ident())
            return refresh()

        def _drain():
            threads.append(threading.get_ident())
            return drain()

        reconciler.refresh = _refresh
        reconciler.drain = _drain

        async def _run_briefly():
            stop = asyncio.Event()
            asyncio.get_running_loop().call_later(0.05, stop.set)
            await reconciler.run(stop, tick=0.01)
            return threading.get_ident()

        loop_thread = asyncio.run(_run_briefly())

        assert threads
        assert loop_thread not in threads


def _interrupt_after_marking(order_id):
    """Create every division and mark the original, as if the process died before removing it."""
    order = current_domain.repository_for(Order).get(order_id)
    groups = plan_groups(order)
    for index, group in enumerate(groups, start=1):
        current_domain.process(
            CreateDivision(
                parent_order_id=order_id,
                store_name=group.store_name,
                store_id=group.store_id,
                items=json.dumps(group.items),
                index=index,
            ),
            asynchronous=False,
        )
    current_domain.process(MarkOrderSplitting(order_id=order_id, division_count=len(groups)), asynchronous=False)


class TestStalledSplits:
    def test_refresh_finishes_stalled_split(self):
        order_id = _place_split_ready_order()
        _interrupt_after_marking(order_id)

        Reconciler(interval=60, stalled_after=0).refresh()

        with pytest.raises(ObjectNotFoundError):
            current_domain.repository_for(Order).get(order_id)
        assert len(divisions_of(order_id)) == 2
        assert current_rollup(order_id).total_divisions == 2

    def test_recent_split_is_left_alone(self):
        order_id = _place_split_ready_order()
        _interrupt_after_marking(order_id)

        Reconciler(interval=60, stalled_after=3600).refresh()

        assert current_domain.repository_for(Order).get(order_id).order_status == "splitting"

    def test_removed_original_leaves_the_cache(self):
        order_id = _place_split_ready_order()
        _interrupt_after_marking(order_id)
        reconciler = Reconciler(interval=60, stalled_after=0)

        reconciler.refresh()

        assert order_id not in reconciler.relations["orders"].rows
        assert len(reconciler.cached_divisions(order_id)) == 2
