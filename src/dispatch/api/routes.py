"""FastAPI routes for the Dispatch domain."""

import json
import os

from fastapi import APIRouter, HTTPException
from protean.utils.globals import current_domain

from dispatch.api.schemas import (
    ChangeResponse,
    CompletionResponse,
    DivisionResponse,
    OrderIdResponse,
    PlaceOrderRequest,
    RegisterStoreRequest,
    SplitOutcomeResponse,
    SplitProcedureConfigRequest,
    SplitProcedureConfigResponse,
    StoreIdResponse,
    StoreResponseRequest,
    TransferOrderRequest,
    UpdateStatusRequest,
)
from dispatch.completion.aggregator import CompletionSummary, summarize
from dispatch.completion.rollup import RollupDivisions, divisions_of, find_order
from dispatch.order.placement import PlaceOrder
from dispatch.order.progress import UpdateOrderStatus
from dispatch.order.responses import RecordStoreResponse
from dispatch.order.transfer import TransferOrder
from dispatch.planning.outcome import SplitOutcome
from dispatch.planning.planner import DivisionPlanner
from dispatch.splitter import get_split_procedure
from dispatch.splitter.fake_adapter import FakeSplitProcedure
from dispatch.store.store import RegisterStore


def _outcome_response(outcome: SplitOutcome) -> SplitOutcomeResponse:
    if not outcome.success:
        # Divisions that failed need a human; the body lists every group
        raise HTTPException(status_code=409, detail=outcome.to_dict())
    return SplitOutcomeResponse(**outcome.to_dict())


def _completion_response(parent_order_id: str, summary: CompletionSummary) -> CompletionResponse:
    return CompletionResponse(
        parent_order_id=parent_order_id,
        aggregate_status=summary.aggregate_status.value,
        total=summary.total,
        accepted=summary.accepted,
        rejected=summary.rejected,
        pending=summary.pending,
        delivered=summary.delivered,
        returned=summary.returned,
        completion_percentage=summary.completion_percentage,
        can_deliver=summary.can_deliver,
        divisions=[
            DivisionResponse(
                order_id=d.state.order_id,
                store_name=d.state.store_name,
                order_status=d.state.order_status,
                store_response_status=d.state.store_response_status,
                status=d.status.value,
                rejection_reason=d.rejection_reason,
            )
            for d in summary.divisions
        ],
    )


# ---------------------------------------------------------------------------
# Store Router
# ---------------------------------------------------------------------------
store_router = APIRouter(prefix="/stores", tags=["stores"])


@store_router.post("", status_code=201, response_model=StoreIdResponse)
async def register_store(body: RegisterStoreRequest) -> StoreIdResponse:
    """Register a store that can be assigned orders."""
    command = RegisterStore(name=body.name, owner_email=body.owner_email)
    result = current_domain.process(command, asynchronous=False)
    return StoreIdResponse(store_id=result)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def place_order(body: PlaceOrderRequest) -> OrderIdResponse:
    """Record a customer order; it stays pending until routed."""
    command = PlaceOrder(
        customer_name=body.customer_name,
        customer_phone=body.customer_phone,
        customer_address=body.customer_address,
        customer_notes=body.customer_notes,
        main_store_name=body.main_store_name,
        order_details=body.order_details,
        order_code=body.order_code,
        items=json.dumps([item.model_dump() for item in body.items]),
    )
    result = current_domain.process(command, asynchronous=False)
    return OrderIdResponse(order_id=result)


@order_router.post("/{order_id}/route", response_model=SplitOutcomeResponse)
async def route_order(order_id: str) -> SplitOutcomeResponse:
    """Transfer a single-store order or split a multi-store one."""
    return _outcome_response(DivisionPlanner().route(order_id))


@order_router.post("/{order_id}/split", response_model=SplitOutcomeResponse)
async def split_order(order_id: str) -> SplitOutcomeResponse:
    """Split (or retry splitting) a multi-store order."""
    return _outcome_response(DivisionPlanner().split(order_id))


@order_router.put("/{order_id}/transfer", response_model=ChangeResponse)
async def transfer_order(order_id: str, body: TransferOrderRequest) -> ChangeResponse:
    """Assign the whole order to one store."""
    command = TransferOrder(order_id=order_id, store_name=body.store_name, store_id=body.store_id)
    changed = current_domain.process(command, asynchronous=False)
    return ChangeResponse(changed=bool(changed))


@order_router.put("/{order_id}/response", response_model=ChangeResponse)
async def record_store_response(order_id: str, body: StoreResponseRequest) -> ChangeResponse:
    """Record the assigned store's accept/decline answer."""
    command = RecordStoreResponse(
        order_id=order_id,
        response=body.response,
        rejection_reason=body.rejection_reason,
        responded_at=body.responded_at,
        responder_role=body.responder_role,
        responder_store_id=body.responder_store_id,
    )
    changed = current_domain.process(command, asynchronous=False)
    return ChangeResponse(changed=bool(changed))


@order_router.put("/{order_id}/status", response_model=ChangeResponse)
async def update_order_status(order_id: str, body: UpdateStatusRequest) -> ChangeResponse:
    """Move an order or division along its fulfillment lifecycle."""
    command = UpdateOrderStatus(order_id=order_id, status=body.status, reason=body.reason)
    changed = current_domain.process(command, asynchronous=False)
    return ChangeResponse(changed=bool(changed))


@order_router.get("/{order_id}/divisions", response_model=CompletionResponse)
async def get_divisions(order_id: str) -> CompletionResponse:
    """Current status of every division of an original order, and the aggregate."""
    parent = find_order(order_id)
    parent_id = str(parent.id) if parent is not None else order_id
    divisions = divisions_of(parent_id, parent.order_code if parent is not None else None)
    return _completion_response(parent_id, summarize(divisions))


@order_router.post("/{order_id}/rollup", response_model=CompletionResponse)
async def rollup_divisions(order_id: str) -> CompletionResponse:
    """Recompute and persist the aggregate status of an original order."""
    summary = current_domain.process(RollupDivisions(parent_order_id=order_id), asynchronous=False)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} has no divisions")
    return _completion_response(order_id, summary)


@order_router.post("/split-procedure/configure", response_model=SplitProcedureConfigResponse)
async def configure_split_procedure(body: SplitProcedureConfigRequest) -> SplitProcedureConfigResponse:
    """Configure the FakeSplitProcedure behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Split procedure configuration not available in production")

    procedure = get_split_procedure()
    if not isinstance(procedure, FakeSplitProcedure):
        raise HTTPException(status_code=400, detail="Split procedure configuration only available for FakeSplitProcedure")

    procedure.configure(should_succeed=body.should_succeed, failure_reason=body.failure_reason)
    return SplitProcedureConfigResponse(
        procedure=type(procedure).__name__,
        should_succeed=procedure.should_succeed,
        failure_reason=procedure.failure_reason,
    )
