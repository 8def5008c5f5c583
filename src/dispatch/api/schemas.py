"""Pydantic API schemas for the Dispatch domain.

These are the external API contracts, separate from domain commands.
The API layer translates between these schemas and domain commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class RegisterStoreRequest(BaseModel):
    name: str
    owner_email: str | None = None


class OrderItemRequest(BaseModel):
    product_name: str
    product_id: str | None = None
    quantity: int = Field(default=1, ge=1)
    price: float = Field(default=0.0, ge=0)
    discounted_price: float = Field(default=0.0, ge=0)
    store_id: str | None = None
    main_store: str | None = None
    main_store_name: str | None = None


class PlaceOrderRequest(BaseModel):
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_address: str | None = None
    customer_notes: str | None = None
    main_store_name: str | None = None
    order_details: str | None = None
    order_code: str | None = None
    items: list[OrderItemRequest]


class TransferOrderRequest(BaseModel):
    store_name: str
    store_id: str | None = None


class StoreResponseRequest(BaseModel):
    response: str
    rejection_reason: str | None = None
    responded_at: datetime | None = None
    responder_role: str = "store"
    responder_store_id: str | None = None


class UpdateStatusRequest(BaseModel):
    status: str
    reason: str | None = None


class SplitProcedureConfigRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Split procedure unavailable"


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class StoreIdResponse(BaseModel):
    store_id: str


class OrderIdResponse(BaseModel):
    order_id: str


class ChangeResponse(BaseModel):
    changed: bool


class SplitProcedureConfigResponse(BaseModel):
    procedure: str
    should_succeed: bool
    failure_reason: str


class GroupOutcomeResponse(BaseModel):
    store_name: str
    success: bool
    order_id: str | None = None
    error: str | None = None
    warning: str | None = None


class SplitOutcomeResponse(BaseModel):
    success: bool
    total_stores: int
    successful_splits: int
    path: str
    results: list[GroupOutcomeResponse]


class DivisionResponse(BaseModel):
    order_id: str | None = None
    store_name: str | None = None
    order_status: str | None = None
    store_response_status: str | None = None
    status: str
    rejection_reason: str | None = None


class CompletionResponse(BaseModel):
    parent_order_id: str
    aggregate_status: str
    total: int
    accepted: int
    rejected: int
    pending: int
    delivered: int
    returned: int
    completion_percentage: int
    can_deliver: bool
    divisions: list[DivisionResponse]
