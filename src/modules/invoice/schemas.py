"""Pydantic v2 schemas for the invoice API endpoints."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import InvoiceWorkflowStatus
from src.modules.workflow.schemas import PaymentMilestoneResponse, TransitionResponse


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class LineItemRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: str | None = Field(None, max_length=2000)
    category: str | None = Field(None, max_length=100)
    quantity: Decimal = Field(..., gt=0, max_digits=12, decimal_places=3)
    unit_price: int = Field(..., ge=0, description="Unit price in cents")


class LineItemsUpdateRequest(BaseModel):
    expected_version: int = Field(..., ge=1)
    items: list[LineItemRequest] = Field(default_factory=list)


class CustomerApprovalRequest(BaseModel):
    feedback: str | None = Field(None, max_length=2000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class InvoiceLineItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    invoice_id: uuid.UUID
    title: str
    description: str | None = None
    category: str | None = None
    quantity: Decimal
    unit_price: int
    total_price: int
    sort_order: int


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    invoice_number: str | None = None
    quote_request_id: uuid.UUID | None = None
    workflow_status: InvoiceWorkflowStatus
    status_changed_by: str | None = None
    last_status_change: datetime | None = None
    last_customer_action: datetime | None = None
    subtotal: int
    tax_amount: int
    total_amount: int
    due_date: date | None = None
    sent_at: datetime | None = None
    paid_at: datetime | None = None
    version: int
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


class InvoiceDetailResponse(InvoiceResponse):
    line_items: list[InvoiceLineItemResponse] = Field(default_factory=list)


class InvoiceListResponse(BaseModel):
    items: list[InvoiceResponse]
    total: int
    limit: int
    offset: int


class StateLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    entity_type: str
    entity_id: uuid.UUID
    previous_status: str | None = None
    new_status: str
    changed_by: str
    change_reason: str | None = None
    details: dict = Field(default_factory=dict)
    created_at: datetime


class CustomerApprovalResponse(BaseModel):
    transition: TransitionResponse
    milestones: list[PaymentMilestoneResponse]
