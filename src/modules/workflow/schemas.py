"""Pydantic v2 schemas for workflow, milestone and reporting endpoints."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import Actor, InvoiceWorkflowStatus, MilestoneStatus, MilestoneType


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class TransitionRequest(BaseModel):
    new_status: InvoiceWorkflowStatus
    actor: Actor
    reason: str | None = Field(None, max_length=1000)
    metadata: dict | None = None


class MilestoneStatusUpdateRequest(BaseModel):
    status: MilestoneStatus


class GenerateMilestonesRequest(BaseModel):
    force_regenerate: bool = False


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class SideEffectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    detail: str | None = None


class TransitionResponse(BaseModel):
    invoice_id: uuid.UUID
    previous_status: InvoiceWorkflowStatus
    new_status: InvoiceWorkflowStatus
    quote_sync: SideEffectResponse
    notification: SideEffectResponse


class StatusInfoResponse(BaseModel):
    status: InvoiceWorkflowStatus
    label: str
    description: str
    color: str


class NextStatusesResponse(BaseModel):
    current_status: StatusInfoResponse
    next_statuses: list[StatusInfoResponse]


class OverdueCheckResponse(BaseModel):
    invoice_id: uuid.UUID
    marked_overdue: bool
    workflow_status: InvoiceWorkflowStatus


class PaymentMilestoneResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    invoice_id: uuid.UUID
    milestone_type: MilestoneType
    percentage: int
    amount_cents: int
    due_date: date | None = None
    is_due_now: bool
    is_net30: bool
    description: str | None = None
    status: MilestoneStatus
    completed_at: datetime | None = None


class MilestoneUpdateResponse(BaseModel):
    milestone: PaymentMilestoneResponse
    invoice_transition: TransitionResponse | None = None


class PaymentProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_amount: int
    paid_amount: int
    pending_amount: int
    percentage_paid: float


class AgingBucketResponse(BaseModel):
    label: str
    count: int
    amount: int


class PaymentStatsResponse(BaseModel):
    total_outstanding: int
    total_overdue: int
    pending_count: int
    overdue_count: int
