"""Workflow API router — status transitions, milestones, and receivables reports."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.modules.notifications.client import NotificationClientBase, get_notification_client
from src.modules.workflow.milestone_service import MilestoneService
from src.modules.workflow.reporting import ReportingService
from src.modules.workflow.results import MilestoneUpdateResult, TransitionResult
from src.modules.workflow.schemas import (
    AgingBucketResponse,
    GenerateMilestonesRequest,
    MilestoneStatusUpdateRequest,
    MilestoneUpdateResponse,
    NextStatusesResponse,
    OverdueCheckResponse,
    PaymentMilestoneResponse,
    PaymentProgressResponse,
    PaymentStatsResponse,
    SideEffectResponse,
    StatusInfoResponse,
    TransitionRequest,
    TransitionResponse,
)
from src.modules.workflow.service import WorkflowService
from src.modules.workflow.transitions import get_next_statuses, get_status_info

router = APIRouter(prefix="/invoices", tags=["workflow"])
milestone_router = APIRouter(prefix="/milestones", tags=["milestones"])
report_router = APIRouter(prefix="/reports", tags=["reports"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_workflow_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationClientBase = Depends(get_notification_client),
) -> WorkflowService:
    return WorkflowService(db, notifier)


def to_transition_response(result: TransitionResult) -> TransitionResponse:
    return TransitionResponse(
        invoice_id=result.invoice_id,
        previous_status=result.previous_status,
        new_status=result.new_status,
        quote_sync=SideEffectResponse.model_validate(result.quote_sync),
        notification=SideEffectResponse.model_validate(result.notification),
    )


def _milestone_update_response(result: MilestoneUpdateResult) -> MilestoneUpdateResponse:
    return MilestoneUpdateResponse(
        milestone=PaymentMilestoneResponse.model_validate(result.milestone),
        invoice_transition=(
            to_transition_response(result.invoice_transition)
            if result.invoice_transition is not None
            else None
        ),
    )


def _status_info(status) -> StatusInfoResponse:
    return StatusInfoResponse(status=status, **get_status_info(status))


# ---------------------------------------------------------------------------
# Invoice workflow endpoints
# ---------------------------------------------------------------------------


@router.post("/{invoice_id}/transition", response_model=TransitionResponse)
async def transition_invoice(
    invoice_id: uuid.UUID,
    body: TransitionRequest,
    svc: WorkflowService = Depends(get_workflow_service),
):
    """Move an invoice to a new workflow status."""
    result = await svc.transition(
        invoice_id,
        body.new_status,
        body.actor,
        reason=body.reason,
        metadata=body.metadata,
    )
    return to_transition_response(result)


@router.get("/{invoice_id}/next-statuses", response_model=NextStatusesResponse)
async def next_statuses(
    invoice_id: uuid.UUID,
    svc: WorkflowService = Depends(get_workflow_service),
):
    """Statuses the invoice may legally move to from where it is now."""
    current = await svc.get_current_status(invoice_id)
    return NextStatusesResponse(
        current_status=_status_info(current),
        next_statuses=[_status_info(s) for s in get_next_statuses(current)],
    )


@router.post("/{invoice_id}/check-overdue", response_model=OverdueCheckResponse)
async def check_overdue(
    invoice_id: uuid.UUID,
    svc: WorkflowService = Depends(get_workflow_service),
):
    marked = await svc.check_and_mark_overdue(invoice_id)
    return OverdueCheckResponse(
        invoice_id=invoice_id,
        marked_overdue=marked,
        workflow_status=await svc.get_current_status(invoice_id),
    )


@router.get("/{invoice_id}/payment-progress", response_model=PaymentProgressResponse)
async def payment_progress(
    invoice_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    progress = await ReportingService(db).get_payment_progress(invoice_id)
    return PaymentProgressResponse.model_validate(progress)


@router.post(
    "/{invoice_id}/milestones/generate",
    response_model=list[PaymentMilestoneResponse],
    status_code=201,
)
async def generate_milestones(
    invoice_id: uuid.UUID,
    body: GenerateMilestonesRequest | None = None,
    svc: WorkflowService = Depends(get_workflow_service),
):
    """Build the payment schedule for an invoice from its event date."""
    force = body.force_regenerate if body is not None else False
    milestones = await MilestoneService(svc.db, svc).generate_milestones(
        invoice_id, force_regenerate=force
    )
    return [PaymentMilestoneResponse.model_validate(m) for m in milestones]


@router.get("/{invoice_id}/milestones", response_model=list[PaymentMilestoneResponse])
async def list_milestones(
    invoice_id: uuid.UUID,
    svc: WorkflowService = Depends(get_workflow_service),
):
    await svc.get_current_status(invoice_id)
    milestones = await MilestoneService(svc.db, svc).list_milestones(invoice_id)
    return [PaymentMilestoneResponse.model_validate(m) for m in milestones]


# ---------------------------------------------------------------------------
# Milestone endpoints
# ---------------------------------------------------------------------------


@milestone_router.put("/{milestone_id}/status", response_model=MilestoneUpdateResponse)
async def update_milestone_status(
    milestone_id: uuid.UUID,
    body: MilestoneStatusUpdateRequest,
    svc: WorkflowService = Depends(get_workflow_service),
):
    """Record a milestone payment state; the last completion marks the invoice paid."""
    result = await MilestoneService(svc.db, svc).update_milestone_status(milestone_id, body.status)
    return _milestone_update_response(result)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@report_router.get("/ar-aging", response_model=list[AgingBucketResponse])
async def ar_aging(db: AsyncSession = Depends(get_db)):
    return await ReportingService(db).ar_aging()


@report_router.get("/payment-stats", response_model=PaymentStatsResponse)
async def payment_stats(db: AsyncSession = Depends(get_db)):
    return await ReportingService(db).payment_stats()
