"""Invoice API router — creation from quotes, reads, line-item edits, approval."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response

from src.models.enums import InvoiceWorkflowStatus
from src.modules.invoice.schemas import (
    CustomerApprovalRequest,
    CustomerApprovalResponse,
    InvoiceDetailResponse,
    InvoiceLineItemResponse,
    InvoiceListResponse,
    InvoiceResponse,
    LineItemsUpdateRequest,
    StateLogResponse,
)
from src.modules.invoice.service import InvoiceService, LineItemInput
from src.modules.workflow.router import get_workflow_service, to_transition_response
from src.modules.workflow.schemas import PaymentMilestoneResponse
from src.modules.workflow.service import WorkflowService

router = APIRouter(prefix="/invoices", tags=["invoices"])


def get_invoice_service(
    workflow: WorkflowService = Depends(get_workflow_service),
) -> InvoiceService:
    return InvoiceService(workflow.db, workflow)


def _detail(invoice, line_items) -> InvoiceDetailResponse:
    response = InvoiceDetailResponse.model_validate(invoice)
    response.line_items = [InvoiceLineItemResponse.model_validate(li) for li in line_items]
    return response


@router.post("/from-quote/{quote_id}", response_model=InvoiceResponse)
async def create_from_quote(
    quote_id: uuid.UUID,
    response: Response,
    svc: InvoiceService = Depends(get_invoice_service),
):
    """Create the draft invoice for a quote, or return the one it already has."""
    invoice, created = await svc.auto_generate_invoice(quote_id)
    response.status_code = 201 if created else 200
    return InvoiceResponse.model_validate(invoice)


@router.get("/", response_model=InvoiceListResponse)
async def list_invoices(
    status: InvoiceWorkflowStatus | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    svc: InvoiceService = Depends(get_invoice_service),
):
    items, total = await svc.list_invoices(status=status, limit=limit, offset=offset)
    return InvoiceListResponse(
        items=[InvoiceResponse.model_validate(i) for i in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{invoice_id}", response_model=InvoiceDetailResponse)
async def get_invoice(
    invoice_id: uuid.UUID,
    svc: InvoiceService = Depends(get_invoice_service),
):
    invoice = await svc.get_invoice(invoice_id)
    return _detail(invoice, await svc.get_line_items(invoice_id))


@router.get("/{invoice_id}/history", response_model=list[StateLogResponse])
async def get_history(
    invoice_id: uuid.UUID,
    svc: InvoiceService = Depends(get_invoice_service),
):
    """Status change audit trail, oldest first."""
    entries = await svc.get_history(invoice_id)
    return [StateLogResponse.model_validate(e) for e in entries]


@router.put("/{invoice_id}/line-items", response_model=InvoiceDetailResponse)
async def update_line_items(
    invoice_id: uuid.UUID,
    body: LineItemsUpdateRequest,
    svc: InvoiceService = Depends(get_invoice_service),
):
    """Replace line items; 409 when ``expected_version`` is stale."""
    items = [
        LineItemInput(
            title=i.title,
            quantity=i.quantity,
            unit_price=i.unit_price,
            description=i.description,
            category=i.category,
        )
        for i in body.items
    ]
    invoice, line_items = await svc.update_line_items(invoice_id, items, body.expected_version)
    return _detail(invoice, line_items)


@router.post("/{invoice_id}/approve", response_model=CustomerApprovalResponse)
async def approve_invoice(
    invoice_id: uuid.UUID,
    body: CustomerApprovalRequest | None = None,
    svc: InvoiceService = Depends(get_invoice_service),
):
    """Customer approval of an estimate; also schedules payment milestones."""
    transition, milestones = await svc.handle_customer_approval(
        invoice_id, feedback=body.feedback if body is not None else None
    )
    return CustomerApprovalResponse(
        transition=to_transition_response(transition),
        milestones=[PaymentMilestoneResponse.model_validate(m) for m in milestones],
    )
