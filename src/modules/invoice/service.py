"""Invoice lifecycle service — creation from quotes, line-item edits, customer approval."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.session import commit_session
from src.exceptions import (
    BusinessRuleException,
    ConflictException,
    NotFoundException,
    ValidationException,
)
from src.models.enums import Actor, InvoiceWorkflowStatus
from src.models.invoice import Invoice
from src.models.invoice_line_item import InvoiceLineItem
from src.models.payment_milestone import PaymentMilestone
from src.models.quote_request import QuoteRequest
from src.models.workflow_state_log import WorkflowStateLog
from src.modules.invoice.constants import INVOICE_NUMBER_PREFIX, LINE_ITEM_LOCKED_STATUSES
from src.modules.workflow.constants import AUDIT_ENTITY_INVOICE, REASON_CUSTOMER_APPROVAL
from src.modules.workflow.milestone_service import MilestoneService
from src.modules.workflow.results import TransitionResult
from src.modules.workflow.service import WorkflowService

logger = logging.getLogger(__name__)

_CENT = Decimal("1")


@dataclass(frozen=True)
class LineItemInput:
    title: str
    quantity: Decimal
    unit_price: int
    description: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: int
    tax_amount: int
    total_amount: int


def line_total(quantity: Decimal, unit_price: int) -> int:
    return int((Decimal(quantity) * unit_price).quantize(_CENT, rounding=ROUND_HALF_UP))


def compute_totals(items: list[LineItemInput], tax_rate_percent: float) -> InvoiceTotals:
    """Subtotal of all lines, flat tax rounded to the cent, and the grand total."""
    subtotal = sum(line_total(item.quantity, item.unit_price) for item in items)
    tax = int(
        (Decimal(subtotal) * Decimal(str(tax_rate_percent)) / 100).quantize(
            _CENT, rounding=ROUND_HALF_UP
        )
    )
    return InvoiceTotals(subtotal=subtotal, tax_amount=tax, total_amount=subtotal + tax)


def _validate_line_items(items: list[LineItemInput]) -> None:
    errors = []
    for index, item in enumerate(items):
        if not item.title.strip():
            errors.append({"field": f"items.{index}.title", "message": "Title is required"})
        if item.quantity <= 0:
            errors.append({"field": f"items.{index}.quantity", "message": "Quantity must be positive"})
        if item.unit_price < 0:
            errors.append({"field": f"items.{index}.unit_price", "message": "Unit price cannot be negative"})
    if errors:
        raise ValidationException("Invalid line items", details=errors)


class InvoiceService:
    def __init__(self, db: AsyncSession, workflow: WorkflowService | None = None):
        self.db = db
        self.workflow = workflow or WorkflowService(db)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _generate_invoice_number(self) -> str:
        year = datetime.now(UTC).year
        return f"{INVOICE_NUMBER_PREFIX}-{year}-{uuid.uuid4().hex[:8].upper()}"

    async def auto_generate_invoice(self, quote_id: uuid.UUID) -> tuple[Invoice, bool]:
        """Return the quote's invoice, creating a draft one if none exists.

        The second element is True when a new invoice was created.
        """
        quote = await self.db.get(QuoteRequest, quote_id)
        if quote is None:
            raise NotFoundException(f"Quote request {quote_id} not found")

        result = await self.db.execute(
            select(Invoice).where(Invoice.quote_request_id == quote_id)
        )
        existing = result.scalars().first()
        if existing is not None:
            return existing, False

        invoice = Invoice(
            invoice_number=self._generate_invoice_number(),
            quote_request_id=quote_id,
            workflow_status=InvoiceWorkflowStatus.DRAFT,
            subtotal=0,
            tax_amount=0,
            total_amount=0,
            due_date=quote.event_date,
            version=1,
        )
        self.db.add(invoice)
        await commit_session(self.db, f"invoice for quote {quote_id}")
        await self.db.refresh(invoice)

        logger.info("Created draft invoice %s for quote %s", invoice.invoice_number, quote_id)
        return invoice, True

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        invoice = await self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundException(f"Invoice {invoice_id} not found")
        return invoice

    async def get_line_items(self, invoice_id: uuid.UUID) -> list[InvoiceLineItem]:
        result = await self.db.execute(
            select(InvoiceLineItem)
            .where(InvoiceLineItem.invoice_id == invoice_id)
            .order_by(InvoiceLineItem.sort_order)
        )
        return list(result.scalars().all())

    async def list_invoices(
        self,
        status: InvoiceWorkflowStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Invoice], int]:
        query = select(Invoice)
        count_query = select(func.count()).select_from(Invoice)

        if status is not None:
            query = query.where(Invoice.workflow_status == status)
            count_query = count_query.where(Invoice.workflow_status == status)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        query = query.order_by(Invoice.created_at.desc()).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def get_history(self, invoice_id: uuid.UUID) -> list[WorkflowStateLog]:
        """Audit trail of status changes, oldest first."""
        await self.get_invoice(invoice_id)
        result = await self.db.execute(
            select(WorkflowStateLog)
            .where(
                WorkflowStateLog.entity_type == AUDIT_ENTITY_INVOICE,
                WorkflowStateLog.entity_id == invoice_id,
            )
            .order_by(WorkflowStateLog.created_at)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Line items (optimistic lock on ``version``)
    # ------------------------------------------------------------------

    async def update_line_items(
        self,
        invoice_id: uuid.UUID,
        items: list[LineItemInput],
        expected_version: int,
    ) -> tuple[Invoice, list[InvoiceLineItem]]:
        """Replace an invoice's line items and recompute its totals.

        Fails with ConflictException when ``expected_version`` is stale.
        The workflow status is not touched.
        """
        invoice = await self.get_invoice(invoice_id)
        if invoice.workflow_status in LINE_ITEM_LOCKED_STATUSES:
            raise BusinessRuleException(
                f"Cannot edit line items of a {invoice.workflow_status.value} invoice"
            )

        _validate_line_items(items)
        totals = compute_totals(items, settings.tax_rate_percent)

        # Compare-and-set so two editors holding the same version cannot both win
        result = await self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.version == expected_version)
            .values(
                subtotal=totals.subtotal,
                tax_amount=totals.tax_amount,
                total_amount=totals.total_amount,
                version=Invoice.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictException(
                "Invoice was modified by another user; reload and try again",
                details=[{"expected_version": expected_version, "current_version": invoice.version}],
            )

        await self.db.execute(
            delete(InvoiceLineItem)
            .where(InvoiceLineItem.invoice_id == invoice_id)
            .execution_options(synchronize_session=False)
        )
        line_items = [
            InvoiceLineItem(
                invoice_id=invoice_id,
                title=item.title,
                description=item.description,
                category=item.category,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=line_total(item.quantity, item.unit_price),
                sort_order=index,
            )
            for index, item in enumerate(items)
        ]
        self.db.add_all(line_items)
        await commit_session(self.db, f"line items for invoice {invoice_id}")
        await self.db.refresh(invoice)

        logger.info(
            "Updated %d line items on invoice %s (version %d, total %d)",
            len(line_items),
            invoice_id,
            invoice.version,
            invoice.total_amount,
        )
        return invoice, line_items

    # ------------------------------------------------------------------
    # Customer approval
    # ------------------------------------------------------------------

    async def handle_customer_approval(
        self, invoice_id: uuid.UUID, feedback: str | None = None
    ) -> tuple[TransitionResult, list[PaymentMilestone]]:
        """Approve an estimate on the customer's behalf and schedule payments."""
        metadata = {"feedback": feedback} if feedback else None
        transition = await self.workflow.transition(
            invoice_id,
            InvoiceWorkflowStatus.APPROVED,
            Actor.CUSTOMER,
            reason=REASON_CUSTOMER_APPROVAL,
            metadata=metadata,
        )
        milestones = await MilestoneService(self.db, self.workflow).generate_milestones(invoice_id)
        return transition, milestones
