"""Read-only payment progress and receivables reporting."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import NotFoundException
from src.models.enums import InvoiceWorkflowStatus, MilestoneStatus
from src.models.invoice import Invoice
from src.models.payment_milestone import PaymentMilestone
from src.modules.workflow.constants import (
    AR_AGING_BUCKETS,
    OVERDUE_ELIGIBLE_STATUSES,
    SETTLED_STATUSES,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentProgress:
    total_amount: int
    paid_amount: int
    pending_amount: int
    percentage_paid: float


@dataclass(frozen=True)
class InvoiceBalance:
    """Minimal per-invoice view the aggregate reports work from."""

    invoice_id: uuid.UUID
    workflow_status: InvoiceWorkflowStatus
    total_amount: int
    paid_amount: int
    due_date: date | None

    @property
    def balance_remaining(self) -> int:
        return self.total_amount - self.paid_amount


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def today_utc() -> date:
    return datetime.now(UTC).date()


def is_overdue_eligible(
    due_date: date | None, status: InvoiceWorkflowStatus, today: date
) -> bool:
    """True when an unpaid invoice (sent/approved) is strictly past its due date."""
    if due_date is None:
        return False
    return due_date < today and status in OVERDUE_ELIGIBLE_STATUSES


def days_overdue(
    due_date: date | None, status: InvoiceWorkflowStatus, today: date
) -> int:
    if due_date is None or status in SETTLED_STATUSES or due_date >= today:
        return 0
    return (today - due_date).days


def compute_payment_progress(
    total_amount: int, milestones: list[PaymentMilestone]
) -> PaymentProgress:
    paid = sum(m.amount_cents for m in milestones if m.status == MilestoneStatus.COMPLETED)
    percentage = round(paid / total_amount * 100, 2) if total_amount else 0.0
    return PaymentProgress(
        total_amount=total_amount,
        paid_amount=paid,
        pending_amount=total_amount - paid,
        percentage_paid=percentage,
    )


def ar_aging_buckets(rows: list[InvoiceBalance], today: date) -> list[dict]:
    """Group outstanding balances by how far past due they are.

    Paid and cancelled invoices are settled and never appear, whatever
    their recorded balance.
    """
    buckets = [
        {"label": label, "count": 0, "amount": 0} for label, _ in AR_AGING_BUCKETS
    ]
    for row in rows:
        if row.workflow_status in SETTLED_STATUSES or row.balance_remaining <= 0:
            continue
        days = days_overdue(row.due_date, row.workflow_status, today)
        for bucket, (_, upper) in zip(buckets, AR_AGING_BUCKETS):
            if upper is None or days <= upper:
                bucket["count"] += 1
                bucket["amount"] += row.balance_remaining
                break
    return buckets


def payment_stats(rows: list[InvoiceBalance], today: date) -> dict:
    outstanding = [r for r in rows if r.workflow_status not in SETTLED_STATUSES]
    overdue = [r for r in rows if days_overdue(r.due_date, r.workflow_status, today) > 0]
    return {
        "total_outstanding": sum(r.balance_remaining for r in outstanding),
        "total_overdue": sum(r.balance_remaining for r in overdue),
        "pending_count": len(outstanding),
        "overdue_count": len(overdue),
    }


# ---------------------------------------------------------------------------
# Database-backed service
# ---------------------------------------------------------------------------


class ReportingService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_payment_progress(self, invoice_id: uuid.UUID) -> PaymentProgress:
        invoice = await self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundException(f"Invoice {invoice_id} not found")

        result = await self.db.execute(
            select(PaymentMilestone).where(PaymentMilestone.invoice_id == invoice_id)
        )
        milestones = list(result.scalars().all())
        return compute_payment_progress(invoice.total_amount, milestones)

    async def invoice_balances(self) -> list[InvoiceBalance]:
        """Load every non-draft invoice with its completed-milestone total."""
        invoice_result = await self.db.execute(
            select(Invoice).where(Invoice.workflow_status != InvoiceWorkflowStatus.DRAFT)
        )
        invoices = list(invoice_result.scalars().all())
        if not invoices:
            return []

        milestone_result = await self.db.execute(
            select(PaymentMilestone).where(
                PaymentMilestone.invoice_id.in_([inv.id for inv in invoices]),
                PaymentMilestone.status == MilestoneStatus.COMPLETED,
            )
        )
        paid_by_invoice: dict[uuid.UUID, int] = {}
        for m in milestone_result.scalars().all():
            paid_by_invoice[m.invoice_id] = paid_by_invoice.get(m.invoice_id, 0) + m.amount_cents

        return [
            InvoiceBalance(
                invoice_id=inv.id,
                workflow_status=inv.workflow_status,
                total_amount=inv.total_amount,
                paid_amount=paid_by_invoice.get(inv.id, 0),
                due_date=inv.due_date,
            )
            for inv in invoices
        ]

    async def ar_aging(self, today: date | None = None) -> list[dict]:
        rows = await self.invoice_balances()
        return ar_aging_buckets(rows, today or today_utc())

    async def payment_stats(self, today: date | None = None) -> dict:
        rows = await self.invoice_balances()
        stats = payment_stats(rows, today or today_utc())
        logger.debug("Computed payment stats over %d invoices", len(rows))
        return stats
