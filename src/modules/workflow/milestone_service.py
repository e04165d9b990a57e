"""Payment milestone scheduling and status updates."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import commit_session
from src.exceptions import NotFoundException
from src.models.enums import MilestoneStatus, MilestoneType
from src.models.invoice import Invoice
from src.models.payment_milestone import PaymentMilestone
from src.models.quote_request import QuoteRequest
from src.modules.workflow.constants import (
    GOVERNMENT_COMPLIANCE_LEVEL,
    GOVERNMENT_NET_DAYS,
    MID_RANGE_EVENT_DAYS,
    MID_RANGE_FINAL_DAYS_BEFORE,
    RUSH_EVENT_DAYS,
    SHORT_NOTICE_EVENT_DAYS,
    SHORT_NOTICE_FINAL_DAYS_BEFORE,
    SPLIT_DEPOSIT_PCT,
    SPLIT_FINAL_PCT,
    STANDARD_DEPOSIT_PCT,
    STANDARD_FINAL_DAYS_BEFORE,
    STANDARD_MID_DAYS_BEFORE,
    STANDARD_FINAL_PCT,
    STANDARD_MID_PCT,
)
from src.modules.workflow.reporting import today_utc
from src.modules.workflow.results import MilestoneUpdateResult
from src.modules.workflow.service import WorkflowService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MilestonePlan:
    milestone_type: MilestoneType
    percentage: int
    amount_cents: int
    due_date: date
    is_due_now: bool
    is_net30: bool
    description: str
    status: MilestoneStatus = MilestoneStatus.PENDING


def _share(total_cents: int, percentage: int) -> int:
    """Percentage of an amount in cents, rounded half up."""
    return (total_cents * percentage + 50) // 100


def build_milestone_schedule(
    total_cents: int,
    event_date: date,
    is_government: bool,
    today: date,
    paid_cents: int = 0,
) -> list[MilestonePlan]:
    """Split an invoice total into payment milestones by lead time to the event.

    The last milestone absorbs rounding so amounts always sum to the total.
    ``paid_cents`` already collected is applied in order, marking each
    milestone it fully covers as completed.
    """
    days_until_event = (event_date - today).days

    if is_government:
        plans = [
            MilestonePlan(
                MilestoneType.FULL,
                100,
                total_cents,
                event_date + timedelta(days=GOVERNMENT_NET_DAYS),
                is_due_now=False,
                is_net30=True,
                description="Full payment due 30 days after event (Net 30)",
            )
        ]
    elif days_until_event <= RUSH_EVENT_DAYS:
        plans = [
            MilestonePlan(
                MilestoneType.FULL,
                100,
                total_cents,
                today,
                is_due_now=True,
                is_net30=False,
                description="Full payment due immediately (rush event)",
            )
        ]
    elif days_until_event <= MID_RANGE_EVENT_DAYS:
        days_before = (
            SHORT_NOTICE_FINAL_DAYS_BEFORE
            if days_until_event <= SHORT_NOTICE_EVENT_DAYS
            else MID_RANGE_FINAL_DAYS_BEFORE
        )
        deposit = _share(total_cents, SPLIT_DEPOSIT_PCT)
        plans = [
            MilestonePlan(
                MilestoneType.DEPOSIT,
                SPLIT_DEPOSIT_PCT,
                deposit,
                today,
                is_due_now=True,
                is_net30=False,
                description=f"{SPLIT_DEPOSIT_PCT}% deposit due now",
            ),
            MilestonePlan(
                MilestoneType.FINAL,
                SPLIT_FINAL_PCT,
                total_cents - deposit,
                event_date - timedelta(days=days_before),
                is_due_now=False,
                is_net30=False,
                description=f"Final {SPLIT_FINAL_PCT}% due {days_before} days before event",
            ),
        ]
    else:
        deposit = _share(total_cents, STANDARD_DEPOSIT_PCT)
        mid = _share(total_cents, STANDARD_MID_PCT)
        plans = [
            MilestonePlan(
                MilestoneType.DEPOSIT,
                STANDARD_DEPOSIT_PCT,
                deposit,
                today,
                is_due_now=True,
                is_net30=False,
                description=f"{STANDARD_DEPOSIT_PCT}% booking deposit due now",
            ),
            MilestonePlan(
                MilestoneType.MILESTONE,
                STANDARD_MID_PCT,
                mid,
                event_date - timedelta(days=STANDARD_MID_DAYS_BEFORE),
                is_due_now=False,
                is_net30=False,
                description=f"{STANDARD_MID_PCT}% payment due {STANDARD_MID_DAYS_BEFORE} days before event",
            ),
            MilestonePlan(
                MilestoneType.FINAL,
                STANDARD_FINAL_PCT,
                total_cents - deposit - mid,
                event_date - timedelta(days=STANDARD_FINAL_DAYS_BEFORE),
                is_due_now=False,
                is_net30=False,
                description=f"Final {STANDARD_FINAL_PCT}% due {STANDARD_FINAL_DAYS_BEFORE} days before event",
            ),
        ]

    if paid_cents <= 0:
        return plans

    # Waterfall: stop at the first milestone the carried amount cannot cover
    remaining = paid_cents
    covering = True
    carried: list[MilestonePlan] = []
    for plan in plans:
        if covering and remaining >= plan.amount_cents:
            remaining -= plan.amount_cents
            carried.append(replace(plan, status=MilestoneStatus.COMPLETED))
        else:
            covering = False
            carried.append(plan)
    return carried


def is_government_customer(quote: QuoteRequest | None) -> bool:
    if quote is None:
        return False
    return quote.compliance_level == GOVERNMENT_COMPLIANCE_LEVEL or bool(quote.requires_po_number)


class MilestoneService:
    def __init__(self, db: AsyncSession, workflow: WorkflowService | None = None):
        self.db = db
        self.workflow = workflow or WorkflowService(db)

    async def list_milestones(self, invoice_id: uuid.UUID) -> list[PaymentMilestone]:
        result = await self.db.execute(
            select(PaymentMilestone)
            .where(PaymentMilestone.invoice_id == invoice_id)
            .order_by(PaymentMilestone.due_date, PaymentMilestone.created_at)
        )
        return list(result.scalars().all())

    async def generate_milestones(
        self,
        invoice_id: uuid.UUID,
        force_regenerate: bool = False,
        today: date | None = None,
    ) -> list[PaymentMilestone]:
        """Create the payment schedule for an invoice.

        Existing milestones are returned untouched unless ``force_regenerate``
        is set; regeneration replaces them, carrying completed amounts over.
        """
        invoice = await self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundException(f"Invoice {invoice_id} not found")

        existing = await self.list_milestones(invoice_id)
        paid_cents = 0
        if existing:
            if not force_regenerate:
                logger.info(
                    "Invoice %s already has %d milestones; not regenerating",
                    invoice_id,
                    len(existing),
                )
                return existing

            paid_cents = sum(
                m.amount_cents for m in existing if m.status == MilestoneStatus.COMPLETED
            )
            for m in existing:
                await self.db.delete(m)
            await self.db.flush()

        quote = None
        if invoice.quote_request_id is not None:
            quote = await self.db.get(QuoteRequest, invoice.quote_request_id)

        today = today or today_utc()
        event_date = quote.event_date if quote is not None else today
        plans = build_milestone_schedule(
            invoice.total_amount,
            event_date,
            is_government_customer(quote),
            today,
            paid_cents=paid_cents,
        )

        now = datetime.now(UTC)
        milestones = [
            PaymentMilestone(
                invoice_id=invoice_id,
                milestone_type=plan.milestone_type,
                percentage=plan.percentage,
                amount_cents=plan.amount_cents,
                due_date=plan.due_date,
                is_due_now=plan.is_due_now,
                is_net30=plan.is_net30,
                description=plan.description,
                status=plan.status,
                completed_at=now if plan.status == MilestoneStatus.COMPLETED else None,
            )
            for plan in plans
        ]
        self.db.add_all(milestones)
        await commit_session(self.db, f"milestones for invoice {invoice_id}")

        logger.info(
            "Generated %d milestones for invoice %s (carried over %d cents)",
            len(milestones),
            invoice_id,
            paid_cents,
        )
        return milestones

    async def update_milestone_status(
        self, milestone_id: uuid.UUID, status: MilestoneStatus
    ) -> MilestoneUpdateResult:
        """Set a milestone's status; completing one may mark the invoice paid."""
        milestone = await self.db.get(PaymentMilestone, milestone_id)
        if milestone is None:
            raise NotFoundException(f"Payment milestone {milestone_id} not found")

        # Repeating the current status keeps the original completion time
        if milestone.status != status:
            milestone.status = status
            milestone.completed_at = (
                datetime.now(UTC) if status == MilestoneStatus.COMPLETED else None
            )
            await commit_session(self.db, f"milestone {milestone_id}")

        invoice_transition = None
        if status == MilestoneStatus.COMPLETED:
            invoice_transition = await self.workflow.on_milestone_completed(milestone_id)

        return MilestoneUpdateResult(milestone=milestone, invoice_transition=invoice_transition)
