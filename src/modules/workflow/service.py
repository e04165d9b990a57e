"""Invoice workflow service — the state mutator and everything that cascades from it.

A transition runs to completion in one request: validate, persist the new
status with its audit row, project the status onto the linked quote, then
send at most one notification. Only the first two steps can fail the call.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import UTC, date, datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.session import commit_session
from src.exceptions import NotFoundException, PersistenceException
from src.models.enums import (
    Actor,
    InvoiceWorkflowStatus,
    MilestoneStatus,
    QuoteWorkflowStatus,
)
from src.models.invoice import Invoice
from src.models.payment_milestone import PaymentMilestone
from src.models.quote_request import QuoteRequest
from src.models.workflow_state_log import WorkflowStateLog
from src.modules.notifications.client import NotificationClientBase, get_notification_client
from src.modules.workflow.constants import (
    AUDIT_ENTITY_INVOICE,
    OVERDUE_ELIGIBLE_STATUSES,
    REASON_MILESTONES_COMPLETED,
    REASON_PAST_DUE,
)
from src.modules.workflow.reporting import is_overdue_eligible, today_utc
from src.modules.workflow.results import SideEffectResult, TransitionResult
from src.modules.workflow.transitions import (
    assert_valid_transition,
    is_valid_transition,
    notification_for,
    quote_status_for,
)

logger = logging.getLogger(__name__)


class WorkflowService:
    def __init__(
        self,
        db: AsyncSession,
        notifier: NotificationClientBase | None = None,
    ):
        self.db = db
        self.notifier = notifier or get_notification_client()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _get_invoice(self, invoice_id: uuid.UUID, for_update: bool = False) -> Invoice:
        statement = select(Invoice).where(Invoice.id == invoice_id)
        if for_update:
            # Re-read under the row lock so a concurrent writer's status is seen
            statement = statement.with_for_update().execution_options(populate_existing=True)
        try:
            result = await self.db.execute(statement)
        except SQLAlchemyError as exc:
            raise PersistenceException(f"Could not load invoice {invoice_id}") from exc

        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFoundException(f"Invoice {invoice_id} not found")
        return invoice

    async def get_current_status(self, invoice_id: uuid.UUID) -> InvoiceWorkflowStatus:
        invoice = await self._get_invoice(invoice_id)
        return invoice.workflow_status

    # ------------------------------------------------------------------
    # State mutator
    # ------------------------------------------------------------------

    async def transition(
        self,
        invoice_id: uuid.UUID,
        new_status: InvoiceWorkflowStatus,
        actor: Actor,
        reason: str | None = None,
        metadata: dict | None = None,
    ) -> TransitionResult:
        """Move an invoice to ``new_status``.

        The status and its audit row are committed before the quote is
        synced or anyone is notified. NotFoundException,
        InvalidTransitionException and PersistenceException leave nothing
        written and nothing sent. Quote sync and notification failures are
        reported on the result, never raised.
        """
        invoice = await self._get_invoice(invoice_id)
        previous_status = invoice.workflow_status
        quote_id = invoice.quote_request_id

        assert_valid_transition(previous_status, new_status)

        await self._persist_transition(invoice, previous_status, new_status, actor, reason, metadata)
        await commit_session(self.db, f"status change for invoice {invoice_id}")

        quote_sync = await self._sync_linked_quote(invoice_id, quote_id, new_status)
        notification = await self.notify(invoice_id, new_status, actor)

        logger.info(
            "Invoice %s transitioned %s -> %s by %s",
            invoice_id,
            previous_status.value,
            new_status.value,
            actor.value,
        )
        return TransitionResult(
            invoice_id=invoice_id,
            invoice=invoice,
            previous_status=previous_status,
            new_status=new_status,
            quote_sync=quote_sync,
            notification=notification,
        )

    async def _persist_transition(
        self,
        invoice: Invoice,
        previous_status: InvoiceWorkflowStatus,
        new_status: InvoiceWorkflowStatus,
        actor: Actor,
        reason: str | None,
        metadata: dict | None,
    ) -> None:
        """Write the status and its audit row atomically inside a SAVEPOINT."""
        # A rolled-back SAVEPOINT expires the invoice, so keep its id up front
        invoice_id = invoice.id
        now = datetime.now(UTC)
        try:
            async with self.db.begin_nested():
                invoice.workflow_status = new_status
                invoice.status_changed_by = actor.value
                invoice.last_status_change = now
                if actor == Actor.CUSTOMER:
                    invoice.last_customer_action = now
                if new_status == InvoiceWorkflowStatus.SENT and invoice.sent_at is None:
                    invoice.sent_at = now
                if new_status == InvoiceWorkflowStatus.PAID:
                    invoice.paid_at = now

                self.db.add(
                    WorkflowStateLog(
                        entity_type=AUDIT_ENTITY_INVOICE,
                        entity_id=invoice_id,
                        previous_status=previous_status.value,
                        new_status=new_status.value,
                        changed_by=actor.value,
                        change_reason=reason
                        or f"Status updated: {previous_status.value} → {new_status.value}",
                        details=metadata or {},
                    )
                )
        except SQLAlchemyError as exc:
            logger.exception(
                "Failed to persist transition %s -> %s for invoice %s",
                previous_status.value,
                new_status.value,
                invoice_id,
            )
            raise PersistenceException(
                f"Could not save status change for invoice {invoice_id}"
            ) from exc

    # ------------------------------------------------------------------
    # Quote synchronizer
    # ------------------------------------------------------------------

    async def sync_quote_status(
        self, quote_id: uuid.UUID, invoice_status: InvoiceWorkflowStatus
    ) -> QuoteWorkflowStatus:
        """Project an invoice status onto its quote. Idempotent."""
        quote = await self.db.get(QuoteRequest, quote_id)
        if quote is None:
            raise NotFoundException(f"Quote request {quote_id} not found")

        quote_status = quote_status_for(invoice_status)
        quote.workflow_status = quote_status
        quote.last_status_change = datetime.now(UTC)
        await self.db.flush()

        logger.info("Synced quote %s to status %s", quote_id, quote_status.value)
        return quote_status

    async def _sync_linked_quote(
        self,
        invoice_id: uuid.UUID,
        quote_id: uuid.UUID | None,
        invoice_status: InvoiceWorkflowStatus,
    ) -> SideEffectResult:
        if quote_id is None:
            return SideEffectResult.skipped("no linked quote")

        try:
            async with self.db.begin_nested():
                quote_status = await self.sync_quote_status(quote_id, invoice_status)
            await commit_session(self.db, f"quote {quote_id} status")
        except Exception as exc:
            logger.exception(
                "Quote sync failed for invoice %s (quote %s)", invoice_id, quote_id
            )
            return SideEffectResult.failed(str(exc))

        return SideEffectResult.ok(quote_status.value)

    # ------------------------------------------------------------------
    # Notification dispatcher
    # ------------------------------------------------------------------

    async def notify(
        self,
        invoice_id: uuid.UUID,
        new_status: InvoiceWorkflowStatus,
        actor: Actor,
    ) -> SideEffectResult:
        """Send the single notification configured for ``new_status``, if any.

        Bounded by ``settings.notification_timeout_seconds``; every failure is
        logged and returned, never raised.
        """
        rule = notification_for(new_status)
        if rule is None:
            return SideEffectResult.skipped(f"no notification for {new_status.value}")
        if not settings.notifications_enabled:
            return SideEffectResult.skipped("notifications disabled")

        notification_type, recipient = rule
        try:
            payload = await self._notification_payload(invoice_id, new_status, actor)
            await asyncio.wait_for(
                self.notifier.send(notification_type, recipient, invoice_id, payload),
                timeout=settings.notification_timeout_seconds,
            )
        except Exception as exc:
            logger.exception(
                "Notification %s to %s failed for invoice %s",
                notification_type.value,
                recipient.value,
                invoice_id,
            )
            return SideEffectResult.failed(str(exc) or exc.__class__.__name__)

        logger.info(
            "Notification sent: %s to %s for invoice %s",
            notification_type.value,
            recipient.value,
            invoice_id,
        )
        return SideEffectResult.ok(f"{notification_type.value}:{recipient.value}")

    async def _notification_payload(
        self,
        invoice_id: uuid.UUID,
        new_status: InvoiceWorkflowStatus,
        actor: Actor,
    ) -> dict:
        payload: dict = {"status": new_status.value, "triggered_by": actor.value}
        invoice = await self.db.get(Invoice, invoice_id)
        if invoice is None or invoice.quote_request_id is None:
            return payload

        quote = await self.db.get(QuoteRequest, invoice.quote_request_id)
        payload["quote_request_id"] = str(invoice.quote_request_id)
        if quote is not None:
            payload.update(
                {
                    "event_name": quote.event_name,
                    "contact_name": quote.contact_name,
                    "customer_email": quote.email,
                    "event_date": quote.event_date.isoformat(),
                }
            )
        return payload

    # ------------------------------------------------------------------
    # Milestone aggregator
    # ------------------------------------------------------------------

    async def on_milestone_completed(self, milestone_id: uuid.UUID) -> TransitionResult | None:
        """Mark the parent invoice paid once every milestone is completed.

        The parent invoice row is locked first, so two completions racing on
        the same invoice are checked one after the other and the final
        ``paid`` transition cannot be missed. Returns None when nothing
        changed.
        """
        milestone = await self.db.get(PaymentMilestone, milestone_id)
        if milestone is None:
            raise NotFoundException(f"Payment milestone {milestone_id} not found")

        invoice = await self._get_invoice(milestone.invoice_id, for_update=True)
        if invoice.workflow_status == InvoiceWorkflowStatus.PAID:
            logger.debug("Invoice %s already paid; milestone %s is a no-op", invoice.id, milestone_id)
            return None

        result = await self.db.execute(
            select(PaymentMilestone).where(PaymentMilestone.invoice_id == invoice.id)
        )
        milestones = list(result.scalars().all())
        if not milestones or any(m.status != MilestoneStatus.COMPLETED for m in milestones):
            return None

        if not is_valid_transition(invoice.workflow_status, InvoiceWorkflowStatus.PAID):
            logger.warning(
                "All milestones completed for invoice %s but status %s cannot move to paid",
                invoice.id,
                invoice.workflow_status.value,
            )
            return None

        return await self.transition(
            invoice.id,
            InvoiceWorkflowStatus.PAID,
            Actor.SYSTEM,
            reason=REASON_MILESTONES_COMPLETED,
        )

    # ------------------------------------------------------------------
    # Overdue checker
    # ------------------------------------------------------------------

    async def check_and_mark_overdue(
        self, invoice_id: uuid.UUID, today: date | None = None
    ) -> bool:
        """Move a past-due sent/approved invoice to overdue. Returns True if it moved."""
        invoice = await self._get_invoice(invoice_id)
        if not is_overdue_eligible(invoice.due_date, invoice.workflow_status, today or today_utc()):
            return False

        await self.transition(
            invoice.id,
            InvoiceWorkflowStatus.OVERDUE,
            Actor.SYSTEM,
            reason=REASON_PAST_DUE,
        )
        return True

    async def mark_overdue_invoices(self, today: date | None = None) -> dict:
        """Run the overdue check over every candidate invoice.

        Each invoice that moves is committed on its own, so one failure
        neither undoes nor delays the others.
        """
        today = today or today_utc()
        stats = {"checked": 0, "marked_overdue": 0, "errors": 0}

        result = await self.db.execute(
            select(Invoice.id).where(
                Invoice.workflow_status.in_(OVERDUE_ELIGIBLE_STATUSES),
                Invoice.due_date.isnot(None),
                Invoice.due_date < today,
            )
        )
        invoice_ids = list(result.scalars().all())
        stats["checked"] = len(invoice_ids)

        for invoice_id in invoice_ids:
            try:
                if await self.check_and_mark_overdue(invoice_id, today=today):
                    stats["marked_overdue"] += 1
            except Exception:
                logger.exception("Error marking invoice %s overdue", invoice_id)
                stats["errors"] += 1

        logger.info(
            "Overdue sweep: checked=%d marked=%d errors=%d",
            stats["checked"],
            stats["marked_overdue"],
            stats["errors"],
        )
        return stats
