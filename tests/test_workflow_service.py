"""Integration tests for WorkflowService against in-memory SQLite."""

from __future__ import annotations

import asyncio
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from factories import RecordingNotifier, create_invoice, create_milestone, create_quote
from src.config import settings
from src.exceptions import InvalidTransitionException, NotFoundException, PersistenceException
from src.models.enums import (
    Actor,
    InvoiceWorkflowStatus,
    MilestoneStatus,
    MilestoneType,
    NotificationType,
    QuoteWorkflowStatus,
    RecipientType,
)
from src.models.invoice import Invoice
from src.models.quote_request import QuoteRequest
from src.models.workflow_state_log import WorkflowStateLog
from src.modules.workflow.milestone_service import MilestoneService
from src.modules.workflow.results import SIDE_EFFECT_FAILED, SIDE_EFFECT_OK, SIDE_EFFECT_SKIPPED
from src.modules.workflow.service import WorkflowService
from src.modules.workflow.reporting import today_utc

S = InvoiceWorkflowStatus


async def _audit_rows(db, invoice_id) -> list[WorkflowStateLog]:
    result = await db.execute(
        select(WorkflowStateLog)
        .where(WorkflowStateLog.entity_id == invoice_id)
        .order_by(WorkflowStateLog.created_at)
    )
    return list(result.scalars().all())


async def _reload(db, model, pk):
    return await db.get(model, pk, populate_existing=True)


class TestTransition:
    """State mutator: validate, persist, audit."""

    @pytest.mark.asyncio
    async def test_legal_transition_persists_and_audits(self, db_session, notifier):
        invoice = await create_invoice(db_session)
        svc = WorkflowService(db_session, notifier)

        result = await svc.transition(invoice.id, S.SENT, Actor.ADMIN)

        assert result.previous_status == S.DRAFT
        assert result.new_status == S.SENT
        reloaded = await _reload(db_session, Invoice, invoice.id)
        assert reloaded.workflow_status == S.SENT
        assert reloaded.status_changed_by == "admin"
        assert reloaded.last_status_change is not None
        assert reloaded.sent_at is not None

        rows = await _audit_rows(db_session, invoice.id)
        assert len(rows) == 1
        assert rows[0].entity_type == "invoices"
        assert rows[0].previous_status == "draft"
        assert rows[0].new_status == "sent"
        assert rows[0].changed_by == "admin"
        assert rows[0].change_reason == "Status updated: draft → sent"

    @pytest.mark.asyncio
    async def test_custom_reason_and_metadata_recorded(self, db_session, notifier):
        invoice = await create_invoice(db_session)
        svc = WorkflowService(db_session, notifier)

        await svc.transition(
            invoice.id, S.CANCELLED, Actor.ADMIN, reason="Event called off", metadata={"ticket": 42}
        )

        rows = await _audit_rows(db_session, invoice.id)
        assert rows[0].change_reason == "Event called off"
        assert rows[0].details == {"ticket": 42}

    @pytest.mark.asyncio
    async def test_illegal_transition_changes_nothing(self, db_session, notifier):
        invoice = await create_invoice(db_session)
        svc = WorkflowService(db_session, notifier)

        with pytest.raises(InvalidTransitionException):
            await svc.transition(invoice.id, S.PAID, Actor.ADMIN)

        reloaded = await _reload(db_session, Invoice, invoice.id)
        assert reloaded.workflow_status == S.DRAFT
        assert await _audit_rows(db_session, invoice.id) == []
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_missing_invoice_raises_not_found(self, db_session, notifier):
        svc = WorkflowService(db_session, notifier)
        with pytest.raises(NotFoundException):
            await svc.transition(uuid.uuid4(), S.SENT, Actor.ADMIN)

    @pytest.mark.asyncio
    async def test_cancelled_is_terminal(self, db_session, notifier):
        invoice = await create_invoice(db_session, status=S.CANCELLED)
        svc = WorkflowService(db_session, notifier)

        for target in S:
            with pytest.raises(InvalidTransitionException):
                await svc.transition(invoice.id, target, Actor.ADMIN)

    @pytest.mark.asyncio
    async def test_customer_actor_stamps_last_customer_action(self, db_session, notifier):
        invoice = await create_invoice(db_session, status=S.SENT)
        svc = WorkflowService(db_session, notifier)

        await svc.transition(invoice.id, S.PENDING_REVIEW, Actor.CUSTOMER)

        reloaded = await _reload(db_session, Invoice, invoice.id)
        assert reloaded.last_customer_action is not None
        assert reloaded.status_changed_by == "customer"

    @pytest.mark.asyncio
    async def test_paid_stamps_paid_at(self, db_session, notifier):
        invoice = await create_invoice(db_session, status=S.APPROVED)
        svc = WorkflowService(db_session, notifier)

        await svc.transition(invoice.id, S.PAID, Actor.ADMIN)

        reloaded = await _reload(db_session, Invoice, invoice.id)
        assert reloaded.paid_at is not None

    @pytest.mark.asyncio
    async def test_persistence_failure_raises_and_records_nothing(self, db_session, notifier):
        invoice = await create_invoice(db_session)
        await db_session.commit()
        svc = WorkflowService(db_session, notifier)

        failure = OperationalError("UPDATE invoices", {}, Exception("database is locked"))
        with patch.object(db_session.sync_session, "flush", side_effect=failure):
            with pytest.raises(PersistenceException):
                await svc.transition(invoice.id, S.SENT, Actor.ADMIN)

        await db_session.rollback()
        reloaded = await _reload(db_session, Invoice, invoice.id)
        assert reloaded.workflow_status == S.DRAFT
        assert await _audit_rows(db_session, invoice.id) == []
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_commit_failure_raises_before_side_effects(self, db_session, notifier):
        quote = await create_quote(db_session)
        invoice = await create_invoice(db_session, quote=quote)
        await db_session.commit()
        svc = WorkflowService(db_session, notifier)

        failure = OperationalError("COMMIT", {}, Exception("disk I/O error"))
        with patch.object(db_session, "commit", AsyncMock(side_effect=failure)):
            with pytest.raises(PersistenceException):
                await svc.transition(invoice.id, S.SENT, Actor.ADMIN)

        assert notifier.sent == []
        assert (await _reload(db_session, Invoice, invoice.id)).workflow_status == S.DRAFT
        assert (await _reload(db_session, QuoteRequest, quote.id)).workflow_status == QuoteWorkflowStatus.PENDING
        assert await _audit_rows(db_session, invoice.id) == []


class TestQuoteSync:
    @pytest.mark.asyncio
    async def test_transition_syncs_linked_quote(self, db_session, notifier):
        quote = await create_quote(db_session)
        invoice = await create_invoice(db_session, quote=quote)
        svc = WorkflowService(db_session, notifier)

        result = await svc.transition(invoice.id, S.SENT, Actor.ADMIN)

        assert result.quote_sync.status == SIDE_EFFECT_OK
        reloaded = await _reload(db_session, QuoteRequest, quote.id)
        assert reloaded.workflow_status == QuoteWorkflowStatus.ESTIMATED

    @pytest.mark.asyncio
    async def test_no_linked_quote_is_skipped(self, db_session, notifier):
        invoice = await create_invoice(db_session)
        svc = WorkflowService(db_session, notifier)

        result = await svc.transition(invoice.id, S.SENT, Actor.ADMIN)

        assert result.quote_sync.status == SIDE_EFFECT_SKIPPED

    @pytest.mark.asyncio
    async def test_sync_failure_does_not_abort_transition(self, db_session, notifier):
        invoice = await create_invoice(db_session)
        # Dangling reference: the quote row does not exist
        invoice.quote_request_id = uuid.uuid4()
        await db_session.flush()
        svc = WorkflowService(db_session, notifier)

        result = await svc.transition(invoice.id, S.SENT, Actor.ADMIN)

        assert result.quote_sync.status == SIDE_EFFECT_FAILED
        assert "not found" in result.quote_sync.detail
        reloaded = await _reload(db_session, Invoice, invoice.id)
        assert reloaded.workflow_status == S.SENT
        assert len(await _audit_rows(db_session, invoice.id)) == 1

    @pytest.mark.asyncio
    async def test_sync_is_idempotent(self, db_session, notifier):
        quote = await create_quote(db_session)
        svc = WorkflowService(db_session, notifier)

        first = await svc.sync_quote_status(quote.id, S.APPROVED)
        second = await svc.sync_quote_status(quote.id, S.APPROVED)

        assert first == second == QuoteWorkflowStatus.APPROVED
        reloaded = await _reload(db_session, QuoteRequest, quote.id)
        assert reloaded.workflow_status == QuoteWorkflowStatus.APPROVED

    @pytest.mark.asyncio
    async def test_cancelled_maps_quote_back_to_pending(self, db_session, notifier):
        quote = await create_quote(db_session)
        invoice = await create_invoice(db_session, quote=quote, status=S.SENT)
        svc = WorkflowService(db_session, notifier)

        await svc.transition(invoice.id, S.CANCELLED, Actor.ADMIN)

        reloaded = await _reload(db_session, QuoteRequest, quote.id)
        assert reloaded.workflow_status == QuoteWorkflowStatus.PENDING

    @pytest.mark.asyncio
    async def test_sync_missing_quote_raises(self, db_session, notifier):
        svc = WorkflowService(db_session, notifier)
        with pytest.raises(NotFoundException):
            await svc.sync_quote_status(uuid.uuid4(), S.SENT)


class TestNotify:
    @pytest.mark.asyncio
    async def test_sent_notifies_customer_with_quote_details(self, db_session, notifier):
        quote = await create_quote(db_session)
        invoice = await create_invoice(db_session, quote=quote)
        svc = WorkflowService(db_session, notifier)

        result = await svc.transition(invoice.id, S.SENT, Actor.ADMIN)

        assert result.notification.status == SIDE_EFFECT_OK
        assert len(notifier.sent) == 1
        notification_type, recipient, invoice_id, payload = notifier.sent[0]
        assert notification_type == NotificationType.ESTIMATE_READY
        assert recipient == RecipientType.CUSTOMER
        assert invoice_id == invoice.id
        assert payload["customer_email"] == "dana@example.com"
        assert payload["event_name"] == "Spring Gala"
        assert payload["triggered_by"] == "admin"

    @pytest.mark.asyncio
    async def test_status_without_rule_sends_nothing(self, db_session, notifier):
        invoice = await create_invoice(db_session)
        svc = WorkflowService(db_session, notifier)

        result = await svc.transition(invoice.id, S.CANCELLED, Actor.ADMIN)

        assert result.notification.status == SIDE_EFFECT_SKIPPED
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_notifier_error_is_reported_not_raised(self, db_session):
        invoice = await create_invoice(db_session)
        svc = WorkflowService(db_session, RecordingNotifier(error=RuntimeError("smtp down")))

        result = await svc.transition(invoice.id, S.SENT, Actor.ADMIN)

        assert result.notification.status == SIDE_EFFECT_FAILED
        assert result.notification.detail == "smtp down"
        reloaded = await _reload(db_session, Invoice, invoice.id)
        assert reloaded.workflow_status == S.SENT

    @pytest.mark.asyncio
    async def test_slow_notifier_times_out(self, db_session, monkeypatch):
        class SlowNotifier(RecordingNotifier):
            async def send(self, *args, **kwargs):
                await asyncio.sleep(5)

        monkeypatch.setattr(settings, "notification_timeout_seconds", 0.01)
        invoice = await create_invoice(db_session)
        svc = WorkflowService(db_session, SlowNotifier())

        result = await svc.transition(invoice.id, S.SENT, Actor.ADMIN)

        assert result.notification.status == SIDE_EFFECT_FAILED
        assert result.notification.detail == "TimeoutError"

    @pytest.mark.asyncio
    async def test_disabled_notifications_are_skipped(self, db_session, notifier, monkeypatch):
        monkeypatch.setattr(settings, "notifications_enabled", False)
        invoice = await create_invoice(db_session)
        svc = WorkflowService(db_session, notifier)

        result = await svc.transition(invoice.id, S.SENT, Actor.ADMIN)

        assert result.notification.status == SIDE_EFFECT_SKIPPED
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_notifier_sees_committed_status(self, db_session):
        class RollingBackNotifier(RecordingNotifier):
            """Discards any open transaction, then reads what is actually stored."""

            def __init__(self, db):
                super().__init__()
                self.db = db
                self.seen: list[tuple[InvoiceWorkflowStatus, int]] = []

            async def send(self, notification_type, recipient, invoice_id, payload):
                await self.db.rollback()
                stored = await self.db.get(Invoice, invoice_id, populate_existing=True)
                self.seen.append((stored.workflow_status, len(await _audit_rows(self.db, invoice_id))))
                await super().send(notification_type, recipient, invoice_id, payload)

        invoice = await create_invoice(db_session)
        await db_session.commit()
        notifier = RollingBackNotifier(db_session)

        result = await WorkflowService(db_session, notifier).transition(invoice.id, S.SENT, Actor.ADMIN)

        assert result.notification.status == SIDE_EFFECT_OK
        assert notifier.seen == [(S.SENT, 1)]
        assert (await _reload(db_session, Invoice, invoice.id)).workflow_status == S.SENT


class TestMilestoneAggregation:
    @pytest.mark.asyncio
    async def test_last_completion_marks_invoice_paid(self, db_session, notifier):
        quote = await create_quote(db_session)
        invoice = await create_invoice(db_session, quote=quote, status=S.APPROVED)
        await create_milestone(db_session, invoice, 6000, status=MilestoneStatus.COMPLETED)
        final = await create_milestone(
            db_session, invoice, 4000, milestone_type=MilestoneType.FINAL
        )
        svc = MilestoneService(db_session, WorkflowService(db_session, notifier))

        result = await svc.update_milestone_status(final.id, MilestoneStatus.COMPLETED)

        assert result.milestone.completed_at is not None
        assert result.invoice_transition is not None
        assert result.invoice_transition.new_status == S.PAID
        reloaded = await _reload(db_session, Invoice, invoice.id)
        assert reloaded.workflow_status == S.PAID
        rows = await _audit_rows(db_session, invoice.id)
        assert rows[-1].changed_by == "system"
        assert rows[-1].change_reason == "All payment milestones completed"
        assert (await _reload(db_session, QuoteRequest, quote.id)).workflow_status == QuoteWorkflowStatus.PAID
        assert notifier.sent[-1][0] == NotificationType.PAYMENT_RECEIVED

    @pytest.mark.asyncio
    async def test_completing_again_is_a_noop(self, db_session, notifier):
        invoice = await create_invoice(db_session, status=S.APPROVED)
        milestone = await create_milestone(db_session, invoice, 10000)
        svc = MilestoneService(db_session, WorkflowService(db_session, notifier))

        await svc.update_milestone_status(milestone.id, MilestoneStatus.COMPLETED)
        second = await svc.update_milestone_status(milestone.id, MilestoneStatus.COMPLETED)

        assert second.invoice_transition is None
        rows = await _audit_rows(db_session, invoice.id)
        assert [r.new_status for r in rows] == ["paid"]

    @pytest.mark.asyncio
    async def test_partial_completion_leaves_invoice_alone(self, db_session, notifier):
        invoice = await create_invoice(db_session, status=S.APPROVED)
        first = await create_milestone(db_session, invoice, 6000)
        await create_milestone(db_session, invoice, 4000)
        workflow = WorkflowService(db_session, notifier)

        await MilestoneService(db_session, workflow).update_milestone_status(
            first.id, MilestoneStatus.COMPLETED
        )

        assert await workflow.on_milestone_completed(first.id) is None
        assert (await _reload(db_session, Invoice, invoice.id)).workflow_status == S.APPROVED

    @pytest.mark.asyncio
    async def test_overdue_invoice_can_be_paid_by_milestones(self, db_session, notifier):
        invoice = await create_invoice(db_session, status=S.OVERDUE)
        milestone = await create_milestone(db_session, invoice, 10000, status=MilestoneStatus.COMPLETED)
        workflow = WorkflowService(db_session, notifier)

        result = await workflow.on_milestone_completed(milestone.id)

        assert result is not None
        assert (await _reload(db_session, Invoice, invoice.id)).workflow_status == S.PAID

    @pytest.mark.asyncio
    async def test_status_that_cannot_be_paid_is_left_unchanged(self, db_session, notifier):
        invoice = await create_invoice(db_session, status=S.SENT)
        milestone = await create_milestone(db_session, invoice, 10000, status=MilestoneStatus.COMPLETED)
        workflow = WorkflowService(db_session, notifier)

        assert await workflow.on_milestone_completed(milestone.id) is None
        assert (await _reload(db_session, Invoice, invoice.id)).workflow_status == S.SENT

    @pytest.mark.asyncio
    async def test_unknown_milestone_raises(self, db_session, notifier):
        with pytest.raises(NotFoundException):
            await WorkflowService(db_session, notifier).on_milestone_completed(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_completing_again_keeps_completion_time(self, db_session, notifier):
        invoice = await create_invoice(db_session, status=S.APPROVED)
        milestone = await create_milestone(db_session, invoice, 10000)
        svc = MilestoneService(db_session, WorkflowService(db_session, notifier))

        first = await svc.update_milestone_status(milestone.id, MilestoneStatus.COMPLETED)
        completed_at = first.milestone.completed_at
        second = await svc.update_milestone_status(milestone.id, MilestoneStatus.COMPLETED)

        assert completed_at is not None
        assert second.milestone.completed_at == completed_at
        assert second.invoice_transition is None

    @pytest.mark.asyncio
    async def test_parent_invoice_is_read_with_row_lock(self, db_session, notifier, monkeypatch):
        invoice = await create_invoice(db_session, status=S.APPROVED)
        milestone = await create_milestone(db_session, invoice, 10000, status=MilestoneStatus.COMPLETED)
        statements = []
        real_execute = db_session.execute

        async def recording_execute(statement, *args, **kwargs):
            statements.append(statement)
            return await real_execute(statement, *args, **kwargs)

        monkeypatch.setattr(db_session, "execute", recording_execute)

        await WorkflowService(db_session, notifier).on_milestone_completed(milestone.id)

        compiled = [str(s.compile(dialect=postgresql.dialect())) for s in statements]
        locked = [sql for sql in compiled if "FOR UPDATE" in sql]
        assert locked
        assert "FROM invoices" in locked[0]


class TestOverdue:
    @pytest.mark.asyncio
    async def test_sent_past_due_moves_to_overdue(self, db_session, notifier):
        today = today_utc()
        invoice = await create_invoice(db_session, status=S.SENT, due_date=today - timedelta(days=1))
        svc = WorkflowService(db_session, notifier)

        assert await svc.check_and_mark_overdue(invoice.id, today=today) is True

        assert (await _reload(db_session, Invoice, invoice.id)).workflow_status == S.OVERDUE
        rows = await _audit_rows(db_session, invoice.id)
        assert rows[-1].change_reason == "Payment past due date"
        assert rows[-1].changed_by == "system"
        assert notifier.sent[-1][:2] == (NotificationType.REMINDER, RecipientType.CUSTOMER)

    @pytest.mark.asyncio
    async def test_paid_past_due_is_unchanged(self, db_session, notifier):
        today = today_utc()
        invoice = await create_invoice(db_session, status=S.PAID, due_date=today - timedelta(days=10))
        svc = WorkflowService(db_session, notifier)

        assert await svc.check_and_mark_overdue(invoice.id, today=today) is False
        assert (await _reload(db_session, Invoice, invoice.id)).workflow_status == S.PAID

    @pytest.mark.asyncio
    async def test_due_today_is_not_overdue(self, db_session, notifier):
        today = today_utc()
        invoice = await create_invoice(db_session, status=S.APPROVED, due_date=today)
        svc = WorkflowService(db_session, notifier)

        assert await svc.check_and_mark_overdue(invoice.id, today=today) is False

    @pytest.mark.asyncio
    async def test_no_due_date_is_not_overdue(self, db_session, notifier):
        invoice = await create_invoice(db_session, status=S.SENT)
        svc = WorkflowService(db_session, notifier)

        assert await svc.check_and_mark_overdue(invoice.id) is False

    @pytest.mark.asyncio
    async def test_sweep_counts_marked_invoices(self, db_session, notifier):
        today = today_utc()
        past = today - timedelta(days=3)
        await create_invoice(db_session, status=S.SENT, due_date=past)
        await create_invoice(db_session, status=S.APPROVED, due_date=past)
        await create_invoice(db_session, status=S.PAID, due_date=past)
        await create_invoice(db_session, status=S.SENT, due_date=today + timedelta(days=3))
        svc = WorkflowService(db_session, notifier)

        stats = await svc.mark_overdue_invoices(today=today)

        assert stats == {"checked": 2, "marked_overdue": 2, "errors": 0}
        count = await db_session.scalar(
            select(func.count()).select_from(Invoice).where(Invoice.workflow_status == S.OVERDUE)
        )
        assert count == 2

    @pytest.mark.asyncio
    async def test_sweep_commits_each_invoice_on_its_own(self, db_session, notifier):
        today = today_utc()
        past = today - timedelta(days=3)
        await create_invoice(db_session, status=S.SENT, due_date=past)
        await create_invoice(db_session, status=S.APPROVED, due_date=past)
        await db_session.commit()
        real_commit = db_session.commit
        calls = []

        async def commit_failing_once():
            calls.append(1)
            if len(calls) == 1:
                raise OperationalError("COMMIT", {}, Exception("disk I/O error"))
            await real_commit()

        with patch.object(db_session, "commit", commit_failing_once):
            stats = await WorkflowService(db_session, notifier).mark_overdue_invoices(today=today)

        assert stats == {"checked": 2, "marked_overdue": 1, "errors": 1}
        await db_session.rollback()
        count = await db_session.scalar(
            select(func.count()).select_from(Invoice).where(Invoice.workflow_status == S.OVERDUE)
        )
        assert count == 1
        assert len(notifier.sent) == 1


class TestEndToEndScenario:
    """draft -> sent -> approved -> final milestone -> paid, with the quote following along."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, db_session, notifier):
        quote = await create_quote(db_session)
        invoice = await create_invoice(db_session, quote=quote, total_amount=10000)
        workflow = WorkflowService(db_session, notifier)

        sent = await workflow.transition(invoice.id, S.SENT, Actor.ADMIN)
        assert sent.quote_sync.detail == QuoteWorkflowStatus.ESTIMATED.value
        assert notifier.sent[-1][:2] == (NotificationType.ESTIMATE_READY, RecipientType.CUSTOMER)

        approved = await workflow.transition(invoice.id, S.APPROVED, Actor.CUSTOMER)
        assert approved.quote_sync.detail == QuoteWorkflowStatus.APPROVED.value
        assert (await _reload(db_session, QuoteRequest, quote.id)).workflow_status == QuoteWorkflowStatus.APPROVED

        milestone = await create_milestone(
            db_session, invoice, 10000, milestone_type=MilestoneType.FINAL
        )
        update = await MilestoneService(db_session, workflow).update_milestone_status(
            milestone.id, MilestoneStatus.COMPLETED
        )

        assert update.invoice_transition.new_status == S.PAID
        assert (await _reload(db_session, Invoice, invoice.id)).workflow_status == S.PAID
        assert (await _reload(db_session, QuoteRequest, quote.id)).workflow_status == QuoteWorkflowStatus.PAID
        rows = await _audit_rows(db_session, invoice.id)
        assert [(r.previous_status, r.new_status) for r in rows] == [
            ("draft", "sent"),
            ("sent", "approved"),
            ("approved", "paid"),
        ]
