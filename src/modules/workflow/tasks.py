"""Celery tasks for the invoice workflow — periodic overdue sweep and milestone checks."""

from __future__ import annotations

import asyncio
import logging
import uuid

from celery_app import celery
from src.database.engine import async_session
from src.modules.notifications.client import close_notification_client
from src.modules.workflow.service import WorkflowService

logger = logging.getLogger(__name__)


async def _mark_overdue_invoices_async() -> dict:
    try:
        async with async_session() as session:
            stats = await WorkflowService(session).mark_overdue_invoices()
        return stats
    finally:
        await close_notification_client()


async def _reconcile_milestone_async(milestone_id_str: str) -> bool:
    try:
        async with async_session() as session:
            result = await WorkflowService(session).on_milestone_completed(
                uuid.UUID(milestone_id_str)
            )
        return result is not None
    finally:
        await close_notification_client()


@celery.task(name="src.modules.workflow.tasks.mark_overdue_invoices")
def mark_overdue_invoices():
    """Move past-due sent/approved invoices to OVERDUE."""
    stats = asyncio.run(_mark_overdue_invoices_async())
    logger.info("mark_overdue_invoices complete: %s", stats)
    return stats


@celery.task(name="src.modules.workflow.tasks.reconcile_milestone")
def reconcile_milestone(milestone_id: str):
    """Re-run the all-milestones-completed check for one milestone's invoice.

    Used when a payment provider confirms a milestone outside an API request.
    """
    transitioned = asyncio.run(_reconcile_milestone_async(milestone_id))
    logger.info("reconcile_milestone %s: invoice_paid=%s", milestone_id, transitioned)
    return {"milestone_id": milestone_id, "invoice_paid": transitioned}
