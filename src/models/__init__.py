# Import all models so SQLAlchemy metadata is populated for Alembic and create_all
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
from src.models.invoice_line_item import InvoiceLineItem
from src.models.payment_milestone import PaymentMilestone
from src.models.quote_request import QuoteRequest
from src.models.workflow_state_log import WorkflowStateLog

__all__ = [
    "Actor",
    "Invoice",
    "InvoiceLineItem",
    "InvoiceWorkflowStatus",
    "MilestoneStatus",
    "MilestoneType",
    "NotificationType",
    "PaymentMilestone",
    "QuoteRequest",
    "QuoteWorkflowStatus",
    "RecipientType",
    "WorkflowStateLog",
]
