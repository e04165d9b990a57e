"""Invoice workflow status registry, quote mapping, and notification rules."""

from __future__ import annotations

from types import MappingProxyType

from src.models.enums import (
    InvoiceWorkflowStatus,
    NotificationType,
    QuoteWorkflowStatus,
    RecipientType,
)

# ---------------------------------------------------------------------------
# Valid status transitions: current_status -> allowed next statuses.
# Business-rule changes to the invoice lifecycle happen here only.
# ---------------------------------------------------------------------------

INVOICE_TRANSITIONS: MappingProxyType[InvoiceWorkflowStatus, frozenset[InvoiceWorkflowStatus]] = MappingProxyType({
    InvoiceWorkflowStatus.DRAFT: frozenset({
        InvoiceWorkflowStatus.SENT,
        InvoiceWorkflowStatus.CANCELLED,
    }),
    InvoiceWorkflowStatus.SENT: frozenset({
        InvoiceWorkflowStatus.APPROVED,
        InvoiceWorkflowStatus.PENDING_REVIEW,
        InvoiceWorkflowStatus.OVERDUE,
        InvoiceWorkflowStatus.CANCELLED,
    }),
    InvoiceWorkflowStatus.PENDING_REVIEW: frozenset({
        InvoiceWorkflowStatus.SENT,
        InvoiceWorkflowStatus.APPROVED,
        InvoiceWorkflowStatus.CANCELLED,
    }),
    InvoiceWorkflowStatus.APPROVED: frozenset({
        InvoiceWorkflowStatus.PAID,
        InvoiceWorkflowStatus.OVERDUE,
        InvoiceWorkflowStatus.CANCELLED,
    }),
    InvoiceWorkflowStatus.PAID: frozenset({
        InvoiceWorkflowStatus.CANCELLED,
    }),
    InvoiceWorkflowStatus.OVERDUE: frozenset({
        InvoiceWorkflowStatus.PAID,
        InvoiceWorkflowStatus.CANCELLED,
    }),
    InvoiceWorkflowStatus.CANCELLED: frozenset(),
})

INVOICE_TERMINAL_STATUSES: frozenset[InvoiceWorkflowStatus] = frozenset({
    InvoiceWorkflowStatus.CANCELLED,
})

# Statuses the overdue checker may move to OVERDUE
OVERDUE_ELIGIBLE_STATUSES: frozenset[InvoiceWorkflowStatus] = frozenset({
    InvoiceWorkflowStatus.SENT,
    InvoiceWorkflowStatus.APPROVED,
})

# Settled invoices never count as outstanding or overdue in reports
SETTLED_STATUSES: frozenset[InvoiceWorkflowStatus] = frozenset({
    InvoiceWorkflowStatus.PAID,
    InvoiceWorkflowStatus.CANCELLED,
})

# ---------------------------------------------------------------------------
# Invoice status -> linked quote status
# ---------------------------------------------------------------------------

QUOTE_STATUS_MAP: MappingProxyType[InvoiceWorkflowStatus, QuoteWorkflowStatus] = MappingProxyType({
    InvoiceWorkflowStatus.DRAFT: QuoteWorkflowStatus.PENDING,
    InvoiceWorkflowStatus.PENDING_REVIEW: QuoteWorkflowStatus.UNDER_REVIEW,
    InvoiceWorkflowStatus.SENT: QuoteWorkflowStatus.ESTIMATED,
    InvoiceWorkflowStatus.APPROVED: QuoteWorkflowStatus.APPROVED,
    InvoiceWorkflowStatus.PAID: QuoteWorkflowStatus.PAID,
    InvoiceWorkflowStatus.OVERDUE: QuoteWorkflowStatus.AWAITING_PAYMENT,
})

DEFAULT_QUOTE_STATUS = QuoteWorkflowStatus.PENDING

# ---------------------------------------------------------------------------
# Notification rules: at most one (type, recipient) per new status
# ---------------------------------------------------------------------------

NOTIFICATION_RULES: MappingProxyType[InvoiceWorkflowStatus, tuple[NotificationType, RecipientType]] = MappingProxyType({
    InvoiceWorkflowStatus.SENT: (NotificationType.ESTIMATE_READY, RecipientType.CUSTOMER),
    InvoiceWorkflowStatus.APPROVED: (NotificationType.CUSTOMER_ACTION, RecipientType.ADMIN),
    InvoiceWorkflowStatus.PAID: (NotificationType.PAYMENT_RECEIVED, RecipientType.ADMIN),
    InvoiceWorkflowStatus.OVERDUE: (NotificationType.REMINDER, RecipientType.CUSTOMER),
})

# ---------------------------------------------------------------------------
# Display metadata for dashboards and the customer portal
# ---------------------------------------------------------------------------

STATUS_INFO: MappingProxyType[InvoiceWorkflowStatus, dict[str, str]] = MappingProxyType({
    InvoiceWorkflowStatus.DRAFT: {
        "label": "Draft",
        "description": "Invoice is being prepared",
        "color": "outline",
    },
    InvoiceWorkflowStatus.SENT: {
        "label": "Sent",
        "description": "Awaiting customer approval",
        "color": "secondary",
    },
    InvoiceWorkflowStatus.PENDING_REVIEW: {
        "label": "Under Review",
        "description": "Customer requested changes",
        "color": "secondary",
    },
    InvoiceWorkflowStatus.APPROVED: {
        "label": "Approved",
        "description": "Awaiting payment",
        "color": "default",
    },
    InvoiceWorkflowStatus.PAID: {
        "label": "Paid",
        "description": "Payment completed",
        "color": "default",
    },
    InvoiceWorkflowStatus.OVERDUE: {
        "label": "Overdue",
        "description": "Payment past due date",
        "color": "destructive",
    },
    InvoiceWorkflowStatus.CANCELLED: {
        "label": "Cancelled",
        "description": "Invoice cancelled",
        "color": "outline",
    },
})

# ---------------------------------------------------------------------------
# Audit log and automated-transition reasons
# ---------------------------------------------------------------------------

AUDIT_ENTITY_INVOICE = "invoices"

REASON_MILESTONES_COMPLETED = "All payment milestones completed"
REASON_PAST_DUE = "Payment past due date"
REASON_CUSTOMER_APPROVAL = "Customer approved estimate"

# ---------------------------------------------------------------------------
# Payment milestone schedule (days until the event)
# ---------------------------------------------------------------------------

RUSH_EVENT_DAYS = 14
SHORT_NOTICE_EVENT_DAYS = 30
MID_RANGE_EVENT_DAYS = 44

GOVERNMENT_NET_DAYS = 30
SHORT_NOTICE_FINAL_DAYS_BEFORE = 7
MID_RANGE_FINAL_DAYS_BEFORE = 14
STANDARD_MID_DAYS_BEFORE = 30
STANDARD_FINAL_DAYS_BEFORE = 14

SPLIT_DEPOSIT_PCT = 60
SPLIT_FINAL_PCT = 40
STANDARD_DEPOSIT_PCT = 10
STANDARD_MID_PCT = 50
STANDARD_FINAL_PCT = 40

GOVERNMENT_COMPLIANCE_LEVEL = "government"

# AR aging bucket upper bounds in days overdue (None = open-ended)
AR_AGING_BUCKETS: tuple[tuple[str, int | None], ...] = (
    ("Current", 0),
    ("1-30 Days", 30),
    ("31-60 Days", 60),
    ("61-90 Days", 90),
    ("90+ Days", None),
)
