"""Invoice numbering and editing rules."""

from __future__ import annotations

from src.models.enums import InvoiceWorkflowStatus

INVOICE_NUMBER_PREFIX = "INV"

# Line items are frozen once an invoice is settled
LINE_ITEM_LOCKED_STATUSES: frozenset[InvoiceWorkflowStatus] = frozenset({
    InvoiceWorkflowStatus.PAID,
    InvoiceWorkflowStatus.CANCELLED,
})
