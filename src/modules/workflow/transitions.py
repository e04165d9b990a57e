"""Pure lookups over the invoice status registry."""

from __future__ import annotations

from src.exceptions import InvalidTransitionException
from src.models.enums import (
    InvoiceWorkflowStatus,
    NotificationType,
    QuoteWorkflowStatus,
    RecipientType,
)
from src.modules.workflow.constants import (
    DEFAULT_QUOTE_STATUS,
    INVOICE_TRANSITIONS,
    NOTIFICATION_RULES,
    QUOTE_STATUS_MAP,
    STATUS_INFO,
)

# Registry declaration order, used to keep get_next_statuses() stable
_STATUS_ORDER = list(InvoiceWorkflowStatus)


def is_valid_transition(
    from_status: InvoiceWorkflowStatus, to_status: InvoiceWorkflowStatus
) -> bool:
    """Return True if the registry has an edge ``from_status -> to_status``."""
    return to_status in INVOICE_TRANSITIONS.get(from_status, frozenset())


def get_next_statuses(status: InvoiceWorkflowStatus) -> list[InvoiceWorkflowStatus]:
    allowed = INVOICE_TRANSITIONS.get(status, frozenset())
    return [s for s in _STATUS_ORDER if s in allowed]


def assert_valid_transition(
    from_status: InvoiceWorkflowStatus, to_status: InvoiceWorkflowStatus
) -> None:
    """Raise InvalidTransitionException unless the move is in the registry."""
    if not is_valid_transition(from_status, to_status):
        raise InvalidTransitionException(
            from_status.value,
            to_status.value,
            allowed=[s.value for s in get_next_statuses(from_status)],
        )


def quote_status_for(invoice_status: InvoiceWorkflowStatus) -> QuoteWorkflowStatus:
    """Map an invoice status onto the coarser quote vocabulary (total, defaulted)."""
    return QUOTE_STATUS_MAP.get(invoice_status, DEFAULT_QUOTE_STATUS)


def notification_for(
    status: InvoiceWorkflowStatus,
) -> tuple[NotificationType, RecipientType] | None:
    return NOTIFICATION_RULES.get(status)


def get_status_info(status: InvoiceWorkflowStatus | str) -> dict[str, str]:
    """Label, description and badge colour; unknown statuses fall back to draft."""
    try:
        key = InvoiceWorkflowStatus(status)
    except ValueError:
        key = InvoiceWorkflowStatus.DRAFT
    return dict(STATUS_INFO[key])
