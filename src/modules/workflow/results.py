"""Outcome types returned by workflow operations.

Hard failures (missing invoice, illegal transition, failed write) are raised
as ``AppException`` subclasses. Best-effort side effects (quote sync and
notifications) never raise out of a transition; their outcome is reported
here instead.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.models.enums import InvoiceWorkflowStatus

if TYPE_CHECKING:
    from src.models.invoice import Invoice
    from src.models.payment_milestone import PaymentMilestone

SIDE_EFFECT_OK = "ok"
SIDE_EFFECT_SKIPPED = "skipped"
SIDE_EFFECT_FAILED = "failed"


@dataclass(frozen=True)
class SideEffectResult:
    status: str
    detail: str | None = None

    @classmethod
    def ok(cls, detail: str | None = None) -> SideEffectResult:
        return cls(SIDE_EFFECT_OK, detail)

    @classmethod
    def skipped(cls, detail: str | None = None) -> SideEffectResult:
        return cls(SIDE_EFFECT_SKIPPED, detail)

    @classmethod
    def failed(cls, detail: str) -> SideEffectResult:
        return cls(SIDE_EFFECT_FAILED, detail)

    @property
    def is_failure(self) -> bool:
        return self.status == SIDE_EFFECT_FAILED


@dataclass(frozen=True)
class TransitionResult:
    invoice_id: uuid.UUID
    invoice: Invoice
    previous_status: InvoiceWorkflowStatus
    new_status: InvoiceWorkflowStatus
    quote_sync: SideEffectResult
    notification: SideEffectResult


@dataclass(frozen=True)
class MilestoneUpdateResult:
    milestone: PaymentMilestone
    invoice_transition: TransitionResult | None = None
