"""Invoice model — billable estimate derived from a quote request."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from src.models.enums import InvoiceWorkflowStatus

if TYPE_CHECKING:
    from src.models.invoice_line_item import InvoiceLineItem
    from src.models.payment_milestone import PaymentMilestone
    from src.models.quote_request import QuoteRequest


class Invoice(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "invoices"

    invoice_number: Mapped[str | None] = mapped_column(String(50), unique=True)

    # Back-reference to the originating quote
    quote_request_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("quote_requests.id", ondelete="SET NULL"),
    )

    # Status: written only by WorkflowService.transition
    workflow_status: Mapped[InvoiceWorkflowStatus] = mapped_column(
        nullable=False, default=InvoiceWorkflowStatus.DRAFT, server_default="DRAFT"
    )
    status_changed_by: Mapped[str | None] = mapped_column(String(50))
    last_status_change: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_customer_action: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Amounts (cents)
    subtotal: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    tax_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Dates
    due_date: Mapped[date | None] = mapped_column(Date)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Optimistic lock for line-item edits
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    notes: Mapped[str | None] = mapped_column(Text)

    # Relationships
    quote_request: Mapped[QuoteRequest | None] = relationship("QuoteRequest", lazy="noload")
    line_items: Mapped[list[InvoiceLineItem]] = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        lazy="noload",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.sort_order",
    )
    milestones: Mapped[list[PaymentMilestone]] = relationship(
        "PaymentMilestone",
        back_populates="invoice",
        lazy="noload",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_invoices_quote_request_id", "quote_request_id"),
        Index("ix_invoices_workflow_status", "workflow_status"),
        Index("ix_invoices_due_date", "due_date"),
    )

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} status={self.workflow_status} total={self.total_amount}>"
