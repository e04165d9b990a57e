"""QuoteRequest model — the originating catering request an invoice is billed from."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from src.models.enums import QuoteWorkflowStatus


class QuoteRequest(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "quote_requests"

    # Contact
    contact_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50))

    # Event
    event_name: Mapped[str] = mapped_column(String(300), nullable=False)
    event_date: Mapped[date] = mapped_column(Date, nullable=False)
    location: Mapped[str | None] = mapped_column(Text)
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Government customers pay net 30 after the event
    compliance_level: Mapped[str | None] = mapped_column(String(50))
    requires_po_number: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    # Workflow
    workflow_status: Mapped[QuoteWorkflowStatus] = mapped_column(
        nullable=False, default=QuoteWorkflowStatus.PENDING, server_default="PENDING"
    )
    status_changed_by: Mapped[str | None] = mapped_column(String(50))
    last_status_change: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<QuoteRequest id={self.id} event={self.event_name!r} status={self.workflow_status}>"
