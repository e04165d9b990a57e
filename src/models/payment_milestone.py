"""PaymentMilestone model — a partial payment obligation on an invoice."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, Date, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from src.models.enums import MilestoneStatus, MilestoneType

if TYPE_CHECKING:
    from src.models.invoice import Invoice


class PaymentMilestone(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "payment_milestones"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )
    milestone_type: Mapped[MilestoneType] = mapped_column(nullable=False)
    percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date)
    is_due_now: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_net30: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    description: Mapped[str | None] = mapped_column(Text)

    status: Mapped[MilestoneStatus] = mapped_column(
        nullable=False, default=MilestoneStatus.PENDING, server_default="PENDING"
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    invoice: Mapped[Invoice] = relationship(
        "Invoice", back_populates="milestones", lazy="noload"
    )

    __table_args__ = (
        Index("ix_payment_milestones_invoice_id", "invoice_id"),
        Index("ix_payment_milestones_status", "status"),
    )
