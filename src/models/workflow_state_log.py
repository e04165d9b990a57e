"""WorkflowStateLog model — append-only audit trail of status changes."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, UUIDPrimaryKeyMixin, utcnow


class WorkflowStateLog(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "workflow_state_log"

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String(50))
    new_status: Mapped[str] = mapped_column(String(50), nullable=False)
    changed_by: Mapped[str] = mapped_column(String(50), nullable=False)
    change_reason: Mapped[str | None] = mapped_column(Text)
    # "metadata" is reserved on declarative classes
    details: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    # Set client-side so rows written in one transaction keep their order
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_workflow_state_log_entity", "entity_type", "entity_id"),
        Index("ix_workflow_state_log_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowStateLog {self.entity_type}/{self.entity_id} "
            f"{self.previous_status} -> {self.new_status} by {self.changed_by}>"
        )
