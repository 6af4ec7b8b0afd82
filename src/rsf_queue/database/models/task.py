"""Task queue table."""

from __future__ import annotations

import uuid
from typing import Any, Optional

from sqlalchemy import JSON, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from rsf_queue.database.base import Base, TimestampMixin
from rsf_queue.database.types import GUID

PayloadJSON = JSON().with_variant(JSONB(), "postgresql")


class TaskEntity(TimestampMixin, Base):
    """One queued unit of work. Rows are never deleted by the queue."""

    __tablename__ = "task_queue"
    __table_args__ = (
        Index(
            "ix_task_queue_claim_order",
            "status",
            "priority",
            "created_at",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    data: Mapped[dict[str, Any]] = mapped_column(PayloadJSON, nullable=False, default=dict)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


__all__ = ["TaskEntity", "PayloadJSON"]
