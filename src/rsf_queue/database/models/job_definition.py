"""Job definitions and their execution audit trail."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Optional

from sqlalchemy import CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rsf_queue.database.base import Base, utcnow
from rsf_queue.database.types import GUID, UTCDateTime


class JobDefinitionEntity(Base):
    """Insert-only declaration of a batch job over a date range."""

    __tablename__ = "job_definitions"
    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_job_definitions_date_order"),
        Index("ix_job_definitions_type_range", "type", "start_date", "end_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    start_date: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_date: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)


class ExecutionLogEntity(Base):
    """One attempt to run a job definition.

    No foreign key: the STARTED row is written before the definition is looked
    up, so attempts on unknown ids are still recorded.
    """

    __tablename__ = "execution_logs"
    __table_args__ = (
        Index("ix_execution_logs_definition_start", "job_definition_id", "start_time"),
    )

    log_id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    job_definition_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), nullable=False
    )
    start_time: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )
    end_time: Mapped[Optional[dt.datetime]] = mapped_column(UTCDateTime(), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    affected_units: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


__all__ = ["JobDefinitionEntity", "ExecutionLogEntity"]
