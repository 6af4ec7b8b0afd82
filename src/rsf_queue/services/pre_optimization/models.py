"""Job definitions, execution logs and execution outcomes."""

from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from rsf_queue.database.models import ExecutionLogEntity, JobDefinitionEntity


class ExecutionStatus(str, Enum):
    STARTED = "STARTED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class JobDefinition:
    id: uuid.UUID
    type: str
    start_date: dt.datetime
    end_date: dt.datetime
    created_at: dt.datetime
    created_by: str

    @classmethod
    def from_entity(cls, entity: JobDefinitionEntity) -> "JobDefinition":
        return cls(
            id=entity.id,
            type=entity.type,
            start_date=entity.start_date,
            end_date=entity.end_date,
            created_at=entity.created_at,
            created_by=entity.created_by,
        )


@dataclass(frozen=True)
class ExecutionLog:
    log_id: uuid.UUID
    job_definition_id: uuid.UUID
    start_time: dt.datetime
    end_time: Optional[dt.datetime]
    status: ExecutionStatus
    affected_units: Optional[int]
    details: Optional[str]

    @classmethod
    def from_entity(cls, entity: ExecutionLogEntity) -> "ExecutionLog":
        return cls(
            log_id=entity.log_id,
            job_definition_id=entity.job_definition_id,
            start_time=entity.start_time,
            end_time=entity.end_time,
            status=ExecutionStatus(entity.status),
            affected_units=entity.affected_units,
            details=entity.details,
        )


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of one ``execute_pre_optimization`` call."""

    job_definition_id: uuid.UUID
    status: ExecutionStatus
    log_id: Optional[uuid.UUID] = None
    affected_units: Optional[int] = None
    duration_ms: Optional[int] = None

    @property
    def skipped(self) -> bool:
        return self.status is ExecutionStatus.SKIPPED

    def summary(self) -> str:
        if self.skipped:
            return (
                f"Pre-optimization {self.job_definition_id} skipped: "
                "another execution is already in progress."
            )
        return (
            f"Pre-optimization {self.job_definition_id} completed: "
            f"{self.affected_units} units affected in {self.duration_ms}ms."
        )


__all__ = ["ExecutionStatus", "JobDefinition", "ExecutionLog", "ExecutionOutcome"]
