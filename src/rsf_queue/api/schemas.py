"""Request and response models for the REST API."""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, StrictInt

from rsf_queue.services.pre_optimization import ExecutionLog, JobDefinition
from rsf_queue.services.tasks import Task


class TaskResponse(BaseModel):
    id: str
    type: str
    priority: int
    status: str
    created_at: dt.datetime
    updated_at: dt.datetime
    data: Dict[str, Any]
    details: Optional[str] = None

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls(
            id=str(task.id),
            type=task.type,
            priority=task.priority,
            status=task.status.value,
            created_at=task.created_at,
            updated_at=task.updated_at,
            data=task.data,
            details=task.details,
        )


class QueueStatusResponse(BaseModel):
    tasks: List[TaskResponse]
    total: int


class SetPriorityRequest(BaseModel):
    priority: StrictInt


class CreateJobDefinitionRequest(BaseModel):
    type: str = Field(min_length=1, max_length=50)
    start_date: dt.datetime
    end_date: dt.datetime


class JobDefinitionResponse(BaseModel):
    id: str
    type: str
    start_date: dt.datetime
    end_date: dt.datetime
    created_at: dt.datetime
    created_by: str

    @classmethod
    def from_definition(cls, definition: JobDefinition) -> "JobDefinitionResponse":
        return cls(
            id=str(definition.id),
            type=definition.type,
            start_date=definition.start_date,
            end_date=definition.end_date,
            created_at=definition.created_at,
            created_by=definition.created_by,
        )


class ExecuteJobDefinitionRequest(BaseModel):
    priority: StrictInt = 0


class EnqueuedTaskResponse(BaseModel):
    task_id: str
    status: str


class ExecutionLogResponse(BaseModel):
    log_id: str
    job_definition_id: str
    start_time: dt.datetime
    end_time: Optional[dt.datetime] = None
    status: str
    affected_units: Optional[int] = None
    details: Optional[str] = None

    @classmethod
    def from_log(cls, log: ExecutionLog) -> "ExecutionLogResponse":
        return cls(
            log_id=str(log.log_id),
            job_definition_id=str(log.job_definition_id),
            start_time=log.start_time,
            end_time=log.end_time,
            status=log.status.value,
            affected_units=log.affected_units,
            details=log.details,
        )
