"""ORM entities."""

from rsf_queue.database.models.audit import AuditEvent
from rsf_queue.database.models.job_definition import ExecutionLogEntity, JobDefinitionEntity
from rsf_queue.database.models.lock import JobLockEntity
from rsf_queue.database.models.task import TaskEntity

__all__ = [
    "AuditEvent",
    "ExecutionLogEntity",
    "JobDefinitionEntity",
    "JobLockEntity",
    "TaskEntity",
]
