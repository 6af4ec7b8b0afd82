"""Persistence layer: entities, engine and session helpers."""

from rsf_queue.database.base import Base, TimestampMixin, utcnow
from rsf_queue.database.models import (
    AuditEvent,
    ExecutionLogEntity,
    JobDefinitionEntity,
    JobLockEntity,
    TaskEntity,
)
from rsf_queue.database.session import Database, create_database

__all__ = [
    "Base",
    "TimestampMixin",
    "utcnow",
    "AuditEvent",
    "ExecutionLogEntity",
    "JobDefinitionEntity",
    "JobLockEntity",
    "TaskEntity",
    "Database",
    "create_database",
]
