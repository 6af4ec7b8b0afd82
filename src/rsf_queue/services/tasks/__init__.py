"""
Task queue services.
"""

from rsf_queue.services.tasks.cancellation import NEVER_CANCELLED, CancellationToken
from rsf_queue.services.tasks.handlers import (
    ImportBackend,
    ImportPayload,
    PreOptimizationPayload,
    TaskHandler,
    TaskHandlerRegistry,
    build_default_registry,
)
from rsf_queue.services.tasks.models import Task, TaskStatus, TaskType
from rsf_queue.services.tasks.queue_manager import QueueManager
from rsf_queue.services.tasks.worker import QueueWorker

__all__ = [
    "CancellationToken",
    "NEVER_CANCELLED",
    "ImportBackend",
    "ImportPayload",
    "PreOptimizationPayload",
    "TaskHandler",
    "TaskHandlerRegistry",
    "build_default_registry",
    "Task",
    "TaskStatus",
    "TaskType",
    "QueueManager",
    "QueueWorker",
]
