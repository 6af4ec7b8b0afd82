"""Task types, statuses and the state machine that connects them."""

from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from rsf_queue.database.models import TaskEntity


class TaskType(str, Enum):
    IMPORT = "IMPORT"
    PRE_OPTIMIZATION = "PRE_OPTIMIZATION"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
)

# CANCELLED is listed for completeness; only QueueManager.stop_task may take it.
ALLOWED_TRANSITIONS: Dict[TaskStatus, frozenset] = {
    TaskStatus.PENDING: frozenset({TaskStatus.RUNNING}),
    TaskStatus.RUNNING: frozenset(
        {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def allowed_sources(target: TaskStatus) -> list[str]:
    """Statuses from which ``target`` may be reached, as stored strings."""
    return [
        source.value
        for source, targets in ALLOWED_TRANSITIONS.items()
        if target in targets
    ]


def _isoformat(value: Optional[dt.datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class Task:
    id: uuid.UUID
    type: str
    priority: int
    status: TaskStatus
    created_at: dt.datetime
    updated_at: dt.datetime
    data: Dict[str, Any] = field(default_factory=dict)
    details: Optional[str] = None

    @classmethod
    def from_entity(cls, entity: TaskEntity) -> "Task":
        return cls(
            id=entity.id,
            type=entity.type,
            priority=entity.priority,
            status=TaskStatus(entity.status),
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            data=dict(entity.data or {}),
            details=entity.details,
        )

    def to_update_payload(self) -> Dict[str, Any]:
        """Payload of a TASK_UPDATE envelope."""
        return {
            "taskId": str(self.id),
            "status": self.status.value,
            "type": self.type,
            "priority": self.priority,
            "data": self.data,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }


__all__ = [
    "TaskType",
    "TaskStatus",
    "TERMINAL_STATUSES",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "allowed_sources",
    "Task",
]
