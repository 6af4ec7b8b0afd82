"""Domain errors raised by the queue, worker and execution engine.

API boundaries map these onto HTTP responses (see ``core.exception_handlers``);
services raise them verbatim.
"""

from __future__ import annotations

from typing import Any, Optional


class QueueError(Exception):
    """Base class for every error raised by rsf_queue services."""

    code = "QUEUE_ERROR"

    def __init__(self, message: str, *, subject_id: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.subject_id = subject_id


class AuthenticationError(QueueError):
    """Bearer credential missing, invalid, expired or carrying malformed claims."""

    code = "AUTHENTICATION_ERROR"


class AuthorizationError(QueueError):
    """The actor does not hold the role the operation requires."""

    code = "AUTHORIZATION_ERROR"


class NotFoundError(QueueError):
    """A task or job definition id is unknown."""

    code = "NOT_FOUND"


class ValidationError(QueueError):
    """Input or state does not allow the requested operation."""

    code = "VALIDATION_ERROR"


class TaskNotRunningError(ValidationError):
    code = "TASK_NOT_RUNNING"

    def __init__(self, task_id: Any, current_status: str) -> None:
        super().__init__(
            f"Task {task_id} cannot be stopped because it is not running "
            f"(current status: {current_status}).",
            subject_id=task_id,
        )
        self.current_status = current_status


class InvalidTransitionError(ValidationError):
    code = "INVALID_TRANSITION"

    def __init__(self, task_id: Any, current_status: str, target_status: str) -> None:
        super().__init__(
            f"Task {task_id} cannot move from {current_status} to {target_status}.",
            subject_id=task_id,
        )
        self.current_status = current_status
        self.target_status = target_status


class UnsupportedJobTypeError(ValidationError):
    code = "UNSUPPORTED_TYPE"


class OverlappingJobDefinitionError(ValidationError):
    code = "OVERLAPPING_RANGE"


class LockContentionError(QueueError):
    """The mutual-exclusion lock is held by another execution."""

    code = "LOCK_CONTENTION"

    def __init__(self, lock_key: int) -> None:
        super().__init__(
            f"Advisory lock {lock_key} is held by another execution.",
            subject_id=lock_key,
        )
        self.lock_key = lock_key


class DatabaseError(QueueError):
    """Unexpected store failure; the original exception is chained."""

    code = "DATABASE_ERROR"


class TaskExecutionError(QueueError):
    code = "TASK_EXECUTION_ERROR"

    def __init__(self, task_id: Any, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, subject_id=task_id)
        self.task_id = task_id
        self.cause = cause


class TaskCancelledError(QueueError):
    """Raised at a handler step boundary once the task is seen as CANCELLED."""

    code = "TASK_CANCELLED"

    def __init__(self, task_id: Any) -> None:
        super().__init__(f"Task {task_id} was cancelled.", subject_id=task_id)
        self.task_id = task_id


__all__ = [
    "QueueError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ValidationError",
    "TaskNotRunningError",
    "InvalidTransitionError",
    "UnsupportedJobTypeError",
    "OverlappingJobDefinitionError",
    "LockContentionError",
    "DatabaseError",
    "TaskExecutionError",
    "TaskCancelledError",
]
