"""Task handler registry.

``task_queue.data`` is a tagged union keyed by ``task_queue.type``. Each tag
registers a pydantic payload model and a handler; unknown tags and payloads
that fail validation are rejected when the worker dispatches the task, not
when it is queued.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional, Tuple, Type

from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from rsf_queue.exceptions import UnsupportedJobTypeError, ValidationError
from rsf_queue.services.tasks.cancellation import CancellationToken
from rsf_queue.services.tasks.models import Task, TaskType

if TYPE_CHECKING:
    from rsf_queue.services.pre_optimization.execution_engine import ExecutionEngine


class TaskPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    requested_by: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("requested_by", "userId")
    )


class ImportPayload(TaskPayload):
    file_id: str = Field(validation_alias=AliasChoices("file_id", "fileId"))


class PreOptimizationPayload(TaskPayload):
    job_definition_id: uuid.UUID = Field(
        validation_alias=AliasChoices("job_definition_id", "preOptimizationId")
    )


class TaskHandler(ABC):
    """Runs one task type. Returns the details stored with COMPLETED."""

    @abstractmethod
    async def __call__(
        self, task: Task, payload: TaskPayload, token: CancellationToken
    ) -> Optional[str]:
        ...


@dataclass(frozen=True)
class HandlerRegistration:
    payload_model: Type[TaskPayload]
    handler: TaskHandler


class TaskHandlerRegistry:
    def __init__(self) -> None:
        self._registrations: Dict[str, HandlerRegistration] = {}

    def register(
        self,
        task_type: TaskType | str,
        payload_model: Type[TaskPayload],
        handler: TaskHandler,
    ) -> None:
        key = task_type.value if isinstance(task_type, TaskType) else str(task_type)
        self._registrations[key] = HandlerRegistration(payload_model, handler)
        logger.info(f"Registered handler for task type: {key}")

    @property
    def registered_types(self) -> list[str]:
        return sorted(self._registrations)

    def resolve(self, task: Task) -> Tuple[TaskHandler, TaskPayload]:
        registration = self._registrations.get(task.type)
        if registration is None:
            raise UnsupportedJobTypeError(f"Unknown task type: {task.type}", subject_id=task.id)

        try:
            payload = registration.payload_model.model_validate(task.data)
        except PydanticValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            )
            raise ValidationError(
                f"Invalid payload for {task.type} task: {problems}", subject_id=task.id
            ) from exc

        return registration.handler, payload


IMPORT_STAGES = ("validate", "parse", "load")


class ImportBackend(ABC):
    """File storage and RSF record parsing live outside the queue."""

    @abstractmethod
    async def run_stage(self, file_id: str, stage: str) -> int:
        """Run one import stage and return the number of records it touched."""


class LoggingImportBackend(ImportBackend):
    """Default backend used until a real importer is wired in."""

    async def run_stage(self, file_id: str, stage: str) -> int:
        logger.info(f"Import of file {file_id}: stage '{stage}'")
        return 0


class ImportTaskHandler(TaskHandler):
    def __init__(self, backend: ImportBackend, stage_delay: float = 0.0) -> None:
        self._backend = backend
        self._stage_delay = stage_delay

    async def __call__(self, task, payload, token):
        processed = 0
        for stage in IMPORT_STAGES:
            await token.checkpoint()
            processed += await self._backend.run_stage(payload.file_id, stage)
            if self._stage_delay:
                await token.sleep(self._stage_delay)
        return f"Imported file {payload.file_id}: {processed} records processed."


class PreOptimizationTaskHandler(TaskHandler):
    def __init__(self, engine: "ExecutionEngine") -> None:
        self._engine = engine

    async def __call__(self, task, payload, token):
        outcome = await self._engine.execute_pre_optimization(
            payload.job_definition_id, token=token
        )
        return outcome.summary()


def build_default_registry(
    engine: "ExecutionEngine",
    import_backend: Optional[ImportBackend] = None,
    import_stage_delay: float = 0.0,
) -> TaskHandlerRegistry:
    registry = TaskHandlerRegistry()
    registry.register(
        TaskType.IMPORT,
        ImportPayload,
        ImportTaskHandler(import_backend or LoggingImportBackend(), import_stage_delay),
    )
    registry.register(
        TaskType.PRE_OPTIMIZATION,
        PreOptimizationPayload,
        PreOptimizationTaskHandler(engine),
    )
    return registry


__all__ = [
    "TaskPayload",
    "ImportPayload",
    "PreOptimizationPayload",
    "TaskHandler",
    "TaskHandlerRegistry",
    "ImportBackend",
    "LoggingImportBackend",
    "ImportTaskHandler",
    "PreOptimizationTaskHandler",
    "build_default_registry",
    "IMPORT_STAGES",
]
