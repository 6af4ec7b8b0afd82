"""Persistent task queue.

The queue manager is the only writer of ``task_queue`` rows. Claims rely on
the store for exclusion: ``FOR UPDATE SKIP LOCKED`` where supported, plus a
conditional ``UPDATE ... WHERE status = 'PENDING'`` that lets exactly one
claimant win on every dialect.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Protocol, Union

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rsf_queue.database import Database, TaskEntity, utcnow
from rsf_queue.database.errors import database_errors
from rsf_queue.exceptions import (
    AuthorizationError,
    DatabaseError,
    InvalidTransitionError,
    NotFoundError,
    TaskNotRunningError,
    ValidationError,
)
from rsf_queue.security.constants import (
    ACTION_PRIORITIZE,
    ACTION_STOP,
    RESOURCE_QUEUE,
)
from rsf_queue.security.identity import AuthenticatedUser
from rsf_queue.security.rbac import RoleAuthorizer
from rsf_queue.services.audit_logger import AuditLogger
from rsf_queue.services.tasks.models import (
    Task,
    TaskStatus,
    TaskType,
    allowed_sources,
)

TaskId = Union[uuid.UUID, str]


class TaskNotifier(Protocol):
    def publish(self, task: Task) -> None:
        ...


def _as_uuid(task_id: TaskId) -> uuid.UUID:
    if isinstance(task_id, uuid.UUID):
        return task_id
    try:
        return uuid.UUID(str(task_id))
    except ValueError as exc:
        raise NotFoundError(f"Task with ID {task_id} not found.", subject_id=task_id) from exc


def _validate_priority(priority: Any) -> int:
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise ValidationError("Validation Error: Priority must be an integer.")
    return priority


class QueueManager:
    def __init__(
        self,
        database: Database,
        *,
        notifier: Optional[TaskNotifier] = None,
        authorizer: Optional[RoleAuthorizer] = None,
        audit_logger: Optional[AuditLogger] = None,
        claim_attempts: int = 3,
    ) -> None:
        self._database = database
        self._notifier = notifier
        self._authorizer = authorizer or RoleAuthorizer()
        self._audit_logger = audit_logger
        self._claim_attempts = max(claim_attempts, 1)

    def _notify(self, task: Task) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.publish(task)
        except Exception as exc:
            logger.warning(f"Failed to publish update for task {task.id}: {exc}")

    @staticmethod
    async def _load(session: AsyncSession, task_id: uuid.UUID, *, for_update: bool = False) -> Optional[TaskEntity]:
        statement = (
            select(TaskEntity)
            .where(TaskEntity.id == task_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            statement = statement.with_for_update()
        result = await session.execute(statement)
        return result.scalar_one_or_none()

    async def add_task(
        self,
        task_type: Union[TaskType, str],
        priority: int = 0,
        data: Optional[Dict[str, Any]] = None,
    ) -> uuid.UUID:
        """Insert a PENDING task and return its id."""
        type_value = task_type.value if isinstance(task_type, TaskType) else str(task_type)
        priority = _validate_priority(priority)
        now = utcnow()
        entity = TaskEntity(
            id=uuid.uuid4(),
            type=type_value,
            priority=priority,
            status=TaskStatus.PENDING.value,
            data=dict(data or {}),
            created_at=now,
            updated_at=now,
        )

        with database_errors("adding task"):
            async with self._database.session_factory() as session:
                session.add(entity)
                await session.commit()

        task = Task.from_entity(entity)
        logger.info(f"Task {task.id} of type {task.type} added with priority {task.priority}")
        self._notify(task)
        return task.id

    async def claim_next_task(self) -> Optional[Task]:
        """Move the most urgent PENDING task to RUNNING and return it.

        Order is priority descending, then creation time ascending. Returns
        None when nothing is pending or every candidate was taken by another
        claimant during the bounded retries.
        """
        claimed: Optional[TaskEntity] = None

        with database_errors("claiming next task"):
            async with self._database.session_factory() as session:
                for _ in range(self._claim_attempts):
                    candidate = await session.execute(
                        select(TaskEntity.id)
                        .where(TaskEntity.status == TaskStatus.PENDING.value)
                        .order_by(TaskEntity.priority.desc(), TaskEntity.created_at.asc())
                        .limit(1)
                        .with_for_update(skip_locked=True)
                    )
                    task_id = candidate.scalar_one_or_none()
                    if task_id is None:
                        await session.rollback()
                        return None

                    result = await session.execute(
                        update(TaskEntity)
                        .where(
                            TaskEntity.id == task_id,
                            TaskEntity.status == TaskStatus.PENDING.value,
                        )
                        .values(status=TaskStatus.RUNNING.value, updated_at=utcnow())
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 1:
                        claimed = await self._load(session, task_id)
                        await session.commit()
                        break

                    await session.rollback()
                    logger.debug(f"Task {task_id} was claimed concurrently, retrying")

        if claimed is None:
            return None

        task = Task.from_entity(claimed)
        logger.info(f"Claimed task {task.id} ({task.type}, priority {task.priority})")
        self._notify(task)
        return task

    # alias kept for callers using the queue protocol name
    fetch_and_start_highest_priority_task = claim_next_task

    async def update_task_status(
        self,
        task_id: TaskId,
        status: Union[TaskStatus, str],
        details: Optional[str] = None,
    ) -> Task:
        """Record a state transition.

        Transitions must follow the task state machine; leaving a terminal
        state raises InvalidTransitionError. CANCELLED is only set by
        :meth:`stop_task`.
        """
        try:
            target = TaskStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Validation Error: unknown task status {status!r}.") from exc
        if target is TaskStatus.CANCELLED:
            raise ValidationError("Validation Error: tasks are cancelled through stop_task only.")
        task_uuid = _as_uuid(task_id)

        values: Dict[str, Any] = {"status": target.value, "updated_at": utcnow()}
        if details is not None:
            values["details"] = details

        with database_errors(f"updating status of task {task_uuid}"):
            async with self._database.session_factory() as session:
                result = await session.execute(
                    update(TaskEntity)
                    .where(
                        TaskEntity.id == task_uuid,
                        TaskEntity.status.in_(allowed_sources(target)),
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                entity = await self._load(session, task_uuid)
                if result.rowcount == 0:
                    # rollback expires loaded rows
                    current_status = entity.status if entity is not None else None
                    await session.rollback()
                    if current_status is None:
                        raise NotFoundError(f"Task with ID {task_uuid} not found.", subject_id=task_uuid)
                    raise InvalidTransitionError(task_uuid, current_status, target.value)
                await session.commit()

        task = Task.from_entity(entity)
        logger.info(f"Task {task.id} status updated to {task.status.value}")
        self._notify(task)
        return task

    async def set_task_priority(
        self,
        task_id: TaskId,
        priority: Any,
        actor: Optional[AuthenticatedUser],
    ) -> Task:
        await self._authorize(
            actor,
            ACTION_PRIORITIZE,
            task_id,
            "Authorization Error: Only managers can set task priority.",
        )
        priority = _validate_priority(priority)
        task_uuid = _as_uuid(task_id)

        with database_errors(f"setting priority of task {task_uuid}"):
            async with self._database.session_factory() as session:
                result = await session.execute(
                    update(TaskEntity)
                    .where(TaskEntity.id == task_uuid)
                    .values(priority=priority, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    await session.rollback()
                    raise NotFoundError(f"Task with ID {task_uuid} not found.", subject_id=task_uuid)
                entity = await self._load(session, task_uuid)
                await self._audit(
                    actor, ACTION_PRIORITIZE, "success", task_uuid,
                    details=f"priority set to {priority}", session=session,
                )
                await session.commit()

        task = Task.from_entity(entity)
        logger.info(f"Task {task.id} priority set to {priority} by {actor.username}")
        self._notify(task)
        return task

    async def stop_task(self, task_id: TaskId, actor: Optional[AuthenticatedUser]) -> Task:
        """Cancel a RUNNING task. The row is read and checked under a row lock."""
        await self._authorize(
            actor,
            ACTION_STOP,
            task_id,
            "Authorization Error: Only managers can stop tasks.",
        )
        task_uuid = _as_uuid(task_id)

        with database_errors(f"stopping task {task_uuid}"):
            async with self._database.session_factory() as session:
                entity = await self._load(session, task_uuid, for_update=True)
                if entity is None:
                    await session.rollback()
                    raise NotFoundError(f"Task with ID {task_uuid} not found.", subject_id=task_uuid)
                current_status = entity.status
                if current_status != TaskStatus.RUNNING.value:
                    await session.rollback()
                    raise TaskNotRunningError(task_uuid, current_status)

                result = await session.execute(
                    update(TaskEntity)
                    .where(
                        TaskEntity.id == task_uuid,
                        TaskEntity.status == TaskStatus.RUNNING.value,
                    )
                    .values(status=TaskStatus.CANCELLED.value, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                entity = await self._load(session, task_uuid)
                if result.rowcount == 0:
                    # finished between the read and the write on stores without row locks
                    current_status = entity.status if entity is not None else "UNKNOWN"
                    await session.rollback()
                    raise TaskNotRunningError(task_uuid, current_status)
                await self._audit(actor, ACTION_STOP, "success", task_uuid, session=session)
                await session.commit()

        task = Task.from_entity(entity)
        logger.info(f"Task {task.id} cancelled by {actor.username}")
        self._notify(task)
        return task

    async def get_task_status(self, task_id: TaskId) -> Optional[TaskStatus]:
        try:
            task_uuid = _as_uuid(task_id)
        except NotFoundError:
            return None

        with database_errors(f"reading status of task {task_uuid}"):
            async with self._database.session_factory() as session:
                result = await session.execute(
                    select(TaskEntity.status).where(TaskEntity.id == task_uuid)
                )
                status = result.scalar_one_or_none()

        return TaskStatus(status) if status is not None else None

    async def get_task(self, task_id: TaskId) -> Optional[Task]:
        try:
            task_uuid = _as_uuid(task_id)
        except NotFoundError:
            return None

        with database_errors(f"reading task {task_uuid}"):
            async with self._database.session_factory() as session:
                entity = await self._load(session, task_uuid)

        return Task.from_entity(entity) if entity is not None else None

    async def list_tasks(self, status: Optional[TaskStatus] = None) -> List[Task]:
        """All tasks in claim order, optionally filtered by status."""
        statement = select(TaskEntity).order_by(
            TaskEntity.priority.desc(), TaskEntity.created_at.asc()
        )
        if status is not None:
            statement = statement.where(TaskEntity.status == TaskStatus(status).value)

        with database_errors("listing tasks"):
            async with self._database.session_factory() as session:
                result = await session.execute(statement)
                entities = result.scalars().all()

        return [Task.from_entity(entity) for entity in entities]

    async def _authorize(
        self,
        actor: Optional[AuthenticatedUser],
        action: str,
        task_id: TaskId,
        message: str,
    ) -> None:
        try:
            self._authorizer.require(actor, RESOURCE_QUEUE, action, message)
        except AuthorizationError:
            try:
                with database_errors("recording audit event"):
                    await self._audit(actor, action, "failure", task_id, details="permission denied")
            except DatabaseError as audit_error:
                logger.warning(f"Denied {action} on task {task_id} was not audited: {audit_error}")
            raise

    async def _audit(
        self,
        actor: Optional[AuthenticatedUser],
        action: str,
        status: str,
        task_id: TaskId,
        *,
        details: Optional[str] = None,
        session: Optional[AsyncSession] = None,
    ) -> None:
        if self._audit_logger is None:
            return
        await self._audit_logger.record_event(
            actor=actor,
            resource=RESOURCE_QUEUE,
            action=action,
            status=status,
            target=str(task_id),
            details=details,
            session=session,
        )


__all__ = ["QueueManager", "TaskNotifier"]
