"""Pre-optimization execution engine.

At most one pre-optimization runs at a time across every process sharing
the database: each execution holds the advisory lock for
``settings.pre_optimization_lock_key`` on its own connection. An execution
that finds the lock taken is skipped, not failed.

Every attempt that gets the lock leaves exactly one ``execution_logs`` row,
written as STARTED and finalized in place as SUCCESS or FAILED.
"""

from __future__ import annotations

import time
import uuid
from typing import Callable, Optional

from loguru import logger
from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from rsf_queue.database import Database, ExecutionLogEntity, JobDefinitionEntity, utcnow
from rsf_queue.database.errors import database_errors
from rsf_queue.exceptions import (
    LockContentionError,
    NotFoundError,
    TaskCancelledError,
    UnsupportedJobTypeError,
)
from rsf_queue.services.pre_optimization.definitions import DefinitionId, parse_definition_id
from rsf_queue.services.pre_optimization.locks import AdvisoryLock, advisory_lock_for
from rsf_queue.services.pre_optimization.models import (
    ExecutionOutcome,
    ExecutionStatus,
    JobDefinition,
)
from rsf_queue.services.pre_optimization.optimizers import JobContext, JobHandlerRegistry
from rsf_queue.services.tasks.cancellation import NEVER_CANCELLED, CancellationToken

DEFAULT_LOCK_KEY = 123456789

LockFactory = Callable[[AsyncConnection], AdvisoryLock]


class ExecutionEngine:
    def __init__(
        self,
        database: Database,
        job_handlers: JobHandlerRegistry,
        *,
        lock_key: int = DEFAULT_LOCK_KEY,
        lock_factory: Optional[LockFactory] = None,
        lock_stale_after_seconds: int = 6 * 3600,
        record_skipped: bool = True,
    ) -> None:
        self._database = database
        self._job_handlers = job_handlers
        self._lock_key = lock_key
        self._lock_factory = lock_factory or (
            lambda connection: advisory_lock_for(
                connection, stale_after_seconds=lock_stale_after_seconds
            )
        )
        self._record_skipped = record_skipped

    @property
    def supported_types(self) -> list[str]:
        return self._job_handlers.types

    async def execute_pre_optimization(
        self,
        job_definition_id: DefinitionId,
        *,
        token: Optional[CancellationToken] = None,
    ) -> ExecutionOutcome:
        """Run the job definition under the family lock.

        Returns a SKIPPED outcome when another execution holds the lock.
        NotFoundError, UnsupportedJobTypeError and handler errors are raised
        after the log row is finalized as FAILED.
        """
        token = token or NEVER_CANCELLED
        definition_uuid = parse_definition_id(job_definition_id)
        connection: Optional[AsyncConnection] = None
        lock: Optional[AdvisoryLock] = None
        acquired = False

        with database_errors(f"executing pre-optimization {definition_uuid}"):
            try:
                connection = await self._database.engine.connect()
                lock = self._lock_factory(connection)

                try:
                    if not await lock.try_acquire(self._lock_key):
                        raise LockContentionError(self._lock_key)
                except LockContentionError as contention:
                    logger.warning(
                        f"Pre-optimization {definition_uuid} skipped: {contention.message}"
                    )
                    skipped_log_id = await self._log_skipped(connection, definition_uuid)
                    return ExecutionOutcome(
                        job_definition_id=definition_uuid,
                        status=ExecutionStatus.SKIPPED,
                        log_id=skipped_log_id,
                    )
                acquired = True
                logger.info(f"Advisory lock {self._lock_key} acquired for {definition_uuid}")

                log_id = await self._log_start(connection, definition_uuid)
                return await self._run(connection, log_id, definition_uuid, token)
            finally:
                if acquired and connection is not None and lock is not None:
                    await self._release(connection, lock)
                if connection is not None:
                    await connection.close()

    async def _run(
        self,
        connection: AsyncConnection,
        log_id: uuid.UUID,
        definition_uuid: uuid.UUID,
        token: CancellationToken,
    ) -> ExecutionOutcome:
        started = time.perf_counter()
        try:
            definition = await self._load_definition(connection, definition_uuid)
            if definition is None:
                raise NotFoundError(
                    f"Job definition with ID {definition_uuid} not found.",
                    subject_id=definition_uuid,
                )

            handler = self._job_handlers.get(definition.type)
            if handler is None:
                raise UnsupportedJobTypeError(
                    f"No executor found for pre-optimization type: {definition.type}",
                    subject_id=definition_uuid,
                )

            affected = await handler.run(JobContext(connection, definition, token))
            duration_ms = int((time.perf_counter() - started) * 1000)
            await self._log_end(
                connection,
                log_id,
                ExecutionStatus.SUCCESS,
                affected_units=affected,
                details=f"Execution completed in {duration_ms}ms.",
            )
        except Exception as exc:
            details = "Execution cancelled." if isinstance(exc, TaskCancelledError) else str(exc)
            logger.error(f"Pre-optimization {definition_uuid} failed: {details}")
            await self._finalize_failed(connection, log_id, details or exc.__class__.__name__)
            raise

        logger.info(
            f"Pre-optimization {definition_uuid} succeeded: {affected} units in {duration_ms}ms"
        )
        return ExecutionOutcome(
            job_definition_id=definition_uuid,
            status=ExecutionStatus.SUCCESS,
            log_id=log_id,
            affected_units=affected,
            duration_ms=duration_ms,
        )

    @staticmethod
    async def _load_definition(
        connection: AsyncConnection, definition_uuid: uuid.UUID
    ) -> Optional[JobDefinition]:
        result = await connection.execute(
            select(JobDefinitionEntity.__table__).where(JobDefinitionEntity.id == definition_uuid)
        )
        row = result.first()
        return JobDefinition.from_entity(row) if row is not None else None

    @staticmethod
    async def _log_start(connection: AsyncConnection, definition_uuid: uuid.UUID) -> uuid.UUID:
        log_id = uuid.uuid4()
        await connection.execute(
            insert(ExecutionLogEntity).values(
                log_id=log_id,
                job_definition_id=definition_uuid,
                start_time=utcnow(),
                status=ExecutionStatus.STARTED.value,
            )
        )
        await connection.commit()
        return log_id

    @staticmethod
    async def _log_end(
        connection: AsyncConnection,
        log_id: uuid.UUID,
        status: ExecutionStatus,
        *,
        affected_units: Optional[int] = None,
        details: Optional[str] = None,
    ) -> None:
        await connection.execute(
            update(ExecutionLogEntity)
            .where(ExecutionLogEntity.log_id == log_id)
            .values(
                end_time=utcnow(),
                status=status.value,
                affected_units=affected_units,
                details=details,
            )
        )
        await connection.commit()

    async def _finalize_failed(self, connection: AsyncConnection, log_id: uuid.UUID, details: str) -> None:
        if connection.in_transaction():
            # discard the handler's partial writes before recording the failure
            await connection.rollback()
        try:
            await self._log_end(connection, log_id, ExecutionStatus.FAILED, details=details)
        except Exception as exc:
            logger.error(f"Could not finalize execution log {log_id} as FAILED: {exc}")

    async def _log_skipped(
        self, connection: AsyncConnection, definition_uuid: uuid.UUID
    ) -> Optional[uuid.UUID]:
        if not self._record_skipped:
            return None
        if await self._load_definition(connection, definition_uuid) is None:
            return None

        now = utcnow()
        log_id = uuid.uuid4()
        await connection.execute(
            insert(ExecutionLogEntity).values(
                log_id=log_id,
                job_definition_id=definition_uuid,
                start_time=now,
                end_time=now,
                status=ExecutionStatus.SKIPPED.value,
                details="Skipped: another pre-optimization execution is already running.",
            )
        )
        await connection.commit()
        return log_id

    async def _release(self, connection: AsyncConnection, lock: AdvisoryLock) -> None:
        try:
            if connection.in_transaction():
                await connection.rollback()
            if not await lock.release(self._lock_key):
                logger.critical(
                    f"CRITICAL: advisory lock {self._lock_key} was not held at release time"
                )
            else:
                logger.info(f"Advisory lock {self._lock_key} released")
        except Exception as exc:
            logger.critical(f"CRITICAL: Failed to release advisory lock {self._lock_key}: {exc}")
            # the session-scoped lock ends with the session, so drop the connection
            await connection.invalidate()


__all__ = ["ExecutionEngine", "DEFAULT_LOCK_KEY"]
