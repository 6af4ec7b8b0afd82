"""Job definition store.

Definitions are insert-only: the repository offers create and read
operations and nothing else. Two definitions of the same type may not
overlap, bounds inclusive.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Iterable, List, Optional, Union

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rsf_queue.database import Database, ExecutionLogEntity, JobDefinitionEntity, utcnow
from rsf_queue.database.errors import database_errors
from rsf_queue.exceptions import (
    NotFoundError,
    OverlappingJobDefinitionError,
    UnsupportedJobTypeError,
    ValidationError,
)
from rsf_queue.services.pre_optimization.models import ExecutionLog, JobDefinition

DefinitionId = Union[uuid.UUID, str]


def _aware(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def parse_definition_id(definition_id: DefinitionId) -> uuid.UUID:
    if isinstance(definition_id, uuid.UUID):
        return definition_id
    try:
        return uuid.UUID(str(definition_id))
    except ValueError as exc:
        raise NotFoundError(
            f"Job definition with ID {definition_id} not found.", subject_id=definition_id
        ) from exc


def validate_date_range(start_date: dt.datetime, end_date: dt.datetime) -> tuple[dt.datetime, dt.datetime]:
    start, end = _aware(start_date), _aware(end_date)
    if end <= start:
        raise ValidationError("Validation Error: End date must be after start date.")
    return start, end


class JobDefinitionRepository:
    def __init__(self, database: Database, supported_types: Optional[Iterable[str]] = None) -> None:
        self._database = database
        self._supported_types = frozenset(supported_types) if supported_types is not None else None

    async def validate_date_range_overlap(
        self,
        job_type: str,
        start_date: dt.datetime,
        end_date: dt.datetime,
        *,
        exclude_id: Optional[DefinitionId] = None,
        session: Optional[AsyncSession] = None,
    ) -> None:
        """Raise OverlappingJobDefinitionError if ``[start, end]`` meets an existing range."""
        start, end = _aware(start_date), _aware(end_date)
        statement = (
            select(JobDefinitionEntity.id)
            .where(
                JobDefinitionEntity.type == job_type,
                JobDefinitionEntity.start_date <= end,
                JobDefinitionEntity.end_date >= start,
            )
            .limit(1)
        )
        if exclude_id is not None:
            statement = statement.where(JobDefinitionEntity.id != parse_definition_id(exclude_id))

        with database_errors("checking job definition overlap"):
            if session is not None:
                conflict = (await session.execute(statement)).scalar_one_or_none()
            else:
                async with self._database.session_factory() as own_session:
                    conflict = (await own_session.execute(statement)).scalar_one_or_none()

        if conflict is not None:
            raise OverlappingJobDefinitionError(
                f"A pre-optimization of type '{job_type}' already exists which overlaps "
                f"with the specified date range [{start.isoformat()}, {end.isoformat()}].",
                subject_id=conflict,
            )

    async def create(
        self,
        job_type: str,
        start_date: dt.datetime,
        end_date: dt.datetime,
        created_by: str,
    ) -> JobDefinition:
        job_type = (job_type or "").strip()
        if not job_type:
            raise ValidationError("Validation Error: Job definition type is required.")
        if self._supported_types is not None and job_type not in self._supported_types:
            raise UnsupportedJobTypeError(
                f"Validation Error: unsupported pre-optimization type: {job_type}"
            )
        if not created_by:
            raise ValidationError("Validation Error: created_by is required.")
        start, end = validate_date_range(start_date, end_date)

        entity = JobDefinitionEntity(
            id=uuid.uuid4(),
            type=job_type,
            start_date=start,
            end_date=end,
            created_at=utcnow(),
            created_by=created_by,
        )

        with database_errors("saving job definition"):
            async with self._database.session_factory() as session:
                await self.validate_date_range_overlap(job_type, start, end, session=session)
                session.add(entity)
                try:
                    await session.commit()
                except IntegrityError as exc:
                    # exclusion constraint: a concurrent insert won the range
                    await session.rollback()
                    raise OverlappingJobDefinitionError(
                        f"A pre-optimization of type '{job_type}' already exists which overlaps "
                        f"with the specified date range [{start.isoformat()}, {end.isoformat()}].",
                    ) from exc

        definition = JobDefinition.from_entity(entity)
        logger.info(
            f"Job definition {definition.id} ({job_type}) created by {created_by} "
            f"for [{start.isoformat()}, {end.isoformat()}]"
        )
        return definition

    async def get(self, definition_id: DefinitionId) -> Optional[JobDefinition]:
        try:
            definition_uuid = parse_definition_id(definition_id)
        except NotFoundError:
            return None

        with database_errors(f"reading job definition {definition_uuid}"):
            async with self._database.session_factory() as session:
                entity = await session.get(JobDefinitionEntity, definition_uuid)

        return JobDefinition.from_entity(entity) if entity is not None else None

    async def list(self, job_type: Optional[str] = None) -> List[JobDefinition]:
        """Definitions newest first."""
        statement = select(JobDefinitionEntity).order_by(JobDefinitionEntity.created_at.desc())
        if job_type:
            statement = statement.where(JobDefinitionEntity.type == job_type)

        with database_errors("listing job definitions"):
            async with self._database.session_factory() as session:
                entities = (await session.execute(statement)).scalars().all()

        return [JobDefinition.from_entity(entity) for entity in entities]

    async def execution_history(self, definition_id: DefinitionId) -> List[ExecutionLog]:
        """Execution logs of one definition, most recent first."""
        definition_uuid = parse_definition_id(definition_id)
        statement = (
            select(ExecutionLogEntity)
            .where(ExecutionLogEntity.job_definition_id == definition_uuid)
            .order_by(ExecutionLogEntity.start_time.desc())
        )

        with database_errors(f"reading execution logs of {definition_uuid}"):
            async with self._database.session_factory() as session:
                entities = (await session.execute(statement)).scalars().all()

        return [ExecutionLog.from_entity(entity) for entity in entities]


__all__ = [
    "JobDefinitionRepository",
    "validate_date_range",
    "parse_definition_id",
]
