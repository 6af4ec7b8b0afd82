"""Audit events for manager actions on queued tasks."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rsf_queue.database import AuditEvent, Database, utcnow
from rsf_queue.security.identity import AuthenticatedUser


class AuditLogger:
    """Writes audit events, either inside a caller's session or in its own."""

    def __init__(self, database: Database, max_concurrent_writes: int = 10) -> None:
        self._database = database
        self._semaphore = asyncio.Semaphore(max_concurrent_writes)

    async def record_event(
        self,
        *,
        actor: Optional[AuthenticatedUser],
        resource: str,
        action: str,
        status: str,
        target: str | None = None,
        details: str | None = None,
        metadata: dict[str, Any] | None = None,
        session: AsyncSession | None = None,
    ) -> None:
        event = AuditEvent(
            actor_id=actor.id if actor else None,
            actor_name=actor.username if actor else None,
            actor_role=actor.role if actor else None,
            resource=resource,
            action=action,
            status=status,
            target=target,
            details=details,
            event_metadata=metadata,
            created_at=utcnow(),
        )

        if session is not None:
            session.add(event)
            await session.flush()
            return

        async with self._semaphore:
            async with self._database.session_factory() as own_session:
                own_session.add(event)
                await own_session.commit()
        logger.debug(f"Audit event recorded: {resource}:{action} {status} target={target}")

    async def list_events(
        self,
        *,
        target: str | None = None,
        action: str | None = None,
        limit: int = 50,
    ) -> list[AuditEvent]:
        statement = select(AuditEvent)
        if target:
            statement = statement.where(AuditEvent.target == target)
        if action:
            statement = statement.where(AuditEvent.action == action)
        statement = statement.order_by(AuditEvent.created_at.desc()).limit(limit)

        async with self._database.session_factory() as session:
            result = await session.execute(statement)
            return list(result.scalars().all())


__all__ = ["AuditLogger"]
