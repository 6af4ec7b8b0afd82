"""Cross-process mutual exclusion for job families.

Both implementations are bound to one connection: a PostgreSQL advisory
lock belongs to the database session that took it, so the same connection
must be used to release it.
"""

from __future__ import annotations

import datetime as dt
import os
import socket
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger
from sqlalchemy import delete, insert, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection

from rsf_queue.database import JobLockEntity, utcnow


class AdvisoryLock(ABC):
    @abstractmethod
    async def try_acquire(self, key: int) -> bool:
        """Take the lock without waiting; False when someone else holds it."""

    @abstractmethod
    async def release(self, key: int) -> bool:
        """Give the lock back; False when it was not held by this session."""


class PostgresAdvisoryLock(AdvisoryLock):
    def __init__(self, connection: AsyncConnection) -> None:
        self._connection = connection

    async def try_acquire(self, key: int) -> bool:
        result = await self._connection.execute(
            text("SELECT pg_try_advisory_lock(:key)"), {"key": key}
        )
        acquired = bool(result.scalar())
        await self._connection.commit()
        return acquired

    async def release(self, key: int) -> bool:
        result = await self._connection.execute(
            text("SELECT pg_advisory_unlock(:key)"), {"key": key}
        )
        released = bool(result.scalar())
        await self._connection.commit()
        return released


def _default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class TableAdvisoryLock(AdvisoryLock):
    """Lock rows in ``job_locks``; the primary key makes the insert conditional.

    A crashed holder cannot release its row, so rows older than
    ``stale_after_seconds`` are reclaimed.
    """

    def __init__(
        self,
        connection: AsyncConnection,
        *,
        owner: Optional[str] = None,
        stale_after_seconds: int = 6 * 3600,
    ) -> None:
        self._connection = connection
        self.owner = owner or _default_owner()
        self._stale_after = dt.timedelta(seconds=stale_after_seconds)

    async def try_acquire(self, key: int) -> bool:
        if await self._insert(key):
            return True
        if await self._reclaim_stale(key):
            return await self._insert(key)
        return False

    async def _insert(self, key: int) -> bool:
        try:
            await self._connection.execute(
                insert(JobLockEntity).values(lock_key=key, owner=self.owner, acquired_at=utcnow())
            )
            await self._connection.commit()
            return True
        except IntegrityError:
            await self._connection.rollback()
            return False

    async def _reclaim_stale(self, key: int) -> bool:
        cutoff = utcnow() - self._stale_after
        result = await self._connection.execute(
            delete(JobLockEntity).where(
                JobLockEntity.lock_key == key,
                JobLockEntity.acquired_at < cutoff,
            )
        )
        await self._connection.commit()
        if result.rowcount:
            logger.warning(f"Reclaimed stale lock {key} acquired before {cutoff.isoformat()}")
            return True
        return False

    async def release(self, key: int) -> bool:
        result = await self._connection.execute(
            delete(JobLockEntity).where(
                JobLockEntity.lock_key == key,
                JobLockEntity.owner == self.owner,
            )
        )
        await self._connection.commit()
        return result.rowcount == 1


def advisory_lock_for(connection: AsyncConnection, *, stale_after_seconds: int = 6 * 3600) -> AdvisoryLock:
    """Native advisory locks on PostgreSQL, the lock table everywhere else."""
    if connection.dialect.name == "postgresql":
        return PostgresAdvisoryLock(connection)
    return TableAdvisoryLock(connection, stale_after_seconds=stale_after_seconds)


__all__ = [
    "AdvisoryLock",
    "PostgresAdvisoryLock",
    "TableAdvisoryLock",
    "advisory_lock_for",
]
