"""Cooperative cancellation.

A handler never gets interrupted. It calls :meth:`CancellationToken.checkpoint`
or :meth:`CancellationToken.sleep` between bounded steps, and those raise
TaskCancelledError once a manager has stopped the task.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Protocol

from loguru import logger

from rsf_queue.exceptions import TaskCancelledError
from rsf_queue.services.tasks.models import TaskStatus


class TaskStatusReader(Protocol):
    async def get_task_status(self, task_id: Any) -> Optional[TaskStatus]:
        ...


class CancellationToken:
    def __init__(
        self,
        task_id: Any,
        status_reader: TaskStatusReader,
        check_interval: float = 2.0,
    ) -> None:
        self.task_id = task_id
        self._status_reader = status_reader
        self._check_interval = check_interval
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        """True once cancellation has been observed; never resets."""
        return self._cancelled

    async def is_cancelled(self) -> bool:
        if self._cancelled:
            return True
        status = await self._status_reader.get_task_status(self.task_id)
        if status is TaskStatus.CANCELLED:
            logger.info(f"Task {self.task_id} observed as cancelled")
            self._cancelled = True
        return self._cancelled

    async def checkpoint(self) -> None:
        if await self.is_cancelled():
            raise TaskCancelledError(self.task_id)

    async def sleep(self, seconds: float) -> None:
        """Wait ``seconds``, checking for cancellation every check interval."""
        remaining = seconds
        while remaining > 0:
            chunk = min(self._check_interval, remaining)
            await asyncio.sleep(chunk)
            remaining -= chunk
            await self.checkpoint()
        if seconds <= 0:
            await self.checkpoint()


class _NeverCancelled(CancellationToken):
    """Token for runs that are not attached to a queued task."""

    def __init__(self) -> None:
        super().__init__(task_id=None, status_reader=None, check_interval=1.0)  # type: ignore[arg-type]

    async def is_cancelled(self) -> bool:
        return False


NEVER_CANCELLED = _NeverCancelled()


__all__ = ["CancellationToken", "TaskStatusReader", "NEVER_CANCELLED"]
