"""Queue worker: polls for PENDING tasks and runs them under a concurrency cap."""

from __future__ import annotations

import asyncio
import uuid
from typing import Dict, Optional

from loguru import logger

from rsf_queue.exceptions import (
    InvalidTransitionError,
    QueueError,
    TaskCancelledError,
    TaskExecutionError,
)
from rsf_queue.services.tasks.cancellation import CancellationToken
from rsf_queue.services.tasks.handlers import TaskHandlerRegistry
from rsf_queue.services.tasks.models import Task, TaskStatus
from rsf_queue.services.tasks.queue_manager import QueueManager


class QueueWorker:
    """Claims tasks from the queue and dispatches them to their handlers.

    A claim happens on every poll tick while fewer than
    ``max_concurrent_tasks`` tasks are in flight. A successful claim and a
    finished task both trigger the next check at once instead of waiting
    for the tick.
    """

    def __init__(
        self,
        queue_manager: QueueManager,
        registry: TaskHandlerRegistry,
        *,
        max_concurrent_tasks: int = 1,
        poll_interval: float = 5.0,
        cancellation_check_interval: float = 2.0,
        shutdown_grace_period: float = 10.0,
    ) -> None:
        self._queue = queue_manager
        self._registry = registry
        self.max_concurrent_tasks = max(max_concurrent_tasks, 1)
        self.poll_interval = poll_interval
        self.cancellation_check_interval = cancellation_check_interval
        self.shutdown_grace_period = shutdown_grace_period
        self.running_tasks: Dict[uuid.UUID, asyncio.Task] = {}
        self._wakeup = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._shutting_down = False

    @property
    def in_flight(self) -> int:
        return len(self.running_tasks)

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def start(self) -> None:
        if self.is_running:
            logger.warning("Queue worker already running")
            return

        self._shutting_down = False
        self._loop_task = asyncio.create_task(self._poll_loop(), name="rsf-queue-worker")
        logger.info(
            f"Queue worker started with max {self.max_concurrent_tasks} concurrent tasks, "
            f"polling every {self.poll_interval}s"
        )

    def trigger_check(self) -> None:
        """Ask the polling loop to check the queue now."""
        self._wakeup.set()

    async def _poll_loop(self) -> None:
        logger.info("Queue polling loop started")
        while not self._shutting_down:
            self._wakeup.clear()
            try:
                await self.check_queue()
            except Exception as e:
                # a broken poll must not kill the loop; the next tick retries
                logger.exception(f"Error in queue polling loop: {e}")

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Queue polling loop stopped")

    async def check_queue(self) -> Optional[Task]:
        """Claim and dispatch one task if there is capacity for it."""
        if self._shutting_down:
            return None
        if self.in_flight >= self.max_concurrent_tasks:
            logger.debug(
                f"Worker at capacity ({self.in_flight}/{self.max_concurrent_tasks}), skipping poll"
            )
            return None

        task = await self._queue.claim_next_task()
        if task is None:
            return None

        runner = asyncio.create_task(self._execute(task), name=f"rsf-task-{task.id}")
        self.running_tasks[task.id] = runner
        self.trigger_check()
        return task

    async def _execute(self, task: Task) -> None:
        token = CancellationToken(task.id, self._queue, self.cancellation_check_interval)
        logger.info(f"Starting execution of task {task.id} ({task.type})")

        try:
            handler, payload = self._registry.resolve(task)
            details = await handler(task, payload, token)
        except TaskCancelledError:
            logger.info(f"Task {task.id} stopped after cancellation; status left as CANCELLED")
        except Exception as exc:
            await self._record_failure(task, token, exc)
        else:
            await self._record_outcome(task, TaskStatus.COMPLETED, details)
        finally:
            self.running_tasks.pop(task.id, None)
            self.trigger_check()

    async def _record_failure(self, task: Task, token: CancellationToken, exc: Exception) -> None:
        if isinstance(exc, TaskExecutionError):
            error = exc
        else:
            error = TaskExecutionError(task.id, str(exc) or exc.__class__.__name__, cause=exc)
        logger.opt(exception=exc).error(f"Task {task.id} failed: {error.message}")

        if token.cancelled:
            logger.info(f"Task {task.id} was cancelled; failure not recorded")
            return
        await self._record_outcome(task, TaskStatus.FAILED, error.message)

    async def _record_outcome(self, task: Task, status: TaskStatus, details: Optional[str]) -> None:
        try:
            await self._queue.update_task_status(task.id, status, details)
            logger.info(f"Task {task.id} finished as {status.value}")
        except InvalidTransitionError as conflict:
            # stopped between the handler's last checkpoint and this write
            logger.info(
                f"Task {task.id} is already {conflict.current_status}; "
                f"{status.value} not recorded"
            )
        except QueueError as store_error:
            logger.error(f"Could not record {status.value} for task {task.id}: {store_error}")

    async def stop(self, grace_period: Optional[float] = None) -> None:
        """Stop polling, then wait for in-flight tasks up to the grace period.

        Tasks still running afterwards are abandoned, not interrupted.
        """
        grace = self.shutdown_grace_period if grace_period is None else grace_period
        self._shutting_down = True
        self.trigger_check()

        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None

        pending = list(self.running_tasks.values())
        if pending:
            logger.info(f"Waiting up to {grace}s for {len(pending)} in-flight task(s)")
            _, still_running = await asyncio.wait(pending, timeout=grace)
            if still_running:
                logger.warning(
                    f"Abandoning {len(still_running)} in-flight task(s) after grace period"
                )
        logger.info("Queue worker stopped")


__all__ = ["QueueWorker"]
