"""Pre-optimization job handlers, keyed by job definition type."""

from __future__ import annotations

import datetime as dt
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncConnection

from rsf_queue.services.pre_optimization.models import JobDefinition
from rsf_queue.services.tasks.cancellation import CancellationToken


@dataclass
class JobContext:
    """What a job handler gets to work with during one execution."""

    connection: AsyncConnection
    definition: JobDefinition
    token: CancellationToken


class JobHandler(ABC):
    @abstractmethod
    async def run(self, context: JobContext) -> int:
        """Execute the job and return the number of affected units."""


class WindowApplier(ABC):
    """Applies the optimization rules of one job type to a slice of the range.

    The RSF record rules themselves are maintained outside this service.
    """

    @abstractmethod
    async def apply(
        self,
        connection: AsyncConnection,
        definition: JobDefinition,
        window_start: dt.datetime,
        window_end: dt.datetime,
    ) -> int:
        ...


class LoggingWindowApplier(WindowApplier):
    async def apply(self, connection, definition, window_start, window_end):
        logger.debug(
            f"{definition.type} window [{window_start.isoformat()}, {window_end.isoformat()}] "
            f"for definition {definition.id}"
        )
        return 0


def iter_windows(
    start: dt.datetime, end: dt.datetime, size: dt.timedelta
) -> Iterator[Tuple[dt.datetime, dt.datetime]]:
    cursor = start
    while cursor < end:
        upper = min(cursor + size, end)
        yield cursor, upper
        cursor = upper


class FidesOptimizer(JobHandler):
    """Walks the definition range one window at a time.

    Cancellation is checked before each window, so a stopped task ends after
    at most one window of extra work.
    """

    def __init__(
        self,
        applier: Optional[WindowApplier] = None,
        window: dt.timedelta = dt.timedelta(days=1),
    ) -> None:
        self._applier = applier or LoggingWindowApplier()
        self._window = window

    async def run(self, context: JobContext) -> int:
        definition = context.definition
        affected = 0
        windows = 0
        for window_start, window_end in iter_windows(
            definition.start_date, definition.end_date, self._window
        ):
            await context.token.checkpoint()
            affected += await self._applier.apply(
                context.connection, definition, window_start, window_end
            )
            windows += 1
        logger.info(
            f"FIDES optimization of {definition.id} processed {windows} window(s), "
            f"{affected} unit(s) affected"
        )
        return affected


class JobHandlerRegistry:
    def __init__(self) -> None:
        self._handlers: Dict[str, JobHandler] = {}

    def register(self, job_type: str, handler: JobHandler) -> None:
        self._handlers[job_type] = handler

    def get(self, job_type: str) -> Optional[JobHandler]:
        return self._handlers.get(job_type)

    @property
    def types(self) -> list[str]:
        return sorted(self._handlers)


def build_default_job_handlers(applier: Optional[WindowApplier] = None) -> JobHandlerRegistry:
    registry = JobHandlerRegistry()
    registry.register("FIDES", FidesOptimizer(applier))
    return registry


__all__ = [
    "JobContext",
    "JobHandler",
    "WindowApplier",
    "LoggingWindowApplier",
    "FidesOptimizer",
    "JobHandlerRegistry",
    "build_default_job_handlers",
    "iter_windows",
]
