"""
Pre-optimization job definitions and their execution engine.
"""

from rsf_queue.services.pre_optimization.definitions import JobDefinitionRepository
from rsf_queue.services.pre_optimization.execution_engine import DEFAULT_LOCK_KEY, ExecutionEngine
from rsf_queue.services.pre_optimization.locks import (
    AdvisoryLock,
    PostgresAdvisoryLock,
    TableAdvisoryLock,
    advisory_lock_for,
)
from rsf_queue.services.pre_optimization.models import (
    ExecutionLog,
    ExecutionOutcome,
    ExecutionStatus,
    JobDefinition,
)
from rsf_queue.services.pre_optimization.optimizers import (
    FidesOptimizer,
    JobContext,
    JobHandler,
    JobHandlerRegistry,
    WindowApplier,
    build_default_job_handlers,
)

__all__ = [
    "JobDefinitionRepository",
    "ExecutionEngine",
    "DEFAULT_LOCK_KEY",
    "AdvisoryLock",
    "PostgresAdvisoryLock",
    "TableAdvisoryLock",
    "advisory_lock_for",
    "ExecutionLog",
    "ExecutionOutcome",
    "ExecutionStatus",
    "JobDefinition",
    "FidesOptimizer",
    "JobContext",
    "JobHandler",
    "JobHandlerRegistry",
    "WindowApplier",
    "build_default_job_handlers",
]
