"""Service wiring.

Every component gets its collaborators through its constructor; this is the
one place that builds them from settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from rsf_queue.config import Settings
from rsf_queue.database import Database, create_database
from rsf_queue.security.rbac import RoleAuthorizer
from rsf_queue.security.tokens import TokenVerifier
from rsf_queue.services.audit_logger import AuditLogger
from rsf_queue.services.broadcaster import TaskBroadcaster
from rsf_queue.services.pre_optimization import (
    ExecutionEngine,
    JobDefinitionRepository,
    JobHandlerRegistry,
    build_default_job_handlers,
)
from rsf_queue.services.tasks import (
    ImportBackend,
    QueueManager,
    QueueWorker,
    TaskHandlerRegistry,
    build_default_registry,
)


@dataclass
class ServiceContainer:
    settings: Settings
    database: Database
    authorizer: RoleAuthorizer
    token_verifier: TokenVerifier
    broadcaster: TaskBroadcaster
    audit_logger: AuditLogger
    queue_manager: QueueManager
    job_definitions: JobDefinitionRepository
    execution_engine: ExecutionEngine
    task_handlers: TaskHandlerRegistry
    worker: QueueWorker

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        database: Optional[Database] = None,
        job_handlers: Optional[JobHandlerRegistry] = None,
        import_backend: Optional[ImportBackend] = None,
    ) -> "ServiceContainer":
        database = database or create_database(settings)
        authorizer = RoleAuthorizer()
        broadcaster = TaskBroadcaster(authorizer)
        audit_logger = AuditLogger(database)
        queue_manager = QueueManager(
            database,
            notifier=broadcaster,
            authorizer=authorizer,
            audit_logger=audit_logger,
        )

        job_handlers = job_handlers or build_default_job_handlers()
        execution_engine = ExecutionEngine(
            database,
            job_handlers,
            lock_key=settings.pre_optimization_lock_key,
            lock_stale_after_seconds=settings.lock_stale_after_seconds,
        )
        job_definitions = JobDefinitionRepository(database, supported_types=execution_engine.supported_types)

        task_handlers = build_default_registry(
            execution_engine,
            import_backend=import_backend,
            import_stage_delay=settings.import_stage_delay_seconds,
        )
        worker = QueueWorker(
            queue_manager,
            task_handlers,
            max_concurrent_tasks=settings.worker_max_concurrent_tasks,
            poll_interval=settings.worker_poll_interval_seconds,
            cancellation_check_interval=settings.worker_cancellation_check_interval_seconds,
            shutdown_grace_period=settings.worker_shutdown_grace_seconds,
        )

        return cls(
            settings=settings,
            database=database,
            authorizer=authorizer,
            token_verifier=TokenVerifier.from_settings(settings),
            broadcaster=broadcaster,
            audit_logger=audit_logger,
            queue_manager=queue_manager,
            job_definitions=job_definitions,
            execution_engine=execution_engine,
            task_handlers=task_handlers,
            worker=worker,
        )


__all__ = ["ServiceContainer"]
