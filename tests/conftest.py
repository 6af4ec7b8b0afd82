"""
Pytest configuration and fixtures for rsf-task-queue tests
"""
import asyncio
import datetime as dt
import sys
from pathlib import Path
from typing import List

import pytest
from loguru import logger

# Make `src/` importable when the package is not installed.
ROOT_DIR = Path(__file__).parent.parent
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from rsf_queue.config import Settings
from rsf_queue.database import create_database
from rsf_queue.security.identity import AuthenticatedUser
from rsf_queue.security.rbac import RoleAuthorizer
from rsf_queue.services.audit_logger import AuditLogger
from rsf_queue.services.broadcaster import TaskBroadcaster
from rsf_queue.services.pre_optimization import (
    AdvisoryLock,
    ExecutionEngine,
    JobContext,
    JobDefinitionRepository,
    JobHandler,
    JobHandlerRegistry,
)
from rsf_queue.services.tasks import ImportBackend, QueueManager


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a per-test SQLite file"""
    return Settings(
        db_path=str(tmp_path / "queue.db"),
        sqlite_busy_timeout_seconds=10,
        auth_jwt_secret="test-secret",
        worker_enabled=False,
        worker_poll_interval_seconds=0.05,
        worker_cancellation_check_interval_seconds=0.01,
        worker_shutdown_grace_seconds=1,
    )


@pytest.fixture
async def database(settings):
    database = create_database(settings, dsn=settings.database_dsn_async)
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
def manager_user():
    return AuthenticatedUser(id="1", username="maria", role="manager")


@pytest.fixture
def consultant_user():
    return AuthenticatedUser(id="2", username="chen", role="consultant")


@pytest.fixture
def authorizer():
    return RoleAuthorizer()


@pytest.fixture
def broadcaster(authorizer):
    return TaskBroadcaster(authorizer)


@pytest.fixture
def audit_logger(database):
    return AuditLogger(database)


@pytest.fixture
def queue_manager(database, broadcaster, authorizer, audit_logger):
    return QueueManager(
        database,
        notifier=broadcaster,
        authorizer=authorizer,
        audit_logger=audit_logger,
    )


@pytest.fixture
def job_definitions(database):
    return JobDefinitionRepository(database, supported_types=["FIDES"])


# ============================================================================
# Test doubles
# ============================================================================

class FakeSubscriber:
    """Collects TASK_UPDATE messages the way a WebSocket would receive them"""

    def __init__(self, fail: bool = False):
        self.messages: List[str] = []
        self.fail = fail

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.messages.append(data)


class HeldLock(AdvisoryLock):
    """A lock someone else always holds"""

    async def try_acquire(self, key):
        return False

    async def release(self, key):
        return False


class GatedJobHandler(JobHandler):
    """Job handler that holds the execution open until released"""

    def __init__(self, affected: int = 7):
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.affected = affected
        self.runs = 0

    async def run(self, context: JobContext) -> int:
        self.runs += 1
        self.entered.set()
        await self.release.wait()
        await context.token.checkpoint()
        return self.affected


class FailingJobHandler(JobHandler):
    async def run(self, context: JobContext) -> int:
        raise RuntimeError("rule evaluation exploded")


class GatedImportBackend(ImportBackend):
    """Import backend whose stages wait for the test to release them"""

    def __init__(self, records_per_stage: int = 1):
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.stages: List[str] = []
        self.records_per_stage = records_per_stage

    async def run_stage(self, file_id: str, stage: str) -> int:
        self.stages.append(stage)
        self.entered.set()
        await self.release.wait()
        return self.records_per_stage


@pytest.fixture
def log_records():
    """Loguru records emitted during the test"""
    records = []
    sink_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(sink_id)


@pytest.fixture
def gated_handler():
    return GatedJobHandler()


@pytest.fixture
def job_handlers(gated_handler):
    registry = JobHandlerRegistry()
    registry.register("FIDES", gated_handler)
    registry.register("BROKEN", FailingJobHandler())
    return registry


@pytest.fixture
def execution_engine(database, job_handlers):
    return ExecutionEngine(database, job_handlers, lock_key=4242)


@pytest.fixture
def date_range():
    start = dt.datetime(2026, 1, 1, tzinfo=dt.timezone.utc)
    return start, start + dt.timedelta(days=3)
