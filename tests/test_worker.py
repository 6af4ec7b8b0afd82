"""
Tests for the queue worker: dispatch, failure recording, cancellation and
the concurrency ceiling.
"""

import asyncio

import pytest

from rsf_queue.services.pre_optimization import (
    ExecutionEngine,
    build_default_job_handlers,
)
from rsf_queue.services.tasks import (
    ImportPayload,
    QueueWorker,
    TaskHandler,
    TaskHandlerRegistry,
    TaskStatus,
    TaskType,
    build_default_registry,
)

from conftest import GatedImportBackend, HeldLock


@pytest.fixture
def import_backend():
    return GatedImportBackend()


@pytest.fixture
def worker_engine(database):
    return ExecutionEngine(database, build_default_job_handlers(), lock_key=777)


@pytest.fixture
def worker(queue_manager, worker_engine, import_backend):
    registry = build_default_registry(worker_engine, import_backend=import_backend)
    return QueueWorker(
        queue_manager,
        registry,
        max_concurrent_tasks=1,
        poll_interval=0.05,
        cancellation_check_interval=0.01,
        shutdown_grace_period=1,
    )


class FinishesRegardlessHandler(TaskHandler):
    """Ignores the cancellation token, then returns or raises once released"""

    def __init__(self, fails: bool):
        self.fails = fails
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self, task, payload, token):
        self.entered.set()
        await self.release.wait()
        if self.fails:
            raise RuntimeError("rules crashed after the stop")
        return "finished anyway"


async def _run_one(worker):
    task = await worker.check_queue()
    assert task is not None
    await worker.running_tasks[task.id]
    return task


class TestDispatch:

    @pytest.mark.asyncio
    async def test_import_task_completes(self, worker, queue_manager, import_backend):
        import_backend.release.set()
        task_id = await queue_manager.add_task(TaskType.IMPORT, 0, {"fileId": "file-42"})

        await _run_one(worker)

        task = await queue_manager.get_task(task_id)
        assert task.status == TaskStatus.COMPLETED
        assert task.details == "Imported file file-42: 3 records processed."
        assert import_backend.stages == ["validate", "parse", "load"]
        assert worker.in_flight == 0

    @pytest.mark.asyncio
    async def test_pre_optimization_task_completes(self, worker, queue_manager, job_definitions, date_range):
        start, end = date_range
        definition = await job_definitions.create("FIDES", start, end, created_by="maria")
        task_id = await queue_manager.add_task(
            TaskType.PRE_OPTIMIZATION, 0, {"job_definition_id": str(definition.id), "requested_by": "1"}
        )

        await _run_one(worker)

        task = await queue_manager.get_task(task_id)
        assert task.status == TaskStatus.COMPLETED
        assert task.details.startswith(f"Pre-optimization {definition.id} completed")
        history = await job_definitions.execution_history(definition.id)
        assert [log.status.value for log in history] == ["SUCCESS"]

    @pytest.mark.asyncio
    async def test_skipped_pre_optimization_completes_with_summary(self, queue_manager, database, job_definitions, date_range, import_backend):
        engine = ExecutionEngine(database, build_default_job_handlers(), lock_factory=lambda connection: HeldLock())
        worker = QueueWorker(queue_manager, build_default_registry(engine, import_backend=import_backend))
        start, end = date_range
        definition = await job_definitions.create("FIDES", start, end, created_by="maria")
        task_id = await queue_manager.add_task(
            TaskType.PRE_OPTIMIZATION, 0, {"preOptimizationId": str(definition.id)}
        )

        await _run_one(worker)

        task = await queue_manager.get_task(task_id)
        assert task.status == TaskStatus.COMPLETED
        assert "skipped" in task.details

    @pytest.mark.asyncio
    async def test_unknown_type_fails(self, worker, queue_manager):
        task_id = await queue_manager.add_task("EXPORT", 0, {})

        await _run_one(worker)

        task = await queue_manager.get_task(task_id)
        assert task.status == TaskStatus.FAILED
        assert task.details == "Unknown task type: EXPORT"

    @pytest.mark.asyncio
    async def test_invalid_payload_fails(self, worker, queue_manager):
        task_id = await queue_manager.add_task(TaskType.IMPORT, 0, {"file": "wrong-key"})

        await _run_one(worker)

        task = await queue_manager.get_task(task_id)
        assert task.status == TaskStatus.FAILED
        assert task.details.startswith("Invalid payload for IMPORT task")

    @pytest.mark.asyncio
    async def test_missing_definition_fails(self, worker, queue_manager):
        task_id = await queue_manager.add_task(
            TaskType.PRE_OPTIMIZATION, 0, {"job_definition_id": "00000000-0000-0000-0000-000000000001"}
        )

        await _run_one(worker)

        task = await queue_manager.get_task(task_id)
        assert task.status == TaskStatus.FAILED
        assert "not found" in task.details


class TestCancellation:

    @pytest.mark.asyncio
    async def test_stopped_task_stays_cancelled(self, worker, queue_manager, import_backend, manager_user):
        task_id = await queue_manager.add_task(TaskType.IMPORT, 0, {"file_id": "big"})
        task = await worker.check_queue()
        runner = worker.running_tasks[task.id]
        await import_backend.entered.wait()

        await queue_manager.stop_task(task_id, manager_user)
        import_backend.release.set()
        await runner

        stored = await queue_manager.get_task(task_id)
        assert stored.status == TaskStatus.CANCELLED
        assert import_backend.stages == ["validate"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fails", [False, True])
    async def test_stop_after_last_checkpoint_keeps_cancelled(
        self, queue_manager, manager_user, log_records, fails
    ):
        handler = FinishesRegardlessHandler(fails)
        registry = TaskHandlerRegistry()
        registry.register(TaskType.IMPORT, ImportPayload, handler)
        worker = QueueWorker(queue_manager, registry, cancellation_check_interval=0.01)
        task_id = await queue_manager.add_task(TaskType.IMPORT, 0, {"file_id": "late"})
        task = await worker.check_queue()
        runner = worker.running_tasks[task.id]
        await handler.entered.wait()

        await queue_manager.stop_task(task_id, manager_user)
        handler.release.set()
        await runner

        stored = await queue_manager.get_task(task_id)
        assert stored.status == TaskStatus.CANCELLED
        assert stored.details is None
        assert not [
            record for record in log_records
            if record["message"].startswith("Could not record")
            or record["message"].startswith("Database error")
        ]
        assert any("already CANCELLED" in record["message"] for record in log_records)


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_ceiling_is_respected(self, worker, queue_manager, import_backend):
        first_id = await queue_manager.add_task(TaskType.IMPORT, 5, {"file_id": "a"})
        second_id = await queue_manager.add_task(TaskType.IMPORT, 1, {"file_id": "b"})

        first = await worker.check_queue()
        assert first.id == first_id
        assert await worker.check_queue() is None
        assert await queue_manager.get_task_status(second_id) == TaskStatus.PENDING

        import_backend.release.set()
        await worker.running_tasks[first_id]

        second = await worker.check_queue()
        assert second.id == second_id
        await worker.running_tasks[second_id]
        assert await queue_manager.get_task_status(second_id) == TaskStatus.COMPLETED


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_started_worker_drains_queue(self, worker, queue_manager, import_backend):
        import_backend.release.set()
        task_ids = [
            await queue_manager.add_task(TaskType.IMPORT, 0, {"file_id": str(n)})
            for n in range(3)
        ]

        await worker.start()
        assert worker.is_running
        try:
            for _ in range(200):
                statuses = [await queue_manager.get_task_status(task_id) for task_id in task_ids]
                if all(status == TaskStatus.COMPLETED for status in statuses):
                    break
                await asyncio.sleep(0.02)
        finally:
            await worker.stop()

        assert statuses == [TaskStatus.COMPLETED] * 3
        assert not worker.is_running

    @pytest.mark.asyncio
    async def test_stop_abandons_after_grace(self, worker, queue_manager):
        await queue_manager.add_task(TaskType.IMPORT, 0, {"file_id": "slow"})
        await worker.check_queue()

        await worker.stop(grace_period=0.05)

        assert await worker.check_queue() is None
        abandoned = list(worker.running_tasks.values())
        assert len(abandoned) == 1
        for runner in abandoned:
            runner.cancel()
        await asyncio.gather(*abandoned, return_exceptions=True)
