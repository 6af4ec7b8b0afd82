"""
Tests for live task updates: who receives TASK_UPDATE envelopes and what
they contain.
"""

import asyncio
import datetime as dt
import json
import uuid

import pytest

from rsf_queue.security.identity import AuthenticatedUser
from rsf_queue.services.broadcaster import TASK_UPDATE
from rsf_queue.services.tasks import Task, TaskStatus, TaskType

from conftest import FakeSubscriber


class SlowFirstSubscriber(FakeSubscriber):
    """Takes longer over the first message than over the rest"""

    calls = 0

    async def send_text(self, data: str) -> None:
        self.calls += 1
        if self.calls == 1:
            await asyncio.sleep(0.05)
        await super().send_text(data)


def _statuses(subscriber):
    return [json.loads(message)["payload"]["status"] for message in subscriber.messages]


class TestSubscriptionRules:

    def test_roles_that_may_subscribe(self, broadcaster, manager_user, consultant_user):
        guest = AuthenticatedUser(id="3", username="guest", role="guest")

        assert broadcaster.can_subscribe(manager_user)
        assert broadcaster.can_subscribe(consultant_user)
        assert not broadcaster.can_subscribe(guest)

    def test_register_and_unregister(self, broadcaster, manager_user):
        subscriber = FakeSubscriber()

        broadcaster.register(subscriber, manager_user)
        assert broadcaster.subscriber_count == 1

        broadcaster.unregister(subscriber)
        broadcaster.unregister(subscriber)
        assert broadcaster.subscriber_count == 0


class TestDelivery:

    @pytest.mark.asyncio
    async def test_manager_receives_every_transition(self, broadcaster, queue_manager, manager_user):
        subscriber = FakeSubscriber()
        broadcaster.register(subscriber, manager_user)

        task_id = await queue_manager.add_task(TaskType.IMPORT, 2, {"file_id": "f"})
        await queue_manager.claim_next_task()
        await queue_manager.update_task_status(task_id, TaskStatus.COMPLETED, "ok")
        await broadcaster.flush()

        assert _statuses(subscriber) == ["PENDING", "RUNNING", "COMPLETED"]
        envelope = json.loads(subscriber.messages[-1])
        assert envelope["type"] == TASK_UPDATE
        payload = envelope["payload"]
        assert payload["taskId"] == str(task_id)
        assert payload["type"] == "IMPORT"
        assert payload["priority"] == 2
        assert payload["data"] == {"file_id": "f"}
        assert payload["createdAt"] and payload["updatedAt"]

    @pytest.mark.asyncio
    async def test_slow_subscriber_keeps_publish_order(self, broadcaster, queue_manager, manager_user):
        subscriber = SlowFirstSubscriber()
        broadcaster.register(subscriber, manager_user)

        task_id = await queue_manager.add_task(TaskType.IMPORT, 0, {"file_id": "f"})
        await queue_manager.claim_next_task()
        await queue_manager.update_task_status(task_id, TaskStatus.COMPLETED, "ok")
        await broadcaster.flush()

        assert _statuses(subscriber) == ["PENDING", "RUNNING", "COMPLETED"]

    @pytest.mark.asyncio
    async def test_unregister_discards_queued_updates(self, broadcaster, queue_manager, manager_user):
        subscriber = SlowFirstSubscriber()
        broadcaster.register(subscriber, manager_user)

        await queue_manager.add_task(TaskType.IMPORT, 0, {"file_id": "a"})
        await queue_manager.add_task(TaskType.IMPORT, 0, {"file_id": "b"})
        broadcaster.unregister(subscriber)
        await broadcaster.flush()

        assert subscriber.messages == []
        assert broadcaster.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_consultant_never_receives(self, broadcaster, queue_manager, manager_user, consultant_user):
        consultant = FakeSubscriber()
        broadcaster.register(consultant, consultant_user)

        task_id = await queue_manager.add_task(TaskType.IMPORT, 0, {"file_id": "f"})
        await queue_manager.claim_next_task()
        await queue_manager.set_task_priority(task_id, 4, manager_user)
        await queue_manager.stop_task(task_id, manager_user)
        await broadcaster.flush()

        assert consultant.messages == []

    @pytest.mark.asyncio
    async def test_stop_and_priority_changes_are_published(self, broadcaster, queue_manager, manager_user):
        subscriber = FakeSubscriber()
        broadcaster.register(subscriber, manager_user)

        task_id = await queue_manager.add_task(TaskType.IMPORT, 0, {"file_id": "f"})
        await queue_manager.claim_next_task()
        await queue_manager.set_task_priority(task_id, 4, manager_user)
        await queue_manager.stop_task(task_id, manager_user)
        await broadcaster.flush()

        assert _statuses(subscriber) == ["PENDING", "RUNNING", "RUNNING", "CANCELLED"]
        assert json.loads(subscriber.messages[2])["payload"]["priority"] == 4

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_dropped(self, broadcaster, queue_manager, manager_user):
        healthy = FakeSubscriber()
        broken = FakeSubscriber(fail=True)
        broadcaster.register(healthy, manager_user)
        broadcaster.register(broken, manager_user)

        await queue_manager.add_task(TaskType.IMPORT, 0, {"file_id": "f"})
        await broadcaster.flush()

        assert broadcaster.subscriber_count == 1
        assert _statuses(healthy) == ["PENDING"]

    def test_publish_without_event_loop_is_a_no_op(self, broadcaster, manager_user):
        subscriber = FakeSubscriber()
        broadcaster.register(subscriber, manager_user)
        now = dt.datetime.now(dt.timezone.utc)
        task = Task(
            id=uuid.uuid4(),
            type="IMPORT",
            priority=0,
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

        broadcaster.publish(task)

        assert subscriber.messages == []
