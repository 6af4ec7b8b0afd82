"""Live fan-out of task state changes to authorized subscribers.

Delivery is best effort: ``publish`` queues sends and returns at once,
a failing subscriber is dropped, nothing is retried. Clients can always
re-read the queue state over REST.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional, Protocol

from loguru import logger

from rsf_queue.security.constants import (
    ACTION_RECEIVE,
    ACTION_SUBSCRIBE,
    RESOURCE_TASK_UPDATES,
)
from rsf_queue.security.identity import AuthenticatedUser
from rsf_queue.security.rbac import RoleAuthorizer
from rsf_queue.services.tasks.models import Task

TASK_UPDATE = "TASK_UPDATE"


class Subscriber(Protocol):
    async def send_text(self, data: str) -> None:
        ...


def build_task_update(task: Task) -> Dict[str, Any]:
    return {"type": TASK_UPDATE, "payload": task.to_update_payload()}


class _Subscription:
    """One subscriber with its own outbox, drained by at most one sender task."""

    def __init__(self, subscriber: Subscriber, user: AuthenticatedUser) -> None:
        self.subscriber = subscriber
        self.user = user
        self.outbox: asyncio.Queue[str] = asyncio.Queue()
        self.sender: Optional[asyncio.Task] = None

    def discard_pending(self) -> None:
        while True:
            try:
                self.outbox.get_nowait()
            except asyncio.QueueEmpty:
                return
            self.outbox.task_done()


class TaskBroadcaster:
    def __init__(self, authorizer: RoleAuthorizer) -> None:
        self._authorizer = authorizer
        self._subscriptions: Dict[int, _Subscription] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def can_subscribe(self, user: AuthenticatedUser) -> bool:
        return self._authorizer.is_allowed(user, RESOURCE_TASK_UPDATES, ACTION_SUBSCRIBE)

    def register(self, subscriber: Subscriber, user: AuthenticatedUser) -> None:
        self._subscriptions[id(subscriber)] = _Subscription(subscriber, user)
        logger.info(
            f"Subscriber {user.username} ({user.role}) connected. "
            f"Total subscribers: {len(self._subscriptions)}"
        )

    def unregister(self, subscriber: Subscriber) -> None:
        subscription = self._subscriptions.pop(id(subscriber), None)
        if subscription is None:
            return
        subscription.discard_pending()
        sender = subscription.sender
        if sender is not None and not sender.done() and sender is not asyncio.current_task():
            sender.cancel()
        logger.info(
            f"Subscriber {subscription.user.username} disconnected. "
            f"Total subscribers: {len(self._subscriptions)}"
        )

    def publish(self, task: Task) -> None:
        """Queue a TASK_UPDATE for every subscriber allowed to receive it.

        Each subscriber gets updates in publish order; a slow subscriber
        delays only itself.
        """
        recipients = [
            subscription
            for subscription in self._subscriptions.values()
            if self._authorizer.is_allowed(subscription.user, RESOURCE_TASK_UPDATES, ACTION_RECEIVE)
        ]
        if not recipients:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop; update for task {task.id} not delivered")
            return

        message = json.dumps(build_task_update(task))
        for subscription in recipients:
            subscription.outbox.put_nowait(message)
            if subscription.sender is None or subscription.sender.done():
                subscription.sender = loop.create_task(self._deliver(subscription))

    async def _deliver(self, subscription: _Subscription) -> None:
        # exits once the outbox is empty; the next publish starts a new sender
        while not subscription.outbox.empty():
            message = subscription.outbox.get_nowait()
            try:
                await subscription.subscriber.send_text(message)
            except Exception as exc:
                logger.warning(f"Dropping subscriber after failed delivery: {exc}")
                self.unregister(subscription.subscriber)
                return
            finally:
                subscription.outbox.task_done()

    async def flush(self) -> None:
        """Wait until every queued update has been delivered or discarded."""
        await asyncio.gather(
            *(subscription.outbox.join() for subscription in list(self._subscriptions.values()))
        )


__all__ = ["TaskBroadcaster", "Subscriber", "build_task_update", "TASK_UPDATE"]
