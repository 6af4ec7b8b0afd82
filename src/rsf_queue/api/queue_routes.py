"""
Task queue routes: queue overview and manager actions on single tasks.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from rsf_queue.api.schemas import QueueStatusResponse, SetPriorityRequest, TaskResponse
from rsf_queue.core.container import ServiceContainer
from rsf_queue.exceptions import NotFoundError
from rsf_queue.security.constants import ACTION_READ, RESOURCE_QUEUE, RESOURCE_TASK
from rsf_queue.security.dependencies import get_current_user, get_services, require_permission
from rsf_queue.security.identity import AuthenticatedUser
from rsf_queue.services.tasks import TaskStatus

router = APIRouter(prefix="/queue")


@router.get("/status", response_model=QueueStatusResponse)
async def get_queue_status(
    status: Optional[TaskStatus] = Query(default=None),
    services: ServiceContainer = Depends(get_services),
    user: AuthenticatedUser = Depends(require_permission(RESOURCE_QUEUE, ACTION_READ)),
):
    """All tasks, most urgent first (priority desc, then oldest first)."""
    tasks = await services.queue_manager.list_tasks(status=status)
    return QueueStatusResponse(
        tasks=[TaskResponse.from_task(task) for task in tasks],
        total=len(tasks),
    )


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: str,
    services: ServiceContainer = Depends(get_services),
    user: AuthenticatedUser = Depends(require_permission(RESOURCE_TASK, ACTION_READ)),
):
    task = await services.queue_manager.get_task(task_id)
    if task is None:
        raise NotFoundError(f"Task with ID {task_id} not found.", subject_id=task_id)
    return TaskResponse.from_task(task)


@router.patch("/tasks/{task_id}/priority", response_model=TaskResponse)
async def set_task_priority(
    task_id: str,
    request: SetPriorityRequest,
    services: ServiceContainer = Depends(get_services),
    user: AuthenticatedUser = Depends(get_current_user),
):
    task = await services.queue_manager.set_task_priority(task_id, request.priority, user)
    return TaskResponse.from_task(task)


@router.post("/tasks/{task_id}/stop", response_model=TaskResponse)
async def stop_task(
    task_id: str,
    services: ServiceContainer = Depends(get_services),
    user: AuthenticatedUser = Depends(get_current_user),
):
    task = await services.queue_manager.stop_task(task_id, user)
    return TaskResponse.from_task(task)
