"""
Job definition routes: create, inspect, enqueue for execution, read results.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from rsf_queue.api.schemas import (
    CreateJobDefinitionRequest,
    EnqueuedTaskResponse,
    ExecuteJobDefinitionRequest,
    ExecutionLogResponse,
    JobDefinitionResponse,
)
from rsf_queue.core.container import ServiceContainer
from rsf_queue.exceptions import NotFoundError
from rsf_queue.security.constants import (
    ACTION_CREATE,
    ACTION_EXECUTE,
    ACTION_READ,
    RESOURCE_JOB_DEFINITIONS,
    RESOURCE_JOB_RESULTS,
)
from rsf_queue.security.dependencies import get_services, require_permission
from rsf_queue.security.identity import AuthenticatedUser
from rsf_queue.services.tasks import TaskStatus, TaskType

router = APIRouter(prefix="/job-definitions")


async def _require_definition(services: ServiceContainer, definition_id: str):
    definition = await services.job_definitions.get(definition_id)
    if definition is None:
        raise NotFoundError(
            f"Job definition with ID {definition_id} not found.", subject_id=definition_id
        )
    return definition


@router.post("", response_model=JobDefinitionResponse, status_code=status.HTTP_201_CREATED)
async def create_job_definition(
    request: CreateJobDefinitionRequest,
    services: ServiceContainer = Depends(get_services),
    user: AuthenticatedUser = Depends(
        require_permission(RESOURCE_JOB_DEFINITIONS, ACTION_CREATE)
    ),
):
    definition = await services.job_definitions.create(
        request.type,
        request.start_date,
        request.end_date,
        created_by=user.username,
    )
    return JobDefinitionResponse.from_definition(definition)


@router.get("/{definition_id}", response_model=JobDefinitionResponse)
async def get_job_definition(
    definition_id: str,
    services: ServiceContainer = Depends(get_services),
    user: AuthenticatedUser = Depends(require_permission(RESOURCE_JOB_DEFINITIONS, ACTION_READ)),
):
    definition = await _require_definition(services, definition_id)
    return JobDefinitionResponse.from_definition(definition)


@router.post(
    "/{definition_id}/execute",
    response_model=EnqueuedTaskResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def execute_job_definition(
    definition_id: str,
    request: Optional[ExecuteJobDefinitionRequest] = None,
    services: ServiceContainer = Depends(get_services),
    user: AuthenticatedUser = Depends(
        require_permission(RESOURCE_JOB_DEFINITIONS, ACTION_EXECUTE)
    ),
):
    """Queue a PRE_OPTIMIZATION task; the worker runs it through the execution engine."""
    definition = await _require_definition(services, definition_id)
    task_id = await services.queue_manager.add_task(
        TaskType.PRE_OPTIMIZATION,
        request.priority if request else 0,
        {"job_definition_id": str(definition.id), "requested_by": user.id},
    )
    services.worker.trigger_check()
    return EnqueuedTaskResponse(task_id=str(task_id), status=TaskStatus.PENDING.value)


@router.get("/{definition_id}/results", response_model=List[ExecutionLogResponse])
async def get_job_definition_results(
    definition_id: str,
    services: ServiceContainer = Depends(get_services),
    user: AuthenticatedUser = Depends(require_permission(RESOURCE_JOB_RESULTS, ACTION_READ)),
):
    """Execution history, most recent first; 404 until the definition has run."""
    logs = await services.job_definitions.execution_history(definition_id)
    if not logs:
        raise NotFoundError(
            f"No execution results found for job definition {definition_id}.",
            subject_id=definition_id,
        )
    return [ExecutionLogResponse.from_log(log) for log in logs]
