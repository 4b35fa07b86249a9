"""Task queue endpoints."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from ..container import Services, get_services
from ..exceptions import InvalidTransitionError, TaskNotFoundError
from ..models.task import QueueStats, Task, TaskStatus
from ..schemas.task import (
    CleanupResponse,
    PipelineCreate,
    PipelineResponse,
    TaskCreate,
    TaskListResponse,
)
from ..services.pipeline import create_pipeline_tasks
from ..services.task_queue import DEFAULT_STALE_TIMEOUT_MINUTES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.get("", response_model=TaskListResponse)
def list_tasks(
    status: Optional[TaskStatus] = Query(None),
    services: Services = Depends(get_services),
):
    tasks = services.queue.list_tasks(status)
    return TaskListResponse(tasks=tasks, total=len(tasks))


@router.get("/stats", response_model=QueueStats)
def get_stats(services: Services = Depends(get_services)):
    return services.queue.get_queue_stats()


@router.get("/issue/{issue_number}", response_model=TaskListResponse)
def get_tasks_for_issue(issue_number: int, services: Services = Depends(get_services)):
    tasks = services.queue.get_tasks_by_issue(issue_number)
    return TaskListResponse(tasks=tasks, total=len(tasks))


@router.get("/{task_id}", response_model=Task)
def get_task(task_id: str, services: Services = Depends(get_services)):
    task = services.queue.get_task(task_id)
    if task is None:
        raise TaskNotFoundError(task_id)
    return task


@router.post("", response_model=Task, status_code=201)
def create_task(request: TaskCreate, services: Services = Depends(get_services)):
    """Add a single pending task."""
    return services.queue.create_task(
        request.type,
        priority=request.priority,
        issue_number=request.issue_number,
        document_slug=request.document_slug,
        parent_task_id=request.parent_task_id,
        depends_on=request.depends_on,
        input=request.input,
        assigned_agent=request.assigned_agent,
        max_retries=request.max_retries,
    )


@router.post("/pipeline", response_model=PipelineResponse, status_code=201)
def create_pipeline(request: PipelineCreate, services: Services = Depends(get_services)):
    """Create the research -> outline -> write -> review -> refine chain for an issue."""
    tasks = create_pipeline_tasks(
        services.queue,
        request.issue_number,
        request.input,
        document_slug=request.document_slug,
        priority=request.priority,
    )
    return PipelineResponse(parent_task_id=tasks[0].parent_task_id, tasks=tasks)


@router.patch("/{task_id}", response_model=Task)
def update_task(task_id: str, patch: Dict[str, Any], services: Services = Depends(get_services)):
    """Merge a partial update into the task.

    Keys may be camelCase or snake_case. Setting ``status`` to
    ``completed`` also stamps ``completedAt``.
    """
    task = services.queue.update_task(task_id, patch)
    if task is None:
        raise TaskNotFoundError(task_id)
    return task


@router.post("/{task_id}/retry", response_model=Task)
def retry_task(task_id: str, services: Services = Depends(get_services)):
    """Return a failed task to pending while it has retry budget left."""
    if services.queue.get_task(task_id) is None:
        raise TaskNotFoundError(task_id)
    task = services.queue.retry_task(task_id)
    if task is None:
        raise InvalidTransitionError(
            task_id, f"Task {task_id} is not failed or has no retries left"
        )
    return task


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup_stale_tasks(
    timeout_minutes: int = Query(DEFAULT_STALE_TIMEOUT_MINUTES, alias="timeoutMinutes", ge=1),
    services: Services = Depends(get_services),
):
    """Fail in_progress tasks older than *timeoutMinutes*."""
    cleaned = services.queue.cleanup_stale_tasks(timeout_minutes)
    return CleanupResponse(cleaned=cleaned, timeout_minutes=timeout_minutes)
