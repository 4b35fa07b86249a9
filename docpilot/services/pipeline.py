"""Expands one documentation request into the five-stage pipeline task chain."""

import logging
import uuid
from typing import Any, Dict, List, Optional

from ..exceptions import CircularDependencyError
from ..models.task import Task, TaskPriority, TaskType
from .task_queue import TaskQueue, find_cycle

logger = logging.getLogger(__name__)

# Stage order and the agent role that claims each stage.
PIPELINE_STAGES = (
    (TaskType.RESEARCH, "researcher"),
    (TaskType.OUTLINE, "writer"),
    (TaskType.WRITE, "writer"),
    (TaskType.REVIEW, "reviewer"),
    (TaskType.REFINE, "editor"),
)


def build_pipeline_tasks(
    issue_number: int,
    input: Dict[str, Any],
    document_slug: Optional[str] = None,
    priority: TaskPriority = TaskPriority.NORMAL,
) -> List[Task]:
    """Build the linked chain in memory without persisting it.

    Each stage depends on exactly the previous stage; every stage shares one
    ``parentTaskId`` and receives *input* plus ``pipelineParentId``.
    """
    parent_id = str(uuid.uuid4())
    tasks: List[Task] = []
    previous_id: Optional[str] = None

    for task_type, agent in PIPELINE_STAGES:
        task = Task(
            type=task_type.value,
            priority=priority,
            issue_number=issue_number,
            document_slug=document_slug,
            parent_task_id=parent_id,
            depends_on=[previous_id] if previous_id else [],
            input={**input, "pipelineParentId": parent_id},
            assigned_agent=agent,
        )
        tasks.append(task)
        previous_id = task.id

    return tasks


def create_pipeline_tasks(
    queue: TaskQueue,
    issue_number: int,
    input: Dict[str, Any],
    document_slug: Optional[str] = None,
    priority: TaskPriority = TaskPriority.NORMAL,
) -> List[Task]:
    """
    Create and persist the research -> outline -> write -> review -> refine chain.

    The chain is checked for cycles before anything is written, and all
    five tasks are saved together, so a failure never leaves a partial
    pipeline behind.

    Returns:
        The five created tasks in stage order.
    """
    tasks = build_pipeline_tasks(issue_number, input, document_slug, priority)

    cycle = find_cycle(tasks)
    if cycle:
        raise CircularDependencyError(cycle[0], cycle[1:])

    queue.add_tasks(tasks)
    logger.info(
        "Created pipeline chain of %d tasks for issue #%s", len(tasks), issue_number,
        extra={"issue_number": issue_number, "parent_task_id": tasks[0].parent_task_id},
    )
    return tasks
