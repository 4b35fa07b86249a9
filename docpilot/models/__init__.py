"""Domain models."""

from .task import Task, TaskPriority, TaskQueueDocument, TaskStatus, TaskType, QueueStats
from .execution import JobExecution

__all__ = [
    "Task",
    "TaskPriority",
    "TaskQueueDocument",
    "TaskStatus",
    "TaskType",
    "QueueStats",
    "JobExecution",
]
