"""Business logic services."""

from .task_store import TaskStore
from .task_queue import TaskQueue
from .pipeline import create_pipeline_tasks
from .process_runner import ProcessResult, ProcessRunner, Supervisor
from .job_registry import JobRegistry, JobSpec
from .history_service import HistoryService
from .dispatcher import DispatchResult, JobDispatcher
from .scheduler import JobScheduler
from .webhook_router import HandlerResult, WebhookRouter

__all__ = [
    "TaskStore",
    "TaskQueue",
    "create_pipeline_tasks",
    "ProcessResult",
    "ProcessRunner",
    "Supervisor",
    "JobRegistry",
    "JobSpec",
    "HistoryService",
    "DispatchResult",
    "JobDispatcher",
    "JobScheduler",
    "HandlerResult",
    "WebhookRouter",
]
