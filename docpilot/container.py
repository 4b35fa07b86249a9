"""Service wiring.

Builds the queue, runner, registries, dispatcher, scheduler and webhook
router from settings once per process. API routes receive them through
``Depends(get_services)``; tests override that dependency with services
pointed at temporary paths.
"""

from dataclasses import dataclass
from functools import lru_cache

from .core.config import Settings, settings
from .services.dispatcher import JobDispatcher
from .services.history_service import HistoryService
from .services.job_registry import (
    SCHEDULED_JOBS,
    SCRIPT_DEFINITIONS,
    WEBHOOK_SCRIPTS,
    JobRegistry,
)
from .services.process_runner import ProcessRunner
from .services.scheduler import JobScheduler
from .services.task_queue import TaskQueue
from .services.task_store import TaskStore
from .services.webhook_router import WebhookRouter


@dataclass
class Services:
    queue: TaskQueue
    history: HistoryService
    runner: ProcessRunner
    scripts: JobRegistry
    jobs: JobRegistry
    dispatcher: JobDispatcher
    scheduler: JobScheduler
    webhook_router: WebhookRouter


def build_services(cfg: Settings) -> Services:
    """Construct every service from *cfg*. Nothing is started."""
    runner = ProcessRunner(
        default_timeout=cfg.script_timeout_seconds,
        grace_period=cfg.kill_grace_seconds,
        max_output_bytes=cfg.max_output_bytes,
    )
    history = HistoryService(cfg.history_path, limit=cfg.history_limit)
    scripts = JobRegistry(SCRIPT_DEFINITIONS, cfg.scripts_root, cfg.script_interpreter)
    jobs = JobRegistry(SCHEDULED_JOBS, cfg.scripts_root, cfg.script_interpreter)
    webhook_scripts = JobRegistry(WEBHOOK_SCRIPTS, cfg.scripts_root, cfg.script_interpreter)

    dispatcher = JobDispatcher(
        runner,
        history,
        scripts=scripts,
        jobs=jobs,
        max_concurrent=cfg.max_concurrent_scripts,
        script_timeout=cfg.script_timeout_seconds,
        job_timeout=cfg.job_timeout_seconds,
    )

    return Services(
        queue=TaskQueue(TaskStore(cfg.task_queue_path)),
        history=history,
        runner=runner,
        scripts=scripts,
        jobs=jobs,
        dispatcher=dispatcher,
        scheduler=JobScheduler(dispatcher, jobs, tick_seconds=cfg.scheduler_tick_seconds),
        webhook_router=WebhookRouter(runner, webhook_scripts, timeout=cfg.script_timeout_seconds),
    )


@lru_cache(maxsize=1)
def get_services() -> Services:
    """FastAPI dependency returning the process-wide services."""
    return build_services(settings)
