"""
Polling worker that executes pipeline stages from the task queue.

Claims one ready task at a time, runs the stage command for its type, and
records the outcome on the task. Failed stages are re-queued while they
have retry budget. In_progress tasks that outlived the stale timeout are
failed periodically so a crashed worker cannot block a pipeline forever.

Usage:
    docpilot-worker [--role writer] [--once]
"""

import argparse
import asyncio
import json
import logging
import shlex
import signal
import time
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .core.config import Settings, settings
from .core.logging_config import setup_logging
from .models.task import Task, TaskStatus
from .services.process_runner import ProcessResult, ProcessRunner
from .services.task_queue import TaskQueue
from .services.task_store import TaskStore

logger = logging.getLogger("docpilot.worker")

# Longest error text stored on a failed task.
MAX_ERROR_CHARS = 2000


def stage_env(task: Task) -> Dict[str, str]:
    """Environment handed to the stage command."""
    env = {
        "TASK_ID": task.id,
        "TASK_TYPE": task.type,
        "TASK_INPUT": json.dumps(task.input),
    }
    if task.issue_number is not None:
        env["ISSUE_NUMBER"] = str(task.issue_number)
    parent_id = task.input.get("pipelineParentId") or task.parent_task_id
    if parent_id:
        env["PIPELINE_PARENT_ID"] = str(parent_id)
    return env


def parse_stage_output(output: Optional[str]) -> Any:
    """Stage stdout as a JSON object when it is one, else ``{"text": output}``."""
    text = (output or "").strip()
    try:
        parsed = json.loads(text)
    except ValueError:
        return {"text": text}
    return parsed if isinstance(parsed, dict) else {"text": text}


class Worker:
    """Claims and runs pipeline tasks for one agent role (or any role)."""

    def __init__(self, queue: TaskQueue, runner: ProcessRunner, cfg: Settings, agent_role: Optional[str] = None):
        self.queue = queue
        self.runner = runner
        self.cfg = cfg
        self.agent_role = agent_role or None
        self.command = shlex.split(cfg.stage_command)
        self._shutdown_requested = False
        self._last_stale_check = 0.0

    def request_shutdown(self) -> None:
        self._shutdown_requested = True

    def sweep_stale_tasks(self, now: Optional[float] = None) -> int:
        """Fail stale in_progress tasks if the sweep interval has elapsed."""
        if now is None:
            now = time.monotonic()
        if self._last_stale_check and now - self._last_stale_check < self.cfg.stale_check_interval_seconds:
            return 0
        self._last_stale_check = now
        return self.queue.cleanup_stale_tasks(self.cfg.stale_task_timeout_minutes)

    async def process_task(self, task: Task) -> Optional[Task]:
        """
        Run the stage command for *task* and record the outcome.

        Returns:
            The task as last saved: completed, failed, or pending again when
            a retry was scheduled.
        """
        logger.info(
            "Processing task [%s] %s", task.type, task.id[:8],
            extra={"task_id": task.id, "issue_number": task.issue_number},
        )
        command, *base_args = self.command
        result: ProcessResult = await self.runner.run(
            command,
            [*base_args, task.type],
            env=stage_env(task),
            timeout=self.cfg.stage_timeout_seconds,
        )

        if result.success:
            logger.info("Task %s completed in %dms", task.id[:8], result.duration_ms)
            return self.queue.update_task(task.id, {
                "status": TaskStatus.COMPLETED,
                "output": parse_stage_output(result.output),
                "error": None,
            })

        error = (result.error or result.message)[-MAX_ERROR_CHARS:]
        logger.warning("Task %s failed: %s", task.id[:8], result.message)
        failed = self.queue.update_task(task.id, {"status": TaskStatus.FAILED, "error": error})
        retried = self.queue.retry_task(task.id)
        return retried or failed

    async def run_once(self) -> Optional[Task]:
        """Sweep stale tasks, then claim and process at most one task."""
        self.sweep_stale_tasks()
        task = self.queue.claim_next_task(self.agent_role)
        if task is None:
            return None
        return await self.process_task(task)

    async def run(self) -> None:
        logger.info(
            "Worker started, polling every %ss (role: %s)",
            self.cfg.worker_poll_interval, self.agent_role or "any",
        )
        while not self._shutdown_requested:
            try:
                task = await self.run_once()
            except Exception as e:
                logger.error("Worker error: %s", e, exc_info=True)
                task = None
            if task is None and not self._shutdown_requested:
                await asyncio.sleep(self.cfg.worker_poll_interval)

        await self.runner.wait_for_escalations()
        logger.info("Worker shutting down")


def main() -> None:
    """Entry point for the ``docpilot-worker`` console script."""
    parser = argparse.ArgumentParser(description="Run pipeline stages from the task queue")
    parser.add_argument(
        "--role",
        default=settings.worker_agent_role,
        help="Only claim tasks assigned to this agent role (default: any)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process at most one task and exit",
    )
    args = parser.parse_args()

    # Stage scripts read their credentials from the environment.
    load_dotenv()
    setup_logging(log_level=settings.log_level, log_format=settings.log_format)

    worker = Worker(
        TaskQueue(TaskStore(settings.task_queue_path)),
        ProcessRunner(
            grace_period=settings.kill_grace_seconds,
            max_output_bytes=settings.max_output_bytes,
        ),
        settings,
        agent_role=args.role,
    )

    def _handle_shutdown_signal(signum: int, frame: Any) -> None:
        logger.warning("Received %s, stopping after the current task", signal.Signals(signum).name)
        worker.request_shutdown()

    signal.signal(signal.SIGTERM, _handle_shutdown_signal)
    signal.signal(signal.SIGINT, _handle_shutdown_signal)

    if args.once:
        asyncio.run(worker.run_once())
    else:
        asyncio.run(worker.run())


if __name__ == "__main__":
    main()
