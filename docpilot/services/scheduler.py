"""
Interval scheduler for registered maintenance jobs.

Checks every ``tick_seconds`` which jobs are due and hands them to the
dispatcher in the background. The dispatcher's per-name and global limits
apply, so a job that is still running when it comes due again is skipped
rather than started twice.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..exceptions import ConcurrencyLimitError, DocpilotException, JobAlreadyRunningError
from .dispatcher import JobDispatcher
from .job_registry import JobRegistry

logger = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 30


class JobScheduler:
    """Runs each job with an ``interval_seconds`` every time that interval elapses."""

    def __init__(
        self,
        dispatcher: JobDispatcher,
        registry: JobRegistry,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
    ) -> None:
        self.dispatcher = dispatcher
        self.registry = registry
        self.tick_seconds = tick_seconds
        self.started_at: Optional[datetime] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._job_tasks: set[asyncio.Task] = set()
        # Monotonic time each job was last triggered (or the scheduler started).
        self._last_triggered: Dict[str, float] = {}

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        """Start the tick loop on the running event loop. No-op if already started."""
        if self.is_running:
            logger.warning("Scheduler already running")
            return

        now = time.monotonic()
        self._last_triggered = {spec.name: now for spec in self.registry.scheduled()}
        self.started_at = datetime.now(timezone.utc)
        self._loop_task = asyncio.create_task(self._run())
        logger.info(
            "Scheduler started with %d job(s), tick every %ss",
            len(self._last_triggered), self.tick_seconds,
        )

    async def stop(self) -> None:
        """Stop the tick loop. Jobs already dispatched run to completion."""
        if self._loop_task is None:
            return
        self._loop_task.cancel()
        try:
            await self._loop_task
        except asyncio.CancelledError:
            pass
        self._loop_task = None
        self.started_at = None
        logger.info("Scheduler stopped")

    def due_jobs(self, now: Optional[float] = None) -> List[str]:
        """Names of jobs whose interval has elapsed since they were last triggered."""
        if now is None:
            now = time.monotonic()
        due = []
        for spec in self.registry.scheduled():
            last = self._last_triggered.get(spec.name, now)
            if now - last >= spec.interval_seconds:
                due.append(spec.name)
        return due

    def tick(self, now: Optional[float] = None) -> List[str]:
        """Dispatch every due job in the background. Returns the names triggered."""
        if now is None:
            now = time.monotonic()
        due = self.due_jobs(now)
        for name in due:
            self._last_triggered[name] = now
            task = asyncio.create_task(self._run_job(name))
            self._job_tasks.add(task)
            task.add_done_callback(self._job_tasks.discard)
        return due

    def status(self) -> Dict[str, Any]:
        running = set(self.dispatcher.running())
        jobs = []
        for spec in self.registry.all():
            last = self.dispatcher.history.get_last_run(spec.name)
            jobs.append({
                "name": spec.name,
                "description": spec.description,
                "intervalSeconds": spec.interval_seconds,
                "available": self.registry.is_available(spec),
                "running": spec.name in running,
                "lastRun": last.model_dump(mode="json", by_alias=True) if last else None,
            })
        return {
            "running": self.is_running,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "tickSeconds": self.tick_seconds,
            "jobs": jobs,
        }

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            try:
                self.tick()
            except Exception as e:
                logger.error("Scheduler tick failed: %s", e, exc_info=True)

    async def _run_job(self, name: str) -> None:
        try:
            await self.dispatcher.run_job(name, trigger="scheduled")
        except (JobAlreadyRunningError, ConcurrencyLimitError) as e:
            logger.info("Skipping scheduled run of %s: %s", name, e.message)
        except DocpilotException as e:
            logger.warning("Scheduled job %s rejected: %s", name, e.message)
