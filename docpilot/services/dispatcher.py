"""
Policy layer over the process runner for named jobs and admin scripts.

Responsibilities:
  - Reject unknown names and scripts whose file is missing
  - Filter caller env vars to the job's whitelist and validate their values
  - Allow one running invocation per name (second caller is rejected, not queued)
  - Cap simultaneous executions across all names (excess callers are rejected)
  - Record every execution in the history, best-effort

All rejections raise before anything is spawned. A process that ran and
failed comes back as a normal result with ``success=False``.
"""

import logging
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from ..exceptions import (
    ConcurrencyLimitError,
    InvalidJobEnvError,
    JobAlreadyRunningError,
    JobNotFoundError,
    ScriptUnavailableError,
)
from ..models.execution import SCRIPT_PREFIX, JobExecution
from .history_service import HistoryService
from .job_registry import JobRegistry, JobSpec
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 3

# Letters, digits, dot, hyphen, underscore. Anything else is dropped.
_ENV_VALUE_PATTERN = re.compile(r'^[a-zA-Z0-9._-]+$')


@dataclass
class DispatchResult:
    """Response shape of a script or job invocation."""
    script_name: str
    success: bool
    message: str
    duration: int
    output: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def filter_env(spec: JobSpec, raw_env: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """
    Keep only whitelisted keys whose trimmed value matches the allow-pattern.

    Values that are not strings or fail the pattern are treated as absent.
    """
    raw_env = raw_env or {}
    env: Dict[str, str] = {}
    for key in spec.required_env:
        value = raw_env.get(key)
        if not isinstance(value, str):
            continue
        value = value.strip()
        if value and _ENV_VALUE_PATTERN.match(value):
            env[key] = value
    return env


class JobDispatcher:
    """Runs registered scripts and jobs under per-name and global concurrency limits."""

    def __init__(
        self,
        runner: ProcessRunner,
        history: HistoryService,
        scripts: JobRegistry,
        jobs: JobRegistry,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        script_timeout: Optional[float] = None,
        job_timeout: Optional[float] = None,
    ) -> None:
        self.runner = runner
        self.history = history
        self.scripts = scripts
        self.jobs = jobs
        self.max_concurrent = max_concurrent
        self.script_timeout = script_timeout
        self.job_timeout = job_timeout
        # Keyed by history name ("script:<name>" or job name). Only touched
        # from the event loop, so no lock is needed.
        self._running: set[str] = set()

    def running(self) -> List[str]:
        return sorted(self._running)

    def is_running(self, history_name: str) -> bool:
        return history_name in self._running

    async def run_script(
        self,
        name: str,
        env: Optional[Mapping[str, Any]] = None,
        dry_run: bool = False,
    ) -> DispatchResult:
        """Run an admin script with caller-supplied env vars.

        Raises:
            JobNotFoundError, ScriptUnavailableError, InvalidJobEnvError,
            JobAlreadyRunningError, ConcurrencyLimitError
        """
        spec = self.scripts.get(name)
        if spec is None:
            raise JobNotFoundError(name)
        return await self._dispatch(
            spec, self.scripts, f"{SCRIPT_PREFIX}{name}", env, dry_run,
            timeout=spec.timeout_seconds or self.script_timeout, trigger="manual",
        )

    async def run_job(self, name: str, dry_run: bool = False, trigger: str = "manual") -> DispatchResult:
        """Run a registered job, manually or from the scheduler.

        Raises:
            JobNotFoundError, ScriptUnavailableError, InvalidJobEnvError,
            JobAlreadyRunningError, ConcurrencyLimitError
        """
        spec = self.jobs.get(name)
        if spec is None:
            raise JobNotFoundError(name)
        return await self._dispatch(
            spec, self.jobs, name, None, dry_run,
            timeout=spec.timeout_seconds or self.job_timeout, trigger=trigger,
        )

    async def _dispatch(
        self,
        spec: JobSpec,
        registry: JobRegistry,
        history_name: str,
        raw_env: Optional[Mapping[str, Any]],
        dry_run: bool,
        timeout: Optional[float],
        trigger: str,
    ) -> DispatchResult:
        if not registry.is_available(spec):
            raise ScriptUnavailableError(spec.name, spec.script)

        env = filter_env(spec, raw_env)
        missing = [key for key in spec.required_env if key not in env]
        if missing:
            raise InvalidJobEnvError(spec.name, missing)

        if history_name in self._running:
            raise JobAlreadyRunningError(spec.name)
        if len(self._running) >= self.max_concurrent:
            raise ConcurrencyLimitError(self.max_concurrent)

        if dry_run:
            env["DRY_RUN"] = "true"

        self._running.add(history_name)
        started_at = datetime.now(timezone.utc)
        logger.info(
            "Running %s%s", history_name, " (dry run)" if dry_run else "",
            extra={"job_name": history_name, "trigger": trigger},
        )
        try:
            command, args = registry.command_for(spec)
            result = await self.runner.run(command, args, env=env, timeout=timeout)
        finally:
            self._running.discard(history_name)

        self._record(JobExecution(
            id=f"{history_name.replace(':', '-')}-{int(started_at.timestamp() * 1000)}",
            job_name=history_name,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            success=result.success,
            message=result.message,
            duration=result.duration_ms,
            error=result.error,
            trigger=trigger,
        ))

        log = logger.info if result.success else logger.warning
        log(
            "%s %s (%dms): %s", history_name,
            "completed" if result.success else "failed", result.duration_ms, result.message,
            extra={"job_name": history_name, "duration_ms": result.duration_ms},
        )

        return DispatchResult(
            script_name=spec.name,
            success=result.success,
            message=result.message,
            duration=result.duration_ms,
            output=result.output,
            error=result.error,
        )

    def _record(self, execution: JobExecution) -> None:
        """Write a history entry. Never raises; history is best-effort telemetry."""
        try:
            self.history.record(execution)
        except Exception as e:
            logger.error("Failed to record execution history for %s: %s", execution.job_name, e)
