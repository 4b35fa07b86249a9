"""Execution history for dispatched jobs and scripts.

Entries are immutable and kept newest-first in a bounded window. The history
is display telemetry only; nothing in the queue or dispatcher depends on it.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from ..models.execution import JobExecution
from .task_store import write_atomic

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100

_executions_adapter = TypeAdapter(List[JobExecution])


class HistoryService:
    """Bounded, newest-first execution log persisted to a JSON file.

    When *path* is None the history lives in memory only.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, limit: int = DEFAULT_HISTORY_LIMIT):
        self.path = Path(path) if path else None
        self.limit = limit
        self._lock = threading.Lock()
        self._entries: List[JobExecution] = self._load()
        self._last_run: Dict[str, JobExecution] = {}
        for entry in reversed(self._entries):
            self._last_run[entry.job_name] = entry

    def record(self, execution: JobExecution) -> None:
        """Prepend *execution*, truncate to the limit, and persist.

        Raises:
            OSError: If the history file cannot be written. Callers treat
                history as best-effort and swallow this.
        """
        with self._lock:
            self._entries.insert(0, execution)
            del self._entries[self.limit:]
            self._last_run[execution.job_name] = execution
            self._persist()

    def get_history(self, limit: int = 50, job_name: Optional[str] = None) -> List[JobExecution]:
        """Most recent entries first, optionally only those for *job_name*."""
        with self._lock:
            entries = list(self._entries[:limit])
        if job_name:
            entries = [e for e in entries if e.job_name == job_name]
        return entries

    def get_last_run(self, job_name: str) -> Optional[JobExecution]:
        with self._lock:
            return self._last_run.get(job_name)

    def _load(self) -> List[JobExecution]:
        if self.path is None or not self.path.exists():
            return []
        try:
            entries = _executions_adapter.validate_python(
                json.loads(self.path.read_text(encoding="utf-8"))
            )
        except (OSError, ValueError, PydanticValidationError) as e:
            logger.warning("Failed to load execution history from %s: %s", self.path, e)
            return []
        return entries[: self.limit]

    def _persist(self) -> None:
        if self.path is None:
            return
        data = _executions_adapter.dump_python(self._entries, mode="json", by_alias=True)
        write_atomic(self.path, json.dumps(data, indent=2))
