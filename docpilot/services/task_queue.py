"""Service for the dependency-aware pipeline task queue."""

import logging
import threading
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..exceptions import CircularDependencyError, SelfDependencyError, ValidationError
from ..models.task import (
    DEFAULT_MAX_RETRIES,
    QueueStats,
    Task,
    TaskPriority,
    TaskQueueDocument,
    TaskStatus,
    utcnow,
)
from .task_store import TaskStore

logger = logging.getLogger(__name__)

DEFAULT_STALE_TIMEOUT_MINUTES = 15


def find_cycle(tasks: Iterable[Task]) -> Optional[List[str]]:
    """
    Return the ids along a dependency cycle, or None if the graph is acyclic.

    Dependencies on ids outside *tasks* are ignored: they starve the
    dependent task but cannot close a loop.
    """
    graph = {t.id: [d for d in t.depends_on] for t in tasks}
    visiting: set[str] = set()
    done: set[str] = set()
    path: List[str] = []

    def visit(task_id: str) -> Optional[List[str]]:
        visiting.add(task_id)
        path.append(task_id)
        for dep_id in graph.get(task_id, ()):
            if dep_id not in graph or dep_id in done:
                continue
            if dep_id in visiting:
                return path[path.index(dep_id):] + [dep_id]
            cycle = visit(dep_id)
            if cycle:
                return cycle
        visiting.discard(task_id)
        done.add(task_id)
        path.pop()
        return None

    for task_id in graph:
        if task_id not in done:
            cycle = visit(task_id)
            if cycle:
                return cycle
    return None


class TaskQueue:
    """
    Persistent task queue with dependency-gated, priority-ordered polling.

    Every mutating call is a full load -> mutate -> save cycle against the
    store. Cycles are serialised by a lock owned by the queue, so concurrent
    callers in this process never lose each other's writes. Separate
    processes sharing the same file are still last-save-wins.

    Precondition violations (unknown id, retrying a task that is not failed,
    exhausted retry budget) are logged and return None rather than raising.
    """

    def __init__(self, store: TaskStore):
        self.store = store
        self._lock = threading.RLock()

    # ----- persistence ----------------------------------------------------

    def load(self) -> TaskQueueDocument:
        return self.store.load()

    def save(self, document: TaskQueueDocument) -> None:
        with self._lock:
            self.store.save(document)

    # ----- mutations ------------------------------------------------------

    def create_task(
        self,
        type: str,
        *,
        priority: TaskPriority = TaskPriority.NORMAL,
        issue_number: Optional[int] = None,
        document_slug: Optional[str] = None,
        parent_task_id: Optional[str] = None,
        depends_on: Optional[List[str]] = None,
        input: Optional[Dict[str, Any]] = None,
        assigned_agent: Optional[str] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> Task:
        """Append a new pending task and return it."""
        task = Task(
            type=type,
            priority=priority,
            issue_number=issue_number,
            document_slug=document_slug,
            parent_task_id=parent_task_id,
            depends_on=list(depends_on or []),
            input=dict(input or {}),
            assigned_agent=assigned_agent,
            max_retries=max_retries,
        )
        self.add_tasks([task])
        logger.info(
            "Created task [%s] %s", task.type, task.id[:8],
            extra={"task_id": task.id, "issue_number": task.issue_number},
        )
        return task

    def add_tasks(self, tasks: List[Task]) -> List[Task]:
        """
        Append already-built tasks in a single save.

        Raises:
            SelfDependencyError: If a task lists its own id in depends_on.
            CircularDependencyError: If the resulting graph contains a cycle.
        """
        with self._lock:
            document = self.store.load()
            for task in tasks:
                if task.id in task.depends_on:
                    raise SelfDependencyError(task.id)
            cycle = find_cycle(document.tasks + tasks)
            if cycle:
                raise CircularDependencyError(cycle[0], cycle[1:])
            document.tasks.extend(tasks)
            self.store.save(document)
        return tasks

    def update_task(self, task_id: str, patch: Mapping[str, Any]) -> Optional[Task]:
        """
        Merge *patch* into the task and save.

        Setting ``status`` to ``completed`` also stamps ``completedAt``.

        Returns:
            The updated task, or None if no task has this id.

        Raises:
            ValidationError: If the patch names an unknown field or an invalid value.
            CircularDependencyError: If a ``dependsOn`` patch would close a cycle.
        """
        with self._lock:
            document = self.store.load()
            index = _index_of(document.tasks, task_id)
            if index is None:
                logger.warning("Task not found: %s", task_id)
                return None

            current = document.tasks[index]
            try:
                updated = current.with_patch(patch)
            except ValueError as e:
                raise ValidationError(f"Invalid task update: {e}") from e

            if updated.id != task_id:
                raise ValidationError("Task id cannot be changed", field="id")
            if task_id in updated.depends_on:
                raise SelfDependencyError(task_id)

            # completedAt is stamped once, on the transition into completed.
            if updated.status == TaskStatus.COMPLETED and current.status != TaskStatus.COMPLETED:
                updated.completed_at = utcnow()

            document.tasks[index] = updated
            if _has_key(patch, "depends_on") and find_cycle(document.tasks):
                raise CircularDependencyError(task_id, updated.depends_on)

            self.store.save(document)
            return updated

    def claim_next_task(self, agent_role: Optional[str] = None) -> Optional[Task]:
        """
        Select the next eligible task and mark it in_progress atomically.

        Unlike calling :meth:`get_next_task` followed by :meth:`update_task`,
        two callers can never claim the same task.
        """
        with self._lock:
            document = self.store.load()
            task = _select_next(document.tasks, agent_role)
            if task is None:
                return None
            task.status = TaskStatus.IN_PROGRESS
            self.store.save(document)

        logger.info(
            "Claimed task [%s] %s", task.type, task.id[:8],
            extra={"task_id": task.id, "agent_role": agent_role},
        )
        return task

    def retry_task(self, task_id: str) -> Optional[Task]:
        """
        Return a failed task to pending if it still has retry budget.

        Returns None (and changes nothing) for an unknown id, a task that is
        not failed, or a task whose retry_count has reached max_retries.
        """
        with self._lock:
            document = self.store.load()
            index = _index_of(document.tasks, task_id)
            if index is None:
                logger.warning("Task not found: %s", task_id)
                return None

            task = document.tasks[index]
            if task.status != TaskStatus.FAILED:
                logger.warning(
                    "Cannot retry task %s: status is %s, not failed", task_id, task.status.value
                )
                return None
            if task.retry_count >= task.max_retries:
                logger.warning(
                    "Retry budget exhausted for task %s: %d/%d",
                    task_id, task.retry_count, task.max_retries,
                )
                return None

            task.status = TaskStatus.PENDING
            task.retry_count += 1
            task.error = None
            task.completed_at = None
            self.store.save(document)

        logger.info(
            "Retrying task [%s] %s (%d/%d)",
            task.type, task_id[:8], task.retry_count, task.max_retries,
        )
        return task

    def cleanup_stale_tasks(self, timeout_minutes: int = DEFAULT_STALE_TIMEOUT_MINUTES) -> int:
        """
        Fail every in_progress task created more than *timeout_minutes* ago.

        There is no heartbeat: age is measured from ``createdAt``, so a
        long-running but healthy task past the threshold is failed as well.

        Returns:
            Number of tasks transitioned to failed.
        """
        with self._lock:
            document = self.store.load()
            now = utcnow()
            cutoff = now - timedelta(minutes=timeout_minutes)
            cleaned = 0

            for task in document.tasks:
                if task.status == TaskStatus.IN_PROGRESS and task.created_at < cutoff:
                    task.status = TaskStatus.FAILED
                    task.error = f"Timed out (exceeded {timeout_minutes} minutes)"
                    task.completed_at = now
                    cleaned += 1

            if cleaned > 0:
                self.store.save(document)

        if cleaned > 0:
            logger.info("Cleaned up %d stale task(s)", cleaned)
        return cleaned

    # ----- queries --------------------------------------------------------

    def get_next_task(self, agent_role: Optional[str] = None) -> Optional[Task]:
        """
        Return the highest-priority pending task whose dependencies are all
        completed, without claiming it.

        Ties keep store order. When *agent_role* is given, only tasks
        assigned to that role are considered.
        """
        return _select_next(self.store.load().tasks, agent_role)

    def get_task(self, task_id: str) -> Optional[Task]:
        for task in self.store.load().tasks:
            if task.id == task_id:
                return task
        return None

    def list_tasks(self, status: Optional[TaskStatus] = None) -> List[Task]:
        tasks = self.store.load().tasks
        if status is None:
            return tasks
        return [t for t in tasks if t.status == status]

    def get_tasks_by_issue(self, issue_number: int) -> List[Task]:
        return [t for t in self.store.load().tasks if t.issue_number == issue_number]

    def get_queue_stats(self) -> QueueStats:
        tasks = self.store.load().tasks
        counts = {status.value: 0 for status in TaskStatus}
        for task in tasks:
            counts[task.status.value] += 1
        return QueueStats(total=len(tasks), **counts)


def _select_next(tasks: List[Task], agent_role: Optional[str]) -> Optional[Task]:
    completed_ids = {t.id for t in tasks if t.status == TaskStatus.COMPLETED}
    available = [
        t for t in tasks
        if t.status == TaskStatus.PENDING
        and (not agent_role or t.assigned_agent == agent_role)
        and t.is_ready(completed_ids)
    ]
    # sorted() is stable, so equal priorities keep insertion order.
    available = sorted(available, key=lambda t: t.priority_rank)
    return available[0] if available else None


def _index_of(tasks: List[Task], task_id: str) -> Optional[int]:
    for i, task in enumerate(tasks):
        if task.id == task_id:
            return i
    return None


def _has_key(patch: Mapping[str, Any], field_name: str) -> bool:
    alias = Task.model_fields[field_name].alias
    return field_name in patch or (alias is not None and alias in patch)
