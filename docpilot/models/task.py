"""Task model for the document generation pipeline queue.

Tasks are stored as camelCase JSON (``dependsOn``, ``createdAt`` ...) and
exposed to Python code as snake_case attributes.

Status transitions:
    pending -> in_progress -> completed | failed
    failed -> pending (retry, while retry_count < max_retries)
    any -> cancelled
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_MAX_RETRIES = 2


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskType(str, Enum):
    """Built-in pipeline stages. Task.type also accepts any other non-empty string."""
    RESEARCH = "research"
    OUTLINE = "outline"
    WRITE = "write"
    REVIEW = "review"
    REFINE = "refine"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


# Lower rank sorts first.
PRIORITY_RANK = {
    TaskPriority.CRITICAL: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.NORMAL: 2,
    TaskPriority.LOW: 3,
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Task(_CamelModel):
    """A single unit of pipeline work."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: str
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.NORMAL

    # Correlation with the originating request
    issue_number: Optional[int] = None
    document_slug: Optional[str] = None

    # Pipeline chain this task belongs to (grouping only, not used for scheduling)
    parent_task_id: Optional[str] = None
    depends_on: List[str] = Field(default_factory=list)

    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Any] = None
    assigned_agent: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    retry_count: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Task type must not be empty")
        return v

    @field_validator("created_at", "completed_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Timestamps written without an offset are treated as UTC.
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def priority_rank(self) -> int:
        return PRIORITY_RANK.get(self.priority, PRIORITY_RANK[TaskPriority.NORMAL])

    def is_ready(self, completed_ids: set[str]) -> bool:
        """True if every dependency is in *completed_ids*."""
        return all(dep_id in completed_ids for dep_id in self.depends_on)

    def with_patch(self, patch: Mapping[str, Any]) -> "Task":
        """Return a copy with *patch* merged in and re-validated.

        Keys may be camelCase aliases or snake_case field names.

        Raises:
            ValueError: If a key does not name a task field.
        """
        data = self.model_dump()
        for key, value in patch.items():
            name = _FIELD_BY_ALIAS.get(key, key)
            if name not in Task.model_fields:
                raise ValueError(f"Unknown task field: {key}")
            data[name] = value
        return Task.model_validate(data)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


_FIELD_BY_ALIAS = {field.alias: name for name, field in Task.model_fields.items() if field.alias}


class TaskQueueDocument(_CamelModel):
    """On-disk representation: ``{"tasks": [...], "lastUpdated": "..."}``."""

    tasks: List[Task] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=utcnow)


class QueueStats(_CamelModel):
    """Per-status task counts. The status counts always sum to ``total``."""

    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
