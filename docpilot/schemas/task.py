"""Task queue schemas."""

from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from ..models.task import DEFAULT_MAX_RETRIES, Task, TaskPriority
from .common import CamelSchema


class TaskCreate(CamelSchema):
    """Schema for adding a single task to the queue."""
    type: str
    priority: TaskPriority = TaskPriority.NORMAL
    issue_number: Optional[int] = None
    document_slug: Optional[str] = None
    parent_task_id: Optional[str] = None
    depends_on: List[str] = []
    input: Dict[str, Any] = {}
    assigned_agent: Optional[str] = None
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)

    @field_validator('type')
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Task type must not be empty")
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "type": "research",
                    "priority": "high",
                    "issueNumber": 42,
                    "input": {"title": "Deploying with Docker"},
                    "assignedAgent": "researcher",
                }
            ]
        }
    }


class PipelineCreate(CamelSchema):
    """Schema for expanding one request into the five-stage pipeline."""
    issue_number: int
    input: Dict[str, Any] = {}
    document_slug: Optional[str] = None
    priority: TaskPriority = TaskPriority.NORMAL


class TaskListResponse(CamelSchema):
    tasks: List[Task]
    total: int


class PipelineResponse(CamelSchema):
    parent_task_id: str
    tasks: List[Task]


class CleanupResponse(CamelSchema):
    cleaned: int
    timeout_minutes: int
