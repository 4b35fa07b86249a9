"""Pydantic schemas for API validation."""

from .task import (
    TaskCreate,
    PipelineCreate,
    TaskListResponse,
    PipelineResponse,
    CleanupResponse,
)
from .script import (
    ScriptRunRequest,
    JobRunRequest,
    ScriptInfo,
    ScriptListResponse,
    DispatchResponse,
    HistoryResponse,
)
from .webhook import WebhookReceipt, WebhookInfo

__all__ = [
    "TaskCreate",
    "PipelineCreate",
    "TaskListResponse",
    "PipelineResponse",
    "CleanupResponse",
    "ScriptRunRequest",
    "JobRunRequest",
    "ScriptInfo",
    "ScriptListResponse",
    "DispatchResponse",
    "HistoryResponse",
    "WebhookReceipt",
    "WebhookInfo",
]
