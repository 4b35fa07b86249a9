"""Admin script and scheduled job schemas."""

from typing import Any, Dict, List, Optional

from ..models.execution import JobExecution
from .common import CamelSchema


class ScriptRunRequest(CamelSchema):
    """Body of POST /api/admin/scripts/{name}. Unknown env keys are dropped."""
    env: Dict[str, Any] = {}
    dry_run: bool = False


class JobRunRequest(CamelSchema):
    """Body of POST /api/scheduler/jobs/{name}."""
    dry_run: bool = False


class ScriptInfo(CamelSchema):
    name: str
    path: str
    description: str
    required_env: List[str]
    available: bool


class ScriptListResponse(CamelSchema):
    scripts: List[ScriptInfo]


class DispatchResponse(CamelSchema):
    """Outcome of a script or job run that was allowed to start."""
    script_name: str
    success: bool
    message: str
    output: Optional[str] = None
    error: Optional[str] = None
    duration: int


class HistoryResponse(CamelSchema):
    history: List[JobExecution]
    total_count: int
    limit: int
