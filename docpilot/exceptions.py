"""Custom exception hierarchy for docpilot.

Rejections raised here always happen before any process is spawned, so a
caller can tell "never ran" apart from "ran and failed" (the latter is a
``ProcessResult`` with ``success=False``, never an exception).
"""

from enum import Enum
from typing import Optional, Dict, Any, Iterable


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Task errors
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    SELF_DEPENDENCY = "SELF_DEPENDENCY"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Job / script errors
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    SCRIPT_UNAVAILABLE = "SCRIPT_UNAVAILABLE"
    INVALID_ENV = "INVALID_ENV"
    ALREADY_RUNNING = "ALREADY_RUNNING"
    RATE_LIMITED = "RATE_LIMITED"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Webhook errors
    WEBHOOK_VALIDATION_FAILED = "WEBHOOK_VALIDATION_FAILED"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DocpilotException(Exception):
    """
    Base exception for all docpilot errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for JSON response.

        Returns:
            Dictionary with error, message, and details fields
        """
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class TaskNotFoundError(DocpilotException):
    """Task not found in the queue."""

    def __init__(self, task_id: str):
        super().__init__(
            f"Task not found: {task_id}",
            ErrorCode.TASK_NOT_FOUND,
            status_code=404,
            details={"task_id": task_id}
        )


class CircularDependencyError(DocpilotException):
    """Applying these dependencies would create a cycle in the task graph."""

    def __init__(self, task_id: str, depends_on: Iterable[str]):
        depends_on = list(depends_on)
        super().__init__(
            f"Would create circular dependency: {task_id} -> {depends_on}",
            ErrorCode.CIRCULAR_DEPENDENCY,
            status_code=400,
            details={"task_id": task_id, "depends_on": depends_on}
        )


class SelfDependencyError(DocpilotException):
    """A task cannot depend on itself."""

    def __init__(self, task_id: str):
        super().__init__(
            f"Task cannot depend on itself: {task_id}",
            ErrorCode.SELF_DEPENDENCY,
            status_code=400,
            details={"task_id": task_id}
        )


class InvalidTransitionError(DocpilotException):
    """A task operation was refused because of the task's current state."""

    def __init__(self, task_id: str, message: str):
        super().__init__(
            message,
            ErrorCode.INVALID_TRANSITION,
            status_code=409,
            details={"task_id": task_id}
        )


class JobNotFoundError(DocpilotException):
    """No job or script is registered under this name."""

    def __init__(self, name: str):
        super().__init__(
            f"Job not found: {name}",
            ErrorCode.JOB_NOT_FOUND,
            status_code=404,
            details={"name": name}
        )


class ScriptUnavailableError(DocpilotException):
    """The job is registered but its script file does not exist."""

    def __init__(self, name: str, path: str):
        super().__init__(
            f"Script file does not exist: {path}",
            ErrorCode.SCRIPT_UNAVAILABLE,
            status_code=404,
            details={"name": name, "path": path}
        )


class InvalidJobEnvError(DocpilotException):
    """Required environment variables are missing or failed validation."""

    def __init__(self, name: str, missing: list[str]):
        super().__init__(
            f"Missing or invalid required environment variables: {', '.join(missing)}",
            ErrorCode.INVALID_ENV,
            status_code=400,
            details={"name": name, "missing": missing}
        )


class JobAlreadyRunningError(DocpilotException):
    """A second invocation of a job that is still running."""

    def __init__(self, name: str):
        super().__init__(
            f"Job '{name}' is already running",
            ErrorCode.ALREADY_RUNNING,
            status_code=409,
            details={"name": name}
        )


class ConcurrencyLimitError(DocpilotException):
    """The global ceiling on simultaneous executions has been reached."""

    def __init__(self, limit: int):
        super().__init__(
            f"Concurrency limit reached (max {limit} running)",
            ErrorCode.RATE_LIMITED,
            status_code=429,
            details={"limit": limit}
        )


class ValidationError(DocpilotException):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class WebhookValidationError(DocpilotException):
    """Webhook signature or header validation failed."""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(
            message,
            ErrorCode.WEBHOOK_VALIDATION_FAILED,
            status_code=401,
        )
