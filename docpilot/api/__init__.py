"""API routes."""

from .scripts import router as scripts_router
from .scheduler import router as scheduler_router
from .tasks import router as tasks_router
from .webhooks import router as webhooks_router

__all__ = [
    "scripts_router",
    "scheduler_router",
    "tasks_router",
    "webhooks_router",
]
