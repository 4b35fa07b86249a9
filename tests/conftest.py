"""Shared test fixtures for the docpilot test suite.

Every test gets its own queue file, history file and scripts directory under
``tmp_path``. Registered scripts are small ``sh`` scripts run for real, so
the process runner, dispatcher and webhook router are exercised end to end
without node.
"""

import os
import tempfile

# Keep the app's own services away from the working directory and stop the
# scheduler from starting during API tests. Must run before app imports.
_APP_DATA_DIR = tempfile.mkdtemp(prefix="docpilot-test-")
os.environ["TASK_QUEUE_PATH"] = os.path.join(_APP_DATA_DIR, "task-queue.json")
os.environ["HISTORY_PATH"] = os.path.join(_APP_DATA_DIR, "history.json")
os.environ["SCRIPTS_ROOT"] = _APP_DATA_DIR
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["GITHUB_WEBHOOK_SECRET"] = ""
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_FORMAT"] = "text"

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from docpilot.container import Services, build_services, get_services
from docpilot.core.config import Settings
from docpilot.main import app
from docpilot.services.job_registry import SCHEDULED_JOBS, SCRIPT_DEFINITIONS, WEBHOOK_SCRIPTS
from docpilot.services.task_queue import TaskQueue
from docpilot.services.task_store import TaskStore

# Echoes what the dispatcher and webhook router pass in.
DEFAULT_SCRIPT = 'echo "ran $(basename "$0") issue=${ISSUE_NUMBER:-} tag=${RELEASE_TAG:-} dry=${DRY_RUN:-false}"\n'


def write_script(root: Path, relative: str, body: str = DEFAULT_SCRIPT) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)
    return path


@pytest.fixture()
def queue(tmp_path) -> TaskQueue:
    return TaskQueue(TaskStore(tmp_path / "task-queue.json"))


@pytest.fixture()
def scripts_root(tmp_path) -> Path:
    """A scripts directory containing every registered script."""
    root = tmp_path / "repo"
    for spec in SCRIPT_DEFINITIONS + SCHEDULED_JOBS + WEBHOOK_SCRIPTS:
        write_script(root, spec.script)
    return root


@pytest.fixture()
def test_settings(tmp_path, scripts_root) -> Settings:
    return Settings(
        task_queue_path=str(tmp_path / "task-queue.json"),
        history_path=str(tmp_path / "history.json"),
        scripts_root=str(scripts_root),
        script_interpreter="sh",
        script_timeout_seconds=10,
        job_timeout_seconds=10,
        kill_grace_seconds=1,
        scheduler_enabled=False,
        scheduler_tick_seconds=1,
    )


@pytest.fixture()
def services(test_settings) -> Services:
    return build_services(test_settings)


@pytest.fixture()
def client(services):
    """FastAPI TestClient with the services dependency pointed at tmp_path."""
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_task_payload(type: str = "research", **overrides) -> dict:
    """Factory for task creation payloads."""
    payload = {
        "type": type,
        "priority": "normal",
        "issueNumber": 42,
        "input": {"title": "Deploying with Docker"},
    }
    payload.update(overrides)
    return payload
