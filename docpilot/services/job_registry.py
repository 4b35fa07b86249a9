"""Registered jobs and scripts, resolved once at startup.

Every name the dispatcher or webhook router can run is declared here, so the
set of runnable commands is visible in one place instead of being built from
request strings.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobSpec:
    """
    A runnable external script.

    Attributes:
        name: Unique job name used in URLs and history.
        script: Script path relative to the scripts root.
        description: Human-readable summary for the admin UI.
        required_env: Caller-supplied env vars this job needs. These are also
            the only caller vars that are passed through.
        interval_seconds: Run periodically from the scheduler when set.
        timeout_seconds: Per-job timeout override.
    """
    name: str
    script: str
    description: str = ""
    required_env: Tuple[str, ...] = ()
    interval_seconds: Optional[float] = None
    timeout_seconds: Optional[float] = None


# Admin-triggered scripts (POST /api/admin/scripts/{name}).
SCRIPT_DEFINITIONS: Tuple[JobSpec, ...] = (
    JobSpec("answer-question", "scripts/document/answer-question.js",
            "Answer a question asked in an issue", ("ISSUE_NUMBER",)),
    JobSpec("update-document", "scripts/document/update-document.js",
            "Apply a document change request", ("ISSUE_NUMBER",)),
    JobSpec("recommend-documents", "scripts/document/recommend-documents.js",
            "Recommend related documents", ("ISSUE_NUMBER",)),
    JobSpec("generate-document", "scripts/document/generate-document.js",
            "Generate a document from a request issue", ("ISSUE_NUMBER",)),
    JobSpec("generate-release-doc", "scripts/document/generate-release-doc.js",
            "Generate release notes for a tag", ("RELEASE_TAG",)),
)

# Scheduled jobs (also runnable via POST /api/scheduler/jobs/{name}).
_HOUR = 60 * 60
SCHEDULED_JOBS: Tuple[JobSpec, ...] = (
    JobSpec("collect-status", "scripts/collectors/index.js",
            "Collect build and workflow status", interval_seconds=5 * 60),
    JobSpec("validate-links", "scripts/maintenance/validate-links.js",
            "Check internal and external links", interval_seconds=24 * _HOUR),
    JobSpec("maintain-tree", "scripts/maintenance/maintain-wiki-tree.js",
            "Analyse and maintain the wiki tree", interval_seconds=7 * 24 * _HOUR),
    JobSpec("generate-summaries", "scripts/maintenance/generate-summaries.js",
            "Generate document summaries", interval_seconds=7 * 24 * _HOUR),
    JobSpec("analyze-coverage", "scripts/maintenance/analyze-coverage.js",
            "Analyse documentation coverage gaps", interval_seconds=7 * 24 * _HOUR),
    JobSpec("generate-status-report", "scripts/maintenance/generate-status-report.js",
            "Write the weekly status report", interval_seconds=7 * 24 * _HOUR),
)

# Issue-event scripts run by the webhook router.
WEBHOOK_SCRIPTS: Tuple[JobSpec, ...] = (
    JobSpec("generate-document", "scripts/issue/generate-document.js",
            "Generate a document for a 'request' issue"),
    JobSpec("mark-invalid", "scripts/issue/mark-invalid.js",
            "Review and fix a document reported as invalid"),
    JobSpec("publish-document", "scripts/issue/publish-document.js",
            "Publish the draft document of a closed issue"),
    JobSpec("unpublish-document", "scripts/issue/unpublish-document.js",
            "Unpublish the document of a reopened issue"),
    JobSpec("process-feedback", "scripts/issue/process-feedback.js",
            "Apply maintainer feedback from an issue comment"),
)


class JobRegistry:
    """Name -> :class:`JobSpec` lookup with script path resolution."""

    def __init__(self, specs: Iterable[JobSpec], scripts_root: str = ".", interpreter: str = "node"):
        self.scripts_root = Path(scripts_root)
        self.interpreter = interpreter
        self._specs: Dict[str, JobSpec] = {}
        for spec in specs:
            if spec.name in self._specs:
                raise ValueError(f"Duplicate job name: {spec.name}")
            self._specs[spec.name] = spec

    def get(self, name: str) -> Optional[JobSpec]:
        return self._specs.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._specs

    def all(self) -> List[JobSpec]:
        return list(self._specs.values())

    def scheduled(self) -> List[JobSpec]:
        return [s for s in self._specs.values() if s.interval_seconds]

    def script_path(self, spec: JobSpec) -> Path:
        return self.scripts_root / spec.script

    def is_available(self, spec: JobSpec) -> bool:
        return self.script_path(spec).is_file()

    def command_for(self, spec: JobSpec) -> Tuple[str, List[str]]:
        """Return ``(executable, args)`` for running *spec*."""
        return self.interpreter, [str(self.script_path(spec))]
