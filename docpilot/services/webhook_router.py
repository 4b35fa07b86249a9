"""
Routes GitHub issue events to the issue scripts.

Each routed event runs exactly one script with ``ISSUE_NUMBER`` set. Events
that need no action are acknowledged with ``success=True`` and a message
saying why they were skipped.

Routing:
    ping                         -> Pong
    issues/labeled   "request"   -> generate-document
    issues/labeled   "invalid"   -> mark-invalid
    issues/closed    with draft  -> publish-document
    issues/reopened  with published -> unpublish-document
    issue_comment/created by a maintainer -> process-feedback
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Mapping, Optional

from .job_registry import JobRegistry
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)

SUPPORTED_EVENTS = ("ping", "issues", "issue_comment")
MAINTAINER_ASSOCIATIONS = frozenset({"OWNER", "MEMBER", "COLLABORATOR"})
OUTPUT_PREVIEW_CHARS = 500

_SCRIPT_NAME_PATTERN = re.compile(r'^[\w-]+$')


@dataclass
class HandlerResult:
    success: bool
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _sanitize(value: Any) -> str:
    """Strip control characters so payload values cannot forge log lines."""
    return re.sub(r'[\x00-\x1f\x7f]', '', str(value))


def _label_names(issue: Mapping[str, Any]) -> set[str]:
    return {label.get("name") for label in issue.get("labels") or [] if isinstance(label, Mapping)}


class WebhookRouter:
    """Maps (event, action, payload) to at most one issue script run."""

    def __init__(self, runner: ProcessRunner, registry: JobRegistry, timeout: Optional[float] = None):
        self.runner = runner
        self.registry = registry
        self.timeout = timeout

    async def handle(self, event: str, payload: Mapping[str, Any]) -> HandlerResult:
        if event == "ping":
            return self._handle_ping(payload)
        if event == "issues":
            return await self._handle_issue(payload)
        if event == "issue_comment":
            return await self._handle_comment(payload)

        logger.info("Unsupported webhook event: %s", _sanitize(event))
        return HandlerResult(success=True, message=f"Event ignored: {event}")

    def _handle_ping(self, payload: Mapping[str, Any]) -> HandlerResult:
        zen = payload.get("zen")
        logger.info("Webhook ping received: %s", _sanitize(zen))
        return HandlerResult(
            success=True,
            message="Pong!",
            data={"zen": zen, "hookId": payload.get("hook_id")},
        )

    async def _handle_issue(self, payload: Mapping[str, Any]) -> HandlerResult:
        action = payload.get("action")
        issue = payload.get("issue") or {}
        label = payload.get("label")
        issue_number = issue.get("number")

        logger.info(
            "Issue event: #%s %s%s", issue_number, _sanitize(action),
            f" ({_sanitize(label.get('name'))})" if isinstance(label, Mapping) else "",
        )

        if action == "labeled":
            if not isinstance(label, Mapping) or not label.get("name"):
                return HandlerResult(success=True, message="No label in payload")
            if label["name"] == "request":
                return await self._run_issue_script("generate-document", issue_number)
            if label["name"] == "invalid":
                return await self._run_issue_script("mark-invalid", issue_number)
            return HandlerResult(success=True, message=f"Label ignored: {label['name']}")

        if action == "closed":
            if "draft" not in _label_names(issue):
                return HandlerResult(success=True, message="No draft label, skipping publish")
            return await self._run_issue_script("publish-document", issue_number)

        if action == "reopened":
            if "published" not in _label_names(issue):
                return HandlerResult(success=True, message="No published label, skipping unpublish")
            return await self._run_issue_script("unpublish-document", issue_number)

        return HandlerResult(success=True, message=f"Issue action ignored: {action}")

    async def _handle_comment(self, payload: Mapping[str, Any]) -> HandlerResult:
        action = payload.get("action")
        issue = payload.get("issue") or {}
        comment = payload.get("comment") or {}
        login = (comment.get("user") or {}).get("login")

        logger.info("Comment event: #%s by %s", issue.get("number"), _sanitize(login))

        if action != "created":
            return HandlerResult(success=True, message=f"Comment action ignored: {action}")
        if comment.get("author_association") not in MAINTAINER_ASSOCIATIONS:
            return HandlerResult(success=True, message="Comment is not from a maintainer, skipping")

        return await self._run_issue_script("process-feedback", issue.get("number"))

    async def _run_issue_script(self, script_name: str, issue_number: Any) -> HandlerResult:
        if not _SCRIPT_NAME_PATTERN.match(script_name):
            return HandlerResult(success=False, message=f"Invalid script name: {script_name}")

        spec = self.registry.get(script_name)
        if spec is None:
            return HandlerResult(success=False, message=f"Unknown issue script: {script_name}")
        if issue_number is None:
            logger.warning("No issue number in payload, not running %s", script_name)
            return HandlerResult(success=True, message="No issue number in payload")

        logger.info("Running issue script %s for #%s", script_name, issue_number)
        command, args = self.registry.command_for(spec)
        result = await self.runner.run(
            command, args,
            env={"ISSUE_NUMBER": str(issue_number)},
            timeout=spec.timeout_seconds or self.timeout,
        )

        if result.timed_out:
            logger.warning("Issue script %s timed out", script_name)
            return HandlerResult(
                success=False,
                message=f"Script timed out: {script_name}",
                data={"issueNumber": issue_number},
            )
        if not result.success:
            logger.error("Issue script %s failed: %s", script_name, result.message)
            return HandlerResult(
                success=False,
                message=f"Script failed: {script_name}",
                data={"issueNumber": issue_number, "error": result.error},
            )

        logger.info("Issue script %s completed", script_name)
        return HandlerResult(
            success=True,
            message=f"Script completed: {script_name}",
            data={"issueNumber": issue_number, "output": (result.output or "")[:OUTPUT_PREVIEW_CHARS]},
        )
