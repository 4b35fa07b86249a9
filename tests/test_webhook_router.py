"""Tests for routing GitHub issue events to issue scripts."""

import asyncio

import pytest

from tests.conftest import write_script


def issue_payload(action, number=7, labels=(), label=None):
    payload = {
        "action": action,
        "issue": {"number": number, "labels": [{"name": name} for name in labels]},
    }
    if label is not None:
        payload["label"] = {"name": label}
    return payload


def comment_payload(association, action="created", number=7):
    return {
        "action": action,
        "issue": {"number": number, "labels": []},
        "comment": {"body": "please fix", "user": {"login": "octocat"}, "author_association": association},
    }


@pytest.fixture()
def router(services):
    return services.webhook_router


def handle(router, event, payload):
    return asyncio.run(router.handle(event, payload))


class TestPing:

    def test_pong(self, router):
        result = handle(router, "ping", {"zen": "Keep it logically awesome.", "hook_id": 1})
        assert result.success is True
        assert result.message == "Pong!"
        assert result.data == {"zen": "Keep it logically awesome.", "hookId": 1}


class TestIssueEvents:

    def test_request_label_generates_document(self, router):
        result = handle(router, "issues", issue_payload("labeled", label="request"))
        assert result.success is True
        assert result.message == "Script completed: generate-document"
        assert result.data["issueNumber"] == 7
        assert "ran generate-document.js issue=7" in result.data["output"]

    def test_invalid_label_marks_invalid(self, router):
        result = handle(router, "issues", issue_payload("labeled", label="invalid"))
        assert result.message == "Script completed: mark-invalid"

    def test_other_label_ignored(self, router):
        result = handle(router, "issues", issue_payload("labeled", label="question"))
        assert result.success is True
        assert result.data == {}

    def test_missing_label_ignored(self, router):
        result = handle(router, "issues", issue_payload("labeled"))
        assert result.success is True
        assert result.data == {}

    def test_closed_with_draft_publishes(self, router):
        result = handle(router, "issues", issue_payload("closed", labels=["draft"]))
        assert result.message == "Script completed: publish-document"

    def test_closed_without_draft_skipped(self, router):
        result = handle(router, "issues", issue_payload("closed", labels=["published"]))
        assert result.success is True
        assert result.data == {}

    def test_reopened_with_published_unpublishes(self, router):
        result = handle(router, "issues", issue_payload("reopened", labels=["published"]))
        assert result.message == "Script completed: unpublish-document"

    def test_reopened_without_published_skipped(self, router):
        result = handle(router, "issues", issue_payload("reopened", labels=["draft"]))
        assert result.data == {}

    def test_other_action_ignored(self, router):
        result = handle(router, "issues", issue_payload("edited"))
        assert result.success is True
        assert result.data == {}

    def test_missing_issue_number_runs_nothing(self, router, scripts_root, tmp_path):
        marker = tmp_path / "ran"
        write_script(scripts_root, "scripts/issue/generate-document.js", f'touch "{marker}"\n')
        payload = {"action": "labeled", "issue": {"labels": []}, "label": {"name": "request"}}

        result = handle(router, "issues", payload)

        assert result.success is True
        assert result.message == "No issue number in payload"
        assert result.data == {}
        assert not marker.exists()

    def test_output_truncated(self, router, scripts_root):
        write_script(scripts_root, "scripts/issue/generate-document.js", 'printf "%01000d" 0\n')
        result = handle(router, "issues", issue_payload("labeled", label="request"))
        assert len(result.data["output"]) == 500

    def test_script_failure(self, router, scripts_root):
        write_script(scripts_root, "scripts/issue/publish-document.js", "echo no draft >&2; exit 1\n")
        result = handle(router, "issues", issue_payload("closed", labels=["draft"]))
        assert result.success is False
        assert result.message == "Script failed: publish-document"
        assert result.data["error"] == "no draft\n"


class TestCommentEvents:

    @pytest.mark.parametrize("association", ["OWNER", "MEMBER", "COLLABORATOR"])
    def test_maintainer_feedback_processed(self, router, association):
        result = handle(router, "issue_comment", comment_payload(association))
        assert result.message == "Script completed: process-feedback"

    def test_non_maintainer_skipped(self, router):
        result = handle(router, "issue_comment", comment_payload("CONTRIBUTOR"))
        assert result.success is True
        assert result.data == {}

    def test_edited_comment_skipped(self, router):
        result = handle(router, "issue_comment", comment_payload("OWNER", action="edited"))
        assert result.data == {}


class TestUnsupported:

    def test_push_acknowledged(self, router):
        result = handle(router, "push", {"ref": "refs/heads/main"})
        assert result.success is True
        assert result.message == "Event ignored: push"
