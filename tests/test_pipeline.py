"""Tests for the five-stage pipeline builder."""

from docpilot.models.task import TaskPriority, TaskStatus
from docpilot.services.pipeline import PIPELINE_STAGES, create_pipeline_tasks


class TestCreatePipeline:

    def test_creates_linked_chain(self, queue):
        tasks = create_pipeline_tasks(queue, 12, {"title": "Docker"})

        assert [t.type for t in tasks] == ["research", "outline", "write", "review", "refine"]
        assert [t.assigned_agent for t in tasks] == ["researcher", "writer", "writer", "reviewer", "editor"]
        assert tasks[0].depends_on == []
        for previous, task in zip(tasks, tasks[1:]):
            assert task.depends_on == [previous.id]

    def test_shared_parent_and_input(self, queue):
        tasks = create_pipeline_tasks(queue, 12, {"title": "Docker"})
        parent_ids = {t.parent_task_id for t in tasks}

        assert len(parent_ids) == 1
        parent_id = parent_ids.pop()
        assert parent_id not in {t.id for t in tasks}
        for task in tasks:
            assert task.input == {"title": "Docker", "pipelineParentId": parent_id}
            assert task.issue_number == 12
            assert task.status == TaskStatus.PENDING
            assert task.priority == TaskPriority.NORMAL

    def test_all_stages_persisted(self, queue):
        tasks = create_pipeline_tasks(queue, 3, {})
        assert [t.id for t in queue.get_tasks_by_issue(3)] == [t.id for t in tasks]

    def test_optional_slug_and_priority(self, queue):
        tasks = create_pipeline_tasks(queue, 3, {}, document_slug="guides/docker", priority=TaskPriority.HIGH)
        assert {t.document_slug for t in tasks} == {"guides/docker"}
        assert {t.priority for t in tasks} == {TaskPriority.HIGH}

    def test_stages_run_in_order(self, queue):
        create_pipeline_tasks(queue, 5, {})
        order = []
        for _ in PIPELINE_STAGES:
            task = queue.claim_next_task()
            assert queue.claim_next_task() is None  # next stage is gated
            order.append(task.type)
            queue.update_task(task.id, {"status": "completed"})
        assert order == ["research", "outline", "write", "review", "refine"]

    def test_input_not_mutated(self, queue):
        original = {"title": "Docker"}
        create_pipeline_tasks(queue, 1, original)
        assert original == {"title": "Docker"}
