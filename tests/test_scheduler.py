"""Tests for the interval job scheduler."""

import asyncio

from docpilot.services.job_registry import JobRegistry, JobSpec
from docpilot.services.scheduler import JobScheduler
from tests.conftest import write_script


class TestDueJobs:

    def _scheduler(self, services):
        return JobScheduler(services.dispatcher, services.jobs, tick_seconds=0.05)

    def test_nothing_due_right_after_start(self, services):
        scheduler = self._scheduler(services)

        async def go():
            scheduler.start()
            try:
                return scheduler.due_jobs()
            finally:
                await scheduler.stop()

        assert asyncio.run(go()) == []

    def test_interval_elapsed(self, services):
        scheduler = self._scheduler(services)
        scheduler._last_triggered = {spec.name: 0.0 for spec in services.jobs.scheduled()}
        assert scheduler.due_jobs(now=5 * 60) == ["collect-status"]
        assert set(scheduler.due_jobs(now=7 * 24 * 3600)) == {spec.name for spec in services.jobs.scheduled()}

    def test_tick_dispatches_and_records(self, services):
        scheduler = self._scheduler(services)
        scheduler._last_triggered = {spec.name: 0.0 for spec in services.jobs.scheduled()}

        async def go():
            triggered = scheduler.tick(now=5 * 60)
            await asyncio.gather(*list(scheduler._job_tasks))
            return triggered

        assert asyncio.run(go()) == ["collect-status"]
        entry = services.history.get_last_run("collect-status")
        assert entry.trigger == "scheduled"
        assert scheduler.due_jobs(now=5 * 60 + 1) == []

    def test_running_job_is_skipped(self, services, scripts_root):
        write_script(scripts_root, "scripts/collectors/index.js", "sleep 1\n")
        scheduler = self._scheduler(services)
        scheduler._last_triggered = {"collect-status": 0.0}

        async def go():
            manual = asyncio.create_task(services.dispatcher.run_job("collect-status"))
            await asyncio.sleep(0.2)
            scheduler.tick(now=5 * 60)
            await asyncio.gather(*list(scheduler._job_tasks))
            await manual

        asyncio.run(go())
        assert len(services.history.get_history(job_name="collect-status")) == 1


class TestLoop:

    def test_loop_runs_due_jobs(self, services, scripts_root):
        write_script(scripts_root, "fast.sh")
        registry = JobRegistry(
            [JobSpec("fast", "fast.sh", interval_seconds=0.1)], str(scripts_root), "sh"
        )
        services.dispatcher.jobs = registry
        scheduler = JobScheduler(services.dispatcher, registry, tick_seconds=0.05)

        async def go():
            scheduler.start()
            await asyncio.sleep(0.6)
            await scheduler.stop()
            await asyncio.gather(*list(scheduler._job_tasks))

        asyncio.run(go())
        assert services.history.get_last_run("fast") is not None

    def test_status(self, services):
        scheduler = JobScheduler(services.dispatcher, services.jobs)
        status = scheduler.status()
        assert status["running"] is False
        assert status["startedAt"] is None
        names = [job["name"] for job in status["jobs"]]
        assert "collect-status" in names
        assert all(job["available"] for job in status["jobs"])
        assert all(job["lastRun"] is None for job in status["jobs"])

    def test_stop_without_start(self, services):
        scheduler = JobScheduler(services.dispatcher, services.jobs)
        asyncio.run(scheduler.stop())
        assert scheduler.is_running is False
