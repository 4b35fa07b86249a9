"""Tests for ProcessRunner and Supervisor using real short-lived sh processes."""

import asyncio
import os
import signal
import time

from docpilot.services.process_runner import ProcessRunner, Supervisor


class RecordingSupervisor(Supervisor):
    """Supervisor that remembers which stop phases were used."""

    def __init__(self):
        self.calls = []

    def graceful_stop(self, proc, sig=signal.SIGTERM):
        self.calls.append(("graceful", sig))
        super().graceful_stop(proc, sig)

    def force_stop(self, proc):
        self.calls.append(("force", None))
        super().force_stop(proc)


def _run(runner, script, **kwargs):
    async def go():
        result = await runner.run("sh", ["-c", script], **kwargs)
        await runner.wait_for_escalations()
        return result
    return asyncio.run(go())


class TestCompletion:

    def test_success(self):
        result = _run(ProcessRunner(), "echo hello")
        assert result.success is True
        assert result.exit_code == 0
        assert result.output == "hello\n"
        assert result.error is None
        assert result.message == "Script completed successfully"
        assert result.timed_out is False

    def test_non_zero_exit(self):
        result = _run(ProcessRunner(), "echo out; echo err >&2; exit 3")
        assert result.success is False
        assert result.exit_code == 3
        assert "exit code: 3" in result.message
        assert result.output == "out\n"
        assert result.error == "err\n"

    def test_error_falls_back_to_stdout(self):
        result = _run(ProcessRunner(), "echo only-out; exit 1")
        assert result.error == "only-out\n"

    def test_spawn_error_never_raises(self):
        result = asyncio.run(ProcessRunner().run("/nonexistent/docpilot-binary"))
        assert result.success is False
        assert result.message == "Failed to start process"
        assert result.error

    def test_env_merged_with_parent(self, monkeypatch):
        monkeypatch.setenv("DOCPILOT_PARENT_VAR", "inherited")
        result = _run(ProcessRunner(), 'echo "$DOCPILOT_PARENT_VAR $ISSUE_NUMBER"', env={"ISSUE_NUMBER": "42"})
        assert result.output == "inherited 42\n"

    def test_stdin_is_closed(self):
        result = _run(ProcessRunner(), "cat; echo done", timeout=5)
        assert result.success is True
        assert result.output == "done\n"

    def test_duration_recorded(self):
        result = _run(ProcessRunner(), "sleep 0.1")
        assert result.duration_ms >= 100


class TestOutputHandling:

    def test_output_capped_per_stream(self):
        runner = ProcessRunner(max_output_bytes=10)
        result = _run(runner, 'printf "%0100d" 0; printf "%050d" 0 >&2; exit 1')
        assert result.output == "0" * 10
        assert result.error == "0" * 10

    def test_output_redacted(self):
        result = _run(ProcessRunner(), "echo GITHUB_TOKEN=secret123")
        assert result.output == "GITHUB_TOKEN=***\n"

    def test_error_redacted(self):
        result = _run(ProcessRunner(), "echo 'failed at /home/alice/repo' >&2; exit 1")
        assert result.error == "failed at /home/***/repo\n"


class TestTimeout:

    def test_timeout_sends_sigterm_and_returns_immediately(self):
        supervisor = RecordingSupervisor()
        runner = ProcessRunner(supervisor=supervisor, grace_period=5)

        start = time.monotonic()
        result = _run(runner, "echo started; sleep 10", timeout=0.5)

        assert time.monotonic() - start < 5
        assert result.success is False
        assert result.timed_out is True
        assert result.message == "Script timed out after 0.5s"
        assert result.output == "started\n"
        assert supervisor.calls == [("graceful", signal.SIGTERM)]

    def test_escalates_to_sigkill_when_sigterm_ignored(self):
        supervisor = RecordingSupervisor()
        runner = ProcessRunner(supervisor=supervisor, grace_period=0.3)

        start = time.monotonic()
        result = _run(runner, "trap '' TERM; sleep 10", timeout=0.5)

        assert time.monotonic() - start < 5
        assert result.timed_out is True
        assert supervisor.calls == [("graceful", signal.SIGTERM), ("force", None)]

    def test_escalation_does_not_change_result(self):
        runner = ProcessRunner(grace_period=0.2)

        async def go():
            result = await runner.run("sh", ["-c", "trap '' TERM; sleep 10"], timeout=0.3)
            snapshot = result.to_dict()
            await runner.wait_for_escalations()
            return result, snapshot

        result, snapshot = asyncio.run(go())
        assert result.to_dict() == snapshot

    def test_child_receives_sigterm(self, tmp_path):
        marker = tmp_path / "term.txt"
        script = 'trap \'echo got-term > "$MARKER"; exit 0\' TERM; sleep 10 & wait'
        result = _run(ProcessRunner(grace_period=2), script, env={"MARKER": str(marker)}, timeout=0.5)

        assert result.timed_out is True
        assert marker.read_text().strip() == "got-term"


def _is_alive(pid):
    """True unless *pid* is gone or only a zombie waiting to be reaped."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    try:
        with open(f"/proc/{pid}/stat") as f:
            state = f.read().rsplit(")", 1)[1].split()[0]
    except OSError:
        return True
    return state != "Z"


class TestOrphanedDescendants:
    """The leader exits but a background child keeps the output pipes open."""

    def test_background_child_stopped_after_leader_exits(self, tmp_path):
        pidfile = tmp_path / "child.pid"
        runner = ProcessRunner(grace_period=0.3)

        result = _run(runner, 'sleep 30 & echo $! > "$PIDFILE"; exit 0', env={"PIDFILE": str(pidfile)}, timeout=1)

        assert result.timed_out is True
        assert not _is_alive(int(pidfile.read_text()))

    def test_term_ignoring_child_is_killed(self, tmp_path):
        pidfile = tmp_path / "child.pid"
        supervisor = RecordingSupervisor()
        runner = ProcessRunner(supervisor=supervisor, grace_period=0.3)

        script = '(trap "" TERM; exec sleep 30) & echo $! > "$PIDFILE"; exit 0'
        result = _run(runner, script, env={"PIDFILE": str(pidfile)}, timeout=1)

        assert result.timed_out is True
        assert supervisor.calls == [("graceful", signal.SIGTERM), ("force", None)]
        assert not _is_alive(int(pidfile.read_text()))
