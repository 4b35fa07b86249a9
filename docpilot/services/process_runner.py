"""
Bounded, cancellable execution of external commands.

Used by the job dispatcher (admin scripts and scheduled jobs), the webhook
router (issue-triggered scripts) and the worker (pipeline stages).

Contract of :meth:`ProcessRunner.run`:
  - the child inherits the parent environment plus caller overrides, with
    stdin closed;
  - stdout and stderr are captured separately, each capped at
    ``max_output_bytes`` (excess bytes are read and dropped);
  - on timeout the whole process group receives SIGTERM and the call returns
    a timed-out result right away; SIGKILL follows after the grace period if
    the process is still alive (always, when the leader had already exited
    and only descendants remained), without changing the returned result;
  - failures are reported as ``ProcessResult(success=False)``, never raised;
  - output and error text are passed through the redactor.
"""

import asyncio
import logging
import os
import signal
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

from ..core.redaction import Redactor, default_redactor

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300
DEFAULT_GRACE_SECONDS = 10
DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024

_READ_CHUNK = 64 * 1024
# SIGKILL does not exist on Windows; fall back to SIGTERM (TerminateProcess).
_FORCE_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)


@dataclass
class ProcessResult:
    """Outcome of a single external command."""
    success: bool
    message: str
    output: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0
    exit_code: Optional[int] = None
    timed_out: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Supervisor:
    """
    Spawns children as process-group leaders and stops them in two phases.

    ``graceful_stop`` sends a polite signal to the group, ``force_stop``
    kills it, and ``escalate`` waits out the grace period between the two.
    Signalling the group rather than the child reaches grandchildren too.
    """

    async def spawn(
        self,
        command: str,
        args: Sequence[str],
        env: Mapping[str, str],
        cwd: Optional[str] = None,
    ) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(env),
            cwd=cwd,
            start_new_session=True,
        )

    def graceful_stop(self, proc: asyncio.subprocess.Process, sig: int = signal.SIGTERM) -> None:
        self._signal(proc, sig)

    def force_stop(self, proc: asyncio.subprocess.Process) -> None:
        self._signal(proc, _FORCE_SIGNAL)

    async def escalate(self, proc: asyncio.subprocess.Process, grace_period: float) -> None:
        """Wait up to *grace_period* for exit, then force-stop and reap.

        If the group leader had already exited when the timeout fired, its
        descendants are what kept the pipes open, so the group is always
        force-stopped once the grace period is over.
        """
        if proc.returncode is not None:
            await asyncio.sleep(grace_period)
            logger.warning("Group leader %s already exited, sending SIGKILL to its group", proc.pid)
        else:
            try:
                await asyncio.wait_for(proc.wait(), timeout=grace_period)
                return
            except asyncio.TimeoutError:
                logger.warning("Process %s ignored SIGTERM for %ss, sending SIGKILL", proc.pid, grace_period)

        self.force_stop(proc)
        await proc.wait()

    @staticmethod
    def _signal(proc: asyncio.subprocess.Process, sig: int) -> None:
        # start_new_session makes the child its own group leader (pgid == pid),
        # and the group id stays valid while any member is alive.
        if hasattr(os, "killpg"):
            try:
                os.killpg(proc.pid, sig)
                return
            except OSError as e:
                logger.debug("Group signal %s to %s failed (%s)", sig, proc.pid, e)
        if proc.returncode is not None:
            return
        try:
            proc.send_signal(sig)
        except ProcessLookupError:
            pass


class ProcessRunner:
    """Runs external commands with output caps, timeout escalation and redaction."""

    def __init__(
        self,
        supervisor: Optional[Supervisor] = None,
        redactor: Optional[Redactor] = None,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        grace_period: float = DEFAULT_GRACE_SECONDS,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ) -> None:
        self.supervisor = supervisor or Supervisor()
        self.redactor = redactor or default_redactor
        self.default_timeout = default_timeout
        self.grace_period = grace_period
        self.max_output_bytes = max_output_bytes
        self._escalations: set[asyncio.Task] = set()

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
    ) -> ProcessResult:
        """Run *command* to completion or timeout. Never raises for process failures."""
        timeout = self.default_timeout if timeout is None else timeout
        start = time.monotonic()
        merged_env = {**os.environ, **(env or {})}

        try:
            proc = await self.supervisor.spawn(command, list(args), merged_env, cwd)
        except (OSError, ValueError) as e:
            logger.error("Failed to start %s: %s", command, e)
            return self._finish(
                start, success=False, message="Failed to start process",
                error=self.redactor.redact(str(e)),
            )

        logger.info("Started %s (pid %s)", command, proc.pid, extra={"pid": proc.pid})

        stdout_buf = bytearray()
        stderr_buf = bytearray()
        readers = [
            asyncio.create_task(self._drain(proc.stdout, stdout_buf)),
            asyncio.create_task(self._drain(proc.stderr, stderr_buf)),
        ]
        completion = asyncio.ensure_future(self._wait(proc, readers))

        try:
            exit_code = await asyncio.wait_for(asyncio.shield(completion), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "%s timed out after %ss, sending SIGTERM to pid %s", command, timeout, proc.pid,
                extra={"pid": proc.pid},
            )
            self.supervisor.graceful_stop(proc)
            self._start_escalation(proc, completion, readers)
            return self._finish(
                start, success=False, timed_out=True,
                message=f"Script timed out after {timeout:g}s",
                output=self._decode(stdout_buf) or None,
                error=self._decode(stderr_buf) or None,
            )
        except asyncio.CancelledError:
            self.supervisor.graceful_stop(proc)
            self._start_escalation(proc, completion, readers)
            raise

        stdout = self._decode(stdout_buf)
        stderr = self._decode(stderr_buf)

        if exit_code == 0:
            return self._finish(
                start, success=True, message="Script completed successfully",
                output=stdout, exit_code=0,
            )

        return self._finish(
            start, success=False, message=f"Script failed (exit code: {exit_code})",
            output=stdout or None, error=stderr or stdout, exit_code=exit_code,
        )

    async def wait_for_escalations(self) -> None:
        """Wait until every timed-out process has been reaped."""
        if self._escalations:
            await asyncio.gather(*list(self._escalations), return_exceptions=True)

    # ----- internals ------------------------------------------------------

    async def _drain(self, stream: Optional[asyncio.StreamReader], buf: bytearray) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return
            room = self.max_output_bytes - len(buf)
            if room > 0:
                buf.extend(chunk[:room])

    @staticmethod
    async def _wait(proc: asyncio.subprocess.Process, readers: list) -> int:
        await asyncio.gather(*readers)
        return await proc.wait()

    def _start_escalation(self, proc, completion: asyncio.Future, readers: list) -> None:
        task = asyncio.ensure_future(self._escalate(proc, completion, readers))
        self._escalations.add(task)
        task.add_done_callback(self._escalations.discard)

    async def _escalate(self, proc, completion: asyncio.Future, readers: list) -> None:
        try:
            await self.supervisor.escalate(proc, self.grace_period)
        except asyncio.CancelledError:
            # Event loop is shutting down; do not leave the group running.
            self.supervisor.force_stop(proc)
            raise
        finally:
            for reader in readers:
                reader.cancel()
            completion.cancel()
            await asyncio.gather(completion, *readers, return_exceptions=True)
        logger.info("Timed-out process %s exited with %s", proc.pid, proc.returncode)

    def _decode(self, buf: bytearray) -> str:
        return self.redactor.redact(bytes(buf).decode("utf-8", errors="replace"))

    @staticmethod
    def _finish(start: float, **fields: Any) -> ProcessResult:
        return ProcessResult(duration_ms=int((time.monotonic() - start) * 1000), **fields)
