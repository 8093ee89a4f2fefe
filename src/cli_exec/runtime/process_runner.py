"""Process runner with streaming output, a deadline and single settlement.

cli-exec runtime module v0.1.0

This module provides:
- Concurrent stdout/stderr draining with incremental progress delivery
- Optional stdin payload written concurrently, tolerant of broken pipes
- A wall-clock deadline that sends SIGTERM and settles with TIMEOUT
- Quota-exhaustion detection on stderr (diagnostic logging only)

Key design points:
- Each run owns a _RunningProcess; nothing mutable is shared between runs
- _RunningProcess is a small state machine (SPAWNING -> RUNNING -> SETTLED);
  the first of exit / spawn error / deadline to settle wins, later events
  are no-ops
- Cancelling the awaiting task terminates the child; cleanup runs inside a
  shielded anyio.CancelScope
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import anyio

from ..config import DEFAULT_TIMEOUT, Config, get_config
from ..notifier import Notifier, get_notifier
from .quota import QuotaScanner
from .types import (
    UNKNOWN_ERROR,
    ExecutionOutcome,
    ExecutionRequest,
    FailureKind,
    ProgressCallback,
)

__all__ = [
    "ProcessRunner",
    "RunState",
    "execute_command",
    "DEFAULT_TIMEOUT",
]

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class RunState(Enum):
    """Lifecycle of a single run."""

    SPAWNING = "spawning"
    RUNNING = "running"
    SETTLED = "settled"


@dataclass(eq=False)
class _RunningProcess:
    """Per-run execution state. Owned by exactly one execute() call."""

    request: ExecutionRequest
    start_time: float
    settled: asyncio.Future[ExecutionOutcome]
    process: asyncio.subprocess.Process | None = None
    state: RunState = RunState.SPAWNING
    deadline: asyncio.TimerHandle | None = None
    terminated: bool = False

    stdout_parts: list[str] = field(default_factory=list)
    stdout_length: int = 0
    reported_length: int = 0
    reported_parts: int = 0
    stderr_parts: list[str] = field(default_factory=list)
    quota: QuotaScanner = field(default_factory=QuotaScanner)

    @property
    def is_settled(self) -> bool:
        return self.state is RunState.SETTLED

    def elapsed(self) -> float:
        return time.time() - self.start_time

    def stdout_text(self) -> str:
        return "".join(self.stdout_parts)

    def stderr_text(self) -> str:
        return "".join(self.stderr_parts)

    def append_stdout(self, text: str) -> str:
        """Append stdout text and return the increment not yet reported."""
        self.stdout_parts.append(text)
        self.stdout_length += len(text)
        if self.stdout_length <= self.reported_length:
            return ""
        increment = "".join(self.stdout_parts[self.reported_parts:])
        self.reported_parts = len(self.stdout_parts)
        self.reported_length = self.stdout_length
        return increment

    def _finish(self) -> bool:
        if self.state is RunState.SETTLED:
            return False
        self.state = RunState.SETTLED
        if self.deadline is not None:
            self.deadline.cancel()
            self.deadline = None
        return True

    def settle(self, outcome: ExecutionOutcome) -> bool:
        """Settle with outcome. Returns False if already settled."""
        if not self._finish():
            return False
        if not self.settled.done():
            self.settled.set_result(outcome)
        return True

    def fail(self, exc: BaseException) -> bool:
        """Settle by propagating an unexpected error to the caller."""
        if not self._finish():
            return False
        if not self.settled.done():
            self.settled.set_exception(exc)
        return True

    def abandon(self) -> None:
        """Mark settled without an outcome (caller cancelled)."""
        self._finish()


@dataclass
class ProcessRunner:
    """Runs one external command per call, streaming its output.

    Example:
        runner = ProcessRunner()
        request = ExecutionRequest(
            command="gemini",
            arguments=["-p", "summarize"],
            stdin_payload=source_text,
            progress_callback=print,
        )
        output = await runner.run(request)

    Attributes:
        timeout: Deadline in seconds (default 300)
        notifier: Receives lifecycle events (default: shared Notifier)
    """

    timeout: float = DEFAULT_TIMEOUT
    notifier: Notifier = field(default_factory=get_notifier)

    @classmethod
    def from_config(cls, config: Config | None = None) -> "ProcessRunner":
        """Build a runner using the configured deadline."""
        config = config or get_config()
        return cls(timeout=config.timeout)

    async def run(self, request: ExecutionRequest) -> str:
        """Run the command and return its trimmed stdout.

        Raises:
            SpawnFailureError: The process could not be created
            ProcessTimeoutError: The deadline elapsed first
            NonZeroExitError: The process exited with a non-zero code
        """
        outcome = await self.execute(request)
        return outcome.unwrap()

    async def execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        """Run the command and return its outcome without raising.

        This method:
        1. Notifies start, then spawns the process (stdin only if a payload is given)
        2. Writes the stdin payload concurrently, then closes stdin
        3. Arms the deadline timer
        4. Drains stdout/stderr concurrently until EOF, then waits for exit
        5. Returns the first settlement; cleans up the run's tasks

        Args:
            request: Execution request

        Returns:
            ExecutionOutcome (exactly one success or failure)
        """
        loop = asyncio.get_running_loop()
        running = _RunningProcess(
            request=request,
            start_time=time.time(),
            settled=loop.create_future(),
        )

        self.notifier.on_start(request.command, request.arguments, running.start_time)

        tasks: list[asyncio.Task[None]] = []
        terminate = True
        try:
            try:
                running.process = await asyncio.create_subprocess_exec(
                    request.command,
                    *request.arguments,
                    stdin=(
                        asyncio.subprocess.PIPE
                        if request.stdin_payload is not None
                        else asyncio.subprocess.DEVNULL
                    ),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=request.working_directory,
                )
            except OSError as e:
                terminate = False
                return self._on_spawn_error(running, e)

            running.state = RunState.RUNNING
            logger.debug(
                f"Started subprocess pid={running.process.pid} "
                f"command={request.command} cwd={request.working_directory}"
            )
            running.deadline = loop.call_later(self.timeout, self._on_deadline, running)

            stdout_task = asyncio.create_task(self._drain_stdout(running))
            stderr_task = asyncio.create_task(self._drain_stderr(running))
            tasks.append(stdout_task)
            tasks.append(stderr_task)
            tasks.append(asyncio.create_task(self._watch_exit(running, stdout_task, stderr_task)))
            if request.stdin_payload is not None:
                tasks.append(asyncio.create_task(self._write_stdin(running, request.stdin_payload)))

            outcome = await running.settled
            terminate = False
            return outcome
        except (anyio.get_cancelled_exc_class(), asyncio.CancelledError):
            if not running.is_settled:
                running.abandon()
                self.notifier.on_error("Process cancelled")
                self.notifier.forget(running.start_time)
            raise
        finally:
            await self._cleanup(running, tasks, terminate=terminate)

    # ------------------------------------------------------------------
    # Settlement paths
    # ------------------------------------------------------------------

    def _on_spawn_error(self, running: _RunningProcess, error: OSError) -> ExecutionOutcome:
        outcome = ExecutionOutcome.failed(
            FailureKind.SPAWN_FAILURE,
            f"Failed to spawn command: {error}",
            elapsed=running.elapsed(),
        )
        running.settle(outcome)
        self.notifier.on_error("Process error:", str(error))
        self.notifier.forget(running.start_time)
        return outcome

    def _on_deadline(self, running: _RunningProcess) -> None:
        outcome = ExecutionOutcome.failed(
            FailureKind.TIMEOUT,
            f"Process timed out after {self.timeout:g} seconds",
            elapsed=running.elapsed(),
        )
        if not running.settle(outcome):
            return
        self._terminate(running)
        self.notifier.on_error(
            f"Process timed out after {self.timeout:g}s (elapsed {outcome.elapsed:.1f}s)"
        )
        self.notifier.forget(running.start_time)

    def _on_exit(self, running: _RunningProcess, returncode: int) -> None:
        if running.is_settled:
            logger.debug(f"Ignoring late exit returncode={returncode}")
            return

        if returncode == 0:
            stdout = running.stdout_text()
            outcome = ExecutionOutcome.succeeded(stdout.strip(), elapsed=running.elapsed())
            running.settle(outcome)
            self.notifier.on_complete(running.start_time, returncode, len(stdout))
            return

        stderr = running.stderr_text().strip()
        outcome = ExecutionOutcome.failed(
            FailureKind.NON_ZERO_EXIT,
            f"Command failed with exit code {returncode}: {stderr or UNKNOWN_ERROR}",
            exit_code=returncode,
            stderr=stderr,
            elapsed=running.elapsed(),
        )
        running.settle(outcome)
        self.notifier.on_complete(running.start_time, returncode)
        self.notifier.on_error(f"Failed with exit code {returncode}")

    # ------------------------------------------------------------------
    # I/O paths
    # ------------------------------------------------------------------

    async def _watch_exit(
        self,
        running: _RunningProcess,
        stdout_task: asyncio.Task[None],
        stderr_task: asyncio.Task[None],
    ) -> None:
        """Wait for both drains to reach EOF, then for the exit code."""
        assert running.process is not None
        try:
            await asyncio.gather(stdout_task, stderr_task)
            returncode = await running.process.wait()
        except Exception as exc:
            # Only a progress callback can raise here; surface it to the caller
            if running.fail(exc):
                self.notifier.on_error(f"Progress callback error: {exc}")
                self.notifier.forget(running.start_time)
            return
        self._on_exit(running, returncode)

    async def _drain(
        self,
        stream: asyncio.StreamReader | None,
        on_text: Callable[[str], None],
    ) -> None:
        """Read a stream to EOF, decoding UTF-8 incrementally."""
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                on_text(text)
            if not chunk:
                break

    async def _drain_stdout(self, running: _RunningProcess) -> None:
        assert running.process is not None
        callback: ProgressCallback | None = running.request.progress_callback

        def on_text(text: str) -> None:
            if running.is_settled:
                return
            increment = running.append_stdout(text)
            if not increment:
                return
            self.notifier.on_progress(f"{running.request.command} +{len(increment)} chars")
            if callback is not None:
                callback(increment)

        await self._drain(running.process.stdout, on_text)

    async def _drain_stderr(self, running: _RunningProcess) -> None:
        assert running.process is not None

        def on_text(text: str) -> None:
            if running.is_settled:
                return
            running.stderr_parts.append(text)
            self._inspect_quota(running, text)

        await self._drain(running.process.stderr, on_text)

    def _inspect_quota(self, running: _RunningProcess, text: str) -> None:
        """Log a quota violation found in new stderr text. Never affects the outcome."""
        try:
            violation = running.quota.feed(text)
        except Exception as e:
            logger.debug(f"Quota inspection failed: {e}")
            return
        if violation is not None:
            self.notifier.on_error("Quota Error:", violation.to_json())

    async def _write_stdin(self, running: _RunningProcess, payload: str) -> None:
        """Write the payload to stdin and close it so the child sees EOF."""
        assert running.process is not None
        stdin = running.process.stdin
        if stdin is None:
            return
        try:
            stdin.write(payload.encode("utf-8"))
            await stdin.drain()
            stdin.close()
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            # Child exited before reading all input; exit path decides the outcome
            logger.debug(f"stdin closed early pid={running.process.pid}")
        except OSError as e:
            self.notifier.on_error(f"stdin write error: {e}")
        finally:
            if not stdin.is_closing():
                stdin.close()

    # ------------------------------------------------------------------
    # Termination & cleanup
    # ------------------------------------------------------------------

    def _terminate(self, running: _RunningProcess) -> None:
        """Send SIGTERM once. Does not wait for the process to exit."""
        process = running.process
        if process is None or running.terminated or process.returncode is not None:
            return
        running.terminated = True
        try:
            process.terminate()
            logger.debug(f"Sent SIGTERM to pid={process.pid}")
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={process.pid}")

    async def _cleanup(
        self,
        running: _RunningProcess,
        tasks: Sequence[asyncio.Task[None]],
        *,
        terminate: bool,
    ) -> None:
        """Cancel the run's tasks, shielded from caller cancellation."""
        with anyio.CancelScope(shield=True):
            if terminate:
                self._terminate(running)
            for task in tasks:
                if not task.done():
                    task.cancel()
            # Errors already reached the caller through running.settled
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.debug(f"Run task ended with error: {result!r}")


async def execute_command(
    command: str,
    arguments: Sequence[str] = (),
    on_progress: ProgressCallback | None = None,
    cwd: str | Path | None = None,
    stdin_data: str | None = None,
) -> str:
    """Run a command with the default runner and return trimmed stdout.

    Convenience wrapper over ProcessRunner.run() for one-off calls.
    """
    request = ExecutionRequest(
        command=command,
        arguments=arguments,
        working_directory=Path(cwd) if cwd is not None else None,
        stdin_payload=stdin_data,
        progress_callback=on_progress,
    )
    return await ProcessRunner.from_config().run(request)
