"""Runtime type definitions.

cli-exec runtime module v0.1.0

Defines the request value, the single-settlement outcome, the failure
taxonomy and the exceptions raised by ProcessRunner.run().
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

__all__ = [
    "ProgressCallback",
    "FailureKind",
    "ExecutionRequest",
    "ExecutionOutcome",
    "ExecutionError",
    "SpawnFailureError",
    "ProcessTimeoutError",
    "NonZeroExitError",
    "UNKNOWN_ERROR",
]

# Called with each new stdout increment, in arrival order
ProgressCallback = Callable[[str], None]

# Placeholder used when a failing process wrote nothing to stderr
UNKNOWN_ERROR = "Unknown error"


class FailureKind(str, Enum):
    """Failure taxonomy.

    - SPAWN_FAILURE: the OS could not create the process
    - TIMEOUT: the process exceeded the deadline and was sent SIGTERM
    - NON_ZERO_EXIT: the process ran and exited with a non-zero code
    """

    SPAWN_FAILURE = "spawn_failure"
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"


@dataclass(frozen=True)
class ExecutionRequest:
    """Specification for one command execution.

    Attributes:
        command: Executable name or path (non-empty)
        arguments: Command line arguments, in order
        working_directory: Working directory (None = caller's cwd)
        stdin_payload: Text written to stdin, then closed (None = no stdin)
        progress_callback: Receives each new stdout increment
    """

    command: str
    arguments: Sequence[str] = ()
    working_directory: Path | None = None
    stdin_payload: str | None = None
    progress_callback: ProgressCallback | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.command, str) or not self.command:
            raise ValueError("command must be a non-empty string")
        # Freeze the argument list so the request stays immutable
        object.__setattr__(self, "arguments", tuple(str(arg) for arg in self.arguments))
        if isinstance(self.working_directory, str):
            object.__setattr__(self, "working_directory", Path(self.working_directory))


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of one run: either a success or a single classified failure.

    Attributes:
        success: Whether the process exited with code 0
        output: Trimmed stdout (success only)
        failure_kind: Failure classification (failure only)
        message: Human-readable failure message, suitable for display
        exit_code: Process exit code, when the process exited
        stderr: Trimmed stderr (non-zero exit only)
        elapsed: Seconds between start and settlement
    """

    success: bool
    output: str = ""
    failure_kind: FailureKind | None = None
    message: str = ""
    exit_code: int | None = None
    stderr: str = ""
    elapsed: float = 0.0

    @classmethod
    def succeeded(cls, output: str, *, elapsed: float = 0.0) -> "ExecutionOutcome":
        return cls(success=True, output=output, exit_code=0, elapsed=elapsed)

    @classmethod
    def failed(
        cls,
        kind: FailureKind,
        message: str,
        *,
        exit_code: int | None = None,
        stderr: str = "",
        elapsed: float = 0.0,
    ) -> "ExecutionOutcome":
        return cls(
            success=False,
            failure_kind=kind,
            message=message,
            exit_code=exit_code,
            stderr=stderr,
            elapsed=elapsed,
        )

    def unwrap(self) -> str:
        """Return the output, or raise the exception matching the failure."""
        if self.success:
            return self.output
        raise ExecutionError.from_outcome(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict."""
        result: dict[str, Any] = {
            "success": self.success,
            "elapsed_sec": round(self.elapsed, 3),
        }
        if self.success:
            result["output"] = self.output
        else:
            result["failure_kind"] = self.failure_kind.value if self.failure_kind else None
            result["message"] = self.message
        if self.exit_code is not None:
            result["exit_code"] = self.exit_code
        return result


class ExecutionError(Exception):
    """Base error for failed runs.

    Attributes:
        outcome: The failed ExecutionOutcome
    """

    def __init__(self, outcome: ExecutionOutcome) -> None:
        self.outcome = outcome
        super().__init__(outcome.message)

    @property
    def failure_kind(self) -> FailureKind | None:
        return self.outcome.failure_kind

    @staticmethod
    def from_outcome(outcome: ExecutionOutcome) -> "ExecutionError":
        """Build the exception subclass matching outcome.failure_kind."""
        error_cls = _ERRORS_BY_KIND.get(outcome.failure_kind, ExecutionError)
        return error_cls(outcome)


class SpawnFailureError(ExecutionError):
    """The process could not be created (missing executable, permissions)."""


class ProcessTimeoutError(ExecutionError):
    """The process exceeded the deadline."""


class NonZeroExitError(ExecutionError):
    """The process exited with a non-zero code.

    Attributes:
        exit_code: Process exit code
        stderr: Trimmed stderr text
    """

    @property
    def exit_code(self) -> int | None:
        return self.outcome.exit_code

    @property
    def stderr(self) -> str:
        return self.outcome.stderr


_ERRORS_BY_KIND: dict[FailureKind | None, type[ExecutionError]] = {
    FailureKind.SPAWN_FAILURE: SpawnFailureError,
    FailureKind.TIMEOUT: ProcessTimeoutError,
    FailureKind.NON_ZERO_EXIT: NonZeroExitError,
}
