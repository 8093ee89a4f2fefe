"""Runtime module for command execution.

Runs external commands with streamed output, a wall-clock deadline and a
single structured outcome per run.
"""

from __future__ import annotations

from .process_runner import DEFAULT_TIMEOUT, ProcessRunner, RunState, execute_command
from .quota import QUOTA_MARKER, QuotaScanner, QuotaViolation, parse_quota_violation
from .types import (
    ExecutionError,
    ExecutionOutcome,
    ExecutionRequest,
    FailureKind,
    NonZeroExitError,
    ProcessTimeoutError,
    ProgressCallback,
    SpawnFailureError,
)

__all__ = [
    "DEFAULT_TIMEOUT",
    "ProcessRunner",
    "RunState",
    "execute_command",
    "QUOTA_MARKER",
    "QuotaScanner",
    "QuotaViolation",
    "parse_quota_violation",
    "ExecutionError",
    "ExecutionOutcome",
    "ExecutionRequest",
    "FailureKind",
    "NonZeroExitError",
    "ProcessTimeoutError",
    "ProgressCallback",
    "SpawnFailureError",
]
