"""cli-exec - run external commands with streamed output and a deadline.

Environment variables:
    CLI_EXEC_TIMEOUT: deadline in seconds (default 300)
    CLI_EXEC_TRACK_LIMIT: in-flight commands tracked by the notifier (default 100)
    CLI_EXEC_LOG_DEBUG: debug logging to a temp file (default false)

Usage:
    from cli_exec import ExecutionRequest, ProcessRunner

    output = await ProcessRunner().run(ExecutionRequest("echo", ["hi"]))
"""

__version__ = "0.1.0"

from .config import Config, get_config, load_config, reload_config
from .logging_setup import configure_logging
from .notifier import CommandTracker, Notifier, get_notifier
from .runtime import (
    ExecutionError,
    ExecutionOutcome,
    ExecutionRequest,
    FailureKind,
    NonZeroExitError,
    ProcessRunner,
    ProcessTimeoutError,
    QuotaViolation,
    SpawnFailureError,
    execute_command,
    parse_quota_violation,
)

__all__ = [
    "__version__",
    "Config",
    "get_config",
    "load_config",
    "reload_config",
    "configure_logging",
    "CommandTracker",
    "Notifier",
    "get_notifier",
    "ExecutionError",
    "ExecutionOutcome",
    "ExecutionRequest",
    "FailureKind",
    "NonZeroExitError",
    "ProcessRunner",
    "ProcessTimeoutError",
    "QuotaViolation",
    "SpawnFailureError",
    "execute_command",
    "parse_quota_violation",
]
