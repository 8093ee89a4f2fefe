"""cli-exec environment configuration.

Environment variables:
    CLI_EXEC_TIMEOUT: deadline in seconds for runners built from config
        - default 300 (5 minutes)
        - clamped to 1-86400; invalid values fall back to the default

    CLI_EXEC_TRACK_LIMIT: how many in-flight commands the notifier tracks
        - default 100; the oldest entry is evicted past the limit

    CLI_EXEC_LOG_DEBUG: debug logging
        - true/1/yes/on = enabled (DEBUG level, written to a temp file)
        - false/0/no/off = disabled (default, INFO level to stderr)

    CLI_EXEC_LOG_PREFIX: fixed prefix for notifier log lines
        - default "[cli-exec]"
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = [
    "Config",
    "load_config",
    "get_config",
    "reload_config",
    "DEFAULT_TIMEOUT",
    "DEFAULT_TRACK_LIMIT",
    "DEFAULT_LOG_PREFIX",
]

DEFAULT_TIMEOUT = 300.0
DEFAULT_TRACK_LIMIT = 100
DEFAULT_LOG_PREFIX = "[cli-exec]"

_MIN_TIMEOUT = 1.0
_MAX_TIMEOUT = 86400.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_timeout(value: str | None) -> float:
    """Parse CLI_EXEC_TIMEOUT."""
    if not value:
        return DEFAULT_TIMEOUT
    try:
        timeout = float(value)
    except ValueError:
        return DEFAULT_TIMEOUT
    return max(_MIN_TIMEOUT, min(timeout, _MAX_TIMEOUT))


def _parse_track_limit(value: str | None) -> int:
    """Parse CLI_EXEC_TRACK_LIMIT."""
    if not value:
        return DEFAULT_TRACK_LIMIT
    try:
        limit = int(value)
    except ValueError:
        return DEFAULT_TRACK_LIMIT
    return limit if limit > 0 else DEFAULT_TRACK_LIMIT


@dataclass
class Config:
    """cli-exec configuration.

    Attributes:
        timeout: Deadline in seconds
        track_limit: Notifier in-flight cache capacity
        log_debug: Debug logging to a temp file
        log_file: Log file path (set when log_debug=True)
        log_prefix: Prefix for notifier log lines
    """

    timeout: float = DEFAULT_TIMEOUT
    track_limit: int = DEFAULT_TRACK_LIMIT
    log_debug: bool = False
    log_file: str | None = None
    log_prefix: str = DEFAULT_LOG_PREFIX


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the system temp dir."""
    log_dir = Path(tempfile.gettempdir()) / "cli-exec"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"cli_exec_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from the environment."""
    log_debug = _parse_bool(os.environ.get("CLI_EXEC_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        timeout=_parse_timeout(os.environ.get("CLI_EXEC_TIMEOUT")),
        track_limit=_parse_track_limit(os.environ.get("CLI_EXEC_TRACK_LIMIT")),
        log_debug=log_debug,
        log_file=log_file,
        log_prefix=os.environ.get("CLI_EXEC_LOG_PREFIX") or DEFAULT_LOG_PREFIX,
    )


# Global config instance (lazy)
_config: Config | None = None


def get_config() -> Config:
    """Return the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration (for tests)."""
    global _config
    _config = load_config()
    return _config
