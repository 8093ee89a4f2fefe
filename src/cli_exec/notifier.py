"""Lifecycle notifications for command runs.

The Notifier receives start/progress/complete/error events from
ProcessRunner and writes them as prefixed log lines. It also keeps a
bounded record of in-flight commands so completion lines can report
elapsed time and callers can inspect what is still running.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Sequence
from dataclasses import dataclass

from .config import DEFAULT_LOG_PREFIX, DEFAULT_TRACK_LIMIT, get_config

__all__ = [
    "Notifier",
    "CommandTracker",
    "TrackedCommand",
    "get_notifier",
    "reset_notifier",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackedCommand:
    """An in-flight command."""

    command: str
    arguments: tuple[str, ...]
    start_time: float


class CommandTracker:
    """Bounded insertion-ordered cache of in-flight commands, keyed by start time.

    Entries are added on start and removed on completion. Runs that never
    complete cannot grow the cache past ``capacity``: the oldest entry is
    evicted first.
    """

    def __init__(self, capacity: int = DEFAULT_TRACK_LIMIT) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: OrderedDict[float, TrackedCommand] = OrderedDict()

    def add(self, command: str, arguments: Sequence[str], start_time: float) -> None:
        self._entries[start_time] = TrackedCommand(command, tuple(arguments), start_time)
        self._entries.move_to_end(start_time)
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted tracked command start_time={evicted}")

    def remove(self, start_time: float) -> TrackedCommand | None:
        return self._entries.pop(start_time, None)

    def get(self, start_time: float) -> TrackedCommand | None:
        return self._entries.get(start_time)

    def in_flight(self) -> list[TrackedCommand]:
        """Tracked commands, oldest first."""
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, start_time: object) -> bool:
        return start_time in self._entries


class Notifier:
    """Writes run lifecycle events as prefixed log lines.

    Example:
        notifier = Notifier(prefix="[my-tool]")
        runner = ProcessRunner(notifier=notifier)
    """

    def __init__(
        self,
        prefix: str = DEFAULT_LOG_PREFIX,
        capacity: int = DEFAULT_TRACK_LIMIT,
        log: logging.Logger | None = None,
    ) -> None:
        self.prefix = prefix
        self.tracker = CommandTracker(capacity)
        self._log = log or logger

    def _format(self, message: str) -> str:
        return f"{self.prefix} {message}"

    def on_start(self, command: str, arguments: Sequence[str], start_time: float) -> None:
        quoted = " ".join(f'"{arg}"' for arg in arguments)
        self._log.info(self._format(f"[{start_time:.3f}] Starting: {command} {quoted}".rstrip()))
        self.tracker.add(command, arguments, start_time)

    def on_progress(self, descriptor: str) -> None:
        self._log.debug(self._format(f"Progress: {descriptor}"))

    def on_complete(
        self,
        start_time: float,
        exit_code: int | None,
        output_length: int | None = None,
    ) -> None:
        elapsed = time.time() - start_time
        self._log.info(self._format(f"[{elapsed:.1f}s] Process finished with exit code: {exit_code}"))
        if output_length is not None:
            self._log.info(self._format(f"Response: {output_length} chars"))
        self.tracker.remove(start_time)

    def on_error(self, message: str, detail: str | None = None) -> None:
        if detail:
            self._log.error(self._format(f"{message}\n{detail}"))
        else:
            self._log.error(self._format(message))

    def forget(self, start_time: float) -> None:
        """Drop a run that ended without an exit (spawn failure, timeout, cancel)."""
        self.tracker.remove(start_time)


# Default shared instance (lazy)
_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    """Return the default Notifier, built from the global config."""
    global _notifier
    if _notifier is None:
        config = get_config()
        _notifier = Notifier(prefix=config.log_prefix, capacity=config.track_limit)
    return _notifier


def reset_notifier() -> None:
    """Discard the default Notifier (for tests)."""
    global _notifier
    _notifier = None
