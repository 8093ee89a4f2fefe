"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from cli_exec.notifier import Notifier  # noqa: E402

IS_WINDOWS = sys.platform == "win32"


class RecordingNotifier(Notifier):
    """Notifier that also records every event it receives."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.events: list[tuple] = []

    def on_start(self, command, arguments, start_time):
        self.events.append(("start", command, tuple(arguments)))
        super().on_start(command, arguments, start_time)

    def on_progress(self, descriptor):
        self.events.append(("progress", descriptor))
        super().on_progress(descriptor)

    def on_complete(self, start_time, exit_code, output_length=None):
        self.events.append(("complete", exit_code, output_length))
        super().on_complete(start_time, exit_code, output_length)

    def on_error(self, message, detail=None):
        self.events.append(("error", message, detail))
        super().on_error(message, detail)

    def kinds(self) -> list[str]:
        return [event[0] for event in self.events]

    def errors(self) -> list[str]:
        return [event[1] for event in self.events if event[0] == "error"]


class FakeStdin:
    """Stand-in for asyncio.StreamWriter."""

    def __init__(self, write_error: BaseException | None = None) -> None:
        self.data = b""
        self.closed = False
        self.write_error = write_error

    def write(self, data: bytes) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.data += data

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True

    def is_closing(self) -> bool:
        return self.closed

    async def wait_closed(self) -> None:
        pass


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process, driven by the test.

    Must be created inside a running event loop.
    """

    def __init__(self, stdin: FakeStdin | None = None, pid: int = 4242) -> None:
        self.pid = pid
        self.returncode: int | None = None
        self.stdin = stdin
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.terminate_calls = 0
        self._exited = asyncio.Event()

    def write_stdout(self, data: bytes) -> None:
        self.stdout.feed_data(data)

    def write_stderr(self, data: bytes) -> None:
        self.stderr.feed_data(data)

    def exit(self, returncode: int) -> None:
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self.returncode = returncode
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def terminate(self) -> None:
        self.terminate_calls += 1


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier(prefix="[test]")


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


async def settle_loop(rounds: int = 5) -> None:
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
