import asyncio
from pathlib import Path

import pytest
from click.testing import CliRunner

from claude_orch.core.task_store import TaskStore
from claude_orch.models.task import TaskContext, TaskType


class FakeStdin:
    """Stand-in for a subprocess stdin StreamWriter."""

    def __init__(self):
        self.written = b""
        self.closed = False

    def write(self, data: bytes) -> None:
        self.written += data

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True

    def is_closing(self) -> bool:
        return self.closed


class FakeStream:
    """Stand-in for a subprocess stdout/stderr StreamReader."""

    def __init__(self, chunks, release: asyncio.Event = None):
        self.chunks = list(chunks)
        self.release = release

    async def read(self, n: int = -1) -> bytes:
        if self.chunks:
            return self.chunks.pop(0)
        if self.release is not None:
            await self.release.wait()
        return b""


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process.

    With ``hang=True`` the output streams and ``wait`` block until the
    process is killed, which is how timeouts are exercised.
    """

    def __init__(self, stdout_lines=(), stderr_chunks=(), exit_code=0, pid=4242, hang=False):
        self.pid = pid
        self.exit_code = exit_code
        self.returncode = None
        self.hang = hang
        self.killed = False
        self._released = asyncio.Event() if hang else None
        self.stdin = FakeStdin()
        self.stdout = FakeStream(stdout_lines, self._released)
        self.stderr = FakeStream(stderr_chunks, self._released)
        self.communicated = None

    def _stop(self) -> None:
        self.killed = True
        if self.returncode is None:
            self.returncode = -9
        if self._released is not None:
            self._released.set()

    def kill(self) -> None:
        self._stop()

    def terminate(self) -> None:
        self._stop()

    async def wait(self) -> int:
        if self.hang and not self.killed:
            await self._released.wait()
        if self.returncode is None:
            self.returncode = self.exit_code
        return self.returncode

    async def communicate(self, data: bytes = None):
        self.communicated = data
        await self.wait()
        stdout = b"".join(self.stdout.chunks)
        stderr = b"".join(self.stderr.chunks)
        return stdout, stderr


@pytest.fixture
def cli_runner():
    """Provides a Click CLI runner for testing commands."""
    return CliRunner()


@pytest.fixture
def isolated_cli_runner(cli_runner):
    """Provides a CLI runner with isolated filesystem."""
    with cli_runner.isolated_filesystem():
        yield cli_runner


@pytest.fixture
def fake_process():
    """The FakeProcess class, for building scripted assistant processes."""
    return FakeProcess


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / ".orch"


@pytest.fixture
def store(data_dir):
    """A TaskStore backed by a temporary directory."""
    return TaskStore(data_dir)


@pytest.fixture
def repo_path(tmp_path) -> Path:
    path = tmp_path / "app"
    path.mkdir()
    return path


@pytest.fixture
def make_task(store, repo_path):
    """Create a pending task with sensible defaults."""
    def _make(task_type=TaskType.ISSUE_FIX, repo="octo/app", **context):
        context.setdefault("title", "Fix null pointer")
        return store.create_task(task_type, repo, str(repo_path), TaskContext(**context))
    return _make
