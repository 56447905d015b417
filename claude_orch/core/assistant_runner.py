"""Invocation of the external coding assistant."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..models.task import Task
from .constants import STDERR_TAG
from .process_registry import ProcessRegistry
from .stream_parser import encode_user_message, parse_stream_line
from .terminal import TerminalLauncher

logger = logging.getLogger(__name__)

OutputCallback = Callable[[int, str], None]
SpawnCallback = Callable[[int], None]

EDIT_FLAGS = ["--dangerously-skip-permissions"]
READ_ONLY_FLAGS = ["--permission-mode", "plan"]
STREAMING_FLAGS = ["--input-format", "stream-json", "--output-format", "stream-json", "--verbose"]
STDERR_READ_SIZE = 4096
STDOUT_READ_SIZE = 65536


@dataclass
class AssistantResult:
    """Outcome of one assistant invocation."""
    success: bool
    output: str
    error: Optional[str] = None


async def read_lines(stream):
    """Yield newline-terminated lines from ``stream`` with no length limit.

    A trailing line without a newline is yielded once the stream ends.
    """
    pending = b""
    while True:
        chunk = await stream.read(STDOUT_READ_SIZE)
        if not chunk:
            break
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            yield line + b"\n"
    if pending:
        yield pending


class AssistantRunner:
    """Runs the assistant as a child process and reports a structured result.

    Nothing raised while spawning, feeding or reading the process escapes
    ``invoke``/``invoke_streaming``; spawn errors, non-zero exits and
    timeouts all come back as a failed ``AssistantResult``.
    """

    def __init__(self, command: str = "claude", timeout: float = 300.0,
                 registry: Optional[ProcessRegistry] = None,
                 terminal: Optional[TerminalLauncher] = None):
        self.command = command
        self.timeout = timeout
        self.registry = registry if registry is not None else ProcessRegistry()
        self.terminal = terminal or TerminalLauncher()

    def build_command(self, allow_edits: bool, streaming: bool = False) -> List[str]:
        """Build the assistant argv for the requested mode."""
        command = [self.command, "--print"]
        command.extend(EDIT_FLAGS if allow_edits else READ_ONLY_FLAGS)
        if streaming:
            command.extend(STREAMING_FLAGS)
        return command

    async def _spawn(self, task: Task, command: List[str]):
        return await asyncio.create_subprocess_exec(
            *command,
            cwd=task.repo_path,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    async def _terminate(self, process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    def _timeout_message(self) -> str:
        return f"Assistant timed out after {self.timeout:g} seconds"

    async def invoke(self, task: Task, prompt: str, allow_edits: bool = False) -> AssistantResult:
        """Run the assistant to completion and collect its output in bulk."""
        command = self.build_command(allow_edits)
        try:
            process = await self._spawn(task, command)
        except OSError as e:
            logger.error(f"[Task #{task.id}] Failed to start assistant: {e}")
            return AssistantResult(False, "", f"Failed to start assistant: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(prompt.encode()), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            await self._terminate(process)
            logger.error(f"[Task #{task.id}] {self._timeout_message()}")
            return AssistantResult(False, "", self._timeout_message())

        output = stdout.decode("utf-8", errors="replace")
        if process.returncode == 0:
            return AssistantResult(True, output)
        error = stderr.decode("utf-8", errors="replace").strip()
        return AssistantResult(False, output, error or f"Exit code: {process.returncode}")

    async def invoke_streaming(self, task: Task, prompt: str, allow_edits: bool = False,
                               on_output: Optional[OutputCallback] = None,
                               on_spawn: Optional[SpawnCallback] = None) -> AssistantResult:
        """Run the assistant while relaying output chunks as they arrive.

        The live process is registered for steering before any output is
        read and deregistered once its exit has been observed.

        Args:
            task: Task being worked on; its repo_path is the working directory
            prompt: Initial instruction, sent as the first stdin message
            allow_edits: Whether the assistant may write to the working tree
            on_output: Called with (task_id, chunk) for every stdout/stderr chunk
            on_spawn: Called with the child's pid once it has started
        """
        command = self.build_command(allow_edits, streaming=True)
        try:
            process = await self._spawn(task, command)
        except OSError as e:
            logger.error(f"[Task #{task.id}] Failed to start assistant: {e}")
            return AssistantResult(False, "", f"Failed to start assistant: {e}")

        self.registry.register(task.id, process, encode=encode_user_message)
        logger.info(f"[Task #{task.id}] Assistant started (pid {process.pid})")
        if on_spawn:
            on_spawn(process.pid)

        text_parts: List[str] = []
        stderr_parts: List[str] = []
        final: List[str] = []

        def emit(chunk: str) -> None:
            if chunk and on_output:
                on_output(task.id, chunk)

        async def pump_stdout() -> None:
            async for raw_line in read_lines(process.stdout):
                event = parse_stream_line(raw_line.decode("utf-8", errors="replace"))
                if event is None:
                    continue
                if event.is_result:
                    final.append(event.text)
                    # The session is over once the result arrives; release stdin
                    # so the assistant can exit.
                    self._close_stdin(process)
                    continue
                if event.text:
                    text_parts.append(event.text)
                    emit(event.text)

        async def pump_stderr() -> None:
            while True:
                chunk = await process.stderr.read(STDERR_READ_SIZE)
                if not chunk:
                    break
                text = chunk.decode("utf-8", errors="replace")
                stderr_parts.append(text)
                emit(f"{STDERR_TAG}{text}")

        async def run() -> int:
            try:
                process.stdin.write((encode_user_message(prompt) + "\n").encode())
                await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                logger.warning(f"[Task #{task.id}] Could not send prompt: {e}")
            await asyncio.gather(pump_stdout(), pump_stderr())
            return await process.wait()

        try:
            returncode = await asyncio.wait_for(run(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._terminate(process)
            logger.error(f"[Task #{task.id}] {self._timeout_message()}")
            return AssistantResult(False, "".join(text_parts), self._timeout_message())
        except (OSError, ValueError) as e:
            await self._terminate(process)
            logger.error(f"[Task #{task.id}] Lost assistant output stream: {e}")
            return AssistantResult(False, "".join(text_parts), f"Assistant stream error: {e}")
        finally:
            if self.registry.get(task.id) is process:
                self.registry.deregister(task.id)

        output = final[-1] if final and final[-1] else "".join(text_parts)
        if returncode == 0:
            logger.info(f"[Task #{task.id}] Assistant finished")
            return AssistantResult(True, output)
        error = "".join(stderr_parts).strip()
        logger.info(f"[Task #{task.id}] Assistant exited with code {returncode}")
        return AssistantResult(False, output, error or f"Exit code: {returncode}")

    @staticmethod
    def _close_stdin(process) -> None:
        stdin = process.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()

    def open_terminal(self, task: Task, prompt: str, allow_edits: bool) -> AssistantResult:
        """Start an interactive session in a visible terminal window.

        Success only means a window was opened; the task is completed later
        by an explicit manual completion.
        """
        command = [self.command]
        command.extend(EDIT_FLAGS if allow_edits else READ_ONLY_FLAGS)
        terminal = self.terminal.open_assistant(task.id, task.repo_path, task.repo,
                                                command, prompt)
        if terminal is None:
            return AssistantResult(False, "", "Failed to open a terminal window")
        return AssistantResult(True, f"Opened {terminal} session for task #{task.id}")
