"""Task dispatcher: claims pending tasks and drives them to a terminal state."""

import asyncio
import logging
import os
import signal
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..models.task import ExecutionMode, Task, TaskStatus, TaskType
from ..services.exceptions import InvalidTransitionError, TaskNotFoundError, TaskStoreError
from .assistant_runner import AssistantResult, AssistantRunner
from .constants import STALE_PROCESS_HOURS
from .git_flows import GitFlowOrchestrator
from .learnings import LearningsExtractor, LearningsStore
from .prompts import build_prompt
from .publisher import Publisher
from .task_store import TaskStore

logger = logging.getLogger(__name__)

OutputCallback = Callable[[int, str], None]
UpdateCallback = Callable[[], None]

STOPPED_BY_USER = "Stopped by user"
COMPLETED_MANUALLY = "Completed manually"


def build_result_comment(task: Task, output: str, pr_url: Optional[str]) -> str:
    heading = "Code Review" if task.type == TaskType.PR_REVIEW else "Analysis"
    comment = f"## 🤖 Claude {heading}\n\n{output}"
    if pr_url:
        comment += f"\n\n---\n📝 **PR Created:** {pr_url}"
    return comment


class Dispatcher:
    """Runs pending tasks concurrently, up to a global ceiling.

    Each sweep claims tasks synchronously (pending -> running) before any of
    them is launched, then starts one asyncio task per claimed task without
    waiting for it. A task's own failure, expected or not, ends with that
    task marked failed and never reaches the sweep loop.
    """

    def __init__(self, store: TaskStore, runner: AssistantRunner,
                 git_flows: GitFlowOrchestrator, publisher: Publisher,
                 learnings: Optional[LearningsExtractor] = None,
                 learnings_store: Optional[LearningsStore] = None,
                 max_concurrent: int = 2, interval: float = 5.0,
                 terminal_mode: bool = False,
                 on_output: Optional[OutputCallback] = None,
                 on_update: Optional[UpdateCallback] = None):
        self.store = store
        self.runner = runner
        self.registry = runner.registry
        self.git_flows = git_flows
        self.publisher = publisher
        self.learnings_store = learnings_store or LearningsStore()
        self.learnings = learnings
        self.max_concurrent = max_concurrent
        self.interval = interval
        self.terminal_mode = terminal_mode
        self.on_output = on_output
        self.on_update = on_update
        self._active: Dict[int, asyncio.Task] = {}
        self._wakeup = asyncio.Event()

    # Scheduling

    def execution_mode(self, task: Task) -> ExecutionMode:
        # the comment-fix flow drives git itself and cannot wait on a terminal
        if task.type == TaskType.PR_COMMENT_FIX:
            return ExecutionMode.STREAMING
        if self.terminal_mode or task.type == TaskType.TESTING:
            return ExecutionMode.TERMINAL
        return ExecutionMode.STREAMING

    def sweep(self) -> List[int]:
        """Claim and launch as many pending tasks as the ceiling allows.

        Must be called from within the running event loop.

        Returns:
            IDs of the tasks launched
        """
        available = self.max_concurrent - self.store.get_running_count()
        if available <= 0:
            return []

        launched = []
        for pending in self.store.get_pending_tasks(available):
            try:
                task = self.store.start_task(pending.id, self.execution_mode(pending))
            except (TaskNotFoundError, InvalidTransitionError) as e:
                logger.warning(f"[Task #{pending.id}] Could not claim: {e}")
                continue
            logger.info(f"[Task #{task.id}] Processing {task.type.value} for {task.repo}")
            flow = asyncio.get_running_loop().create_task(self._run_task(task))
            self._active[task.id] = flow
            flow.add_done_callback(lambda _, task_id=task.id: self._active.pop(task_id, None))
            launched.append(task.id)
        if launched:
            self._notify()
        return launched

    def wake(self) -> None:
        """Run the next sweep now instead of at the end of the interval."""
        self._wakeup.set()

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Sweep immediately, then every ``interval`` seconds until stopped.

        Callers that set ``stop_event`` should also call ``wake``.
        """
        logger.info("Task processor started")
        while not stop_event.is_set():
            try:
                self.sweep()
            except TaskStoreError as e:
                logger.error(f"Sweep failed: {e}")
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()
        logger.info("Task processor stopped")

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for launched tasks to finish."""
        if self._active:
            await asyncio.wait(list(self._active.values()), timeout=timeout)

    # Per-task flows

    async def _run_task(self, task: Task) -> None:
        try:
            if task.type == TaskType.PR_COMMENT_FIX:
                await self._run_comment_fix(task)
            elif task.mode == ExecutionMode.TERMINAL:
                await self._run_in_terminal(task)
            else:
                await self._process_task(task)
        except Exception as e:
            logger.exception(f"[Task #{task.id}] Unexpected error")
            self._fail(task.id, str(e) or type(e).__name__)
        finally:
            self._notify()
            self.wake()

    def _handle_output(self, task_id: int, chunk: str) -> None:
        self.store.output_buffer.append(task_id, chunk)
        if self.on_output:
            self.on_output(task_id, chunk)

    async def _invoke_streaming(self, task: Task, prompt: str, allow_edits: bool) -> AssistantResult:
        current = self.store.get_task(task.id)
        if current is None or current.status != TaskStatus.RUNNING:
            return AssistantResult(False, "", "Task is no longer running")
        return await self.runner.invoke_streaming(
            task, prompt, allow_edits,
            on_output=self._handle_output,
            on_spawn=lambda pid: self.store.update_task_pid(task.id, pid),
        )

    async def _build_prompt(self, task: Task) -> str:
        learnings = await asyncio.to_thread(self.learnings_store.load, task.repo_path)
        return build_prompt(task, learnings)

    async def _process_task(self, task: Task) -> None:
        allow_edits = task.type.allows_edits
        prompt = await self._build_prompt(task)
        result = await self._invoke_streaming(task, prompt, allow_edits)

        if not result.success:
            logger.error(f"[Task #{task.id}] Failed: {result.error}")
            self._fail(task.id, result.error or "Unknown error")
            return

        pr_url = None
        if allow_edits:
            pr_url = await self.git_flows.handle_code_changes(task, result.output)

        if not self._still_running(task.id):
            logger.info(f"[Task #{task.id}] Finished after being stopped; result discarded")
            return

        await self.publisher.post_result_comment(task, build_result_comment(task, result.output, pr_url))
        final = f"{result.output}\n\nPR: {pr_url}" if pr_url else result.output
        if self._complete(task.id, final):
            logger.info(f"[Task #{task.id}] Completed{f' (PR: {pr_url})' if pr_url else ''}")
            await self._learn_if_retry(task)

    async def _run_comment_fix(self, task: Task) -> None:
        logger.info(f"[Task #{task.id}] Processing PR comment fix for "
                    f"{task.repo}#{task.context.pr_number}")
        outcome = await self.git_flows.process_pr_comment_fix(task, self._invoke_streaming)
        if outcome.success:
            if self._complete(task.id, outcome.result or ""):
                logger.info(f"[Task #{task.id}] Completed successfully")
                await self._learn_if_retry(task)
        else:
            logger.error(f"[Task #{task.id}] Error: {outcome.error}")
            self._fail(task.id, outcome.error or "Unknown error")

    async def _run_in_terminal(self, task: Task) -> None:
        prompt = await self._build_prompt(task)
        result = await asyncio.to_thread(self.runner.open_terminal, task, prompt,
                                         task.type.allows_edits)
        if not result.success:
            self._fail(task.id, result.error or "Failed to open terminal")
            return
        self.store.output_buffer.append(task.id, result.output + "\n")
        logger.info(f"[Task #{task.id}] {result.output}; waiting for manual completion")

    async def _learn_if_retry(self, task: Task) -> None:
        if self.learnings is None or not task.context.is_retry:
            return
        failed = self.store.get_task(task.context.retry_of_task_id)
        succeeded = self.store.get_task(task.id)
        if failed is None or succeeded is None:
            return
        learning = await self.learnings.learn_from_retry(failed, succeeded)
        if learning:
            logger.info(f"[Task #{task.id}] Recorded learning for {task.repo}")

    # Store transitions

    def _still_running(self, task_id: int) -> bool:
        current = self.store.get_task(task_id)
        return current is not None and current.status == TaskStatus.RUNNING

    def _complete(self, task_id: int, result: str) -> bool:
        try:
            return self.store.complete_task(task_id, result)
        except TaskStoreError as e:
            logger.error(f"[Task #{task_id}] Could not mark completed: {e}")
            return False

    def _fail(self, task_id: int, error: str) -> bool:
        try:
            return self.store.fail_task(task_id, error)
        except TaskStoreError as e:
            logger.error(f"[Task #{task_id}] Could not mark failed: {e}")
            return False

    def _notify(self) -> None:
        if self.on_update:
            self.on_update()

    # Control operations

    def _require(self, task_id: int) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return task

    def stop_task(self, task_id: int) -> bool:
        """Kill a running task's process and mark it failed.

        Raises:
            TaskNotFoundError: If the task does not exist
            InvalidTransitionError: If the task is not running
        """
        task = self._require(task_id)
        if task.status != TaskStatus.RUNNING:
            raise InvalidTransitionError(f"Task {task_id} is not running")
        self.registry.kill(task_id)
        stopped = self.store.fail_task(task_id, STOPPED_BY_USER)
        logger.info(f"[Task #{task_id}] Stopped by user")
        self._notify()
        self.wake()
        return stopped

    def complete_manually(self, task_id: int, result: Optional[str] = None) -> bool:
        """Complete a running terminal-mode task.

        Raises:
            TaskNotFoundError: If the task does not exist
            InvalidTransitionError: If the task is not a running terminal-mode task
        """
        task = self._require(task_id)
        if task.status != TaskStatus.RUNNING or task.mode != ExecutionMode.TERMINAL:
            raise InvalidTransitionError(
                f"Task {task_id} is not a running terminal-mode task"
            )
        completed = self.store.complete_task(task_id, result or COMPLETED_MANUALLY)
        self._notify()
        self.wake()
        return completed

    def steer(self, task_id: int, text: str) -> bool:
        return self.registry.steer(task_id, text)

    def open_terminal(self, task_id: int) -> Optional[str]:
        """Open a shell in a task's working tree. Returns the terminal used."""
        task = self._require(task_id)
        return self.runner.terminal.open_shell(task.id, task.repo_path, task.repo)

    def list_processes(self) -> List[Dict[str, Any]]:
        """Running tasks with an attached process."""
        return [
            {
                "task_id": task.id,
                "pid": task.pid,
                "repo": task.repo,
                "type": task.type.value,
                "started_at": task.started_at.isoformat() if task.started_at else None,
                "registered": self.registry.is_alive(task.id),
            }
            for task in self.store.get_tasks_with_pids()
        ]

    def kill_old_processes(self, hours: float = STALE_PROCESS_HOURS) -> int:
        """Signal processes of tasks that have been running longer than ``hours``.

        Task records are left as they are; stopping or deleting them is up to
        the operator.
        """
        cutoff = datetime.now() - timedelta(hours=hours)
        killed = 0
        for task in self.store.get_tasks_with_pids():
            if not task.started_at or task.started_at >= cutoff:
                continue
            if self.registry.kill(task.id) or _signal_pid(task.pid):
                killed += 1
        logger.info(f"Killed {killed} process(es) older than {hours:g} hours")
        return killed


def _signal_pid(pid: int) -> bool:
    try:
        os.kill(pid, signal.SIGTERM)
        return True
    except ProcessLookupError:
        return False
    except PermissionError as e:
        logger.warning(f"Not allowed to signal pid {pid}: {e}")
        return False
