"""Persistent task store: the single source of truth for queue state."""
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models.task import ExecutionMode, Task, TaskContext, TaskStatus, TaskType
from ..services.exceptions import InvalidTransitionError, TaskNotFoundError, TaskStoreError
from .constants import DEFAULT_LIST_LIMIT, DEFAULT_PENDING_LIMIT, TASKS_DB_FILE
from .output_buffer import OutputBuffer

logger = logging.getLogger(__name__)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class TaskStore:
    """Durable record of every task, kept in a single JSON document.

    Every mutation is written (and fsynced) before the call returns, and every
    read goes back to disk, so counts derived from the store are never stale.
    """

    def __init__(self, data_dir: Path, output_buffer: Optional[OutputBuffer] = None):
        """Initialize the task store.

        Args:
            data_dir: Directory holding the task database
            output_buffer: Live output buffer folded into tasks at terminal transitions
        """
        self.data_dir = Path(data_dir)
        self.db_file = self.data_dir / TASKS_DB_FILE
        self.output_buffer = output_buffer if output_buffer is not None else OutputBuffer()
        self._ensure_storage_structure()

    def _ensure_storage_structure(self) -> None:
        """Ensure the data directory and database file exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if not self.db_file.exists():
            self._save_db({"next_id": 1, "tasks": []})

    def _load_db(self) -> Dict[str, Any]:
        """Load the task database from disk."""
        try:
            with open(self.db_file) as f:
                return json.load(f)
        except FileNotFoundError:
            return {"next_id": 1, "tasks": []}
        except json.JSONDecodeError as e:
            raise TaskStoreError(f"Task database {self.db_file} is corrupt: {e}") from e

    def _save_db(self, db: Dict[str, Any]) -> None:
        """Atomically replace the task database on disk."""
        tmp_file = self.db_file.with_suffix(".tmp")
        with open(tmp_file, 'w') as f:
            json.dump(db, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_file, self.db_file)

    def _serialize_task(self, task: Task) -> Dict[str, Any]:
        """Serialize a task to JSON-compatible dict."""
        return {
            "id": task.id,
            "type": task.type.value,
            "status": task.status.value,
            "repo": task.repo,
            "repo_path": task.repo_path,
            "context": task.context.to_dict(),
            "result": task.result,
            "error": task.error,
            "output": task.output,
            "pid": task.pid,
            "mode": task.mode.value if task.mode else None,
            "created_at": task.created_at.isoformat(),
            "started_at": _format_time(task.started_at),
            "completed_at": _format_time(task.completed_at),
        }

    def _deserialize_task(self, data: Dict[str, Any]) -> Task:
        """Deserialize a task from JSON data."""
        return Task(
            id=data["id"],
            type=TaskType(data["type"]),
            status=TaskStatus(data["status"]),
            repo=data["repo"],
            repo_path=data["repo_path"],
            context=TaskContext.from_dict(data.get("context") or {}),
            result=data.get("result"),
            error=data.get("error"),
            output=data.get("output"),
            pid=data.get("pid"),
            mode=ExecutionMode(data["mode"]) if data.get("mode") else None,
            created_at=datetime.fromisoformat(data["created_at"]),
            started_at=_parse_time(data.get("started_at")),
            completed_at=_parse_time(data.get("completed_at")),
        )

    def _all_tasks(self) -> List[Task]:
        return [self._deserialize_task(entry) for entry in self._load_db()["tasks"]]

    def _update_task(self, task_id: int, **updates) -> Task:
        """Apply field updates to a stored task and persist them."""
        db = self._load_db()
        for index, entry in enumerate(db["tasks"]):
            if entry["id"] == task_id:
                task = self._deserialize_task(entry)
                for key, value in updates.items():
                    setattr(task, key, value)
                db["tasks"][index] = self._serialize_task(task)
                self._save_db(db)
                return task
        raise TaskNotFoundError(f"Task {task_id} not found")

    def create_task(self, task_type: TaskType, repo: str, repo_path: str,
                    context: Optional[TaskContext] = None) -> Task:
        """Create a new pending task.

        Args:
            task_type: What the assistant should do
            repo: Logical repository name
            repo_path: Local working tree path
            context: Task-type specific fields

        Returns:
            The stored Task
        """
        db = self._load_db()
        task = Task(
            id=db["next_id"],
            type=task_type,
            status=TaskStatus.PENDING,
            repo=repo,
            repo_path=str(repo_path),
            context=context or TaskContext(),
            created_at=datetime.now(),
        )
        db["next_id"] += 1
        db["tasks"].append(self._serialize_task(task))
        self._save_db(db)
        logger.info(f"[Task #{task.id}] Created {task_type.value} task for {repo}")
        return task

    def get_task(self, task_id: int) -> Optional[Task]:
        """Get a task by ID.

        Returns:
            Task if found, None otherwise
        """
        for entry in self._load_db()["tasks"]:
            if entry["id"] == task_id:
                return self._deserialize_task(entry)
        return None

    def list_tasks(self, limit: Optional[int] = DEFAULT_LIST_LIMIT) -> List[Task]:
        """List tasks, newest first."""
        tasks = sorted(self._all_tasks(), key=lambda t: (t.created_at, t.id), reverse=True)
        return tasks[:limit] if limit else tasks

    def get_pending_tasks(self, limit: int = DEFAULT_PENDING_LIMIT) -> List[Task]:
        """Get pending tasks, oldest first."""
        pending = [t for t in self._all_tasks() if t.status == TaskStatus.PENDING]
        pending.sort(key=lambda t: (t.created_at, t.id))
        return pending[:max(limit, 0)]

    def get_running_count(self) -> int:
        """Count tasks whose status is running, read fresh from disk."""
        return sum(1 for t in self._all_tasks() if t.status == TaskStatus.RUNNING)

    def get_tasks_with_pids(self) -> List[Task]:
        """Running tasks that have an attached process."""
        return [t for t in self._all_tasks() if t.status == TaskStatus.RUNNING and t.pid]

    def get_output(self, task_id: int) -> str:
        """Live streaming output if the task has any, else the persisted output."""
        if task_id in self.output_buffer:
            return self.output_buffer.get(task_id)
        task = self.get_task(task_id)
        return (task.output or "") if task else ""

    def export_task(self, task: Task) -> Dict[str, Any]:
        """JSON view of a task for clients, with live output while it runs."""
        data = self._serialize_task(task)
        if task.status == TaskStatus.RUNNING:
            data["output"] = self.get_output(task.id)
        return data

    def start_task(self, task_id: int, mode: ExecutionMode = ExecutionMode.STREAMING) -> Task:
        """Claim a pending task.

        Raises:
            TaskNotFoundError: If the task does not exist
            InvalidTransitionError: If the task is not pending
        """
        task = self.get_task(task_id)
        if not task:
            raise TaskNotFoundError(f"Task {task_id} not found")
        if task.status != TaskStatus.PENDING:
            raise InvalidTransitionError(
                f"Task {task_id} cannot start from status {task.status.value}"
            )
        self.output_buffer.clear(task_id)
        return self._update_task(task_id, status=TaskStatus.RUNNING, mode=mode,
                                 started_at=datetime.now())

    def update_task_pid(self, task_id: int, pid: Optional[int]) -> None:
        """Record the OS process currently attached to a running task."""
        task = self.get_task(task_id)
        if not task or task.status != TaskStatus.RUNNING:
            return
        self._update_task(task_id, pid=pid)

    def _finish_task(self, task_id: int, status: TaskStatus, **payload) -> bool:
        task = self.get_task(task_id)
        if not task:
            raise TaskNotFoundError(f"Task {task_id} not found")
        if task.status.is_terminal:
            logger.debug(f"[Task #{task_id}] Already {task.status.value}, ignoring {status.value}")
            return False
        if task.status != TaskStatus.RUNNING:
            raise InvalidTransitionError(
                f"Task {task_id} cannot become {status.value} from {task.status.value}"
            )
        output = self.output_buffer.pop(task_id)
        self._update_task(task_id, status=status, output=output, pid=None,
                          completed_at=datetime.now(), **payload)
        return True

    def complete_task(self, task_id: int, result: str) -> bool:
        """Mark a running task completed.

        Returns:
            True if the task transitioned, False if it was already terminal
        """
        return self._finish_task(task_id, TaskStatus.COMPLETED, result=result)

    def fail_task(self, task_id: int, error: str) -> bool:
        """Mark a running task failed.

        Returns:
            True if the task transitioned, False if it was already terminal
        """
        return self._finish_task(task_id, TaskStatus.FAILED, error=error)

    def delete_task(self, task_id: int) -> bool:
        """Delete a task that is not running.

        Returns:
            True if the record was removed
        """
        db = self._load_db()
        for index, entry in enumerate(db["tasks"]):
            if entry["id"] != task_id:
                continue
            if entry["status"] == TaskStatus.RUNNING.value:
                return False
            del db["tasks"][index]
            self._save_db(db)
            self.output_buffer.clear(task_id)
            return True
        return False

    def retry_task(self, failed_task_id: int) -> Optional[Task]:
        """Create a new pending task from a failed one.

        Returns:
            The new task, or None unless the source task exists and failed
        """
        failed = self.get_task(failed_task_id)
        if not failed or failed.status != TaskStatus.FAILED:
            return None
        context = failed.context.with_retry(failed.id, failed.error or "Unknown error")
        return self.create_task(failed.type, failed.repo, failed.repo_path, context)
