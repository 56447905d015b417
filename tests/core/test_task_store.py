"""Tests for TaskStore."""
import json

import pytest

from claude_orch.core.constants import TASKS_DB_FILE
from claude_orch.core.output_buffer import OutputBuffer
from claude_orch.core.task_store import TaskStore
from claude_orch.models.task import (
    ExecutionMode,
    ReviewComment,
    TaskContext,
    TaskStatus,
    TaskType,
)
from claude_orch.services.exceptions import (
    InvalidTransitionError,
    TaskNotFoundError,
    TaskStoreError,
)


class TestTaskStoreCreation:
    """Creating and reading tasks."""

    def test_init_creates_empty_db(self, data_dir):
        """The DB file exists with an empty task list and ID counter at 1."""
        TaskStore(data_dir)

        db = json.loads((data_dir / TASKS_DB_FILE).read_text())
        assert db == {"next_id": 1, "tasks": []}

    def test_create_task_assigns_increasing_ids(self, make_task):
        first = make_task()
        second = make_task()

        assert first.id == 1
        assert second.id == 2
        assert first.status == TaskStatus.PENDING
        assert first.result is None and first.error is None and first.output is None

    def test_ids_are_not_reused_after_delete(self, store, make_task):
        task = make_task()
        assert store.delete_task(task.id)

        assert make_task().id == task.id + 1

    def test_context_round_trips_through_disk(self, data_dir, repo_path):
        """Nested review comments and enums survive a fresh store instance."""
        context = TaskContext(
            pr_number=5,
            branch="feat/x",
            review_comments=[ReviewComment(id=11, path="a.py", line=3, body="rename")],
        )
        created = TaskStore(data_dir).create_task(TaskType.PR_COMMENT_FIX, "octo/app",
                                                  str(repo_path), context)

        loaded = TaskStore(data_dir).get_task(created.id)
        assert loaded.type == TaskType.PR_COMMENT_FIX
        assert loaded.context.review_comments[0].body == "rename"
        assert loaded.context.branch == "feat/x"

    def test_get_missing_task_returns_none(self, store):
        assert store.get_task(999) is None

    def test_list_tasks_newest_first_with_limit(self, store, make_task):
        for _ in range(3):
            make_task()

        assert [t.id for t in store.list_tasks()] == [3, 2, 1]
        assert [t.id for t in store.list_tasks(limit=2)] == [3, 2]

    def test_get_pending_tasks_oldest_first(self, store, make_task):
        for _ in range(3):
            make_task()
        store.start_task(1)

        assert [t.id for t in store.get_pending_tasks()] == [2, 3]
        assert [t.id for t in store.get_pending_tasks(limit=1)] == [2]
        assert store.get_pending_tasks(limit=0) == []

    def test_corrupt_db_raises(self, data_dir):
        store = TaskStore(data_dir)
        (data_dir / TASKS_DB_FILE).write_text("{not json")

        with pytest.raises(TaskStoreError):
            store.list_tasks()


class TestTaskStoreTransitions:
    """Status changes and their guards."""

    def test_start_task_claims_pending(self, store, make_task):
        task = make_task()

        started = store.start_task(task.id, ExecutionMode.TERMINAL)

        assert started.status == TaskStatus.RUNNING
        assert started.mode == ExecutionMode.TERMINAL
        assert started.started_at is not None
        assert store.get_running_count() == 1

    def test_start_task_twice_is_rejected(self, store, make_task):
        task = make_task()
        store.start_task(task.id)

        with pytest.raises(InvalidTransitionError):
            store.start_task(task.id)

    def test_start_missing_task(self, store):
        with pytest.raises(TaskNotFoundError):
            store.start_task(42)

    def test_complete_folds_buffered_output(self, store, make_task):
        task = make_task()
        store.start_task(task.id)
        store.output_buffer.append(task.id, "working...\n")

        assert store.complete_task(task.id, "done")

        finished = store.get_task(task.id)
        assert finished.status == TaskStatus.COMPLETED
        assert finished.result == "done"
        assert finished.output == "working...\n"
        assert finished.completed_at is not None
        assert task.id not in store.output_buffer

    def test_terminal_task_ignores_later_transitions(self, store, make_task):
        """First terminal transition wins; later ones are no-ops."""
        task = make_task()
        store.start_task(task.id)
        assert store.fail_task(task.id, "Stopped by user")

        assert store.complete_task(task.id, "late result") is False

        finished = store.get_task(task.id)
        assert finished.status == TaskStatus.FAILED
        assert finished.error == "Stopped by user"
        assert finished.result is None

    def test_pending_task_cannot_complete(self, store, make_task):
        task = make_task()

        with pytest.raises(InvalidTransitionError):
            store.complete_task(task.id, "nope")

    def test_pid_only_recorded_while_running(self, store, make_task):
        task = make_task()
        store.update_task_pid(task.id, 100)
        assert store.get_task(task.id).pid is None

        store.start_task(task.id)
        store.update_task_pid(task.id, 100)
        assert [t.id for t in store.get_tasks_with_pids()] == [task.id]

        store.complete_task(task.id, "ok")
        assert store.get_task(task.id).pid is None
        assert store.get_tasks_with_pids() == []

    def test_running_count_tracks_status(self, store, make_task):
        a, b = make_task(), make_task()
        store.start_task(a.id)
        store.start_task(b.id)
        assert store.get_running_count() == 2

        store.fail_task(a.id, "boom")
        assert store.get_running_count() == 1


class TestTaskStoreDeleteRetry:
    """Deleting and retrying tasks."""

    def test_delete_refuses_running_task(self, store, make_task):
        task = make_task()
        store.start_task(task.id)

        assert store.delete_task(task.id) is False
        assert store.get_task(task.id) is not None

    def test_delete_missing_task(self, store):
        assert store.delete_task(7) is False

    def test_retry_creates_linked_task(self, store, make_task):
        task = make_task(issue_number=9)
        store.start_task(task.id)
        store.fail_task(task.id, "tests failed")

        retry = store.retry_task(task.id)

        assert retry.id != task.id
        assert retry.status == TaskStatus.PENDING
        assert retry.type == task.type
        assert retry.context.issue_number == 9
        assert retry.context.retry_of_task_id == task.id
        assert retry.context.retry_error == "tests failed"
        assert retry.context.retry_count == 1
        # source untouched
        assert store.get_task(task.id).status == TaskStatus.FAILED

    def test_retry_of_retry_increments_count(self, store, make_task):
        task = make_task()
        store.start_task(task.id)
        store.fail_task(task.id, "first")
        retry = store.retry_task(task.id)
        store.start_task(retry.id)
        store.fail_task(retry.id, "second")

        again = store.retry_task(retry.id)

        assert again.context.retry_count == 2
        assert again.context.retry_of_task_id == retry.id

    def test_retry_requires_failed_task(self, store, make_task):
        task = make_task()

        assert store.retry_task(task.id) is None
        assert store.retry_task(999) is None


class TestTaskStoreOutput:
    """Live and persisted output views."""

    def test_get_output_prefers_live_buffer(self, store, make_task):
        task = make_task()
        store.start_task(task.id)
        store.output_buffer.append(task.id, "live")

        assert store.get_output(task.id) == "live"
        assert store.export_task(store.get_task(task.id))["output"] == "live"

    def test_get_output_falls_back_to_persisted(self, store, make_task):
        task = make_task()
        store.start_task(task.id)
        store.output_buffer.append(task.id, "final")
        store.complete_task(task.id, "ok")

        assert store.get_output(task.id) == "final"

    def test_start_clears_stale_buffer(self, data_dir):
        buffer = OutputBuffer()
        store = TaskStore(data_dir, output_buffer=buffer)
        task = store.create_task(TaskType.DOCS, "octo/app", "/tmp/app")
        buffer.append(task.id, "stale")

        store.start_task(task.id)

        assert store.get_output(task.id) == ""
