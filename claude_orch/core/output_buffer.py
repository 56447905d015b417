"""In-memory streaming output for running tasks."""

from typing import Dict, Optional

from .constants import MAX_STREAMING_OUTPUT, TRUNCATION_MARKER


class OutputBuffer:
    """Per-task append-only text buffer capped at a fixed size.

    Once the cap is exceeded the oldest content is dropped and the buffer is
    prefixed with a truncation marker, so only the most recent output survives.
    Nothing here is persisted; the task store folds the final content into the
    task record at its terminal transition.
    """

    def __init__(self, max_size: int = MAX_STREAMING_OUTPUT, marker: str = TRUNCATION_MARKER):
        if max_size <= len(marker):
            raise ValueError("max_size must be larger than the truncation marker")
        self.max_size = max_size
        self.marker = marker
        self._buffers: Dict[int, str] = {}

    def append(self, task_id: int, chunk: str) -> None:
        current = self._buffers.get(task_id, "") + chunk
        if len(current) > self.max_size:
            keep = self.max_size - len(self.marker)
            current = self.marker + current[-keep:]
        self._buffers[task_id] = current

    def get(self, task_id: int) -> str:
        return self._buffers.get(task_id, "")

    def pop(self, task_id: int) -> Optional[str]:
        """Remove and return a task's buffer, or None if it never had output."""
        return self._buffers.pop(task_id, None)

    def clear(self, task_id: int) -> None:
        self._buffers.pop(task_id, None)

    def __contains__(self, task_id: int) -> bool:
        return task_id in self._buffers
