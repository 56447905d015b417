"""Registry of live assistant processes, keyed by task ID."""

import logging
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Encoder = Callable[[str], str]


class _Entry:
    __slots__ = ("process", "encode")

    def __init__(self, process, encode: Optional[Encoder]):
        self.process = process
        self.encode = encode


class ProcessRegistry:
    """Authoritative map of which task has a live process attached.

    The registry is owned by the dispatcher and only touched from the event
    loop thread, so plain dict operations are sufficient.
    """

    def __init__(self):
        self._entries: Dict[int, _Entry] = {}

    def register(self, task_id: int, process, encode: Optional[Encoder] = None) -> None:
        """Attach a process to a task.

        Args:
            task_id: Owning task
            process: An ``asyncio.subprocess.Process``-like handle
            encode: Optional framing applied to steering input before it is written
        """
        if task_id in self._entries:
            logger.warning(f"[Task #{task_id}] Replacing registered process")
        self._entries[task_id] = _Entry(process, encode)

    def deregister(self, task_id: int) -> bool:
        """Detach a task's process. Returns False if nothing was registered."""
        return self._entries.pop(task_id, None) is not None

    def get(self, task_id: int):
        entry = self._entries.get(task_id)
        return entry.process if entry else None

    def is_alive(self, task_id: int) -> bool:
        entry = self._entries.get(task_id)
        return entry is not None and entry.process.returncode is None

    def steer(self, task_id: int, text: str) -> bool:
        """Write additional input to a running task's process.

        Returns:
            True if the input was written, False if no live process is registered
        """
        entry = self._entries.get(task_id)
        if entry is None or entry.process.returncode is not None:
            return False
        stdin = entry.process.stdin
        if stdin is None or stdin.is_closing():
            return False
        payload = entry.encode(text) if entry.encode else text
        stdin.write((payload + "\n").encode())
        logger.info(f"[Task #{task_id}] Steering input sent ({len(text)} chars)")
        return True

    def kill(self, task_id: int) -> bool:
        """Terminate a task's process and deregister it.

        Returns:
            False if no process was registered
        """
        entry = self._entries.pop(task_id, None)
        if entry is None:
            return False
        try:
            entry.process.terminate()
        except ProcessLookupError:
            logger.debug(f"[Task #{task_id}] Process already exited")
        logger.info(f"[Task #{task_id}] Process {entry.process.pid} terminated")
        return True

    def list_active(self) -> List[Dict[str, int]]:
        return [
            {"task_id": task_id, "pid": entry.process.pid}
            for task_id, entry in self._entries.items()
        ]

    def __len__(self) -> int:
        return len(self._entries)
