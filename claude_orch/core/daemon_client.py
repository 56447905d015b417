"""Client for communicating with the task daemon."""

import json
import socket
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import SOCKET_FILE

RESPONSE_TIMEOUT = 30.0  # seconds


class DaemonClient:
    """Client for task daemon communication."""

    def __init__(self, data_dir: Path, socket_path: Optional[str] = None):
        self.socket_path = socket_path or str(Path(data_dir) / SOCKET_FILE)

    def _send_request(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Send a request to the daemon and get response."""
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(RESPONSE_TIMEOUT)
        try:
            sock.connect(self.socket_path)
            sock.sendall(json.dumps(request).encode('utf-8') + b"\n")
            with sock.makefile('rb') as stream:
                line = stream.readline()
            if not line:
                return {"error": "Daemon closed the connection without responding"}
            return json.loads(line.decode('utf-8'))
        except FileNotFoundError:
            return {"error": "Daemon not running (socket not found)"}
        except ConnectionRefusedError:
            return {"error": "Daemon not accepting connections"}
        except (OSError, ValueError) as e:
            return {"error": f"Communication error: {e}"}
        finally:
            sock.close()

    def create_task(self, task_type: str, repo: str, context: Optional[Dict[str, Any]] = None,
                    repo_path: Optional[str] = None) -> Dict[str, Any]:
        """Queue a new task."""
        request = {"action": "create", "type": task_type, "repo": repo, "context": context or {}}
        if repo_path:
            request["repo_path"] = repo_path
        return self._send_request(request)

    def list_tasks(self, status: Optional[str] = None, limit: Optional[int] = None) -> Dict[str, Any]:
        """List tasks, newest first."""
        return self._send_request({"action": "list", "status": status, "limit": limit})

    def get_task(self, task_id: int) -> Dict[str, Any]:
        return self._send_request({"action": "get", "task_id": task_id})

    def get_output(self, task_id: int) -> Dict[str, Any]:
        """Get live or persisted task output."""
        return self._send_request({"action": "output", "task_id": task_id})

    def stop_task(self, task_id: int) -> Dict[str, Any]:
        return self._send_request({"action": "stop", "task_id": task_id})

    def delete_task(self, task_id: int) -> Dict[str, Any]:
        return self._send_request({"action": "delete", "task_id": task_id})

    def retry_task(self, task_id: int) -> Dict[str, Any]:
        return self._send_request({"action": "retry", "task_id": task_id})

    def complete_task(self, task_id: int, result: Optional[str] = None) -> Dict[str, Any]:
        """Complete a running terminal-mode task."""
        return self._send_request({"action": "complete", "task_id": task_id, "result": result})

    def steer_task(self, task_id: int, text: str) -> Dict[str, Any]:
        """Send follow-up input to a running task's assistant."""
        return self._send_request({"action": "steer", "task_id": task_id, "text": text})

    def open_terminal(self, task_id: int) -> Dict[str, Any]:
        return self._send_request({"action": "terminal", "task_id": task_id})

    def list_processes(self) -> Dict[str, Any]:
        return self._send_request({"action": "processes"})

    def kill_old_processes(self, hours: Optional[float] = None) -> Dict[str, Any]:
        return self._send_request({"action": "kill_old", "hours": hours})
