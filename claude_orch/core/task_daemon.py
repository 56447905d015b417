"""Task daemon: runs the dispatcher, poller and webhook listener on one event loop."""

import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import uvicorn

from ..models.config import OrchConfig
from ..models.task import TaskContext, TaskType
from ..services.exceptions import DaemonRequestError, ServiceError
from ..utils.config_manager import ConfigManager
from ..webhooks import create_app
from .ado_client import AdoClient
from .assistant_runner import AssistantRunner
from .constants import (
    DEFAULT_LIST_LIMIT,
    SHUTDOWN_GRACE_SECONDS,
    SOCKET_FILE,
    STALE_PROCESS_HOURS,
)
from .dispatcher import Dispatcher
from .git_flows import GitFlowOrchestrator
from .github_integration import GitHubIntegration
from .learnings import LearningsExtractor, LearningsStore
from .poller import RepoPoller
from .process_registry import ProcessRegistry
from .publisher import Publisher
from .repo_scanner import RepoResolver
from .task_store import TaskStore
from .terminal import TerminalLauncher

logger = logging.getLogger(__name__)


class TaskDaemon:
    """Daemon that owns the task store and every task flow."""

    def __init__(self, config: OrchConfig, data_dir: Path, socket_path: Optional[str] = None):
        self.config = config
        self.data_dir = Path(data_dir)
        self.socket_path = socket_path or str(self.data_dir / SOCKET_FILE)

        self.store = TaskStore(self.data_dir)
        self.resolver = RepoResolver(config.repos)
        self.github = GitHubIntegration(config.github.token)
        self.ado = None
        if config.ado.is_configured:
            self.ado = AdoClient(config.ado.organization, config.ado.pat)

        assistant = config.assistant
        self.runner = AssistantRunner(
            command=assistant.command,
            timeout=assistant.timeout_seconds,
            registry=ProcessRegistry(),
            terminal=TerminalLauncher(assistant.preferred_terminal),
        )
        self.publisher = Publisher(self.github, self.ado)
        learnings_store = LearningsStore()
        self.dispatcher = Dispatcher(
            self.store,
            self.runner,
            GitFlowOrchestrator(self.publisher),
            self.publisher,
            learnings=LearningsExtractor(self.runner.invoke, learnings_store),
            learnings_store=learnings_store,
            max_concurrent=assistant.max_concurrent_tasks,
            interval=assistant.sweep_interval_seconds,
            terminal_mode=assistant.terminal_mode,
        )
        self.poller: Optional[RepoPoller] = None
        if config.polling.enabled:
            self.poller = RepoPoller(self.store, self.resolver, self.github, self.ado,
                                     interval=config.polling.interval_seconds)
        self.stop_event = asyncio.Event()
        self._web_server: Optional[uvicorn.Server] = None

    # Control requests

    async def _handle_connection(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter) -> None:
        """Answer one newline-terminated JSON request, then close."""
        try:
            data = await reader.readline()
            try:
                request = json.loads(data.decode('utf-8'))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.error(f"Failed to parse JSON request: {e}")
                response = {"error": f"Invalid JSON: {e}"}
            else:
                response = self.handle_request(request)
            writer.write(json.dumps(response).encode('utf-8') + b"\n")
            await writer.drain()
        except ConnectionError as e:
            logger.error(f"Error handling connection: {e}")
        finally:
            writer.close()

    def handle_request(self, request: Any) -> Dict[str, Any]:
        """Process a request, turning failures into an ``error`` response."""
        if not isinstance(request, dict):
            return {"error": "Request must be a JSON object"}
        try:
            return self._process_request(request)
        except ServiceError as e:
            return {"error": str(e)}
        except Exception as e:
            logger.error(f"Error processing {request.get('action')!r}: {type(e).__name__}: {e}",
                         exc_info=True)
            return {"error": str(e)}

    def _process_request(self, request: Dict[str, Any]) -> Dict[str, Any]:
        action = request.get('action')
        logger.debug(f"Processing request with action: {action}")

        if action == 'create':
            return self._create(request)

        elif action == 'list':
            tasks = self.store.list_tasks(limit=None)
            status = request.get('status')
            if status:
                tasks = [t for t in tasks if t.status.value == status]
            tasks = tasks[:request.get('limit') or DEFAULT_LIST_LIMIT]
            return {"tasks": [dict(t.summary(), pid=t.pid) for t in tasks]}

        elif action == 'get':
            task = self._require(request)
            return {"task": self.store.export_task(task)}

        elif action == 'output':
            task = self._require(request)
            return {
                "task_id": task.id,
                "status": task.status.value,
                "output": self.store.get_output(task.id),
            }

        elif action == 'stop':
            task_id = _task_id(request)
            return {"task_id": task_id, "stopped": self.dispatcher.stop_task(task_id)}

        elif action == 'delete':
            task = self._require(request)
            if not self.store.delete_task(task.id):
                return {"error": f"Task {task.id} is running; stop it first"}
            return {"task_id": task.id, "deleted": True}

        elif action == 'retry':
            task = self._require(request)
            retry = self.store.retry_task(task.id)
            if retry is None:
                return {"error": f"Task {task.id} has not failed"}
            self.dispatcher.wake()
            return {"task": self.store.export_task(retry)}

        elif action == 'complete':
            task_id = _task_id(request)
            completed = self.dispatcher.complete_manually(task_id, request.get('result'))
            return {"task_id": task_id, "completed": completed}

        elif action == 'steer':
            task_id = _task_id(request)
            text = request.get('text')
            if not text:
                raise DaemonRequestError("text is required")
            return {"task_id": task_id, "sent": self.dispatcher.steer(task_id, text)}

        elif action == 'terminal':
            task_id = _task_id(request)
            terminal = self.dispatcher.open_terminal(task_id)
            if terminal is None:
                return {"error": "No terminal emulator available"}
            return {"task_id": task_id, "terminal": terminal}

        elif action == 'processes':
            return {"processes": self.dispatcher.list_processes()}

        elif action == 'kill_old':
            hours = float(request.get('hours') or STALE_PROCESS_HOURS)
            return {"killed": self.dispatcher.kill_old_processes(hours)}

        else:
            return {"error": f"Unknown action: {action}"}

    def _require(self, request: Dict[str, Any]):
        task_id = _task_id(request)
        task = self.store.get_task(task_id)
        if task is None:
            raise DaemonRequestError(f"Task {task_id} not found")
        return task

    def _create(self, request: Dict[str, Any]) -> Dict[str, Any]:
        try:
            task_type = TaskType(request.get('type'))
        except ValueError:
            raise DaemonRequestError(f"Unknown task type: {request.get('type')}")
        repo = request.get('repo')
        if not repo:
            raise DaemonRequestError("repo is required")

        context = TaskContext.from_dict(request.get('context') or {})
        if context.pr_url and context.pr_number is None:
            context.pr_number = GitHubIntegration.get_pr_number_from_url(context.pr_url)
        repo_path = request.get('repo_path') or str(self.resolver.resolve_repo_path(repo))

        task = self.store.create_task(task_type, repo, repo_path, context)
        self.dispatcher.wake()
        return {"task": self.store.export_task(task)}

    # Lifecycle

    def stop(self) -> None:
        """Ask every loop to finish; safe to call more than once."""
        if not self.stop_event.is_set():
            logger.info("Shutdown requested")
        self.stop_event.set()
        self.dispatcher.wake()
        if self._web_server is not None:
            self._web_server.should_exit = True

    def _prepare_socket(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if os.path.exists(self.socket_path):
            os.unlink(self.socket_path)
            logger.info(f"Removed existing socket at {self.socket_path}")

    async def _serve_webhooks(self) -> None:
        app = create_app(self.store, self.resolver, self.config, on_created=self.dispatcher.wake)
        server_config = self.config.server
        self._web_server = uvicorn.Server(uvicorn.Config(
            app, host=server_config.host, port=server_config.port, log_level="info",
        ))
        logger.info(f"Webhook listener on http://{server_config.host}:{server_config.port}")
        try:
            await self._web_server.serve()
        except SystemExit:
            # uvicorn exits when it cannot bind
            logger.error("Webhook listener failed to start; continuing without it")
            return
        if not self.stop_event.is_set():
            # uvicorn consumed a shutdown signal meant for the whole daemon
            self.stop()

    async def run(self) -> None:
        """Serve until SIGINT/SIGTERM or ``stop``."""
        logger.info("Starting task daemon...")
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.stop)

        if await asyncio.to_thread(self.github.is_available):
            logger.info("✓ GitHub CLI authenticated")
        else:
            logger.info("✗ GitHub CLI not available - GitHub features disabled")

        self._prepare_socket()
        server = await asyncio.start_unix_server(self._handle_connection, path=self.socket_path)
        logger.info(f"✓ Task daemon listening on {self.socket_path}")

        workers = [asyncio.create_task(self.dispatcher.run_forever(self.stop_event))]
        if self.poller is not None:
            workers.append(asyncio.create_task(self.poller.run_forever(self.stop_event)))
        if self.config.server.webhooks_enabled:
            workers.append(asyncio.create_task(self._serve_webhooks()))

        try:
            await self.stop_event.wait()
        finally:
            server.close()
            await server.wait_closed()
            await asyncio.gather(*workers, return_exceptions=True)
            await self.dispatcher.drain(timeout=SHUTDOWN_GRACE_SECONDS)
            self.shutdown()

    def shutdown(self) -> None:
        """Remove the control socket."""
        if os.path.exists(self.socket_path):
            try:
                os.unlink(self.socket_path)
                logger.info(f"Removed socket file {self.socket_path}")
            except OSError as e:
                logger.error(f"Error removing socket file: {e}")
        logger.info("Daemon shutdown complete")


def _task_id(request: Dict[str, Any]) -> int:
    try:
        return int(request['task_id'])
    except (KeyError, TypeError, ValueError):
        raise DaemonRequestError("A numeric task_id is required")


def main(config_file: Optional[Path] = None) -> None:
    """Main entry point for the daemon."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    try:
        manager = ConfigManager(config_file)
        config = manager.load()
        daemon = TaskDaemon(config, manager.data_dir(config))
        asyncio.run(daemon.run())
    except Exception as e:
        logger.error(f"Fatal error in daemon main: {e}", exc_info=True)
        sys.exit(1)
