"""Core functionality for the orchestrator."""

from .assistant_runner import AssistantRunner
from .dispatcher import Dispatcher
from .output_buffer import OutputBuffer
from .process_registry import ProcessRegistry
from .task_store import TaskStore

__all__ = [
    'AssistantRunner',
    'Dispatcher',
    'OutputBuffer',
    'ProcessRegistry',
    'TaskStore'
]
