"""Models for the orchestrator."""

from .config import (
    AdoConfig,
    AssistantConfig,
    GitHubConfig,
    OrchConfig,
    PollingConfig,
    ReposConfig,
    ServerConfig,
)
from .task import (
    EDIT_TASK_TYPES,
    ExecutionMode,
    ReviewComment,
    Task,
    TaskContext,
    TaskRequest,
    TaskSource,
    TaskStatus,
    TaskType,
)

__all__ = [
    'AdoConfig',
    'AssistantConfig',
    'GitHubConfig',
    'OrchConfig',
    'PollingConfig',
    'ReposConfig',
    'ServerConfig',
    'EDIT_TASK_TYPES',
    'ExecutionMode',
    'ReviewComment',
    'Task',
    'TaskContext',
    'TaskRequest',
    'TaskSource',
    'TaskStatus',
    'TaskType',
]
