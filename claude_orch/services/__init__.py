"""Service layer for abstracting Git operations and shared errors."""

from .git_service import GitService, GitStatus
from .exceptions import (
    ServiceError,
    GitServiceError,
    BranchNotFoundError,
    GitHubServiceError,
    AdoServiceError,
    TaskStoreError,
    TaskNotFoundError,
    InvalidTransitionError,
    ConfigError,
    DaemonRequestError,
)

__all__ = [
    "GitService",
    "GitStatus",
    "ServiceError",
    "GitServiceError",
    "BranchNotFoundError",
    "GitHubServiceError",
    "AdoServiceError",
    "TaskStoreError",
    "TaskNotFoundError",
    "InvalidTransitionError",
    "ConfigError",
    "DaemonRequestError",
]
