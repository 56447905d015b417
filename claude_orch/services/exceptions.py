"""Custom exceptions for the orchestrator."""


class ServiceError(Exception):
    """Base exception for all service-related errors."""

    pass


class GitServiceError(ServiceError):
    """Exception raised for Git service operations."""

    pass


class BranchNotFoundError(GitServiceError):
    """Exception raised when a Git branch is not found."""

    pass


class GitHubServiceError(ServiceError):
    """Exception raised when a GitHub CLI call fails."""

    pass


class AdoServiceError(ServiceError):
    """Exception raised when an Azure DevOps REST call fails."""

    pass


class TaskStoreError(ServiceError):
    """Exception raised for task store operations."""

    pass


class TaskNotFoundError(TaskStoreError):
    """Exception raised when a task ID does not exist."""

    pass


class InvalidTransitionError(TaskStoreError):
    """Exception raised for a status change outside pending -> running -> terminal."""

    pass


class ConfigError(ServiceError):
    """Exception raised when configuration cannot be loaded or is invalid."""

    pass


class DaemonRequestError(ServiceError):
    """Exception raised when a control request is missing or has bad fields."""

    pass
