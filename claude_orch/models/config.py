"""Configuration models for the orchestrator."""

from typing import Dict, Literal

from pydantic import BaseModel, Field


TerminalId = Literal["auto", "gnome-terminal", "xterm", "tmux"]


class ServerConfig(BaseModel):
    """Webhook listener settings."""
    host: str = "127.0.0.1"
    port: int = Field(3003, ge=1, le=65535)
    webhooks_enabled: bool = True


class GitHubConfig(BaseModel):
    """GitHub credentials."""
    webhook_secret: str = ""
    token: str = ""


class AdoConfig(BaseModel):
    """Azure DevOps credentials."""
    organization: str = ""
    pat: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.organization and self.pat)


class AssistantConfig(BaseModel):
    """How the coding assistant is invoked and scheduled."""
    command: str = "claude"
    max_concurrent_tasks: int = Field(2, ge=1)
    timeout_seconds: float = Field(300.0, gt=0)
    sweep_interval_seconds: float = Field(5.0, gt=0)
    terminal_mode: bool = False
    preferred_terminal: TerminalId = "auto"


class ReposConfig(BaseModel):
    """Where local clones live and how remote names map onto them."""
    base_dir: str = "../"
    mapping: Dict[str, str] = Field(default_factory=dict)
    auto_scan: bool = True


class PollingConfig(BaseModel):
    """Periodic polling of GitHub and ADO for new work."""
    enabled: bool = True
    interval_seconds: float = Field(60.0, gt=0)


class OrchConfig(BaseModel):
    """Top-level configuration."""
    data_dir: str = ".orch"
    server: ServerConfig = Field(default_factory=ServerConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    ado: AdoConfig = Field(default_factory=AdoConfig)
    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    repos: ReposConfig = Field(default_factory=ReposConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
