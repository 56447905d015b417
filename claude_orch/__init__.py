"""Claude Orch - Turn GitHub and Azure DevOps events into coding-assistant tasks."""

__version__ = "0.1.0"

# Export main CLI for convenience
from .cli.main import cli

__all__ = ['cli']
