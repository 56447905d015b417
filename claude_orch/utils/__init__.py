"""Utilities for the orchestrator."""

from .config_manager import ConfigManager, masked_config

__all__ = [
    'ConfigManager',
    'masked_config'
]
