"""CLI Helper Functions for Claude Orch.

Commands share these to load configuration, reach the daemon and print
task data consistently:
- Configuration loading with friendly errors
- Daemon client construction and response checking
- Table formatting for task listings
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click
from tabulate import tabulate

from claude_orch.core.daemon_client import DaemonClient
from claude_orch.models.config import OrchConfig
from claude_orch.services.exceptions import ConfigError
from claude_orch.utils.config_manager import ConfigManager

STATUS_COLORS = {
    'pending': 'yellow',
    'running': 'cyan',
    'completed': 'green',
    'failed': 'red',
}


def load_config(ctx: click.Context) -> Tuple[ConfigManager, OrchConfig]:
    """Load configuration, exit with error if it is invalid."""
    manager: ConfigManager = ctx.obj or ConfigManager()
    try:
        return manager, manager.load()
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def get_data_dir(ctx: click.Context) -> Path:
    manager, config = load_config(ctx)
    return manager.data_dir(config)


def get_daemon_client(ctx: click.Context) -> DaemonClient:
    """Build a client for the daemon serving the current configuration."""
    return DaemonClient(get_data_dir(ctx))


def check_response(response: Dict[str, Any]) -> Dict[str, Any]:
    """Exit with the daemon's error message if the response carries one."""
    if "error" in response:
        click.echo(f"Error: {response['error']}", err=True)
        sys.exit(1)
    return response


def format_status(status: str) -> str:
    return click.style(status.upper(), fg=STATUS_COLORS.get(status, 'white'))


def format_timestamp(value: Optional[str]) -> str:
    """ISO timestamp -> 'YYYY-MM-DD HH:MM:SS', or '-' when missing."""
    if not value:
        return "-"
    return datetime.fromisoformat(value).strftime('%Y-%m-%d %H:%M:%S')


def format_task_table(tasks: List[Dict[str, Any]],
                      headers: Optional[List[str]] = None,
                      max_title_length: int = 50) -> str:
    """Format task summaries as a table with consistent styling.

    Args:
        tasks: Task summaries as returned by the daemon's list action
        headers: Optional custom headers (defaults to standard headers)
        max_title_length: Maximum title length before truncation

    Returns:
        Formatted table string
    """
    if headers is None:
        headers = ["ID", "TYPE", "STATUS", "REPO", "TITLE", "CREATED"]

    table_data = []
    for task_item in tasks:
        title = (task_item.get('title') or '').split('\n')[0]
        if len(title) > max_title_length:
            title = title[:max_title_length - 3] + "..."
        table_data.append([
            task_item['id'],
            task_item['type'],
            format_status(task_item['status']),
            task_item['repo'],
            title,
            format_timestamp(task_item.get('created_at')),
        ])

    return tabulate(table_data, headers=headers, tablefmt="simple")
