"""Task command group and sub-commands."""

import click

from .create import create
from .list_tasks import list
from .show import show
from .logs import logs
from .delete import delete
from .control import complete, retry, steer, stop, terminal

__all__ = [
    'task',
    'create',
    'list',
    'show',
    'logs',
    'delete',
    'stop',
    'retry',
    'complete',
    'steer',
    'terminal',
]


@click.group()
def task():
    """Manage orchestrator tasks"""
    pass


# Register all sub-commands
task.add_command(create)
task.add_command(list)
task.add_command(show)
task.add_command(logs)
task.add_command(delete)
task.add_command(stop)
task.add_command(retry)
task.add_command(complete)
task.add_command(steer)
task.add_command(terminal)
