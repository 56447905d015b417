"""Main CLI entry point for Claude Orch."""

from pathlib import Path

import click

from ..utils.config_manager import ConfigManager
from .commands.config import config
from .commands.daemon import daemon
from .commands.processes import processes
from .commands.repos import repos
from .commands.task import task


@click.group()
@click.option('--config', 'config_file', type=click.Path(dir_okay=False, path_type=Path),
              help='Config file (defaults to $ORCH_CONFIG or ./orch.yaml)')
@click.pass_context
def cli(ctx, config_file):
    """Claude Orch - Turn GitHub and Azure DevOps events into coding-assistant tasks"""
    ctx.obj = ConfigManager(config_file)


# Register commands
cli.add_command(daemon)
cli.add_command(task)
cli.add_command(processes)
cli.add_command(repos)
cli.add_command(config)


if __name__ == '__main__':
    cli()
