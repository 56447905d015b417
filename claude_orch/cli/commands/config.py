"""Configuration management commands for Claude Orch."""

import json

import click

from ...models.config import OrchConfig
from ...utils.config_manager import ConfigManager, masked_config
from ..helpers import load_config


@click.group()
def config():
    """Manage orchestrator configuration"""
    pass


@config.command()
@click.pass_context
def show(ctx):
    """Display the effective configuration with secrets masked"""
    manager, current = load_config(ctx)
    click.echo(f"Configuration ({manager.config_file}):")
    click.echo(json.dumps(masked_config(current), indent=2))


@config.command()
@click.option('--force', is_flag=True, help='Overwrite an existing file')
@click.pass_context
def init(ctx, force):
    """Write a default configuration file"""
    manager = ctx.obj or ConfigManager()
    if manager.config_file.exists() and not force:
        click.echo(f"{manager.config_file} already exists (use --force to overwrite)")
        return
    manager.save(OrchConfig())
    click.echo(f"✓ Wrote default configuration to {manager.config_file}")
