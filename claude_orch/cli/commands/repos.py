"""Repository discovery and cloning commands."""

import sys

import click
from rich.console import Console
from rich.table import Table

from ...core.repo_scanner import RepoResolver
from ...services.exceptions import GitServiceError
from ...services.git_service import GitService
from ..helpers import load_config


def _clone_name(url: str) -> str:
    name = url.rstrip('/').split('/')[-1].split(':')[-1]
    return name[:-4] if name.endswith('.git') else name


@click.group()
def repos():
    """Manage local clones the orchestrator works in"""
    pass


@repos.command('list')
@click.pass_context
def list_repos(ctx):
    """List clones under the base directory and how they are mapped"""
    console = Console()
    _, config = load_config(ctx)
    resolver = RepoResolver(config.repos)
    found = resolver.scan()

    if not found:
        console.print(f"[yellow]No git repositories found under {resolver.base_dir}[/yellow]")
    else:
        table = Table(title=f"Repositories in {resolver.base_dir}")
        table.add_column("Directory", style="cyan", no_wrap=True)
        table.add_column("Remote", style="green")
        table.add_column("Source")
        for repo in found:
            table.add_row(repo.local_name, repo.remote or "-", repo.source)
        console.print(table)

    if config.repos.mapping:
        console.print("\n[bold]Explicit mapping:[/bold]")
        for remote, local in config.repos.mapping.items():
            console.print(f"  {remote} -> {local}")


@repos.command()
@click.argument('url')
@click.option('--name', help='Directory name under the base directory')
@click.pass_context
def clone(ctx, url, name):
    """Clone URL into the base directory"""
    _, config = load_config(ctx)
    resolver = RepoResolver(config.repos)
    target = resolver.base_dir / (name or _clone_name(url))

    if target.exists():
        click.echo(f"Error: {target} already exists", err=True)
        sys.exit(1)

    click.echo(f"Cloning {url} into {target}...")
    try:
        GitService.clone(url, target)
    except GitServiceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ Cloned into {target}")
