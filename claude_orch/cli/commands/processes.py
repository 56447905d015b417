"""Process hygiene commands."""

import click
from rich.console import Console
from rich.table import Table

from ...core.constants import STALE_PROCESS_HOURS
from ..helpers import check_response, format_timestamp, get_daemon_client


@click.group()
def processes():
    """Inspect and clean up assistant processes"""
    pass


@processes.command('list')
@click.pass_context
def list_processes(ctx):
    """List running tasks with an attached process"""
    console = Console()
    entries = check_response(get_daemon_client(ctx).list_processes()).get("processes", [])

    if not entries:
        console.print("[yellow]No assistant processes running.[/yellow]")
        return

    table = Table(title="Assistant Processes")
    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("PID", style="green")
    table.add_column("Type")
    table.add_column("Repo")
    table.add_column("Started")
    table.add_column("Steerable")

    for entry in entries:
        table.add_row(
            f"#{entry['task_id']}",
            str(entry['pid']),
            entry['type'],
            entry['repo'],
            format_timestamp(entry.get('started_at')),
            "yes" if entry.get('registered') else "no",
        )

    console.print(table)


@processes.command('kill-old')
@click.option('--hours', type=float, default=STALE_PROCESS_HOURS, show_default=True,
              help='Kill processes of tasks running longer than this')
@click.pass_context
def kill_old(ctx, hours):
    """Signal assistant processes older than --hours"""
    response = check_response(get_daemon_client(ctx).kill_old_processes(hours))
    click.echo(f"Killed {response['killed']} process(es) older than {hours:g} hours")
