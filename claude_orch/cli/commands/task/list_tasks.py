"""List tasks command."""

import click

from claude_orch.cli.helpers import check_response, format_task_table, get_daemon_client

from ....models.task import TaskStatus


@click.command()
@click.option('--status', type=click.Choice([s.value for s in TaskStatus]),
              help='Filter by task status')
@click.option('--limit', type=int, default=50, show_default=True, help='Maximum tasks to show')
@click.pass_context
def list(ctx, status, limit):
    """List tasks, newest first"""
    client = get_daemon_client(ctx)
    tasks = check_response(client.list_tasks(status, limit)).get("tasks", [])

    if not tasks:
        click.echo("No tasks found")
        return

    click.echo(f"\n📋 Tasks ({len(tasks)}):")
    click.echo(format_task_table(tasks))
