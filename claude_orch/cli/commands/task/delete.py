"""Delete task command."""

import click

from claude_orch.cli.helpers import check_response, get_daemon_client


@click.command()
@click.argument('task_id', type=int)
@click.confirmation_option(prompt='Are you sure you want to delete this task?')
@click.pass_context
def delete(ctx, task_id):
    """Delete a task that is not running"""
    client = get_daemon_client(ctx)
    check_response(client.delete_task(task_id))
    click.echo(f"✅ Task #{task_id} deleted successfully")
