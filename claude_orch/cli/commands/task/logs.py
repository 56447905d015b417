"""Task logs command."""

import sys
import time

import click

from claude_orch.cli.helpers import check_response, get_daemon_client

FOLLOW_INTERVAL = 1.0  # seconds


@click.command()
@click.argument('task_id', type=int)
@click.option('--follow', '-f', is_flag=True, help='Keep printing output until the task finishes')
@click.pass_context
def logs(ctx, task_id, follow):
    """Show a task's assistant output"""
    client = get_daemon_client(ctx)
    response = check_response(client.get_output(task_id))
    printed = response.get("output") or ""
    click.echo(printed, nl=False)

    if not follow:
        if not printed:
            click.echo("No output yet")
        return

    while response.get("status") in ("pending", "running"):
        time.sleep(FOLLOW_INTERVAL)
        response = client.get_output(task_id)
        if "error" in response:
            click.echo(f"\nError: {response['error']}", err=True)
            sys.exit(1)
        output = response.get("output") or ""
        if output.startswith(printed):
            click.echo(output[len(printed):], nl=False)
        else:
            # buffer was truncated from the front
            click.echo(output, nl=False)
        printed = output

    click.echo(f"\n[task #{task_id} {response.get('status')}]")
