"""Commands that act on a queued or running task."""

import click

from claude_orch.cli.helpers import check_response, get_daemon_client


@click.command()
@click.argument('task_id', type=int)
@click.pass_context
def stop(ctx, task_id):
    """Kill a running task's assistant and mark it failed"""
    response = check_response(get_daemon_client(ctx).stop_task(task_id))
    if response.get("stopped"):
        click.echo(f"🛑 Task #{task_id} stopped")
    else:
        click.echo(f"Task #{task_id} had already finished")


@click.command()
@click.argument('task_id', type=int)
@click.pass_context
def retry(ctx, task_id):
    """Queue a new attempt of a failed task"""
    retried = check_response(get_daemon_client(ctx).retry_task(task_id))["task"]
    attempt = retried["context"].get("retry_count")
    click.echo(f"🔁 Task #{retried['id']} queued as retry {attempt} of task #{task_id}")


@click.command()
@click.argument('task_id', type=int)
@click.option('--result', help='Result text to record')
@click.pass_context
def complete(ctx, task_id, result):
    """Mark a running terminal-mode task completed"""
    response = check_response(get_daemon_client(ctx).complete_task(task_id, result))
    if response.get("completed"):
        click.echo(f"✅ Task #{task_id} completed")
    else:
        click.echo(f"Task #{task_id} had already finished")


@click.command()
@click.argument('task_id', type=int)
@click.argument('text')
@click.pass_context
def steer(ctx, task_id, text):
    """Send follow-up instructions to a running task"""
    response = check_response(get_daemon_client(ctx).steer_task(task_id, text))
    if response.get("sent"):
        click.echo(f"➡️  Sent to task #{task_id}")
    else:
        click.echo(f"Task #{task_id} has no live assistant process to steer", err=True)
        ctx.exit(1)


@click.command()
@click.argument('task_id', type=int)
@click.pass_context
def terminal(ctx, task_id):
    """Open a terminal in a task's working tree"""
    response = check_response(get_daemon_client(ctx).open_terminal(task_id))
    click.echo(f"🖥️  Opened {response['terminal']} for task #{task_id}")
