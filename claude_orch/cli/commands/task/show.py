"""Show task command."""

import click

from claude_orch.cli.helpers import (
    check_response,
    format_status,
    format_timestamp,
    get_daemon_client,
)


@click.command()
@click.argument('task_id', type=int)
@click.option('--output', 'show_output', is_flag=True, help='Include captured output')
@click.pass_context
def show(ctx, task_id, show_output):
    """Show detailed information about a task"""
    client = get_daemon_client(ctx)
    task_data = check_response(client.get_task(task_id))["task"]
    context = task_data.get("context") or {}

    click.echo("\n" + "=" * 80)
    click.echo(f"Task Details: #{task_data['id']}")
    click.echo("=" * 80)

    click.echo("\n📋 Basic Information:")
    click.echo(f"   Type: {task_data['type']}")
    click.echo(f"   Status: {format_status(task_data['status'])}")
    click.echo(f"   Repo: {task_data['repo']}")
    click.echo(f"   Working tree: {task_data['repo_path']}")
    click.echo(f"   Source: {context.get('source')} ({context.get('event')})")
    click.echo(f"   Created: {format_timestamp(task_data.get('created_at'))}")
    if task_data.get("started_at"):
        click.echo(f"   Started: {format_timestamp(task_data['started_at'])}")
    if task_data.get("completed_at"):
        click.echo(f"   Completed: {format_timestamp(task_data['completed_at'])}")
    if task_data.get("mode"):
        click.echo(f"   Mode: {task_data['mode']}")
    if task_data.get("pid"):
        click.echo(f"   PID: {task_data['pid']}")

    if context.get("retry_of_task_id"):
        click.echo(f"\n🔁 Retry #{context.get('retry_count')} of task #{context['retry_of_task_id']}")

    if context.get("url"):
        click.echo("\n🔗 Source:")
        click.echo(f"   {context['url']}")

    if context.get("title"):
        click.echo("\n📄 Title:")
        click.echo(f"   {context['title']}")

    if task_data.get("result"):
        click.echo("\n✅ Result:")
        for line in task_data["result"].split('\n'):
            click.echo(f"   {line}")

    if task_data.get("error"):
        click.echo("\n❌ Error:")
        click.echo(f"   {task_data['error']}")

    if show_output and task_data.get("output"):
        click.echo("\n📜 Output:")
        click.echo(task_data["output"])
