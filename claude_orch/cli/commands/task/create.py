"""Create task command."""

import click

from claude_orch.cli.helpers import check_response, get_daemon_client

from ....models.task import TaskSource, TaskType


@click.command()
@click.argument('task_type', type=click.Choice([t.value for t in TaskType]))
@click.argument('repo')
@click.option('--title', help='Title of the PR, issue or work item')
@click.option('--body', default='', help='Description passed to the assistant')
@click.option('--source', type=click.Choice([s.value for s in TaskSource]),
              default=TaskSource.GITHUB.value, show_default=True)
@click.option('--pr', 'pr_number', type=int, help='Pull request number')
@click.option('--issue', 'issue_number', type=int, help='Issue number')
@click.option('--work-item', 'work_item_id', type=int, help='ADO work item ID')
@click.option('--branch', help='Head branch (required for pr-comment-fix)')
@click.option('--base-branch', help='Base branch')
@click.option('--pr-url', help='Pull request URL (resolution-review)')
@click.option('--resolution', help='Resolution text to review')
@click.option('--test-notes', help='Notes for testing tasks')
@click.option('--repo-path', type=click.Path(file_okay=False),
              help='Local working tree (defaults to the configured mapping)')
@click.pass_context
def create(ctx, task_type, repo, title, body, source, pr_number, issue_number, work_item_id,
           branch, base_branch, pr_url, resolution, test_notes, repo_path):
    """Queue a task for REPO by hand"""
    context = {
        "source": source,
        "event": "manual",
        "title": title,
        "body": body,
        "pr_number": pr_number,
        "issue_number": issue_number,
        "work_item_id": work_item_id,
        "branch": branch,
        "base_branch": base_branch,
        "pr_url": pr_url,
        "resolution": resolution,
        "test_notes": test_notes,
    }
    client = get_daemon_client(ctx)
    response = check_response(client.create_task(task_type, repo, context, repo_path))

    created = response["task"]
    click.echo(f"✅ Task #{created['id']} queued ({created['type']} for {created['repo']})")
    click.echo(f"   Working tree: {created['repo_path']}")
