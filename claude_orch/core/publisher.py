"""Routes task results to the GitHub or Azure DevOps surface they came from.

Every operation here is best-effort: failures are logged and reported as a
falsy return value, never raised, so a notification problem cannot change
the outcome of a task.
"""

import asyncio
import logging
from typing import Optional, Tuple

from ..models.task import Task, TaskSource
from ..services.exceptions import AdoServiceError, GitHubServiceError
from .ado_client import AdoClient
from .github_integration import GitHubIntegration

logger = logging.getLogger(__name__)


def split_ado_repo(repo: str) -> Tuple[str, str]:
    """Return (project, repo_name) for "org/project/name" or "project/name"."""
    parts = repo.split("/")
    if len(parts) >= 3:
        return parts[-2], parts[-1]
    if len(parts) == 2:
        return parts[0], parts[1]
    raise AdoServiceError(f"Cannot derive ADO project from repo {repo!r}")


class Publisher:
    """Creates pull requests and posts comments for tasks."""

    def __init__(self, github: Optional[GitHubIntegration] = None,
                 ado: Optional[AdoClient] = None):
        self.github = github or GitHubIntegration()
        self.ado = ado

    def _uses_ado(self, task: Task) -> bool:
        return task.source == TaskSource.ADO

    def _ado(self) -> AdoClient:
        if self.ado is None or not self.ado.is_configured:
            raise AdoServiceError("Azure DevOps is not configured")
        return self.ado

    async def create_pull_request(self, task: Task, head: str, base: str,
                                  title: str, body: str) -> Optional[str]:
        """Open a pull request for a pushed branch.

        Returns:
            The PR URL, or None if creation failed
        """
        try:
            if self._uses_ado(task):
                project, repo_name = split_ado_repo(task.repo)
                url = await self._ado().create_pull_request(project, repo_name, head, base,
                                                            title, body)
            else:
                url = await asyncio.to_thread(self.github.create_pull_request,
                                              task.repo, head, base, title, body)
        except (GitHubServiceError, AdoServiceError) as e:
            logger.error(f"[Task #{task.id}] Failed to create pull request: {e}")
            return None
        return url or None

    async def post_result_comment(self, task: Task, body: str) -> bool:
        """Post a result comment on the PR, issue or work item the task came from.

        Returns:
            True if a comment was posted
        """
        context = task.context
        try:
            if self._uses_ado(task):
                if context.pr_number:
                    project, repo_name = split_ado_repo(task.repo)
                    await self._ado().post_pr_comment(project, repo_name, context.pr_number, body)
                elif context.work_item_id:
                    await self._ado().post_work_item_comment(context.work_item_id, body)
                else:
                    return False
            else:
                if context.pr_number:
                    await asyncio.to_thread(self.github.post_pr_comment,
                                            task.repo, context.pr_number, body)
                elif context.issue_number:
                    await asyncio.to_thread(self.github.post_issue_comment,
                                            task.repo, context.issue_number, body)
                else:
                    return False
        except (GitHubServiceError, AdoServiceError) as e:
            logger.error(f"[Task #{task.id}] Failed to post result comment: {e}")
            return False
        logger.info(f"[Task #{task.id}] Posted result comment")
        return True

    async def reply_to_review_comment(self, task: Task, comment_id: int, body: str) -> bool:
        """Reply to one reviewer comment on the task's pull request."""
        pr_number = task.context.pr_number
        if not pr_number:
            logger.error(f"[Task #{task.id}] Cannot reply to comment {comment_id}: no PR number")
            return False
        try:
            if self._uses_ado(task):
                project, repo_name = split_ado_repo(task.repo)
                await self._ado().reply_to_thread(project, repo_name, pr_number, comment_id, body)
            else:
                await asyncio.to_thread(self.github.reply_to_review_comment,
                                        task.repo, pr_number, comment_id, body)
        except (GitHubServiceError, AdoServiceError) as e:
            logger.error(f"[Task #{task.id}] Failed to reply to comment {comment_id}: {e}")
            return False
        return True
