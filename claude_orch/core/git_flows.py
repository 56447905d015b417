"""Branch, commit, push and pull request side effects of edit-permitted tasks.

Both flows hold the repository's lock for their whole duration and always
check out the branch that was current when they started before returning,
whatever happened in between.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional

from ..models.task import Task, TaskType
from ..services.exceptions import GitServiceError
from ..services.git_service import GitService
from .assistant_runner import AssistantResult
from .constants import (
    BRANCH_PREFIXES,
    BRANCH_SLUG_MAX_LENGTH,
    DEFAULT_BRANCH_PREFIX,
    PR_BODY_OUTPUT_EXCERPT,
)
from .prompts import (
    build_code_simplifier_prompt,
    build_pr_comment_fix_prompt,
    build_self_review_prompt,
    parse_verdict,
)
from .publisher import Publisher

logger = logging.getLogger(__name__)

Invoke = Callable[[Task, str, bool], Awaitable[AssistantResult]]
GitFactory = Callable[[Path], GitService]

SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")


def slugify(text: str, max_length: int = BRANCH_SLUG_MAX_LENGTH) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', truncate, strip trailing '-'."""
    slug = SLUG_SEPARATORS.sub("-", text.lower())[:max_length]
    return slug.rstrip("-")


def generate_branch_name(task: Task) -> str:
    """e.g. bug/42-fix-null-pointer"""
    prefix = BRANCH_PREFIXES.get(task.type.value, DEFAULT_BRANCH_PREFIX)
    ref = task.context.work_item_id or task.context.issue_number or task.id
    return f"{prefix}/{ref}-{slugify(task.context.title or 'task')}"


def build_commit_message(task: Task) -> str:
    title = task.context.title or "Auto-generated changes"
    return f"{task.type.value}: {title}\n\nGenerated by Orch task #{task.id}"


def build_pr_title(task: Task) -> str:
    prefix = "Fix" if task.type == TaskType.ISSUE_FIX else "Feat"
    return f"{prefix}: {task.context.title or 'Auto-generated'}"


def build_pr_body(task: Task, output: str) -> str:
    excerpt = output[:PR_BODY_OUTPUT_EXCERPT]
    if len(output) > PR_BODY_OUTPUT_EXCERPT:
        excerpt += "..."
    return (
        f"## Summary\n\nAuto-generated by Orch for task #{task.id}\n\n"
        f"### Claude's Analysis\n\n{excerpt}\n\n---\n_Generated by Orch_"
    )


def build_fix_commit_message(task: Task) -> str:
    count = len(task.context.review_comments)
    return (
        f"fix: address PR review comments\n\n"
        f"Fixed {count} review comment(s)\nGenerated by Orch task #{task.id}"
    )


def build_reply_body(task: Task) -> str:
    return f"✅ Addressed in latest push.\n\n_Auto-fixed by Orch task #{task.id}_"


class RepoLocks:
    """One asyncio.Lock per working tree."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock(self, repo_path: str) -> asyncio.Lock:
        key = str(Path(repo_path).resolve())
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]


@dataclass
class FlowOutcome:
    """How a pr-comment-fix run ended."""
    success: bool
    result: Optional[str] = None
    error: Optional[str] = None


class GitFlowOrchestrator:
    """Runs the generic edit flow and the PR-comment-fix flow."""

    def __init__(self, publisher: Publisher, locks: Optional[RepoLocks] = None,
                 git_factory: GitFactory = GitService):
        self.publisher = publisher
        self.locks = locks or RepoLocks()
        self.git_factory = git_factory

    async def _git(self, func, *args, **kwargs):
        return await asyncio.to_thread(func, *args, **kwargs)

    async def _discard(self, git: GitService, task: Task) -> None:
        try:
            await self._git(git.discard_all_changes)
        except GitServiceError as e:
            logger.error(f"[Task #{task.id}] Failed to discard changes: {e}")

    async def _restore(self, git: GitService, task: Task, branch: str) -> None:
        try:
            await self._git(git.checkout_branch, branch)
        except GitServiceError as e:
            logger.error(f"[Task #{task.id}] Failed to restore branch {branch}: {e}")

    async def handle_code_changes(self, task: Task, output: str) -> Optional[str]:
        """Turn working-tree changes into a branch, commit, push and pull request.

        Args:
            task: The edit-permitted task that just finished
            output: Assistant output, excerpted into the PR body

        Returns:
            The pull request URL, or None if there were no changes or any step failed
        """
        async with self.locks.lock(task.repo_path):
            try:
                git = await self._git(self.git_factory, Path(task.repo_path))
                status = await self._git(git.get_status)
                if not status.has_changes:
                    logger.info(f"[Task #{task.id}] No code changes detected")
                    return None
                original_branch = await self._git(git.get_current_branch)
                default_branch = await self._git(git.get_default_branch)
            except GitServiceError as e:
                logger.error(f"[Task #{task.id}] Cannot inspect working tree: {e}")
                return None

            logger.info(f"[Task #{task.id}] Detected changes: {len(status.changed_files)} files")
            new_branch = generate_branch_name(task)
            try:
                try:
                    await self._git(git.create_branch_from, new_branch, default_branch)
                    await self._git(git.stage_and_commit, build_commit_message(task))
                    await self._git(git.push_branch, new_branch)
                except GitServiceError as e:
                    logger.error(f"[Task #{task.id}] Git step failed on {new_branch}: {e}")
                    await self._discard(git, task)
                    return None

                pr_url = await self.publisher.create_pull_request(
                    task, new_branch, default_branch, build_pr_title(task),
                    build_pr_body(task, output),
                )
                if pr_url:
                    logger.info(f"[Task #{task.id}] Created PR: {pr_url}")
                return pr_url
            finally:
                await self._restore(git, task, original_branch)

    async def process_pr_comment_fix(self, task: Task, invoke: Invoke) -> FlowOutcome:
        """Address review comments on an existing pull request branch.

        Args:
            task: A pr-comment-fix task carrying the PR branch and review comments
            invoke: Async callable (task, prompt, allow_edits) -> AssistantResult

        Returns:
            The outcome the task should be finished with
        """
        target_branch = task.context.branch
        if not target_branch:
            return FlowOutcome(False, error="No branch specified for PR")
        comments = task.context.review_comments

        async with self.locks.lock(task.repo_path):
            try:
                git = await self._git(self.git_factory, Path(task.repo_path))
                original_branch = await self._git(git.get_current_branch)
            except GitServiceError as e:
                return FlowOutcome(False, error=f"Cannot inspect working tree: {e}")

            try:
                try:
                    await self._git(git.checkout_remote_branch, target_branch)
                except GitServiceError as e:
                    logger.error(f"[Task #{task.id}] Failed to checkout branch {target_branch}: {e}")
                    await self._discard(git, task)
                    return FlowOutcome(False, error=f"Failed to checkout branch {target_branch}: {e}")

                if not comments:
                    return FlowOutcome(True, result="No review comments to fix")

                logger.info(f"[Task #{task.id}] Fixing {len(comments)} review comments")
                fix = await invoke(task, build_pr_comment_fix_prompt(task.context), True)
                if not fix.success:
                    await self._discard(git, task)
                    return FlowOutcome(False, error=f"Fix step failed: {fix.error}")

                try:
                    status = await self._git(git.get_status)
                    changed = status.has_changes
                    if changed:
                        await self._polish(task, invoke, status.changed_files)
                        await self._git(git.stage_and_commit, build_fix_commit_message(task))
                        await self._git(git.push_branch, target_branch)
                    else:
                        logger.info(f"[Task #{task.id}] Assistant made no file changes")
                except GitServiceError as e:
                    logger.error(f"[Task #{task.id}] Failed to publish fixes: {e}")
                    await self._discard(git, task)
                    return FlowOutcome(False, error=f"Failed to commit or push fixes: {e}")

                reply = build_reply_body(task)
                for comment in comments:
                    await self.publisher.reply_to_review_comment(task, comment.id, reply)

                if changed:
                    summary = (f"Fixed {len(comments)} review comment(s) and pushed to "
                               f"{target_branch}")
                else:
                    summary = f"No file changes were needed for {len(comments)} review comment(s)"
                return FlowOutcome(True, result=f"{summary}\n\n{fix.output}")
            finally:
                await self._restore(git, task, original_branch)

    async def _polish(self, task: Task, invoke: Invoke, files) -> None:
        """Simplify the touched files, then self-review; neither step blocks the push."""
        logger.info(f"[Task #{task.id}] Running code simplifier on {len(files)} files")
        simplify = await invoke(task, build_code_simplifier_prompt(files), True)
        if not simplify.success:
            logger.warning(f"[Task #{task.id}] Simplifier step failed: {simplify.error}")

        review = await invoke(task, build_self_review_prompt(), False)
        verdict = parse_verdict(review.output) if review.success else None
        if verdict == "NEEDS ATTENTION":
            logger.warning(f"[Task #{task.id}] Self-review flagged issues, continuing anyway")
        else:
            logger.info(f"[Task #{task.id}] Self-review verdict: {verdict or 'none'}")
