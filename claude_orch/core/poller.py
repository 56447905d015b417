"""Periodic polling of GitHub and Azure DevOps for new work."""

import asyncio
import logging
from collections import OrderedDict
from typing import Any, Dict, Optional

from ..models.task import ReviewComment, TaskContext, TaskSource, TaskType
from ..services.exceptions import AdoServiceError, GitHubServiceError
from .ado_client import AdoClient, strip_ref
from .constants import POLL_PAGE_SIZE, PROCESSED_KEYS_MAX
from .github_integration import GitHubIntegration
from .repo_scanner import RepoResolver
from .task_store import TaskStore

logger = logging.getLogger(__name__)

# Task types whose triggering item can be recognised again after a restart
SEEDED_KINDS = {
    TaskType.PR_REVIEW: "pr",
    TaskType.ISSUE_FIX: "issue",
}
SEED_HISTORY = 500


class ProcessedKeys:
    """Insertion-ordered set that forgets its oldest half when it grows too large."""

    def __init__(self, max_size: int = PROCESSED_KEYS_MAX):
        self.max_size = max_size
        self._keys: "OrderedDict[str, None]" = OrderedDict()

    def add(self, key: str) -> None:
        self._keys[key] = None
        if len(self._keys) > self.max_size:
            for _ in range(len(self._keys) // 2):
                self._keys.popitem(last=False)

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)


def processed_key(source: str, kind: str, item_id, version: str = "") -> str:
    return f"{source}:{kind}:{item_id}:{version}"


class RepoPoller:
    """Creates tasks for open PRs, issues and unanswered review comments."""

    def __init__(self, store: TaskStore, resolver: RepoResolver, github: GitHubIntegration,
                 ado: Optional[AdoClient] = None, interval: float = 60.0,
                 page_size: int = POLL_PAGE_SIZE):
        self.store = store
        self.resolver = resolver
        self.github = github
        self.ado = ado
        self.interval = interval
        self.page_size = page_size
        self.processed = ProcessedKeys()
        self._username: Optional[str] = None

    def seed_from_store(self) -> None:
        """Mark items that already have a task so a restart does not duplicate them."""
        for task in self.store.list_tasks(limit=SEED_HISTORY):
            kind = SEEDED_KINDS.get(task.type)
            item_id = task.context.pr_number or task.context.issue_number or task.context.work_item_id
            if kind and item_id:
                self.processed.add(processed_key(task.source.value, kind, item_id))

    def _seen(self, source: str, kind: str, item_id, version: str = "") -> bool:
        return (processed_key(source, kind, item_id, version) in self.processed
                or processed_key(source, kind, item_id) in self.processed)

    async def _github_username(self) -> Optional[str]:
        if self._username is None:
            try:
                self._username = await asyncio.to_thread(self.github.get_authenticated_user)
            except GitHubServiceError as e:
                logger.error(f"[Poller] Could not determine GitHub user: {e}")
        return self._username or None

    async def poll_github_repo(self, repo: str, repo_path: str) -> int:
        """Create pr-review tasks for open PRs and issue-fix tasks for open issues."""
        created = 0
        try:
            prs = await asyncio.to_thread(self.github.list_open_prs, repo, self.page_size)
            for pr in prs:
                version = pr.get("updatedAt", "")
                if self._seen("github", "pr", pr["number"], version):
                    continue
                context = TaskContext(
                    source=TaskSource.GITHUB,
                    event="pull_request.opened",
                    pr_number=pr["number"],
                    branch=pr.get("headRefName"),
                    base_branch=pr.get("baseRefName"),
                    title=pr.get("title"),
                    body=pr.get("body") or "",
                    url=pr.get("url"),
                )
                self.store.create_task(TaskType.PR_REVIEW, repo, repo_path, context)
                self.processed.add(processed_key("github", "pr", pr["number"], version))
                logger.info(f"[Poller] Created PR review task for {repo}#{pr['number']}")
                created += 1
        except GitHubServiceError as e:
            logger.error(f"[Poller] Error polling PRs for {repo}: {e}")

        try:
            issues = await asyncio.to_thread(self.github.list_open_issues, repo, self.page_size)
            for issue in issues:
                version = issue.get("updatedAt", "")
                if self._seen("github", "issue", issue["number"], version):
                    continue
                context = TaskContext(
                    source=TaskSource.GITHUB,
                    event="issues.opened",
                    issue_number=issue["number"],
                    title=issue.get("title"),
                    body=issue.get("body") or "",
                    url=issue.get("url"),
                )
                self.store.create_task(TaskType.ISSUE_FIX, repo, repo_path, context)
                self.processed.add(processed_key("github", "issue", issue["number"], version))
                logger.info(f"[Poller] Created issue-fix task for {repo}#{issue['number']}")
                created += 1
        except GitHubServiceError as e:
            logger.error(f"[Poller] Error polling issues for {repo}: {e}")
        return created

    async def poll_review_comments(self, repo: str, repo_path: str) -> int:
        """Create pr-comment-fix tasks for others' top-level comments on our own PRs."""
        username = await self._github_username()
        if not username:
            return 0
        created = 0
        try:
            prs = await asyncio.to_thread(self.github.list_open_prs, repo, self.page_size,
                                          username)
            for pr in prs:
                comments = await asyncio.to_thread(self.github.list_review_comments,
                                                   repo, pr["number"])
                unresolved = [
                    c for c in comments
                    if _login(c.get("user")) != username and not c.get("in_reply_to_id")
                ]
                if not unresolved:
                    continue
                latest = max(c.get("updated_at", "") for c in unresolved)
                if self._seen("github", "review-comment", pr["number"], latest):
                    continue
                context = TaskContext(
                    source=TaskSource.GITHUB,
                    event="pull_request.review_comment",
                    pr_number=pr["number"],
                    branch=pr.get("headRefName"),
                    base_branch=pr.get("baseRefName"),
                    title=pr.get("title"),
                    body=pr.get("body") or "",
                    url=pr.get("url"),
                    review_comments=[_review_comment(c) for c in unresolved],
                )
                self.store.create_task(TaskType.PR_COMMENT_FIX, repo, repo_path, context)
                self.processed.add(processed_key("github", "review-comment", pr["number"], latest))
                logger.info(f"[Poller] Created pr-comment-fix task for {repo}#{pr['number']} "
                            f"({len(unresolved)} comments)")
                created += 1
        except GitHubServiceError as e:
            logger.error(f"[Poller] Error polling review comments for {repo}: {e}")
        return created

    async def poll_ado_repo(self, full_name: str, repo_path: str) -> int:
        """Create pr-review tasks for active ADO pull requests."""
        if self.ado is None or not self.ado.is_configured:
            return 0
        parts = full_name.split("/")
        project, repo_name = parts[-2], parts[-1]
        created = 0
        try:
            for pr in await self.ado.list_active_prs(project, repo_name):
                pr_id = pr["pullRequestId"]
                if self._seen("ado", "pr", pr_id):
                    continue
                context = TaskContext(
                    source=TaskSource.ADO,
                    event="git.pullrequest.created",
                    pr_number=pr_id,
                    branch=strip_ref(pr.get("sourceRefName")),
                    base_branch=strip_ref(pr.get("targetRefName")),
                    title=pr.get("title"),
                    body=pr.get("description") or "",
                    url=pr.get("url"),
                )
                self.store.create_task(TaskType.PR_REVIEW, full_name, repo_path, context)
                self.processed.add(processed_key("ado", "pr", pr_id))
                logger.info(f"[Poller] Created PR review task for {full_name}!{pr_id}")
                created += 1
        except AdoServiceError as e:
            logger.error(f"[Poller] Error polling ADO PRs for {full_name}: {e}")
        return created

    async def poll_all(self) -> int:
        """Poll every mapped repository once. Returns the number of tasks created."""
        mapping = await asyncio.to_thread(self.resolver.effective_mapping)
        created = 0
        for full_name in mapping:
            repo_path = str(self.resolver.resolve_repo_path(full_name, mapping))
            parts = full_name.split("/")
            if len(parts) == 2:
                created += await self.poll_github_repo(full_name, repo_path)
                created += await self.poll_review_comments(full_name, repo_path)
            elif len(parts) == 3:
                created += await self.poll_ado_repo(full_name, repo_path)
        return created

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        self.seed_from_store()
        logger.info(f"[Poller] Started (interval: {self.interval:g}s)")
        while not stop_event.is_set():
            try:
                await self.poll_all()
            except Exception:
                logger.exception("[Poller] Poll cycle failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("[Poller] Stopped")


def _login(user: Optional[Dict[str, Any]]) -> Optional[str]:
    return user.get("login") if isinstance(user, dict) else None


def _review_comment(comment: Dict[str, Any]) -> ReviewComment:
    return ReviewComment(
        id=comment["id"],
        path=comment.get("path", ""),
        line=comment.get("line") or comment.get("original_line") or 0,
        body=comment.get("body", ""),
        diff_hunk=comment.get("diff_hunk"),
    )
