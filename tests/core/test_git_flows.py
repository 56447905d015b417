"""Tests for the branch/commit/PR flows."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from claude_orch.core.assistant_runner import AssistantResult
from claude_orch.core.git_flows import (
    GitFlowOrchestrator,
    RepoLocks,
    build_pr_body,
    generate_branch_name,
    slugify,
)
from claude_orch.models.task import ReviewComment, TaskType
from claude_orch.services.exceptions import GitServiceError
from claude_orch.services.git_service import GitStatus


class FakeGit:
    """Records git calls; ``fail_on`` names a method that raises."""

    def __init__(self, changes=(), branch="main", fail_on=None):
        self.changes = list(changes)
        self.branch = branch
        self.fail_on = fail_on
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name == self.fail_on:
            raise GitServiceError(f"{name} failed")

    def get_status(self):
        self._record("get_status")
        return GitStatus(unstaged=list(self.changes))

    def get_current_branch(self):
        self._record("get_current_branch")
        return self.branch

    def get_default_branch(self):
        self._record("get_default_branch")
        return "main"

    def create_branch_from(self, name, base):
        self._record("create_branch_from", name, base)

    def stage_and_commit(self, message):
        self._record("stage_and_commit", message)

    def push_branch(self, name):
        self._record("push_branch", name)

    def checkout_remote_branch(self, name):
        self._record("checkout_remote_branch", name)

    def checkout_branch(self, name):
        self._record("checkout_branch", name)

    def discard_all_changes(self):
        self._record("discard_all_changes")

    def names(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def publisher():
    mock = MagicMock()
    mock.create_pull_request = AsyncMock(return_value="https://github.com/octo/app/pull/5")
    mock.reply_to_review_comment = AsyncMock(return_value=True)
    return mock


def _flows(publisher, git):
    return GitFlowOrchestrator(publisher, git_factory=lambda path: git)


class TestNaming:
    """Branch names and PR text."""

    def test_slugify(self):
        assert slugify("Fix: NULL pointer in parser!") == "fix-null-pointer-in-parser"
        assert slugify("a" * 40) == "a" * 30
        assert slugify("Hello world, this title is way too long") == "hello-world-this-title-is-way"

    def test_branch_name_uses_issue_number(self, make_task):
        task = make_task(issue_number=42)

        assert generate_branch_name(task) == "bug/42-fix-null-pointer"

    def test_branch_name_prefers_work_item(self, make_task):
        task = make_task(TaskType.CODE_GEN, work_item_id=7, issue_number=42, title="Add export")

        assert generate_branch_name(task) == "feat/7-add-export"

    def test_branch_name_falls_back_to_task_id(self, make_task):
        task = make_task(TaskType.PIPELINE_FIX, title="Build failed")

        assert generate_branch_name(task) == f"maintenance/{task.id}-build-failed"

    def test_pr_body_truncates_output(self, make_task):
        body = build_pr_body(make_task(), "x" * 2500)

        assert "x" * 2000 + "..." in body
        assert "x" * 2001 not in body


class TestRepoLocks:
    def test_same_path_same_lock(self, tmp_path):
        locks = RepoLocks()

        assert locks.lock(str(tmp_path)) is locks.lock(str(tmp_path / "."))
        assert locks.lock(str(tmp_path)) is not locks.lock(str(tmp_path / "other"))


class TestHandleCodeChanges:
    """The generic edit flow."""

    def test_no_changes(self, make_task, publisher):
        git = FakeGit()

        url = asyncio.run(_flows(publisher, git).handle_code_changes(make_task(), "out"))

        assert url is None
        assert "create_branch_from" not in git.names()
        publisher.create_pull_request.assert_not_awaited()

    def test_changes_become_pull_request(self, make_task, publisher):
        git = FakeGit(changes=["app.py"], branch="develop")
        task = make_task(issue_number=3)

        url = asyncio.run(_flows(publisher, git).handle_code_changes(task, "analysis"))

        assert url == "https://github.com/octo/app/pull/5"
        assert ("create_branch_from", "bug/3-fix-null-pointer", "main") in git.calls
        assert ("push_branch", "bug/3-fix-null-pointer") in git.calls
        commit = [c for c in git.calls if c[0] == "stage_and_commit"][0]
        assert commit[1].startswith("issue-fix: Fix null pointer")
        args = publisher.create_pull_request.await_args.args
        assert args[1:4] == ("bug/3-fix-null-pointer", "main", "Fix: Fix null pointer")
        # back where it started
        assert git.calls[-1] == ("checkout_branch", "develop")

    @pytest.mark.parametrize("fail_on", ["create_branch_from", "stage_and_commit", "push_branch"])
    def test_git_step_failure_discards_and_restores(self, make_task, publisher, fail_on):
        git = FakeGit(changes=["app.py"], branch="develop", fail_on=fail_on)

        url = asyncio.run(_flows(publisher, git).handle_code_changes(make_task(), "out"))

        assert url is None
        names = git.names()
        assert "discard_all_changes" in names
        # nothing after the failing step runs
        steps = ["create_branch_from", "stage_and_commit", "push_branch"]
        for later in steps[steps.index(fail_on) + 1:]:
            assert later not in names
        assert git.calls[-1] == ("checkout_branch", "develop")
        publisher.create_pull_request.assert_not_awaited()

    def test_pr_failure_returns_none(self, make_task, publisher):
        publisher.create_pull_request.return_value = None
        git = FakeGit(changes=["app.py"])

        assert asyncio.run(_flows(publisher, git).handle_code_changes(make_task(), "o")) is None
        assert git.calls[-1] == ("checkout_branch", "main")


class TestPrCommentFix:
    """The review-comment fix flow."""

    @pytest.fixture
    def comment_task(self, make_task):
        comments = [
            ReviewComment(id=11, path="app.py", line=3, body="rename"),
            ReviewComment(id=12, path="app.py", line=9, body="add test"),
        ]
        return make_task(TaskType.PR_COMMENT_FIX, pr_number=5, branch="feat/x",
                         review_comments=comments)

    def test_requires_branch(self, make_task, publisher):
        task = make_task(TaskType.PR_COMMENT_FIX, pr_number=5)
        invoke = AsyncMock()

        outcome = asyncio.run(_flows(publisher, FakeGit()).process_pr_comment_fix(task, invoke))

        assert outcome.success is False
        assert outcome.error == "No branch specified for PR"
        invoke.assert_not_awaited()

    def test_fix_commit_push_and_reply(self, comment_task, publisher):
        git = FakeGit(changes=["app.py"], branch="main")
        invoke = AsyncMock(side_effect=[
            AssistantResult(True, "renamed and tested"),
            AssistantResult(True, "simplified"),
            AssistantResult(True, "## Verdict\nAPPROVED"),
        ])

        outcome = asyncio.run(_flows(publisher, git).process_pr_comment_fix(comment_task, invoke))

        assert outcome.success is True
        assert outcome.result.startswith("Fixed 2 review comment(s) and pushed to feat/x")
        assert outcome.result.endswith("renamed and tested")
        assert ("checkout_remote_branch", "feat/x") in git.calls
        assert ("push_branch", "feat/x") in git.calls
        # fix and simplify may edit, self-review may not
        assert [call.args[2] for call in invoke.await_args_list] == [True, True, False]
        replied = [call.args[1] for call in publisher.reply_to_review_comment.await_args_list]
        assert replied == [11, 12]
        assert git.calls[-1] == ("checkout_branch", "main")

    def test_no_changes_still_replies(self, comment_task, publisher):
        git = FakeGit()
        invoke = AsyncMock(return_value=AssistantResult(True, "nothing to change"))

        outcome = asyncio.run(_flows(publisher, git).process_pr_comment_fix(comment_task, invoke))

        assert outcome.success is True
        assert outcome.result.startswith("No file changes were needed for 2 review comment(s)")
        assert "push_branch" not in git.names()
        invoke.assert_awaited_once()
        assert publisher.reply_to_review_comment.await_count == 2

    def test_no_comments(self, make_task, publisher):
        task = make_task(TaskType.PR_COMMENT_FIX, pr_number=5, branch="feat/x")
        invoke = AsyncMock()

        outcome = asyncio.run(_flows(publisher, FakeGit()).process_pr_comment_fix(task, invoke))

        assert outcome.success is True
        assert outcome.result == "No review comments to fix"
        invoke.assert_not_awaited()

    def test_checkout_failure(self, comment_task, publisher):
        git = FakeGit(fail_on="checkout_remote_branch")

        outcome = asyncio.run(_flows(publisher, git).process_pr_comment_fix(comment_task, AsyncMock()))

        assert outcome.success is False
        assert outcome.error.startswith("Failed to checkout branch feat/x")
        assert git.calls[-1] == ("checkout_branch", "main")

    def test_failed_fix_discards(self, comment_task, publisher):
        git = FakeGit(changes=["app.py"])
        invoke = AsyncMock(return_value=AssistantResult(False, "", "timed out"))

        outcome = asyncio.run(_flows(publisher, git).process_pr_comment_fix(comment_task, invoke))

        assert outcome.success is False
        assert outcome.error == "Fix step failed: timed out"
        assert "discard_all_changes" in git.names()
        assert "stage_and_commit" not in git.names()
        publisher.reply_to_review_comment.assert_not_awaited()

    def test_push_failure(self, comment_task, publisher):
        git = FakeGit(changes=["app.py"], fail_on="push_branch")
        invoke = AsyncMock(return_value=AssistantResult(True, "## Verdict\nAPPROVED"))

        outcome = asyncio.run(_flows(publisher, git).process_pr_comment_fix(comment_task, invoke))

        assert outcome.success is False
        assert outcome.error.startswith("Failed to commit or push fixes")
        assert "discard_all_changes" in git.names()
        publisher.reply_to_review_comment.assert_not_awaited()
