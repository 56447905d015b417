"""Tests for prompt construction."""
import pytest

from claude_orch.core.prompts import (
    NO_DESCRIPTION,
    build_base_prompt,
    build_code_simplifier_prompt,
    build_prompt,
    format_review_comments,
    parse_verdict,
    with_learnings,
    wrap_retry,
)
from claude_orch.models.task import ReviewComment, TaskContext, TaskType


class TestTemplates:
    """Per-type templates."""

    def test_pr_review_includes_branches(self, make_task):
        task = make_task(TaskType.PR_REVIEW, title="Add cache", branch="feat/cache",
                         base_branch="main")

        prompt = build_base_prompt(task)

        assert "Review this pull request" in prompt
        assert "Title: Add cache" in prompt
        assert "Branch: feat/cache -> main" in prompt
        assert NO_DESCRIPTION in prompt

    def test_issue_fix_uses_body(self, make_task):
        task = make_task(TaskType.ISSUE_FIX, body="Crashes on empty input")

        prompt = build_base_prompt(task)

        assert "Analyze this issue" in prompt
        assert "Description: Crashes on empty input" in prompt

    def test_pipeline_fix_defaults_branch(self, make_task):
        task = make_task(TaskType.PIPELINE_FIX, title="Build 12 failed")

        assert "Branch: unknown" in build_base_prompt(task)

    def test_resolution_review_asks_for_verdict(self, make_task):
        task = make_task(TaskType.RESOLUTION_REVIEW, resolution="Added a null check",
                         pr_url="https://github.com/octo/app/pull/3")

        prompt = build_base_prompt(task)

        assert "Stated resolution: Added a null check" in prompt
        assert "Pull request: https://github.com/octo/app/pull/3" in prompt
        assert "## Verdict" in prompt

    def test_pr_comment_fix_lists_comments(self, make_task):
        comments = [
            ReviewComment(id=1, path="app.py", line=10, body="Rename this",
                          diff_hunk="@@ -1 +1 @@"),
            ReviewComment(id=2, path="util.py", line=4, body="Add a test"),
        ]
        task = make_task(TaskType.PR_COMMENT_FIX, pr_number=8, branch="feat/x",
                         review_comments=comments)

        prompt = build_base_prompt(task)

        assert "pull request #8" in prompt
        assert "### Comment 1" in prompt and "### Comment 2" in prompt
        assert "File: util.py" in prompt
        assert "```diff\n@@ -1 +1 @@\n```" in prompt
        assert "Do not commit" in prompt

    def test_every_type_has_a_template(self, make_task):
        for task_type in TaskType:
            assert build_base_prompt(make_task(task_type))

    def test_format_review_comments_empty(self):
        assert format_review_comments([]) == ""

    def test_code_simplifier_lists_files(self):
        prompt = build_code_simplifier_prompt(["a.py", "b/c.py"])

        assert "- a.py\n- b/c.py" in prompt


class TestComposition:
    """Learnings and retry framing."""

    def test_with_learnings_prepends(self):
        prompt = with_learnings("Do the thing", "  ## lesson\nuse pytest  ")

        assert prompt.startswith("## Relevant learnings from previous tasks")
        assert prompt.endswith("---\n\nDo the thing")
        assert "## lesson\nuse pytest" in prompt

    @pytest.mark.parametrize("learnings", [None, "", "   \n"])
    def test_with_learnings_skips_empty(self, learnings):
        assert with_learnings("Do the thing", learnings) == "Do the thing"

    def test_wrap_retry_only_for_retries(self):
        assert wrap_retry("base", TaskContext()) == "base"

    def test_wrap_retry_includes_error(self):
        context = TaskContext(retry_of_task_id=4, retry_error="lint failed", retry_count=2)

        prompt = wrap_retry("base", context)

        assert prompt.startswith("This is retry attempt 2")
        assert "task #4" in prompt
        assert "lint failed" in prompt
        assert prompt.endswith("base")

    def test_build_prompt_retry_is_outermost(self, make_task):
        task = make_task(retry_of_task_id=1, retry_error="boom", retry_count=1)

        prompt = build_prompt(task, learnings="lesson text")

        assert prompt.startswith("This is retry attempt 1")
        assert prompt.index("lesson text") < prompt.index("Analyze this issue")


class TestParseVerdict:
    """Reading review verdicts."""

    def test_verdict_section(self):
        output = "Looks fine.\n\n## Verdict\n**APPROVED** - tests cover it"

        assert parse_verdict(output) == "APPROVED"

    def test_verdict_section_needs_attention(self):
        output = "## Verdict\nneeds attention: the fix is incomplete, approved parts aside"

        assert parse_verdict(output) == "NEEDS ATTENTION"

    def test_fallback_keyword(self):
        assert parse_verdict("This needs attention before merge") == "NEEDS ATTENTION"
        assert parse_verdict("Approved.") == "APPROVED"

    def test_ambiguous_or_missing(self):
        assert parse_verdict("approved? needs attention?") is None
        assert parse_verdict("No opinion") is None
