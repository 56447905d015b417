"""Prompt construction for each task type.

Every builder is a pure function of the task context (and, for
``build_prompt``, the repository's learnings text), so prompts can be checked
without spawning anything.
"""

import re
from typing import Optional, Sequence

from ..models.task import ReviewComment, Task, TaskContext, TaskType

NO_DESCRIPTION = "No description provided"
VERDICT_PATTERN = re.compile(r"##\s*Verdict\s*\n+\s*\**(APPROVED|NEEDS ATTENTION)", re.IGNORECASE)


def format_review_comments(comments: Sequence[ReviewComment]) -> str:
    """Render review comments as numbered blocks."""
    blocks = []
    for index, comment in enumerate(comments, start=1):
        lines = [
            f"### Comment {index}",
            f"File: {comment.path}",
            f"Line: {comment.line}",
            f"Feedback: {comment.body}",
        ]
        if comment.diff_hunk:
            lines.append(f"Diff context:\n```diff\n{comment.diff_hunk}\n```")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_pr_review_prompt(context: TaskContext) -> str:
    return f"""Review this pull request and provide feedback:

Title: {context.title}
Description: {context.body or NO_DESCRIPTION}
Branch: {context.branch} -> {context.base_branch}

Use git diff to see the changes, then focus on:
1. Code quality issues
2. Potential bugs
3. Security concerns
4. Suggestions for improvement

Be concise and actionable. Format your response as markdown suitable for a PR comment."""


def build_issue_fix_prompt(context: TaskContext) -> str:
    return f"""Analyze this issue and propose a fix:

Title: {context.title}
Description: {context.body or NO_DESCRIPTION}

1. Identify the root cause
2. Propose a solution
3. If straightforward, implement the fix

Format your response as markdown. If you made changes, summarize what was changed."""


def build_code_gen_prompt(context: TaskContext) -> str:
    target = f"Target branch: {context.branch}\n" if context.branch else ""
    return f"""Implement the following feature request:

Title: {context.title}
Description: {context.body or NO_DESCRIPTION}
{target}
1. Understand the requirements
2. Plan the implementation
3. Write the code
4. Add appropriate tests if the project has a test suite

Format your response as markdown summarizing what was implemented."""


def build_docs_prompt(context: TaskContext) -> str:
    subject = f"\n\nFocus: {context.title}\n{context.body or ''}" if context.title else ""
    return f"Update documentation based on recent changes.{subject}\n\nFormat as markdown."


def build_pipeline_fix_prompt(context: TaskContext) -> str:
    return f"""Analyze this pipeline failure and suggest fixes:

{context.title}
{context.body or ''}
Branch: {context.branch or 'unknown'}

1. Identify what failed
2. Determine the root cause
3. Suggest or implement a fix

Format your response as markdown."""


def build_resolution_review_prompt(context: TaskContext) -> str:
    return f"""Review whether this work item has been resolved correctly.

Title: {context.title}
Description: {context.body or NO_DESCRIPTION}
Stated resolution: {context.resolution or 'None given'}
{f'Pull request: {context.pr_url}' if context.pr_url else ''}

1. Read the stated resolution and the related code changes
2. Check that the change actually addresses the reported problem
3. Look for regressions or missing tests

End your response with a section in exactly this form:

## Verdict
APPROVED or NEEDS ATTENTION, followed by a one-paragraph justification."""


def build_testing_prompt(context: TaskContext) -> str:
    return f"""Help test the following change interactively.

Title: {context.title}
Description: {context.body or NO_DESCRIPTION}
Test notes: {context.test_notes or 'None'}

1. Work out how to exercise the change locally
2. Run the relevant tests or manual checks
3. Report what passed, what failed and anything that needs a human

Format your response as markdown."""


def build_pr_comment_fix_prompt(context: TaskContext) -> str:
    return f"""Address the following review comments on pull request #{context.pr_number}.

Title: {context.title}
Branch: {context.branch}

{format_review_comments(context.review_comments)}

For each comment:
1. Open the file and find the referenced line
2. Make the change the reviewer asked for
3. Keep the change minimal and consistent with the surrounding code

Do not commit. Finish with a short markdown list of what you changed for each comment."""


def build_code_simplifier_prompt(files: Sequence[str]) -> str:
    file_list = "\n".join(f"- {path}" for path in files)
    return f"""Simplify the recent changes in these files, and only these files:

{file_list}

1. Remove duplication and dead code introduced by the changes
2. Prefer clear names and straightforward control flow
3. Do not change behavior and do not touch any other file

Reply with a short summary of what you simplified."""


def build_self_review_prompt() -> str:
    return """Review the uncommitted changes in this repository (use git diff).

Check for bugs, unintended edits and anything that does not match the review feedback.

End your response with a section in exactly this form:

## Verdict
APPROVED or NEEDS ATTENTION, followed by a short justification."""


def build_base_prompt(task: Task) -> str:
    """Select the template for a task's type."""
    task_type = task.type
    context = task.context
    if task_type == TaskType.PR_REVIEW:
        return build_pr_review_prompt(context)
    elif task_type == TaskType.ISSUE_FIX:
        return build_issue_fix_prompt(context)
    elif task_type == TaskType.CODE_GEN:
        return build_code_gen_prompt(context)
    elif task_type == TaskType.DOCS:
        return build_docs_prompt(context)
    elif task_type == TaskType.PIPELINE_FIX:
        return build_pipeline_fix_prompt(context)
    elif task_type == TaskType.RESOLUTION_REVIEW:
        return build_resolution_review_prompt(context)
    elif task_type == TaskType.PR_COMMENT_FIX:
        return build_pr_comment_fix_prompt(context)
    elif task_type == TaskType.TESTING:
        return build_testing_prompt(context)
    raise ValueError(f"No prompt template for task type {task_type!r}")


def with_learnings(prompt: str, learnings: Optional[str]) -> str:
    """Prepend the repository's recorded learnings, if any."""
    if not learnings or not learnings.strip():
        return prompt
    return f"""## Relevant learnings from previous tasks

{learnings.strip()}

---

{prompt}"""


def wrap_retry(prompt: str, context: TaskContext) -> str:
    """Frame a prompt as a retry of a failed attempt."""
    if not context.is_retry:
        return prompt
    return f"""This is retry attempt {context.retry_count or 1} of a task that previously failed (task #{context.retry_of_task_id}).

The previous attempt failed with this error:
```
{context.retry_error or 'Unknown error'}
```

Before starting, work out why the previous attempt failed and take a different approach.

---

{prompt}"""


def build_prompt(task: Task, learnings: Optional[str] = None) -> str:
    """Build the full prompt for a task.

    Learnings are prepended to the base template; the retry preamble is
    applied last so it is always the outermost instruction.
    """
    prompt = with_learnings(build_base_prompt(task), learnings)
    return wrap_retry(prompt, task.context)


def parse_verdict(output: str) -> Optional[str]:
    """Read the verdict out of a review reply.

    Returns:
        "APPROVED", "NEEDS ATTENTION", or None if the reply has no verdict
    """
    match = VERDICT_PATTERN.search(output)
    if match:
        return match.group(1).upper()
    lowered = output.lower()
    if "needs attention" in lowered and "approved" not in lowered:
        return "NEEDS ATTENTION"
    if "approved" in lowered and "needs attention" not in lowered:
        return "APPROVED"
    return None
