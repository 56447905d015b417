"""Lessons learned from successful retries, fed back into future prompts.

Learnings live in each repository's working tree as an append-only markdown
log. Writes are best-effort and unsynchronised: concurrent writers may
interleave, which is acceptable because the content is advisory.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional

from ..models.task import Task, TaskType
from .assistant_runner import AssistantResult
from .constants import (
    LEARNINGS_FILE,
    LEARNINGS_HEADER,
    LESSON_OUTPUT_EXCERPT,
    NO_UPDATE_SENTINEL,
    SKILL_FILES,
    SKILLS_DIR,
)

logger = logging.getLogger(__name__)

Invoke = Callable[[Task, str, bool], Awaitable[AssistantResult]]

LESSON_PATTERN = re.compile(r'\{[\s\S]*?"error_?[pP]attern"[\s\S]*?"solution"[\s\S]*?\}')


@dataclass
class Learning:
    """A short lesson derived from a failed task and its successful retry."""
    task_type: str
    error_pattern: str
    solution: str
    created: str  # ISO date

    def to_markdown(self) -> str:
        return (
            f"## {self.task_type} - {self.created}\n"
            f"**Error pattern:** {self.error_pattern}\n"
            f"**Solution:** {self.solution}\n"
        )


class LearningsStore:
    """Per-repository learnings log and skill files, keyed by working tree."""

    def learnings_path(self, repo_path: str) -> Path:
        return Path(repo_path) / LEARNINGS_FILE

    def load(self, repo_path: str) -> Optional[str]:
        """Read a repository's learnings, or None if it has none."""
        path = self.learnings_path(repo_path)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not read learnings from {path}: {e}")
            return None

    def append(self, repo_path: str, learning: Learning) -> Path:
        """Append a learning, creating the log with its header if needed."""
        path = self.learnings_path(repo_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        existing = path.read_text(encoding="utf-8") if path.exists() else LEARNINGS_HEADER
        path.write_text(existing + learning.to_markdown() + "\n", encoding="utf-8")
        logger.info(f"Stored learning in {path}")
        return path

    def skill_path(self, repo_path: str, task_type: TaskType) -> Optional[Path]:
        """Existing skill file for a task type, if the repository has one."""
        skill_file = SKILL_FILES.get(task_type.value)
        if not skill_file:
            return None
        path = Path(repo_path) / SKILLS_DIR / skill_file
        return path if path.exists() else None

    def propose_rewrite(self, path: Path, content: str) -> bool:
        """Replace a skill file if the proposed content looks like markdown."""
        content = content.strip()
        if not content or NO_UPDATE_SENTINEL in content:
            return False
        if not (content.startswith("#") or content.startswith("---")):
            logger.info(f"Skipping rewrite of {path.name}: reply is not skill content")
            return False
        path.write_text(content, encoding="utf-8")
        logger.info(f"Updated skill file: {path}")
        return True


def build_lesson_extraction_prompt(failed: Task, success: Task) -> str:
    failed_output = (failed.result or failed.output or "N/A")[:LESSON_OUTPUT_EXCERPT]
    success_output = (success.result or success.output or "N/A")[:LESSON_OUTPUT_EXCERPT]
    return f"""Analyze this successful retry and extract a concise lesson learned.

## Failed Attempt
Task Type: {failed.type.value}
Error: {failed.error}
Output (truncated): {failed_output}

## Successful Retry
Output (truncated): {success_output}

Extract in JSON format ONLY (no markdown, no explanation, just the JSON):
{{
  "error_pattern": "Brief description of what went wrong (1 sentence)",
  "solution": "What approach worked and why (1-2 sentences)"
}}"""


def build_skill_update_prompt(learning: Learning, skill_content: str) -> str:
    return f"""Given this learning from a retry:
Error pattern: {learning.error_pattern}
Solution: {learning.solution}

And this skill file content:
---
{skill_content}
---

Should this skill be updated to incorporate the learning? If yes, provide the COMPLETE updated skill file content.
If no update is needed (the skill already covers this or it's too specific), reply with exactly: {NO_UPDATE_SENTINEL}

Important: Only suggest updates that are general enough to help future tasks, not one-off fixes."""


def parse_lesson(output: str) -> Optional[Dict[str, str]]:
    """Pull the lesson JSON object out of an assistant reply.

    Both ``error_pattern`` and ``errorPattern`` keys are accepted.
    """
    match = LESSON_PATTERN.search(output)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    error_pattern = parsed.get("error_pattern") or parsed.get("errorPattern")
    solution = parsed.get("solution")
    if error_pattern and solution:
        return {"error_pattern": error_pattern, "solution": solution}
    return None


class LearningsExtractor:
    """Derives and records lessons after a retry succeeds."""

    def __init__(self, invoke: Invoke, store: Optional[LearningsStore] = None):
        """
        Args:
            invoke: Async callable (task, prompt, allow_edits) -> AssistantResult
            store: Where learnings are persisted
        """
        self.invoke = invoke
        self.store = store or LearningsStore()

    async def extract(self, failed: Task, success: Task) -> Optional[Learning]:
        prompt = build_lesson_extraction_prompt(failed, success)
        result = await self.invoke(success, prompt, False)
        if not result.success:
            logger.error(f"[Task #{success.id}] Failed to extract lesson: {result.error}")
            return None
        parsed = parse_lesson(result.output)
        if not parsed:
            logger.error(f"[Task #{success.id}] Failed to parse lesson from output")
            return None
        return Learning(
            task_type=success.type.value,
            error_pattern=parsed["error_pattern"],
            solution=parsed["solution"],
            created=date.today().isoformat(),
        )

    async def update_skill_if_relevant(self, learning: Learning, task: Task) -> bool:
        skill_path = self.store.skill_path(task.repo_path, task.type)
        if skill_path is None:
            return False
        prompt = build_skill_update_prompt(learning, skill_path.read_text(encoding="utf-8"))
        result = await self.invoke(task, prompt, False)
        if not result.success:
            logger.error(f"[Task #{task.id}] Failed to analyze skill update: {result.error}")
            return False
        if NO_UPDATE_SENTINEL in result.output:
            logger.info(f"[Task #{task.id}] Skill {skill_path.name} does not need update")
            return False
        return self.store.propose_rewrite(skill_path, result.output)

    async def learn_from_retry(self, failed: Task, success: Task) -> Optional[Learning]:
        """Extract a lesson, store it and offer it to the matching skill file.

        Never raises; failures are logged.
        """
        try:
            learning = await self.extract(failed, success)
            if learning is None:
                return None
            self.store.append(success.repo_path, learning)
            await self.update_skill_if_relevant(learning, success)
            return learning
        except OSError as e:
            logger.error(f"[Task #{success.id}] Could not record learning: {e}")
            return None
