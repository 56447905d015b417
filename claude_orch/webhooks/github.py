"""GitHub webhook verification and event mapping."""

import hashlib
import hmac
from typing import Any, Dict, Optional

from ..models.task import TaskContext, TaskRequest, TaskSource, TaskType

SIGNATURE_HEADER = "X-Hub-Signature-256"
EVENT_HEADER = "X-GitHub-Event"

PR_ACTIONS = {"opened", "synchronize"}
ISSUE_ACTIONS = {"opened"}


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """Check an ``X-Hub-Signature-256`` header against the raw request body."""
    if not signature:
        return False
    expected = "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def _object(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _pull_request_task(payload: Dict[str, Any]) -> Optional[TaskRequest]:
    if payload.get("action") not in PR_ACTIONS:
        return None
    pr = _object(payload.get("pull_request"))
    repo = _object(payload.get("repository")).get("full_name")
    if not repo or "number" not in pr:
        return None
    context = TaskContext(
        source=TaskSource.GITHUB,
        event=f"pull_request.{payload['action']}",
        pr_number=pr["number"],
        branch=_object(pr.get("head")).get("ref"),
        base_branch=_object(pr.get("base")).get("ref"),
        title=pr.get("title"),
        body=pr.get("body") or "",
        url=pr.get("html_url"),
    )
    return TaskRequest(TaskType.PR_REVIEW, repo, context)


def _issue_task(payload: Dict[str, Any]) -> Optional[TaskRequest]:
    if payload.get("action") not in ISSUE_ACTIONS:
        return None
    issue = _object(payload.get("issue"))
    repo = _object(payload.get("repository")).get("full_name")
    if not repo or "number" not in issue:
        return None
    context = TaskContext(
        source=TaskSource.GITHUB,
        event="issues.opened",
        issue_number=issue["number"],
        title=issue.get("title"),
        body=issue.get("body") or "",
        url=issue.get("html_url"),
    )
    return TaskRequest(TaskType.ISSUE_FIX, repo, context)


def parse_github_event(event: Optional[str], payload: Any) -> Optional[TaskRequest]:
    """Map a delivery to the task it asks for, or None when it asks for nothing."""
    if not isinstance(payload, dict):
        return None
    if event == "pull_request":
        return _pull_request_task(payload)
    if event == "issues":
        return _issue_task(payload)
    return None
