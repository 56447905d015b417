"""Task data models."""
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class TaskStatus(Enum):
    """Task status enumeration."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class TaskType(Enum):
    """Kinds of work the assistant can be asked to do."""
    PR_REVIEW = "pr-review"
    ISSUE_FIX = "issue-fix"
    CODE_GEN = "code-gen"
    DOCS = "docs"
    PIPELINE_FIX = "pipeline-fix"
    RESOLUTION_REVIEW = "resolution-review"
    PR_COMMENT_FIX = "pr-comment-fix"
    TESTING = "testing"

    @property
    def allows_edits(self) -> bool:
        """Whether the generic flow lets the assistant write to the working tree."""
        return self in EDIT_TASK_TYPES


EDIT_TASK_TYPES = frozenset({TaskType.ISSUE_FIX, TaskType.CODE_GEN, TaskType.PIPELINE_FIX})


class TaskSource(Enum):
    """Where a task originated."""
    GITHUB = "github"
    ADO = "ado"


class ExecutionMode(Enum):
    """How the assistant is run for a claimed task."""
    STREAMING = "streaming"
    TERMINAL = "terminal"


@dataclass
class ReviewComment:
    """A reviewer comment a pr-comment-fix task must address."""
    id: int
    path: str
    line: int
    body: str
    diff_hunk: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReviewComment":
        return cls(
            id=int(data["id"]),
            path=data.get("path", ""),
            line=int(data.get("line") or 0),
            body=data.get("body", ""),
            diff_hunk=data.get("diff_hunk"),
        )


@dataclass
class TaskContext:
    """Task-type specific fields carried from the triggering event."""
    source: TaskSource = TaskSource.GITHUB
    event: str = "manual"
    pr_number: Optional[int] = None
    issue_number: Optional[int] = None
    work_item_id: Optional[int] = None
    branch: Optional[str] = None
    base_branch: Optional[str] = None
    title: Optional[str] = None
    body: Optional[str] = None
    url: Optional[str] = None
    pr_url: Optional[str] = None
    resolution: Optional[str] = None
    test_notes: Optional[str] = None
    review_comments: List[ReviewComment] = field(default_factory=list)
    # Retry linkage, only set on derivative tasks
    retry_of_task_id: Optional[int] = None
    retry_error: Optional[str] = None
    retry_count: Optional[int] = None

    @property
    def is_retry(self) -> bool:
        return self.retry_of_task_id is not None

    def with_retry(self, source_task_id: int, error: str) -> "TaskContext":
        """Copy this context stamped as a retry of another task."""
        return replace(
            self,
            review_comments=list(self.review_comments),
            retry_of_task_id=source_task_id,
            retry_error=error,
            retry_count=(self.retry_count or 0) + 1,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["source"] = self.source.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskContext":
        known = {name for name in cls.__dataclass_fields__}
        values = {key: value for key, value in data.items() if key in known}
        values["source"] = TaskSource(data.get("source", TaskSource.GITHUB.value))
        values["review_comments"] = [
            ReviewComment.from_dict(comment) for comment in data.get("review_comments") or []
        ]
        return cls(**values)


@dataclass
class Task:
    """A unit of orchestrated work as persisted in the task store."""
    id: int
    type: TaskType
    status: TaskStatus
    repo: str  # "owner/name" or "org/project/name"
    repo_path: str  # local working tree
    context: TaskContext
    created_at: datetime
    result: Optional[str] = None
    error: Optional[str] = None
    output: Optional[str] = None  # captured process output, set at terminal transition
    pid: Optional[int] = None  # attached OS process while running
    mode: Optional[ExecutionMode] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def source(self) -> TaskSource:
        return self.context.source

    def summary(self) -> Dict[str, Any]:
        """Short JSON-friendly view used by listings."""
        return {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "repo": self.repo,
            "title": self.context.title,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class TaskRequest:
    """A task an inbound event asks for, before its working tree is resolved."""
    type: TaskType
    repo: str
    context: TaskContext
