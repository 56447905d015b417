"""Azure DevOps service hook event mapping."""

from typing import Any, Callable, Dict, Optional, Tuple

from ..core.ado_client import strip_ref
from ..core.git_flows import slugify
from ..models.task import TaskContext, TaskRequest, TaskSource, TaskType

PR_EVENTS = {"git.pullrequest.created", "git.pullrequest.updated"}
WORK_ITEM_EVENTS = {"workitem.created", "workitem.updated"}
BUILD_EVENT = "build.complete"
FAILED_BUILD_RESULTS = {"failed", "partiallySucceeded"}

# project -> full name of a mapped repository in that project
ProjectLookup = Callable[[str], Optional[str]]
# (request, message); message explains a None request
MappedEvent = Tuple[Optional[TaskRequest], str]

NOT_PROCESSED = "Event received but not processed"


def work_item_task_type(work_item_type: str) -> TaskType:
    """Bugs become issue-fix tasks, features and stories code-gen tasks."""
    lower = work_item_type.lower()
    if "feature" in lower or "story" in lower:
        return TaskType.CODE_GEN
    return TaskType.ISSUE_FIX


def work_item_branch_prefix(work_item_type: str) -> str:
    lower = work_item_type.lower()
    if "bug" in lower:
        return "bug"
    if "feature" in lower or "story" in lower:
        return "feat"
    return "maintenance"


def ado_repo_name(organization: str, project: str, repo_name: str) -> str:
    if organization:
        return f"{organization}/{project}/{repo_name}"
    return f"{project}/{repo_name}"


def _object(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _link(resource: Dict[str, Any], name: str) -> Optional[str]:
    return _object(_object(resource.get("_links")).get(name)).get("href")


def _project_name(payload: Dict[str, Any], resource: Dict[str, Any]) -> str:
    container = _object(_object(payload.get("resourceContainers")).get("project"))
    repo_project = _object(_object(resource.get("repository")).get("project"))
    return repo_project.get("name") or container.get("name") or ""


class AdoEventMapper:
    """Maps ADO service hook payloads to task requests."""

    def __init__(self, organization: str, find_project_repo: ProjectLookup):
        self.organization = organization
        self.find_project_repo = find_project_repo

    def map(self, payload: Any) -> MappedEvent:
        if not isinstance(payload, dict):
            return None, NOT_PROCESSED
        event = payload.get("eventType")
        resource = payload.get("resource")
        if not isinstance(resource, dict):
            return None, NOT_PROCESSED
        if event in PR_EVENTS:
            return self._pull_request(event, payload, resource)
        if event in WORK_ITEM_EVENTS:
            return self._work_item(event, payload, resource)
        if event == BUILD_EVENT:
            return self._build(payload, resource)
        return None, NOT_PROCESSED

    def _pull_request(self, event: str, payload: Dict[str, Any],
                      resource: Dict[str, Any]) -> MappedEvent:
        repo = _object(resource.get("repository"))
        if not repo.get("name") or "pullRequestId" not in resource:
            return None, NOT_PROCESSED
        context = TaskContext(
            source=TaskSource.ADO,
            event=event,
            pr_number=resource["pullRequestId"],
            branch=strip_ref(resource.get("sourceRefName")),
            base_branch=strip_ref(resource.get("targetRefName")),
            title=resource.get("title"),
            body=resource.get("description") or "",
            url=_link(resource, "web"),
        )
        full_name = ado_repo_name(self.organization, _project_name(payload, resource),
                                  repo["name"])
        return TaskRequest(TaskType.PR_REVIEW, full_name, context), "PR review task created"

    def _work_item(self, event: str, payload: Dict[str, Any],
                   resource: Dict[str, Any]) -> MappedEvent:
        fields = _object(resource.get("fields"))
        work_item_id = resource.get("id")
        if work_item_id is None:
            return None, NOT_PROCESSED
        project = _project_name(payload, resource)
        full_name = self.find_project_repo(project) if project else None
        if not full_name:
            return None, "Work item received but no repo mapping found for project"

        work_item_type = fields.get("System.WorkItemType") or "Task"
        title = fields.get("System.Title") or ""
        context = TaskContext(
            source=TaskSource.ADO,
            event=event,
            work_item_id=work_item_id,
            title=title,
            body=fields.get("System.Description") or "",
            url=_link(resource, "html"),
            branch=f"{work_item_branch_prefix(work_item_type)}/{work_item_id}-{slugify(title)}",
        )
        task_type = work_item_task_type(work_item_type)
        return TaskRequest(task_type, full_name, context), f"{task_type.value} task created"

    def _build(self, payload: Dict[str, Any], resource: Dict[str, Any]) -> MappedEvent:
        result = resource.get("result")
        if result not in FAILED_BUILD_RESULTS:
            return None, "Build succeeded, no action needed"
        repo = _object(resource.get("repository"))
        context = TaskContext(
            source=TaskSource.ADO,
            event=BUILD_EVENT,
            title=f"Build {resource.get('buildNumber')} failed",
            body=f"Build definition: {_object(resource.get('definition')).get('name')}\n"
                 f"Result: {result}",
            url=_link(resource, "web"),
            branch=strip_ref(resource.get("sourceBranch")),
        )
        full_name = ado_repo_name(self.organization, _project_name(payload, resource),
                                  repo.get("name") or "unknown")
        return TaskRequest(TaskType.PIPELINE_FIX, full_name, context), "Pipeline fix task created"
