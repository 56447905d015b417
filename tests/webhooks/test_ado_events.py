"""Tests for Azure DevOps service hook mapping."""
import pytest

from claude_orch.models.task import TaskSource, TaskType
from claude_orch.webhooks.ado import (
    NOT_PROCESSED,
    AdoEventMapper,
    ado_repo_name,
    work_item_branch_prefix,
    work_item_task_type,
)


def work_item_payload(work_item_type="Bug", title="Login fails on Safari", event="workitem.created"):
    return {
        "eventType": event,
        "resource": {
            "id": 321,
            "fields": {
                "System.WorkItemType": work_item_type,
                "System.Title": title,
                "System.Description": "Steps to reproduce",
            },
            "_links": {"html": {"href": "https://dev.azure.com/contoso/Web/_workitems/edit/321"}},
        },
        "resourceContainers": {"project": {"name": "Web"}},
    }


@pytest.fixture
def mapper():
    projects = {"Web": "contoso/Web/site"}
    return AdoEventMapper("contoso", projects.get)


class TestHelpers:
    @pytest.mark.parametrize("work_item_type, task_type, prefix", [
        ("Bug", TaskType.ISSUE_FIX, "bug"),
        ("User Story", TaskType.CODE_GEN, "feat"),
        ("Feature", TaskType.CODE_GEN, "feat"),
        ("Task", TaskType.ISSUE_FIX, "maintenance"),
    ])
    def test_work_item_type_mapping(self, work_item_type, task_type, prefix):
        assert work_item_task_type(work_item_type) == task_type
        assert work_item_branch_prefix(work_item_type) == prefix

    def test_repo_name(self):
        assert ado_repo_name("contoso", "Web", "site") == "contoso/Web/site"
        assert ado_repo_name("", "Web", "site") == "Web/site"


class TestAdoEventMapper:
    """Service hook payloads to task requests."""

    def test_pull_request_created(self, mapper):
        payload = {
            "eventType": "git.pullrequest.created",
            "resource": {
                "pullRequestId": 12,
                "title": "Update deps",
                "description": "Bumps httpx",
                "sourceRefName": "refs/heads/deps",
                "targetRefName": "refs/heads/main",
                "repository": {"name": "site", "project": {"name": "Web"}},
                "_links": {"web": {"href": "https://dev.azure.com/pr/12"}},
            },
        }

        request, message = mapper.map(payload)

        assert message == "PR review task created"
        assert request.type == TaskType.PR_REVIEW
        assert request.repo == "contoso/Web/site"
        assert request.context.source == TaskSource.ADO
        assert request.context.pr_number == 12
        assert (request.context.branch, request.context.base_branch) == ("deps", "main")

    def test_bug_work_item(self, mapper):
        request, message = mapper.map(work_item_payload())

        assert message == "issue-fix task created"
        assert request.repo == "contoso/Web/site"
        assert request.context.work_item_id == 321
        assert request.context.branch == "bug/321-login-fails-on-safari"
        assert request.context.event == "workitem.created"

    def test_story_work_item(self, mapper):
        request, message = mapper.map(work_item_payload("User Story", "Export to CSV",
                                                        event="workitem.updated"))

        assert message == "code-gen task created"
        assert request.type == TaskType.CODE_GEN
        assert request.context.branch == "feat/321-export-to-csv"

    def test_work_item_without_mapping(self):
        mapper = AdoEventMapper("contoso", lambda project: None)

        request, message = mapper.map(work_item_payload())

        assert request is None
        assert message == "Work item received but no repo mapping found for project"

    def test_failed_build(self, mapper):
        payload = {
            "eventType": "build.complete",
            "resource": {
                "result": "failed",
                "buildNumber": "20240101.3",
                "definition": {"name": "CI"},
                "sourceBranch": "refs/heads/main",
                "repository": {"name": "site"},
            },
            "resourceContainers": {"project": {"name": "Web"}},
        }

        request, message = mapper.map(payload)

        assert message == "Pipeline fix task created"
        assert request.type == TaskType.PIPELINE_FIX
        assert request.repo == "contoso/Web/site"
        assert request.context.title == "Build 20240101.3 failed"
        assert request.context.body == "Build definition: CI\nResult: failed"
        assert request.context.branch == "main"

    def test_successful_build(self, mapper):
        payload = {"eventType": "build.complete", "resource": {"result": "succeeded"}}

        assert mapper.map(payload) == (None, "Build succeeded, no action needed")

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {"eventType": "git.push", "resource": {}},
        {"eventType": "git.pullrequest.created"},
        {"eventType": "git.pullrequest.created", "resource": {"repository": {"name": "x"}}},
        {"eventType": "git.pullrequest.created", "resource": {"repository": "x", "pullRequestId": 4}},
    ])
    def test_ignored_payloads(self, mapper, payload):
        assert mapper.map(payload) == (None, NOT_PROCESSED)

    def test_work_item_with_non_object_fields(self, mapper):
        payload = {"eventType": "workitem.created", "resource": {"id": 1, "fields": []},
                   "resourceContainers": "Web"}

        request, message = mapper.map(payload)

        assert request is None
        assert "no repo mapping" in message
