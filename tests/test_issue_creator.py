"""Tests for building and sending Jira create-issue requests."""

import asyncio
import json
from datetime import datetime

import httpx
import pytest

from pulseboard.allocation.models import TeamMember
from pulseboard.db.models import WorkItem
from pulseboard.sync.issue_creator import build_issue_payload, create_issue_for_task, map_priority
from pulseboard.tools.jira import JiraAPIError

ASSIGNEE = TeamMember(name="Ritwik", account_id="acc-ritwik", role="Backend")


def _task(**fields) -> WorkItem:
    fields.setdefault("task_id", "TASK-1")
    return WorkItem(**fields)


class TestPriorityMap:

    @pytest.mark.parametrize("local, jira_name", [
        ("high", "High"),
        ("medium", "Medium"),
        ("low", "Low"),
        ("critical", "Highest"),
        ("urgent", "High"),
        ("HIGH", "High"),
        ("whenever", "Medium"),
        (None, "Medium"),
    ])
    def test_map_priority(self, local, jira_name):
        assert map_priority(local) == jira_name


class TestBuildIssuePayload:

    def test_full_payload(self):
        task = _task(
            title="Auth API",
            description="Build the login endpoint",
            priority="critical",
            deadline=datetime(2025, 4, 1, 17, 30)
        )
        fields = build_issue_payload(task, ASSIGNEE, "PROJ")

        assert fields["project"] == {"key": "PROJ"}
        assert fields["summary"] == "Auth API"
        assert fields["issuetype"] == {"name": "Task"}
        assert fields["assignee"] == {"accountId": "acc-ritwik"}
        assert fields["priority"] == {"name": "Highest"}
        assert fields["duedate"] == "2025-04-01"
        paragraph = fields["description"]["content"][0]
        assert fields["description"]["type"] == "doc"
        assert paragraph["content"][0]["text"] == "Build the login endpoint"

    def test_optional_fields_omitted(self):
        fields = build_issue_payload(_task(title="Docs"), ASSIGNEE, "PROJ")
        assert "priority" not in fields
        assert "duedate" not in fields

    def test_summary_falls_back_to_task_id(self):
        fields = build_issue_payload(_task(task_id="TASK-9"), ASSIGNEE, "PROJ")
        assert fields["summary"] == "TASK-9"

    def test_summary_falls_back_to_untitled(self):
        fields = build_issue_payload(_task(task_id=""), ASSIGNEE, "PROJ")
        assert fields["summary"] == "Untitled Task"

    def test_generated_description(self):
        task = _task(task_id="TASK-2", priority="low", role_required="qa",
                     deadline=datetime(2025, 5, 2))
        text = build_issue_payload(task, ASSIGNEE, "PROJ")["description"]["content"][0]["content"][0]["text"]
        assert "Task ID: TASK-2" in text
        assert "Deadline: 2025-05-02" in text
        assert "Priority: low" in text
        assert "Role: qa" in text

    def test_generated_description_defaults(self):
        text = build_issue_payload(_task(), ASSIGNEE, "PROJ")["description"]["content"][0]["content"][0]["text"]
        assert "Deadline: not set" in text
        assert "Role: not set" in text


class TestCreateIssueForTask:

    def test_posts_fields_and_returns_ids(self, mock_jira):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization", "")
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "10050", "key": "PROJ-50", "self": "https://x/50"})

        mock_jira(handler)
        created = asyncio.run(create_issue_for_task(_task(title="Auth API"), ASSIGNEE))

        assert created.issue_key == "PROJ-50"
        assert created.issue_id == "10050"
        assert seen["url"] == "https://example.atlassian.net/rest/api/3/issue"
        assert seen["auth"].startswith("Basic ")
        assert seen["body"]["fields"]["project"] == {"key": "PROJ"}

    def test_upstream_error_carries_status_and_payload(self, mock_jira):
        def handler(request):
            return httpx.Response(400, json={"errors": {"assignee": "User cannot be assigned"}})

        mock_jira(handler)
        with pytest.raises(JiraAPIError) as exc_info:
            asyncio.run(create_issue_for_task(_task(title="X"), ASSIGNEE))

        assert exc_info.value.status_code == 400
        assert exc_info.value.payload["errors"]["assignee"] == "User cannot be assigned"

    def test_transport_error_maps_to_503(self, mock_jira):
        def handler(request):
            raise httpx.ConnectError("boom", request=request)

        mock_jira(handler)
        with pytest.raises(JiraAPIError) as exc_info:
            asyncio.run(create_issue_for_task(_task(title="X"), ASSIGNEE))
        assert exc_info.value.status_code == 503
