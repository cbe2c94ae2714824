"""
Issue creator: turns one work item and its resolved assignee into a Jira issue.
"""

import logging
from types import MappingProxyType
from typing import Optional
from pulseboard.db.models import WorkItem
from pulseboard.allocation.models import TeamMember
from pulseboard.tools import jira
from pulseboard.tools.jira import CreatedIssue

logger = logging.getLogger(__name__)

# Local priority -> Jira priority name
PRIORITY_MAP = MappingProxyType({
    "high": "High",
    "medium": "Medium",
    "low": "Low",
    "critical": "Highest",
    "urgent": "High",
})
DEFAULT_PRIORITY = "Medium"


def map_priority(priority: Optional[str]) -> str:
    return PRIORITY_MAP.get((priority or "").strip().lower(), DEFAULT_PRIORITY)


def _description_text(task: WorkItem) -> str:
    if task.description:
        return task.description
    deadline = task.deadline.date().isoformat() if task.deadline else "not set"
    return (
        f"Task ID: {task.task_id}\n"
        f"Deadline: {deadline}\n"
        f"Priority: {task.priority or 'not set'}\n"
        f"Role: {task.role_required or 'not set'}"
    )


def _adf_paragraph(text: str) -> dict:
    """Wrap plain text in a single-paragraph Atlassian Document Format doc."""
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": text}]
            }
        ]
    }


def build_issue_payload(task: WorkItem, assignee: TeamMember, project_key: str) -> dict:
    """Build the `fields` block of a Jira create-issue request."""
    fields = {
        "project": {"key": project_key},
        "summary": task.title or task.task_id or "Untitled Task",
        "description": _adf_paragraph(_description_text(task)),
        "issuetype": {"name": "Task"},
        "assignee": {"accountId": assignee.account_id},
    }
    if task.priority:
        fields["priority"] = {"name": map_priority(task.priority)}
    if task.deadline:
        fields["duedate"] = task.deadline.strftime("%Y-%m-%d")
    return fields


async def create_issue_for_task(
    task: WorkItem,
    assignee: TeamMember,
    project_key: Optional[str] = None
) -> CreatedIssue:
    """
    Create the Jira issue for a work item.

    Raises:
        JiraAPIError: the create call failed (upstream status and payload attached)
        HTTPException: Jira is not configured
    """
    project_key = project_key or jira.get_project_key()
    fields = build_issue_payload(task, assignee, project_key)
    created = await jira.create_issue(fields)
    logger.info(f"Created {created.issue_key} for {task.task_id} -> {assignee.name}")
    return created
