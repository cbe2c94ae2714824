import httpx
import os
import logging
from datetime import datetime, timezone
from typing import Any
from pydantic import BaseModel
from fastapi import HTTPException

logger = logging.getLogger(__name__)

# Jira Cloud custom fields used by the default Scrum template
STORY_POINTS_FIELD = "customfield_10016"
SPRINT_FIELD = "customfield_10020"

SEARCH_FIELDS = [
    "key", "summary", "status", "assignee", "created", "updated", "priority",
    "issuetype", "description", "project", "parent", "resolution",
    "timeoriginalestimate", "timespent", STORY_POINTS_FIELD, SPRINT_FIELD,
]


class JiraAPIError(HTTPException):
    """Jira request failed. Carries the upstream status and decoded error body."""

    def __init__(self, status_code: int, message: str, payload: Any = None):
        super().__init__(status_code=status_code, detail=message)
        self.payload = payload

    def __str__(self) -> str:
        return f"Jira API error ({self.status_code}): {self.detail}"


class JiraIssue(BaseModel):
    """Represents a Jira issue, flattened for the local mirror."""
    id: str
    key: str
    summary: str
    status: str
    priority: str | None = None
    assignee_account_id: str | None = None
    assignee_name: str | None = None
    description: str | None = None
    issue_type: str | None = None
    project_key: str | None = None
    epic_key: str | None = None
    sprint_id: str | None = None
    story_points: float | None = None
    original_estimate_hours: float | None = None
    time_spent_hours: float | None = None
    resolution: str | None = None
    created: datetime | None = None
    updated: datetime | None = None


class JiraUser(BaseModel):
    """Represents a Jira user."""
    account_id: str
    display_name: str | None = None
    email: str | None = None
    active: bool = True
    account_type: str | None = None


class JiraProject(BaseModel):
    """Represents a Jira project."""
    id: str
    key: str
    name: str
    project_type: str | None = None


class JiraBoard(BaseModel):
    """Represents a Jira board."""
    id: int
    name: str
    board_type: str
    project_key: str | None = None


class JiraSprint(BaseModel):
    """Represents a sprint on a Jira board."""
    id: int
    name: str
    state: str | None = None
    goal: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    board_id: int | None = None


class CreatedIssue(BaseModel):
    """Identifier pair returned by a successful create call."""
    issue_id: str
    issue_key: str
    self_url: str | None = None


def _get_jira_auth() -> httpx.BasicAuth:
    """Get Jira authentication credentials (email + API token)."""
    user = os.getenv("JIRA_EMAIL") or os.getenv("JIRA_API_USER")
    token = os.getenv("JIRA_API_TOKEN")
    if not user or not token:
        raise HTTPException(
            status_code=500,
            detail="Jira credentials not configured. Set JIRA_EMAIL and JIRA_API_TOKEN."
        )
    return httpx.BasicAuth(user, token)


def _get_jira_base_url() -> str:
    """Get Jira base URL. Accepts a bare domain as well as a full URL."""
    url = os.getenv("JIRA_BASE_URL") or os.getenv("JIRA_DOMAIN")
    if not url:
        raise HTTPException(
            status_code=500,
            detail="Jira base URL not configured. Set JIRA_BASE_URL."
        )
    if not url.startswith("http"):
        url = f"https://{url}"
    return url.rstrip("/")


def get_project_key() -> str:
    """Project new issues are created in."""
    return os.getenv("JIRA_PROJECT_KEY", "SCRUM")


def _make_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=30.0)


def _error_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


async def _send(client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
    """Send one request and convert failures into JiraAPIError."""
    try:
        response = await client.request(method, url, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        payload = _error_payload(e.response)
        raise JiraAPIError(
            status_code=e.response.status_code,
            message=f"Jira API error: {e.response.text}",
            payload=payload
        )
    except httpx.RequestError as e:
        raise JiraAPIError(
            status_code=503,
            message=f"Failed to connect to Jira: {str(e)}"
        )
    return response


def _extract_description(description_field) -> str | None:
    """Extract plain text from Jira v3 ADF description format."""
    if description_field is None:
        return None
    if isinstance(description_field, str):
        return description_field
    # Jira v3 uses Atlassian Document Format (ADF)
    if isinstance(description_field, dict) and "content" in description_field:
        texts = []
        for block in description_field.get("content", []):
            for item in block.get("content", []):
                if item.get("type") == "text":
                    texts.append(item.get("text", ""))
        return " ".join(texts) if texts else None
    return str(description_field)


def _parse_datetime(value: str | None) -> datetime | None:
    """Parse Jira timestamps ('2024-01-02T10:00:00.000+0000') into naive UTC."""
    if not value:
        return None
    try:
        if len(value) > 5 and value[-5] in "+-" and value[-3] != ":":
            value = f"{value[:-2]}:{value[-2:]}"
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _seconds_to_hours(value) -> float | None:
    if value is None:
        return None
    return round(float(value) / 3600, 2)


def parse_issue(issue: dict) -> JiraIssue:
    """Flatten a raw issue from the search/issue endpoints."""
    fields = issue.get("fields", {})
    assignee = fields.get("assignee") or {}
    sprints = fields.get(SPRINT_FIELD) or []
    parent = fields.get("parent") or {}

    sprint_id = None
    if isinstance(sprints, list) and sprints:
        # Last entry is the sprint the issue currently belongs to
        last = sprints[-1]
        if isinstance(last, dict) and last.get("id") is not None:
            sprint_id = str(last["id"])

    story_points = fields.get(STORY_POINTS_FIELD)

    return JiraIssue(
        id=str(issue["id"]),
        key=issue["key"],
        summary=fields.get("summary") or "No summary",
        status=(fields.get("status") or {}).get("name", "Unknown"),
        priority=(fields.get("priority") or {}).get("name"),
        assignee_account_id=assignee.get("accountId"),
        assignee_name=assignee.get("displayName"),
        description=_extract_description(fields.get("description")),
        issue_type=(fields.get("issuetype") or {}).get("name"),
        project_key=(fields.get("project") or {}).get("key"),
        epic_key=parent.get("key"),
        sprint_id=sprint_id,
        story_points=float(story_points) if story_points is not None else None,
        original_estimate_hours=_seconds_to_hours(fields.get("timeoriginalestimate")),
        time_spent_hours=_seconds_to_hours(fields.get("timespent")),
        resolution=(fields.get("resolution") or {}).get("name"),
        created=_parse_datetime(fields.get("created")),
        updated=_parse_datetime(fields.get("updated"))
    )


async def search_issues(jql: str, page_size: int = 100) -> list[JiraIssue]:
    """
    Fetch every issue matching a JQL query.

    Follows nextPageToken until Jira stops returning one. Malformed issues are
    logged and skipped.
    """
    auth = _get_jira_auth()
    base_url = _get_jira_base_url()

    result: list[JiraIssue] = []
    next_page_token = None

    async with _make_client() as client:
        while True:
            payload = {
                "jql": jql,
                "maxResults": page_size,
                "fields": SEARCH_FIELDS
            }
            if next_page_token:
                payload["nextPageToken"] = next_page_token

            response = await _send(
                client, "POST", f"{base_url}/rest/api/3/search/jql",
                auth=auth, json=payload
            )
            data = response.json()
            issues = data.get("issues", [])

            for issue in issues:
                try:
                    result.append(parse_issue(issue))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed issue {issue.get('key')}: {e}")

            next_page_token = data.get("nextPageToken")
            if not next_page_token:
                break

    logger.info(f"Fetched {len(result)} issues for JQL: {jql}")
    return result


async def get_single_issue(issue_key: str) -> JiraIssue:
    """Fetch a single Jira issue by its key (v3 API)."""
    auth = _get_jira_auth()
    base_url = _get_jira_base_url()

    async with _make_client() as client:
        try:
            response = await _send(
                client, "GET", f"{base_url}/rest/api/3/issue/{issue_key}",
                auth=auth, params={"fields": ",".join(SEARCH_FIELDS)}
            )
        except JiraAPIError as e:
            if e.status_code == 404:
                raise JiraAPIError(404, f"Issue {issue_key} not found", e.payload)
            raise
        return parse_issue(response.json())


async def create_issue(fields: dict) -> CreatedIssue:
    """
    Create a Jira issue from a prepared fields block.

    One POST, no retry. Errors propagate as JiraAPIError.
    """
    auth = _get_jira_auth()
    base_url = _get_jira_base_url()

    async with _make_client() as client:
        response = await _send(
            client, "POST", f"{base_url}/rest/api/3/issue",
            auth=auth, json={"fields": fields}
        )
        created = response.json()
        return CreatedIssue(
            issue_id=str(created["id"]),
            issue_key=created["key"],
            self_url=created.get("self")
        )


async def get_myself() -> JiraUser:
    """Return the authenticated account, used to verify credentials."""
    auth = _get_jira_auth()
    base_url = _get_jira_base_url()

    async with _make_client() as client:
        response = await _send(client, "GET", f"{base_url}/rest/api/3/myself", auth=auth)
        user = response.json()
        return JiraUser(
            account_id=user["accountId"],
            display_name=user.get("displayName"),
            email=user.get("emailAddress"),
            active=user.get("active", True),
            account_type=user.get("accountType")
        )


async def list_users(max_results: int = 1000) -> list[JiraUser]:
    """List Jira users visible to the API account."""
    auth = _get_jira_auth()
    base_url = _get_jira_base_url()

    async with _make_client() as client:
        response = await _send(
            client, "GET", f"{base_url}/rest/api/3/users/search",
            auth=auth, params={"maxResults": max_results}
        )
        return [
            JiraUser(
                account_id=user["accountId"],
                display_name=user.get("displayName"),
                email=user.get("emailAddress"),
                active=user.get("active", True),
                account_type=user.get("accountType")
            )
            for user in response.json() or []
            if user.get("accountId")
        ]


async def get_projects() -> list[JiraProject]:
    """Fetch all accessible Jira projects."""
    auth = _get_jira_auth()
    base_url = _get_jira_base_url()

    async with _make_client() as client:
        response = await _send(client, "GET", f"{base_url}/rest/api/3/project", auth=auth)
        data = response.json()
        projects = data if isinstance(data, list) else data.get("values", [])
        return [
            JiraProject(
                id=str(project["id"]),
                key=project["key"],
                name=project["name"],
                project_type=project.get("projectTypeKey")
            )
            for project in projects
        ]


async def get_boards() -> list[JiraBoard]:
    """Fetch all accessible Jira boards (Agile API)."""
    auth = _get_jira_auth()
    base_url = _get_jira_base_url()

    async with _make_client() as client:
        response = await _send(client, "GET", f"{base_url}/rest/agile/1.0/board", auth=auth)
        boards = response.json().get("values", [])
        return [
            JiraBoard(
                id=board["id"],
                name=board["name"],
                board_type=board.get("type", "unknown"),
                project_key=board.get("location", {}).get("projectKey")
            )
            for board in boards
        ]


async def get_board_sprints(board_id: int) -> list[JiraSprint]:
    """Fetch all sprints of a board, paging with startAt until isLast."""
    auth = _get_jira_auth()
    base_url = _get_jira_base_url()

    sprints: list[JiraSprint] = []
    start_at = 0

    async with _make_client() as client:
        while True:
            try:
                response = await _send(
                    client, "GET", f"{base_url}/rest/agile/1.0/board/{board_id}/sprint",
                    auth=auth, params={"startAt": start_at}
                )
            except JiraAPIError as e:
                if e.status_code == 404:
                    raise JiraAPIError(404, f"Board {board_id} not found", e.payload)
                raise

            data = response.json()
            values = data.get("values", [])
            for sprint in values:
                sprints.append(JiraSprint(
                    id=sprint["id"],
                    name=sprint.get("name", f"Sprint {sprint['id']}"),
                    state=sprint.get("state"),
                    goal=sprint.get("goal"),
                    start_date=_parse_datetime(sprint.get("startDate")),
                    end_date=_parse_datetime(sprint.get("endDate")),
                    board_id=sprint.get("originBoardId", board_id)
                ))

            if data.get("isLast", True) or not values:
                break
            start_at += len(values)

    return sprints
