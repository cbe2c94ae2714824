"""Data models for sync, ingest and import results."""

from datetime import datetime, date, timezone
from typing import Optional, List, Any
from pydantic import BaseModel, Field, field_validator


class TicketResult(BaseModel):
    """Outcome for one work item pushed to Jira."""
    task_id: str
    title: Optional[str] = None
    assignee: Optional[str] = None
    jira_key: Optional[str] = None
    jira_id: Optional[str] = None
    error: Optional[str] = None


class SyncResult(BaseModel):
    """Counters and per-item outcomes of one reconciler run."""
    total: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    tickets: List[TicketResult] = []


class JiraIngestResult(BaseModel):
    projects: int = 0
    people_upserted: int = 0
    issues_upserted: int = 0
    failed: int = 0


class SprintIngestResult(BaseModel):
    board_id: int
    sprints_upserted: int = 0


class GitHubIngestResult(BaseModel):
    repo: str
    fetched: int = 0
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0
    rate_limited: bool = False
    reset_at: Optional[int] = None


class ImportResult(BaseModel):
    total: int = 0
    upserted: int = 0
    failed: int = 0
    errors: List[str] = []


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept datetimes, dates and ISO strings; return naive UTC or None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class WorkItemIn(BaseModel):
    """A work item record as accepted by the import endpoint."""
    task_id: str = Field(..., min_length=1)
    title: Optional[str] = None
    description: Optional[str] = None
    role_required: Optional[str] = None
    priority: Optional[str] = None
    deadline: Optional[datetime] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    status: str = "pending"
    sprint_id: Optional[str] = None
    jira_issue_key: Optional[str] = None

    @field_validator("deadline", mode="before")
    @classmethod
    def _parse_deadline(cls, value):
        return parse_timestamp(value)

    @field_validator("priority", "status")
    @classmethod
    def _lower(cls, value):
        return value.strip().lower() if value else value
