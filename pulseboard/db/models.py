"""
Database models for the dashboard store.

People, work items, mirrored Jira issues, GitHub commit activity, sprints and
the append-only allocation history. Every table carries the natural key used
by the upsert helpers in store_service.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean,
    JSON, Float, ForeignKey
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TaskStatus:
    """WorkItem status vocabulary."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    ALLOCATED = "allocated"  # Pushed to Jira by the reconciler


class Person(Base):
    """A team member. Soft state only, rows are never deleted."""
    __tablename__ = "people"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(255), unique=True, nullable=True, index=True)  # e.g. "manual:EMP001", "jira:<accountId>"
    employee_id = Column(String(100), unique=True, nullable=True, index=True)
    name = Column(String(255), nullable=True)
    display_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, nullable=True, index=True)
    role = Column(String(255), nullable=True)
    team = Column(String(255), nullable=True)
    department = Column(String(255), nullable=True)
    skills = Column(JSON, nullable=True, default=list)
    seniority_level = Column(Integer, nullable=True)
    hourly_rate = Column(Float, nullable=True)
    capacity_hours_per_sprint = Column(Float, nullable=True)
    free_slots_per_week = Column(Float, nullable=True)
    years_of_experience = Column(Float, nullable=True)
    availability = Column(String(50), nullable=True)  # 'Free', 'Partially Free', 'Busy'
    past_performance_score = Column(Float, nullable=True)
    jira_account_id = Column(String(255), unique=True, nullable=True, index=True)
    github_username = Column(String(255), nullable=True)
    source = Column(String(50), nullable=True)  # 'Manual', 'Jira', 'GitHub'
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    tasks = relationship("WorkItem", back_populates="assignee")

    @property
    def label(self) -> str:
        return self.name or self.display_name or "Unknown"


class WorkItem(Base):
    """A unit of assignable work, optionally mirrored to Jira."""
    __tablename__ = "work_items"

    id = Column(Integer, primary_key=True)
    task_id = Column(String(100), unique=True, nullable=False, index=True)
    title = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    role_required = Column(String(255), nullable=True)
    priority = Column(String(50), nullable=True)  # 'low', 'medium', 'high', 'critical'
    deadline = Column(DateTime, nullable=True, index=True)
    estimated_hours = Column(Float, nullable=True)
    status = Column(String(50), nullable=False, default=TaskStatus.PENDING, index=True)
    allocated_to = Column(Integer, ForeignKey("people.id"), nullable=True, index=True)
    sprint_id = Column(String(100), nullable=True, index=True)
    jira_issue_key = Column(String(100), nullable=True, index=True)
    jira_issue_id = Column(String(100), nullable=True)
    synced_to_jira = Column(Boolean, nullable=True, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True)

    assignee = relationship("Person", back_populates="tasks")

    def mark_synced(self, issue_key: str, issue_id: Optional[str]) -> None:
        """Record the Jira linkage. The synced flag always follows the key."""
        self.jira_issue_key = issue_key
        self.jira_issue_id = issue_id
        self.synced_to_jira = bool(issue_key)


class ExternalIssue(Base):
    """Mirror of a Jira issue."""
    __tablename__ = "external_issues"

    id = Column(Integer, primary_key=True)
    issue_id = Column(String(100), unique=True, nullable=False, index=True)  # Jira internal ID
    key = Column(String(100), unique=True, nullable=False, index=True)  # e.g. 'PROJ-123'
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(100), nullable=False)  # Jira's own vocabulary
    priority = Column(String(50), nullable=True)
    issue_type = Column(String(100), nullable=True)
    assignee_id = Column(Integer, ForeignKey("people.id"), nullable=True, index=True)
    project_key = Column(String(100), nullable=True, index=True)
    sprint_id = Column(String(100), nullable=True, index=True)
    epic_key = Column(String(100), nullable=True, index=True)
    story_points = Column(Float, nullable=True)
    estimated_cost = Column(Float, nullable=True)
    actual_cost = Column(Float, nullable=True)
    original_estimate_hours = Column(Float, nullable=True)
    time_spent_hours = Column(Float, nullable=True)
    resolution = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    assignee = relationship("Person")


class CommitActivity(Base):
    """A commit pulled from the source host. Append-only, one row per signature."""
    __tablename__ = "commit_activity"

    id = Column(Integer, primary_key=True)
    raw_signature = Column(String(500), unique=True, nullable=False, index=True)  # Deduplication key
    commit_id = Column(String(100), nullable=False)  # SHA
    message = Column(Text, nullable=True)
    author_id = Column(Integer, ForeignKey("people.id"), nullable=True, index=True)
    author_name = Column(String(255), nullable=True)
    author_email = Column(String(255), nullable=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    source = Column(String(50), nullable=False, default="GitHub")
    repo = Column(String(255), nullable=True)
    branch = Column(String(255), nullable=True)
    additions = Column(Integer, nullable=False, default=0)
    deletions = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False, default=0)
    files_changed = Column(JSON, nullable=True)  # [{filename, language, additions}]
    linked_issues = Column(JSON, nullable=True)  # ['PROJ-101', ...]
    created_at = Column(DateTime, default=utcnow, nullable=False)

    author = relationship("Person")


class Sprint(Base):
    """A Jira board sprint."""
    __tablename__ = "sprints"

    id = Column(Integer, primary_key=True)
    sprint_id = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    state = Column(String(50), nullable=True)  # 'active', 'closed', 'future'
    goal = Column(Text, nullable=True)
    board_id = Column(Integer, nullable=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)


class AllocationRun(Base):
    """Historical allocation snapshot. Append-only audit record."""
    __tablename__ = "allocation_runs"

    id = Column(Integer, primary_key=True)
    sprint_id = Column(String(100), nullable=True, index=True)
    sprint_name = Column(String(255), nullable=True)
    input_task_count = Column(Integer, nullable=False, default=0)
    allocated_task_count = Column(Integer, nullable=False, default=0)
    unallocated_count = Column(Integer, nullable=False, default=0)
    total_cost = Column(Float, nullable=False, default=0.0)
    status = Column(String(50), nullable=False, default="completed")
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class AllocationDecision(Base):
    """An allocation decision submitted from the planning view."""
    __tablename__ = "allocation_decisions"

    id = Column(Integer, primary_key=True)
    task_id = Column(String(100), nullable=True, index=True)
    employee_id = Column(String(100), nullable=True, index=True)
    payload = Column(JSON, nullable=False)  # Decision as submitted
    allocated_at = Column(DateTime, default=utcnow, nullable=False, index=True)
