"""
Ingest pipelines that pull Jira and GitHub data into the local store.

Every pipeline upserts on natural keys (issue key, sprint id, commit signature,
email / Jira account id), so any of them can be re-run safely. A failure on a
single record is counted and logged; it never aborts the batch.
"""

import re
import asyncio
import logging
from datetime import timedelta
from pathlib import PurePosixPath
from typing import Optional, List, Dict, Any
from pydantic import ValidationError
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from pulseboard.db.models import Person, WorkItem, AllocationRun, utcnow
from pulseboard.db.store_service import StoreService
from pulseboard.tools import jira, github
from pulseboard.tools.jira import JiraIssue, JiraAPIError
from pulseboard.tools.github import GitHubAPIError, GitHubRateLimitError
from pulseboard.sync.models import (
    JiraIngestResult,
    SprintIngestResult,
    GitHubIngestResult,
    ImportResult,
    WorkItemIn,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

ISSUE_KEY_PATTERN = re.compile(r"\b[A-Z][A-Z0-9]+-\d+\b")

DETAIL_PACE_SECONDS = 0.1

# File extension -> language label used by the HR tech distribution
LANGUAGE_BY_EXTENSION = {
    ".py": "Python",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".java": "Java",
    ".go": "Go",
    ".rb": "Ruby",
    ".rs": "Rust",
    ".cs": "C#",
    ".cpp": "C++",
    ".c": "C",
    ".php": "PHP",
    ".kt": "Kotlin",
    ".swift": "Swift",
    ".html": "HTML",
    ".css": "CSS",
    ".scss": "CSS",
    ".sql": "SQL",
    ".sh": "Shell",
    ".yml": "YAML",
    ".yaml": "YAML",
    ".json": "JSON",
    ".md": "Markdown",
    ".tf": "Terraform",
}


def extract_issue_keys(message: Optional[str]) -> List[str]:
    """Issue keys mentioned in a commit message, in order, without duplicates."""
    if not message:
        return []
    return list(dict.fromkeys(ISSUE_KEY_PATTERN.findall(message)))


def detect_language(filename: str) -> Optional[str]:
    path = PurePosixPath(filename)
    if path.name == "Dockerfile":
        return "Docker"
    return LANGUAGE_BY_EXTENSION.get(path.suffix.lower())


def commit_signature(repo: str, sha: str) -> str:
    return f"github:{repo}:{sha}"


# =============================================================================
# Jira
# =============================================================================

def _upsert_jira_person(store: StoreService, user: jira.JiraUser) -> Person:
    """Match a Jira user to a Person by account id, then email; create if neither matches."""
    person = store.find_person_by_account_id(user.account_id) or store.find_person_by_email(user.email)
    if person is None:
        person = Person(
            user_id=f"jira:{user.account_id}",
            source="Jira",
            availability="Free"
        )
        store.db.add(person)

    person.jira_account_id = user.account_id
    person.display_name = user.display_name
    person.name = person.name or user.display_name
    if user.email and not person.email:
        person.email = user.email
    store.db.commit()
    return person


def _issue_row(issue: JiraIssue, assignee: Optional[Person]) -> Dict[str, Any]:
    now = utcnow()
    hourly_rate = (assignee.hourly_rate if assignee else None) or 0
    estimated_cost = None
    actual_cost = None
    if hourly_rate:
        if issue.original_estimate_hours is not None:
            estimated_cost = round(issue.original_estimate_hours * hourly_rate, 2)
        if issue.time_spent_hours is not None:
            actual_cost = round(issue.time_spent_hours * hourly_rate, 2)

    return {
        "issue_id": issue.id,
        "key": issue.key,
        "title": issue.summary,
        "description": issue.description,
        "status": issue.status,
        "priority": issue.priority,
        "issue_type": issue.issue_type,
        "assignee_id": assignee.id if assignee else None,
        "project_key": issue.project_key,
        "sprint_id": issue.sprint_id,
        "epic_key": issue.epic_key,
        "story_points": issue.story_points,
        "estimated_cost": estimated_cost,
        "actual_cost": actual_cost,
        "original_estimate_hours": issue.original_estimate_hours,
        "time_spent_hours": issue.time_spent_hours,
        "resolution": issue.resolution,
        "created_at": issue.created or now,
        "updated_at": issue.updated or now,
    }


async def ingest_jira(db: Session) -> JiraIngestResult:
    """
    Mirror Jira projects, users and issues into the store.

    Users become People (matched by account id, then email); issues are upserted
    by key with their assignee linked by account id.
    """
    store = StoreService(db)
    result = JiraIngestResult()

    projects = await jira.get_projects()
    result.projects = len(projects)
    logger.info(f"Found {len(projects)} Jira projects")

    users = await jira.list_users()
    for user in users:
        if user.account_type not in (None, "atlassian"):
            continue  # app and customer accounts
        try:
            _upsert_jira_person(store, user)
            result.people_upserted += 1
        except SQLAlchemyError as e:
            db.rollback()
            result.failed += 1
            logger.error(f"Failed to store Jira user {user.account_id}: {e}")

    for project in projects:
        try:
            issues = await jira.search_issues(f"project = {project.key} ORDER BY created DESC")
        except JiraAPIError as e:
            result.failed += 1
            logger.error(f"Failed to fetch issues for project {project.key}: {e}")
            continue

        for issue in issues:
            try:
                assignee = store.find_person_by_account_id(issue.assignee_account_id)
                store.upsert_issue(_issue_row(issue, assignee))
                result.issues_upserted += 1
            except SQLAlchemyError as e:
                db.rollback()
                result.failed += 1
                logger.error(f"Failed to store Jira issue {issue.key}: {e}")

    logger.info(
        f"Jira ingest: {result.people_upserted} people, "
        f"{result.issues_upserted} issues, {result.failed} failures"
    )
    return result


async def ingest_jira_sprints(db: Session, board_id: int) -> SprintIngestResult:
    """Upsert every sprint of a board by sprint id."""
    store = StoreService(db)
    sprints = await jira.get_board_sprints(board_id)
    result = SprintIngestResult(board_id=board_id)

    for sprint in sprints:
        store.upsert_sprint({
            "sprint_id": str(sprint.id),
            "name": sprint.name,
            "state": sprint.state,
            "goal": sprint.goal,
            "board_id": sprint.board_id,
            "start_date": sprint.start_date,
            "end_date": sprint.end_date,
        })
        result.sprints_upserted += 1

    logger.info(f"Stored {result.sprints_upserted} sprints for board {board_id}")
    return result


# =============================================================================
# GitHub
# =============================================================================

async def ingest_github(
    db: Session,
    repo: Optional[str] = None,
    max_pages: Optional[int] = None,
    pace_seconds: float = DETAIL_PACE_SECONDS
) -> GitHubIngestResult:
    """
    Pull commits with line statistics into CommitActivity.

    Commits already stored under the same signature are counted as duplicates
    and skip the detail call. Hitting the rate limit stops the run and keeps
    everything stored so far.
    """
    store = StoreService(db)
    repo = github.normalize_repo(repo) or github.get_default_repo()

    page = await github.list_commits(repo=repo, max_pages=max_pages)
    result = GitHubIngestResult(
        repo=repo,
        fetched=len(page.commits),
        rate_limited=page.rate_limited,
        reset_at=page.reset_at
    )

    for index, commit in enumerate(page.commits):
        signature = commit_signature(repo, commit.sha)
        if store.has_commit(signature):
            result.duplicates += 1
            continue

        if index and pace_seconds > 0:
            await asyncio.sleep(pace_seconds)

        try:
            detail = await github.get_commit(commit.sha, repo=repo)
        except GitHubRateLimitError as e:
            logger.warning(f"GitHub rate limit hit while fetching {commit.sha[:7]}, stopping")
            result.rate_limited = True
            result.reset_at = e.reset_at
            break
        except GitHubAPIError as e:
            result.failed += 1
            logger.warning(f"Failed to fetch details for commit {commit.sha[:7]}: {e.detail}")
            continue

        author = store.find_person_by_email(commit.author_email)
        files = []
        if detail is not None:
            files = [
                {
                    "filename": f.filename,
                    "language": detect_language(f.filename),
                    "additions": f.additions,
                }
                for f in detail.files
            ]

        try:
            _, created = store.add_commit({
                "raw_signature": signature,
                "commit_id": commit.sha,
                "message": commit.message,
                "author_id": author.id if author else None,
                "author_name": commit.author_name,
                "author_email": commit.author_email,
                "timestamp": parse_timestamp(commit.date) or utcnow(),
                "source": "GitHub",
                "repo": repo,
                "additions": detail.additions if detail else 0,
                "deletions": detail.deletions if detail else 0,
                "total": detail.total if detail else 0,
                "files_changed": files,
                "linked_issues": extract_issue_keys(commit.message),
            })
        except (SQLAlchemyError, ValueError) as e:
            db.rollback()
            result.failed += 1
            logger.error(f"Failed to store commit {commit.sha[:7]}: {e}")
            continue

        if created:
            result.inserted += 1
        else:
            result.duplicates += 1

    logger.info(
        f"GitHub ingest for {repo}: {result.fetched} fetched, {result.inserted} inserted, "
        f"{result.duplicates} duplicates, {result.failed} failed"
    )
    return result


# =============================================================================
# Import and seed
# =============================================================================

def import_work_items(db: Session, records: List[Dict[str, Any]]) -> ImportResult:
    """
    Upsert work items by task_id from JSON records.

    Invalid records are reported in `errors` and skipped.
    """
    store = StoreService(db)
    result = ImportResult(total=len(records))

    for position, record in enumerate(records):
        try:
            item = WorkItemIn.model_validate(record)
        except ValidationError as e:
            result.failed += 1
            result.errors.append(f"record {position}: {e.errors()[0]['msg']}")
            continue

        data = item.model_dump(exclude_unset=True)
        data["status"] = item.status
        try:
            store.upsert_work_item(data)
            result.upserted += 1
        except SQLAlchemyError as e:
            db.rollback()
            result.failed += 1
            result.errors.append(f"{item.task_id}: {e}")
            logger.error(f"Failed to import {item.task_id}: {e}")

    logger.info(f"Imported {result.upserted}/{result.total} work items")
    return result


DEMO_PEOPLE = [
    {
        "user_id": "manual:EMP001", "employee_id": "TECH001", "name": "Alex Chen",
        "email": "alex.chen@example.com", "role": "Senior Developer",
        "department": "Engineering", "team": "Backend Team",
        "skills": ["Node.js", "PostgreSQL", "Python"], "seniority_level": 5,
        "hourly_rate": 95, "years_of_experience": 8, "availability": "Free",
        "free_slots_per_week": 12, "capacity_hours_per_sprint": 40,
    },
    {
        "user_id": "manual:EMP002", "employee_id": "TECH002", "name": "Sarah Jones",
        "email": "sarah.jones@example.com", "role": "Frontend Developer",
        "department": "Engineering", "team": "Frontend Team",
        "skills": ["React", "TypeScript", "Tailwind"], "seniority_level": 3,
        "hourly_rate": 75, "years_of_experience": 4, "availability": "Free",
        "free_slots_per_week": 24, "capacity_hours_per_sprint": 40,
    },
    {
        "user_id": "manual:EMP003", "employee_id": "TECH003", "name": "Mike Ross",
        "email": "mike.ross@example.com", "role": "DevOps Engineer",
        "department": "Engineering", "team": "Platform Team",
        "skills": ["AWS", "Docker", "Kubernetes"], "seniority_level": 4,
        "hourly_rate": 85, "years_of_experience": 6, "availability": "Busy",
        "free_slots_per_week": 4, "capacity_hours_per_sprint": 40,
    },
    {
        "user_id": "manual:EMP004", "employee_id": "TECH004", "name": "Emily Davis",
        "email": "emily.davis@example.com", "role": "QA Engineer",
        "department": "Engineering", "team": "QA Team",
        "skills": ["Selenium", "Jest", "Cypress"], "seniority_level": 2,
        "hourly_rate": 60, "years_of_experience": 2, "availability": "Free",
        "free_slots_per_week": 20, "capacity_hours_per_sprint": 40,
    },
    {
        "user_id": "manual:EMP005", "employee_id": "TECH005", "name": "Daniel Lee",
        "email": "daniel.lee@example.com", "role": "Product Manager",
        "department": "Product", "team": "Product Team",
        "skills": ["Jira", "Agile", "Scrum"], "seniority_level": 5,
        "hourly_rate": 110, "years_of_experience": 10, "availability": "Free",
        "free_slots_per_week": 16, "capacity_hours_per_sprint": 40,
    },
]


def seed_demo_data(db: Session) -> Dict[str, int]:
    """
    Load a small demo dataset. Safe to run repeatedly: people, tasks, commits
    and issues are upserted on their natural keys, and the allocation run is
    only added when none exists.
    """
    store = StoreService(db)
    now = utcnow()

    people = [store.upsert_person({**p, "display_name": p["name"], "source": "Manual"}) for p in DEMO_PEOPLE]
    alex, sarah, mike, emily, daniel = people

    tasks = [
        {"task_id": "TASK-1001", "title": "Data Ingestion Pipeline",
         "description": "Build backend service to ingest data from Jira and GitHub",
         "role_required": "backend", "priority": "high", "deadline": now + timedelta(days=7),
         "estimated_hours": 40, "status": "in_progress", "allocated_to": alex.id,
         "sprint_id": "SPRINT-24-01", "jira_issue_key": "PROJ-101"},
        {"task_id": "TASK-1002", "title": "Dashboard UI Component",
         "description": "Create responsive analytics dashboard",
         "role_required": "frontend", "priority": "medium", "deadline": now + timedelta(days=3),
         "estimated_hours": 16, "status": "done", "allocated_to": sarah.id,
         "sprint_id": "SPRINT-24-01", "jira_issue_key": "PROJ-102"},
        {"task_id": "TASK-1003", "title": "CI/CD Workflow",
         "description": "Set up GitHub Actions for automated testing and deployment",
         "role_required": "devops", "priority": "high", "deadline": now - timedelta(days=2),
         "estimated_hours": 8, "status": "pending", "allocated_to": mike.id,
         "sprint_id": "SPRINT-24-01", "jira_issue_key": "PROJ-103"},
        {"task_id": "TASK-1004", "title": "Unit Tests for Auth Service",
         "description": "Write comprehensive tests for user authentication",
         "role_required": "qa", "priority": "medium", "deadline": now - timedelta(days=5),
         "estimated_hours": 12, "status": "in_progress", "allocated_to": emily.id,
         "sprint_id": "SPRINT-24-01", "jira_issue_key": "PROJ-104"},
        {"task_id": "TASK-1005", "title": "API Documentation",
         "description": "Document all API endpoints",
         "role_required": "backend", "priority": "low", "deadline": now + timedelta(days=10),
         "estimated_hours": 4, "status": "pending", "allocated_to": None,
         "sprint_id": "SPRINT-24-02", "jira_issue_key": None},
    ]
    for task in tasks:
        store.upsert_work_item(task)

    commits = [
        ("sha123456", "feat: Implement data ingestion service PROJ-101", alex, 1, 350, 20, "service.js"),
        ("sha123457", "fix: Database connection timeout PROJ-101", alex, 2, 15, 5, "db.js"),
        ("sha888888", "feat: Add analytics charts PROJ-102", sarah, 3, 120, 0, "Chart.tsx"),
        ("sha999999", "chore: Update docker config", mike, 25, 5, 2, "Dockerfile"),
    ]
    for sha, message, author, age, additions, deletions, filename in commits:
        store.add_commit({
            "raw_signature": commit_signature("demo/pulseboard", sha),
            "commit_id": sha,
            "message": message,
            "author_id": author.id,
            "author_name": author.name,
            "author_email": author.email,
            "timestamp": now - timedelta(days=age),
            "source": "GitHub",
            "repo": "demo/pulseboard",
            "additions": additions,
            "deletions": deletions,
            "total": additions + deletions,
            "files_changed": [
                {"filename": filename, "language": detect_language(filename), "additions": additions}
            ],
            "linked_issues": extract_issue_keys(message),
        })

    store.upsert_issue({
        "issue_id": "10001", "key": "PROJ-101", "title": "Data Ingestion Pipeline",
        "status": "In Progress", "issue_type": "Story", "priority": "High",
        "assignee_id": alex.id, "story_points": 8, "epic_key": "PROJ-100",
        "estimated_cost": 40 * 95, "actual_cost": 0,
        "created_at": now - timedelta(days=10), "updated_at": now,
    })
    store.upsert_issue({
        "issue_id": "10002", "key": "PROJ-102", "title": "Dashboard UI Component",
        "status": "Done", "issue_type": "Task", "priority": "Medium",
        "assignee_id": sarah.id, "story_points": 5, "epic_key": "PROJ-100",
        "estimated_cost": 16 * 75, "actual_cost": 1200,
        "created_at": now - timedelta(days=10), "updated_at": now,
    })

    store.upsert_sprint({
        "sprint_id": "SPRINT-24-01", "name": "Sprint 24-01", "state": "active",
        "start_date": now - timedelta(days=7), "end_date": now + timedelta(days=7),
    })

    if not db.query(AllocationRun).count():
        store.add_allocation_run(
            sprint_id="SPRINT-24-01-RUN-1",
            sprint_name="Sprint 24-01",
            input_task_count=5,
            allocated_task_count=4,
            unallocated_count=1,
            total_cost=5000,
            status="completed",
            created_at=now - timedelta(days=7)
        )

    counts = {
        "people": len(people),
        "tasks": db.query(WorkItem).count(),
        "commits": len(commits),
        "issues": 2,
    }
    logger.info(f"Seeded demo data: {counts}")
    return counts
