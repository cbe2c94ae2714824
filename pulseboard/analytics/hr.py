"""
HR analytics: per-employee performance, retention risk and team roll-ups.

Commit activity is matched to people through CommitActivity.author_id and
work through WorkItem.allocated_to.
"""

from datetime import datetime, timedelta, date
from collections import Counter
from typing import List, Dict, Any, Sequence, Optional

from pulseboard.db.models import Person, WorkItem, CommitActivity, ExternalIssue, TaskStatus, utcnow
from pulseboard.analytics.common import (
    DEFAULT_HOURLY_RATE,
    round_int,
    total_hours,
    is_overdue,
    with_status,
    percent,
    tasks_for,
    display_name,
    latest,
)
from pulseboard.analytics.models import RetentionLevel

MAX_ACTIVE_TICKETS = 10
OVERDUE_STRESS_POINTS = 15
RECENT_DAYS = 30
HISTORY_MONTHS = 6


def commits_for(person: Person, commits: Sequence[CommitActivity]) -> List[CommitActivity]:
    return [c for c in commits if c.author_id is not None and c.author_id == person.id]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def person_dict(person: Person) -> Dict[str, Any]:
    return {
        "id": person.id,
        "user_id": person.user_id,
        "employee_id": person.employee_id,
        "name": display_name(person),
        "email": person.email,
        "role": person.role,
        "department": person.department,
        "team": person.team,
        "skills": list(person.skills or []),
        "seniority_level": person.seniority_level or 1,
        "hourly_rate": person.hourly_rate or 0,
        "years_of_experience": person.years_of_experience or 0,
        "availability": person.availability,
    }


# =============================================================================
# Employee metrics
# =============================================================================

def _metrics(person_commits: List[CommitActivity], person_tasks: List[WorkItem], now: datetime) -> Dict[str, Any]:
    completed = with_status(person_tasks, TaskStatus.DONE)
    in_progress = with_status(person_tasks, TaskStatus.IN_PROGRESS)
    pending = with_status(person_tasks, TaskStatus.PENDING)
    overdue = [t for t in person_tasks if is_overdue(t, now)]

    additions = sum(c.additions or 0 for c in person_commits)
    deletions = sum(c.deletions or 0 for c in person_commits)
    avg_size = round_int((additions + deletions) / len(person_commits)) if person_commits else 0

    completion_rate = percent(len(completed), len(person_tasks))
    workload = min(100, round_int(len(in_progress) / MAX_ACTIVE_TICKETS * 100))
    stress = min(100, workload + len(overdue) * OVERDUE_STRESS_POINTS)
    if person_commits:
        productivity = min(100, round_int(len(completed) / len(person_commits) * 50) + 50)
    else:
        productivity = 50

    return {
        "commits": {
            "total": len(person_commits),
            "additions": additions,
            "deletions": deletions,
            "avg_size": avg_size,
            "last_commit": _iso(latest(c.timestamp for c in person_commits)),
        },
        "tasks": {
            "total": len(person_tasks),
            "completed": len(completed),
            "in_progress": len(in_progress),
            "pending": len(pending),
            "overdue": len(overdue),
            "completion_rate": completion_rate,
        },
        "hours": {
            "total_estimated": total_hours(person_tasks),
            "completed": total_hours(completed),
        },
        "performance": {
            "workload_score": workload,
            "stress_level": stress,
            "efficiency": completion_rate,
            "productivity_score": productivity,
        },
    }


def employee_metrics(
    people: Sequence[Person],
    commits: Sequence[CommitActivity],
    tasks: Sequence[WorkItem],
    now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """Every person with commit, task, hours and performance metrics."""
    now = now or utcnow()
    return [
        {
            **person_dict(person),
            "metrics": _metrics(commits_for(person, commits), tasks_for(person, tasks), now),
        }
        for person in people
    ]


def week_start(value: datetime) -> date:
    """Sunday on or before the given day."""
    day = value.date()
    return day - timedelta(days=(day.weekday() + 1) % 7)


def employee_detail(
    person: Person,
    commits: Sequence[CommitActivity],
    tasks: Sequence[WorkItem],
    issues: Sequence[ExternalIssue] = (),
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Drill-down for one person.

    `commits` and `tasks` may be unfiltered; only the person's own rows are
    used. `issues` are the mirrored issues to match against commit links.
    """
    now = now or utcnow()
    cutoff = now - timedelta(days=RECENT_DAYS)
    person_commits = commits_for(person, commits)
    person_tasks = tasks_for(person, tasks)

    recent_commits = [c for c in person_commits if c.timestamp and c.timestamp >= cutoff]
    recent_tasks = [t for t in person_tasks if t.updated_at and t.updated_at >= cutoff]

    weekly: Dict[str, Dict[str, int]] = {}
    for commit in sorted(recent_commits, key=lambda c: c.timestamp):
        week = weekly.setdefault(
            week_start(commit.timestamp).isoformat(),
            {"commits": 0, "additions": 0, "deletions": 0}
        )
        week["commits"] += 1
        week["additions"] += commit.additions or 0
        week["deletions"] += commit.deletions or 0

    tech = Counter(
        f["language"]
        for commit in person_commits
        for f in (commit.files_changed or [])
        if isinstance(f, dict) and f.get("language")
    )

    linked_keys = list(dict.fromkeys(
        key for commit in person_commits for key in (commit.linked_issues or [])
    ))
    linked_issues = [i for i in issues if i.key in set(linked_keys)]

    return {
        "employee": person_dict(person),
        "commits": {
            "total": len(person_commits),
            "recent_30_days": len(recent_commits),
            "by_week": [{"week": week, **data} for week, data in weekly.items()],
            "tech_distribution": dict(tech),
        },
        "tasks": {
            "total": len(person_tasks),
            "completed": len(with_status(person_tasks, TaskStatus.DONE)),
            "in_progress": len(with_status(person_tasks, TaskStatus.IN_PROGRESS)),
            "pending": len(with_status(person_tasks, TaskStatus.PENDING)),
            "overdue": sum(1 for t in person_tasks if is_overdue(t, now)),
            "recent_30_days": len(recent_tasks),
        },
        "issues": {
            "total": len(linked_issues),
            "linked_to_commits": len(linked_keys),
        },
    }


# =============================================================================
# Retention
# =============================================================================

def retention_level(score: int) -> RetentionLevel:
    if score >= 70:
        return RetentionLevel.CRITICAL
    if score >= 50:
        return RetentionLevel.HIGH
    if score >= 30:
        return RetentionLevel.MEDIUM
    return RetentionLevel.LOW


def _recommendations(workload: float, overdue_stress: float, decline: float, score: int) -> List[Dict[str, str]]:
    recommendations = []
    if workload > 0.7:
        recommendations.append({
            "type": "workload",
            "message": "Consider redistributing tasks to reduce workload",
            "priority": "high",
        })
    if overdue_stress > 0.5:
        recommendations.append({
            "type": "deadline",
            "message": "Review and extend deadlines for overdue tasks",
            "priority": "high",
        })
    if decline > 0.5:
        recommendations.append({
            "type": "engagement",
            "message": "Schedule 1:1 to discuss career goals and challenges",
            "priority": "medium",
        })
    if score < 30:
        recommendations.append({
            "type": "positive",
            "message": "Employee shows healthy engagement levels",
            "priority": "info",
        })
    return recommendations


def retention_analysis(
    people: Sequence[Person],
    commits: Sequence[CommitActivity],
    tasks: Sequence[WorkItem],
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Retention risk per person, highest first.

    Score = 40 x workload factor + 30 x activity decline + 30 x overdue stress,
    where workload factor = (in progress + overdue) / 8, activity decline
    compares the last 30 days with the six-month monthly average, and overdue
    stress = overdue / 3. Each factor is capped at 1.
    """
    now = now or utcnow()
    cutoff = now - timedelta(days=RECENT_DAYS)
    employees = []

    for person in people:
        person_commits = commits_for(person, commits)
        person_tasks = tasks_for(person, tasks)

        recent = [c for c in person_commits if c.timestamp and c.timestamp >= cutoff]
        completed = with_status(person_tasks, TaskStatus.DONE)
        in_progress = with_status(person_tasks, TaskStatus.IN_PROGRESS)
        overdue = [t for t in person_tasks if is_overdue(t, now)]

        workload = min(1.0, (len(in_progress) + len(overdue)) / 8)
        monthly_avg = len(person_commits) / HISTORY_MONTHS
        decline = max(0.0, 1 - len(recent) / monthly_avg) if monthly_avg > 0 else 0.0
        overdue_stress = min(1.0, len(overdue) / 3)

        score = round_int(workload * 40 + decline * 30 + overdue_stress * 30)

        employees.append({
            "employee": {
                "id": person.id,
                "name": display_name(person),
                "email": person.email,
                "role": person.role,
                "team": person.team,
                "department": person.department,
            },
            "metrics": {
                "workload_factor": round_int(workload * 100),
                "activity_trend": round_int((1 - decline) * 100),
                "overdue_stress": round_int(overdue_stress * 100),
                "recent_commits": len(recent),
                "active_tasks": len(in_progress),
                "overdue_tasks": len(overdue),
                "completed_tasks": len(completed),
            },
            "risk": {
                "score": score,
                "level": retention_level(score).value,
            },
            "recommendations": _recommendations(workload, overdue_stress, decline, score),
        })

    employees.sort(key=lambda e: e["risk"]["score"], reverse=True)
    levels = Counter(e["risk"]["level"] for e in employees)

    return {
        "summary": {
            "total_employees": len(people),
            "critical_risk": levels[RetentionLevel.CRITICAL.value],
            "high_risk": levels[RetentionLevel.HIGH.value],
            "medium_risk": levels[RetentionLevel.MEDIUM.value],
            "low_risk": levels[RetentionLevel.LOW.value],
            "avg_risk_score": round_int(
                sum(e["risk"]["score"] for e in employees) / max(1, len(employees))
            ),
        },
        "employees": employees,
    }


# =============================================================================
# Teams
# =============================================================================

def team_stats(
    people: Sequence[Person],
    commits: Sequence[CommitActivity],
    tasks: Sequence[WorkItem]
) -> List[Dict[str, Any]]:
    """Roll people up by team (falling back to department, then 'Unassigned')."""
    teams: Dict[str, Dict[str, Any]] = {}

    for person in people:
        name = person.team or person.department or "Unassigned"
        team = teams.setdefault(name, {
            "name": name,
            "member_count": 0,
            "total_commits": 0,
            "total_tasks": 0,
            "completed_tasks": 0,
            "total_hours": 0.0,
            "total_cost": 0.0,
            "members": [],
        })

        person_tasks = tasks_for(person, tasks)
        person_hours = total_hours(person_tasks)

        team["member_count"] += 1
        team["total_commits"] += len(commits_for(person, commits))
        team["total_tasks"] += len(person_tasks)
        team["completed_tasks"] += len(with_status(person_tasks, TaskStatus.DONE))
        team["total_hours"] += person_hours
        team["total_cost"] += person_hours * (person.hourly_rate or DEFAULT_HOURLY_RATE)
        team["members"].append({
            "id": person.id,
            "name": person.name or person.display_name,
            "role": person.role,
        })

    for team in teams.values():
        team["completion_rate"] = percent(team["completed_tasks"], team["total_tasks"])
        team["avg_commits_per_member"] = (
            round_int(team["total_commits"] / team["member_count"]) if team["member_count"] else 0
        )

    return list(teams.values())
