"""
Finance analytics.

Pure functions over lists already loaded from the store. Cost is never stored
on a work item: every figure here is recomputed as hours x rate, using the
team's average hourly rate unless a per-person rate applies.
"""

import math
from datetime import datetime, timedelta
from collections import defaultdict
from typing import List, Dict, Any, Sequence, Optional

from pulseboard.db.models import Person, WorkItem, ExternalIssue, Sprint, AllocationRun, TaskStatus, utcnow
from pulseboard.analytics.common import (
    DEFAULT_HOURLY_RATE,
    MARKET_HOURLY_RATE,
    DEFAULT_CAPACITY_HOURS,
    average_hourly_rate,
    round_int,
    round_1,
    hours,
    total_hours,
    is_done,
    is_overdue,
    with_status,
    percent,
    tasks_for,
)

DELAY_OVERHEAD_HOURS = 4
DEFAULT_SPRINT_DAYS = 14
MAX_FEATURES = 20


def allocation_run_dict(run: AllocationRun) -> Dict[str, Any]:
    return {
        "id": run.id,
        "sprint_id": run.sprint_id,
        "sprint_name": run.sprint_name,
        "input_task_count": run.input_task_count,
        "allocated_task_count": run.allocated_task_count,
        "unallocated_count": run.unallocated_count,
        "total_cost": run.total_cost,
        "status": run.status,
        "created_at": run.created_at.isoformat() if run.created_at else None,
    }


def finance_overview(
    tasks: Sequence[WorkItem],
    people: Sequence[Person],
    issues: Sequence[ExternalIssue] = (),
    runs: Sequence[AllocationRun] = ()
) -> Dict[str, Any]:
    """Budget, spend, savings against the market rate, and ROI."""
    avg_rate = average_hourly_rate(people)

    estimated_hours = total_hours(tasks)
    completed = with_status(tasks, TaskStatus.DONE)
    in_progress = with_status(tasks, TaskStatus.IN_PROGRESS)
    pending = with_status(tasks, TaskStatus.PENDING)
    completed_hours = total_hours(completed)

    budgeted = estimated_hours * avg_rate
    spent = completed_hours * avg_rate
    market_cost = estimated_hours * MARKET_HOURLY_RATE
    savings = market_cost - budgeted
    roi = savings / budgeted * 100 if budgeted > 0 else 0

    tracked_cost = sum(
        (i.actual_cost or i.estimated_cost or 0)
        for i in issues
        if i.estimated_cost is not None
    )

    return {
        "summary": {
            "total_budgeted_cost": round_int(budgeted),
            "actual_spent_cost": round_int(spent),
            "remaining_budget": round_int(budgeted - spent),
            "market_rate_cost": round_int(market_cost),
            "projected_savings": round_int(savings),
            "roi_percentage": round_1(roi),
            "avg_hourly_rate": round_int(avg_rate),
            "tracked_issue_cost": round_int(tracked_cost),
            "currency": "USD",
        },
        "tasks": {
            "total": len(tasks),
            "completed": len(completed),
            "in_progress": len(in_progress),
            "pending": len(pending),
            "completion_rate": percent(len(completed), len(tasks)),
        },
        "hours": {
            "total_estimated": round_int(estimated_hours),
            "completed": round_int(completed_hours),
            "remaining": round_int(estimated_hours - completed_hours),
        },
        "allocation_history": [allocation_run_dict(r) for r in list(runs)[:10]],
    }


def daily_progress(
    tasks: Sequence[WorkItem],
    issues: Sequence[ExternalIssue],
    days: int = 30,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Per-day activity for the trailing `days` days, oldest first.

    Items are bucketed by the date they were last updated; items updated
    outside the window are ignored. Cumulative totals run across the window.
    """
    now = now or utcnow()
    window_start = now - timedelta(days=days)

    buckets: Dict[str, Dict[str, Any]] = {}
    for offset in range(days):
        day = (now - timedelta(days=offset)).date().isoformat()
        buckets[day] = {
            "date": day,
            "completed": 0,
            "started": 0,
            "delayed": 0,
            "on_track": 0,
            "cost_incurred": 0.0,
            "hours_logged": 0.0,
        }

    for task in tasks:
        if task.updated_at is None or task.updated_at < window_start:
            continue
        bucket = buckets.get(task.updated_at.date().isoformat())
        if bucket is None:
            continue
        if task.status == TaskStatus.DONE:
            bucket["completed"] += 1
            bucket["hours_logged"] += hours(task)
        if task.status == TaskStatus.IN_PROGRESS:
            bucket["started"] += 1
        if is_overdue(task, now):
            bucket["delayed"] += 1
        elif not is_done(task):
            bucket["on_track"] += 1

    for issue in issues:
        if issue.updated_at is None or issue.updated_at < window_start:
            continue
        bucket = buckets.get(issue.updated_at.date().isoformat())
        if bucket is not None:
            bucket["cost_incurred"] += issue.actual_cost or 0

    breakdown = sorted(buckets.values(), key=lambda b: b["date"])

    cumulative_completed = 0
    cumulative_cost = 0.0
    cumulative_hours = 0.0
    for day in breakdown:
        cumulative_completed += day["completed"]
        cumulative_cost += day["cost_incurred"]
        cumulative_hours += day["hours_logged"]
        day["cumulative_completed"] = cumulative_completed
        day["cumulative_cost"] = round_int(cumulative_cost)
        day["cumulative_hours"] = round_1(cumulative_hours)

    return {
        "period": f"{days} days",
        "daily_breakdown": breakdown,
        "totals": {
            "total_completed": cumulative_completed,
            "total_cost": round_int(cumulative_cost),
            "total_hours": round_int(cumulative_hours),
            "avg_daily_completion": round_1(cumulative_completed / days) if days > 0 else 0,
        },
    }


def _sprint_days(sprint: Sprint) -> int:
    if sprint.start_date and sprint.end_date:
        return math.ceil((sprint.end_date - sprint.start_date).total_seconds() / 86400)
    return DEFAULT_SPRINT_DAYS


def sprint_analysis(
    sprints: Sequence[Sprint],
    tasks: Sequence[WorkItem],
    people: Sequence[Person],
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Planned vs actual cost, delay cost and ROI for each sprint."""
    now = now or utcnow()
    avg_rate = average_hourly_rate(people)

    by_sprint: Dict[str, List[WorkItem]] = defaultdict(list)
    for task in tasks:
        if task.sprint_id:
            by_sprint[task.sprint_id].append(task)

    analysis = []
    for sprint in sprints:
        sprint_tasks = by_sprint.get(sprint.sprint_id, [])
        completed = with_status(sprint_tasks, TaskStatus.DONE)
        delayed = [t for t in sprint_tasks if is_overdue(t, now)]

        planned_hours = total_hours(sprint_tasks)
        completed_hours = total_hours(completed)
        planned_cost = planned_hours * avg_rate
        actual_cost = completed_hours * avg_rate
        delay_cost = len(delayed) * avg_rate * DELAY_OVERHEAD_HOURS

        sprint_days = _sprint_days(sprint)
        velocity = len(completed) / sprint_days if sprint_days > 0 else 0

        savings = planned_hours * MARKET_HOURLY_RATE - planned_cost
        roi = (savings - delay_cost) / planned_cost * 100 if planned_cost > 0 else 0

        analysis.append({
            "sprint_id": sprint.sprint_id,
            "name": sprint.name,
            "state": sprint.state,
            "start_date": sprint.start_date.isoformat() if sprint.start_date else None,
            "end_date": sprint.end_date.isoformat() if sprint.end_date else None,
            "goal": sprint.goal,
            "metrics": {
                "total_tasks": len(sprint_tasks),
                "completed_tasks": len(completed),
                "delayed_tasks": len(delayed),
                "completion_rate": percent(len(completed), len(sprint_tasks)),
                "velocity": round_1(velocity),
            },
            "financials": {
                "planned_cost": round_int(planned_cost),
                "actual_cost": round_int(actual_cost),
                "delay_cost": round_int(delay_cost),
                "total_cost": round_int(actual_cost + delay_cost),
                "savings": round_int(savings),
                "roi_percentage": round_1(roi),
                "currency": "USD",
            },
            "hours": {
                "planned": round_int(planned_hours),
                "completed": round_int(completed_hours),
                "remaining": round_int(planned_hours - completed_hours),
            },
        })

    count = len(analysis)
    avg_roi = sum(s["financials"]["roi_percentage"] for s in analysis) / count if count else 0
    return {
        "sprints": analysis,
        "overall": {
            "total_planned_cost": sum(s["financials"]["planned_cost"] for s in analysis),
            "total_actual_cost": sum(s["financials"]["total_cost"] for s in analysis),
            "total_savings": sum(s["financials"]["savings"] for s in analysis),
            "average_roi": round_1(avg_roi),
            "sprints_analyzed": count,
        },
    }


def _feature_status(completion_rate: float, cost_variance: float) -> str:
    if cost_variance > 20:
        return "over_budget"
    if completion_rate < 50 and cost_variance > 10:
        return "at_risk"
    if completion_rate >= 100:
        return "completed"
    return "on_track"


def feature_costs(issues: Sequence[ExternalIssue], people: Sequence[Person]) -> Dict[str, Any]:
    """
    Roll issues up by epic.

    Cost falls back to hours x average rate when the issue carries no cost.
    Returns the 20 most expensive features plus a summary over all of them.
    """
    avg_rate = average_hourly_rate(people)
    epics: Dict[str, Dict[str, Any]] = {}

    for issue in issues:
        epic_key = issue.epic_key or "No Epic"
        epic = epics.setdefault(epic_key, {
            "epic_key": epic_key,
            "issues": 0,
            "total_story_points": 0.0,
            "completed_story_points": 0.0,
            "estimated_cost": 0.0,
            "actual_cost": 0.0,
            "time_spent_hours": 0.0,
        })
        points = issue.story_points or 0
        epic["issues"] += 1
        epic["total_story_points"] += points
        if issue.status == "Done" or issue.resolution == "Done":
            epic["completed_story_points"] += points
        epic["estimated_cost"] += issue.estimated_cost or (issue.original_estimate_hours or 0) * avg_rate
        epic["actual_cost"] += issue.actual_cost or (issue.time_spent_hours or 0) * avg_rate
        epic["time_spent_hours"] += issue.time_spent_hours or 0

    features = []
    for epic in epics.values():
        completion = (
            epic["completed_story_points"] / epic["total_story_points"] * 100
            if epic["total_story_points"] > 0 else 0
        )
        variance = (
            (epic["actual_cost"] - epic["estimated_cost"]) / epic["estimated_cost"] * 100
            if epic["estimated_cost"] > 0 else 0
        )
        features.append({
            **epic,
            "completion_rate": round_int(completion),
            "estimated_cost": round_int(epic["estimated_cost"]),
            "actual_cost": round_int(epic["actual_cost"]),
            "cost_variance_percent": round_1(variance),
            "status": _feature_status(completion, variance),
            "currency": "USD",
        })

    features.sort(key=lambda f: f["actual_cost"], reverse=True)

    return {
        "features": features[:MAX_FEATURES],
        "summary": {
            "total_features": len(features),
            "total_estimated_cost": sum(f["estimated_cost"] for f in features),
            "total_actual_cost": sum(f["actual_cost"] for f in features),
            "features_at_risk": sum(1 for f in features if f["status"] in ("at_risk", "over_budget")),
        },
    }


def team_costs(people: Sequence[Person], tasks: Sequence[WorkItem]) -> Dict[str, Any]:
    """Allocated and incurred cost per person at their own hourly rate."""
    rows = []
    for person in people:
        person_tasks = tasks_for(person, tasks)
        completed = with_status(person_tasks, TaskStatus.DONE)
        in_progress = with_status(person_tasks, TaskStatus.IN_PROGRESS)

        allocated_hours = total_hours(person_tasks)
        completed_hours = total_hours(completed)
        rate = person.hourly_rate or DEFAULT_HOURLY_RATE
        capacity = person.capacity_hours_per_sprint or DEFAULT_CAPACITY_HOURS
        allocated_cost = allocated_hours * rate
        incurred = completed_hours * rate

        rows.append({
            "id": person.id,
            "user_id": person.user_id,
            "name": person.display_name or person.name,
            "email": person.email,
            "role": person.role,
            "team": person.team,
            "hourly_rate": rate,
            "metrics": {
                "total_tasks": len(person_tasks),
                "completed_tasks": len(completed),
                "in_progress_tasks": len(in_progress),
                "completion_rate": percent(len(completed), len(person_tasks)),
            },
            "hours": {
                "allocated": round_int(allocated_hours),
                "completed": round_int(completed_hours),
                "capacity": capacity,
                "utilization": round_int(allocated_hours / capacity * 100),
            },
            "cost": {
                "total_allocated": round_int(allocated_cost),
                "incurred": round_int(incurred),
                "remaining": round_int(allocated_cost - incurred),
                "currency": "USD",
            },
        })

    rows.sort(key=lambda r: r["cost"]["incurred"], reverse=True)
    active = [r for r in rows if r["metrics"]["total_tasks"] > 0]

    return {
        "team": active,
        "summary": {
            "total_team_members": len(active),
            "total_allocated_cost": sum(r["cost"]["total_allocated"] for r in rows),
            "total_incurred_cost": sum(r["cost"]["incurred"] for r in rows),
            "avg_utilization": round_int(
                sum(r["hours"]["utilization"] for r in rows) / (len(rows) or 1)
            ),
        },
    }
