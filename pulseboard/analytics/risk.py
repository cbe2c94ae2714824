"""
Cost risk assessment.

Four independent rules, each scored from fixed thresholds:
- delayed_tasks: work past its deadline
- resource_overload: people with more than 40 open hours
- unassigned_priority: high-priority pending work with no assignee
- scope_creep: more than 60% of all work still pending
"""

from datetime import datetime
from collections import defaultdict
from typing import List, Dict, Sequence, Optional

from pulseboard.db.models import Person, WorkItem, TaskStatus, utcnow
from pulseboard.analytics.common import average_hourly_rate, round_int, is_done, is_overdue
from pulseboard.analytics.models import (
    Severity, SEVERITY_ORDER, RiskItem, RiskAssessment, RiskSummary
)

UNKNOWN_TASK_HOURS = 8
OVERLOAD_HOURS = 40
PENDING_RATIO_LIMIT = 0.6

DELAY_OVERHEAD = 0.3  # Extra cost fraction of a late task
OVERTIME_HOURS_PER_PERSON = 8
UNASSIGNED_DELAY_HOURS = 16  # Two working days
SCOPE_REVIEW_HOURS = 4


def _delayed_tasks(tasks: Sequence[WorkItem], avg_rate: float, now: datetime) -> Optional[RiskItem]:
    delayed = [t for t in tasks if is_overdue(t, now)]
    if not delayed:
        return None
    delayed_hours = sum(t.estimated_hours or UNKNOWN_TASK_HOURS for t in delayed)
    count = len(delayed)
    if count > 5:
        severity = Severity.HIGH
    elif count > 2:
        severity = Severity.MEDIUM
    else:
        severity = Severity.LOW
    return RiskItem(
        type="delayed_tasks",
        severity=severity,
        count=count,
        potential_cost_impact=round_int(delayed_hours * avg_rate * DELAY_OVERHEAD),
        description=f"{count} tasks are past their deadline",
        recommendation="Prioritize completing delayed tasks or adjust timelines"
    )


def _resource_overload(tasks: Sequence[WorkItem], avg_rate: float) -> Optional[RiskItem]:
    open_hours: Dict[int, float] = defaultdict(float)
    for task in tasks:
        if task.allocated_to is not None and not is_done(task):
            open_hours[task.allocated_to] += task.estimated_hours or UNKNOWN_TASK_HOURS

    overloaded = [person_id for person_id, h in open_hours.items() if h > OVERLOAD_HOURS]
    if not overloaded:
        return None
    count = len(overloaded)
    return RiskItem(
        type="resource_overload",
        severity=Severity.HIGH if count > 3 else Severity.MEDIUM,
        count=count,
        potential_cost_impact=round_int(count * avg_rate * OVERTIME_HOURS_PER_PERSON),
        description=f"{count} team members are overallocated",
        recommendation="Redistribute tasks or adjust timelines"
    )


def _unassigned_priority(tasks: Sequence[WorkItem], avg_rate: float) -> Optional[RiskItem]:
    unassigned = [
        t for t in tasks
        if t.priority == "high" and t.allocated_to is None and t.status == TaskStatus.PENDING
    ]
    if not unassigned:
        return None
    count = len(unassigned)
    return RiskItem(
        type="unassigned_priority",
        severity=Severity.HIGH if count > 3 else Severity.MEDIUM,
        count=count,
        potential_cost_impact=round_int(count * avg_rate * UNASSIGNED_DELAY_HOURS),
        description=f"{count} high-priority tasks are not assigned",
        recommendation="Immediately assign resources to high-priority tasks"
    )


def _scope_creep(tasks: Sequence[WorkItem], avg_rate: float) -> Optional[RiskItem]:
    if not tasks:
        return None
    pending = sum(1 for t in tasks if t.status == TaskStatus.PENDING)
    ratio = pending / len(tasks)
    if ratio <= PENDING_RATIO_LIMIT:
        return None
    return RiskItem(
        type="scope_creep",
        severity=Severity.MEDIUM,
        count=pending,
        potential_cost_impact=round_int(pending * avg_rate * SCOPE_REVIEW_HOURS),
        description=f"{round_int(ratio * 100)}% of tasks are still pending",
        recommendation="Review sprint scope and prioritize essential tasks"
    )


def overall_level(risks: List[RiskItem]) -> Severity:
    """High if any rule is high, medium if more than two are medium, else low."""
    high = sum(1 for r in risks if r.severity == Severity.HIGH)
    medium = sum(1 for r in risks if r.severity == Severity.MEDIUM)
    if high > 0:
        return Severity.HIGH
    if medium > 2:
        return Severity.MEDIUM
    return Severity.LOW


def risk_assessment(
    tasks: Sequence[WorkItem],
    people: Sequence[Person],
    now: Optional[datetime] = None
) -> RiskAssessment:
    """Evaluate every rule and return the triggered ones, most severe first."""
    now = now or utcnow()
    avg_rate = average_hourly_rate(people)

    candidates = [
        _delayed_tasks(tasks, avg_rate, now),
        _resource_overload(tasks, avg_rate),
        _unassigned_priority(tasks, avg_rate),
        _scope_creep(tasks, avg_rate),
    ]
    risks = sorted(
        (r for r in candidates if r is not None),
        key=lambda r: SEVERITY_ORDER[r.severity]
    )

    return RiskAssessment(
        overall_risk_level=overall_level(risks),
        total_risk_exposure=sum(r.potential_cost_impact for r in risks),
        risks=risks,
        summary=RiskSummary(
            high_risks=sum(1 for r in risks if r.severity == Severity.HIGH),
            medium_risks=sum(1 for r in risks if r.severity == Severity.MEDIUM),
            low_risks=sum(1 for r in risks if r.severity == Severity.LOW),
            total_risks=len(risks)
        )
    )
