"""
Mapping between stored people and the allocation planning view.

to_employee_view is a one-way derived view: seniority tier and cost per hour
are synthesized from experience and role, so they cannot be read back.
person_from_employee is a separate constructor for new people submitted from
the view and fills store-only fields with defaults.
"""

import math
import time
import logging
from typing import Optional, List, Dict, Any
from sqlalchemy import func
from sqlalchemy.orm import Session
from pulseboard.db.models import Person
from pulseboard.db.store_service import StoreService
from pulseboard.allocation.models import EmployeeView, EmployeeWorkload
from pulseboard.analytics.common import round_int

logger = logging.getLogger(__name__)

MAX_SLOTS_PER_WEEK = 40
DEFAULT_FREE_SLOTS = 20
DEFAULT_EXPERIENCE = 3
DEFAULT_EFFICIENCY = 0.85
DEFAULT_WORKLOAD = 0.5
DEFAULT_HOURS_PER_WEEK = 40

BASE_RATE = 30
EXPERIENCE_BONUS_PER_YEAR = 3
SENIOR_ROLE_BONUS = 20
SENIOR_ROLE_KEYWORDS = ("lead", "manager", "senior")


def workload_score(free_slots: Optional[float]) -> float:
    """Busy fraction of the week, clamped to [0, 1]."""
    if free_slots is None:
        free_slots = DEFAULT_FREE_SLOTS
    return max(0.0, min(1.0, 1 - (free_slots / MAX_SLOTS_PER_WEEK)))


def free_slots_from_workload(score: float) -> int:
    """Inverse of workload_score, rounded to whole hours."""
    return round_int((1 - score) * MAX_SLOTS_PER_WEEK)


def seniority_tier(years: float) -> str:
    if years >= 10:
        return "Lead"
    if years >= 6:
        return "Senior"
    if years <= 2:
        return "Junior"
    return "Mid"


def synthetic_cost_per_hour(years: float, role: Optional[str]) -> float:
    role_lower = (role or "").lower()
    role_bonus = SENIOR_ROLE_BONUS if any(k in role_lower for k in SENIOR_ROLE_KEYWORDS) else 0
    return BASE_RATE + years * EXPERIENCE_BONUS_PER_YEAR + role_bonus


def initials(name: str) -> str:
    return "".join(part[0] for part in name.split() if part).upper()[:2]


def to_employee_view(person: Person, index: int = 0) -> EmployeeView:
    """Derive the planning-view record for a stored person."""
    score = workload_score(person.free_slots_per_week)
    years = person.years_of_experience or DEFAULT_EXPERIENCE
    name = person.name or person.display_name or f"Employee {index + 1}"

    return EmployeeView(
        id=str(person.id),
        name=name,
        role=person.role or person.team or "Developer",
        avatar=initials(name),
        availability=person.availability != "Busy",
        hours_per_week=person.capacity_hours_per_sprint or DEFAULT_HOURS_PER_WEEK,
        workload=EmployeeWorkload(
            active_tickets=math.floor(score * 5),
            ticket_weights=[],
            computed_score=score
        ),
        tech_stack=list(person.skills or []),
        seniority=seniority_tier(years),
        efficiency=person.past_performance_score or DEFAULT_EFFICIENCY,
        stress=score * 0.6,
        cost_per_hour=synthetic_cost_per_hour(years, person.role),
        experience=years
    )


def person_from_employee(view: EmployeeView, stamp: Optional[int] = None) -> Person:
    """
    Build a new Person from a planning-view record.

    `stamp` makes the generated user/employee ids unique (callers pass a
    millisecond timestamp, the current time by default).
    """
    if stamp is None:
        stamp = int(time.time() * 1000)
    score = view.workload.computed_score if view.workload else DEFAULT_WORKLOAD
    return Person(
        user_id=f"manual:{stamp}",
        employee_id=view.id or f"EMP{stamp}",
        name=view.name,
        display_name=view.name,
        role="Developer",
        team=view.role,
        skills=list(view.tech_stack),
        years_of_experience=view.experience or DEFAULT_EXPERIENCE,
        free_slots_per_week=free_slots_from_workload(score),
        availability="Free" if view.availability else "Busy",
        past_performance_score=view.efficiency or DEFAULT_EFFICIENCY,
        capacity_hours_per_sprint=view.hours_per_week or DEFAULT_HOURS_PER_WEEK,
        source="Manual"
    )


def record_allocations(db: Session, decisions: List[Dict[str, Any]]) -> int:
    """Append planning-view allocation decisions. Returns how many were stored."""
    count = StoreService(db).add_allocation_decisions(decisions)
    logger.info(f"Recorded {count} allocation decisions")
    return count


def allocation_stats(db: Session) -> Dict[str, Any]:
    total = db.query(Person).count()
    available = db.query(Person).filter(
        (Person.availability != "Busy") | (Person.availability.is_(None))
    ).count()
    avg_experience = db.query(func.avg(Person.years_of_experience)).scalar()
    return {
        "total": total,
        "available": available,
        "avg_experience": float(avg_experience or 0),
    }
