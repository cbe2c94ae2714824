"""Shared helpers for the finance and HR calculations."""

import math
from datetime import datetime
from typing import Iterable, Optional, Sequence
from pulseboard.db.models import Person, WorkItem, TaskStatus

DEFAULT_HOURLY_RATE = 75.0
MARKET_HOURLY_RATE = 150.0
DEFAULT_CAPACITY_HOURS = 40.0


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves away from zero on the positive side (0.5 -> 1, 2.25 -> 2.3)."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def round_int(value: float) -> int:
    return int(round_half_up(value))


def round_1(value: float) -> float:
    return round_half_up(value, 1)


def average_hourly_rate(people: Iterable[Person]) -> float:
    """Mean of the positive hourly rates, 75.0 when nobody has one."""
    rates = [p.hourly_rate for p in people if p.hourly_rate and p.hourly_rate > 0]
    if not rates:
        return DEFAULT_HOURLY_RATE
    return sum(rates) / len(rates)


def hours(task: WorkItem) -> float:
    return task.estimated_hours or 0


def total_hours(tasks: Iterable[WorkItem]) -> float:
    return sum(hours(t) for t in tasks)


def is_done(task: WorkItem) -> bool:
    return task.status == TaskStatus.DONE


def is_overdue(task: WorkItem, now: datetime) -> bool:
    """Past its deadline and not done."""
    return task.deadline is not None and task.deadline < now and not is_done(task)


def with_status(tasks: Iterable[WorkItem], status: str) -> list:
    return [t for t in tasks if t.status == status]


def percent(part: float, whole: float) -> int:
    return round_int(part / whole * 100) if whole > 0 else 0


def tasks_for(person: Person, tasks: Sequence[WorkItem]) -> list:
    return [t for t in tasks if t.allocated_to is not None and t.allocated_to == person.id]


def display_name(person: Person) -> str:
    return person.name or person.display_name or "Unknown"


def latest(values: Iterable[Optional[datetime]]) -> Optional[datetime]:
    present = [v for v in values if v is not None]
    return max(present) if present else None
