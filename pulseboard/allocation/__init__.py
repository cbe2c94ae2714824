"""Team roster, role resolution and the allocation planning view."""

from pulseboard.allocation.models import (
    TeamMember,
    EmployeeView,
    EmployeeWorkload,
    WorkloadPatch,
    AllocationBatch,
)
from pulseboard.allocation.config import TEAM, ROLE_MAP, load_team_roster
from pulseboard.allocation.resolver import resolve_assignee, RosterConfigError

__all__ = [
    "TeamMember",
    "EmployeeView",
    "EmployeeWorkload",
    "WorkloadPatch",
    "AllocationBatch",
    "TEAM",
    "ROLE_MAP",
    "load_team_roster",
    "resolve_assignee",
    "RosterConfigError",
]
