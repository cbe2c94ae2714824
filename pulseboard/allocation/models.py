"""Data models for the allocation planning view."""

from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class TeamMember(BaseModel):
    """A roster entry that can be assigned Jira issues."""
    model_config = ConfigDict(frozen=True)

    name: str
    account_id: str  # Jira accountId
    role: str


class EmployeeWorkload(BaseModel):
    """Workload block of the planning view."""
    active_tickets: int = 0
    ticket_weights: List[float] = []
    computed_score: float = Field(0.5, ge=0.0, le=1.0)  # 0 = idle, 1 = fully booked


class EmployeeView(BaseModel):
    """Person as the allocation planning view expects it."""
    id: Optional[str] = None
    name: str
    role: Optional[str] = None
    avatar: Optional[str] = None  # Initials
    availability: bool = True
    hours_per_week: float = 40
    workload: Optional[EmployeeWorkload] = None
    tech_stack: List[str] = []
    seniority: Optional[str] = None  # Junior, Mid, Senior, Lead
    efficiency: Optional[float] = None
    stress: Optional[float] = None
    cost_per_hour: Optional[float] = None
    experience: Optional[float] = None


class WorkloadPatch(BaseModel):
    """Workload score submitted from the planning view."""
    workload: float = Field(..., ge=0.0, le=1.0)


class AllocationBatch(BaseModel):
    """Allocation decisions submitted from the planning view."""
    allocations: List[Dict[str, Any]] = []
