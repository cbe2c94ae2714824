"""Data models for the analytics read side."""

from enum import Enum
from typing import List, Dict
from pydantic import BaseModel


class Severity(str, Enum):
    """Risk severity tier, ordered high -> low."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERITY_ORDER: Dict[str, int] = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


class RiskItem(BaseModel):
    """Outcome of one risk rule."""
    type: str  # "delayed_tasks", "resource_overload", "unassigned_priority", "scope_creep"
    severity: Severity
    count: int
    potential_cost_impact: int
    description: str
    recommendation: str


class RiskSummary(BaseModel):
    high_risks: int = 0
    medium_risks: int = 0
    low_risks: int = 0
    total_risks: int = 0


class RiskAssessment(BaseModel):
    """All triggered risks, most severe first."""
    overall_risk_level: Severity = Severity.LOW
    total_risk_exposure: int = 0
    risks: List[RiskItem] = []
    summary: RiskSummary = RiskSummary()
    currency: str = "USD"


class RetentionLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
