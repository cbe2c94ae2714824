"""Read-side analytics for the finance and HR dashboards."""

from pulseboard.analytics.common import average_hourly_rate
from pulseboard.analytics.finance import (
    finance_overview,
    daily_progress,
    sprint_analysis,
    feature_costs,
    team_costs,
)
from pulseboard.analytics.risk import risk_assessment
from pulseboard.analytics.hr import (
    employee_metrics,
    employee_detail,
    retention_analysis,
    team_stats,
)

__all__ = [
    "average_hourly_rate",
    "finance_overview",
    "daily_progress",
    "sprint_analysis",
    "feature_costs",
    "team_costs",
    "risk_assessment",
    "employee_metrics",
    "employee_detail",
    "retention_analysis",
    "team_stats",
]
