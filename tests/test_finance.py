"""Tests for the finance calculations."""

from datetime import datetime, timedelta

import pytest

from pulseboard.analytics.common import average_hourly_rate, round_half_up, round_int, percent
from pulseboard.analytics.finance import (
    finance_overview,
    daily_progress,
    sprint_analysis,
    feature_costs,
    team_costs,
)
from pulseboard.db.models import Person, WorkItem, ExternalIssue, Sprint, AllocationRun

NOW = datetime(2025, 3, 12, 12, 0, 0)


def person(id, rate=None, **fields):
    return Person(id=id, name=f"P{id}", hourly_rate=rate, **fields)


def task(task_id, status="pending", hours=None, **fields):
    fields.setdefault("updated_at", NOW)
    return WorkItem(task_id=task_id, status=status, estimated_hours=hours, **fields)


class TestRounding:

    @pytest.mark.parametrize("value, expected", [(0.5, 1), (1.5, 2), (2.5, 3), (2.4, 2)])
    def test_half_up(self, value, expected):
        assert round_int(value) == expected

    def test_one_decimal(self):
        assert round_half_up(66.66666, 1) == 66.7

    def test_percent_of_zero(self):
        assert percent(3, 0) == 0


class TestAverageHourlyRate:

    def test_mean_of_positive_rates(self):
        assert average_hourly_rate([person(1, 50), person(2, 100), person(3, 0), person(4)]) == 75.0

    def test_fallback_when_no_rates(self):
        assert average_hourly_rate([]) == 75.0
        assert average_hourly_rate([person(1), person(2, 0)]) == 75.0

    def test_single_rate(self):
        assert average_hourly_rate([person(1, 120)]) == 120.0


class TestFinanceOverview:

    def test_costs_and_roi(self):
        tasks = [
            task("A", "done", 10),
            task("B", "in_progress", 20),
            task("C", "pending", 10),
        ]
        people = [person(1, 50), person(2, 100)]
        overview = finance_overview(tasks, people)
        summary = overview["summary"]

        assert summary["avg_hourly_rate"] == 75
        assert summary["total_budgeted_cost"] == 3000
        assert summary["actual_spent_cost"] == 750
        assert summary["remaining_budget"] == 2250
        assert summary["market_rate_cost"] == 6000
        assert summary["projected_savings"] == 3000
        assert summary["roi_percentage"] == 100.0
        assert overview["tasks"] == {
            "total": 3, "completed": 1, "in_progress": 1, "pending": 1, "completion_rate": 33,
        }
        assert overview["hours"] == {"total_estimated": 40, "completed": 10, "remaining": 30}

    def test_empty_store_has_zero_roi(self):
        overview = finance_overview([], [])
        assert overview["summary"]["total_budgeted_cost"] == 0
        assert overview["summary"]["roi_percentage"] == 0
        assert overview["summary"]["avg_hourly_rate"] == 75
        assert overview["tasks"]["completion_rate"] == 0

    def test_missing_hours_count_as_zero(self):
        overview = finance_overview([task("A", "done"), task("B", hours=4)], [person(1, 100)])
        assert overview["summary"]["total_budgeted_cost"] == 400

    def test_tracked_issue_cost_and_history(self):
        issues = [
            ExternalIssue(key="P-1", estimated_cost=100, actual_cost=150),
            ExternalIssue(key="P-2", estimated_cost=200),
            ExternalIssue(key="P-3", actual_cost=999),
        ]
        runs = [AllocationRun(id=i, input_task_count=1, allocated_task_count=1,
                              unallocated_count=0, total_cost=10, status="completed",
                              created_at=NOW) for i in range(12)]
        overview = finance_overview([], [], issues, runs)

        assert overview["summary"]["tracked_issue_cost"] == 350
        assert len(overview["allocation_history"]) == 10
        assert overview["allocation_history"][0]["created_at"] == NOW.isoformat()


class TestDailyProgress:

    def test_buckets_and_cumulative_totals(self):
        tasks = [
            task("A", "done", 5, updated_at=NOW),
            task("B", "done", 3, updated_at=NOW - timedelta(days=1)),
            task("C", "in_progress", 8, updated_at=NOW - timedelta(days=1)),
            task("D", "pending", 2, updated_at=NOW - timedelta(days=2),
                 deadline=NOW - timedelta(days=3)),
            task("OLD", "done", 9, updated_at=NOW - timedelta(days=10)),
        ]
        issues = [ExternalIssue(key="P-1", actual_cost=200, updated_at=NOW - timedelta(days=2))]

        progress = daily_progress(tasks, issues, days=3, now=NOW)
        days = progress["daily_breakdown"]

        assert [d["date"] for d in days] == ["2025-03-10", "2025-03-11", "2025-03-12"]
        assert [d["completed"] for d in days] == [0, 1, 1]
        assert days[0]["delayed"] == 1
        assert days[0]["cost_incurred"] == 200
        assert days[1]["started"] == 1
        assert days[1]["on_track"] == 1
        assert [d["cumulative_completed"] for d in days] == [0, 1, 2]
        assert [d["cumulative_hours"] for d in days] == [0, 3, 8]

        cumulative = [d["cumulative_completed"] for d in days]
        assert cumulative == sorted(cumulative)

        assert progress["period"] == "3 days"
        assert progress["totals"] == {
            "total_completed": 2, "total_cost": 200, "total_hours": 8, "avg_daily_completion": 0.7,
        }

    def test_zero_days(self):
        progress = daily_progress([task("A", "done", 1)], [], days=0, now=NOW)
        assert progress["daily_breakdown"] == []
        assert progress["totals"]["avg_daily_completion"] == 0


class TestSprintAnalysis:

    def test_costs_delay_and_velocity(self):
        sprint = Sprint(sprint_id="S1", name="Sprint 1", state="active",
                        start_date=NOW - timedelta(days=7), end_date=NOW + timedelta(days=7))
        tasks = [
            task("A", "done", 10, sprint_id="S1"),
            task("B", "pending", 10, sprint_id="S1", deadline=NOW - timedelta(days=1)),
            task("C", "done", 50, sprint_id="OTHER"),
        ]
        analysis = sprint_analysis([sprint], tasks, [person(1, 100)], now=NOW)
        s = analysis["sprints"][0]

        assert s["metrics"]["total_tasks"] == 2
        assert s["metrics"]["delayed_tasks"] == 1
        assert s["metrics"]["completion_rate"] == 50
        assert s["metrics"]["velocity"] == 0.1
        assert s["financials"]["planned_cost"] == 2000
        assert s["financials"]["actual_cost"] == 1000
        assert s["financials"]["delay_cost"] == 400
        assert s["financials"]["total_cost"] == 1400
        assert s["financials"]["savings"] == 1000
        assert s["financials"]["roi_percentage"] == 30.0
        assert analysis["overall"]["sprints_analyzed"] == 1
        assert analysis["overall"]["average_roi"] == 30.0

    def test_sprint_without_dates_uses_two_weeks(self):
        sprint = Sprint(sprint_id="S1")
        tasks = [task(f"T{i}", "done", 1, sprint_id="S1") for i in range(7)]
        s = sprint_analysis([sprint], tasks, [], now=NOW)["sprints"][0]
        assert s["metrics"]["velocity"] == 0.5

    def test_no_sprints(self):
        assert sprint_analysis([], [], [], now=NOW)["overall"]["average_roi"] == 0


class TestFeatureCosts:

    def test_grouping_and_status(self):
        issues = [
            ExternalIssue(key="P-1", epic_key="EPIC-1", status="Done", story_points=5,
                          estimated_cost=100, actual_cost=130),
            ExternalIssue(key="P-2", epic_key="EPIC-1", status="In Progress", story_points=5,
                          estimated_cost=100, actual_cost=100),
            ExternalIssue(key="P-3", status="Done", story_points=3,
                          original_estimate_hours=2, time_spent_hours=2),
        ]
        result = feature_costs(issues, [person(1, 50)])
        by_epic = {f["epic_key"]: f for f in result["features"]}

        epic = by_epic["EPIC-1"]
        assert epic["issues"] == 2
        assert epic["completion_rate"] == 50
        assert epic["cost_variance_percent"] == 15.0
        assert epic["status"] == "on_track"

        no_epic = by_epic["No Epic"]
        assert no_epic["estimated_cost"] == 100
        assert no_epic["actual_cost"] == 100
        assert no_epic["status"] == "completed"

        assert result["features"][0]["epic_key"] == "EPIC-1"
        assert result["summary"]["total_features"] == 2

    def test_over_budget(self):
        issues = [ExternalIssue(key="P-1", epic_key="E", estimated_cost=100, actual_cost=150)]
        assert feature_costs(issues, [])["features"][0]["status"] == "over_budget"

    def test_at_risk(self):
        issues = [ExternalIssue(key="P-1", epic_key="E", story_points=5, status="To Do",
                                estimated_cost=100, actual_cost=115)]
        result = feature_costs(issues, [])
        assert result["features"][0]["status"] == "at_risk"
        assert result["summary"]["features_at_risk"] == 1

    def test_top_twenty(self):
        issues = [ExternalIssue(key=f"P-{i}", epic_key=f"E{i}", actual_cost=i) for i in range(25)]
        result = feature_costs(issues, [])
        assert len(result["features"]) == 20
        assert result["summary"]["total_features"] == 25


class TestTeamCosts:

    def test_per_person_rates(self):
        people = [person(1, 100, capacity_hours_per_sprint=20), person(2), person(3, 80)]
        tasks = [
            task("A", "done", 10, allocated_to=1),
            task("B", "in_progress", 10, allocated_to=1),
            task("C", "done", 4, allocated_to=2),
        ]
        result = team_costs(people, tasks)
        rows = {r["id"]: r for r in result["team"]}

        assert set(rows) == {1, 2}
        assert rows[1]["cost"] == {"total_allocated": 2000, "incurred": 1000, "remaining": 1000, "currency": "USD"}
        assert rows[1]["hours"]["utilization"] == 100
        assert rows[2]["hourly_rate"] == 75
        assert rows[2]["hours"]["capacity"] == 40
        assert result["team"][0]["id"] == 1
        assert result["summary"]["total_team_members"] == 2
        assert result["summary"]["total_incurred_cost"] == 1300
