"""Tests for the HR performance, retention and team calculations."""

from datetime import datetime, timedelta, date

from pulseboard.analytics.hr import (
    employee_metrics,
    employee_detail,
    retention_analysis,
    retention_level,
    team_stats,
    week_start,
)
from pulseboard.analytics.models import RetentionLevel
from pulseboard.db.models import Person, WorkItem, CommitActivity, ExternalIssue

NOW = datetime(2025, 3, 12, 12, 0, 0)  # Wednesday


def commit(author_id, days_ago, additions=10, deletions=2, files=None, linked=None):
    return CommitActivity(
        author_id=author_id,
        timestamp=NOW - timedelta(days=days_ago),
        additions=additions,
        deletions=deletions,
        files_changed=files or [],
        linked_issues=linked or [],
    )


def task(task_id, status, person_id, hours=None, **fields):
    fields.setdefault("updated_at", NOW)
    return WorkItem(task_id=task_id, status=status, allocated_to=person_id, estimated_hours=hours, **fields)


ALEX = Person(id=1, name="Alex Chen", role="Senior Developer", team="Backend", hourly_rate=100)
SARA = Person(id=2, display_name="Sara J", role="QA Engineer", department="Quality")


class TestEmployeeMetrics:

    def test_commit_and_task_metrics(self):
        commits = [commit(1, 1, 100, 20), commit(1, 3, 50, 30), commit(2, 1)]
        tasks = [
            task("A", "done", 1, 8),
            task("B", "in_progress", 1, 4),
            task("C", "pending", 1, 2, deadline=NOW - timedelta(days=1)),
        ]
        alex = employee_metrics([ALEX, SARA], commits, tasks, now=NOW)[0]
        metrics = alex["metrics"]

        assert alex["name"] == "Alex Chen"
        assert metrics["commits"]["total"] == 2
        assert metrics["commits"]["additions"] == 150
        assert metrics["commits"]["avg_size"] == 100
        assert metrics["commits"]["last_commit"] == (NOW - timedelta(days=1)).isoformat()
        assert metrics["tasks"]["overdue"] == 1
        assert metrics["tasks"]["completion_rate"] == 33
        assert metrics["hours"] == {"total_estimated": 14, "completed": 8}
        assert metrics["performance"]["workload_score"] == 10
        assert metrics["performance"]["stress_level"] == 25
        assert metrics["performance"]["productivity_score"] == 75

    def test_person_without_activity(self):
        sara = employee_metrics([SARA], [], [], now=NOW)[0]
        assert sara["name"] == "Sara J"
        assert sara["metrics"]["commits"]["last_commit"] is None
        assert sara["metrics"]["performance"]["productivity_score"] == 50
        assert sara["seniority_level"] == 1


class TestEmployeeDetail:

    def test_week_starts_on_sunday(self):
        assert week_start(NOW) == date(2025, 3, 9)
        assert week_start(datetime(2025, 3, 9, 8)) == date(2025, 3, 9)

    def test_weekly_activity_and_tech(self):
        commits = [
            commit(1, 0, files=[{"filename": "a.py", "language": "Python"}], linked=["PROJ-1"]),
            commit(1, 1, files=[{"filename": "b.py", "language": "Python"},
                                {"filename": "Dockerfile", "language": "Docker"}], linked=["PROJ-1", "PROJ-2"]),
            commit(1, 5, additions=1, deletions=1),
            commit(1, 45),
            commit(2, 0),
        ]
        issues = [ExternalIssue(key="PROJ-1"), ExternalIssue(key="PROJ-9")]
        detail = employee_detail(ALEX, commits, [task("A", "done", 1)], issues, now=NOW)

        assert detail["commits"]["total"] == 4
        assert detail["commits"]["recent_30_days"] == 3
        assert detail["commits"]["by_week"] == [
            {"week": "2025-03-02", "commits": 1, "additions": 1, "deletions": 1},
            {"week": "2025-03-09", "commits": 2, "additions": 20, "deletions": 4},
        ]
        assert detail["commits"]["tech_distribution"] == {"Python": 2, "Docker": 1}
        assert detail["issues"] == {"total": 1, "linked_to_commits": 2}
        assert detail["tasks"]["completed"] == 1


class TestRetention:

    def test_levels(self):
        assert retention_level(70) == RetentionLevel.CRITICAL
        assert retention_level(50) == RetentionLevel.HIGH
        assert retention_level(30) == RetentionLevel.MEDIUM
        assert retention_level(29) == RetentionLevel.LOW

    def test_overloaded_and_declining_employee_ranks_first(self):
        overdue = NOW - timedelta(days=1)
        tasks = [task(f"IP{i}", "in_progress", 1, deadline=overdue) for i in range(4)]
        commits = [commit(1, 60 + i) for i in range(12)]  # none in the last 30 days

        result = retention_analysis([SARA, ALEX], commits, tasks, now=NOW)
        first = result["employees"][0]

        assert first["employee"]["id"] == 1
        # workload (4 + 4) / 8 = 1, decline 1, overdue stress 1
        assert first["risk"] == {"score": 100, "level": "critical"}
        assert first["metrics"]["activity_trend"] == 0
        types = {r["type"] for r in first["recommendations"]}
        assert types == {"workload", "deadline", "engagement"}

        second = result["employees"][1]
        assert second["risk"]["level"] == "low"
        assert second["recommendations"][0]["type"] == "positive"

        assert result["summary"]["total_employees"] == 2
        assert result["summary"]["critical_risk"] == 1
        assert result["summary"]["low_risk"] == 1
        assert result["summary"]["avg_risk_score"] == 50

    def test_empty_team(self):
        result = retention_analysis([], [], [], now=NOW)
        assert result["employees"] == []
        assert result["summary"]["avg_risk_score"] == 0


class TestTeamStats:

    def test_grouped_by_team_then_department(self):
        lone = Person(id=3, name="Lone")
        tasks = [task("A", "done", 1, 10), task("B", "pending", 1, 10), task("C", "done", 2, 4)]
        stats = {t["name"]: t for t in team_stats([ALEX, SARA, lone], [commit(1, 1), commit(1, 2)], tasks)}

        assert set(stats) == {"Backend", "Quality", "Unassigned"}
        backend = stats["Backend"]
        assert backend["total_commits"] == 2
        assert backend["completion_rate"] == 50
        assert backend["total_cost"] == 2000
        assert stats["Quality"]["total_cost"] == 300
        assert stats["Unassigned"]["avg_commits_per_member"] == 0
