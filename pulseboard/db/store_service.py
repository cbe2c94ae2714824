"""
Store service for the dashboard data.

Provides natural-key upserts (task id, issue key, commit signature, email)
so that every import or sync can be re-run without creating duplicates, plus
the read helpers the analytics routes need.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple, Type
from sqlalchemy.orm import Session
from sqlalchemy import or_, desc, asc, func

from pulseboard.db.models import (
    Base, Person, WorkItem, ExternalIssue, CommitActivity,
    Sprint, AllocationRun, AllocationDecision, TaskStatus, utcnow
)


class StoreService:
    """Service for reading and upserting dashboard records."""

    def __init__(self, db: Session):
        self.db = db

    def _upsert(self, model: Type[Base], key_field: str, data: Dict[str, Any]):
        """Insert or update a row matched on its natural key. Does not commit."""
        key_value = data.get(key_field)
        if key_value is None:
            raise ValueError(f"{model.__name__} upsert requires '{key_field}'")

        row = self.db.query(model).filter(
            getattr(model, key_field) == key_value
        ).first()

        if row is None:
            row = model(**data)
            self.db.add(row)
        else:
            for field, value in data.items():
                setattr(row, field, value)
        self.db.flush()
        return row

    # =============================================================================
    # People
    # =============================================================================

    def upsert_person(self, data: Dict[str, Any], key_field: str = "email") -> Person:
        """Upsert a person by email (or another unique field)."""
        person = self._upsert(Person, key_field, data)
        self.db.commit()
        return person

    def get_person(self, person_id: int) -> Optional[Person]:
        return self.db.get(Person, person_id)

    def find_person_by_email(self, email: Optional[str]) -> Optional[Person]:
        if not email:
            return None
        return self.db.query(Person).filter(
            func.lower(Person.email) == email.lower()
        ).first()

    def find_person_by_account_id(self, account_id: Optional[str]) -> Optional[Person]:
        if not account_id:
            return None
        return self.db.query(Person).filter(Person.jira_account_id == account_id).first()

    def list_people(self) -> List[Person]:
        return self.db.query(Person).order_by(asc(Person.id)).all()

    def add_person(self, person: Person) -> Person:
        self.db.add(person)
        self.db.commit()
        self.db.refresh(person)
        return person

    def update_free_slots(self, person_id: int, free_slots: float) -> Optional[Person]:
        person = self.get_person(person_id)
        if person is None:
            return None
        person.free_slots_per_week = free_slots
        self.db.commit()
        self.db.refresh(person)
        return person

    # =============================================================================
    # Work items
    # =============================================================================

    def upsert_work_item(self, data: Dict[str, Any]) -> WorkItem:
        """Upsert a work item by task_id, keeping the synced flag tied to the key."""
        data = dict(data)
        if "jira_issue_key" in data:
            data["synced_to_jira"] = bool(data["jira_issue_key"])
        item = self._upsert(WorkItem, "task_id", data)
        self.db.commit()
        return item

    def list_tasks(self, updated_since: Optional[datetime] = None) -> List[WorkItem]:
        query = self.db.query(WorkItem)
        if updated_since is not None:
            query = query.filter(WorkItem.updated_at >= updated_since)
        return query.order_by(asc(WorkItem.id)).all()

    def unsynced_pending_tasks(self) -> List[WorkItem]:
        """Pending work items not yet pushed to Jira, earliest deadline first."""
        return self.db.query(WorkItem).filter(
            WorkItem.status == TaskStatus.PENDING,
            or_(WorkItem.synced_to_jira.is_(False), WorkItem.synced_to_jira.is_(None))
        ).order_by(asc(WorkItem.deadline)).all()

    def sync_status(self) -> Dict[str, Any]:
        total = self.db.query(WorkItem).count()
        synced = self.db.query(WorkItem).filter(WorkItem.synced_to_jira.is_(True)).count()
        pending = self.db.query(WorkItem).filter(
            WorkItem.status == TaskStatus.PENDING,
            or_(WorkItem.synced_to_jira.is_(False), WorkItem.synced_to_jira.is_(None))
        ).count()
        return {
            "total": total,
            "synced": synced,
            "pending": pending,
            "synced_percent": round(synced / total * 100) if total > 0 else 0,
        }

    # =============================================================================
    # Jira mirror
    # =============================================================================

    def upsert_issue(self, data: Dict[str, Any]) -> ExternalIssue:
        issue = self._upsert(ExternalIssue, "key", data)
        self.db.commit()
        return issue

    def list_issues(self, updated_since: Optional[datetime] = None) -> List[ExternalIssue]:
        query = self.db.query(ExternalIssue)
        if updated_since is not None:
            query = query.filter(ExternalIssue.updated_at >= updated_since)
        return query.order_by(desc(ExternalIssue.updated_at)).all()

    def issues_by_keys(self, keys: List[str]) -> List[ExternalIssue]:
        if not keys:
            return []
        return self.db.query(ExternalIssue).filter(ExternalIssue.key.in_(keys)).all()

    def upsert_sprint(self, data: Dict[str, Any]) -> Sprint:
        sprint = self._upsert(Sprint, "sprint_id", data)
        self.db.commit()
        return sprint

    def list_sprints(self, limit: int = 10) -> List[Sprint]:
        return self.db.query(Sprint).order_by(
            desc(Sprint.start_date)
        ).limit(limit).all()

    # =============================================================================
    # Commit activity
    # =============================================================================

    def has_commit(self, raw_signature: str) -> bool:
        return self.db.query(CommitActivity.id).filter(
            CommitActivity.raw_signature == raw_signature
        ).first() is not None

    def add_commit(self, data: Dict[str, Any]) -> Tuple[CommitActivity, bool]:
        """
        Insert a commit unless its signature is already stored.

        Returns:
            (row, created) where created is False for a duplicate.
        """
        existing = self.db.query(CommitActivity).filter(
            CommitActivity.raw_signature == data["raw_signature"]
        ).first()
        if existing is not None:
            return existing, False

        commit = CommitActivity(**data)
        self.db.add(commit)
        self.db.commit()
        return commit, True

    def list_commits(self, author_id: Optional[int] = None) -> List[CommitActivity]:
        query = self.db.query(CommitActivity)
        if author_id is not None:
            query = query.filter(CommitActivity.author_id == author_id)
        return query.order_by(desc(CommitActivity.timestamp)).all()

    def page_commits(
        self,
        since: Optional[datetime],
        limit: int,
        page: int
    ) -> Tuple[List[CommitActivity], int]:
        query = self.db.query(CommitActivity).filter(CommitActivity.source == "GitHub")
        if since is not None:
            query = query.filter(CommitActivity.timestamp > since)
        total = query.count()
        rows = query.order_by(desc(CommitActivity.timestamp)).offset(
            (page - 1) * limit
        ).limit(limit).all()
        return rows, total

    def page_issues(
        self,
        since: Optional[datetime],
        limit: int,
        page: int
    ) -> Tuple[List[ExternalIssue], int]:
        query = self.db.query(ExternalIssue)
        if since is not None:
            query = query.filter(ExternalIssue.updated_at > since)
        total = query.count()
        rows = query.order_by(desc(ExternalIssue.updated_at)).offset(
            (page - 1) * limit
        ).limit(limit).all()
        return rows, total

    # =============================================================================
    # Allocation history
    # =============================================================================

    def add_allocation_run(self, **fields) -> AllocationRun:
        run = AllocationRun(**fields)
        self.db.add(run)
        self.db.commit()
        self.db.refresh(run)
        return run

    def list_allocation_runs(self, limit: int = 30) -> List[AllocationRun]:
        return self.db.query(AllocationRun).order_by(
            desc(AllocationRun.created_at)
        ).limit(limit).all()

    def add_allocation_decisions(self, decisions: List[Dict[str, Any]]) -> int:
        """Append submitted allocation decisions, stamped with one timestamp."""
        if not decisions:
            return 0
        allocated_at = utcnow()
        for decision in decisions:
            self.db.add(AllocationDecision(
                task_id=_as_str(decision.get("task_id")),
                employee_id=_as_str(decision.get("employee_id")),
                payload=decision,
                allocated_at=allocated_at
            ))
        self.db.commit()
        return len(decisions)


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def get_store_service(db: Session) -> StoreService:
    """Get store service instance."""
    return StoreService(db)
