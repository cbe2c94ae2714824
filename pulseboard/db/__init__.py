"""Database package for the dashboard store."""

from pulseboard.db.database import get_db, init_db, get_session
from pulseboard.db.models import (
    Base, Person, WorkItem, ExternalIssue, CommitActivity,
    Sprint, AllocationRun, AllocationDecision, TaskStatus
)
from pulseboard.db.store_service import StoreService

__all__ = [
    "get_db",
    "init_db",
    "get_session",
    "Base",
    "Person",
    "WorkItem",
    "ExternalIssue",
    "CommitActivity",
    "Sprint",
    "AllocationRun",
    "AllocationDecision",
    "TaskStatus",
    "StoreService",
]
