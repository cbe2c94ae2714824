"""Jira sync, ingest pipelines and work item import."""

from pulseboard.sync.models import SyncResult, TicketResult
from pulseboard.sync.issue_creator import build_issue_payload, create_issue_for_task
from pulseboard.sync.reconciler import SyncReconciler, sync_status

__all__ = [
    "SyncResult",
    "TicketResult",
    "build_issue_payload",
    "create_issue_for_task",
    "SyncReconciler",
    "sync_status",
]
