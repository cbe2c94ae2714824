"""
Sync reconciler.

Pushes pending work items that have no Jira issue yet to Jira, one at a time,
and writes the issue key back to the store. A failure on one item is recorded
in its result and the batch moves on.

There is no transaction spanning Jira and the store: if the create succeeds and
the write-back fails, the Jira issue is left without a local link. That case is
logged at ERROR with the remote key so it can be reconciled by hand.
"""

import os
import asyncio
import logging
from typing import Optional, Callable, Awaitable, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import httpx

from pulseboard.db.models import WorkItem, TaskStatus
from pulseboard.db.store_service import StoreService
from pulseboard.allocation.models import TeamMember
from pulseboard.allocation.resolver import resolve_assignee, RosterConfigError
from pulseboard.allocation.config import load_team_roster
from pulseboard.sync.issue_creator import create_issue_for_task
from pulseboard.sync.models import TicketResult, SyncResult
from pulseboard.tools.jira import JiraAPIError, CreatedIssue

logger = logging.getLogger(__name__)

DEFAULT_PACE_SECONDS = 0.5

IssueCreateFn = Callable[[WorkItem, TeamMember], Awaitable[CreatedIssue]]
ResolverFn = Callable[[Optional[str]], TeamMember]


def get_pace_seconds() -> float:
    return float(os.getenv("SYNC_PACE_SECONDS", DEFAULT_PACE_SECONDS))


class SyncReconciler:
    """Batch push of unsynchronized work items to Jira."""

    def __init__(
        self,
        db: Session,
        create_issue: IssueCreateFn = create_issue_for_task,
        resolver: Optional[ResolverFn] = None,
        pace_seconds: Optional[float] = None
    ):
        self.db = db
        self.store = StoreService(db)
        self.create_issue = create_issue
        self.resolver = resolver
        self.pace_seconds = get_pace_seconds() if pace_seconds is None else pace_seconds

    def _resolver(self) -> ResolverFn:
        if self.resolver is not None:
            return self.resolver
        roster = load_team_roster()
        return lambda role: resolve_assignee(role, roster=roster)

    async def run(self) -> SyncResult:
        """
        Sync every pending, unsynced work item, earliest deadline first.

        Items that already carry a Jira key are skipped without a network call,
        so a second run on an unchanged store creates nothing.
        """
        tasks = self.store.unsynced_pending_tasks()
        result = SyncResult(total=len(tasks))
        resolve = self._resolver()
        logger.info(f"Found {len(tasks)} tasks to sync to Jira")

        calls_made = 0
        for task in tasks:
            if task.jira_issue_key:
                logger.info(f"{task.task_id}: already linked to {task.jira_issue_key}, skipping")
                result.skipped += 1
                continue

            if calls_made and self.pace_seconds > 0:
                await asyncio.sleep(self.pace_seconds)

            ticket = await self._sync_one(task, resolve)
            calls_made += 1
            if ticket.error:
                result.failed += 1
            else:
                result.created += 1
            result.tickets.append(ticket)

        logger.info(
            f"Jira sync finished: {result.created} created, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    async def _sync_one(self, task: WorkItem, resolve: ResolverFn) -> TicketResult:
        task_id = task.task_id
        title = task.title
        try:
            assignee = resolve(task.role_required)
        except RosterConfigError as e:
            logger.error(f"{task_id}: cannot resolve assignee: {e}")
            return TicketResult(task_id=task_id, title=title, error=str(e))

        try:
            created = await self.create_issue(task, assignee)
        except (JiraAPIError, httpx.HTTPError) as e:
            logger.error(f"Failed to create Jira issue for {task_id}: {e}")
            return TicketResult(task_id=task_id, title=title, assignee=assignee.name, error=str(e))

        try:
            task.mark_synced(created.issue_key, created.issue_id)
            task.status = TaskStatus.ALLOCATED
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Jira issue {created.issue_key} created for {task_id} but the store "
                f"update failed; the issue is not linked locally: {e}"
            )
            return TicketResult(
                task_id=task_id,
                title=title,
                assignee=assignee.name,
                jira_key=created.issue_key,
                jira_id=created.issue_id,
                error=f"Store update failed: {e}"
            )

        logger.info(f"{task_id}: created {created.issue_key} -> {assignee.name}")
        return TicketResult(
            task_id=task_id,
            title=title,
            assignee=assignee.name,
            jira_key=created.issue_key,
            jira_id=created.issue_id
        )


def sync_status(db: Session) -> Dict[str, Any]:
    """Counts of total, synced and pending work items."""
    return StoreService(db).sync_status()
