import math
import logging
from contextlib import asynccontextmanager
from typing import Optional, List, Dict, Any

from fastapi import FastAPI, Depends, HTTPException, Query, Body, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session
from dotenv import load_dotenv

from pulseboard.db.database import get_db, init_db, ping
from pulseboard.allocation.models import EmployeeView, WorkloadPatch, AllocationBatch

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="pulseboard",
    description="Engineering dashboard backend: Jira/GitHub sync, allocation and cost analytics",
    version="0.1.0",
    lifespan=lifespan
)

API = "/api/v1"


# =============================================================================
# Error handling
# =============================================================================

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail}
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "Invalid request", "details": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


# =============================================================================
# Request models
# =============================================================================

class PerformanceReportRequest(BaseModel):
    employee: Dict[str, Any]
    metrics: Dict[str, Any]


class RetentionInsightRequest(BaseModel):
    summary: Dict[str, Any]
    employees: Optional[List[Dict[str, Any]]] = None
    risks: Optional[List[Dict[str, Any]]] = None


# =============================================================================
# Service
# =============================================================================

@app.get("/")
async def root():
    """API root - shows available endpoints."""
    return {
        "service": "pulseboard",
        "version": "0.1.0",
        "docs": "/docs",
        "endpoints": {
            "health": "/health",
            "jira_sync": f"{API}/jira/sync-tasks",
            "jira_sync_status": f"{API}/jira/sync-status",
            "jira_ingest": f"{API}/jira/ingest",
            "github_ingest": f"{API}/github/ingest",
            "fetch": f"{API}/fetch/{{source}}/{{entity}}",
            "finance": f"{API}/finance/overview",
            "hr": f"{API}/hr/employees",
            "smart_allocate": f"{API}/smart-allocate/employees"
        }
    }


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint."""
    connected = ping(db)
    return {
        "status": "ok" if connected else "degraded",
        "service": "pulseboard",
        "database": "connected" if connected else "disconnected"
    }


# =============================================================================
# Jira sync and ingest
# =============================================================================

@app.post(f"{API}/jira/sync-tasks")
async def sync_tasks_to_jira(db: Session = Depends(get_db)):
    """Create Jira issues for pending work items and link them back."""
    from pulseboard.tools.jira import _get_jira_auth, _get_jira_base_url
    from pulseboard.sync.reconciler import SyncReconciler

    # Missing Jira settings fail the whole request
    _get_jira_auth()
    _get_jira_base_url()

    result = await SyncReconciler(db).run()
    return {
        "success": True,
        "message": f"Synced {result.created} tasks to Jira",
        "results": result
    }


@app.get(f"{API}/jira/sync-status")
def get_sync_status(db: Session = Depends(get_db)):
    """Counts of synced and pending work items."""
    from pulseboard.sync.reconciler import sync_status
    return {"success": True, "status": sync_status(db)}


@app.post(f"{API}/jira/ingest")
async def ingest_jira_data(db: Session = Depends(get_db)):
    """Mirror Jira users and issues into the store."""
    from pulseboard.sync.ingest import ingest_jira
    return {"success": True, "results": await ingest_jira(db)}


@app.post(f"{API}/jira/boards/{{board_id}}/sprints/ingest")
async def ingest_board_sprints(board_id: int, db: Session = Depends(get_db)):
    """Store the sprints of a Jira board."""
    from pulseboard.sync.ingest import ingest_jira_sprints
    return {"success": True, "results": await ingest_jira_sprints(db, board_id)}


# =============================================================================
# GitHub ingest
# =============================================================================

@app.post(f"{API}/github/ingest")
async def ingest_github_commits(
    repo: str | None = None,
    max_pages: int | None = Query(None, ge=1),
    db: Session = Depends(get_db)
):
    """Pull commits with line statistics. Use ?repo=owner/name to override GITHUB_REPO."""
    from pulseboard.sync.ingest import ingest_github
    return {"success": True, "results": await ingest_github(db, repo=repo, max_pages=max_pages)}


# =============================================================================
# Stored data
# =============================================================================

@app.get(f"{API}/fetch/{{source}}/{{entity}}")
def fetch_stored(
    source: str,
    entity: str,
    since: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    page: int = Query(1, ge=1),
    db: Session = Depends(get_db)
):
    """Page through stored GitHub commits or Jira issues, newest first."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.db.serializers import row_to_dict, person_ref
    from pulseboard.sync.models import parse_timestamp

    try:
        since_at = parse_timestamp(since)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid 'since' timestamp: {since}")

    store = get_store_service(db)
    if source == "github" and entity == "commits":
        rows, total = store.page_commits(since_at, limit, page)
        data = [{**row_to_dict(r), "author": person_ref(r.author)} for r in rows]
    elif source == "jira" and entity == "issues":
        rows, total = store.page_issues(since_at, limit, page)
        data = [{**row_to_dict(r), "assignee": person_ref(r.assignee)} for r in rows]
    else:
        raise HTTPException(status_code=404, detail="Source/Entity not supported yet")

    return {
        "data": data,
        "pagination": {
            "total": total,
            "limit": limit,
            "page": page,
            "pages": math.ceil(total / limit)
        }
    }


@app.post(f"{API}/tasks/import", status_code=201)
def import_tasks(records: List[Dict[str, Any]] = Body(...), db: Session = Depends(get_db)):
    """Upsert work items by task_id from a JSON array."""
    from pulseboard.sync.ingest import import_work_items
    return {"success": True, "results": import_work_items(db, records)}


# =============================================================================
# Finance
# =============================================================================

@app.get(f"{API}/finance/overview")
def get_finance_overview(db: Session = Depends(get_db)):
    """Budget, spend, savings and ROI."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.analytics.finance import finance_overview

    store = get_store_service(db)
    return finance_overview(
        store.list_tasks(),
        store.list_people(),
        store.list_issues(),
        store.list_allocation_runs()
    )


@app.get(f"{API}/finance/daily-progress")
def get_daily_progress(days: int = Query(30, ge=0, le=365), db: Session = Depends(get_db)):
    """Per-day completions, delays and cost for the last ?days=N days."""
    from datetime import timedelta
    from pulseboard.db.models import utcnow
    from pulseboard.db.store_service import get_store_service
    from pulseboard.analytics.finance import daily_progress

    store = get_store_service(db)
    now = utcnow()
    since = now - timedelta(days=days)
    return daily_progress(store.list_tasks(since), store.list_issues(since), days=days, now=now)


@app.get(f"{API}/finance/sprint-analysis")
def get_sprint_analysis(db: Session = Depends(get_db)):
    """Cost, delay and ROI for the ten most recent sprints."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.analytics.finance import sprint_analysis

    store = get_store_service(db)
    return sprint_analysis(store.list_sprints(limit=10), store.list_tasks(), store.list_people())


@app.get(f"{API}/finance/feature-costs")
def get_feature_costs(db: Session = Depends(get_db)):
    """Cost roll-up by epic."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.analytics.finance import feature_costs

    store = get_store_service(db)
    return feature_costs(store.list_issues(), store.list_people())


@app.get(f"{API}/finance/risk-assessment")
def get_risk_assessment(db: Session = Depends(get_db)):
    """Triggered cost risks, most severe first."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.analytics.risk import risk_assessment

    store = get_store_service(db)
    return risk_assessment(store.list_tasks(), store.list_people())


@app.get(f"{API}/finance/team-costs")
def get_team_costs(db: Session = Depends(get_db)):
    """Allocated and incurred cost per person."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.analytics.finance import team_costs

    store = get_store_service(db)
    return team_costs(store.list_people(), store.list_tasks())


# =============================================================================
# HR
# =============================================================================

@app.get(f"{API}/hr/employees")
def list_employee_metrics(db: Session = Depends(get_db)):
    """All employees with performance metrics."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.analytics.hr import employee_metrics

    store = get_store_service(db)
    return employee_metrics(store.list_people(), store.list_commits(), store.list_tasks())


@app.get(f"{API}/hr/employee/{{person_id}}")
def get_employee_detail(person_id: int, db: Session = Depends(get_db)):
    """Weekly activity, tech distribution and task counts for one employee."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.analytics.hr import employee_detail

    store = get_store_service(db)
    person = store.get_person(person_id)
    if person is None:
        raise HTTPException(status_code=404, detail="Employee not found")

    commits = store.list_commits(author_id=person_id)
    linked_keys = sorted({key for c in commits for key in (c.linked_issues or [])})
    return employee_detail(person, commits, person.tasks, store.issues_by_keys(linked_keys))


@app.get(f"{API}/hr/retention-analysis")
def get_retention_analysis(db: Session = Depends(get_db)):
    """Retention risk per employee, highest first."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.analytics.hr import retention_analysis

    store = get_store_service(db)
    return retention_analysis(store.list_people(), store.list_commits(), store.list_tasks())


@app.get(f"{API}/hr/team-stats")
def get_team_stats(db: Session = Depends(get_db)):
    """Commit, task and cost totals per team."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.analytics.hr import team_stats

    store = get_store_service(db)
    return team_stats(store.list_people(), store.list_commits(), store.list_tasks())


@app.post(f"{API}/hr/generate-report")
def generate_report(request: PerformanceReportRequest):
    """AI performance report for one employee."""
    from pulseboard.ai.reports import generate_performance_report
    return generate_performance_report(request.employee, request.metrics)


@app.post(f"{API}/hr/generate-retention-insight")
def generate_insight(request: RetentionInsightRequest):
    """AI retention actions for the team."""
    from pulseboard.ai.reports import generate_retention_insight
    return generate_retention_insight(request.summary, request.risks)


# =============================================================================
# Smart allocate
# =============================================================================

@app.get(f"{API}/smart-allocate/employees")
def list_allocation_employees(db: Session = Depends(get_db)):
    """People in the planning-view format."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.allocation.transform import to_employee_view

    people = get_store_service(db).list_people()
    logger.info(f"Found {len(people)} people for the planning view")
    return [to_employee_view(person, index) for index, person in enumerate(people)]


@app.post(f"{API}/smart-allocate/employees", status_code=201)
def create_allocation_employee(view: EmployeeView, db: Session = Depends(get_db)):
    """Create a person from a planning-view record."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.allocation.transform import person_from_employee, to_employee_view

    person = get_store_service(db).add_person(person_from_employee(view))
    return {"success": True, "employee": to_employee_view(person)}


@app.get(f"{API}/smart-allocate/tasks")
def list_allocation_tasks(db: Session = Depends(get_db)):
    """All work items."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.db.serializers import rows_to_dicts
    return rows_to_dicts(get_store_service(db).list_tasks())


@app.post(f"{API}/smart-allocate/allocations", status_code=201)
def save_allocations(batch: AllocationBatch, db: Session = Depends(get_db)):
    """Record allocation decisions made in the planning view."""
    from pulseboard.allocation.transform import record_allocations
    return {"success": True, "count": record_allocations(db, batch.allocations)}


@app.patch(f"{API}/smart-allocate/employees/{{person_id}}/workload")
def update_employee_workload(person_id: int, patch: WorkloadPatch, db: Session = Depends(get_db)):
    """Store a workload score from the planning view as free hours per week."""
    from pulseboard.db.store_service import get_store_service
    from pulseboard.allocation.transform import free_slots_from_workload, to_employee_view

    person = get_store_service(db).update_free_slots(person_id, free_slots_from_workload(patch.workload))
    if person is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return {"success": True, "employee": to_employee_view(person)}


@app.get(f"{API}/smart-allocate/stats")
def get_allocation_stats(db: Session = Depends(get_db)):
    """Headcount, availability and average experience."""
    from pulseboard.allocation.transform import allocation_stats
    return {"success": True, **allocation_stats(db)}
