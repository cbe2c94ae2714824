"""
Pytest configuration and shared fixtures.

Provides an in-memory SQLite session, a TestClient wired to it, Jira/GitHub
environment settings and helpers for faking the HTTP APIs with
httpx.MockTransport.
"""

from datetime import datetime, timedelta

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pulseboard.db.models import Base, Person, WorkItem, TaskStatus

# ==============================================================================
# Store Fixtures
# ==============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    """TestClient whose routes use the test session."""
    from pulseboard.main import app
    from pulseboard.db.database import get_db

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def now():
    return datetime(2025, 3, 12, 12, 0, 0)


# ==============================================================================
# Environment Fixtures
# ==============================================================================


@pytest.fixture
def jira_env(monkeypatch):
    monkeypatch.setenv("JIRA_BASE_URL", "https://example.atlassian.net")
    monkeypatch.setenv("JIRA_EMAIL", "bot@example.com")
    monkeypatch.setenv("JIRA_API_TOKEN", "token")
    monkeypatch.setenv("JIRA_PROJECT_KEY", "PROJ")
    monkeypatch.delenv("TEAM_ROSTER_JSON", raising=False)


@pytest.fixture
def github_env(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "gh-token")
    monkeypatch.setenv("GITHUB_REPO", "acme/widgets")


def use_transport(monkeypatch, module, handler):
    """Route every client built by `module._make_client` through `handler`."""
    transport = httpx.MockTransport(handler)
    monkeypatch.setattr(module, "_make_client", lambda: httpx.AsyncClient(transport=transport))


@pytest.fixture
def mock_jira(monkeypatch, jira_env):
    from pulseboard.tools import jira

    def install(handler):
        use_transport(monkeypatch, jira, handler)
    return install


@pytest.fixture
def mock_github(monkeypatch, github_env):
    from pulseboard.tools import github

    def install(handler):
        use_transport(monkeypatch, github, handler)
    return install


# ==============================================================================
# Sample Data
# ==============================================================================


def make_person(db, **fields) -> Person:
    person = Person(**fields)
    db.add(person)
    db.commit()
    db.refresh(person)
    return person


def make_task(db, task_id: str, **fields) -> WorkItem:
    fields.setdefault("status", TaskStatus.PENDING)
    task = WorkItem(task_id=task_id, **fields)
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


@pytest.fixture
def pending_tasks(db, now):
    """Three unsynced pending items plus two that already carry a Jira key."""
    items = [
        make_task(db, "T-1", title="Auth API", role_required="backend",
                  priority="high", deadline=now + timedelta(days=1), synced_to_jira=False),
        make_task(db, "T-2", title="Pipeline", role_required="devops",
                  deadline=now + timedelta(days=2), synced_to_jira=None),
        make_task(db, "T-3", title="Docs", role_required="technical writer",
                  deadline=now + timedelta(days=3), synced_to_jira=False),
        # Legacy rows written before the synced flag tracked the key; the
        # reconciler must still skip anything that already has an issue.
        make_task(db, "T-4", title="Linked A", jira_issue_key="PROJ-1",
                  deadline=now + timedelta(days=4), synced_to_jira=None),
        make_task(db, "T-5", title="Linked B", jira_issue_key="PROJ-2",
                  deadline=now + timedelta(days=5), synced_to_jira=None),
    ]
    return items
