"""
Engine and session factory for the pulseboard store.

The store is a SQLite file at the project root unless DATABASE_URL points
elsewhere. Routes get a request-scoped session through get_db; the init_db
script opens its own through get_session for seeding.
"""

import os
import logging
from pathlib import Path
from typing import Generator
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables
project_root = Path(__file__).parent.parent.parent
load_dotenv(project_root / ".env")

# Database configuration
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite:///{project_root / 'pulseboard.db'}"  # Default to SQLite
)

# Create engine
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in DATABASE_URL else {},
    echo=os.getenv("DB_ECHO", "false").lower() == "true"  # Set DB_ECHO=true for SQL logging
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """Create any missing pulseboard tables."""
    from pulseboard.db.models import Base
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialized at: {DATABASE_URL}")


def get_session() -> Session:
    """Open a session outside a request; the caller closes it."""
    return SessionLocal()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session.

    Used by the FastAPI routes through Depends(get_db); tests override it
    with a session bound to an in-memory engine.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ping(db: Session) -> bool:
    """Return True if the store answers a trivial query."""
    try:
        db.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database ping failed: {e}")
        return False
