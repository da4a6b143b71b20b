"""
Database configuration and session management.
Handles the SQLAlchemy engine, declarative base and request-scoped sessions.
"""

import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str) -> Engine:
    """Create an engine with pool settings suited to the target backend."""
    if database_url.startswith("sqlite"):
        # SQLite connections are shared with the threadpool FastAPI uses for sync work
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=20,
        pool_recycle=300,
    )


# Create SQLAlchemy engine
engine = create_db_engine(settings.sqlalchemy_database_url)

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create Base class for models
Base = declarative_base()


def get_db():
    """
    Dependency function to get database session.
    Yields a database session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create all tables that do not exist yet."""
    # Import models so they register on Base.metadata
    from product_service import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


# Database health check
def check_database_connection(bind: Engine | None = None) -> bool:
    """Check if database connection is working."""
    try:
        with (bind or engine).connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
