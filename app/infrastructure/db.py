"""Database infrastructure setup."""

from typing import Callable

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.infrastructure.config.settings import settings

SessionFactory = Callable[[], Session]

# Engine creation is deferred until the first session is requested so the
# application can be imported without a configured database
_engine = None
_SessionLocal = None


def get_engine() -> Engine:
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        if not settings.database_url:
            raise ValueError("DATABASE_URL is required for database operations")
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,  # Verify connections before using
            echo=settings.debug_mode,  # Log SQL queries in debug mode
        )
    return _engine


def get_db_session() -> Session:
    """
    Get a database session.

    Every polling loop and request opens its own short-lived session; the
    database is the only state shared between loops.

    Returns:
        SQLAlchemy session instance
    """
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal()
