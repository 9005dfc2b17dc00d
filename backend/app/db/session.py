"""
Database session and engine configuration
"""
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from app.core.config import settings


def build_engine(database_url: str = settings.DATABASE_URL) -> Engine:
    """Create the engine; the connection pool is bounded by settings."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=settings.DATABASE_ECHO,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        database_url,
        echo=settings.DATABASE_ECHO,
        pool_pre_ping=True,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
    )


# Create engine
engine = build_engine()

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency for database session, scoped to one request."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_database(session_factory=SessionLocal) -> bool:
    """Run a trivial query; used by the readiness probe."""
    db = session_factory()
    try:
        db.execute(text("SELECT 1"))
        return True
    finally:
        db.close()
