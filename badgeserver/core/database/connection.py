"""
Database connection and session management.
"""
import logging
import time
from contextlib import contextmanager
from typing import Generator, Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from badgeserver.core.config import get_settings
from badgeserver.core.database.models import Base

logger = logging.getLogger(__name__)

engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            # One shared connection so every session sees the same in-memory DB
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {
        "pool_pre_ping": True,
        "pool_size": get_settings().database_pool_size,
        "pool_recycle": 3600,
    }


def init_db(url: Optional[str] = None, max_retries: int = 3, retry_delay: float = 1.0) -> Engine:
    """
    Initialize the database engine and session factory with retry logic.
    Call this once at application startup.

    Args:
        url: SQLAlchemy URL (defaults to DATABASE_URL setting)
        max_retries: Number of connection attempts
        retry_delay: Seconds to wait between retries

    Raises:
        RuntimeError: If connection fails after all retries
    """
    global engine, SessionLocal

    url = url or get_settings().database_url
    # Some hosts still hand out postgres:// URLs
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)

    for attempt in range(max_retries):
        try:
            engine = create_engine(url, **_engine_kwargs(url))
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
            logger.info(f"Database initialized: {url.split('@')[1] if '@' in url else url.split(':')[0]}")
            return engine
        except (OperationalError, DBAPIError) as e:
            logger.warning(f"Database connection attempt {attempt + 1}/{max_retries} failed: {e}")
            if attempt < max_retries - 1:
                time.sleep(retry_delay * (attempt + 1))
            else:
                logger.error(f"Database initialization failed after {max_retries} attempts")
                raise RuntimeError(f"Failed to connect to database: {e}") from e
    raise RuntimeError("Failed to connect to database")


def create_tables() -> None:
    """Create all tables (development and tests; production schemas are managed externally)."""
    if engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    Base.metadata.create_all(engine)


def get_db() -> Generator[Session, None, None]:
    """
    Get a database session.

    Usage:
        db = next(get_db())
        repo = SigningKeyRepository(db)
    """
    if not SessionLocal:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    db = SessionLocal()
    try:
        yield db
    except (OperationalError, DBAPIError) as e:
        logger.error(f"Database session error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session that commits on success and rolls back on any error."""
    if not SessionLocal:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
