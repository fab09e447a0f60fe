"""
Database engine and session management.

One engine and session factory per process, built from DATABASE_URL on
first use. PostgreSQL is the production backend; SQLite URLs are accepted
for local runs and tests (the network store picks the matching upsert
dialect from the session's bind).
"""

import logging
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from app.core.config import get_settings
from app.core.models import Base

# Register the director network tables with Base.metadata
from app.core import network_models  # noqa: F401

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_SessionLocal = None


def _engine_options(database_url: str) -> Dict[str, Any]:
    if database_url.startswith("sqlite"):
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # In-memory databases only exist on a single connection
            options["poolclass"] = StaticPool
        return options

    return {
        "poolclass": QueuePool,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
    }


def get_engine() -> Engine:
    """Get the shared database engine, creating it on first use."""
    global _engine
    if _engine is None:
        database_url = get_settings().database_url
        _engine = create_engine(database_url, **_engine_options(database_url))
        logger.debug(f"Database engine created ({_engine.dialect.name})")
    return _engine


def get_session_factory():
    """Get the shared session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


def reset_engine() -> None:
    """Dispose of the shared engine so the next call rebuilds it from settings."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def create_tables(engine: Optional[Engine] = None) -> None:
    """
    Create the director network tables if they don't exist.

    Idempotent. Schema changes after the first deploy go through Alembic.
    """
    engine = engine or get_engine()
    logger.info("Creating director network tables if they don't exist...")
    Base.metadata.create_all(bind=engine)
    logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


def check_connection(engine: Optional[Engine] = None) -> bool:
    """True if a trivial query succeeds; failures are logged, not raised."""
    engine = engine or get_engine()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding a session that is closed after the request.

    Usage:
        @router.get("/endpoint")
        def endpoint(db: Session = Depends(get_db)):
            ...
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
