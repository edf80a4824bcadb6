"""
Database connection and session management.
Handles SQLAlchemy setup, connection pooling, and session lifecycle.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool

from .config import settings

logger = logging.getLogger(__name__)


def _engine_kwargs(dsn: str) -> Dict[str, Any]:
    """
    Pool settings per backend.
    - Postgres (Supabase): QueuePool with pre-ping and recycle for stale conns
    - SQLite (local dev/tests): no pool sizing, allow use across threads
    """
    if make_url(dsn).get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    return {
        "poolclass": QueuePool,
        "pool_size": 20,
        "max_overflow": 30,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


engine = create_engine(
    settings.DATABASE_URL,
    future=True,
    echo=getattr(settings, "SQL_ECHO", False),
    **_engine_kwargs(settings.DATABASE_URL),
)

# expire_on_commit=False keeps attributes accessible after repo commits
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    future=True,
)

from .models import Base  # noqa: E402,F401


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a DB session.
    - On normal exit: commits (no-op if repos already committed).
    - On exception: rollbacks.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception as e:
        logger.error(f"Database session error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context(factory: sessionmaker = SessionLocal) -> Generator[Session, None, None]:
    """
    Context manager for manual session management (scripts, session store).
    Mirrors get_db() semantics.
    """
    db = factory()
    try:
        yield db
        db.commit()
    except Exception as e:
        logger.error(f"Database context error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def redacted_dsn(dsn: str) -> str:
    """
    Redact password in a DATABASE_URL for safe logging.
    """
    try:
        url = make_url(dsn)
        safe = url.set(password="***") if url.password else url
        return str(safe)
    except Exception:
        return "<unparsable DSN>"


def log_where_am_i() -> None:
    """Log which backend/database we are talking to. Safe to call in app startup."""
    ds = redacted_dsn(settings.DATABASE_URL)
    try:
        with engine.connect() as conn:
            logger.warning(f"DB connected -> dsn={ds} | dialect={conn.dialect.name}")
    except Exception as e:
        logger.error(f"DB introspection failed for dsn={ds}: {e}")
