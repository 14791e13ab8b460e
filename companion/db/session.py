"""Database engine, session factory and FastAPI session dependency."""

from __future__ import annotations

import logging
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from companion.core.config import DatabaseSettings, settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def build_engine(db_settings: DatabaseSettings | None = None) -> Engine:
    """Create an engine for the configured database URL.

    SQLite gets ``check_same_thread=False`` because FastAPI runs sync
    handlers in a thread pool; in-memory SQLite additionally shares a single
    connection so every session sees the same database.
    """
    cfg = db_settings or settings.db
    kwargs: dict = {"echo": cfg.echo, "future": True}

    if cfg.url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in cfg.url or cfg.url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True

    engine = create_engine(cfg.url, **kwargs)

    if cfg.url.startswith("sqlite"):
        # SQLite leaves foreign keys off unless asked per connection
        @event.listens_for(engine, "connect")
        def _enable_sqlite_fks(dbapi_connection, _record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = build_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(bind: Engine | None = None) -> None:
    """Create all tables that do not exist yet."""
    # Imported for its side effect of registering the mappers
    from companion.db import models  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info("db.initialized", extra={"dialect": target.dialect.name})


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a request-scoped session.

    Rolls back on error; the session is always closed.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
