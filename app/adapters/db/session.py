"""Engine and session factory construction."""

from __future__ import annotations

import logging

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.adapters.db.models import Base
from app.core.config import DatabaseSettings

logger = logging.getLogger(__name__)


def build_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine, sharing one connection for in-memory SQLite.

    An in-memory SQLite database only lives as long as its connection, and
    FastAPI runs sync dependencies on a thread pool, so such URLs get a
    single static connection usable from any thread.
    """

    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)

    return create_engine(url, echo=echo, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def engine_from_settings(db_settings: DatabaseSettings) -> Engine:
    return build_engine(db_settings.url, echo=db_settings.echo)


def init_db(engine: Engine) -> None:
    """Create missing tables. Schema migrations are handled elsewhere."""

    Base.metadata.create_all(engine)
    logger.info("database.initialized", extra={"dialect": engine.dialect.name})
