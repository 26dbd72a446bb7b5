"""Async engine setup.

SQLAlchemy Core over the asyncio extension; SQLite through aiosqlite is the
default. For SQLite the pysqlite transaction handling is switched off and
BEGIN is emitted explicitly, so SAVEPOINT (nested transactions) works.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from metaforge.config.models import DatabaseConfig

logger = logging.getLogger(__name__)


def _is_memory(database: str | None) -> bool:
    return database in (None, "", ":memory:")


def create_db_engine(url: str, config: DatabaseConfig | None = None) -> AsyncEngine:
    """Create an async engine for *url*.

    SQLite connections get ``foreign_keys`` and, for file databases, WAL
    journaling according to *config*. In-memory SQLite shares one
    connection so every session sees the same database.
    """
    config = config or DatabaseConfig()
    parsed = make_url(url)
    kwargs: dict[str, Any] = {"echo": config.echo}

    is_sqlite = parsed.get_backend_name() == "sqlite"
    if is_sqlite and _is_memory(parsed.database):
        kwargs["poolclass"] = StaticPool

    engine = create_async_engine(url, **kwargs)
    if is_sqlite:
        _configure_sqlite(engine, config, memory=_is_memory(parsed.database))

    logger.debug("Created engine for %s", parsed.render_as_string(hide_password=True))
    return engine


def _configure_sqlite(engine: AsyncEngine, config: DatabaseConfig, *, memory: bool) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        # Hand transaction control to the "begin" listener below.
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        if config.wal and not memory:
            cursor.execute("PRAGMA journal_mode=WAL")
        if config.foreign_keys:
            cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")
