"""Database engine configuration.

PostgreSQL (asyncpg) is the production store. SQLite (aiosqlite) is supported
for tests and local runs; there every transaction opens with ``BEGIN IMMEDIATE``
so concurrent writers serialize on the database lock the same way row locks
serialize them on PostgreSQL.
"""

from __future__ import annotations

import logging
import time
from functools import lru_cache
from typing import Any

from sqlalchemy import event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine

from assessment_engine.core.config import settings

logger = logging.getLogger(__name__)

MAX_SQL_CHARS = 2000


def _normalize_sql(sql: str) -> str:
    # Collapse whitespace to make grouping easier in logs.
    return " ".join((sql or "").split())


def _severity_for_query_ms(query_ms: float) -> str | None:
    if query_ms > settings.SLOW_SQL_ERROR_MS:
        return "error"
    if query_ms > settings.SLOW_SQL_WARN_MS:
        return "warn"
    return None


def instrument_engine(engine: Engine) -> None:
    """Attach slow-SQL logging listeners to a sync Engine (idempotent)."""

    if getattr(engine, "_perf_instrumented", False):
        return
    setattr(engine, "_perf_instrumented", True)

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(
        conn, cursor, statement: str, parameters: Any, context, executemany: bool
    ) -> None:
        conn.info["_perf_query_start"] = time.perf_counter()

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(
        conn, cursor, statement: str, parameters: Any, context, executemany: bool
    ) -> None:
        start = conn.info.pop("_perf_query_start", None)
        if start is None:
            return

        # Instrumentation must never fail the statement it measured
        try:
            query_ms = (time.perf_counter() - float(start)) * 1000.0
            sev = _severity_for_query_ms(query_ms)
            if not sev:
                return

            logger.warning(
                "slow_sql",
                extra={
                    "event": "slow_sql",
                    "severity": sev,
                    "query_ms": int(query_ms),
                    "sql": _normalize_sql(statement)[:MAX_SQL_CHARS],
                },
            )
        except Exception:
            logger.debug("slow_sql_instrumentation_failed", exc_info=True)


def _configure_sqlite(engine: AsyncEngine) -> None:
    """Take over transaction begin from the sqlite driver."""

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record) -> None:
        # Disable the driver's own BEGIN so the "begin" hook below controls it
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(database_url: str | None = None) -> AsyncEngine:
    """Create the async SQLAlchemy engine."""
    url = database_url or settings.DATABASE_URL

    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            echo=settings.DB_ECHO,
            connect_args={"timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS},
        )
        _configure_sqlite(engine)
    else:
        engine = create_async_engine(
            url,
            pool_pre_ping=True,  # Verify connections before using
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            echo=settings.DB_ECHO,
        )

    instrument_engine(engine.sync_engine)
    return engine


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Process-wide engine built from settings."""
    return create_db_engine()


def dialect_insert(db: AsyncSession, model):
    """INSERT construct supporting ON CONFLICT for the session's dialect."""
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(model)
    if dialect_name == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert not supported for dialect {dialect_name}")
