"""
Database connection building and session management.
Uses SQLAlchemy 2.0 async pattern.

Supported engines are `mysql` (aiomysql) and `sqlite` (aiosqlite).
"""

import time
from typing import Any, AsyncGenerator, Dict

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from keystone.kernel.errors import ConfigurationError
from keystone.logging_config import get_logger

logger = get_logger(__name__)

SUPPORTED_ENGINES = ("mysql", "sqlite")

_DRIVERS = {
    "mysql": "mysql+aiomysql",
    "sqlite": "sqlite+aiosqlite",
}

_MYSQL_QUERY = {"charset": "utf8mb4"}
_MYSQL_CONNECT_ARGS = {"init_command": "SET time_zone = 'SYSTEM'"}


def build_database_url(engine_name: str, db_uri: str) -> str:
    """
    Build an async SQLAlchemy URL from the engine name and DB_URI.

    DB_URI may be a full SQLAlchemy URL or, as in the plain driver form,
    `user:password@host:port/dbname` for mysql and a file path for sqlite.
    MySQL connections always use utf8mb4.
    """
    if engine_name not in _DRIVERS:
        raise ConfigurationError(
            f"Invalid database engine '{engine_name}'. Options available: mysql or sqlite"
        )

    if "://" in db_uri:
        url = make_url(db_uri)
        url = url.set(drivername=_DRIVERS[engine_name])
    elif engine_name == "sqlite":
        # Drop driver-style query strings such as ?charset=utf8mb4
        url = make_url(f"{_DRIVERS['sqlite']}:///{db_uri.split('?', 1)[0]}")
    else:
        url = make_url(f"{_DRIVERS['mysql']}://{db_uri}")

    if engine_name == "mysql":
        url = url.update_query_dict(_MYSQL_QUERY)

    return url.render_as_string(hide_password=False)


def _install_query_logging(engine: AsyncEngine, slow_threshold_ms: int, log_query: bool) -> None:
    """Log slow statements as warnings, and every statement when log_query is set."""

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(engine.sync_engine, "after_cursor_execute")
    def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        started = conn.info["query_start_time"].pop()
        elapsed_ms = (time.perf_counter() - started) * 1000

        if elapsed_ms >= slow_threshold_ms:
            logger.warning(
                "Slow query",
                extra={
                    "statement": statement,
                    "elapsed_ms": round(elapsed_ms, 1),
                    "threshold_ms": slow_threshold_ms,
                },
            )
        elif log_query:
            logger.info(
                "Query",
                extra={"statement": statement, "elapsed_ms": round(elapsed_ms, 1)},
            )


def create_database_engine(
    engine_name: str,
    db_uri: str,
    *,
    slow_threshold_ms: int = 400,
    log_query: bool = False,
) -> AsyncEngine:
    """Create an async engine for one of the supported engines."""
    url = build_database_url(engine_name, db_uri)
    options: Dict[str, Any] = {}

    if engine_name == "sqlite":
        # SQLite with NullPool: every session gets its own connection
        options["connect_args"] = {"check_same_thread": False}
        options["poolclass"] = NullPool
    else:
        options["connect_args"] = dict(_MYSQL_CONNECT_ARGS)
        options["pool_pre_ping"] = True
        options["pool_size"] = 5
        options["max_overflow"] = 10

    engine = create_async_engine(url, **options)
    _install_query_logging(engine, slow_threshold_ms, log_query)

    if engine_name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_conn, connection_record):
            """Enable foreign keys and a busy timeout on every new SQLite connection."""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    return engine


async def ping(engine: AsyncEngine) -> None:
    """Open a connection and run a trivial statement."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def iter_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield one session, committing on success and rolling back on error."""
    async with session_maker(engine)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
