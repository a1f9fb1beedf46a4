"""
Engine helpers for hosts that let the engine's CLI open the database.

The migration engine itself only ever receives an AsyncSession. These
helpers exist for the command-line host and for tests.

SQLite note: the sqlite3 driver does not open a transaction before DDL,
so CREATE/DROP statements would commit immediately and survive a
rollback. enable_transactional_ddl() switches the driver to autocommit
and emits BEGIN on every SQLAlchemy transaction start instead, which
makes DDL transactional.
"""
import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import normalize_database_url

logger = logging.getLogger(__name__)


def enable_transactional_ddl(engine: AsyncEngine) -> AsyncEngine:
    """
    Make DDL transactional on SQLite engines (no-op for other dialects).

    Args:
        engine: Async engine created by the host

    Returns:
        The same engine
    """
    if engine.dialect.name != 'sqlite':
        return engine

    @event.listens_for(engine.sync_engine, 'connect')
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, 'begin')
    def _emit_begin(conn):
        conn.exec_driver_sql('BEGIN')

    return engine


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine suitable for running migrations.

    Args:
        database_url: SQLAlchemy URL, ':memory:' or SQLite file path
        echo: Log every SQL statement

    Returns:
        AsyncEngine with transactional DDL enabled for SQLite
    """
    url = normalize_database_url(database_url)
    engine = create_async_engine(url, echo=echo, pool_pre_ping=True)
    logger.debug('Created engine for %s', engine.url.render_as_string(hide_password=True))
    return enable_transactional_ddl(engine)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory with objects kept usable after commit."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
