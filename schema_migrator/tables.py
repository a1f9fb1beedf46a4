"""
SQLAlchemy Core descriptions of the engine-owned tables.

The tables themselves are created by the forward scripts of the first
catalog version, not by metadata.create_all(). These descriptions only
give queries typed columns (DateTime round-trips, dialect upserts).

Tables:
- schema_versions: One row per applied version (upserted by version)
- migration_logs: One row per migration attempt
"""

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, Text, inspect
from sqlalchemy.ext.asyncio import AsyncSession

metadata = MetaData()

SCHEMA_VERSIONS_TABLE = 'schema_versions'
MIGRATION_LOGS_TABLE = 'migration_logs'

schema_versions = Table(
    SCHEMA_VERSIONS_TABLE,
    metadata,
    Column('version', String(20), primary_key=True),
    Column('description', Text),
    Column('applied_at', DateTime, nullable=False),
    Column('applied_by', String(100), nullable=False),
    Column('checksum', String(64)),
    Column('execution_time', Integer),
)

migration_logs = Table(
    MIGRATION_LOGS_TABLE,
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('migration_id', String(100), nullable=False, unique=True),
    Column('version', String(20), nullable=False),
    Column('operation', String(16), nullable=False),
    Column('status', String(16), nullable=False),
    Column('started_at', DateTime, nullable=False),
    Column('completed_at', DateTime),
    Column('error_message', Text),
    # JSON-encoded list of script ids
    Column('executed_scripts', Text),
)


async def table_exists(session: AsyncSession, table_name: str) -> bool:
    """
    Check whether a table exists in the session's database.

    Args:
        session: Active database session
        table_name: Unqualified table name

    Returns:
        True if the table exists
    """
    return await session.run_sync(
        lambda sync_session: inspect(sync_session.connection()).has_table(table_name)
    )


async def table_names(session: AsyncSession) -> set:
    """Names of every table in the session's default schema."""
    names = await session.run_sync(
        lambda sync_session: inspect(sync_session.connection()).get_table_names()
    )
    return set(names)


async def index_count(session: AsyncSession, table_name: str) -> int:
    """Number of indexes defined on a table (0 if the table is missing)."""
    def _count(sync_session):
        inspector = inspect(sync_session.connection())
        if not inspector.has_table(table_name):
            return 0
        return len(inspector.get_indexes(table_name))

    return await session.run_sync(_count)
