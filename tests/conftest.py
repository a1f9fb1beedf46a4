"""
Global pytest configuration and fixtures for schema_migrator tests

Provides:
- File-backed SQLite engine with transactional DDL
- Session and migrator fixtures
- Helpers for inspecting the database from a fresh connection
- Small catalogs for failure scenarios
"""

import contextlib
from datetime import date

import pytest
from sqlalchemy import text

from schema_migrator.builtin_versions import V1_0_0
from schema_migrator.catalog import VersionCatalog
from schema_migrator.database import create_engine, create_session_factory
from schema_migrator.migrator import create_migrator
from schema_migrator.version import MigrationScript, SchemaVersion


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom settings"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def db_path(tmp_path):
    """Path to a temporary SQLite database file (not yet created)."""
    return tmp_path / "schema.db"


@pytest.fixture
async def engine(db_path):
    """Async engine over the temporary database, disposed after the test."""
    engine = create_engine(str(db_path))
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    """One AsyncSession, as a host would hand it to the migrator."""
    session_factory = create_session_factory(engine)
    async with session_factory() as session:
        yield session


@pytest.fixture
def migrator(session):
    """SchemaMigrator over the built-in catalog."""
    return create_migrator(session)


@pytest.fixture
def fresh_connection(db_path):
    """
    Open a brand new engine on the same database file.

    Used to verify what is actually committed, independent of the
    session under test.

    Example:
        async with fresh_connection() as conn:
            tables = await sqlite_tables(conn)
    """
    @contextlib.asynccontextmanager
    async def _open():
        engine = create_engine(str(db_path))
        try:
            async with engine.connect() as conn:
                yield conn
        finally:
            await engine.dispose()

    return _open


async def sqlite_tables(conn) -> set:
    """User table names in a SQLite database."""
    result = await conn.execute(text(
        "SELECT name FROM sqlite_master "
        "WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
    ))
    return {row[0] for row in result}


async def sqlite_indexes(conn) -> set:
    """Explicitly created index names in a SQLite database."""
    result = await conn.execute(text(
        "SELECT name FROM sqlite_master "
        "WHERE type = 'index' AND name NOT LIKE 'sqlite_autoindex%'"
    ))
    return {row[0] for row in result}


# ============================================================================
# Catalog Fixtures
# ============================================================================

def make_script(script_id, sql, order=1):
    """Build a MigrationScript with a readable name."""
    return MigrationScript(
        id=script_id,
        name=script_id.replace('_', ' '),
        description=f"Test script {script_id}",
        sql=sql,
        execution_order=order,
    )


@pytest.fixture
def broken_catalog():
    """
    Built-in 1.0.0 followed by a 1.1.0 whose second script fails.

    The first 1.1.0 script creates the widgets table, so a successful
    rollback must remove it again.
    """
    broken = SchemaVersion(
        version='1.1.0',
        description='Widgets with a broken follow-up',
        release_date=date(2025, 1, 1),
        scripts=(
            make_script(
                'create_widgets',
                "CREATE TABLE widgets (id INTEGER PRIMARY KEY, name TEXT);",
                order=1,
            ),
            make_script(
                'fill_missing_table',
                "INSERT INTO no_such_table (id) VALUES (1);",
                order=2,
            ),
        ),
        rollback_scripts=(
            make_script('drop_widgets', "DROP TABLE IF EXISTS widgets;"),
        ),
    )
    return VersionCatalog([V1_0_0, broken])


@pytest.fixture
def irreversible_catalog():
    """
    Catalog where 2.0.0 has no rollback scripts.

    1.0.0 is the built-in bookkeeping version; 3.0.0 can be undone.
    """
    v2 = SchemaVersion(
        version='2.0.0',
        description='Irreversible data reshaping',
        release_date=date(2025, 2, 1),
        scripts=(
            make_script('create_gadgets', "CREATE TABLE gadgets (id INTEGER PRIMARY KEY);"),
        ),
    )
    v3 = SchemaVersion(
        version='3.0.0',
        description='Gizmos',
        release_date=date(2025, 3, 1),
        scripts=(
            make_script('create_gizmos', "CREATE TABLE gizmos (id INTEGER PRIMARY KEY);"),
        ),
        rollback_scripts=(
            make_script('drop_gizmos', "DROP TABLE gizmos;"),
        ),
    )
    return VersionCatalog([V1_0_0, v2, v3])
