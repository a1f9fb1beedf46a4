"""
Integration tests for the SchemaMigrator facade and create_migrator.
"""

import pytest
from sqlalchemy import text

from conftest import sqlite_tables
from schema_migrator.config import MigratorConfig
from schema_migrator.migrator import SchemaMigrator, create_migrator


@pytest.fixture
def catalog_dir(tmp_path):
    """Two-version catalog on disk, with its own bookkeeping tables."""
    base = tmp_path / "migrations"

    v1 = base / "1.0.0"
    v1.mkdir(parents=True)
    (v1 / "version.yaml").write_text("description: Bookkeeping\n")
    (v1 / "001_create_schema_versions.sql").write_text(
        "-- UP\n"
        "CREATE TABLE schema_versions (\n"
        "    version TEXT PRIMARY KEY,\n"
        "    description TEXT,\n"
        "    applied_at TIMESTAMP NOT NULL,\n"
        "    applied_by TEXT NOT NULL,\n"
        "    checksum TEXT,\n"
        "    execution_time INTEGER\n"
        ");\n"
    )
    (v1 / "002_create_migration_logs.sql").write_text(
        "-- UP\n"
        "CREATE TABLE migration_logs (\n"
        "    id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
        "    migration_id TEXT NOT NULL UNIQUE,\n"
        "    version TEXT NOT NULL,\n"
        "    operation TEXT NOT NULL,\n"
        "    status TEXT NOT NULL,\n"
        "    started_at TIMESTAMP NOT NULL,\n"
        "    completed_at TIMESTAMP,\n"
        "    error_message TEXT,\n"
        "    executed_scripts TEXT\n"
        ");\n"
    )

    v2 = base / "1.1.0"
    v2.mkdir()
    (v2 / "001_create_notes.sql").write_text(
        "-- UP\n"
        "CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT);\n"
        "INSERT INTO notes (body) VALUES ('first; note');\n"
        "-- DOWN\n"
        "DROP TABLE notes;\n"
    )
    return base


class TestCreateMigrator:
    """Test factory behaviour."""

    def test_builtin_catalog_by_default(self, session):
        migrator = create_migrator(session)

        assert isinstance(migrator, SchemaMigrator)
        assert migrator.get_latest_version() == '1.2.0'
        assert [v.version for v in migrator.get_available_versions()] == [
            '1.0.0', '1.1.0', '1.2.0'
        ]

    def test_catalog_dir_from_config(self, session, catalog_dir):
        migrator = create_migrator(
            session, config=MigratorConfig(catalog_dir=str(catalog_dir))
        )
        assert migrator.get_latest_version() == '1.1.0'

    def test_explicit_catalog_wins(self, session, catalog_dir, broken_catalog):
        migrator = create_migrator(
            session,
            catalog=broken_catalog,
            config=MigratorConfig(catalog_dir=str(catalog_dir)),
        )
        assert migrator.catalog is broken_catalog


class TestDirectoryCatalog:
    """Migrations loaded from SQL files behave like built-in ones."""

    @pytest.mark.asyncio
    async def test_upgrade_and_rollback(self, session, catalog_dir, fresh_connection):
        migrator = create_migrator(
            session, config=MigratorConfig(catalog_dir=str(catalog_dir))
        )

        result = await migrator.migrate_to_latest()
        assert result.success
        assert result.executed_scripts == [
            'create_schema_versions', 'create_migration_logs', 'create_notes'
        ]
        assert result.rollback_available

        async with fresh_connection() as conn:
            assert 'notes' in await sqlite_tables(conn)

        result = await migrator.rollback_to_version('1.0.0')
        assert result.success
        assert result.executed_scripts == ['rollback_create_notes']

        async with fresh_connection() as conn:
            assert 'notes' not in await sqlite_tables(conn)


class TestSessionOwnership:
    """The migrator never closes the host's session."""

    @pytest.mark.asyncio
    async def test_session_usable_after_migration(self, migrator, session):
        await migrator.migrate_to('1.2.0')

        result = await session.execute(text("SELECT 1"))
        assert result.scalar() == 1

    @pytest.mark.asyncio
    async def test_history_limit_from_config(self, session):
        migrator = create_migrator(session, config=MigratorConfig(history_limit=1))
        await migrator.migrate_to('1.0.0')
        await migrator.migrate_to('1.1.0')

        history = await migrator.get_migration_history()
        assert [a.version for a in history] == ['1.1.0']
        assert len(await migrator.get_migration_history(limit=5)) == 2

    @pytest.mark.asyncio
    async def test_history_zero_limit_rejected(self, migrator):
        await migrator.migrate_to('1.0.0')

        with pytest.raises(ValueError, match="limit must be >= 1"):
            await migrator.get_migration_history(limit=0)
