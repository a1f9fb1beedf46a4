"""
Schema versions bundled with the engine.

Version 1.0.0 creates the engine's own bookkeeping tables, so the engine
migrates its own schema like any other version. Scripts target SQLite.
"""
from datetime import date

from .version import MigrationScript, SchemaVersion


V1_0_0 = SchemaVersion(
    version='1.0.0',
    description='Initial schema',
    release_date=date(2024, 12, 30),
    scripts=(
        MigrationScript(
            id='create_schema_version_table',
            name='Create schema version table',
            description='Tracks which schema versions are applied',
            sql="""
                CREATE TABLE IF NOT EXISTS schema_versions (
                    version TEXT PRIMARY KEY,
                    description TEXT,
                    applied_at TIMESTAMP NOT NULL,
                    applied_by TEXT NOT NULL DEFAULT 'system',
                    checksum TEXT,
                    execution_time INTEGER
                );
                CREATE INDEX IF NOT EXISTS idx_schema_versions_applied_at
                    ON schema_versions (applied_at);
            """,
            execution_order=1,
        ),
        MigrationScript(
            id='create_migration_log_table',
            name='Create migration log table',
            description='Records every migration attempt and its outcome',
            sql="""
                CREATE TABLE IF NOT EXISTS migration_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    migration_id TEXT NOT NULL UNIQUE,
                    version TEXT NOT NULL,
                    operation TEXT NOT NULL
                        CHECK (operation IN ('UPGRADE', 'DOWNGRADE', 'ROLLBACK')),
                    status TEXT NOT NULL
                        CHECK (status IN ('STARTED', 'SUCCESS', 'FAILED', 'ROLLED_BACK')),
                    started_at TIMESTAMP NOT NULL,
                    completed_at TIMESTAMP,
                    error_message TEXT,
                    executed_scripts TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_migration_logs_version
                    ON migration_logs (version);
                CREATE INDEX IF NOT EXISTS idx_migration_logs_status
                    ON migration_logs (status);
                CREATE INDEX IF NOT EXISTS idx_migration_logs_started_at
                    ON migration_logs (started_at);
            """,
            execution_order=2,
        ),
    ),
)


V1_1_0 = SchemaVersion(
    version='1.1.0',
    description='Index optimisation',
    release_date=date(2024, 12, 31),
    scripts=(
        MigrationScript(
            id='add_composite_indexes',
            name='Add composite indexes',
            description='Composite indexes for history queries',
            sql="""
                CREATE INDEX IF NOT EXISTS idx_migration_logs_status_started
                    ON migration_logs (status, started_at);
                CREATE INDEX IF NOT EXISTS idx_migration_logs_version_operation
                    ON migration_logs (version, operation);
            """,
            execution_order=1,
        ),
        MigrationScript(
            id='optimize_json_columns',
            name='Optimise JSON columns',
            description='Index attempts that recorded executed scripts',
            sql="""
                CREATE INDEX IF NOT EXISTS idx_migration_logs_with_scripts
                    ON migration_logs (version, started_at)
                    WHERE executed_scripts IS NOT NULL
                      AND executed_scripts != '[]';
            """,
            execution_order=2,
        ),
    ),
    rollback_scripts=(
        MigrationScript(
            id='remove_composite_indexes',
            name='Remove composite indexes',
            description='Undo the 1.1.0 indexes',
            sql="""
                DROP INDEX IF EXISTS idx_migration_logs_status_started;
                DROP INDEX IF EXISTS idx_migration_logs_version_operation;
                DROP INDEX IF EXISTS idx_migration_logs_with_scripts;
            """,
            execution_order=1,
        ),
    ),
)


V1_2_0 = SchemaVersion(
    version='1.2.0',
    description='Session and cache management',
    release_date=date(2025, 1, 1),
    scripts=(
        MigrationScript(
            id='create_user_sessions_table',
            name='Create user sessions table',
            description='Server-side user sessions',
            sql="""
                CREATE TABLE IF NOT EXISTS user_sessions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    last_accessed TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    expires_at TIMESTAMP NOT NULL,
                    data TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_user_sessions_user_id
                    ON user_sessions (user_id);
                CREATE INDEX IF NOT EXISTS idx_user_sessions_expires_at
                    ON user_sessions (expires_at);
            """,
            execution_order=1,
        ),
        MigrationScript(
            id='create_cache_entries_table',
            name='Create cache entries table',
            description='Key/value cache with expiry',
            sql="""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    cache_key TEXT PRIMARY KEY,
                    cache_value TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    expires_at TIMESTAMP NOT NULL,
                    access_count INTEGER DEFAULT 0,
                    last_accessed TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );
                CREATE INDEX IF NOT EXISTS idx_cache_entries_expires_at
                    ON cache_entries (expires_at);
            """,
            execution_order=2,
        ),
    ),
    rollback_scripts=(
        MigrationScript(
            id='drop_session_cache_tables',
            name='Drop session and cache tables',
            description='Undo the 1.2.0 tables',
            sql="""
                DROP TABLE IF EXISTS user_sessions;
                DROP TABLE IF EXISTS cache_entries;
            """,
            execution_order=1,
        ),
    ),
)


BUILTIN_VERSIONS = (V1_0_0, V1_1_0, V1_2_0)
