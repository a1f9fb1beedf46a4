"""
Public entry point of the migration engine.

SchemaMigrator wires the catalog, comparator, probe, ledger, executor and
integrity validator around one host-supplied AsyncSession and exposes the
operations hosts call:

    migrator = create_migrator(session)
    await migrator.get_current_version()          # '1.1.0' or None
    await migrator.get_version_comparison('1.2.0')
    await migrator.migrate_to('1.2.0')            # MigrationResult
    await migrator.rollback_to_version('1.0.0')   # MigrationResult
    migrator.get_available_versions()             # ascending SchemaVersions
    migrator.get_latest_version()                 # '1.2.0'
    await migrator.get_migration_history(limit=50)
    await migrator.cleanup_migration_logs(days_to_keep=30)
    await migrator.validate_database_integrity()  # IntegrityReport

The session is never committed outside a migration, never closed and
never shared with another migrator call concurrently; serializing calls is
the host's job.
"""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .catalog import VersionCatalog, load_catalog
from .comparator import VersionComparator, VersionComparison
from .config import MigratorConfig
from .executor import MigrationExecutor, MigrationResult
from .integrity import IntegrityReport, IntegrityValidator
from .ledger import AuditLedger
from .probe import CurrentVersionProbe
from .version import MigrationAttemptLog, SchemaVersion

logger = logging.getLogger(__name__)


class SchemaMigrator:
    """
    Facade over the migration components for one database session.

    Attributes:
        session: Host-supplied database session
        config: Migrator settings
        catalog: Immutable version catalog
        comparator: Path computation
        probe: Current version lookup
        ledger: Applied versions and attempt logs
        executor: Transactional path execution
        validator: Integrity checks
    """

    def __init__(
        self,
        session: AsyncSession,
        catalog: Optional[VersionCatalog] = None,
        config: Optional[MigratorConfig] = None
    ):
        self.session = session
        self.config = config or MigratorConfig()
        self.catalog = catalog or VersionCatalog.builtin()

        self.comparator = VersionComparator(self.catalog)
        self.probe = CurrentVersionProbe(session)
        self.ledger = AuditLedger(session, applied_by=self.config.applied_by)
        self.executor = MigrationExecutor(
            session,
            self.catalog,
            self.ledger,
            self.probe,
            comparator=self.comparator,
            applied_by=self.config.applied_by,
        )
        self.validator = IntegrityValidator(
            session,
            self.catalog,
            self.probe,
            self.ledger,
            required_tables=self.config.required_tables,
            min_index_ratio=self.config.min_index_ratio,
        )

    async def get_current_version(self) -> Optional[str]:
        return await self.probe.get_current_version()

    async def get_version_comparison(self, target: str) -> VersionComparison:
        """
        Compare the current version with a target.

        Raises:
            ConfigurationError: If the target (or the downgrade start) is
                not in the catalog
        """
        current = await self.probe.get_current_version()
        return self.comparator.compare(current, target)

    async def migrate_to(self, target: str) -> MigrationResult:
        return await self.executor.migrate_to(target)

    async def migrate_to_latest(self) -> MigrationResult:
        return await self.executor.migrate_to(self.get_latest_version())

    async def rollback_to_version(self, target: str) -> MigrationResult:
        return await self.executor.rollback_to_version(target)

    def get_available_versions(self) -> List[SchemaVersion]:
        return list(self.catalog.versions)

    def get_latest_version(self) -> str:
        return self.catalog.latest.version

    async def get_migration_history(
        self,
        limit: Optional[int] = None
    ) -> List[MigrationAttemptLog]:
        if limit is None:
            limit = self.config.history_limit
        return await self.ledger.get_history(limit)

    async def cleanup_migration_logs(self, days_to_keep: Optional[int] = None) -> int:
        if days_to_keep is None:
            days_to_keep = self.config.log_retention_days
        return await self.ledger.cleanup_older_than(days_to_keep)

    async def validate_database_integrity(self) -> IntegrityReport:
        return await self.validator.validate()


def create_migrator(
    session: AsyncSession,
    catalog: Optional[VersionCatalog] = None,
    config: Optional[MigratorConfig] = None
) -> SchemaMigrator:
    """
    Create a SchemaMigrator for a session.

    When no catalog is given, config.catalog_dir is loaded if set,
    otherwise the built-in catalog is used.
    """
    config = config or MigratorConfig()
    if catalog is None and config.catalog_dir:
        catalog = load_catalog(config.catalog_dir)

    migrator = SchemaMigrator(session, catalog=catalog, config=config)
    logger.debug('Created migrator over %r', migrator.catalog)
    return migrator
