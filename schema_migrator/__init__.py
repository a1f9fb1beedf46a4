"""
Schema version migration engine.

This package provides:
- SchemaMigrator: Facade over every migration operation for one session
- create_migrator: Factory honouring MigratorConfig (catalog_dir etc.)
- VersionCatalog / load_catalog: Immutable registry of schema versions
- SchemaVersion / MigrationScript: Catalog data models
- MigrationExecutor / MigrationResult: Transactional path execution
- AuditLedger: Applied-version records and attempt logs
- IntegrityValidator / IntegrityReport: Drift detection
- MigratorConfig / load_config: Configuration
- MigrationError and subclasses: Error hierarchy
"""

from .catalog import VersionCatalog, load_catalog
from .comparator import VersionComparator, VersionComparison, compare_versions
from .config import MigratorConfig, configure_logger, load_config
from .errors import (
    ConfigurationError,
    IntegrityViolationError,
    MigrationError,
    RollbackUnavailableError,
    ScriptExecutionError,
)
from .executor import MigrationExecutor, MigrationResult
from .integrity import IntegrityReport, IntegrityValidator
from .ledger import AuditLedger
from .migrator import SchemaMigrator, create_migrator
from .probe import CurrentVersionProbe
from .version import (
    AppliedVersionRecord,
    AttemptStatus,
    MigrationAttemptLog,
    MigrationScript,
    OperationKind,
    SchemaVersion,
)

__version__ = '1.0.0'

__all__ = [
    'SchemaMigrator',
    'create_migrator',
    'VersionCatalog',
    'load_catalog',
    'VersionComparator',
    'VersionComparison',
    'compare_versions',
    'CurrentVersionProbe',
    'MigrationExecutor',
    'MigrationResult',
    'AuditLedger',
    'IntegrityValidator',
    'IntegrityReport',
    'MigratorConfig',
    'load_config',
    'configure_logger',
    'SchemaVersion',
    'MigrationScript',
    'AppliedVersionRecord',
    'MigrationAttemptLog',
    'OperationKind',
    'AttemptStatus',
    'MigrationError',
    'ConfigurationError',
    'RollbackUnavailableError',
    'ScriptExecutionError',
    'IntegrityViolationError',
]
