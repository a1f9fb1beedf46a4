"""
Data models for schema versions and migration bookkeeping.

This module defines the core data structures for the migration engine:
- MigrationScript: One statement batch within a version
- SchemaVersion: A named, totally-ordered increment to the schema
- AppliedVersionRecord: A row of the applied-versions table
- MigrationAttemptLog: A row of the attempt-log table

SchemaVersion and MigrationScript are frozen: the catalog is built once
at start-up and never mutated afterwards.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Tuple

from .comparator import parse_version
from .errors import ConfigurationError


def compute_checksum(content: str) -> str:
    """
    Compute SHA-256 checksum of script content.

    Args:
        content: Raw SQL text

    Returns:
        Hexadecimal SHA-256 hash (64 characters)
    """
    return hashlib.sha256(content.encode('utf-8')).hexdigest()


class OperationKind(Enum):
    """Kind of migration attempt."""
    UPGRADE = "UPGRADE"
    DOWNGRADE = "DOWNGRADE"
    ROLLBACK = "ROLLBACK"


class AttemptStatus(Enum):
    """Lifecycle state of a migration attempt."""
    STARTED = "STARTED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    ROLLED_BACK = "ROLLED_BACK"


@dataclass(frozen=True)
class MigrationScript:
    """
    A single statement batch belonging to a schema version.

    Attributes:
        id: Identifier, unique within its version's script set
        name: Short human-readable name
        description: What the script does
        sql: Raw statement batch (may contain several statements)
        execution_order: Position within the version (ascending)
        checksum: SHA-256 of sql (computed when not supplied)

    Example:
        >>> script = MigrationScript(
        ...     id='create_users',
        ...     name='Create users table',
        ...     description='Adds the users table',
        ...     sql='CREATE TABLE users (id INTEGER PRIMARY KEY);',
        ...     execution_order=1
        ... )
        >>> len(script.checksum)
        64
    """

    id: str
    name: str
    description: str
    sql: str
    execution_order: int
    checksum: Optional[str] = None

    def __post_init__(self):
        """Validate script and fill in checksum."""
        if not self.id:
            raise ConfigurationError("Migration script id must not be empty")

        if self.checksum is None:
            object.__setattr__(self, 'checksum', compute_checksum(self.sql))

    def __repr__(self) -> str:
        return f"<MigrationScript({self.id}, order={self.execution_order})>"


def _sorted_scripts(scripts) -> tuple:
    return tuple(sorted(scripts, key=lambda s: s.execution_order))


@dataclass(frozen=True)
class SchemaVersion:
    """
    A named, totally-ordered increment to the persisted structure.

    Attributes:
        version: Dot-separated version string (e.g., '1.2.0')
        description: What this version changes
        release_date: When the version was released
        scripts: Forward scripts
        rollback_scripts: Scripts that undo this version (None if the
            version is an irreversible floor)
    """

    version: str
    description: str
    release_date: date
    scripts: Tuple[MigrationScript, ...]
    rollback_scripts: Optional[Tuple[MigrationScript, ...]] = None

    def __post_init__(self):
        """Validate version string and script sets."""
        parse_version(self.version)

        object.__setattr__(self, 'scripts', tuple(self.scripts))
        if self.rollback_scripts is not None:
            object.__setattr__(
                self, 'rollback_scripts', tuple(self.rollback_scripts)
            )

        if not self.scripts:
            raise ConfigurationError(
                f"Version {self.version} defines no forward scripts"
            )

        self._check_unique_ids(self.scripts, 'forward')
        if self.rollback_scripts:
            self._check_unique_ids(self.rollback_scripts, 'rollback')

    def _check_unique_ids(self, scripts, kind: str) -> None:
        seen = set()
        for script in scripts:
            if script.id in seen:
                raise ConfigurationError(
                    f"Duplicate {kind} script id '{script.id}' in "
                    f"version {self.version}"
                )
            seen.add(script.id)

    @property
    def has_rollback(self) -> bool:
        return bool(self.rollback_scripts)

    @property
    def checksum(self) -> str:
        """SHA-256 over the version string and forward script checksums."""
        parts = [self.version]
        parts.extend(s.checksum for s in self.ordered_scripts())
        return compute_checksum('\n'.join(parts))

    def ordered_scripts(self, rollback: bool = False) -> Tuple[MigrationScript, ...]:
        """
        Scripts sorted by execution_order.

        Args:
            rollback: Return rollback scripts instead of forward scripts

        Returns:
            Sorted tuple (empty if rollback requested and none defined)
        """
        if rollback:
            return _sorted_scripts(self.rollback_scripts or ())
        return _sorted_scripts(self.scripts)

    def __repr__(self) -> str:
        return f"<SchemaVersion({self.version}, {len(self.scripts)} scripts)>"


@dataclass
class AppliedVersionRecord:
    """
    A version whose forward scripts are committed.

    Corresponds to a row in the schema_versions table.
    """

    version: str
    description: Optional[str]
    applied_at: datetime
    applied_by: str
    checksum: Optional[str] = None
    execution_time_ms: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'version': self.version,
            'description': self.description,
            'applied_at': self.applied_at.isoformat(),
            'applied_by': self.applied_by,
            'checksum': self.checksum,
            'execution_time_ms': self.execution_time_ms,
        }

    def __repr__(self) -> str:
        return f"<AppliedVersionRecord({self.version}, by {self.applied_by})>"


@dataclass
class MigrationAttemptLog:
    """
    Durable record of one migration invocation's outcome.

    Corresponds to a row in the migration_logs table.
    """

    id: int
    migration_id: str
    version: str
    operation: OperationKind
    status: AttemptStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    executed_scripts: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'migration_id': self.migration_id,
            'version': self.version,
            'operation': self.operation.value,
            'status': self.status.value,
            'started_at': self.started_at.isoformat(),
            'completed_at': (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            'error_message': self.error_message,
            'executed_scripts': list(self.executed_scripts),
        }

    def __repr__(self) -> str:
        return (
            f"<MigrationAttemptLog({self.migration_id}, "
            f"{self.operation.value} {self.version}, {self.status.value})>"
        )
