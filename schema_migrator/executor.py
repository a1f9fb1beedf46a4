#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Path execution for the migration engine, one transaction per call.

Runs every version on a migration path inside a single transaction.
Either the whole path commits, or the transaction is rolled back and the
database is left exactly as it was before the call. Each call is tracked
by one row in migration_logs.

Attempt states:

    STARTED -> SUCCESS       upgrade/downgrade completed
    STARTED -> ROLLED_BACK   rollback_to_version completed
    STARTED -> FAILED        any failure after the attempt was logged

The executor performs no locking. Hosts must serialize calls against a
given database.
"""
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import List, Optional

import sqlparse
from sqlalchemy.ext.asyncio import AsyncSession

from .catalog import VersionCatalog
from .comparator import VersionComparator, compare_versions
from .errors import (
    ConfigurationError,
    RollbackUnavailableError,
    ScriptExecutionError,
)
from .ledger import AuditLedger
from .probe import CurrentVersionProbe
from .version import AttemptStatus, MigrationScript, OperationKind, SchemaVersion


def split_sql_statements(sql: str) -> List[str]:
    """Split a statement batch into individual statements.

    Uses sqlparse so semicolons inside string literals and comments do
    not split statements. Comments are stripped and fragments that hold
    only comments are dropped. Required for SQLite, which can only
    execute one statement at a time.

    Args:
        sql: SQL string with zero or more statements

    Returns:
        List of individual SQL statements (without trailing semicolons)
    """
    statements = []
    for raw in sqlparse.split(sql):
        stmt = sqlparse.format(raw, strip_comments=True).strip()
        if stmt.endswith(';'):
            stmt = stmt[:-1].rstrip()
        if stmt:
            statements.append(stmt)
    return statements


@dataclass
class MigrationResult:
    """
    Result of a migrate_to or rollback_to_version call.

    Attributes:
        success: Whether the whole path completed and committed
        version: Requested target version
        executed_scripts: Ids of scripts that completed, in order
        failed_script: Id of the script that failed (if attributable)
        error: Error message if failed (None if success)
        error_type: Exception class name of the failure (None if success)
        duration_ms: Wall time of the call in milliseconds
        rollback_available: Whether the reached version can be rolled back
        migration_id: Attempt log id (None for no-ops and pre-checks)
        migration_path: Versions processed, in execution order
    """
    success: bool
    version: str
    executed_scripts: List[str] = field(default_factory=list)
    failed_script: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    duration_ms: int = 0
    rollback_available: bool = False
    migration_id: Optional[str] = None
    migration_path: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class MigrationExecutor:
    """
    Executes migration paths with transaction safety.

    Never raises across migrate_to / rollback_to_version: every failure is
    captured in the returned MigrationResult.

    Attributes:
        session: Host-supplied database session (never closed here)
        catalog: Immutable version catalog
        ledger: Audit ledger for applied versions and attempt logs
        probe: Current version lookup
        comparator: Path computation over the catalog
        applied_by: Actor recorded on applied versions
        logger: Logger for execution tracking

    Example:
        executor = MigrationExecutor(session, catalog, ledger, probe)

        result = await executor.migrate_to('1.2.0')
        if not result.success:
            print(result.failed_script, result.error)

        result = await executor.rollback_to_version('1.0.0')
    """

    def __init__(
        self,
        session: AsyncSession,
        catalog: VersionCatalog,
        ledger: AuditLedger,
        probe: CurrentVersionProbe,
        comparator: Optional[VersionComparator] = None,
        applied_by: str = 'system'
    ):
        self.session = session
        self.catalog = catalog
        self.ledger = ledger
        self.probe = probe
        self.comparator = comparator or VersionComparator(catalog)
        self.applied_by = applied_by
        self.logger = logging.getLogger(__name__)

    async def migrate_to(self, target: str) -> MigrationResult:
        """
        Move the database to the target version, up or down.

        Args:
            target: Version to migrate to (must be in the catalog)

        Returns:
            MigrationResult; success=True with no executed scripts when
            the database is already at target
        """
        return await self._run(target, operation=None)

    async def rollback_to_version(self, target: str) -> MigrationResult:
        """
        Roll the database back to an older version.

        Same as migrate_to for a downgrade, but the target must be strictly
        lower than the current version and the attempt is logged as
        ROLLBACK (closing as ROLLED_BACK on success).

        Args:
            target: Version to roll back to

        Returns:
            MigrationResult (rollback_available is always False)
        """
        start_time = time.time()

        try:
            current = await self.probe.get_current_version()
            if current is None:
                raise ConfigurationError(
                    'Cannot roll back: database is unversioned'
                )
            if compare_versions(target, current) >= 0:
                raise ConfigurationError(
                    f"Rollback target {target} must be lower than the "
                    f"current version {current}"
                )
        except Exception as e:
            self.logger.error('Rollback to %s rejected: %s', target, e)
            return self._failure(target, start_time, e)

        return await self._run(target, operation=OperationKind.ROLLBACK)

    def _failure(
        self,
        target: str,
        start_time: float,
        error: Exception,
        executed_scripts: Optional[List[str]] = None,
        migration_id: Optional[str] = None,
        migration_path: Optional[List[str]] = None,
        message: Optional[str] = None
    ) -> MigrationResult:
        failed_script = None
        if isinstance(error, ScriptExecutionError):
            failed_script = error.script_id

        return MigrationResult(
            success=False,
            version=target,
            executed_scripts=list(executed_scripts or []),
            failed_script=failed_script,
            error=message or str(error),
            error_type=type(error).__name__,
            duration_ms=int((time.time() - start_time) * 1000),
            rollback_available=False,
            migration_id=migration_id,
            migration_path=list(migration_path or []),
        )

    def _resolve_path(self, path: List[str], rollback: bool) -> List[SchemaVersion]:
        """
        Look up every version on the path before anything executes.

        Raises:
            ConfigurationError: If a version on the path is not in the catalog
            RollbackUnavailableError: If a downgrade crosses a version
                without rollback scripts
        """
        versions = [self.catalog.get(v) for v in path]
        if rollback:
            for schema_version in versions:
                if not schema_version.has_rollback:
                    raise RollbackUnavailableError(schema_version.version)
        return versions

    async def _run(
        self,
        target: str,
        operation: Optional[OperationKind]
    ) -> MigrationResult:
        start_time = time.time()
        executed_scripts: List[str] = []

        try:
            current = await self.probe.get_current_version()
            comparison = self.comparator.compare(current, target)
        except Exception as e:
            self.logger.error('Cannot plan migration to %s: %s', target, e)
            return self._failure(target, start_time, e)

        if comparison.is_noop:
            self.logger.info('Database already at version %s; nothing to do', target)
            return MigrationResult(
                success=True,
                version=target,
                duration_ms=int((time.time() - start_time) * 1000),
                rollback_available=False,
            )

        rollback = comparison.needs_downgrade
        if operation is None:
            operation = (
                OperationKind.DOWNGRADE if rollback else OperationKind.UPGRADE
            )
        path = comparison.migration_path

        self.logger.info(
            'Starting %s %s -> %s (path: %s)',
            operation.value,
            comparison.current,
            target,
            ', '.join(path)
        )

        try:
            migration_id = await self.ledger.log_attempt_start(target, operation)
        except Exception as e:
            self.logger.error('Failed to log start of migration to %s: %s', target, e)
            await self._rollback_transaction()
            return self._failure(target, start_time, e, migration_path=path)

        try:
            versions = self._resolve_path(path, rollback)

            for schema_version in versions:
                version_start = time.time()
                for script in schema_version.ordered_scripts(rollback=rollback):
                    await self._execute_script(script, schema_version.version)
                    executed_scripts.append(script.id)

                execution_time_ms = int((time.time() - version_start) * 1000)
                if rollback:
                    await self.ledger.remove_version_record(schema_version.version)
                else:
                    await self.ledger.record_version_applied(
                        version=schema_version.version,
                        description=schema_version.description,
                        checksum=schema_version.checksum,
                        execution_time_ms=execution_time_ms,
                        applied_by=self.applied_by,
                    )

                self.logger.info(
                    '%s version %s (%dms)',
                    'Reverted' if rollback else 'Applied',
                    schema_version.version,
                    execution_time_ms
                )

            await self.session.commit()

        except Exception as e:
            message = str(e)
            self.logger.error(
                'Migration %s to %s failed: %s', migration_id, target, message
            )

            rollback_error = await self._rollback_transaction()
            if rollback_error is not None:
                message = (
                    f"{message}; transaction rollback also failed "
                    f"({rollback_error}): schema state is undefined and must "
                    f"be reconciled by an operator"
                )

            await self._close_attempt(
                migration_id, AttemptStatus.FAILED, executed_scripts, message
            )
            return self._failure(
                target,
                start_time,
                e,
                executed_scripts=executed_scripts,
                migration_id=migration_id,
                migration_path=path,
                message=message,
            )

        status = (
            AttemptStatus.ROLLED_BACK
            if operation == OperationKind.ROLLBACK
            else AttemptStatus.SUCCESS
        )
        await self._close_attempt(migration_id, status, executed_scripts)

        duration_ms = int((time.time() - start_time) * 1000)
        self.logger.info(
            'Migration %s to %s completed: %d scripts (%dms)',
            migration_id,
            target,
            len(executed_scripts),
            duration_ms
        )

        reached = self.catalog.get(target)
        return MigrationResult(
            success=True,
            version=target,
            executed_scripts=executed_scripts,
            duration_ms=duration_ms,
            rollback_available=(
                operation != OperationKind.ROLLBACK and reached.has_rollback
            ),
            migration_id=migration_id,
            migration_path=path,
        )

    async def _execute_script(self, script: MigrationScript, version: str) -> None:
        """
        Execute one script's statements in order.

        Raises:
            ScriptExecutionError: On the first failing statement
        """
        statements = split_sql_statements(script.sql)
        self.logger.info(
            'Running script %s for version %s (%d statements)',
            script.id,
            version,
            len(statements)
        )

        for stmt in statements:
            self.logger.debug('Executing: %s', stmt)
            try:
                connection = await self.session.connection()
                # Raw driver SQL: no bind-parameter parsing of literals
                await connection.exec_driver_sql(stmt)
            except Exception as e:
                raise ScriptExecutionError(script.id, version, e) from e

    async def _rollback_transaction(self) -> Optional[Exception]:
        """
        Roll back the open transaction.

        Returns:
            The exception if the rollback itself failed, else None
        """
        try:
            await self.session.rollback()
            return None
        except Exception as e:
            self.logger.critical(
                'Transaction rollback failed, schema state is undefined: %s', e
            )
            return e

    async def _close_attempt(
        self,
        migration_id: str,
        status: AttemptStatus,
        executed_scripts: List[str],
        error_message: Optional[str] = None
    ) -> None:
        """Best-effort final status update for an attempt log."""
        try:
            await self.ledger.log_attempt_complete(
                migration_id, status, executed_scripts, error_message
            )
        except Exception as e:
            self.logger.error(
                'Failed to record %s for migration %s: %s',
                status.value,
                migration_id,
                e
            )
