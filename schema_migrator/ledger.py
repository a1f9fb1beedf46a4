#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Audit ledger for applied versions and migration attempts.

Persists two kinds of records:
- AppliedVersionRecord rows in schema_versions (upsert / delete)
- MigrationAttemptLog rows in migration_logs (STARTED -> final status)

Applied-version writes join the caller's transaction and are never
committed here. Attempt-log writes commit immediately so the log outlives
a rolled-back migration transaction.

Rows read back are mapped into explicit records; a row with an unexpected
shape raises IntegrityViolationError instead of leaking loose data.
"""
import json
import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .comparator import version_key
from .errors import ConfigurationError, IntegrityViolationError
from .tables import (
    MIGRATION_LOGS_TABLE,
    SCHEMA_VERSIONS_TABLE,
    migration_logs,
    schema_versions,
    table_exists,
)
from .version import (
    AppliedVersionRecord,
    AttemptStatus,
    MigrationAttemptLog,
    OperationKind,
)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in ledger tables."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_datetime(value, column: str) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    raise IntegrityViolationError(
        f"Unexpected value for {column}: {value!r}"
    )


def _row_to_applied(row) -> AppliedVersionRecord:
    """
    Map a schema_versions row to an AppliedVersionRecord.

    Raises:
        IntegrityViolationError: If the row does not have the expected shape
    """
    try:
        data = row._mapping
        version = data['version']
        version_key(version)
        applied_at = _as_datetime(data['applied_at'], 'applied_at')
        if applied_at is None:
            raise IntegrityViolationError(
                f"Applied version {version} has no applied_at"
            )
        return AppliedVersionRecord(
            version=version,
            description=data['description'],
            applied_at=applied_at,
            applied_by=data['applied_by'],
            checksum=data['checksum'],
            execution_time_ms=data['execution_time'],
        )
    except (KeyError, ConfigurationError) as e:
        raise IntegrityViolationError(
            f"Malformed {SCHEMA_VERSIONS_TABLE} row: {e}"
        ) from e


def _row_to_attempt(row) -> MigrationAttemptLog:
    """
    Map a migration_logs row to a MigrationAttemptLog.

    Raises:
        IntegrityViolationError: If the row has unknown enum values,
            malformed executed_scripts JSON or missing columns
    """
    try:
        data = row._mapping
        raw_scripts = data['executed_scripts']
        executed_scripts = json.loads(raw_scripts) if raw_scripts else []
        if not isinstance(executed_scripts, list) or not all(
            isinstance(s, str) for s in executed_scripts
        ):
            raise IntegrityViolationError(
                f"executed_scripts is not a list of script ids: {raw_scripts!r}"
            )

        return MigrationAttemptLog(
            id=data['id'],
            migration_id=data['migration_id'],
            version=data['version'],
            operation=OperationKind(data['operation']),
            status=AttemptStatus(data['status']),
            started_at=_as_datetime(data['started_at'], 'started_at'),
            completed_at=_as_datetime(data['completed_at'], 'completed_at'),
            error_message=data['error_message'],
            executed_scripts=executed_scripts,
        )
    except (KeyError, ValueError) as e:
        # json.JSONDecodeError and bad enum values are both ValueErrors
        raise IntegrityViolationError(
            f"Malformed {MIGRATION_LOGS_TABLE} row: {e}"
        ) from e


def generate_migration_id() -> str:
    """Unique attempt id, e.g. 'migration_1735550000000_3f2a...'."""
    return f"migration_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


class AuditLedger:
    """
    Reads and writes the engine's bookkeeping tables.

    Attributes:
        session: Host-supplied database session (never closed here)
        applied_by: Default actor recorded on applied versions
        logger: Logger for ledger activity

    Example:
        ledger = AuditLedger(session, applied_by='deploy')
        migration_id = await ledger.log_attempt_start('1.2.0', OperationKind.UPGRADE)
        ...
        await ledger.log_attempt_complete(
            migration_id, AttemptStatus.SUCCESS, ['create_user_sessions_table']
        )
    """

    def __init__(self, session: AsyncSession, applied_by: str = 'system'):
        self.session = session
        self.applied_by = applied_by
        self.logger = logging.getLogger(__name__)
        # Attempts started before migration_logs existed (bootstrap)
        self._deferred = {}

    async def applied_table_exists(self) -> bool:
        return await table_exists(self.session, SCHEMA_VERSIONS_TABLE)

    async def attempt_log_exists(self) -> bool:
        return await table_exists(self.session, MIGRATION_LOGS_TABLE)

    def _dialect_name(self) -> str:
        return self.session.get_bind().dialect.name

    # ========================================================================
    # Applied versions
    # ========================================================================

    async def record_version_applied(
        self,
        version: str,
        description: str,
        checksum: Optional[str],
        execution_time_ms: int,
        applied_by: Optional[str] = None
    ) -> None:
        """
        Upsert the applied-version row for a version.

        Re-applying a version refreshes description, timestamp, actor,
        checksum and execution time instead of adding a row. Does not
        commit (caller manages the transaction).

        Args:
            version: Version that was applied
            description: Version description
            checksum: Version checksum at time of application
            execution_time_ms: Time spent running the version's scripts
            applied_by: Actor (defaults to the ledger's applied_by)
        """
        values = {
            'version': version,
            'description': description,
            'applied_at': utcnow(),
            'applied_by': applied_by or self.applied_by,
            'checksum': checksum,
            'execution_time': execution_time_ms,
        }
        refreshed = {k: v for k, v in values.items() if k != 'version'}

        dialect = self._dialect_name()
        if dialect == 'postgresql':
            stmt = pg_insert(schema_versions).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=['version'], set_=refreshed
            )
            await self.session.execute(stmt)
        elif dialect == 'sqlite':
            stmt = sqlite_insert(schema_versions).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=['version'], set_=refreshed
            )
            await self.session.execute(stmt)
        else:
            await self.session.execute(
                delete(schema_versions).where(schema_versions.c.version == version)
            )
            await self.session.execute(insert(schema_versions).values(**values))

        self.logger.debug('Recorded applied version %s', version)

    async def remove_version_record(self, version: str) -> None:
        """
        Delete the applied-version row for a version.

        Does not commit (caller manages the transaction).
        """
        await self.session.execute(
            delete(schema_versions).where(schema_versions.c.version == version)
        )
        self.logger.debug('Removed applied version %s', version)

    async def get_applied_versions(self) -> List[AppliedVersionRecord]:
        """
        All applied-version records, ascending by version.

        Returns:
            List of records (empty if the table does not exist)
        """
        if not await self.applied_table_exists():
            return []

        result = await self.session.execute(select(schema_versions))
        records = [_row_to_applied(row) for row in result]
        return sorted(records, key=lambda r: version_key(r.version))

    # ========================================================================
    # Attempt logs
    # ========================================================================

    async def log_attempt_start(
        self,
        version: str,
        operation: OperationKind
    ) -> str:
        """
        Record the start of a migration attempt.

        Inserts a STARTED row and commits. If migration_logs does not
        exist yet (unversioned database), the row is held in memory and
        written by log_attempt_complete once the table exists.

        Args:
            version: Target version of the attempt
            operation: UPGRADE, DOWNGRADE or ROLLBACK

        Returns:
            Generated migration_id
        """
        migration_id = generate_migration_id()
        started_at = utcnow()

        if not await self.attempt_log_exists():
            self._deferred[migration_id] = {
                'version': version,
                'operation': operation,
                'started_at': started_at,
            }
            self.logger.info(
                'Attempt log table missing; deferring log for %s', migration_id
            )
            return migration_id

        await self.session.execute(
            insert(migration_logs).values(
                migration_id=migration_id,
                version=version,
                operation=operation.value,
                status=AttemptStatus.STARTED.value,
                started_at=started_at,
                executed_scripts=json.dumps([]),
            )
        )
        await self.session.commit()

        self.logger.debug(
            'Logged %s attempt %s -> %s', operation.value, migration_id, version
        )
        return migration_id

    async def log_attempt_complete(
        self,
        migration_id: str,
        status: AttemptStatus,
        executed_scripts: List[str],
        error_message: Optional[str] = None
    ) -> None:
        """
        Close a migration attempt with its final status.

        Only rows still in STARTED are updated, so a closed attempt is
        never rewritten. Commits.

        Args:
            migration_id: Id returned by log_attempt_start
            status: SUCCESS, FAILED or ROLLED_BACK
            executed_scripts: Script ids that ran, in order
            error_message: Error text for failed attempts

        Raises:
            ValueError: If status is STARTED
        """
        if status == AttemptStatus.STARTED:
            raise ValueError("An attempt cannot be completed as STARTED")

        completed_at = utcnow()
        scripts_json = json.dumps(list(executed_scripts))

        deferred = self._deferred.pop(migration_id, None)
        if deferred is not None:
            if not await self.attempt_log_exists():
                self.logger.warning(
                    'Attempt %s finished %s but %s does not exist; not recorded',
                    migration_id,
                    status.value,
                    MIGRATION_LOGS_TABLE
                )
                return

            await self.session.execute(
                insert(migration_logs).values(
                    migration_id=migration_id,
                    version=deferred['version'],
                    operation=deferred['operation'].value,
                    status=status.value,
                    started_at=deferred['started_at'],
                    completed_at=completed_at,
                    error_message=error_message,
                    executed_scripts=scripts_json,
                )
            )
            await self.session.commit()
            return

        result = await self.session.execute(
            update(migration_logs)
            .where(migration_logs.c.migration_id == migration_id)
            .where(migration_logs.c.status == AttemptStatus.STARTED.value)
            .values(
                status=status.value,
                completed_at=completed_at,
                error_message=error_message,
                executed_scripts=scripts_json,
            )
        )
        await self.session.commit()

        if result.rowcount == 0:
            self.logger.warning(
                'Attempt %s was not in STARTED state; left unchanged',
                migration_id
            )

    async def get_attempt(self, migration_id: str) -> Optional[MigrationAttemptLog]:
        """Fetch one attempt log by migration_id, or None."""
        if not await self.attempt_log_exists():
            return None

        result = await self.session.execute(
            select(migration_logs).where(
                migration_logs.c.migration_id == migration_id
            )
        )
        row = result.first()
        return _row_to_attempt(row) if row is not None else None

    async def get_history(self, limit: int = 50) -> List[MigrationAttemptLog]:
        """
        Most recent migration attempts first.

        Args:
            limit: Maximum number of attempts to return

        Returns:
            List of attempt logs (empty if the log table does not exist)
        """
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")

        if not await self.attempt_log_exists():
            return []

        result = await self.session.execute(
            select(migration_logs)
            .order_by(migration_logs.c.started_at.desc(), migration_logs.c.id.desc())
            .limit(limit)
        )
        return [_row_to_attempt(row) for row in result]

    async def cleanup_older_than(self, days: int = 30) -> int:
        """
        Remove attempt logs started more than the given number of days ago.

        Args:
            days: Keep logs for this many days (default 30)

        Returns:
            int: Number of logs deleted
        """
        if days < 0:
            raise ValueError(f"days must be >= 0, got {days}")

        if not await self.attempt_log_exists():
            return 0

        cutoff = utcnow() - timedelta(days=days)
        result = await self.session.execute(
            delete(migration_logs).where(migration_logs.c.started_at < cutoff)
        )
        await self.session.commit()

        deleted = result.rowcount
        if deleted > 0:
            self.logger.info('Cleaned up %d old migration logs', deleted)

        return deleted
