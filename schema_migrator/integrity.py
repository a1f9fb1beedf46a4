#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Integrity validation of persisted schema state against the catalog.

Checks performed:
- Tables created by the earliest catalog version still exist (issue)
- Configured required tables exist (issue)
- The persisted current version is defined in the catalog (issue)
- Index count on the baseline tables is not below what the applied
  versions create (recommendation)
- Applied version checksums match the catalog (recommendation)

Issues make the database invalid. Recommendations are advisory and never
affect validity.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Set

from sqlalchemy.ext.asyncio import AsyncSession

from .catalog import VersionCatalog
from .comparator import compare_versions
from .errors import IntegrityViolationError
from .ledger import AuditLedger
from .probe import CurrentVersionProbe
from .tables import index_count, table_names

logger = logging.getLogger(__name__)

CREATE_TABLE_PATTERN = re.compile(
    r'\bCREATE\s+(?:TEMP(?:ORARY)?\s+)?TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?'
    r'["`\[]?(\w+)',
    re.IGNORECASE
)
CREATE_INDEX_PATTERN = re.compile(
    r'\bCREATE\s+(?:UNIQUE\s+)?INDEX\s+(?:IF\s+NOT\s+EXISTS\s+)?'
    r'["`\[]?\w+["`\]]?\s+ON\s+["`\[]?(\w+)',
    re.IGNORECASE
)


def created_tables(scripts: Iterable) -> List[str]:
    """Table names created by CREATE TABLE statements, in order of appearance."""
    names = []
    for script in scripts:
        for name in CREATE_TABLE_PATTERN.findall(script.sql):
            if name not in names:
                names.append(name)
    return names


def created_index_count(scripts: Iterable, tables: Set[str]) -> int:
    """Number of CREATE INDEX statements targeting any of the given tables."""
    count = 0
    for script in scripts:
        for table in CREATE_INDEX_PATTERN.findall(script.sql):
            if table in tables:
                count += 1
    return count


@dataclass
class IntegrityReport:
    """
    Outcome of an integrity validation run.

    Attributes:
        valid: True if no issues were found
        issues: Problems that make the schema state incorrect
        recommendations: Advisory notes; never affect valid
    """
    valid: bool
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'valid': self.valid,
            'issues': list(self.issues),
            'recommendations': list(self.recommendations),
        }


class IntegrityValidator:
    """
    Cross-checks the catalog against persisted state for drift.

    Attributes:
        session: Host-supplied database session
        catalog: Immutable version catalog
        probe: Current version lookup
        ledger: Applied-version records (for checksum checks)
        required_tables: Extra tables the host expects to exist
        min_index_ratio: Fraction of expected indexes that must exist
            before an index recommendation is made

    Example:
        >>> validator = IntegrityValidator(session, catalog, probe, ledger)
        >>> report = await validator.validate()
        >>> report.valid
        True
    """

    def __init__(
        self,
        session: AsyncSession,
        catalog: VersionCatalog,
        probe: CurrentVersionProbe,
        ledger: AuditLedger,
        required_tables: Iterable[str] = (),
        min_index_ratio: float = 1.0
    ):
        self.session = session
        self.catalog = catalog
        self.probe = probe
        self.ledger = ledger
        self.required_tables = list(required_tables)
        self.min_index_ratio = min_index_ratio

    def baseline_tables(self) -> List[str]:
        """Tables the earliest catalog version is expected to create."""
        return created_tables(self.catalog.earliest.ordered_scripts())

    async def validate(self, strict: bool = False) -> IntegrityReport:
        """
        Run all integrity checks.

        Args:
            strict: Raise instead of returning an invalid report

        Returns:
            IntegrityReport

        Raises:
            IntegrityViolationError: If strict and any issue was found
        """
        issues: List[str] = []
        recommendations: List[str] = []

        try:
            baseline = self.baseline_tables()
            existing = await table_names(self.session)

            for table in baseline + [
                t for t in self.required_tables if t not in baseline
            ]:
                if table not in existing:
                    issues.append(f"Missing required table: {table}")

            current = await self.probe.get_current_version()
            if current is not None and current not in self.catalog:
                issues.append(
                    f"Current version {current} is not defined in the catalog"
                )

            if current is not None:
                recommendations.extend(
                    await self._check_indexes(current, set(baseline) & existing)
                )
                recommendations.extend(await self._check_checksums())

        except Exception as e:
            logger.error('Integrity validation failed: %s', e)
            issues.append(f"Error during validation: {e}")

        report = IntegrityReport(
            valid=not issues,
            issues=issues,
            recommendations=recommendations,
        )

        if issues:
            logger.warning(
                'Integrity validation found %d issues: %s',
                len(issues),
                '; '.join(issues)
            )

        if strict and not report.valid:
            raise IntegrityViolationError(
                f"Database integrity check failed with {len(issues)} issues",
                issues=issues,
            )

        return report

    async def _check_indexes(self, current: str, tables: Set[str]) -> List[str]:
        if not tables:
            return []

        applied_scripts = []
        for schema_version in self.catalog:
            if compare_versions(schema_version.version, current) <= 0:
                applied_scripts.extend(schema_version.ordered_scripts())

        expected = created_index_count(applied_scripts, tables)
        actual = 0
        for table in sorted(tables):
            actual += await index_count(self.session, table)

        if actual < expected * self.min_index_ratio:
            return [
                f"Found {actual} indexes on {', '.join(sorted(tables))} but "
                f"applied versions create {expected}; check index "
                f"completeness, query performance may suffer"
            ]
        return []

    async def _check_checksums(self) -> List[str]:
        recommendations = []
        for record in await self.ledger.get_applied_versions():
            schema_version = self.catalog.find(record.version)
            if schema_version is None or record.checksum is None:
                continue
            if record.checksum != schema_version.checksum:
                recommendations.append(
                    f"Version {record.version} was applied with checksum "
                    f"{record.checksum[:8]}... but the catalog now has "
                    f"{schema_version.checksum[:8]}...; its scripts changed "
                    f"after application"
                )
        return recommendations
