"""
Immutable registry of every known schema version.

This module provides:
- VersionCatalog: Sorted, read-only collection of SchemaVersion objects
- load_catalog: Build a catalog from a directory of SQL files

Directory layout understood by load_catalog:

    migrations/
        1.0.0/
            version.yaml              (optional: description, release_date)
            001_create_users.sql
            002_create_orders.sql
        1.1.0/
            001_add_user_email.sql

Each script file follows the NNN_description.sql naming convention and
holds an UP section and an optional DOWN section:

    -- UP
    CREATE TABLE users (id INTEGER PRIMARY KEY);

    -- DOWN
    DROP TABLE users;

A version whose files carry no DOWN sections has no rollback scripts and
cannot be downgraded past.
"""

import logging
import re
from datetime import date
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, List, Optional

import yaml

from .comparator import VERSION_PATTERN, version_key
from .errors import ConfigurationError
from .version import MigrationScript, SchemaVersion, compute_checksum

logger = logging.getLogger(__name__)


class VersionCatalog:
    """
    Read-only collection of schema versions in ascending order.

    Built once at start-up and shared by reference; there are no
    mutating methods.

    Example:
        >>> catalog = VersionCatalog([v1_0, v1_1, v1_2])
        >>> [v.version for v in catalog]
        ['1.0.0', '1.1.0', '1.2.0']
        >>> '1.1.0' in catalog
        True
        >>> catalog.latest.version
        '1.2.0'
    """

    def __init__(self, versions: Iterable[SchemaVersion]):
        ordered = sorted(versions, key=lambda v: version_key(v.version))
        if not ordered:
            raise ConfigurationError("Version catalog must not be empty")

        by_key = {}
        for schema_version in ordered:
            key = version_key(schema_version.version)
            if key in by_key:
                raise ConfigurationError(
                    f"Duplicate version {schema_version.version} in catalog "
                    f"(already defined as {by_key[key].version})"
                )
            by_key[key] = schema_version

        self._versions = tuple(ordered)
        self._by_key = MappingProxyType(by_key)

    @classmethod
    def builtin(cls) -> 'VersionCatalog':
        """Catalog of the versions bundled with the engine."""
        from .builtin_versions import BUILTIN_VERSIONS
        return cls(BUILTIN_VERSIONS)

    @property
    def versions(self) -> tuple:
        return self._versions

    @property
    def earliest(self) -> SchemaVersion:
        return self._versions[0]

    @property
    def latest(self) -> SchemaVersion:
        return self._versions[-1]

    def find(self, version: str) -> Optional[SchemaVersion]:
        """Return the SchemaVersion for a version string, or None."""
        return self._by_key.get(version_key(version))

    def get(self, version: str) -> SchemaVersion:
        """
        Return the SchemaVersion for a version string.

        Raises:
            ConfigurationError: If the version is not in the catalog
        """
        schema_version = self.find(version)
        if schema_version is None:
            raise ConfigurationError(
                f"Version {version} is not defined in the catalog"
            )
        return schema_version

    def __contains__(self, version) -> bool:
        if not isinstance(version, str) or not VERSION_PATTERN.match(version):
            return False
        return self.find(version) is not None

    def __iter__(self) -> Iterator[SchemaVersion]:
        return iter(self._versions)

    def __len__(self) -> int:
        return len(self._versions)

    def __repr__(self) -> str:
        return (
            f"<VersionCatalog({self.earliest.version}..{self.latest.version}, "
            f"{len(self)} versions)>"
        )


# Script filename pattern: NNN_description.sql
# Examples: 001_create_table.sql, 042_add_index.sql
SCRIPT_PATTERN = re.compile(r'^(\d{3})_([a-z0-9_]+)\.sql$')

# Section markers in script files
UP_MARKER = '-- UP'
DOWN_MARKER = '-- DOWN'

VERSION_METADATA_FILE = 'version.yaml'


def _parse_sections(content: str, filename: str) -> tuple:
    """
    Parse UP and DOWN sections from script file content.

    Args:
        content: Full file content
        filename: Filename for error messages

    Returns:
        Tuple of (up_sql, down_sql); down_sql is '' when there is no
        DOWN section

    Raises:
        ConfigurationError: If UP marker missing or DOWN precedes UP
    """
    lines = content.split('\n')

    up_start = None
    down_start = None

    # Find section markers (case-insensitive)
    for i, line in enumerate(lines):
        line_stripped = line.strip().upper()
        if line_stripped == UP_MARKER:
            up_start = i + 1
        elif line_stripped == DOWN_MARKER:
            down_start = i + 1

    if up_start is None:
        raise ConfigurationError(
            f"Script {filename} missing '{UP_MARKER}' marker"
        )

    if down_start is None:
        up_sql = '\n'.join(lines[up_start:]).strip()
        down_sql = ''
    elif up_start >= down_start:
        raise ConfigurationError(
            f"Script {filename} has '{DOWN_MARKER}' before '{UP_MARKER}'"
        )
    else:
        up_sql = '\n'.join(lines[up_start:down_start - 1]).strip()
        down_sql = '\n'.join(lines[down_start:]).strip()

    if not up_sql:
        raise ConfigurationError(f"Script {filename} has empty UP section")

    return up_sql, down_sql


def _load_metadata(version_dir: Path) -> dict:
    metadata_path = version_dir / VERSION_METADATA_FILE
    if not metadata_path.exists():
        return {}

    with open(metadata_path, 'r', encoding='utf-8') as fp:
        metadata = yaml.safe_load(fp) or {}

    if not isinstance(metadata, dict):
        raise ConfigurationError(
            f"{metadata_path} must contain a mapping, got "
            f"{type(metadata).__name__}"
        )
    return metadata


def _release_date(value, version: str) -> date:
    if value is None:
        return date.today()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ConfigurationError(
            f"Invalid release_date {value!r} for version {version}"
        )


def load_version(version_dir: Path) -> SchemaVersion:
    """
    Load one version directory into a SchemaVersion.

    Args:
        version_dir: Directory named after the version (e.g., '1.1.0')

    Returns:
        SchemaVersion with forward scripts in file order and rollback
        scripts in reverse file order

    Raises:
        ConfigurationError: If no valid scripts are found, orders repeat,
            or a file is malformed
    """
    version = version_dir.name
    metadata = _load_metadata(version_dir)

    scripts: List[MigrationScript] = []
    rollback_scripts: List[MigrationScript] = []
    orders_seen = set()

    for file_path in sorted(version_dir.glob('*.sql')):
        match = SCRIPT_PATTERN.match(file_path.name)
        if not match:
            logger.warning(
                "Skipping invalid script filename: %s", file_path
            )
            continue

        order_str, name = match.groups()
        order = int(order_str)

        if order in orders_seen:
            raise ConfigurationError(
                f"Duplicate script order {order} in version {version}"
            )
        orders_seen.add(order)

        content = file_path.read_text(encoding='utf-8')
        up_sql, down_sql = _parse_sections(content, file_path.name)

        scripts.append(MigrationScript(
            id=name,
            name=name.replace('_', ' '),
            description=f"{file_path.name} (up)",
            sql=up_sql,
            execution_order=order,
            checksum=compute_checksum(up_sql),
        ))

        if down_sql:
            rollback_scripts.append(MigrationScript(
                id=f"rollback_{name}",
                name=f"rollback {name.replace('_', ' ')}",
                description=f"{file_path.name} (down)",
                sql=down_sql,
                # Undo in reverse order of application
                execution_order=-order,
            ))

    if not scripts:
        raise ConfigurationError(
            f"Version directory {version_dir} contains no migration scripts"
        )

    return SchemaVersion(
        version=version,
        description=metadata.get('description', f"Version {version}"),
        release_date=_release_date(metadata.get('release_date'), version),
        scripts=tuple(scripts),
        rollback_scripts=tuple(rollback_scripts) or None,
    )


def load_catalog(base_dir) -> VersionCatalog:
    """
    Build a VersionCatalog from a directory of version folders.

    Args:
        base_dir: Directory containing one sub-directory per version

    Returns:
        VersionCatalog sorted by version

    Raises:
        ConfigurationError: If the directory is missing or holds no
            valid versions

    Example:
        >>> catalog = load_catalog(Path('/opt/app/migrations'))
        >>> catalog.latest.version
        '1.1.0'
    """
    base_dir = Path(base_dir)
    if not base_dir.is_dir():
        raise ConfigurationError(f"Catalog directory not found: {base_dir}")

    versions = []
    for version_dir in sorted(p for p in base_dir.iterdir() if p.is_dir()):
        if not VERSION_PATTERN.match(version_dir.name):
            logger.warning(
                "Skipping directory with invalid version name: %s",
                version_dir
            )
            continue

        schema_version = load_version(version_dir)
        logger.debug("Loaded %r from %s", schema_version, version_dir)
        versions.append(schema_version)

    catalog = VersionCatalog(versions)
    logger.info(
        "Loaded %d versions from %s (latest %s)",
        len(catalog), base_dir, catalog.latest.version
    )
    return catalog


__all__ = [
    'VersionCatalog',
    'load_catalog',
    'load_version',
]
