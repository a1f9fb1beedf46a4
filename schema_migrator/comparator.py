"""
Version comparison and migration path computation.

Version strings are dot-separated non-negative integers with any number
of components ("1", "1.2", "1.2.0.7"). Missing trailing components
compare as zero, so "1.2" and "1.2.0" are the same version.

Paths are always contiguous slices of the catalog's total order:

    upgrade   current < v <= target, ascending
    downgrade target  < v <= current, descending
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import List, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Version the database is treated as before anything has been applied
UNVERSIONED = '0.0.0'

VERSION_PATTERN = re.compile(r'^\d+(\.\d+)*$')


def parse_version(version: str) -> tuple:
    """
    Parse a version string into a tuple of integers.

    Args:
        version: Dot-separated version string (e.g., '1.2.0')

    Returns:
        Tuple of integer components (e.g., (1, 2, 0))

    Raises:
        ConfigurationError: If the string is not a valid version

    Example:
        >>> parse_version('1.10.2')
        (1, 10, 2)
    """
    if not isinstance(version, str) or not VERSION_PATTERN.match(version):
        raise ConfigurationError(f"Invalid version string: {version!r}")
    return tuple(int(part) for part in version.split('.'))


def _padded(parts: tuple, length: int) -> tuple:
    return parts + (0,) * (length - len(parts))


def version_key(version: str) -> tuple:
    """Sort key with trailing zeros stripped, so 1.0 and 1.0.0 sort equal."""
    parts = list(parse_version(version))
    while len(parts) > 1 and parts[-1] == 0:
        parts.pop()
    return tuple(parts)


def compare_versions(a: str, b: str) -> int:
    """
    Compare two version strings numerically, component by component.

    Args:
        a: First version
        b: Second version

    Returns:
        -1 if a < b, 0 if equal, 1 if a > b

    Example:
        >>> compare_versions('1.2', '1.10')
        -1
        >>> compare_versions('1.0', '1.0.0')
        0
    """
    a_parts = parse_version(a)
    b_parts = parse_version(b)
    length = max(len(a_parts), len(b_parts))
    a_parts = _padded(a_parts, length)
    b_parts = _padded(b_parts, length)

    if a_parts < b_parts:
        return -1
    if a_parts > b_parts:
        return 1
    return 0


@dataclass
class VersionComparison:
    """
    Where the database is, where it should go, and how to get there.

    Attributes:
        current: Current version ('0.0.0' when unversioned)
        target: Requested version
        needs_upgrade: True if target is above current
        needs_downgrade: True if target is below current
        migration_path: Versions to process, in execution order
    """
    current: str
    target: str
    needs_upgrade: bool
    needs_downgrade: bool
    migration_path: List[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.needs_upgrade and not self.needs_downgrade

    def to_dict(self) -> dict:
        return asdict(self)


class VersionComparator:
    """
    Computes migration paths between versions of a catalog.

    Holds a reference to the catalog and never mutates it.

    Example:
        >>> comparator = VersionComparator(catalog)
        >>> comparator.get_path(None, '1.2.0')
        ['1.0.0', '1.1.0', '1.2.0']
        >>> comparator.get_path('1.2.0', '1.0.0')
        ['1.2.0', '1.1.0']
    """

    def __init__(self, catalog):
        self.catalog = catalog

    def get_path(self, current: Optional[str], target: str) -> List[str]:
        """
        Compute the ordered list of versions between current and target.

        Args:
            current: Current version, or None if the database is unversioned
            target: Desired version (must be in the catalog)

        Returns:
            Versions to process in execution order (empty if equal)

        Raises:
            ConfigurationError: If target is unknown, or a downgrade starts
                from a version the catalog does not define
        """
        if target not in self.catalog:
            raise ConfigurationError(
                f"Target version {target} is not defined in the catalog"
            )

        current = current or UNVERSIONED
        direction = compare_versions(target, current)

        if direction == 0:
            return []

        if direction > 0:
            return [
                v.version for v in self.catalog
                if compare_versions(current, v.version) < 0
                and compare_versions(v.version, target) <= 0
            ]

        if current not in self.catalog:
            raise ConfigurationError(
                f"Cannot downgrade from version {current}: "
                f"it is not defined in the catalog"
            )

        return [
            v.version for v in reversed(self.catalog.versions)
            if compare_versions(target, v.version) < 0
            and compare_versions(v.version, current) <= 0
        ]

    def compare(self, current: Optional[str], target: str) -> VersionComparison:
        """
        Build a VersionComparison for moving from current to target.

        Raises:
            ConfigurationError: See get_path()
        """
        path = self.get_path(current, target)
        current = current or UNVERSIONED
        direction = compare_versions(target, current)

        logger.debug(
            'Version comparison %s -> %s: path=%s', current, target, path
        )

        return VersionComparison(
            current=current,
            target=target,
            needs_upgrade=direction > 0,
            needs_downgrade=direction < 0,
            migration_path=path,
        )
