"""
Current schema version lookup.

The current version is the applied version with the latest applied_at.
A database without the schema_versions table (or with an empty one) is
unversioned and reported as None.
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .comparator import compare_versions
from .tables import SCHEMA_VERSIONS_TABLE, schema_versions, table_exists

logger = logging.getLogger(__name__)


class CurrentVersionProbe:
    """
    Reads persisted state to find the currently-applied version.

    Example:
        >>> probe = CurrentVersionProbe(session)
        >>> await probe.get_current_version()
        '1.2.0'
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def applied_table_exists(self) -> bool:
        return await table_exists(self.session, SCHEMA_VERSIONS_TABLE)

    async def get_current_version(self) -> Optional[str]:
        """
        Get the version the database is currently at.

        Returns:
            Version with the latest applied_at (ties go to the higher
            version), or None if the database is unversioned
        """
        if not await self.applied_table_exists():
            logger.debug('%s does not exist; database is unversioned',
                         SCHEMA_VERSIONS_TABLE)
            return None

        latest = (
            select(func.max(schema_versions.c.applied_at))
            .scalar_subquery()
        )
        result = await self.session.execute(
            select(schema_versions.c.version)
            .where(schema_versions.c.applied_at == latest)
        )
        candidates = [row.version for row in result]

        if not candidates:
            return None

        current = candidates[0]
        for version in candidates[1:]:
            if compare_versions(version, current) > 0:
                current = version
        return current
