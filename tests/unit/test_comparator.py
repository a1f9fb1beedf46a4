"""
Unit tests for version comparison and path computation.

Tests cover:
- Version string parsing and validation
- Numeric, component-wise comparison
- Upgrade and downgrade path computation
- VersionComparison flags
"""

import pytest

from schema_migrator.catalog import VersionCatalog
from schema_migrator.comparator import (
    UNVERSIONED,
    VersionComparator,
    compare_versions,
    parse_version,
    version_key,
)
from schema_migrator.errors import ConfigurationError


@pytest.fixture
def comparator():
    return VersionComparator(VersionCatalog.builtin())


class TestParseVersion:
    """Test version string parsing."""

    def test_parse_three_components(self):
        assert parse_version('1.10.2') == (1, 10, 2)

    def test_parse_any_component_count(self):
        assert parse_version('7') == (7,)
        assert parse_version('1.2.0.7') == (1, 2, 0, 7)

    @pytest.mark.parametrize('bad', ['', 'v1.0', '1..0', '1.0.', '1.a', '-1.0', None, 10])
    def test_parse_invalid(self, bad):
        with pytest.raises(ConfigurationError, match="Invalid version"):
            parse_version(bad)

    def test_version_key_strips_trailing_zeros(self):
        assert version_key('1.0.0') == version_key('1.0') == version_key('1')
        assert version_key('0.0.0') == (0,)


class TestCompareVersions:
    """Test numeric component-wise comparison."""

    def test_numeric_not_lexicographic(self):
        assert compare_versions('1.2', '1.10') == -1
        assert compare_versions('1.10', '1.2') == 1

    def test_missing_components_are_zero(self):
        assert compare_versions('1.0', '1.0.0') == 0
        assert compare_versions('1', '1.0.1') == -1

    def test_major_dominates(self):
        assert compare_versions('2', '1.9.9') == 1

    def test_equal(self):
        assert compare_versions('1.2.0', '1.2.0') == 0


class TestGetPath:
    """Test migration path computation over the built-in catalog."""

    def test_path_from_unversioned(self, comparator):
        assert comparator.get_path(None, '1.2.0') == ['1.0.0', '1.1.0', '1.2.0']

    def test_upgrade_path_excludes_current(self, comparator):
        assert comparator.get_path('1.0.0', '1.2.0') == ['1.1.0', '1.2.0']

    def test_downgrade_path_descending_excludes_target(self, comparator):
        assert comparator.get_path('1.2.0', '1.0.0') == ['1.2.0', '1.1.0']

    def test_single_step(self, comparator):
        assert comparator.get_path('1.1.0', '1.2.0') == ['1.2.0']
        assert comparator.get_path('1.2.0', '1.1.0') == ['1.2.0']

    def test_equal_versions_empty_path(self, comparator):
        assert comparator.get_path('1.1.0', '1.1.0') == []

    def test_equivalent_spellings_are_equal(self, comparator):
        assert comparator.get_path('1.1', '1.1.0') == []

    def test_unknown_target(self, comparator):
        with pytest.raises(ConfigurationError, match="9.9.9"):
            comparator.get_path('1.0.0', '9.9.9')

    def test_invalid_target(self, comparator):
        with pytest.raises(ConfigurationError):
            comparator.get_path('1.0.0', 'latest')

    def test_upgrade_from_version_outside_catalog(self, comparator):
        """Upgrades only need the versions above current."""
        assert comparator.get_path('1.0.5', '1.2.0') == ['1.1.0', '1.2.0']

    def test_downgrade_from_version_outside_catalog(self, comparator):
        with pytest.raises(ConfigurationError, match="Cannot downgrade"):
            comparator.get_path('1.5.0', '1.0.0')


class TestCompare:
    """Test VersionComparison construction."""

    def test_upgrade_comparison(self, comparator):
        comparison = comparator.compare(None, '1.1.0')

        assert comparison.current == UNVERSIONED
        assert comparison.target == '1.1.0'
        assert comparison.needs_upgrade is True
        assert comparison.needs_downgrade is False
        assert comparison.migration_path == ['1.0.0', '1.1.0']
        assert not comparison.is_noop

    def test_downgrade_comparison(self, comparator):
        comparison = comparator.compare('1.2.0', '1.1.0')

        assert comparison.needs_upgrade is False
        assert comparison.needs_downgrade is True
        assert comparison.migration_path == ['1.2.0']

    def test_noop_comparison(self, comparator):
        comparison = comparator.compare('1.2.0', '1.2.0')

        assert comparison.is_noop
        assert comparison.migration_path == []

    def test_to_dict(self, comparator):
        assert comparator.compare('1.0.0', '1.1.0').to_dict() == {
            'current': '1.0.0',
            'target': '1.1.0',
            'needs_upgrade': True,
            'needs_downgrade': False,
            'migration_path': ['1.1.0'],
        }


class TestOrderingProperties:
    """Comparison is reflexive, antisymmetric and matches catalog order."""

    VERSIONS = ['0.0.0', '0.9', '1', '1.0.1', '1.2', '1.10', '2.0.0', '10.0']

    @pytest.mark.parametrize('v', VERSIONS)
    def test_reflexive(self, v):
        assert compare_versions(v, v) == 0

    def test_antisymmetric(self):
        for a in self.VERSIONS:
            for b in self.VERSIONS:
                assert compare_versions(a, b) == -compare_versions(b, a)

    def test_consistent_with_catalog_order(self):
        versions = [v.version for v in VersionCatalog.builtin()]
        for lower, higher in zip(versions, versions[1:]):
            assert compare_versions(lower, higher) == -1
