"""
Integration tests against the live Arduino package index.

These reach the network and only run with --full.
"""

import pytest

from toolmirror.config.mirror_config import PackageConfig
from toolmirror.packages.index_merger import PRIMARY_INDEX_URL, IndexMerger
from toolmirror.packages.platform_utils import CANONICAL_PLATFORMS
from toolmirror.packages.resolver import MissingTools, Resolved, ResourceResolver
from toolmirror.sync.reconciler import StateReconciler


@pytest.mark.integration
class TestUpstreamIndex:
    """Integration tests for catalog merge and resolution on real data"""

    @pytest.fixture(scope="class")
    def catalog(self):
        return IndexMerger().merge([PRIMARY_INDEX_URL])

    def test_probe_primary_index(self):
        results = IndexMerger().probe([PRIMARY_INDEX_URL])
        assert results[0].ok, results[0].message

    def test_arduino_avr_resolves_everywhere(self, catalog):
        """Arduino AVR ships tools for every published platform (with fallback)."""
        latest = StateReconciler().latest_versions([PackageConfig(id="arduino-avr", core="arduino:avr")], catalog)
        version = latest["arduino-avr"]

        resolver = ResourceResolver()
        for platform in CANONICAL_PLATFORMS:
            outcome = resolver.resolve_outcome(catalog, "arduino", "avr", version, platform)
            assert isinstance(outcome, (Resolved, MissingTools)), f"{platform}: {outcome}"

    def test_every_host_of_arduino_tools_is_known(self, catalog):
        resolver = ResourceResolver()
        record = catalog.get("arduino")
        platforms = set()
        for tool in record.tools:
            platforms.update(resolver.tool_platforms(tool))
        assert {"linux-x64", "darwin-x64", "win32-ia32"} <= platforms
