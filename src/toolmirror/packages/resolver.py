"""Toolchain resource resolution.

Walks the merged catalog to find everything needed to install one core on one
target platform: the core archive plus one archive per declared tool
dependency.

Result Tags:
    Resolved      every dependency has a binary for the target platform
    MissingTools  the catalog is consistent but at least one tool has no
                  binary for the target (even after fallback); skip the item
    Failed        the core or a tool definition is missing from the catalog

The tags live in ``models`` alongside ResolvedManifestEntry and are
re-exported here.
"""

import logging
from typing import Optional, Tuple

from .models import (
    ArtifactRef,
    Catalog,
    Failed,
    MissingTools,
    Resolution,
    Resolved,
    ResolvedManifestEntry,
    System,
    Tool,
)
from .platform_utils import PlatformClassifier

logger = logging.getLogger(__name__)

__all__ = ["Failed", "MissingTools", "Resolution", "Resolved", "ResourceResolver"]


class ResourceResolver:
    """Resolves a core and its tool closure for a target platform."""

    def __init__(self, classifier: Optional[PlatformClassifier] = None):
        """Initialize resolver.

        Args:
            classifier: Host classifier. If not provided, uses the default table.
        """
        self.classifier = classifier or PlatformClassifier()

    def resolve(
        self,
        catalog: Catalog,
        packager: str,
        architecture: str,
        version: str,
        target_platform: str,
    ) -> ResolvedManifestEntry:
        """Resolve the download set for one core on one platform.

        Args:
            catalog: Merged upstream catalog
            packager: Packager name (e.g. "arduino")
            architecture: Core architecture (e.g. "avr")
            version: Core version
            target_platform: Canonical platform (e.g. "linux-x64")

        Returns:
            ResolvedManifestEntry; inspect ``entry.outcome`` for the tag
        """
        entry = ResolvedManifestEntry(
            packager=packager,
            architecture=architecture,
            version=version,
            target_platform=target_platform,
        )

        platform = catalog.find_platform(packager, architecture, version)
        if platform is None:
            entry.hard_errors.append(f"Platform not found: {packager}:{architecture}@{version}")
            return entry

        core_artifact = ArtifactRef(
            packager=packager,
            name=architecture,
            version=version,
            url=platform.url,
            checksum=platform.checksum,
            size=platform.size,
            archive_file_name=platform.archive_file_name,
        )

        tools = []
        for dep in platform.tool_dependencies:
            tool = catalog.find_tool(dep.packager, dep.name, dep.version)
            if tool is None:
                entry.hard_errors.append(f"Tool not found: {dep}")
                continue
            tools.append((dep, tool))

        if entry.hard_errors:
            return entry

        entry.core_artifact = core_artifact

        for dep, tool in tools:
            system = self.find_system(tool, target_platform)
            if system is None:
                fallback = self.classifier.fallback_for(target_platform)
                if fallback is not None:
                    system = self.find_system(tool, fallback)
                    if system is not None:
                        logger.info(f"Using {fallback} binary of {dep} for {target_platform}")
                        entry.fallback_tools.append(str(dep))

            if system is None:
                entry.missing_tools.append(dep)
                continue

            entry.tool_artifacts.append(
                ArtifactRef(
                    packager=dep.packager,
                    name=dep.name,
                    version=dep.version,
                    url=system.url,
                    checksum=system.checksum,
                    size=system.size,
                    archive_file_name=system.archive_file_name,
                    host=system.host,
                )
            )

        return entry

    def resolve_outcome(
        self,
        catalog: Catalog,
        packager: str,
        architecture: str,
        version: str,
        target_platform: str,
    ) -> Resolution:
        """Resolve and return the tagged outcome directly."""
        return self.resolve(catalog, packager, architecture, version, target_platform).outcome

    def find_system(self, tool: Tool, platform: str) -> Optional[System]:
        """Find the first system of ``tool`` whose host classifies to ``platform``."""
        for system in tool.systems:
            if self.classifier.classify(system.host) == platform:
                return system
        return None

    def tool_platforms(self, tool: Tool) -> Tuple[str, ...]:
        """Canonical platforms ``tool`` publishes native binaries for."""
        platforms = []
        for system in tool.systems:
            platform = self.classifier.classify(system.host)
            if platform and platform not in platforms:
                platforms.append(platform)
        return tuple(platforms)
