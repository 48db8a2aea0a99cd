"""Toolchain resolution and packaging for toolmirror.

This module handles merging upstream package indexes, classifying host
platforms, resolving core/tool closures, and building distributable bundles.
"""

from .archive_utils import ArchiveExtractor, BundleArchiver, BundleInfo, ExtractionError
from .downloader import ChecksumError, DownloadError, PackageDownloader, create_session
from .index_merger import PRIMARY_INDEX_URL, IndexFetchError, IndexMerger, merge_indexes
from .models import (
    ArtifactRef,
    Catalog,
    Failed,
    MissingTools,
    PackagerRecord,
    Platform,
    Resolution,
    Resolved,
    ResolvedManifestEntry,
    System,
    Tool,
    ToolDependency,
)
from .packager import Packager, PackagingError
from .platform_utils import (
    CANONICAL_PLATFORMS,
    MATCHER_RULES,
    PLATFORM_FALLBACKS,
    MatcherRule,
    PlatformClassifier,
    PlatformError,
)
from .resolver import ResourceResolver

__all__ = [
    "ArchiveExtractor",
    "BundleArchiver",
    "BundleInfo",
    "ExtractionError",
    "PackageDownloader",
    "DownloadError",
    "ChecksumError",
    "create_session",
    "IndexMerger",
    "IndexFetchError",
    "PRIMARY_INDEX_URL",
    "merge_indexes",
    "ArtifactRef",
    "Catalog",
    "PackagerRecord",
    "Platform",
    "ResolvedManifestEntry",
    "System",
    "Tool",
    "ToolDependency",
    "Packager",
    "PackagingError",
    "CANONICAL_PLATFORMS",
    "MATCHER_RULES",
    "PLATFORM_FALLBACKS",
    "MatcherRule",
    "PlatformClassifier",
    "PlatformError",
    "ResourceResolver",
    "Resolution",
    "Resolved",
    "MissingTools",
    "Failed",
]
