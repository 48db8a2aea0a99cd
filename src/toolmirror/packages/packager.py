"""Toolchain bundle packager.

Downloads the archives of a resolved toolchain, assembles them into the
directory layout client software expects, and compresses the result into one
bundle per (package, version, platform).

Bundle Layout:
    packages/
    ├── {packager}/hardware/{architecture}/{version}/   # core
    └── {packager}/tools/{tool_name}/{tool_version}/    # one per tool
"""

import logging
import shutil
from pathlib import Path
from typing import Optional

from .archive_utils import ArchiveExtractor, BundleArchiver, BundleInfo, ExtractionError
from .downloader import ChecksumError, DownloadError, PackageDownloader
from .models import ArtifactRef, ResolvedManifestEntry

logger = logging.getLogger(__name__)


class PackagingError(Exception):
    """Raised when a toolchain cannot be packaged."""

    pass


class Packager:
    """Builds distributable bundles from resolved manifest entries."""

    def __init__(
        self,
        downloader: Optional[PackageDownloader] = None,
        extractor: Optional[ArchiveExtractor] = None,
        archiver: Optional[BundleArchiver] = None,
    ):
        """Initialize packager.

        Args:
            downloader: Downloader for upstream archives
            extractor: Extractor for upstream archives
            archiver: Bundle writer
        """
        self.downloader = downloader or PackageDownloader()
        self.extractor = extractor or ArchiveExtractor()
        self.archiver = archiver or BundleArchiver()

    @staticmethod
    def core_dir(packages_dir: Path, artifact: ArtifactRef) -> Path:
        return packages_dir / artifact.packager / "hardware" / artifact.name / artifact.version

    @staticmethod
    def tool_dir(packages_dir: Path, artifact: ArtifactRef) -> Path:
        return packages_dir / artifact.packager / "tools" / artifact.name / artifact.version

    def assemble(self, entry: ResolvedManifestEntry, work_dir: Path) -> Path:
        """Download and extract every artifact of ``entry`` under ``work_dir``.

        Args:
            entry: Resolved entry with no hard errors and no missing tools
            work_dir: Scratch directory owned by this item

        Returns:
            Path to the assembled ``packages`` directory

        Raises:
            PackagingError: If the entry is not packageable
            DownloadError: If a download fails
            ChecksumError: If a downloaded archive fails verification
            ExtractionError: If an archive cannot be extracted
        """
        if entry.hard_errors or entry.core_artifact is None:
            raise PackagingError(f"Cannot package {entry.core}@{entry.version}: unresolved core")
        if entry.missing_tools:
            missing = ", ".join(str(t) for t in entry.missing_tools)
            raise PackagingError(f"Missing tools for {entry.target_platform}: {missing}")

        download_dir = work_dir / "downloads"
        packages_dir = work_dir / "packages"
        download_dir.mkdir(parents=True, exist_ok=True)
        packages_dir.mkdir(parents=True, exist_ok=True)

        core = entry.core_artifact
        logger.info(f"Downloading platform: {entry.core}@{entry.version}")
        self._fetch_and_extract(core, download_dir, self.core_dir(packages_dir, core))

        logger.info(f"Downloading {len(entry.tool_artifacts)} tools...")
        for tool in entry.tool_artifacts:
            logger.info(f"  Downloading: {tool.name}@{tool.version}")
            self._fetch_and_extract(tool, download_dir, self.tool_dir(packages_dir, tool))

        logger.info(f"Package assembled: {packages_dir}")
        return packages_dir

    def package(
        self,
        entry: ResolvedManifestEntry,
        work_dir: Path,
        bundle_name: Optional[str] = None,
    ) -> BundleInfo:
        """Assemble ``entry`` and compress it into a single bundle.

        Args:
            entry: Resolved entry to package
            work_dir: Scratch directory owned by this item
            bundle_name: Bundle file name. Defaults to
                "{packager}-{architecture}-{platform}-{version}.zip"

        Returns:
            BundleInfo with bundle path, checksum and size
        """
        work_dir = Path(work_dir)
        packages_dir = self.assemble(entry, work_dir)

        if bundle_name is None:
            bundle_name = f"{entry.packager}-{entry.architecture}-{entry.target_platform}-{entry.version}.zip"

        bundle_path = work_dir / bundle_name
        logger.info(f"Creating archive: {bundle_name}")
        bundle = self.archiver.create(packages_dir, bundle_path, root_name="packages")

        # Upstream archives are no longer needed once the bundle exists
        shutil.rmtree(work_dir / "downloads", ignore_errors=True)
        return bundle

    def _fetch_and_extract(self, artifact: ArtifactRef, download_dir: Path, dest_dir: Path) -> None:
        archive_path = download_dir / artifact.archive_file_name
        try:
            self.downloader.download(artifact.url, archive_path, artifact.checksum)
        except (DownloadError, ChecksumError):
            raise
        except OSError as e:
            raise DownloadError(f"Failed to write {archive_path.name}: {e}") from e

        try:
            self.extractor.extract(archive_path, dest_dir)
        except ExtractionError:
            raise
        except OSError as e:
            raise ExtractionError(f"Failed to extract {archive_path.name}: {e}") from e
