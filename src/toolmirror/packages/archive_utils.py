"""Archive Extraction and Bundling Utilities.

This module extracts upstream core and tool archives (.zip, .tar.gz, .tar.bz2,
.tar.xz) into the assembly tree, and compresses an assembled tree into the
single zip bundle that gets published.

Upstream archives are inconsistent: some wrap their contents in a single
top-level directory (``avr-gcc-7.3.0-atmel3.6.1-arduino7/bin/...``), others
don't. Extraction flattens the single-directory case so every package lands
at the same depth.
"""

import logging
import os
import shutil
import stat
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import Path

from .downloader import format_checksum, sha256_file

logger = logging.getLogger(__name__)

TAR_SUFFIXES = {
    ".tar.gz": "r:gz",
    ".tgz": "r:gz",
    ".tar.bz2": "r:bz2",
    ".tbz2": "r:bz2",
    ".tar.xz": "r:xz",
    ".txz": "r:xz",
}


class ExtractionError(Exception):
    """Raised when archive extraction fails."""

    pass


@dataclass(frozen=True)
class BundleInfo:
    """A finished bundle archive."""

    path: Path
    checksum: str
    size: int


class ArchiveExtractor:
    """Extracts archives, flattening a lone top-level directory."""

    def extract(self, archive_path: Path, target_dir: Path, flatten: bool = True) -> Path:
        """Extract an archive into ``target_dir``.

        Args:
            archive_path: Path to the archive file
            target_dir: Directory to extract contents into
            flatten: Lift the contents of a lone top-level directory up one level

        Returns:
            Path to the target directory

        Raises:
            ExtractionError: If the archive is missing, unsupported or corrupt
        """
        archive_path = Path(archive_path)
        target_dir = Path(target_dir)

        if not archive_path.exists():
            raise ExtractionError(f"Archive not found: {archive_path}")

        # Create temp extraction directory
        temp_extract = target_dir.parent / f"temp_extract_{archive_path.name}"
        if temp_extract.exists():
            shutil.rmtree(temp_extract)
        temp_extract.mkdir(parents=True)

        try:
            self._extract_into(archive_path, temp_extract)

            extracted_items = list(temp_extract.iterdir())

            if flatten and len(extracted_items) == 1 and extracted_items[0].is_dir():
                # Single directory extracted - use its contents
                source_dir = extracted_items[0]
                logger.debug(f"Flattened: {source_dir.name}")
            else:
                source_dir = temp_extract

            target_dir.mkdir(parents=True, exist_ok=True)

            for item in source_dir.iterdir():
                dest = target_dir / item.name
                if dest.is_dir() and not dest.is_symlink():
                    shutil.rmtree(dest)
                elif dest.exists() or dest.is_symlink():
                    dest.unlink()
                shutil.move(str(item), str(dest))

            logger.info(f"Extracted: {archive_path.name}")
            return target_dir

        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Failed to extract {archive_path.name}: {e}") from e
        finally:
            if temp_extract.exists():
                shutil.rmtree(temp_extract, ignore_errors=True)

    def _extract_into(self, archive_path: Path, dest_dir: Path) -> None:
        name = archive_path.name.lower()
        if name.endswith(".zip"):
            self._extract_zip(archive_path, dest_dir)
            return
        for suffix, mode in TAR_SUFFIXES.items():
            if name.endswith(suffix):
                with tarfile.open(archive_path, mode) as tar:
                    if hasattr(tarfile, "data_filter"):
                        # Rejects members that escape dest_dir, keeps exec bits
                        tar.extractall(dest_dir, filter="tar")
                    else:
                        tar.extractall(dest_dir)
                return
        raise ExtractionError(f"Unsupported archive format: {archive_path.name}")

    def _extract_zip(self, archive_path: Path, dest_dir: Path) -> None:
        """Extract a zip archive, restoring Unix permission bits."""
        with zipfile.ZipFile(archive_path, "r") as zf:
            zf.extractall(dest_dir)
            for info in zf.infolist():
                mode = (info.external_attr >> 16) & 0o777
                if mode and not info.is_dir():
                    extracted = dest_dir / info.filename
                    if extracted.exists():
                        os.chmod(extracted, mode)


class BundleArchiver:
    """Creates the distributable zip bundle for an assembled tree."""

    def __init__(self, compress_level: int = 9):
        """Initialize archiver.

        Args:
            compress_level: zlib compression level for deflated entries
        """
        self.compress_level = compress_level

    def create(self, source_dir: Path, output_path: Path, root_name: str = "packages") -> BundleInfo:
        """Compress ``source_dir`` into a zip under a single ``root_name`` folder.

        Args:
            source_dir: Assembled directory tree
            output_path: Bundle file to create
            root_name: Top-level folder name inside the archive

        Returns:
            BundleInfo with checksum ("SHA-256:<HEX>") and byte size
        """
        source_dir = Path(source_dir)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with zipfile.ZipFile(
            output_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=self.compress_level
        ) as zf:
            zf.write(source_dir, root_name)
            for path in sorted(source_dir.rglob("*")):
                arcname = f"{root_name}/{path.relative_to(source_dir).as_posix()}"
                if path.is_symlink():
                    # Store symlinks as link entries so tool trees keep their layout
                    info = zipfile.ZipInfo(arcname)
                    info.external_attr = (stat.S_IFLNK | 0o777) << 16
                    zf.writestr(info, os.readlink(path))
                else:
                    zf.write(path, arcname)

        size = output_path.stat().st_size
        checksum = format_checksum(sha256_file(output_path))
        logger.info(f"Created bundle: {output_path.name} ({size} bytes)")
        return BundleInfo(path=output_path, checksum=checksum, size=size)
