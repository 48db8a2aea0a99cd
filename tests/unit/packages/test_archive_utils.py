"""Unit tests for archive extraction and bundle creation."""

import io
import os
import stat
import tarfile
import tempfile
import zipfile
from pathlib import Path

import pytest

from toolmirror.packages.archive_utils import ArchiveExtractor, BundleArchiver, ExtractionError
from toolmirror.packages.downloader import format_checksum, sha256_file


def _make_zip(path, files):
    with zipfile.ZipFile(path, "w") as zf:
        for name, (content, mode) in files.items():
            info = zipfile.ZipInfo(name)
            info.external_attr = mode << 16
            zf.writestr(info, content)


def _make_tar_gz(path, files):
    with tarfile.open(path, "w:gz") as tar:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))


class TestArchiveExtractor:
    """Test cases for ArchiveExtractor."""

    def test_single_top_directory_is_flattened(self):
        """Test a lone top-level directory is lifted up one level."""
        with tempfile.TemporaryDirectory() as temp_dir:
            archive = Path(temp_dir) / "avr-gcc.zip"
            _make_zip(
                archive,
                {
                    "avr-gcc-7.3.0/bin/avr-gcc": ("#!/bin/sh\n", 0o755),
                    "avr-gcc-7.3.0/README": ("readme", 0o644),
                },
            )
            target = Path(temp_dir) / "tools" / "avr-gcc" / "7.3.0"

            ArchiveExtractor().extract(archive, target)

            assert (target / "bin" / "avr-gcc").exists()
            assert (target / "README").read_text() == "readme"
            assert not (target / "avr-gcc-7.3.0").exists()
            # temp extraction dir is cleaned up
            assert [p.name for p in target.parent.iterdir()] == ["7.3.0"]

    def test_executable_bits_are_restored(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            archive = Path(temp_dir) / "tool.zip"
            _make_zip(archive, {"tool/bin/run": ("#!/bin/sh\n", 0o755)})
            target = Path(temp_dir) / "out"

            ArchiveExtractor().extract(archive, target)

            mode = (target / "bin" / "run").stat().st_mode
            assert mode & stat.S_IXUSR

    def test_multiple_top_level_items_not_flattened(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            archive = Path(temp_dir) / "core.tar.gz"
            _make_tar_gz(archive, {"cores/main.cpp": "int main;", "platform.txt": "name=AVR"})
            target = Path(temp_dir) / "out"

            ArchiveExtractor().extract(archive, target)

            assert (target / "cores" / "main.cpp").exists()
            assert (target / "platform.txt").exists()

    def test_single_file_not_flattened(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            archive = Path(temp_dir) / "single.zip"
            _make_zip(archive, {"tool.exe": ("MZ", 0o644)})
            target = Path(temp_dir) / "out"

            ArchiveExtractor().extract(archive, target)

            assert (target / "tool.exe").exists()

    def test_flatten_disabled(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            archive = Path(temp_dir) / "tool.zip"
            _make_zip(archive, {"tool/file.txt": ("x", 0o644)})
            target = Path(temp_dir) / "out"

            ArchiveExtractor().extract(archive, target, flatten=False)

            assert (target / "tool" / "file.txt").exists()

    def test_missing_archive(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            with pytest.raises(ExtractionError, match="Archive not found"):
                ArchiveExtractor().extract(Path(temp_dir) / "missing.zip", Path(temp_dir) / "out")

    def test_unsupported_format(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            archive = Path(temp_dir) / "tool.rar"
            archive.write_bytes(b"Rar!")

            with pytest.raises(ExtractionError, match="Unsupported archive format"):
                ArchiveExtractor().extract(archive, Path(temp_dir) / "out")

    def test_corrupt_archive(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            archive = Path(temp_dir) / "broken.zip"
            archive.write_bytes(b"not a zip file")

            with pytest.raises(ExtractionError, match="Failed to extract"):
                ArchiveExtractor().extract(archive, Path(temp_dir) / "out")

            assert not (Path(temp_dir) / "temp_extract_broken.zip").exists()

    @pytest.mark.skipif(not hasattr(tarfile, "data_filter"), reason="tarfile extraction filters unavailable")
    def test_tar_member_outside_destination_rejected(self):
        """Test a tar member with a parent-relative path cannot escape the scratch dir."""
        with tempfile.TemporaryDirectory() as temp_dir:
            archive = Path(temp_dir) / "evil.tar.gz"
            _make_tar_gz(archive, {"tool/bin/run": "#!/bin/sh\n", "../evil.txt": "owned"})
            target = Path(temp_dir) / "work" / "out"

            with pytest.raises(ExtractionError, match="Failed to extract"):
                ArchiveExtractor().extract(archive, target)

            assert not (Path(temp_dir) / "work" / "evil.txt").exists()
            assert not (Path(temp_dir) / "evil.txt").exists()

    def test_tar_keeps_executable_bits(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            archive = Path(temp_dir) / "tool.tar.bz2"
            data = b"#!/bin/sh\n"
            with tarfile.open(archive, "w:bz2") as tar:
                info = tarfile.TarInfo("tool/bin/run")
                info.size = len(data)
                info.mode = 0o755
                tar.addfile(info, io.BytesIO(data))
            target = Path(temp_dir) / "out"

            ArchiveExtractor().extract(archive, target)

            assert (target / "bin" / "run").stat().st_mode & stat.S_IXUSR


class TestBundleArchiver:
    """Test cases for BundleArchiver."""

    def test_create_bundle(self):
        """Test the bundle has a single packages/ root and reports its checksum."""
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "packages"
            (source / "arduino" / "hardware" / "avr" / "1.8.6").mkdir(parents=True)
            (source / "arduino" / "hardware" / "avr" / "1.8.6" / "platform.txt").write_text("name=AVR")
            output = Path(temp_dir) / "arduino-avr-linux-x64-1.8.6.zip"

            bundle = BundleArchiver().create(source, output)

            assert bundle.path == output
            assert bundle.size == output.stat().st_size
            assert bundle.checksum == format_checksum(sha256_file(output))
            with zipfile.ZipFile(output) as zf:
                names = zf.namelist()
            assert all(name.startswith("packages/") for name in names)
            assert "packages/arduino/hardware/avr/1.8.6/platform.txt" in names

    def test_symlinks_stored_as_links(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "packages"
            (source / "bin").mkdir(parents=True)
            (source / "bin" / "gcc-7").write_text("binary")
            os.symlink("gcc-7", source / "bin" / "gcc")
            output = Path(temp_dir) / "bundle.zip"

            BundleArchiver().create(source, output)

            with zipfile.ZipFile(output) as zf:
                info = zf.getinfo("packages/bin/gcc")
                assert stat.S_ISLNK(info.external_attr >> 16)
                assert zf.read(info) == b"gcc-7"

    def test_bundle_then_extract_reproduces_tree(self):
        """Test extracting a bundle gives back the same files and contents."""
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "packages"
            files = {
                "arduino/hardware/avr/1.8.6/platform.txt": b"name=Arduino AVR Boards\n",
                "arduino/hardware/avr/1.8.6/cores/arduino/main.cpp": b"int main() {}\n",
                "arduino/tools/avr-gcc/7.3.0/bin/avr-gcc": b"\x7fELF\x00\x01",
                "arduino/tools/avrdude/6.3.0/etc/avrdude.conf": b"# empty\n",
            }
            for rel, content in files.items():
                path = source / rel
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(content)

            bundle = BundleArchiver().create(source, Path(temp_dir) / "bundle.zip")
            restored = Path(temp_dir) / "restored"
            ArchiveExtractor().extract(bundle.path, restored)

            def snapshot(root):
                return {
                    p.relative_to(root).as_posix(): p.read_bytes() for p in root.rglob("*") if p.is_file()
                }

            assert snapshot(restored) == snapshot(source)
