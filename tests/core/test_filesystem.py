"""
Tests for filesystem utilities.
"""

import os
import stat
import zipfile
from pathlib import Path

import pytest

from provisionkit.core.filesystem import (
    ArchiveExtractionError,
    InsecureArchiveError,
    UnsupportedArchiveFormat,
    atomic_write,
    extract_archive,
    is_nonempty_file,
    normalize_root_directory,
    safe_rmtree,
    strip_path_suffix,
)


class TestStripPathSuffix:
    def test_strips_matching_suffix(self):
        assert strip_path_suffix(Path("/opt/node/bin"), ("bin",)) == Path("/opt/node")

    def test_strips_multi_segment_suffix(self):
        path = Path("/sdk/cmdline-tools/latest/bin")
        assert strip_path_suffix(path, ("cmdline-tools", "latest", "bin")) == Path("/sdk")

    def test_keeps_non_matching_path(self):
        assert strip_path_suffix(Path("/opt/node/lib"), ("bin",)) == Path("/opt/node/lib")

    def test_empty_suffix(self):
        assert strip_path_suffix(Path("/usr/local/bin"), ()) == Path("/usr/local/bin")


class TestExtractArchive:
    """Test archive extraction."""

    def test_extract_tar_gz(self, temp_dir, tar_gz):
        archive = temp_dir / "tool.tar.gz"
        archive.write_bytes(
            tar_gz({"tool/bin/run": "#!/bin/sh\n"}, executable=("tool/bin/run",))
        )

        extract_archive(archive, temp_dir / "out")

        extracted = temp_dir / "out" / "tool" / "bin" / "run"
        assert extracted.exists()
        assert os.access(extracted, os.X_OK)

    def test_extract_zip_restores_permissions(self, temp_dir):
        """Test executables in zips (Android cmdline-tools) stay executable."""
        archive = temp_dir / "tools.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            info = zipfile.ZipInfo("cmdline-tools/bin/sdkmanager")
            info.external_attr = (stat.S_IFREG | 0o755) << 16
            zf.writestr(info, "#!/bin/sh\n")
            zf.writestr("cmdline-tools/NOTICE.txt", "notice")

        extract_archive(archive, temp_dir / "out")

        sdkmanager = temp_dir / "out" / "cmdline-tools" / "bin" / "sdkmanager"
        assert os.access(sdkmanager, os.X_OK)
        assert (temp_dir / "out" / "cmdline-tools" / "NOTICE.txt").read_text() == "notice"

    def test_rejects_path_traversal(self, temp_dir, tar_gz):
        archive = temp_dir / "evil.tar.gz"
        archive.write_bytes(tar_gz({"../escape.txt": "gotcha"}))

        with pytest.raises(InsecureArchiveError):
            extract_archive(archive, temp_dir / "out")

        assert not (temp_dir / "escape.txt").exists()

    def test_corrupt_archive(self, temp_dir):
        archive = temp_dir / "broken.tar.gz"
        archive.write_bytes(b"this is not gzip data")

        with pytest.raises(ArchiveExtractionError):
            extract_archive(archive, temp_dir / "out")

    def test_unsupported_format(self, temp_dir):
        archive = temp_dir / "tool.rar"
        archive.write_bytes(b"data")

        with pytest.raises(UnsupportedArchiveFormat):
            extract_archive(archive, temp_dir / "out")

    def test_missing_archive(self, temp_dir):
        with pytest.raises(ArchiveExtractionError, match="not found"):
            extract_archive(temp_dir / "missing.zip", temp_dir / "out")


class TestNormalizeRootDirectory:
    def test_single_top_level_directory(self, temp_dir):
        (temp_dir / "node-v14.17.0" / "bin").mkdir(parents=True)
        assert normalize_root_directory(temp_dir) == temp_dir / "node-v14.17.0"

    def test_flat_archive(self, temp_dir):
        (temp_dir / "bin").mkdir()
        (temp_dir / "README").write_text("x")
        assert normalize_root_directory(temp_dir) == temp_dir


class TestAtomicWrite:
    def test_writes_content(self, temp_dir):
        target = temp_dir / "profile"
        atomic_write(target, "export A=1\n")
        assert target.read_text() == "export A=1\n"

    def test_preserves_mode(self, temp_dir):
        target = temp_dir / "profile"
        target.write_text("old\n")
        target.chmod(0o600)

        atomic_write(target, "new\n")

        assert target.read_text() == "new\n"
        assert stat.S_IMODE(target.stat().st_mode) == 0o600

    def test_no_temp_files_left(self, temp_dir):
        atomic_write(temp_dir / "profile", "content\n")
        assert [p.name for p in temp_dir.iterdir()] == ["profile"]


class TestSafeRmtree:
    def test_removes_directory(self, temp_dir):
        target = temp_dir / "tree"
        (target / "sub").mkdir(parents=True)
        safe_rmtree(target, require_prefix=temp_dir)
        assert not target.exists()

    def test_refuses_outside_prefix(self, temp_dir):
        (temp_dir / "a").mkdir()
        (temp_dir / "b").mkdir()
        with pytest.raises(ValueError, match="Refusing to delete"):
            safe_rmtree(temp_dir / "a", require_prefix=temp_dir / "b")

    def test_missing_path_is_noop(self, temp_dir):
        safe_rmtree(temp_dir / "missing", require_prefix=temp_dir)


class TestIsNonemptyFile:
    def test_states(self, temp_dir):
        empty = temp_dir / "empty"
        empty.write_bytes(b"")
        full = temp_dir / "full"
        full.write_bytes(b"x")

        assert is_nonempty_file(full) is True
        assert is_nonempty_file(empty) is False
        assert is_nonempty_file(temp_dir / "missing") is False
        assert is_nonempty_file(temp_dir) is False
