"""
Pytest configuration and shared fixtures for ProvisionKit tests.
"""

import io
import os
import stat
import tarfile
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

from provisionkit.core.platform import PlatformInfo


# ============================================================================
# Shared Test Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create temporary directory for test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def isolated_home(temp_dir: Path, monkeypatch) -> Path:
    """Create isolated home directory for tests."""
    fake_home = temp_dir / "home"
    fake_home.mkdir()

    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.setenv("PROVISIONKIT_HOME", str(fake_home / ".provisionkit"))

    return fake_home


@pytest.fixture
def linux_platform() -> PlatformInfo:
    """Linux x64 platform used to pick strategies and archives."""
    return PlatformInfo("linux", "x64", "5.15.0")


@pytest.fixture
def macos_platform() -> PlatformInfo:
    """macOS x64 platform."""
    return PlatformInfo("macos", "x64", "12.6")


def write_script(path: Path, body: str) -> Path:
    """Write an executable /bin/sh script."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_executable() -> Callable[..., Path]:
    """
    Factory for fake tools: a script that prints ``output`` and exits.

    ``to_stderr`` prints to stderr instead (like ``java -version``).
    """

    def make(path: Path, output: str = "", exit_code: int = 0, to_stderr: bool = False):
        redirect = " 1>&2" if to_stderr else ""
        body = f"echo '{output}'{redirect}\nexit {exit_code}" if output else f"exit {exit_code}"
        return write_script(path, body)

    return make


def make_tar_gz(files: Dict[str, str], executable: tuple = ()) -> bytes:
    """Build a .tar.gz in memory; names in ``executable`` get mode 0755."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755 if name in executable else 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def tar_gz() -> Callable[..., bytes]:
    """Factory building .tar.gz archives in memory."""
    return make_tar_gz


@pytest.fixture
def tool_archive() -> bytes:
    """Archive with a single top-level directory holding bin/tool."""
    return make_tar_gz(
        {
            "tool-1.0/bin/tool": "#!/bin/sh\necho 'tool 1.0'\n",
            "tool-1.0/README": "fake tool\n",
        },
        executable=("tool-1.0/bin/tool",),
    )


@pytest.fixture
def base_environ(temp_dir: Path) -> Dict[str, str]:
    """Minimal environment snapshot with an empty search path of our own."""
    empty_bin = temp_dir / "empty-bin"
    empty_bin.mkdir(exist_ok=True)
    return {"PATH": f"{empty_bin}{os.pathsep}/usr/bin{os.pathsep}/bin", "HOME": str(temp_dir)}
