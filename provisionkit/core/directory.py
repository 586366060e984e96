"""
Directory layout for ProvisionKit.

Global Cache (~/.provisionkit/):
    - downloads/  : Cached archives (removed after a successful install)
    - tools/      : Archive-installed tools (JDK, Node.js)
    - lock/       : Profile and download lock files

The shell profile lives in the user's home directory and is chosen from the
login shell unless configured explicitly.
"""

import os
from pathlib import Path
from typing import Dict, Optional


class DirectoryError(Exception):
    """Base exception for directory-related errors."""

    pass


def get_global_cache_dir() -> Path:
    """
    Get the global cache directory path.

    ``PROVISIONKIT_HOME`` overrides the default ``~/.provisionkit``.

    Raises:
        DirectoryError: If no home directory can be determined
    """
    override = os.environ.get("PROVISIONKIT_HOME")
    if override:
        return Path(override).expanduser()

    try:
        return Path.home() / ".provisionkit"
    except RuntimeError as e:
        raise DirectoryError(
            f"Cannot determine home directory for the global cache: {e}"
        ) from e


def ensure_cache_structure(cache_dir: Optional[Path] = None) -> Dict[str, Path]:
    """
    Create the cache directory structure if it doesn't exist.

    Args:
        cache_dir: Cache root (default: global cache directory)

    Returns:
        Mapping of 'root', 'downloads', 'tools' and 'lock' to their paths
    """
    root = Path(cache_dir) if cache_dir else get_global_cache_dir()
    layout = {
        "root": root,
        "downloads": root / "downloads",
        "tools": root / "tools",
        "lock": root / "lock",
    }
    for path in layout.values():
        path.mkdir(parents=True, exist_ok=True)
    return layout


def default_profile_path(shell: Optional[str] = None, os_name: str = "") -> Path:
    """
    Pick the shell profile that new login shells will read.

    Args:
        shell: Login shell path (default: $SHELL, falling back to zsh)
        os_name: Platform OS name; bash on macOS reads .bash_profile

    Raises:
        DirectoryError: If no home directory can be determined
    """
    try:
        home = Path.home()
    except RuntimeError as e:
        raise DirectoryError(f"Cannot determine home directory: {e}") from e

    shell_name = Path(shell or os.environ.get("SHELL") or "zsh").name

    if shell_name == "zsh":
        return home / ".zshrc"
    if shell_name == "bash":
        return home / (".bash_profile" if os_name == "macos" else ".bashrc")
    return home / ".profile"


def verify_directory_writable(path: Path) -> bool:
    """
    Verify that a directory exists and is writable.

    Example:
        >>> if verify_directory_writable(Path('/tmp/test')):
        ...     print("Directory is writable")
    """
    if not path.exists() or not path.is_dir():
        return False

    try:
        test_file = path / ".write_test"
        test_file.touch()
        test_file.unlink()
        return True
    except OSError:
        return False
