"""
Concurrent access control for ProvisionKit.

File-based locks (via the `filelock` library) give the shell profile a single
writer and keep two processes from downloading the same archive at once.

Usage:
    from provisionkit.core.locking import LockManager

    lock_manager = LockManager()
    with lock_manager.profile_lock(Path.home() / ".zshrc"):
        # Read-modify-write the profile
        pass
"""

import hashlib
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from filelock import FileLock, Timeout as LockTimeout

from provisionkit.core.directory import get_global_cache_dir

logger = logging.getLogger(__name__)


class LockManager:
    """
    Manages locks for ProvisionKit resources.

    Attributes:
        lock_dir: Directory where lock files are stored
    """

    def __init__(self, lock_dir: Optional[Path] = None):
        """
        Initialize lock manager.

        Args:
            lock_dir: Directory for lock files (default: global cache/lock/)
        """
        if lock_dir is None:
            lock_dir = get_global_cache_dir() / "lock"

        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def profile_lock(self, profile_path: Path, timeout: int = 30):
        """
        Acquire the exclusive writer lock for a shell profile.

        Args:
            profile_path: Profile being edited
            timeout: Maximum wait time in seconds (default: 30)

        Raises:
            LockTimeout: If lock can't be acquired within timeout
        """
        digest = hashlib.sha256(str(Path(profile_path).absolute()).encode()).hexdigest()
        lock_path = self.lock_dir / f"profile-{digest[:16]}.lock"

        with self._acquire(lock_path, timeout, f"profile {profile_path}"):
            yield

    @contextmanager
    def download_lock(self, archive_name: str, timeout: int = 900):
        """
        Acquire lock for one archive download.

        Args:
            archive_name: File name of the archive
            timeout: Maximum wait time in seconds (default: 900)

        Raises:
            LockTimeout: If lock can't be acquired within timeout
        """
        lock_path = self.lock_dir / f"download-{archive_name}.lock"

        with self._acquire(lock_path, timeout, f"download {archive_name}"):
            yield

    @contextmanager
    def _acquire(self, lock_path: Path, timeout: int, description: str):
        lock = FileLock(lock_path, timeout=timeout)

        try:
            with lock:
                logger.debug(f"Acquired lock: {lock_path}")
                yield
                logger.debug(f"Released lock: {lock_path}")
        except LockTimeout as e:
            logger.error(
                f"Could not acquire lock for {description} after {timeout}s. "
                "Another ProvisionKit process may be running."
            )
            raise LockTimeout(str(lock_path)) from e


__all__ = ["LockManager", "LockTimeout"]
