"""
Tests for the lock manager.
"""

import pytest
from filelock import FileLock

from provisionkit.core.locking import LockManager, LockTimeout


class TestLockManager:
    def test_creates_lock_directory(self, temp_dir):
        manager = LockManager(temp_dir / "locks")
        assert (temp_dir / "locks").is_dir()
        assert manager.lock_dir == temp_dir / "locks"

    def test_default_lock_dir_in_global_cache(self, isolated_home):
        manager = LockManager()
        assert manager.lock_dir == isolated_home / ".provisionkit" / "lock"

    def test_profile_lock_released_after_use(self, temp_dir):
        manager = LockManager(temp_dir)
        profile = temp_dir / ".zshrc"

        with manager.profile_lock(profile):
            pass
        with manager.profile_lock(profile, timeout=1):
            pass

    def test_profile_lock_file_name_is_stable(self, temp_dir):
        manager = LockManager(temp_dir / "locks")
        profile = temp_dir / ".zshrc"

        with manager.profile_lock(profile):
            locks = [p.name for p in (temp_dir / "locks").glob("profile-*.lock")]

        assert len(locks) == 1

    def test_profile_lock_timeout(self, temp_dir):
        """Test a held lock makes a second writer time out."""
        manager = LockManager(temp_dir / "locks")
        profile = temp_dir / ".zshrc"

        with manager.profile_lock(profile):
            lock_file = next((temp_dir / "locks").glob("profile-*.lock"))
            # A separate FileLock instance behaves like another process
            with pytest.raises(LockTimeout):
                with FileLock(lock_file, timeout=0.1):
                    pass

    def test_download_lock_timeout(self, temp_dir):
        manager = LockManager(temp_dir)
        holder = FileLock(temp_dir / "download-node.tar.gz.lock")

        with holder:
            with pytest.raises(LockTimeout):
                with manager.download_lock("node.tar.gz", timeout=0.1):
                    pass
