"""
Core functionality for ProvisionKit.

This package contains the foundational modules the provisioning engine
depends on: platform detection, directories, downloads, filesystem helpers,
locking and the exception hierarchy.
"""

from .directory import (
    get_global_cache_dir,
    ensure_cache_structure,
    default_profile_path,
    verify_directory_writable,
    DirectoryError,
)

from .locking import (
    LockManager,
    LockTimeout,
)

from .platform import (
    PlatformInfo,
    detect_platform,
    is_supported_platform,
    clear_platform_cache,
)

from .exceptions import (
    ProvisionKitError,
    CatalogError,
    ConfigError,
    PreflightError,
    InstallError,
    DownloadError,
    DownloadTimeout,
    ChecksumError,
    ArchiveCorruptError,
    InstallerExitedNonZero,
    ProfileUnwritable,
    VerificationFailed,
)

__all__ = [
    "get_global_cache_dir",
    "ensure_cache_structure",
    "default_profile_path",
    "verify_directory_writable",
    "DirectoryError",
    "LockManager",
    "LockTimeout",
    "PlatformInfo",
    "detect_platform",
    "is_supported_platform",
    "clear_platform_cache",
    "ProvisionKitError",
    "CatalogError",
    "ConfigError",
    "PreflightError",
    "InstallError",
    "DownloadError",
    "DownloadTimeout",
    "ChecksumError",
    "ArchiveCorruptError",
    "InstallerExitedNonZero",
    "ProfileUnwritable",
    "VerificationFailed",
]
