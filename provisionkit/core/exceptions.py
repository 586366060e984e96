"""
Centralized exception hierarchy for ProvisionKit.

Low-level modules (download, filesystem, profile) raise these; installers
convert them into failed outcomes and the orchestrator turns whatever is left
into per-tool status records.
"""


# ============================================================================
# Base Exceptions
# ============================================================================


class ProvisionKitError(Exception):
    """Base exception for all ProvisionKit errors."""

    pass


# ============================================================================
# Catalog and Configuration Exceptions
# ============================================================================


class CatalogError(ProvisionKitError):
    """Raised when the tool catalog is inconsistent (unknown tool, bad order)."""

    pass


class ConfigError(ProvisionKitError):
    """Configuration parsing or validation error."""

    pass


class PreflightError(ProvisionKitError):
    """Raised when the machine does not meet the minimum requirements."""

    pass


# ============================================================================
# Installation Exceptions
# ============================================================================


class InstallError(ProvisionKitError):
    """Base exception for installer backend failures."""

    pass


class DownloadError(InstallError):
    """Raised when an archive download fails."""

    pass


class DownloadTimeout(DownloadError):
    """Raised when a download exceeds its total time budget."""

    pass


class ChecksumError(DownloadError):
    """Raised when a downloaded archive does not match its checksum."""

    pass


class ArchiveCorruptError(InstallError):
    """Raised when a downloaded archive is empty or cannot be extracted."""

    pass


class InstallerExitedNonZero(InstallError):
    """Raised when a package manager or post-install command fails."""

    def __init__(self, command: str, returncode: int):
        self.command = command
        self.returncode = returncode
        super().__init__(f"installer exited with code {returncode}")


# ============================================================================
# Configuration Target Exceptions
# ============================================================================


class ProfileUnwritable(ProvisionKitError):
    """Raised when the shell profile cannot be read or written."""

    pass


class VerificationFailed(ProvisionKitError):
    """Raised when a provisioned tool does not answer its version query."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"{tool_name}: {message}")
