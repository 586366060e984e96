"""
System requirement checks run before any tool is touched.

A failed check aborts the run unless preflight is skipped explicitly.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from packaging.version import InvalidVersion, Version

from provisionkit.core.directory import verify_directory_writable
from provisionkit.core.exceptions import PreflightError
from provisionkit.core.platform import PlatformInfo, is_supported_platform

logger = logging.getLogger(__name__)

MIN_MACOS_VERSION = Version("10.15")
DEFAULT_MIN_FREE_DISK_GB = 10


@dataclass
class CheckResult:
    """Result of a preflight check."""

    name: str
    passed: bool
    message: str


def existing_parent(path: Path) -> Path:
    """Nearest existing ancestor of ``path`` (the path itself if it exists)."""
    path = Path(path).expanduser().absolute()
    while not path.exists() and path != path.parent:
        path = path.parent
    return path


class PreflightChecker:
    """Checks the machine can be provisioned."""

    def __init__(
        self,
        platform: PlatformInfo,
        install_dir: Optional[Path],
        min_free_disk_gb: float = DEFAULT_MIN_FREE_DISK_GB,
        command_timeout: float = 30,
    ):
        """
        Initialize checker.

        Args:
            platform: Platform to check
            install_dir: Directory tools are installed into (may not exist yet;
                None skips the disk checks)
            min_free_disk_gb: Required free space on the install volume
            command_timeout: Timeout for the xcode-select query in seconds
        """
        self.platform = platform
        self.install_dir = Path(install_dir) if install_dir is not None else None
        self.min_free_disk_gb = min_free_disk_gb
        self.command_timeout = command_timeout

    def check_platform(self) -> CheckResult:
        if is_supported_platform(self.platform):
            return CheckResult(
                "platform", True, f"{self.platform.platform_string()} is supported"
            )
        return CheckResult(
            "platform",
            False,
            f"{self.platform.platform_string()} is not supported (need macOS or Linux on x64/arm64)",
        )

    def check_os_version(self) -> CheckResult:
        if self.platform.os != "macos":
            return CheckResult("os_version", True, f"{self.platform.os} {self.platform.os_version}")

        try:
            version = Version(self.platform.os_version)
        except InvalidVersion:
            return CheckResult(
                "os_version",
                False,
                f"Cannot determine macOS version (need {MIN_MACOS_VERSION}+)",
            )
        if version < MIN_MACOS_VERSION:
            return CheckResult(
                "os_version",
                False,
                f"macOS {self.platform.os_version} is too old (need {MIN_MACOS_VERSION}+)",
            )
        return CheckResult("os_version", True, f"macOS {self.platform.os_version}")

    def check_disk_space(self) -> CheckResult:
        if self.install_dir is None:
            return CheckResult("disk_space", True, "no install directory")
        target = existing_parent(self.install_dir)
        try:
            usage = shutil.disk_usage(target)
        except OSError as e:
            return CheckResult("disk_space", False, f"Cannot check free space on {target}: {e}")

        free_gb = usage.free / (1024**3)
        if free_gb < self.min_free_disk_gb:
            return CheckResult(
                "disk_space",
                False,
                f"Only {free_gb:.1f}GB free on {target} (need {self.min_free_disk_gb}GB)",
            )
        return CheckResult("disk_space", True, f"{free_gb:.1f}GB free on {target}")

    def check_writable(self) -> CheckResult:
        if self.install_dir is None:
            return CheckResult("writable", True, "no install directory")
        target = existing_parent(self.install_dir)
        if verify_directory_writable(target):
            return CheckResult("writable", True, f"{target} is writable")
        return CheckResult("writable", False, f"{target} is not writable")

    def check_xcode_clt(self) -> CheckResult:
        """Check the Xcode Command Line Tools are installed (macOS only)."""
        if self.platform.os != "macos":
            return CheckResult("xcode_clt", True, "not required")

        try:
            result = subprocess.run(
                ["xcode-select", "-p"],
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
                check=False,
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug(f"xcode-select -p failed: {e}")
            result = None

        if result is None or result.returncode != 0 or not result.stdout.strip():
            return CheckResult(
                "xcode_clt",
                False,
                "Xcode Command Line Tools not found (run: xcode-select --install)",
            )
        return CheckResult("xcode_clt", True, f"Xcode Command Line Tools at {result.stdout.strip()}")

    def run_all(self) -> List[CheckResult]:
        """Run every check and return all results."""
        results = [
            self.check_platform(),
            self.check_os_version(),
            self.check_disk_space(),
            self.check_writable(),
            self.check_xcode_clt(),
        ]
        for result in results:
            if result.passed:
                logger.debug(f"Preflight {result.name}: {result.message}")
            else:
                logger.error(f"Preflight {result.name} failed: {result.message}")
        return results

    def ensure(self) -> List[CheckResult]:
        """
        Run every check.

        Raises:
            PreflightError: If any check failed
        """
        results = self.run_all()
        failed = [result for result in results if not result.passed]
        if failed:
            raise PreflightError(
                "System requirements not met: "
                + "; ".join(result.message for result in failed)
            )
        return results
