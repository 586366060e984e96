"""
Shared utilities for CLI commands.

Settings resolution (config file plus flags), orchestrator construction and
report output used by the provision and verify commands.
"""

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from provisionkit.config.parser import ProvisionConfig, load_config
from provisionkit.core.directory import DirectoryError, default_profile_path
from provisionkit.core.download import DownloadProgress
from provisionkit.core.platform import PlatformInfo
from provisionkit.engine.models import ProvisioningReport
from provisionkit.engine.orchestrator import ProvisioningOrchestrator
from provisionkit.engine.profile import EnvironmentConfigurator

logger = logging.getLogger(__name__)

# Commands to check each tool by hand once the profile is sourced
VERIFY_HINTS = {
    "jdk": ["java -version"],
    "node": ["node -v", "npm -v"],
    "android-sdk": ["adb version"],
    "appium": ["appium -v", "appium-doctor"],
}


# ============================================================================
# Settings
# ============================================================================


def parse_tool_selection(values: Optional[List[str]]) -> Optional[List[str]]:
    """
    Flatten repeated/comma-separated ``--only`` values.

    Example:
        >>> parse_tool_selection(["jdk,node", "appium"])
        ['jdk', 'node', 'appium']
    """
    if not values:
        return None
    names = []
    for value in values:
        names.extend(name.strip() for name in value.split(",") if name.strip())
    return names or None


def resolve_config(args) -> ProvisionConfig:
    """
    Load the configuration file and apply command-line overrides.

    Raises:
        ConfigError: If the configuration file is invalid
    """
    config = load_config(getattr(args, "config", None))

    tools = parse_tool_selection(getattr(args, "only", None))
    if tools:
        config.tools = tools
    if getattr(args, "profile", None):
        config.profile = Path(args.profile).expanduser()
    if getattr(args, "cache_dir", None):
        config.cache_dir = Path(args.cache_dir).expanduser()
    if getattr(args, "skip_preflight", False):
        config.skip_preflight = True
    if getattr(args, "download_timeout", None) is not None:
        config.timeouts.download = args.download_timeout
    if getattr(args, "command_timeout", None) is not None:
        config.timeouts.command = args.command_timeout

    return config


def resolve_profile_path(config: ProvisionConfig, platform: PlatformInfo) -> Optional[Path]:
    """Profile from the configuration, else the login shell's default."""
    if config.profile:
        return config.profile
    try:
        return default_profile_path(os_name=platform.os)
    except DirectoryError as e:
        logger.warning(f"{e}. Environment changes will not persist.")
        return None


def build_orchestrator(
    config: ProvisionConfig, platform: PlatformInfo, show_progress: bool = False
) -> ProvisioningOrchestrator:
    """Create an orchestrator for the resolved settings."""
    return ProvisioningOrchestrator(
        configurator=EnvironmentConfigurator(resolve_profile_path(config, platform)),
        platform=platform,
        cache_dir=config.cache_dir,
        download_timeout=config.timeouts.download,
        command_timeout=config.timeouts.command,
        query_timeout=config.timeouts.query,
        progress_callback=ProgressReporter() if show_progress else None,
    )


class ProgressReporter:
    """Prints download progress to stderr in 10% steps."""

    def __init__(self, step: float = 10.0):
        self.step = step
        self._next = 0.0

    def __call__(self, progress: DownloadProgress):
        if progress.total_bytes <= 0:
            return
        if progress.percentage < self._next and progress.percentage < 100:
            return
        print(f"  {progress}", file=sys.stderr)
        self._next = progress.percentage + self.step
        if progress.percentage >= 100:
            self._next = 0.0


# ============================================================================
# User Interface / Output Formatting
# ============================================================================


def format_summary(
    report: ProvisioningReport, profile: Optional[Path] = None, width: int = 70
) -> str:
    """
    Format the human-readable summary of a run.

    Lists every tool's state and location, the commands to verify the tools
    by hand and, when a profile was written, how to load it.
    """
    lines = ["=" * width, "Provisioning summary", "=" * width, ""]

    for record in report.records:
        mark = "[OK]" if record.verified else "[FAILED]"
        lines.append(f"{mark} {record.name} ({record.outcome})")
        if record.value:
            lines.append(f"    {record.env_var}={record.value}")
        if record.version:
            lines.append(f"    version: {record.version}")
        if record.error:
            lines.append(f"    error: {record.error}")

    hints = [
        hint
        for record in report.records
        if record.verified
        for hint in VERIFY_HINTS.get(record.name, [])
    ]
    if hints or profile:
        lines.append("")
        lines.append("Next steps:")
        if profile:
            lines.append(f"  source {profile}")
        for hint in hints:
            lines.append(f"  {hint}")

    lines.append("")
    return "\n".join(lines)


def print_report(
    report: ProvisioningReport, as_json: bool = False, profile: Optional[Path] = None
):
    """
    Print a report to stdout.

    The machine-readable ``KEY=VALUE|...`` line is always the last line of
    the plain output.
    """
    if as_json:
        print(json.dumps(report.to_dict(), indent=2))
        return

    safe_print(format_summary(report, profile))
    print(report.to_line())


def print_error(message: str, details: Optional[str] = None):
    """
    Print error message to stderr in consistent format.

    Args:
        message: Main error message
        details: Optional additional details
    """
    print(f"ERROR: {message}", file=sys.stderr)
    if details:
        print(f"  {details}", file=sys.stderr)


def print_warning(message: str):
    """Print warning message to stderr."""
    print(f"WARNING: {message}", file=sys.stderr)


def safe_print(message: str, file=None):
    """
    Print message with safe encoding handling for limited consoles.

    Args:
        message: Message to print
        file: Output file (default: stdout)
    """
    try:
        print(message, file=file)
    except UnicodeEncodeError:
        print(message.encode("ascii", "replace").decode("ascii"), file=file)
