"""YAML configuration parser for ProvisionKit.

This module parses the optional provisionkit.yaml file. Every field is
optional; command line flags override what the file sets.

Example provisionkit.yaml:

    version: 1
    profile: ~/.zshrc
    cache_dir: ~/.provisionkit
    tools: [jdk, android-sdk]
    skip_preflight: false
    min_free_disk_gb: 10
    timeouts:
      download: 600
      command: 1800
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from provisionkit.core.exceptions import ConfigError

CONFIG_FILENAME = "provisionkit.yaml"


@dataclass
class TimeoutConfig:
    """Timeouts in seconds."""

    download: float = 600
    command: float = 1800
    query: float = 30


@dataclass
class ProvisionConfig:
    """Complete ProvisionKit configuration."""

    version: int = 1
    profile: Optional[Path] = None
    cache_dir: Optional[Path] = None
    tools: Optional[List[str]] = None  # None = whole catalog
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    skip_preflight: bool = False
    min_free_disk_gb: float = 10


def parse_config(config_path: Path) -> ProvisionConfig:
    """
    Parse a provisionkit.yaml configuration file.

    Args:
        config_path: Path to provisionkit.yaml

    Returns:
        Parsed and validated configuration

    Raises:
        ConfigError: If configuration is invalid
    """
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if data is None:
        return ProvisionConfig()

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping")

    return _parse_and_validate(data)


def load_config(config_path: Optional[Path] = None) -> ProvisionConfig:
    """
    Load configuration from an explicit path or ./provisionkit.yaml.

    A missing default file yields the default configuration; a missing
    explicit file is an error.
    """
    if config_path is not None:
        return parse_config(Path(config_path))

    default_path = Path.cwd() / CONFIG_FILENAME
    if default_path.exists():
        return parse_config(default_path)
    return ProvisionConfig()


def _parse_and_validate(data: dict) -> ProvisionConfig:
    """Parse and validate configuration data."""
    known = {
        "version",
        "profile",
        "cache_dir",
        "tools",
        "timeouts",
        "skip_preflight",
        "min_free_disk_gb",
    }
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration field(s): {', '.join(unknown)}")

    version = data.get("version", 1)
    if version != 1:
        raise ConfigError(f"Unsupported version: {version} (expected 1)")

    skip_preflight = data.get("skip_preflight", False)
    if not isinstance(skip_preflight, bool):
        raise ConfigError("skip_preflight must be true or false")

    return ProvisionConfig(
        version=version,
        profile=_parse_path(data, "profile"),
        cache_dir=_parse_path(data, "cache_dir"),
        tools=_parse_tools(data.get("tools")),
        timeouts=_parse_timeouts(data.get("timeouts") or {}),
        skip_preflight=skip_preflight,
        min_free_disk_gb=_parse_number(data, "min_free_disk_gb", 10),
    )


def _parse_path(data: dict, key: str) -> Optional[Path]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{key} must be a path")
    return Path(value).expanduser()


def _parse_tools(value) -> Optional[List[str]]:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError("tools must be a list of tool names")
    if not value:
        raise ConfigError("tools must not be empty")
    return list(value)


def _parse_timeouts(data) -> TimeoutConfig:
    if not isinstance(data, dict):
        raise ConfigError("timeouts must be a mapping")

    unknown = sorted(set(data) - {"download", "command", "query"})
    if unknown:
        raise ConfigError(f"Unknown timeout(s): {', '.join(unknown)}")

    defaults = TimeoutConfig()
    return TimeoutConfig(
        download=_parse_number(data, "download", defaults.download, "timeouts."),
        command=_parse_number(data, "command", defaults.command, "timeouts."),
        query=_parse_number(data, "query", defaults.query, "timeouts."),
    )


def _parse_number(data: dict, key: str, default: float, prefix: str = "") -> float:
    value = data.get(key, default)
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{prefix}{key} must be a positive number")
    return value
