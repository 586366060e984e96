"""Configuration module for ProvisionKit.

This module provides YAML configuration parsing and validation for
provisionkit.yaml.
"""

from provisionkit.config.parser import (
    CONFIG_FILENAME,
    TimeoutConfig,
    ProvisionConfig,
    parse_config,
    load_config,
)
from provisionkit.core.exceptions import ConfigError

__all__ = [
    "CONFIG_FILENAME",
    "TimeoutConfig",
    "ProvisionConfig",
    "ConfigError",
    "parse_config",
    "load_config",
]
