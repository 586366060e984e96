"""
Verify command implementation.

Probes and verifies tools without installing anything or touching the
shell profile.
"""

import logging

from provisionkit.cli.utils import (
    build_orchestrator,
    print_error,
    print_report,
    resolve_config,
)
from provisionkit.core.exceptions import CatalogError, ConfigError
from provisionkit.core.platform import detect_platform

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the verify command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 if every selected tool verified)
    """
    try:
        config = resolve_config(args)
        orchestrator = build_orchestrator(config, detect_platform())
        report = orchestrator.run(config.tools, install=False)
    except (ConfigError, CatalogError) as e:
        print_error(str(e))
        return 1

    print_report(report, as_json=args.json)
    return report.exit_code
