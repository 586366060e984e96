"""
Provision command implementation.

Runs the full pipeline: preflight, then probe, install, configure and
verify for every selected tool.
"""

import logging

from provisionkit.cli.utils import (
    build_orchestrator,
    print_error,
    print_report,
    print_warning,
    resolve_config,
)
from provisionkit.core.exceptions import CatalogError, ConfigError, PreflightError
from provisionkit.core.platform import detect_platform
from provisionkit.engine.catalog import DEFAULT_CATALOG
from provisionkit.engine.preflight import PreflightChecker

logger = logging.getLogger(__name__)

PREFLIGHT_EXIT_CODE = 2


def run(args) -> int:
    """
    Run the provision command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 if every tool verified, 1 otherwise, 2 on preflight failure)
    """
    try:
        config = resolve_config(args)
        selected = DEFAULT_CATALOG.select(config.tools)
    except (ConfigError, CatalogError) as e:
        print_error(str(e))
        return 1

    platform = detect_platform()
    orchestrator = build_orchestrator(config, platform, show_progress=not args.quiet)

    if config.skip_preflight:
        print_warning("Skipping system requirement checks")
    else:
        checker = PreflightChecker(
            platform, orchestrator.tools_dir, min_free_disk_gb=config.min_free_disk_gb
        )
        try:
            checker.ensure()
        except PreflightError as e:
            print_error(str(e), "Use --skip-preflight to provision anyway")
            return PREFLIGHT_EXIT_CODE

    report = orchestrator.run([spec.name for spec in selected])

    profile = orchestrator.configurator.profile_path
    print_report(
        report,
        as_json=args.json,
        profile=profile if orchestrator.configurator.available else None,
    )

    if not report.success:
        failed = [record.name for record in report.records if not record.verified]
        logger.error(f"Not verified: {', '.join(failed)}")

    return report.exit_code
