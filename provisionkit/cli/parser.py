"""
ProvisionKit CLI argument parser.

This module implements the command-line interface for ProvisionKit using argparse.
"""

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import List, Optional

try:
    __version__ = version("provisionkit")
except PackageNotFoundError:
    __version__ = "0.1.0"

logger = logging.getLogger(__name__)


def positive_seconds(value: str) -> float:
    """argparse type for timeouts: a positive number of seconds."""
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number of seconds: {value}")
    if not 0 < seconds < float("inf"):
        raise argparse.ArgumentTypeError(f"must be a positive number of seconds: {value}")
    return seconds


class CLI:
    """ProvisionKit command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="pvkit",
            description="ProvisionKit - mobile development environment provisioning",
            epilog='Use "pvkit COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"ProvisionKit {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--config",
            type=Path,
            metavar="PATH",
            help="Path to configuration file (default: ./provisionkit.yaml)",
        )

        # Subcommands
        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_provision_command(subparsers)
        self._add_verify_command(subparsers)
        self._add_catalog_command(subparsers)

        return parser

    def _add_selection_options(self, parser):
        """Options shared by commands that probe tools."""
        parser.add_argument(
            "--only",
            action="append",
            metavar="TOOL[,TOOL]",
            help="Restrict to these tools (prerequisites are added automatically)",
        )
        parser.add_argument(
            "--profile",
            type=Path,
            metavar="PATH",
            help="Shell profile to record configuration in (default: from $SHELL)",
        )
        parser.add_argument(
            "--cache-dir",
            type=Path,
            metavar="PATH",
            help="Download and install cache (default: ~/.provisionkit)",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Print the report as JSON instead of the summary",
        )

    def _add_provision_command(self, subparsers):
        """Add 'provision' subcommand."""
        parser = subparsers.add_parser(
            "provision",
            help="Install missing tools and record their configuration",
            description=(
                "Probe, install, configure and verify the JDK, Node.js, "
                "the Android SDK and Appium"
            ),
        )
        self._add_selection_options(parser)
        parser.add_argument(
            "--skip-preflight",
            action="store_true",
            help="Do not check system requirements before provisioning",
        )
        parser.add_argument(
            "--download-timeout",
            type=positive_seconds,
            metavar="SECONDS",
            help="Total time allowed per download [default: 600]",
        )
        parser.add_argument(
            "--command-timeout",
            type=positive_seconds,
            metavar="SECONDS",
            help="Time allowed per installer command [default: 1800]",
        )

    def _add_verify_command(self, subparsers):
        """Add 'verify' subcommand."""
        parser = subparsers.add_parser(
            "verify",
            help="Report installed tools without changing anything",
            description="Probe and verify tools; no installs and no profile writes",
        )
        self._add_selection_options(parser)

    def _add_catalog_command(self, subparsers):
        """Add 'catalog' subcommand."""
        parser = subparsers.add_parser(
            "catalog",
            help="List provisionable tools",
            description="List the tool catalog in dependency order",
        )
        parser.add_argument(
            "--json", action="store_true", help="Print the catalog as JSON"
        )

    def parse_args(self, args: Optional[List[str]] = None):
        """
        Parse command-line arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        # Configure logging
        self._configure_logging(parsed_args)

        # Check if command specified
        if not parsed_args.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except Exception as e:
            logger.error(f"Error: {e}")
            if parsed_args.verbose:
                import traceback

                traceback.print_exc()
            return 1

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet flags
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,  # Reconfigure if already configured
        )

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        # Command module mapping
        command_map = {
            "provision": "provisionkit.cli.commands.provision",
            "verify": "provisionkit.cli.commands.verify",
            "catalog": "provisionkit.cli.commands.catalog",
        }

        module_name = command_map.get(args.command)
        if not module_name:
            logger.error(f"Unknown command: {args.command}")
            return 1

        # Dynamic import of command module
        import importlib

        module = importlib.import_module(module_name)
        return module.run(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
