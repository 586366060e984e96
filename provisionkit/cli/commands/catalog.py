"""
Catalog command implementation.

Lists the provisionable tools in dependency order.
"""

import json

from provisionkit.cli.utils import safe_print
from provisionkit.engine.catalog import DEFAULT_CATALOG


def run(args) -> int:
    """
    Run the catalog command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (always 0)
    """
    if args.json:
        entries = [
            {
                "name": spec.name,
                "display_name": spec.display_name,
                "env_var": spec.env_var,
                "installer": spec.installer.kind,
                "requires": list(spec.requires),
            }
            for spec in DEFAULT_CATALOG
        ]
        print(json.dumps(entries, indent=2))
        return 0

    for spec in DEFAULT_CATALOG:
        line = f"{spec.name:<12} {spec.display_name:<12} {spec.env_var:<12} {spec.installer.kind}"
        if spec.requires:
            line += f" (requires {', '.join(spec.requires)})"
        safe_print(line)
    return 0
