"""
provisionkit/engine/probe.py

Tool detection - discovers tools that are already installed on the machine.

Each tool declares an ordered list of strategies:
- ExecutableLookup: executable on the search path, resolved to its root
- InstallDirGlob: platform-specific well-known install directories
- PackageManagerPrefix: a package manager's installed-prefix query
- EnvironmentVariable: a previously recorded location that still exists

The first strategy that yields a root accepted by the tool's marker wins.
"""

import glob
import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Mapping, Optional, Tuple

from provisionkit.core.filesystem import strip_path_suffix
from provisionkit.core.platform import PlatformInfo
from provisionkit.engine.models import ProbeResult, ToolSpec

logger = logging.getLogger(__name__)


@dataclass
class ProbeContext:
    """
    Everything a strategy may look at.

    Attributes:
        platform: Platform used to filter strategies
        tools_dir: Directory archive installs land in ('{tools_dir}' in
            patterns); None when there is no cache
        environ: Environment snapshot (PATH and recorded variables)
        recorded: Variables recorded in the shell profile
        command_timeout: Timeout for prefix queries in seconds
    """

    platform: PlatformInfo
    tools_dir: Optional[Path]
    environ: Mapping[str, str] = field(default_factory=dict)
    recorded: Mapping[str, str] = field(default_factory=dict)
    command_timeout: float = 30

    def which(self, executable: str) -> Optional[str]:
        """Find an executable on the context's PATH (not the live process PATH)."""
        return shutil.which(executable, path=self.environ.get("PATH", ""))

    def expand(self, pattern: str) -> Optional[str]:
        """Expand '{tools_dir}' and '~' in a path pattern (None without a tools_dir)."""
        if "{tools_dir}" in pattern and self.tools_dir is None:
            return None
        return str(Path(pattern.replace("{tools_dir}", str(self.tools_dir))).expanduser())


class ProbeStrategy:
    """Base class for discovery strategies."""

    os: Tuple[str, ...] = ()

    def applies_to(self, platform: PlatformInfo) -> bool:
        return not self.os or platform.os in self.os

    def candidates(self, spec: ToolSpec, context: ProbeContext) -> Iterator[Path]:
        """Yield candidate install roots, best first."""
        raise NotImplementedError

    @property
    def source(self) -> str:
        return self.__class__.__name__


@dataclass(frozen=True)
class ExecutableLookup(ProbeStrategy):
    """
    Search PATH for an executable and derive the install root from it.

    The executable is resolved through symlinks (so /usr/bin/javac becomes
    /usr/lib/jvm/.../bin/javac) and ``strip_suffix`` is removed from its
    directory. Shim-style tools (npm global bins) set ``resolve_symlinks``
    to False so the root stays the directory holding the shim.
    """

    executable: str
    strip_suffix: Tuple[str, ...] = ("bin",)
    resolve_symlinks: bool = True
    os: Tuple[str, ...] = ()

    def candidates(self, spec: ToolSpec, context: ProbeContext) -> Iterator[Path]:
        path_str = context.which(self.executable)
        if not path_str:
            logger.debug(f"{self.executable} not found in PATH")
            return

        exe_path = Path(path_str)
        if self.resolve_symlinks:
            exe_path = exe_path.resolve()
        else:
            exe_path = exe_path.absolute()

        yield strip_path_suffix(exe_path.parent, self.strip_suffix)

    @property
    def source(self) -> str:
        return "path"


@dataclass(frozen=True)
class InstallDirGlob(ProbeStrategy):
    """
    Search well-known install directories.

    Patterns are ordered most specific first (an exact major version before a
    wildcard); matches of a single pattern are tried newest first.
    """

    patterns: Tuple[str, ...]
    os: Tuple[str, ...] = ()

    def candidates(self, spec: ToolSpec, context: ProbeContext) -> Iterator[Path]:
        for pattern in self.patterns:
            expanded = context.expand(pattern)
            if expanded is None:
                continue
            matches = sorted(glob.glob(expanded), reverse=True)
            if not matches:
                logger.debug(f"No match for {expanded}")
            for match in matches:
                yield Path(match)

    @property
    def source(self) -> str:
        return "standard_location"


@dataclass(frozen=True)
class PackageManagerPrefix(ProbeStrategy):
    """
    Ask a package manager where it installed a package.

    Runs ``<manager> <args...>`` if the manager is present and treats the
    first output line as a prefix; ``subpath`` is joined onto it.
    """

    manager: str
    args: Tuple[str, ...]
    subpath: str = ""
    os: Tuple[str, ...] = ()

    def candidates(self, spec: ToolSpec, context: ProbeContext) -> Iterator[Path]:
        manager_path = context.which(self.manager)
        if not manager_path:
            logger.debug(f"Package manager {self.manager} not available")
            return

        try:
            result = subprocess.run(
                [manager_path, *self.args],
                capture_output=True,
                text=True,
                timeout=context.command_timeout,
                env=dict(context.environ),
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.debug(f"Timeout querying {self.manager} {' '.join(self.args)}")
            return
        except OSError as e:
            logger.debug(f"Failed to run {self.manager}: {e}")
            return

        if result.returncode != 0:
            logger.debug(
                f"{self.manager} {' '.join(self.args)} returned {result.returncode}"
            )
            return

        lines = result.stdout.strip().splitlines()
        if not lines:
            return

        prefix = Path(lines[0].strip())
        yield prefix / self.subpath if self.subpath else prefix

    @property
    def source(self) -> str:
        return "package_manager"


@dataclass(frozen=True)
class EnvironmentVariable(ProbeStrategy):
    """
    Fall back to a previously recorded variable that still points at disk.

    The snapshot environment is consulted before the value recorded in the
    shell profile. Variables that hold an executable rather than a root use
    ``strip_suffix`` to get back to the root.
    """

    variable: str
    strip_suffix: Tuple[str, ...] = ()
    os: Tuple[str, ...] = ()

    def candidates(self, spec: ToolSpec, context: ProbeContext) -> Iterator[Path]:
        seen = set()
        for values in (context.environ, context.recorded):
            value = values.get(self.variable)
            if not value or value in seen:
                continue
            seen.add(value)

            path = Path(value).expanduser()
            if not path.exists():
                logger.debug(f"{self.variable}={value} no longer exists")
                continue
            yield strip_path_suffix(path, self.strip_suffix)

    @property
    def source(self) -> str:
        return "environment"


class ToolProbe:
    """
    Detects whether a tool is already installed.

    Strategies run in declared order and the first accepted root wins; later
    strategies are not consulted even if they would also succeed.
    """

    def __init__(self, context: ProbeContext):
        """
        Initialize probe.

        Args:
            context: Platform, environment snapshot and recorded profile values
        """
        self.context = context

    def probe(self, spec: ToolSpec) -> ProbeResult:
        """
        Probe for an installed tool.

        Args:
            spec: Tool to look for

        Returns:
            ProbeResult with the install root, or ProbeResult.not_found()
        """
        for strategy in spec.probes:
            if not strategy.applies_to(self.context.platform):
                continue

            try:
                for candidate in strategy.candidates(spec, self.context):
                    if spec.accepts_root(candidate):
                        root = candidate.resolve()
                        logger.info(
                            f"Found {spec.display_name} via {strategy.source}: {root}"
                        )
                        return ProbeResult(root=root, source=strategy.source)
                    logger.debug(
                        f"Rejected {candidate} for {spec.name} (marker {spec.marker} missing)"
                    )
            except OSError as e:
                logger.debug(f"Strategy {strategy.source} failed for {spec.name}: {e}")

        logger.info(f"{spec.display_name} not found")
        return ProbeResult.not_found()
