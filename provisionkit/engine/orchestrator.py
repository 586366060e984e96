"""
Provisioning pipeline.

For each selected tool, in catalog order:

    PROBING -> INSTALLING -> CONFIGURING -> VERIFYING -> DONE
            \\-> CONFIGURING (already present)
                 INSTALLING -> DONE (install failed, nothing recorded)

Later tools see earlier tools through an explicit ProvisioningEnvironment
built from one snapshot of the process environment; os.environ is never
read again after the snapshot or modified.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set

from provisionkit.core.directory import (
    DirectoryError,
    default_profile_path,
    ensure_cache_structure,
    get_global_cache_dir,
)
from provisionkit.core.download import DownloadProgress
from provisionkit.core.locking import LockManager
from provisionkit.core.platform import PlatformInfo, detect_platform
from provisionkit.engine.catalog import DEFAULT_CATALOG, Catalog
from provisionkit.engine.installer import InstallContext
from provisionkit.engine.models import (
    InstallOutcome,
    ProvisioningReport,
    StatusRecord,
    ToolSpec,
)
from provisionkit.engine.probe import ProbeContext, ToolProbe
from provisionkit.engine.profile import EnvironmentConfigurator
from provisionkit.engine.verifier import VerificationReporter

logger = logging.getLogger(__name__)


class ToolState(Enum):
    """Pipeline state of one tool."""

    PROBING = "probing"
    INSTALLING = "installing"
    CONFIGURING = "configuring"
    VERIFYING = "verifying"
    DONE = "done"


class ProvisioningEnvironment:
    """
    In-memory environment passed between pipeline stages.

    Holds the resolved roots, exported variables and PATH fragments of the
    tools provisioned so far, layered over a snapshot of the process
    environment.
    """

    def __init__(self, base: Mapping[str, str]):
        self._base = dict(base)
        self.roots: Dict[str, Path] = {}
        self.exported: Dict[str, str] = {}
        self.path_fragments: List[str] = []

    def record(self, spec: ToolSpec, root: Path):
        """Add a tool's variables and PATH fragments."""
        self.roots[spec.name] = root
        self.exported[spec.env_var] = spec.env_value(root)
        for variable in spec.extra_env:
            self.exported[variable] = str(root)

        # Same precedence as the profile: later prepends win
        for fragment in spec.search_path_fragments(root):
            if fragment in self.path_fragments:
                self.path_fragments.remove(fragment)
            self.path_fragments.insert(0, fragment)

    def as_environ(self) -> Dict[str, str]:
        """Environment for child processes and probes."""
        environ = dict(self._base)
        environ.update(self.exported)
        base_path = self._base.get("PATH", "")
        environ["PATH"] = os.pathsep.join(
            [*self.path_fragments, base_path] if base_path else self.path_fragments
        )
        return environ


class ProvisioningOrchestrator:
    """
    Drives probe, install, configure and verify for every selected tool.

    Every per-tool failure, expected or not, ends up in that tool's
    StatusRecord; ``run`` always returns a report covering the selection.

    Example:
        >>> orchestrator = ProvisioningOrchestrator()
        >>> report = orchestrator.run(["node", "appium"])
        >>> print(report.to_line())
        NODE_HOME=/home/me/.provisionkit/tools/node-v14.17.0|APPIUM_PATH=...
    """

    def __init__(
        self,
        catalog: Catalog = DEFAULT_CATALOG,
        configurator: Optional[EnvironmentConfigurator] = None,
        platform: Optional[PlatformInfo] = None,
        cache_dir: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        lock_manager: Optional[LockManager] = None,
        download_timeout: float = 600,
        command_timeout: float = 1800,
        query_timeout: float = 30,
        progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            catalog: Tools that can be provisioned
            configurator: Profile writer (default: the login shell's profile)
            platform: Target platform (default: detected)
            cache_dir: Cache root for downloads and archive installs (default:
                the global cache; None if it cannot be determined)
            environ: Environment snapshot (default: copy of os.environ)
            lock_manager: Download lock manager (default: in cache_dir/lock)
            download_timeout: Total time budget per download in seconds
            command_timeout: Timeout for installer commands in seconds
            query_timeout: Timeout for probe and version queries in seconds
            progress_callback: Optional download progress callback
        """
        self.catalog = catalog
        self.platform = platform or detect_platform()
        self.cache_dir = Path(cache_dir) if cache_dir else self._default_cache_dir()
        self.cache_available = False
        self.environ = dict(os.environ if environ is None else environ)
        self.lock_manager = lock_manager
        self.download_timeout = download_timeout
        self.command_timeout = command_timeout
        self.query_timeout = query_timeout
        self.progress_callback = progress_callback
        self.configurator = configurator or self._default_configurator()
        self.verifier = VerificationReporter(timeout=query_timeout)
        self.states: Dict[str, ToolState] = {}

    def _default_configurator(self) -> EnvironmentConfigurator:
        try:
            profile = default_profile_path(
                self.environ.get("SHELL"), os_name=self.platform.os
            )
        except DirectoryError as e:
            logger.warning(f"{e}. Environment changes will not persist.")
            profile = None
        return EnvironmentConfigurator(profile, lock_manager=self.lock_manager)

    @staticmethod
    def _default_cache_dir() -> Optional[Path]:
        try:
            return get_global_cache_dir()
        except DirectoryError as e:
            logger.warning(f"{e}. Archive installs are unavailable.")
            return None

    @property
    def tools_dir(self) -> Optional[Path]:
        return self.cache_dir / "tools" if self.cache_dir is not None else None

    def _prepare_cache(self) -> bool:
        """Create the cache layout and default lock manager; False if unusable."""
        if self.cache_dir is None:
            return False
        try:
            layout = ensure_cache_structure(self.cache_dir)
        except (OSError, DirectoryError) as e:
            logger.warning(
                f"Cache directory {self.cache_dir} is unusable: {e}. "
                "Archive installs are unavailable."
            )
            return False

        if self.lock_manager is None:
            self.lock_manager = LockManager(layout["lock"])
        if self.configurator.lock_manager is None:
            self.configurator.lock_manager = self.lock_manager
        return True

    def run(
        self, names: Optional[Iterable[str]] = None, install: bool = True
    ) -> ProvisioningReport:
        """
        Run the pipeline.

        Args:
            names: Tools to provision (prerequisites are added); None = all
            install: False only probes and verifies (no installs, no profile
                writes)

        Returns:
            ProvisioningReport with one record per selected tool

        Raises:
            CatalogError: If a tool name is unknown
        """
        selected = self.catalog.select(names)
        logger.info(f"Provisioning {', '.join(spec.name for spec in selected)}")

        if install:
            self.cache_available = self._prepare_cache()

        recorded = self.configurator.read_variables()
        environment = ProvisioningEnvironment(self.environ)
        unavailable: Set[str] = set()
        report = ProvisioningReport()

        for spec in selected:
            try:
                record = self._provision_tool(
                    spec, environment, recorded, unavailable, install
                )
            except Exception as e:
                logger.error(f"Unexpected error provisioning {spec.display_name}: {e}")
                logger.debug("Traceback:", exc_info=True)
                record = StatusRecord(
                    name=spec.name,
                    env_var=spec.env_var,
                    root=environment.roots.get(spec.name),
                    error=f"{type(e).__name__}: {e}",
                )
                if record.root is not None:
                    record.value = spec.env_value(record.root)

            self._set_state(spec, ToolState.DONE)
            if record.root is None:
                unavailable.add(spec.name)
            report.add(record)

        return report

    def _provision_tool(
        self,
        spec: ToolSpec,
        environment: ProvisioningEnvironment,
        recorded: Mapping[str, str],
        unavailable: Set[str],
        install: bool,
    ) -> StatusRecord:
        self._set_state(spec, ToolState.PROBING)
        probe = ToolProbe(
            ProbeContext(
                platform=self.platform,
                tools_dir=self.tools_dir,
                environ=environment.as_environ(),
                recorded=recorded,
                command_timeout=self.query_timeout,
            )
        )
        result = probe.probe(spec)

        if result.found:
            outcome = InstallOutcome.skipped(result.root)
        else:
            outcome = self._install(spec, probe, environment, unavailable, install)

        if not outcome.ok:
            return self.verifier.verify(spec, None, environment.as_environ(), outcome)

        root = outcome.root or result.root

        self._set_state(spec, ToolState.CONFIGURING)
        if install:
            self._configure(spec, root)
        environment.record(spec, root)

        self._set_state(spec, ToolState.VERIFYING)
        return self.verifier.verify(spec, root, environment.as_environ(), outcome)

    def _install(
        self,
        spec: ToolSpec,
        probe: ToolProbe,
        environment: ProvisioningEnvironment,
        unavailable: Set[str],
        install: bool,
    ) -> InstallOutcome:
        missing = [name for name in spec.requires if name in unavailable]
        if missing:
            logger.error(
                f"Cannot install {spec.display_name}: prerequisite {missing[0]} is not available"
            )
            return InstallOutcome.failed(
                f"prerequisite {missing[0]} is not available",
                error="PrerequisiteFailed",
            )

        if not install:
            return InstallOutcome.failed(f"{spec.display_name} is not installed")

        if spec.installer.uses_cache and not self.cache_available:
            logger.error(f"Cannot install {spec.display_name}: cache unavailable")
            return InstallOutcome.failed("cache unavailable", error="InstallError")

        self._set_state(spec, ToolState.INSTALLING)
        context = InstallContext(
            platform=self.platform,
            downloads_dir=self.cache_dir / "downloads" if self.cache_dir is not None else None,
            tools_dir=self.tools_dir,
            environ=environment.as_environ(),
            probe=probe,
            lock_manager=self.lock_manager,
            download_timeout=self.download_timeout,
            command_timeout=self.command_timeout,
            progress_callback=self.progress_callback,
        )
        return spec.installer.install(spec, context)

    def _configure(self, spec: ToolSpec, root: Path):
        """Record the tool's variables and PATH fragments in the profile."""
        self.configurator.set_variable(spec.env_var, spec.env_value(root))
        for variable in spec.extra_env:
            self.configurator.set_variable(variable, str(root))
        for fragment in spec.search_path_fragments(root):
            self.configurator.add_to_search_path(fragment)

    def _set_state(self, spec: ToolSpec, state: ToolState):
        self.states[spec.name] = state
        logger.debug(f"{spec.name}: {state.value}")
