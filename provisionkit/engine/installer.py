"""
Installer backends.

A closed set of typed variants, each executing one installation action:
- PackageManagerInstaller: ``<manager> install`` for a pinned package id
- ArchiveInstaller: download a pinned archive and extract it to a fixed root
- NoOpInstaller: the tool is already present

Backends never raise for expected failures; they return
``InstallOutcome.failed(...)``. After a real install the root is re-derived
with ToolProbe instead of trusting the installer.
"""

import logging
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Tuple

from provisionkit.core.download import DownloadProgress, download_file
from provisionkit.core.exceptions import (
    ArchiveCorruptError,
    DownloadError,
    DownloadTimeout,
    InstallError,
    InstallerExitedNonZero,
)
from provisionkit.core.filesystem import (
    ArchiveExtractionError,
    FilesystemError,
    extract_archive,
    is_nonempty_file,
    normalize_root_directory,
    safe_rmtree,
)
from provisionkit.core.locking import LockManager
from provisionkit.core.platform import PlatformInfo
from provisionkit.engine.models import InstallOutcome, ToolSpec
from provisionkit.engine.probe import ToolProbe

logger = logging.getLogger(__name__)


# Install subcommands per supported package manager
INSTALL_COMMANDS: Dict[str, Tuple[str, ...]] = {
    "npm": ("install", "-g"),
    "brew": ("install",),
}


@dataclass
class InstallContext:
    """
    Environment an installer runs in.

    Attributes:
        platform: Platform used to pick archives and destinations
        downloads_dir: Cache for downloaded archives (None without a cache)
        tools_dir: Root for archive-installed tools ('{tools_dir}'); None
            without a cache
        environ: Environment for child processes, including prerequisites
        probe: Probe used to re-derive the root after installation
        lock_manager: Serialises concurrent downloads of the same archive
        download_timeout: Total time budget per download in seconds
        command_timeout: Timeout for package manager and post-install commands
        progress_callback: Optional download progress callback
    """

    platform: PlatformInfo
    downloads_dir: Optional[Path]
    tools_dir: Optional[Path]
    environ: Mapping[str, str]
    probe: ToolProbe
    lock_manager: Optional[LockManager] = None
    download_timeout: float = 600
    command_timeout: float = 1800
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None

    def which(self, executable: str) -> Optional[str]:
        return shutil.which(executable, path=self.environ.get("PATH", ""))

    def expand(self, template: str) -> Path:
        return Path(template.replace("{tools_dir}", str(self.tools_dir))).expanduser()


@dataclass(frozen=True)
class PostInstallCommand:
    """
    Command run against a freshly installed root.

    Attributes:
        argv: Command; the first element is relative to the install root,
            or looked up on PATH if the root does not contain it
        input: Text fed to stdin (e.g. license confirmations)
        required: Whether a failure fails the whole install
        description: Shown in logs
        show_output: Log the command output at info level (diagnostics)
    """

    argv: Tuple[str, ...]
    input: Optional[str] = None
    required: bool = True
    description: str = ""
    show_output: bool = False


class InstallerBackend:
    """Base class for installer backends."""

    kind = "base"
    # Whether the backend needs the download cache
    uses_cache = False

    def install(self, spec: ToolSpec, context: InstallContext) -> InstallOutcome:
        raise NotImplementedError

    def _rederive_root(self, spec: ToolSpec, context: InstallContext) -> InstallOutcome:
        """Locate the freshly installed tool the same way a probe would."""
        result = context.probe.probe(spec)
        if not result.found:
            return InstallOutcome.failed(
                f"{spec.display_name} could not be located after installation",
                error="VerificationFailed",
            )
        return InstallOutcome.installed(result.root)

    def _run_post_install(
        self, commands: Tuple[PostInstallCommand, ...], root: Path, context: InstallContext
    ) -> Optional[InstallOutcome]:
        """Run post-install commands; return a failed outcome if one must abort."""
        for command in commands:
            failure = self._run_post_install_command(command, root, context)
            if failure is not None:
                return failure
        return None

    def _run_post_install_command(
        self, command: PostInstallCommand, root: Path, context: InstallContext
    ) -> Optional[InstallOutcome]:
        executable = root / command.argv[0]
        if not executable.exists():
            executable = Path(context.which(command.argv[0]) or executable)
        label = command.description or " ".join(command.argv)
        logger.info(f"Running post-install step: {label}")

        try:
            result = _run_command(
                [str(executable), *command.argv[1:]],
                context,
                timeout=context.command_timeout,
                input=command.input,
            )
            if command.show_output and result.stdout:
                logger.info(result.stdout.strip())
            return None
        except subprocess.TimeoutExpired:
            reason, kind = "timeout", "Timeout"
        except InstallerExitedNonZero as e:
            reason, kind = str(e), "InstallerExitedNonZero"
        except OSError as e:
            reason, kind = f"failed to run {executable}: {e}", "InstallError"

        if command.required:
            logger.error(f"Post-install step '{label}' failed: {reason}")
            return InstallOutcome.failed(reason, error=kind)

        logger.warning(f"Post-install step '{label}' failed ({reason}), continuing")
        return None


@dataclass(frozen=True)
class NoOpInstaller(InstallerBackend):
    """Used when the probe already found the tool."""

    kind = "noop"

    def install(self, spec: ToolSpec, context: InstallContext) -> InstallOutcome:
        return InstallOutcome.skipped()


@dataclass(frozen=True)
class PackageManagerInstaller(InstallerBackend):
    """
    Install a pinned package through a package manager.

    Failures surface as-is; there is no automatic retry. ``post_install``
    commands run against the re-derived root (e.g. companion diagnostics).
    """

    manager: str
    package: str
    post_install: Tuple[PostInstallCommand, ...] = ()
    kind = "package_manager"

    def install(self, spec: ToolSpec, context: InstallContext) -> InstallOutcome:
        manager_path = context.which(self.manager)
        if not manager_path:
            logger.error(f"{self.manager} is not installed, cannot install {spec.display_name}")
            return InstallOutcome.failed(
                f"{self.manager} is not installed", error="InstallerExitedNonZero"
            )

        subcommand = INSTALL_COMMANDS.get(self.manager)
        if subcommand is None:
            return InstallOutcome.failed(
                f"unsupported package manager: {self.manager}", error="InstallError"
            )

        command = [manager_path, *subcommand, self.package]
        logger.info(f"Installing {spec.display_name}: {self.manager} {' '.join(subcommand)} {self.package}")

        try:
            _run_command(command, context, timeout=context.command_timeout)
        except subprocess.TimeoutExpired:
            logger.error(f"{self.manager} timed out installing {self.package}")
            return InstallOutcome.failed("timeout", error="Timeout")
        except InstallerExitedNonZero as e:
            logger.error(f"Failed to install {spec.display_name}: {e}")
            return InstallOutcome.failed(str(e), error="InstallerExitedNonZero")
        except OSError as e:
            return InstallOutcome.failed(f"failed to run {self.manager}: {e}", error="InstallError")

        outcome = self._rederive_root(spec, context)
        if not outcome.ok:
            return outcome

        failure = self._run_post_install(self.post_install, outcome.root, context)
        return failure or outcome


@dataclass(frozen=True)
class ArchiveInstaller(InstallerBackend):
    """
    Download a pinned archive and extract it to a fixed destination.

    Attributes:
        urls: Archive URL keyed by platform string ('macos-x64') or OS ('linux')
        destination: Destination keyed the same way; '{tools_dir}' and '~'
            are expanded
        sha256: Optional checksums keyed like ``urls``
        post_install: Commands run against the new root
    """

    urls: Mapping[str, str]
    destination: Mapping[str, str]
    sha256: Mapping[str, str] = field(default_factory=dict)
    post_install: Tuple[PostInstallCommand, ...] = ()
    kind = "archive"
    uses_cache = True

    def select(self, mapping: Mapping[str, str], platform: PlatformInfo) -> Optional[str]:
        """Pick the entry for the platform string, then the OS, then '*'."""
        for key in (platform.platform_string(), platform.os, "*"):
            if key in mapping:
                return mapping[key]
        return None

    def install(self, spec: ToolSpec, context: InstallContext) -> InstallOutcome:
        url = self.select(self.urls, context.platform)
        destination_template = self.select(self.destination, context.platform)
        if not url or not destination_template:
            return InstallOutcome.failed(
                f"no archive for {context.platform.platform_string()}",
                error="DownloadFailed",
            )

        if context.downloads_dir is None or context.tools_dir is None:
            return InstallOutcome.failed("cache unavailable", error="InstallError")

        archive_name = url.split("/")[-1]
        archive_path = context.downloads_dir / archive_name
        destination = context.expand(destination_template)
        temp_extract_dir = destination.parent / f".{destination.name}.extract"
        moved = False

        logger.info(f"Installing {spec.display_name} from {url}")
        start = time.time()

        try:
            self._download(url, archive_path, archive_name, context)

            if not is_nonempty_file(archive_path):
                raise ArchiveCorruptError(
                    f"{archive_name} is empty. The downloaded file may be corrupted."
                )

            logger.info(f"Extracting {spec.display_name}...")
            if temp_extract_dir.exists():
                safe_rmtree(temp_extract_dir, require_prefix=destination.parent)
            try:
                extract_archive(archive_path, temp_extract_dir)
            except ArchiveExtractionError as e:
                raise ArchiveCorruptError(
                    f"Failed to extract {archive_name}. The downloaded file may be corrupted: {e}"
                ) from e

            final_root = normalize_root_directory(temp_extract_dir)
            self._replace_tree(final_root, destination)
            moved = True

        except (InstallError, FilesystemError, ValueError, OSError) as e:
            logger.error(f"Failed to install {spec.display_name}: {e}")
            self._cleanup_on_error(
                archive_path, temp_extract_dir, destination if moved else None
            )
            return InstallOutcome.failed(_failure_reason(e), error=_error_kind(e))

        finally:
            if temp_extract_dir.exists():
                try:
                    safe_rmtree(temp_extract_dir, require_prefix=destination.parent)
                except (FilesystemError, ValueError) as e:
                    logger.warning(f"Failed to remove temp extraction: {e}")

        archive_path.unlink(missing_ok=True)
        logger.info(f"{spec.display_name} extracted in {time.time() - start:.2f}s")

        outcome = self._rederive_root(spec, context)
        if outcome.ok:
            failure = self._run_post_install(self.post_install, outcome.root, context)
            if failure is not None:
                outcome = failure

        if not outcome.ok:
            self._cleanup_on_error(archive_path, temp_extract_dir, destination)
        return outcome

    def _replace_tree(self, source: Path, destination: Path):
        """
        Move ``source`` to ``destination``.

        An existing destination is set aside and only removed once the move
        succeeded; if the move fails it is put back.
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        backup = None
        if destination.exists():
            backup = destination.parent / f".{destination.name}.previous"
            if backup.exists():
                safe_rmtree(backup, require_prefix=destination.parent)
            destination.rename(backup)

        try:
            shutil.move(str(source), str(destination))
        except OSError:
            if backup is not None:
                if destination.exists():
                    safe_rmtree(destination, require_prefix=destination.parent)
                backup.rename(destination)
                logger.info(f"Restored previous installation at {destination}")
            raise

        if backup is not None:
            try:
                safe_rmtree(backup, require_prefix=destination.parent)
            except (FilesystemError, ValueError) as e:
                logger.warning(f"Failed to remove previous installation {backup}: {e}")

    def _download(
        self, url: str, archive_path: Path, archive_name: str, context: InstallContext
    ):
        expected = self.select(self.sha256, context.platform) if self.sha256 else None

        if context.lock_manager is None:
            download_file(
                url,
                archive_path,
                expected_sha256=expected,
                progress_callback=context.progress_callback,
                timeout=context.download_timeout,
            )
            return

        with context.lock_manager.download_lock(archive_name):
            download_file(
                url,
                archive_path,
                expected_sha256=expected,
                progress_callback=context.progress_callback,
                timeout=context.download_timeout,
            )

    def _cleanup_on_error(
        self,
        archive_path: Path,
        temp_extract_dir: Path,
        destination: Optional[Path] = None,
    ):
        """Remove the archive, the temporary tree and our partial installation."""
        logger.info("Cleaning up after error...")

        part_path = archive_path.with_name(archive_path.name + ".part")
        if archive_path.exists() or part_path.exists():
            try:
                archive_path.unlink(missing_ok=True)
                part_path.unlink(missing_ok=True)
                logger.debug(f"Removed archive: {archive_path}")
            except OSError as e:
                logger.warning(f"Failed to remove archive: {e}")

        for path in (temp_extract_dir, destination):
            if path is not None and path.exists():
                try:
                    safe_rmtree(path, require_prefix=temp_extract_dir.parent)
                    logger.debug(f"Removed partial tree: {path}")
                except (FilesystemError, ValueError) as e:
                    logger.warning(f"Failed to remove {path}: {e}")


def _run_command(
    command: list,
    context: InstallContext,
    timeout: float,
    input: Optional[str] = None,
) -> subprocess.CompletedProcess:
    """
    Run an installer command in the context environment.

    Raises:
        InstallerExitedNonZero: If the command exits non-zero
        subprocess.TimeoutExpired: If the command exceeds ``timeout``
        OSError: If the command cannot be started
    """
    result = subprocess.run(
        command,
        input=input,
        capture_output=True,
        text=True,
        timeout=timeout,
        env=dict(context.environ),
        check=False,
    )

    if result.stdout:
        logger.debug(result.stdout.strip()[-2000:])

    if result.returncode != 0:
        if result.stderr:
            logger.debug(f"stderr: {result.stderr.strip()[-2000:]}")
        raise InstallerExitedNonZero(" ".join(command), result.returncode)

    return result


def _failure_reason(error: Exception) -> str:
    if isinstance(error, DownloadTimeout):
        return "timeout"
    return str(error)


def _error_kind(error: Exception) -> str:
    if isinstance(error, DownloadTimeout):
        return "Timeout"
    if isinstance(error, DownloadError):
        return "DownloadFailed"
    if isinstance(error, ArchiveCorruptError):
        return "ArchiveCorrupt"
    if isinstance(error, InstallerExitedNonZero):
        return "InstallerExitedNonZero"
    return "InstallError"
