"""
Data model shared by the provisioning pipeline stages.

ToolSpec is immutable catalog data. ProbeResult, InstallOutcome and
StatusRecord are produced fresh on every run and never persisted.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

if TYPE_CHECKING:
    from provisionkit.engine.installer import InstallerBackend
    from provisionkit.engine.probe import ProbeStrategy


@dataclass(frozen=True)
class ToolSpec:
    """
    Catalog entry for one provisionable tool.

    Attributes:
        name: Catalog identifier ('jdk', 'node', 'android-sdk', 'appium')
        display_name: Human readable name
        env_var: Variable that records the tool's location
        probes: Discovery strategies, tried in order
        installer: Backend used when no probe succeeds
        version_command: Version query; first element is relative to the root
        path_entries: Root-relative directories prepended to PATH ('' = root)
        extra_env: Further variables that receive the install root
        env_target: Root-relative path recorded in env_var instead of the root
        marker: Root-relative path that must exist for a root to be accepted
        requires: Names of tools that must be provisioned first
    """

    name: str
    display_name: str
    env_var: str
    probes: Tuple["ProbeStrategy", ...]
    installer: "InstallerBackend"
    version_command: Tuple[str, ...]
    path_entries: Tuple[str, ...] = ("bin",)
    extra_env: Tuple[str, ...] = ()
    env_target: Optional[str] = None
    marker: Optional[str] = None
    requires: Tuple[str, ...] = ()

    def env_value(self, root: Path) -> str:
        """Value recorded for ``env_var`` given an install root."""
        if self.env_target:
            return str(root / self.env_target)
        return str(root)

    def search_path_fragments(self, root: Path) -> Tuple[str, ...]:
        """Absolute PATH fragments for an install root, in declared order."""
        return tuple(str(root / entry) if entry else str(root) for entry in self.path_entries)

    def accepts_root(self, root: Path) -> bool:
        """Check a candidate root against the marker (if any)."""
        if not root.is_dir():
            return False
        return self.marker is None or (root / self.marker).exists()


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of probing for an installed tool: found at ``root``, or not found."""

    root: Optional[Path] = None
    source: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.root is not None

    @classmethod
    def not_found(cls) -> "ProbeResult":
        return cls()

    def __str__(self) -> str:
        if not self.found:
            return "not found"
        return f"found at {self.root} ({self.source})"


class InstallStatus(Enum):
    """Install stage result."""

    SKIPPED = "skipped"
    INSTALLED = "installed"
    FAILED = "failed"


@dataclass(frozen=True)
class InstallOutcome:
    """Result of one installer backend invocation."""

    status: InstallStatus
    root: Optional[Path] = None
    reason: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def skipped(cls, root: Optional[Path] = None) -> "InstallOutcome":
        return cls(InstallStatus.SKIPPED, root=root)

    @classmethod
    def installed(cls, root: Path) -> "InstallOutcome":
        return cls(InstallStatus.INSTALLED, root=root)

    @classmethod
    def failed(cls, reason: str, error: Optional[str] = None) -> "InstallOutcome":
        return cls(InstallStatus.FAILED, reason=reason, error=error)

    @property
    def ok(self) -> bool:
        return self.status is not InstallStatus.FAILED


@dataclass
class StatusRecord:
    """
    Final per-tool state after the pipeline ran.

    Attributes:
        name: Catalog identifier
        env_var: Variable reported in the machine-readable line
        root: Resolved install root (None if the tool never became available)
        value: Value reported for env_var
        version: First line of the version query output
        verified: Version query exited zero with non-empty output
        outcome: Install stage status ('skipped', 'installed', 'failed')
        error: Failure reason, if any
    """

    name: str
    env_var: str
    root: Optional[Path] = None
    value: Optional[str] = None
    version: str = ""
    verified: bool = False
    outcome: str = InstallStatus.FAILED.value
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "name": self.name,
            "env_var": self.env_var,
            "root": str(self.root) if self.root else None,
            "value": self.value,
            "version": self.version,
            "verified": self.verified,
            "outcome": self.outcome,
            "error": self.error,
        }


@dataclass
class ProvisioningReport:
    """Terminal output of the orchestrator: one StatusRecord per tool, in order."""

    records: list = field(default_factory=list)

    def add(self, record: StatusRecord):
        self.records.append(record)

    def get(self, name: str) -> Optional[StatusRecord]:
        for record in self.records:
            if record.name == name:
                return record
        return None

    @property
    def success(self) -> bool:
        """True when every tool in the report verified."""
        return all(record.verified for record in self.records)

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def to_line(self) -> str:
        """
        Machine-readable ``KEY=VALUE|KEY=VALUE`` line.

        Only tools with a resolved location are listed.

        Example:
            >>> report.to_line()
            'JAVA_HOME=/opt/jdk|NODE_HOME=/opt/node'
        """
        return "|".join(
            f"{record.env_var}={record.value}"
            for record in self.records
            if record.value is not None
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "line": self.to_line(),
            "tools": [record.to_dict() for record in self.records],
        }
