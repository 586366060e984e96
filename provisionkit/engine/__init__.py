"""
The provisioning pipeline: probe, install, configure, verify.
"""

from .models import (
    ToolSpec,
    ProbeResult,
    InstallStatus,
    InstallOutcome,
    StatusRecord,
    ProvisioningReport,
)

from .catalog import Catalog, DEFAULT_CATALOG

from .probe import ProbeContext, ToolProbe

from .installer import InstallContext, InstallerBackend

from .profile import EnvironmentConfigurator, ProfileChange

from .verifier import VerificationReporter

from .orchestrator import (
    ProvisioningEnvironment,
    ProvisioningOrchestrator,
    ToolState,
)

from .preflight import CheckResult, PreflightChecker

__all__ = [
    "ToolSpec",
    "ProbeResult",
    "InstallStatus",
    "InstallOutcome",
    "StatusRecord",
    "ProvisioningReport",
    "Catalog",
    "DEFAULT_CATALOG",
    "ProbeContext",
    "ToolProbe",
    "InstallContext",
    "InstallerBackend",
    "EnvironmentConfigurator",
    "ProfileChange",
    "VerificationReporter",
    "ProvisioningEnvironment",
    "ProvisioningOrchestrator",
    "ToolState",
    "CheckResult",
    "PreflightChecker",
]
