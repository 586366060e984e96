"""
Post-configuration verification.

Runs each tool's version query against its resolved root and folds the
result into the StatusRecord reported for the tool.
"""

import logging
import subprocess
from pathlib import Path
from typing import Mapping, Optional

from provisionkit.core.exceptions import VerificationFailed
from provisionkit.engine.models import InstallOutcome, StatusRecord, ToolSpec

logger = logging.getLogger(__name__)


def first_line(output: str) -> str:
    """First non-empty line of command output, stripped."""
    for line in output.splitlines():
        if line.strip():
            return line.strip()
    return ""


class VerificationReporter:
    """
    Runs version queries and builds status records.

    Verification never raises: a missing executable, a timeout or a non-zero
    exit all produce ``verified=False`` with an error message.
    """

    def __init__(self, timeout: float = 30):
        """
        Initialize reporter.

        Args:
            timeout: Timeout for one version query in seconds
        """
        self.timeout = timeout

    def verify(
        self,
        spec: ToolSpec,
        root: Optional[Path],
        environ: Mapping[str, str],
        outcome: Optional[InstallOutcome] = None,
    ) -> StatusRecord:
        """
        Verify a tool and build its status record.

        Args:
            spec: Tool being verified
            root: Resolved install root (None if the tool never became available)
            environ: Environment the version query runs in
            outcome: Install stage outcome, copied into the record

        Returns:
            StatusRecord for the tool
        """
        record = StatusRecord(
            name=spec.name,
            env_var=spec.env_var,
            root=root,
            value=spec.env_value(root) if root else None,
        )
        if outcome is not None:
            record.outcome = outcome.status.value
            record.error = outcome.reason

        if root is None:
            if record.error is None:
                record.error = f"{spec.display_name} is not installed"
            return record

        try:
            record.version = self._query_version(spec, root, environ)
            record.verified = True
            logger.info(f"{spec.display_name} verified: {record.version}")
        except VerificationFailed as e:
            record.error = str(e)
            logger.warning(f"Verification failed for {e}")

        return record

    def _query_version(
        self, spec: ToolSpec, root: Path, environ: Mapping[str, str]
    ) -> str:
        """
        Run the version command.

        Returns:
            First non-empty output line

        Raises:
            VerificationFailed: If the query does not produce a version
        """
        executable = root / spec.version_command[0]
        if not executable.exists():
            raise VerificationFailed(spec.name, f"{executable} not found")

        # java -version writes to stderr
        try:
            result = subprocess.run(
                [str(executable), *spec.version_command[1:]],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
                env=dict(environ),
                check=False,
            )
        except subprocess.TimeoutExpired:
            raise VerificationFailed(spec.name, "version check timed out")
        except OSError as e:
            raise VerificationFailed(spec.name, f"version check failed: {e}")

        version = first_line(result.stdout or "")
        if result.returncode != 0:
            raise VerificationFailed(
                spec.name, f"version check exited with code {result.returncode}"
            )
        if not version:
            raise VerificationFailed(spec.name, "version check printed nothing")

        return version
