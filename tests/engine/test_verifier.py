"""
Tests for post-configuration verification.
"""

import subprocess
from unittest.mock import patch

from provisionkit.engine.installer import NoOpInstaller
from provisionkit.engine.models import InstallOutcome, ToolSpec
from provisionkit.engine.verifier import VerificationReporter, first_line


def make_spec(**kwargs) -> ToolSpec:
    defaults = dict(
        name="runtimea",
        display_name="RuntimeA",
        env_var="RUNTIMEA_HOME",
        probes=(),
        installer=NoOpInstaller(),
        version_command=("bin/runtimea", "--version"),
    )
    defaults.update(kwargs)
    return ToolSpec(**defaults)


ENV = {"PATH": "/usr/bin:/bin"}


class TestFirstLine:
    def test_skips_blank_lines(self):
        assert first_line("\n\n  v14.17.0  \nmore\n") == "v14.17.0"

    def test_empty(self):
        assert first_line("\n   \n") == ""


class TestVerificationReporter:
    def test_verified(self, temp_dir, fake_executable):
        root = temp_dir / "runtimea"
        fake_executable(root / "bin" / "runtimea", "RuntimeA 1.0")

        record = VerificationReporter().verify(make_spec(), root, ENV)

        assert record.verified is True
        assert record.version == "RuntimeA 1.0"
        assert record.value == str(root)
        assert record.error is None

    def test_version_on_stderr(self, temp_dir, fake_executable):
        """Test tools that print their version to stderr (java -version)."""
        root = temp_dir / "jdk"
        fake_executable(root / "bin" / "java", 'openjdk version "11.0.2" 2019-01-15', to_stderr=True)

        record = VerificationReporter().verify(
            make_spec(version_command=("bin/java", "-version")), root, ENV
        )

        assert record.verified is True
        assert record.version == 'openjdk version "11.0.2" 2019-01-15'

    def test_non_zero_exit(self, temp_dir, fake_executable):
        root = temp_dir / "runtimea"
        fake_executable(root / "bin" / "runtimea", "crash", exit_code=2)

        record = VerificationReporter().verify(make_spec(), root, ENV)

        assert record.verified is False
        assert "exited with code 2" in record.error

    def test_empty_output(self, temp_dir, fake_executable):
        root = temp_dir / "runtimea"
        fake_executable(root / "bin" / "runtimea")

        record = VerificationReporter().verify(make_spec(), root, ENV)

        assert record.verified is False
        assert "printed nothing" in record.error

    def test_missing_executable(self, temp_dir):
        root = temp_dir / "runtimea"
        root.mkdir()

        record = VerificationReporter().verify(make_spec(), root, ENV)

        assert record.verified is False
        assert "not found" in record.error
        # The root is still reported
        assert record.value == str(root)

    def test_timeout(self, temp_dir, fake_executable):
        root = temp_dir / "runtimea"
        fake_executable(root / "bin" / "runtimea", "1.0")

        with patch(
            "provisionkit.engine.verifier.subprocess.run",
            side_effect=subprocess.TimeoutExpired("runtimea", 30),
        ):
            record = VerificationReporter().verify(make_spec(), root, ENV)

        assert record.verified is False
        assert "timed out" in record.error

    def test_env_target_value(self, temp_dir, fake_executable):
        bin_dir = temp_dir / "npm-global" / "bin"
        fake_executable(bin_dir / "toolb", "2.0.0")
        spec = make_spec(
            name="toolb",
            env_var="TOOLB_PATH",
            version_command=("toolb", "--version"),
            env_target="toolb",
        )

        record = VerificationReporter().verify(spec, bin_dir, ENV)

        assert record.value == str(bin_dir / "toolb")
        assert record.verified is True

    def test_no_root(self):
        outcome = InstallOutcome.failed("download failed", error="DownloadFailed")

        record = VerificationReporter().verify(make_spec(), None, ENV, outcome)

        assert record.verified is False
        assert record.value is None
        assert record.outcome == "failed"
        assert record.error == "download failed"

    def test_outcome_copied(self, temp_dir, fake_executable):
        root = temp_dir / "runtimea"
        fake_executable(root / "bin" / "runtimea", "1.0")

        record = VerificationReporter().verify(
            make_spec(), root, ENV, InstallOutcome.installed(root)
        )

        assert record.outcome == "installed"

    def test_runs_in_given_environment(self, temp_dir):
        root = temp_dir / "runtimea"
        script = root / "bin" / "runtimea"
        script.parent.mkdir(parents=True)
        script.write_text('#!/bin/sh\necho "home=$RUNTIMEA_HOME"\n')
        script.chmod(0o755)

        record = VerificationReporter().verify(
            make_spec(), root, {"PATH": "/usr/bin:/bin", "RUNTIMEA_HOME": "/x"}
        )

        assert record.version == "home=/x"
