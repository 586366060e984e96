"""
Tests for the shell profile configurator.
"""

import logging
import stat
from unittest.mock import patch

import pytest

from provisionkit.core.locking import LockManager
from provisionkit.engine.profile import (
    EnvironmentConfigurator,
    ProfileChange,
    format_assignment,
    parse_assignment,
    path_elements,
)


@pytest.fixture
def profile(temp_dir):
    return temp_dir / ".zshrc"


@pytest.fixture
def configurator(profile, temp_dir):
    return EnvironmentConfigurator(profile, lock_manager=LockManager(temp_dir / "locks"))


def assignment_lines(profile, key):
    return [
        line
        for line in profile.read_text().splitlines()
        if line.startswith(f"export {key}=")
    ]


class TestLineFormat:
    def test_plain_value_not_quoted(self):
        assert format_assignment("JAVA_HOME", "/opt/jdk-11.0.2") == "export JAVA_HOME=/opt/jdk-11.0.2"

    def test_value_with_spaces_quoted(self):
        assert (
            format_assignment("JAVA_HOME", "/Users/me/My Tools/jdk")
            == "export JAVA_HOME='/Users/me/My Tools/jdk'"
        )

    def test_parse_assignment(self):
        assert parse_assignment("export NODE_HOME=/opt/node") == ("NODE_HOME", "/opt/node")
        assert parse_assignment("  export PATH=\"/a:$PATH\"") == ("PATH", '"/a:$PATH"')
        assert parse_assignment("alias ll='ls -l'") is None
        assert parse_assignment("# export JAVA_HOME=/old") is None

    def test_path_elements(self):
        assert path_elements('"/opt/node/bin:$PATH"') == ["/opt/node/bin", "$PATH"]


class TestSetVariable:
    """Test set_variable idempotence and replacement."""

    def test_creates_missing_profile(self, configurator, profile):
        assert configurator.set_variable("JAVA_HOME", "/opt/jdk") is ProfileChange.ADDED
        assert profile.read_text() == "export JAVA_HOME=/opt/jdk\n"

    def test_twice_leaves_one_line(self, configurator, profile):
        configurator.set_variable("JAVA_HOME", "/opt/jdk")
        before = profile.stat().st_mtime_ns

        assert configurator.set_variable("JAVA_HOME", "/opt/jdk") is ProfileChange.UNCHANGED
        assert assignment_lines(profile, "JAVA_HOME") == ["export JAVA_HOME=/opt/jdk"]
        assert profile.stat().st_mtime_ns == before

    def test_replaces_value_in_place(self, configurator, profile):
        profile.write_text("# my settings\nexport JAVA_HOME=/old/jdk\nalias ll='ls -l'\n")

        assert configurator.set_variable("JAVA_HOME", "/opt/jdk") is ProfileChange.UPDATED
        assert profile.read_text() == "# my settings\nexport JAVA_HOME=/opt/jdk\nalias ll='ls -l'\n"

    def test_collapses_duplicates(self, configurator, profile):
        profile.write_text(
            "export JAVA_HOME=/a\nexport EDITOR=vim\nexport JAVA_HOME=/b\nexport JAVA_HOME=/c\n"
        )

        assert configurator.set_variable("JAVA_HOME", "/opt/jdk") is ProfileChange.UPDATED
        assert profile.read_text() == "export JAVA_HOME=/opt/jdk\nexport EDITOR=vim\n"

    def test_duplicates_of_same_value_are_collapsed(self, configurator, profile):
        profile.write_text("export JAVA_HOME=/opt/jdk\nexport JAVA_HOME=/opt/jdk\n")

        assert configurator.set_variable("JAVA_HOME", "/opt/jdk") is ProfileChange.UPDATED
        assert assignment_lines(profile, "JAVA_HOME") == ["export JAVA_HOME=/opt/jdk"]

    def test_other_keys_untouched(self, configurator, profile):
        configurator.set_variable("JAVA_HOME", "/opt/jdk")
        configurator.set_variable("NODE_HOME", "/opt/node")

        assert profile.read_text() == "export JAVA_HOME=/opt/jdk\nexport NODE_HOME=/opt/node\n"

    def test_path_rejected(self, configurator):
        with pytest.raises(ValueError):
            configurator.set_variable("PATH", "/usr/bin")

    def test_preserves_file_mode(self, configurator, profile):
        profile.write_text("# rc\n")
        profile.chmod(0o600)

        configurator.set_variable("JAVA_HOME", "/opt/jdk")

        assert stat.S_IMODE(profile.stat().st_mode) == 0o600

    def test_symlinked_profile_edits_target(self, configurator, profile, temp_dir):
        """Test a dotfile-managed profile keeps its link and the target is edited."""
        real = temp_dir / "dotfiles" / "zshrc"
        real.parent.mkdir()
        real.write_text("alias ll='ls -l'\n")
        profile.symlink_to(real)

        assert configurator.set_variable("JAVA_HOME", "/opt/jdk") is ProfileChange.ADDED
        assert configurator.add_to_search_path("/opt/jdk/bin") is ProfileChange.ADDED

        assert profile.is_symlink()
        assert real.read_text() == (
            "alias ll='ls -l'\nexport JAVA_HOME=/opt/jdk\nexport PATH=\"/opt/jdk/bin:$PATH\"\n"
        )


class TestAddToSearchPath:
    """Test PATH prepends."""

    def test_appends_prepend_line(self, configurator, profile):
        assert configurator.add_to_search_path("/opt/node/bin") is ProfileChange.ADDED
        assert profile.read_text() == 'export PATH="/opt/node/bin:$PATH"\n'

    def test_twice_leaves_one_line(self, configurator, profile):
        configurator.add_to_search_path("/opt/node/bin")

        assert configurator.add_to_search_path("/opt/node/bin") is ProfileChange.UNCHANGED
        assert profile.read_text().count("/opt/node/bin") == 1

    def test_existing_multi_element_line(self, configurator, profile):
        profile.write_text('export PATH="/usr/local/bin:/opt/node/bin:$PATH"\n')

        assert configurator.add_to_search_path("/opt/node/bin") is ProfileChange.UNCHANGED

    def test_exact_element_match_only(self, configurator, profile):
        """Test '/opt/node/bin' does not satisfy '/opt/node'."""
        profile.write_text('export PATH="/opt/node/bin:$PATH"\n')

        assert configurator.add_to_search_path("/opt/node") is ProfileChange.ADDED

    def test_live_path_is_ignored(self, configurator, profile, monkeypatch):
        monkeypatch.setenv("PATH", "/opt/node/bin")

        assert configurator.add_to_search_path("/opt/node/bin") is ProfileChange.ADDED


class TestReadVariables:
    def test_last_assignment_wins(self, configurator, profile):
        profile.write_text(
            "export JAVA_HOME=/a\nexport JAVA_HOME='/b c'\nexport PATH=\"/x:$PATH\"\n"
        )

        assert configurator.read_variables() == {"JAVA_HOME": "/b c"}

    def test_missing_profile(self, configurator):
        assert configurator.read_variables() == {}


class TestUnavailableProfile:
    """Test that an unusable profile degrades to a warning."""

    def test_no_profile(self, caplog):
        caplog.set_level(logging.WARNING)
        configurator = EnvironmentConfigurator(None)

        assert configurator.set_variable("JAVA_HOME", "/opt/jdk") is ProfileChange.UNAVAILABLE
        assert configurator.add_to_search_path("/opt/jdk/bin") is ProfileChange.UNAVAILABLE
        assert configurator.read_variables() == {}
        assert sum(r.levelname == "WARNING" for r in caplog.records) == 1

    def test_missing_directory(self, temp_dir):
        configurator = EnvironmentConfigurator(temp_dir / "missing" / ".zshrc")

        assert configurator.set_variable("JAVA_HOME", "/opt/jdk") is ProfileChange.UNAVAILABLE
        assert not (temp_dir / "missing").exists()

    def test_write_failure(self, configurator, profile):
        profile.write_text("export EDITOR=vim\n")

        with patch(
            "provisionkit.engine.profile.atomic_write", side_effect=PermissionError("read-only")
        ):
            change = configurator.set_variable("JAVA_HOME", "/opt/jdk")

        assert change is ProfileChange.UNAVAILABLE
        assert profile.read_text() == "export EDITOR=vim\n"

    def test_lock_timeout(self, configurator):
        with patch.object(
            LockManager, "profile_lock", side_effect=TimeoutError("held elsewhere")
        ):
            assert configurator.set_variable("JAVA_HOME", "/opt/jdk") is ProfileChange.UNAVAILABLE
