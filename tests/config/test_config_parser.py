"""Unit tests for configuration parser."""

from pathlib import Path

import pytest

from provisionkit.config.parser import (
    ConfigError,
    ProvisionConfig,
    load_config,
    parse_config,
)


def test_parse_complete_config(tmp_path):
    """Test parsing a configuration with all fields."""
    config_file = tmp_path / "provisionkit.yaml"
    config_file.write_text(
        """
version: 1
profile: /home/me/.bashrc
cache_dir: /opt/provisionkit
tools: [jdk, android-sdk]
skip_preflight: true
min_free_disk_gb: 5
timeouts:
  download: 120
  command: 900
  query: 10
"""
    )

    config = parse_config(config_file)

    assert config.profile == Path("/home/me/.bashrc")
    assert config.cache_dir == Path("/opt/provisionkit")
    assert config.tools == ["jdk", "android-sdk"]
    assert config.skip_preflight is True
    assert config.min_free_disk_gb == 5
    assert config.timeouts.download == 120
    assert config.timeouts.command == 900
    assert config.timeouts.query == 10


def test_defaults(tmp_path):
    """Test omitted fields fall back to defaults."""
    config_file = tmp_path / "provisionkit.yaml"
    config_file.write_text("tools: [node]\n")

    config = parse_config(config_file)

    assert config.version == 1
    assert config.profile is None
    assert config.cache_dir is None
    assert config.skip_preflight is False
    assert config.timeouts.download == 600
    assert config.timeouts.command == 1800
    assert config.timeouts.query == 30


def test_empty_file(tmp_path):
    config_file = tmp_path / "provisionkit.yaml"
    config_file.write_text("")

    assert parse_config(config_file) == ProvisionConfig()


def test_home_is_expanded(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    config_file = tmp_path / "provisionkit.yaml"
    config_file.write_text("profile: ~/.zshrc\n")

    assert parse_config(config_file).profile == tmp_path / ".zshrc"


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        parse_config(tmp_path / "missing.yaml")


def test_invalid_yaml(tmp_path):
    config_file = tmp_path / "provisionkit.yaml"
    config_file.write_text("tools: [jdk\n")

    with pytest.raises(ConfigError, match="Invalid YAML"):
        parse_config(config_file)


@pytest.mark.parametrize(
    "content,message",
    [
        ("- jdk\n", "must be a mapping"),
        ("toolchains: []\n", "Unknown configuration field"),
        ("version: 2\n", "Unsupported version"),
        ("skip_preflight: 'yes'\n", "skip_preflight"),
        ("profile: 42\n", "profile must be a path"),
        ("tools: jdk\n", "tools must be a list"),
        ("tools: []\n", "must not be empty"),
        ("timeouts: 5\n", "timeouts must be a mapping"),
        ("timeouts: {install: 5}\n", "Unknown timeout"),
        ("timeouts: {download: 0}\n", "timeouts.download must be a positive number"),
        ("timeouts: {command: true}\n", "timeouts.command must be a positive number"),
        ("min_free_disk_gb: -1\n", "min_free_disk_gb must be a positive number"),
    ],
)
def test_invalid_config(tmp_path, content, message):
    config_file = tmp_path / "provisionkit.yaml"
    config_file.write_text(content)

    with pytest.raises(ConfigError, match=message):
        parse_config(config_file)


class TestLoadConfig:
    def test_no_file_in_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert load_config() == ProvisionConfig()

    def test_file_in_cwd(self, tmp_path, monkeypatch):
        (tmp_path / "provisionkit.yaml").write_text("tools: [appium]\n")
        monkeypatch.chdir(tmp_path)

        assert load_config().tools == ["appium"]

    def test_explicit_missing_path(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "other.yaml")
