"""Tests for config_loader and config_schema modules."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from gitnormalize.config_loader import (
    ConfigError,
    _apply_env_overlay,
    _deep_merge,
    _env_to_config_key,
    _get_project_config_dir,
    _get_user_config_dir,
    get_config_paths,
    load_config,
)
from gitnormalize.config_schema import FetchConfig, LoggingConfig, NormalizeConfig


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class TestDeepMerge:
    """Tests for _deep_merge function."""

    def test_nested_merge(self):
        """Nested dict merge."""
        base = {"fetch": {"tags": True, "timeout": 10}}
        override = {"fetch": {"timeout": 30}, "remote": "upstream"}
        result = _deep_merge(base, override)
        assert result == {"fetch": {"tags": True, "timeout": 30}, "remote": "upstream"}

    def test_base_unchanged(self):
        """Original base dict should not be modified."""
        base = {"remote": "origin"}
        _deep_merge(base, {"remote": "fork"})
        assert base == {"remote": "origin"}


class TestEnvToConfigKey:
    """Tests for _env_to_config_key function."""

    def test_top_level(self):
        assert _env_to_config_key("GITNORMALIZE_REMOTE") == ([], "remote")

    def test_nested(self):
        assert _env_to_config_key("GITNORMALIZE_FETCH_TIMEOUT") == (["fetch"], "timeout")
        assert _env_to_config_key("GITNORMALIZE_ATTACH_HEAD") == (["checkout"], "attach_detached_head")

    def test_unknown(self):
        assert _env_to_config_key("GITNORMALIZE_WHATEVER") == ([], "GITNORMALIZE_WHATEVER")


class TestEnvOverlay:
    """Tests for _apply_env_overlay."""

    def test_values_are_placed_in_sections(self, monkeypatch):
        monkeypatch.setenv("GITNORMALIZE_FETCH_TIMEOUT", "45")
        monkeypatch.setenv("GITNORMALIZE_REMOTE", "upstream")
        result = _apply_env_overlay({"fetch": {"tags": False}})
        assert result == {"fetch": {"tags": False, "timeout": "45"}, "remote": "upstream"}

    @pytest.mark.parametrize("value, enabled", [("1", False), ("true", False), ("0", True), ("no", True)])
    def test_no_fetch_is_inverted(self, monkeypatch, value, enabled):
        monkeypatch.setenv("GITNORMALIZE_NO_FETCH", value)
        assert load_config(Path("/")).fetch.enabled is enabled

    def test_input_unchanged(self, monkeypatch):
        monkeypatch.setenv("GITNORMALIZE_FETCH_TAGS", "false")
        original = {"fetch": {"tags": True}}
        _apply_env_overlay(original)
        assert original == {"fetch": {"tags": True}}


class TestSchema:
    """Tests for the pydantic models."""

    def test_defaults(self):
        config = NormalizeConfig.default()
        assert config.remote == ""
        assert config.fetch.enabled and config.fetch.tags and config.fetch.pull_requests
        assert config.fetch.timeout is None
        assert config.checkout.attach_detached_head is False
        assert config.checkout.ignore_head_move is False
        assert config.logging.level == "INFO"

    def test_level_is_case_insensitive(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_bad_level(self):
        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            FetchConfig(timeout=0)

    def test_unknown_keys_ignored(self):
        config = NormalizeConfig.model_validate({"remote": "fork", "future_section": {"x": 1}})
        assert config.remote == "fork"


class TestLoadConfig:
    """Tests for load_config discovery and precedence."""

    def test_defaults_without_files(self, tmp_path):
        assert load_config(tmp_path) == NormalizeConfig()

    def test_user_config(self, tmp_path):
        _write(_get_user_config_dir() / "config.toml", 'remote = "upstream"\n')
        assert load_config(tmp_path).remote == "upstream"

    def test_project_overrides_user(self, tmp_path):
        _write(_get_user_config_dir() / "config.toml", 'remote = "upstream"\n[fetch]\ntags = false\n')
        project = tmp_path / "project"
        _write(project / ".gitnormalize" / "config.toml", 'remote = "fork"\n')

        config = load_config(project)
        assert config.remote == "fork"
        assert config.fetch.tags is False

    def test_project_config_found_from_subdirectory(self, tmp_path):
        project = tmp_path / "project"
        _write(project / ".gitnormalize" / "config.toml", "[checkout]\nattach_detached_head = true\n")
        nested = project / "src" / "deep"
        nested.mkdir(parents=True)

        assert _get_project_config_dir(nested) == project / ".gitnormalize"
        assert load_config(nested).checkout.attach_detached_head is True

    def test_env_overrides_files(self, tmp_path, monkeypatch):
        _write(tmp_path / ".gitnormalize" / "config.toml", "[fetch]\ntimeout = 10\n")
        monkeypatch.setenv("GITNORMALIZE_FETCH_TIMEOUT", "60")

        assert load_config(tmp_path).fetch.timeout == 60
        assert load_config(tmp_path, skip_env=True).fetch.timeout == 10

    def test_invalid_user_config_warns(self, tmp_path):
        _write(_get_user_config_dir() / "config.toml", "remote = [unclosed\n")
        with pytest.warns(UserWarning, match="Skipping invalid user config"):
            config = load_config(tmp_path)
        assert config == NormalizeConfig()

    def test_invalid_project_toml_raises(self, tmp_path):
        _write(tmp_path / ".gitnormalize" / "config.toml", "remote = [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid project config"):
            load_config(tmp_path)

    def test_invalid_values_raise(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GITNORMALIZE_FETCH_TIMEOUT", "-5")
        with pytest.raises(ConfigError, match="validation failed"):
            load_config(tmp_path)

    def test_config_paths(self, tmp_path):
        paths = get_config_paths(tmp_path)
        assert paths["user_config"] == _get_user_config_dir() / "config.toml"
        assert paths["project_config"] is None
        assert paths["user_credentials"].name == "credentials.toml"
