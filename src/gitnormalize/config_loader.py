"""Configuration loading and merging for gitnormalize.

Handles TOML loading, config discovery, deep merging, and environment overlay.
"""

from __future__ import annotations

import os
import sys
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

# TOML loading: tomllib (3.11+) with tomli fallback
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pydantic import ValidationError

from .config_schema import NormalizeConfig


CONFIG_FILENAME = "config.toml"

# Directory names
USER_CONFIG_DIR = ".gitnormalize"
PROJECT_CONFIG_DIR = ".gitnormalize"

# Environment variable mapping: name -> (section_path, key_name)
ENV_MAPPING: Dict[str, tuple[list[str], str]] = {
    "GITNORMALIZE_REMOTE": ([], "remote"),
    # Fetch
    "GITNORMALIZE_NO_FETCH": (["fetch"], "enabled"),
    "GITNORMALIZE_FETCH_TAGS": (["fetch"], "tags"),
    "GITNORMALIZE_FETCH_PULL_REQUESTS": (["fetch"], "pull_requests"),
    "GITNORMALIZE_FETCH_UNSHALLOW": (["fetch"], "unshallow"),
    "GITNORMALIZE_FETCH_TIMEOUT": (["fetch"], "timeout"),
    # Checkout
    "GITNORMALIZE_ATTACH_HEAD": (["checkout"], "attach_detached_head"),
    "GITNORMALIZE_IGNORE_HEAD_MOVE": (["checkout"], "ignore_head_move"),
    # Logging
    "GITNORMALIZE_LOG_LEVEL": (["logging"], "level"),
    "GITNORMALIZE_LOG_DIR": (["logging"], "dir"),
    "GITNORMALIZE_LOG_MAX_BYTES": (["logging"], "max_bytes"),
    "GITNORMALIZE_LOG_BACKUP_COUNT": (["logging"], "backup_count"),
    "GITNORMALIZE_LOG_DISABLE_FILE": (["logging"], "disable_file"),
}

# Boolean variables whose meaning is the opposite of the config key
_INVERTED_ENV = {"GITNORMALIZE_NO_FETCH"}


class ConfigError(Exception):
    """Configuration loading or validation error."""

    pass


def _get_user_config_dir() -> Path:
    """Get user-level config directory (~/.gitnormalize/)."""
    return Path.home() / USER_CONFIG_DIR


def _get_project_config_dir(project_path: Optional[Path] = None) -> Optional[Path]:
    """Get project-level config directory (.gitnormalize/).

    Searches upward from project_path to find .gitnormalize/ directory.
    """
    if project_path is None:
        project_path = Path.cwd()

    if not project_path.is_absolute():
        project_path = project_path.resolve()

    current = project_path
    while current != current.parent:
        config_dir = current / PROJECT_CONFIG_DIR
        if config_dir.is_dir():
            return config_dir
        current = current.parent

    return None


def _load_toml(path: Path) -> Dict[str, Any]:
    """Load a TOML file.

    Raises:
        ConfigError: If file cannot be loaded or parsed
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries.

    Override values take precedence. Nested dicts are merged recursively.
    Lists are replaced, not merged.
    """
    result = base.copy()

    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _env_to_config_key(env_var: str) -> tuple[list[str], str]:
    """Map environment variable to config path.

    Returns tuple of (section_path, key_name); unknown variables map to
    ([], env_var).

    Examples:
        GITNORMALIZE_REMOTE -> ([], "remote")
        GITNORMALIZE_FETCH_TAGS -> (["fetch"], "tags")
    """
    return ENV_MAPPING.get(env_var, ([], env_var))


def _invert_bool(value: str) -> str:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return "false"
    if lowered in {"0", "false", "no", "off", ""}:
        return "true"
    # Leave unrecognized values for Pydantic to reject
    return value


def _apply_env_overlay(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to config dict."""
    result = _deep_merge({}, config_dict)

    for env_var in ENV_MAPPING:
        value = os.getenv(env_var)
        if value is None:
            continue

        section_path, key_name = _env_to_config_key(env_var)
        if env_var in _INVERTED_ENV:
            value = _invert_bool(value)

        current = result
        for section in section_path:
            if not isinstance(current.get(section), dict):
                current[section] = {}
            current = current[section]

        # Type conversion happens during Pydantic validation
        current[key_name] = value

    return result


def load_config(
    project_path: Optional[Path] = None,
    skip_env: bool = False,
) -> NormalizeConfig:
    """Load and merge gitnormalize configuration.

    Discovery order (later sources override earlier):
    1. Built-in defaults
    2. User config (~/.gitnormalize/config.toml)
    3. Project config (.gitnormalize/config.toml, searched upward)
    4. Environment variables (unless skip_env=True)

    Raises:
        ConfigError: If config files are invalid
    """
    config_dict: Dict[str, Any] = {}

    user_config_path = _get_user_config_dir() / CONFIG_FILENAME
    if user_config_path.exists():
        try:
            config_dict = _deep_merge(config_dict, _load_toml(user_config_path))
        except ConfigError as e:
            # User config is optional, warn but continue
            warnings.warn(
                f"Skipping invalid user config at {user_config_path}: {e}",
                UserWarning,
            )

    project_config_dir = _get_project_config_dir(project_path)
    if project_config_dir:
        project_config_path = project_config_dir / CONFIG_FILENAME
        if project_config_path.exists():
            try:
                config_dict = _deep_merge(config_dict, _load_toml(project_config_path))
            except ConfigError as e:
                raise ConfigError(f"Invalid project config: {e}")

    if not skip_env:
        config_dict = _apply_env_overlay(config_dict)

    try:
        return NormalizeConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigError(f"Config validation failed:\n{e}")


def get_config_paths(project_path: Optional[Path] = None) -> Dict[str, Optional[Path]]:
    """Get paths to all config files.

    Returns dict with keys: user_config, project_config, user_credentials
    """
    user_dir = _get_user_config_dir()
    project_dir = _get_project_config_dir(project_path)

    return {
        "user_config": user_dir / CONFIG_FILENAME,
        "project_config": project_dir / CONFIG_FILENAME if project_dir else None,
        "user_credentials": user_dir / "credentials.toml",
    }
