"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from shellbridge.config.models import BridgeConfig, ConfigError
from shellbridge.config.paths import get_config_path

DEFAULT_WORKDIR_ENV = "SHELLBRIDGE_DEFAULT_WORKDIR"
# Older deployments set this name; the new one wins when both are present
DEFAULT_WORKDIR_ALIAS_ENV = "MCP_SHELL_DEFAULT_WORKDIR"
ALLOWED_WORKDIRS_ENV = "SHELLBRIDGE_ALLOWED_WORKDIRS"
SOCKET_ENV = "SHELLBRIDGE_SOCKET"
DISABLED_METHODS_ENV = "SHELLBRIDGE_DISABLED_METHODS"
LOG_LEVEL_ENV = "SHELLBRIDGE_LOG_LEVEL"


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("shellbridge.toml"),  # Current directory
        get_config_path(),  # ~/.shellbridge/config.toml (or SHELLBRIDGE_HOME)
    ]


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _apply_env_overrides(
    config: dict[str, Any], environ: Mapping[str, str]
) -> dict[str, Any]:
    """Overlay environment settings on top of file values."""
    workdir = environ.get(DEFAULT_WORKDIR_ENV) or environ.get(DEFAULT_WORKDIR_ALIAS_ENV)
    if workdir:
        config["default_workdir"] = workdir

    if allowed := environ.get(ALLOWED_WORKDIRS_ENV):
        config["allowed_workdirs"] = _split_list(allowed)

    if socket_path := environ.get(SOCKET_ENV):
        config["socket_path"] = socket_path

    if disabled := environ.get(DISABLED_METHODS_ENV):
        config["disabled_methods"] = _split_list(disabled)

    if level := environ.get(LOG_LEVEL_ENV):
        config["log_level"] = level

    return config


def _find_config_file(path: Path | None) -> Path | None:
    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        return config_path

    for default_path in _get_default_config_paths():
        expanded = default_path.expanduser()
        if expanded.exists():
            return expanded
    return None


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BridgeConfig:
    """Load configuration from an optional TOML file plus the environment.

    Args:
        path: Explicit path to config file. If None, searches default
            locations and falls back to defaults when none exists.
        environ: Environment mapping, defaults to os.environ.

    Returns:
        Validated BridgeConfig instance.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    raw_config: dict[str, Any] = {}

    config_path = _find_config_file(path)
    if config_path is not None:
        try:
            with config_path.open("rb") as f:
                raw_config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    raw_config = _apply_env_overrides(
        raw_config, environ if environ is not None else os.environ
    )

    try:
        return BridgeConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
