"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from forksync.core.errors import ConfigError

from .models import ForkSyncConfig

logger = logging.getLogger(__name__)

# Global cache to avoid reloading config multiple times per process
_config_cache: ForkSyncConfig | None = None

ENV_PREFIX = "FORKSYNC_"


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """Path to ~/.config/forksync/config.json (or XDG equivalent)."""
    return get_xdg_config_home() / "forksync" / "config.json"


def get_project_config_path(cwd: Path | None = None) -> Path:
    """Path to .forksync.json in the given (or current) directory."""
    if cwd is None:
        cwd = Path.cwd()
    return cwd / ".forksync.json"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`. Nested
    dicts are merged, not replaced.

    Example:
        >>> deep_merge({"a": 1, "b": {"x": 10}}, {"b": {"y": 30}})
        {'a': 1, 'b': {'x': 10, 'y': 30}}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Load a JSON config file.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON object, or None if the file doesn't exist

    Raises:
        ConfigError: If the file can't be read, isn't JSON, or isn't an object
    """
    if not path.exists():
        return None

    try:
        with path.open() as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        raise ConfigError(f"Failed to parse config at {path}: {e}", path=str(path)) from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config at {path} must be a JSON object", path=str(path))
    return data


def _env_int(name: str) -> int | None:
    if (raw := os.environ.get(ENV_PREFIX + name)) is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid {ENV_PREFIX}{name} value '{raw}'", env=name) from e


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Supported env vars:
        FORKSYNC_DEFAULT_MERGE_STRATEGY - ff, merge or rebase
        FORKSYNC_SYNC_CONCURRENCY - integer >= 1
        FORKSYNC_SCAN_PATHS - roots separated by os.pathsep
        FORKSYNC_MAX_SCAN_DEPTH - integer >= 0
        FORKSYNC_DATA_DIR - state directory

    Raises:
        ConfigError: If a numeric variable isn't an integer
    """
    result = config_dict.copy()

    if strategy := os.environ.get(ENV_PREFIX + "DEFAULT_MERGE_STRATEGY"):
        result["default_merge_strategy"] = strategy.strip().lower()

    if (concurrency := _env_int("SYNC_CONCURRENCY")) is not None:
        result["sync_concurrency"] = concurrency

    if (depth := _env_int("MAX_SCAN_DEPTH")) is not None:
        result["max_scan_depth"] = depth

    if scan_paths := os.environ.get(ENV_PREFIX + "SCAN_PATHS"):
        result["scan_paths"] = [p for p in scan_paths.split(os.pathsep) if p]

    if data_dir := os.environ.get(ENV_PREFIX + "DATA_DIR"):
        result["data_dir"] = data_dir

    return result


def get_default_config() -> dict[str, Any]:
    """Hardcoded defaults; anything not listed falls back to the model defaults."""
    return {
        "default_merge_strategy": "ff",
        "sync_concurrency": 8,
        "scan_paths": [],
        "max_scan_depth": 4,
    }


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> ForkSyncConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (FORKSYNC_*)
        2. Project config (.forksync.json)
        3. User config (~/.config/forksync/config.json)
        4. Hardcoded defaults

    Args:
        project_dir: Directory to load .forksync.json from (defaults to cwd)
        use_cache: If True, return cached config from previous load

    Returns:
        Validated ForkSyncConfig instance

    Raises:
        ConfigError: If a layer is unreadable or the merged config is invalid
    """
    global _config_cache

    if use_cache and _config_cache is not None:
        return _config_cache

    merged = get_default_config()

    user_config_path = get_user_config_path()
    if user_config := load_json_file(user_config_path):
        logger.debug("Loaded user config from %s", user_config_path)
        merged = deep_merge(merged, user_config)

    project_config_path = get_project_config_path(project_dir)
    if project_config := load_json_file(project_config_path):
        logger.debug("Loaded project config from %s", project_config_path)
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    try:
        config = ForkSyncConfig(**merged)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ConfigError(f"Invalid configuration ({fields}): {e}", fields=fields) from e

    _config_cache = config
    return config


def save_user_config(config: ForkSyncConfig, path: Path | None = None) -> Path:
    """
    Write a config to the user config file atomically.

    Returns:
        The path written
    """
    path = path or get_user_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_path = path.with_suffix(".tmp")
    try:
        temp_path.write_text(config.model_dump_json(indent=2, exclude_none=True))
        temp_path.replace(path)
    except OSError:
        if temp_path.exists():
            temp_path.unlink()
        raise
    return path


def clear_cache() -> None:
    """
    Clear the cached configuration.

    Useful for testing or when config files change during execution.
    """
    global _config_cache
    _config_cache = None
