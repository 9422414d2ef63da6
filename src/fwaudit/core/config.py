"""3-layer configuration system for fwaudit.

Loads and merges configuration from:
1. Default settings (built-in)
2. Project config (.fwaudit.yaml, or an explicit --config file)
3. CLI parameters (override)
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Optional

import yaml

from ..errors import AuditError

PROJECT_CONFIG_NAME = ".fwaudit.yaml"

DEFAULT_CONFIG: dict = {
    "audit": {
        "plugins": [],
        "parallelism": 0,
        "plugin_timeout_seconds": 30,
        "cancel_grace_seconds": 2,
        "extra_plugins": [],
        "entry_points": True,
    },
    "scoring": {
        "weights": {"critical": 25, "high": 15, "medium": 5, "low": 1},
    },
    "thresholds": {
        "max_total_rules": 100,
        "max_rules_per_interface": 50,
    },
    "output": {
        "format": "json",
    },
    "ci": {
        "exit_codes": {"ok": 0, "findings": 1, "invalid_input": 12},
    },
}


class ConfigError(AuditError):
    """A project config file exists but cannot be used."""


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Arrays are replaced, not merged."""
    result = {}
    for key in base:
        result[key] = base[key]
    for key, value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            result[key] = deep_merge(base_value, value)
        else:
            result[key] = value
    return result


def find_project_config(start: Path) -> Optional[Path]:
    """Look for .fwaudit.yaml in ``start`` (or its directory) and its parents."""
    directory = start if start.is_dir() else start.parent
    for candidate in (directory, *directory.parents):
        path = candidate / PROJECT_CONFIG_NAME
        if path.is_file():
            return path
    return None


def load_project_config(config_path: Optional[Path]) -> dict:
    """Load a project config file. A missing path yields an empty config."""
    if config_path is None or not config_path.exists():
        return {}
    try:
        content = config_path.read_text(encoding="utf-8-sig")  # utf-8-sig strips BOM
        data = yaml.safe_load(content) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping")
    return data


def get_effective_config(
    config_path: Optional[Path] = None,
    cli_overrides: Optional[dict] = None,
) -> dict:
    """Get the fully resolved configuration for an audit."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    project_config = load_project_config(config_path)
    if project_config:
        config = deep_merge(config, project_config)

    if cli_overrides:
        config = deep_merge(config, cli_overrides)

    config["_config_path"] = str(config_path) if config_path else None
    return config
