"""Compliance plugin loading.

Plugins come from three places: the built-in set, installed distributions that
advertise an ``fwaudit.plugins`` entry point, and explicit ``module:attr``
references from the project config. Whatever is loaded must satisfy the
plugin protocol; anything else is skipped with a warning and never registered.
"""

from __future__ import annotations

import importlib
from importlib.metadata import entry_points
from typing import Optional

from ..errors import PluginRegistrationError
from ..plugins import BUILTIN_PLUGINS
from ..plugins.base import CompliancePlugin
from .registry import PluginRegistry

ENTRY_POINT_GROUP = "fwaudit.plugins"


def instantiate_plugin(obj: object, source: str) -> CompliancePlugin:
    """Turn a loaded class, factory or instance into a plugin instance."""
    if isinstance(obj, type) or (callable(obj) and not isinstance(obj, CompliancePlugin)):
        try:
            obj = obj()
        except Exception as e:
            raise PluginRegistrationError(source, f"failed to construct plugin: {e}") from e
    if not isinstance(obj, CompliancePlugin):
        raise PluginRegistrationError(source, "object does not implement the compliance plugin protocol")
    return obj


def builtin_plugins() -> list[CompliancePlugin]:
    return [cls() for cls in BUILTIN_PLUGINS]


def load_plugin_from_path(path: str) -> CompliancePlugin:
    """Load a plugin from a ``package.module:attribute`` reference."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise PluginRegistrationError(path, "expected 'module:attribute'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise PluginRegistrationError(path, f"cannot import module: {e}") from e
    obj = module
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise PluginRegistrationError(path, f"attribute not found: {part}") from e
    return instantiate_plugin(obj, path)


def load_entry_point_plugins(group: str = ENTRY_POINT_GROUP) -> tuple[list[CompliancePlugin], list[str]]:
    """Load every plugin advertised under ``group``. Returns (plugins, warnings)."""
    plugins: list[CompliancePlugin] = []
    warnings: list[str] = []
    for ep in sorted(entry_points(group=group), key=lambda e: e.name):
        try:
            plugins.append(instantiate_plugin(ep.load(), f"entry point {ep.name}"))
        except PluginRegistrationError as e:
            warnings.append(str(e))
        except Exception as e:
            warnings.append(f"entry point {ep.name}: failed to load: {e}")
    return plugins, warnings


def build_registry(config: Optional[dict] = None) -> tuple[PluginRegistry, list[str]]:
    """Create a registry with built-in and configured plugins.

    Returns the registry and a list of warnings for plugins that were skipped.
    """
    audit_config = (config or {}).get("audit") or {}
    registry = PluginRegistry()
    warnings: list[str] = []

    candidates: list[CompliancePlugin] = builtin_plugins()

    if audit_config.get("entry_points", True):
        loaded, ep_warnings = load_entry_point_plugins()
        candidates.extend(loaded)
        warnings.extend(ep_warnings)

    for path in audit_config.get("extra_plugins") or []:
        try:
            candidates.append(load_plugin_from_path(path))
        except PluginRegistrationError as e:
            warnings.append(str(e))

    for plugin in candidates:
        try:
            registry.register(plugin)
        except PluginRegistrationError as e:
            warnings.append(str(e))

    return registry, warnings
