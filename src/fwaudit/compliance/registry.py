"""Compliance plugin registry.

The registry is an explicit value owned by whoever runs the audit; there is no
process-wide instance. Each entry follows the lifecycle
``registered -> validated | invalid``; validation runs at most once per
registration and an invalid plugin stays excluded until it is registered again.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Optional

from ..errors import ControlNotFoundError, PluginRegistrationError, UnknownPluginError
from ..models.compliance import Control
from ..models.plugin import PluginInfo, PluginState
from ..plugins.base import CompliancePlugin
from ..utils.sanitize import sanitize_error


@dataclass
class RegistryEntry:
    plugin: CompliancePlugin
    state: PluginState = PluginState.REGISTERED
    error: Optional[Exception] = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class PluginRegistry:
    """Tracks available plugins and their validation state."""

    def __init__(self, plugins: Optional[list] = None):
        self._entries: dict[str, RegistryEntry] = {}
        self._lock = threading.Lock()
        for plugin in plugins or []:
            self.register(plugin)

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, plugin: object, replace: bool = False) -> None:
        """Register a plugin instance.

        Objects that do not implement the plugin protocol are rejected. A name
        that is already taken is rejected unless ``replace`` is set, in which
        case the new instance starts over in the ``registered`` state.
        """
        name = getattr(plugin, "name", None)
        if not isinstance(name, str) or not name:
            raise PluginRegistrationError(repr(plugin), "plugin has no name")
        if not isinstance(plugin, CompliancePlugin):
            raise PluginRegistrationError(name, "object does not implement the compliance plugin protocol")
        with self._lock:
            if name in self._entries and not replace:
                raise PluginRegistrationError(name, "a plugin with this name is already registered")
            self._entries[name] = RegistryEntry(plugin=plugin)

    def unregister(self, name: str) -> None:
        with self._lock:
            if self._entries.pop(name, None) is None:
                raise UnknownPluginError(name)

    def _entry(self, name: str) -> RegistryEntry:
        entry = self._entries.get(name)
        if entry is None:
            raise UnknownPluginError(name)
        return entry

    def get(self, name: str) -> CompliancePlugin:
        return self._entry(name).plugin

    def names(self) -> list[str]:
        return sorted(self._entries)

    def state(self, name: str) -> PluginState:
        return self._entry(name).state

    def error(self, name: str) -> Optional[Exception]:
        return self._entry(name).error

    def validate(self, name: str) -> bool:
        """Validate a plugin on first use; later calls return the cached verdict.

        Validation errors are recorded on the entry, never raised.
        """
        entry = self._entry(name)
        with entry.lock:
            if entry.state == PluginState.REGISTERED:
                try:
                    entry.plugin.validate_configuration()
                except Exception as e:
                    entry.state = PluginState.INVALID
                    entry.error = e
                else:
                    entry.state = PluginState.VALIDATED
            return entry.state == PluginState.VALIDATED

    def active_names(self) -> list[str]:
        """Names of plugins that are not known to be invalid."""
        return [n for n in self.names() if self._entries[n].state != PluginState.INVALID]

    def list_plugins(self) -> list[PluginInfo]:
        infos: list[PluginInfo] = []
        for name in self.names():
            entry = self._entries[name]
            try:
                control_count = len(entry.plugin.get_controls())
            except Exception:
                control_count = 0
            infos.append(PluginInfo(
                name=name,
                version=str(getattr(entry.plugin, "version", "")),
                description=str(getattr(entry.plugin, "description", "")),
                state=entry.state,
                control_count=control_count,
                validation_error=sanitize_error(str(entry.error)) if entry.error else None,
            ))
        return infos

    def get_control(self, plugin_name: str, control_id: str) -> Control:
        control = self.get(plugin_name).get_control_by_id(control_id)
        if control is None:
            raise ControlNotFoundError(plugin_name, control_id)
        return control
