"""Exception types raised by the audit engine."""

from __future__ import annotations


class AuditError(Exception):
    """Base class for all audit engine errors."""


class InvalidDeviceError(AuditError):
    """The device model handed to the engine is missing or malformed."""


class PluginError(AuditError):
    """Base class for errors attributed to a single compliance plugin."""

    def __init__(self, plugin: str, message: str):
        super().__init__(f"{plugin}: {message}")
        self.plugin = plugin
        self.message = message


class PluginRegistrationError(PluginError):
    pass


class PluginValidationError(PluginError):
    pass


class NoControlsDefinedError(PluginValidationError):
    def __init__(self, plugin: str):
        super().__init__(plugin, "no controls defined")


class ControlNotFoundError(PluginError):
    def __init__(self, plugin: str, control_id: str):
        super().__init__(plugin, f"control not found: {control_id}")
        self.control_id = control_id


class PluginExecutionError(PluginError):
    pass


class PluginTimeoutError(PluginError):
    def __init__(self, plugin: str, timeout: float):
        super().__init__(plugin, f"timed out after {timeout:g}s")
        self.timeout = timeout


class PluginCancelledError(PluginError):
    def __init__(self, plugin: str):
        super().__init__(plugin, "cancelled before completion")


class UnknownPluginError(PluginError):
    def __init__(self, plugin: str):
        super().__init__(plugin, "no plugin registered under this name")
