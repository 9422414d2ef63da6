"""Built-in compliance plugins."""

from .base import BasePlugin, CompliancePlugin, cancellation_requested
from .firewall import FirewallPlugin
from .sans import SANSPlugin
from .stig import STIGPlugin

BUILTIN_PLUGINS = (FirewallPlugin, SANSPlugin, STIGPlugin)

__all__ = [
    "BUILTIN_PLUGINS",
    "BasePlugin",
    "CompliancePlugin",
    "FirewallPlugin",
    "SANSPlugin",
    "STIGPlugin",
    "cancellation_requested",
]
