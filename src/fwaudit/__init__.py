"""fwaudit - offline audit engine for firewall device configurations."""

__version__ = "1.0.0"
