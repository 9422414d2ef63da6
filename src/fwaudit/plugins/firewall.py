"""Firewall hardening checks.

Controls whose data the device model does not carry (SSH banner, MOTD, DNS
rebind protection) are declared so they appear in control listings, but are
not evaluated and never produce findings.
"""

from __future__ import annotations

from ..models.compliance import Control
from ..models.device import Device
from ..models.finding import ComplianceFinding, Severity
from .base import BasePlugin

DEFAULT_HOSTNAMES = ("opnsense", "pfsense", "firewall", "localhost")
BACKUP_PACKAGE = "os-acb"

FIREWALL_CONTROLS = (
    Control(
        id="FIREWALL-001",
        title="SSH Warning Banner Configuration",
        description="A warning banner must be shown before SSH authentication.",
        category="SSH Security",
        severity=Severity.MEDIUM,
        rationale="Banners establish the legal basis for monitoring and prosecution.",
        remediation="Configure an SSH login banner.",
        tags=("ssh-security", "banner", "firewall-controls"),
    ),
    Control(
        id="FIREWALL-002",
        title="Auto Configuration Backup",
        description="Configuration changes must be backed up automatically.",
        category="Backup and Recovery",
        severity=Severity.MEDIUM,
        rationale="Backups allow fast recovery after failure or compromise.",
        remediation="Install and enable the os-acb package.",
        tags=("backup", "configuration", "firewall-controls"),
    ),
    Control(
        id="FIREWALL-003",
        title="Message of the Day",
        description="A message of the day with a legal notice must be configured.",
        category="System Configuration",
        severity=Severity.LOW,
        rationale="A login notice informs users of acceptable use.",
        remediation="Configure a custom MOTD.",
        tags=("motd", "legal-notice", "firewall-controls"),
    ),
    Control(
        id="FIREWALL-004",
        title="Hostname Configuration",
        description="The device must not use a vendor default hostname.",
        category="System Configuration",
        severity=Severity.LOW,
        rationale="Unique hostnames make assets identifiable in logs and inventories.",
        remediation="Set a unique, descriptive hostname.",
        tags=("hostname", "asset-identification", "firewall-controls"),
    ),
    Control(
        id="FIREWALL-005",
        title="DNS Server Configuration",
        description="Upstream DNS servers must be configured explicitly.",
        category="Network Configuration",
        severity=Severity.MEDIUM,
        rationale="Explicit resolvers avoid relying on servers learned from untrusted links.",
        remediation="Configure trusted DNS servers under system settings.",
        tags=("dns", "network-config", "firewall-controls"),
    ),
    Control(
        id="FIREWALL-006",
        title="IPv6 Disablement",
        description="IPv6 must be disabled when it is not in use.",
        category="Network Configuration",
        severity=Severity.MEDIUM,
        rationale="An unused protocol stack is unmonitored attack surface.",
        remediation="Disable 'Allow IPv6' if IPv6 is not required.",
        tags=("ipv6", "attack-surface", "firewall-controls"),
    ),
    Control(
        id="FIREWALL-007",
        title="DNS Rebind Check",
        description="DNS rebinding protection must be enabled.",
        category="DNS Security",
        severity=Severity.LOW,
        rationale="Rebinding attacks let external sites reach internal services.",
        remediation="Enable the DNS rebind check.",
        tags=("dns-rebind", "security", "firewall-controls"),
    ),
    Control(
        id="FIREWALL-008",
        title="HTTPS Web Management",
        description="The web management interface must use HTTPS.",
        category="Management Access",
        severity=Severity.HIGH,
        rationale="Plain HTTP exposes administrator credentials on the network.",
        remediation="Set the web GUI protocol to HTTPS.",
        tags=("https", "encryption", "firewall-controls"),
    ),
)


class FirewallPlugin(BasePlugin):
    name = "firewall"
    version = "1.0.0"
    description = "Firewall hardening and management-plane compliance checks"

    def __init__(self):
        super().__init__(FIREWALL_CONTROLS)

    def run_checks(self, device: Device) -> list[ComplianceFinding]:
        system = device.system
        findings: list[ComplianceFinding] = []

        has_backup = BACKUP_PACKAGE in device.installed_packages() or BACKUP_PACKAGE in system.firmware.plugins
        if not has_backup:
            findings.append(self.finding(
                "FIREWALL-002",
                "The automatic configuration backup package is not installed.",
                issue="Auto Configuration Backup Disabled",
            ))

        hostname = system.hostname.strip().lower()
        if not hostname or hostname in DEFAULT_HOSTNAMES:
            findings.append(self.finding(
                "FIREWALL-004",
                f"The device uses the default hostname '{system.hostname}'." if hostname
                else "The device has no hostname configured.",
                issue="Default Hostname in Use",
            ))

        if not system.dns_servers:
            findings.append(self.finding(
                "FIREWALL-005",
                "No DNS servers are configured.",
                issue="DNS Servers Not Configured",
            ))

        if system.ipv6_allow:
            findings.append(self.finding(
                "FIREWALL-006",
                "IPv6 traffic is allowed.",
                issue="IPv6 Enabled",
            ))

        if system.webgui.protocol.lower() != "https":
            findings.append(self.finding(
                "FIREWALL-008",
                f"The web GUI is served over {system.webgui.protocol.upper() or 'an unknown protocol'}.",
                issue="HTTP Management Access",
            ))

        return findings
