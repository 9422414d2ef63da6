"""SANS firewall checklist compliance checks."""

from __future__ import annotations

from ..models.compliance import Control
from ..models.device import Device
from ..models.finding import ComplianceFinding, Severity
from .base import BasePlugin, cancellation_requested

SANS_CONTROLS = (
    Control(
        id="SANS-FW-001",
        title="Ingress Filtering of Private and Bogon Networks",
        description="WAN interfaces must drop traffic from RFC 1918 and bogon source networks.",
        category="Ingress Filtering",
        severity=Severity.HIGH,
        rationale="Spoofed private or unallocated sources are a common attack vector.",
        remediation="Enable 'Block private networks' and 'Block bogon networks' on WAN interfaces.",
        tags=("sans", "ingress", "anti-spoofing"),
    ),
    Control(
        id="SANS-FW-002",
        title="Rule Documentation",
        description="Every active firewall rule must carry a description of its purpose.",
        category="Change Management",
        severity=Severity.LOW,
        rationale="Undocumented rules are rarely reviewed and rarely removed.",
        remediation="Add a description to every firewall rule.",
        tags=("sans", "documentation", "firewall-rules"),
    ),
    Control(
        id="SANS-FW-003",
        title="Logging of Denied Traffic",
        description="Block and reject rules must log the traffic they drop.",
        category="Logging",
        severity=Severity.MEDIUM,
        rationale="Denied-traffic logs reveal scanning and intrusion attempts.",
        remediation="Enable logging on block and reject rules.",
        tags=("sans", "logging", "firewall-rules"),
    ),
    Control(
        id="SANS-FW-004",
        title="Secure Remote Administration",
        description="SSH administration must not allow password authentication.",
        category="Management Access",
        severity=Severity.HIGH,
        rationale="Password logins are exposed to brute-force and credential stuffing.",
        remediation="Require key-based SSH authentication.",
        tags=("sans", "ssh", "management"),
    ),
)


class SANSPlugin(BasePlugin):
    name = "sans"
    version = "1.0.0"
    description = "SANS firewall checklist compliance checks"

    def __init__(self):
        super().__init__(SANS_CONTROLS)

    def run_checks(self, device: Device) -> list[ComplianceFinding]:
        findings: list[ComplianceFinding] = []

        for iface in device.interfaces:
            if not iface.enabled or not (iface.name == "wan" or iface.type == "wan"):
                continue
            if not (iface.block_private and iface.block_bogons):
                findings.append(self.finding(
                    "SANS-FW-001",
                    f"Interface {iface.name} does not block private and bogon source networks.",
                    component=f"interfaces.{iface.name}",
                ))

        if cancellation_requested():
            return findings

        active = [
            (i, r) for i, r in enumerate(device.firewall_rules)
            if not r.disabled and r.type in ("pass", "block", "reject")
        ]
        undocumented = [str(i) for i, r in active if not r.description.strip()]
        if undocumented:
            findings.append(self.finding(
                "SANS-FW-002",
                f"Rules without a description: {', '.join(undocumented)}.",
                component="firewall-rules",
            ))

        silent = [str(i) for i, r in active if r.type in ("block", "reject") and not r.log]
        if silent:
            findings.append(self.finding(
                "SANS-FW-003",
                f"Block/reject rules without logging: {', '.join(silent)}.",
                component="firewall-rules",
            ))

        ssh = device.system.ssh
        if ssh.enabled and ssh.authentication_method.lower() == "password":
            findings.append(self.finding(
                "SANS-FW-004",
                "SSH accepts password authentication.",
                component="system.ssh",
            ))

        return findings
