"""DISA STIG firewall compliance checks."""

from __future__ import annotations

from enum import Enum

from ..models.compliance import Control
from ..models.device import Device, FirewallRule
from ..models.finding import ComplianceFinding, Severity
from .base import BasePlugin

BROAD_NETWORK_RANGES = (
    "0.0.0.0/0",
    "::/0",
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "any",
)

MAX_DHCP_INTERFACES = 2


class LoggingStatus(Enum):
    NOT_CONFIGURED = 0
    COMPREHENSIVE = 1
    PARTIAL = 2
    UNABLE_TO_DETERMINE = 3


STIG_CONTROLS = (
    Control(
        id="V-206694",
        title="Firewall must deny network communications traffic by default",
        description="The firewall must deny all traffic by default and allow only explicitly permitted traffic.",
        category="Default Deny Policy",
        severity=Severity.HIGH,
        rationale="A default-allow posture exposes every service that is not explicitly blocked.",
        remediation="Add an explicit deny-all rule and remove any-to-any pass rules.",
        tags=("stig", "default-deny", "firewall-rules"),
    ),
    Control(
        id="V-206674",
        title="Firewall must use packet headers and attributes for filtering",
        description="Rules must filter on specific source, destination and port values.",
        category="Packet Filtering",
        severity=Severity.HIGH,
        rationale="Rules matching broad network ranges permit traffic that was never intended.",
        remediation="Narrow pass rules to specific hosts, networks and ports.",
        tags=("stig", "packet-filtering", "firewall-rules"),
    ),
    Control(
        id="V-206690",
        title="Firewall must disable unnecessary network services",
        description="Services that are not required for the firewall role must be disabled.",
        category="Service Hardening",
        severity=Severity.MEDIUM,
        rationale="Every enabled service adds attack surface to the firewall.",
        remediation="Disable SNMP, extra DHCP scopes and other services that are not required.",
        tags=("stig", "services", "attack-surface"),
    ),
    Control(
        id="V-206682",
        title="Firewall must generate comprehensive traffic logs",
        description="System, authentication and filter events must be logged.",
        category="Logging",
        severity=Severity.MEDIUM,
        rationale="Incomplete logs prevent incident investigation.",
        remediation="Enable syslog with system and authentication logging.",
        tags=("stig", "logging", "monitoring"),
    ),
)


def _is_broad(address: str) -> bool:
    value = (address or "").strip().lower()
    return value == "" or value in BROAD_NETWORK_RANGES


def _is_any_any_pass(rule: FirewallRule) -> bool:
    return (
        rule.type == "pass"
        and (rule.source.address or "any").lower() == "any"
        and (rule.destination.address or "any").lower() == "any"
    )


class STIGPlugin(BasePlugin):
    name = "stig"
    version = "1.0.0"
    description = "DISA Security Technical Implementation Guide (STIG) compliance checks for firewalls"

    def __init__(self):
        super().__init__(STIG_CONTROLS)

    def run_checks(self, device: Device) -> list[ComplianceFinding]:
        findings: list[ComplianceFinding] = []

        if not self.has_default_deny_policy(device):
            findings.append(self.finding(
                "V-206694",
                "No explicit deny rule was found, or an any-to-any pass rule overrides it.",
                issue="Missing Default Deny Policy",
                component="firewall-rules",
            ))

        if self.has_overly_permissive_rules(device):
            findings.append(self.finding(
                "V-206674",
                "One or more pass rules match broad network ranges.",
                issue="Overly Permissive Firewall Rules",
                component="firewall-rules",
            ))

        if self.has_unnecessary_services(device):
            findings.append(self.finding(
                "V-206690",
                "Services not required for the firewall role are enabled.",
                issue="Unnecessary Network Services Enabled",
                component="services",
            ))

        status = self.analyze_logging_configuration(device)
        if status != LoggingStatus.COMPREHENSIVE:
            findings.append(self.finding(
                "V-206682",
                f"Logging status: {status.name.lower().replace('_', ' ')}.",
                issue="Insufficient Firewall Logging",
                component="logging",
            ))

        return findings

    def has_default_deny_policy(self, device: Device) -> bool:
        rules = [r for r in device.firewall_rules if not r.disabled]
        if not rules:
            # nothing is configured, the platform default applies
            return True
        has_deny = any(r.type in ("block", "reject") for r in rules)
        return has_deny and not any(_is_any_any_pass(r) for r in rules)

    def has_overly_permissive_rules(self, device: Device) -> bool:
        for rule in device.firewall_rules:
            if rule.type != "pass" or rule.disabled:
                continue
            if _is_broad(rule.source.address) and _is_broad(rule.destination.address):
                return True
        return False

    def has_unnecessary_services(self, device: Device) -> bool:
        if device.snmp.ro_community:
            return True
        unbound = device.dns.unbound
        if unbound.enabled and unbound.dnssec_stripped:
            return True
        if len(device.dhcp) > MAX_DHCP_INTERFACES:
            return True
        return bool(device.load_balancer.monitor_types)

    def analyze_logging_configuration(self, device: Device) -> LoggingStatus:
        syslog = device.syslog
        if not syslog.enabled:
            return LoggingStatus.NOT_CONFIGURED
        if syslog.system_logging and syslog.auth_logging:
            return LoggingStatus.COMPREHENSIVE
        if syslog.system_logging or syslog.auth_logging:
            return LoggingStatus.PARTIAL
        return LoggingStatus.UNABLE_TO_DETERMINE
