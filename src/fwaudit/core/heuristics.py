"""Heuristic security, performance and consistency checks.

Every checker is a pure function of the device (and the thresholds section
of the effective config) and can be called on its own.
"""

from __future__ import annotations

from typing import Callable, Optional

from ..models.device import Device, FirewallRule
from ..models.finding import (
    ConsistencyFinding,
    Finding,
    PerformanceFinding,
    SecurityFinding,
    Severity,
    sort_findings,
)

DEFAULT_MAX_TOTAL_RULES = 100
DEFAULT_MAX_RULES_PER_INTERFACE = 50
DEFAULT_SNMP_COMMUNITIES = ("public", "private")

Checker = Callable[[Device, Optional[dict]], list[Finding]]


def _threshold(config: Optional[dict], key: str, default: int) -> int:
    thresholds = (config or {}).get("thresholds") or {}
    return int(thresholds.get(key, default))


def _is_any(value: str) -> bool:
    return (value or "").strip().lower() in ("", "any")


def _is_wan(device: Device, name: str) -> bool:
    if name.lower() == "wan":
        return True
    iface = device.get_interface(name)
    return iface is not None and iface.type.lower() == "wan"


def _active_rules(device: Device) -> list[tuple[int, FirewallRule]]:
    return [
        (i, r) for i, r in enumerate(device.firewall_rules)
        if r.type in ("pass", "block", "reject") and not r.disabled
    ]


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------

def check_insecure_admin_protocol(device: Device, config: Optional[dict] = None) -> list[Finding]:
    if device.system.webgui.protocol.lower() != "http":
        return []
    return [SecurityFinding(
        component="system.webgui",
        issue="Insecure Web GUI Protocol",
        severity=Severity.CRITICAL,
        description="The web administration interface is served over plain HTTP.",
        recommendation="Configure the web GUI to use HTTPS.",
    )]


def check_default_snmp_community(device: Device, config: Optional[dict] = None) -> list[Finding]:
    community = device.snmp.ro_community.strip().lower()
    if community not in DEFAULT_SNMP_COMMUNITIES:
        return []
    return [SecurityFinding(
        component="snmpd",
        issue="Default SNMP Community String",
        severity=Severity.HIGH,
        description=f"SNMP read-only community is the well-known default '{community}'.",
        recommendation="Change the SNMP community to a strong, unique value or disable SNMP.",
    )]


def check_any_to_any_rules(device: Device, config: Optional[dict] = None) -> list[Finding]:
    findings: list[Finding] = []
    for index, rule in _active_rules(device):
        if rule.type != "pass":
            continue
        src, dst = rule.source, rule.destination
        if src.negated or dst.negated:
            continue
        if not (_is_any(src.address) and _is_any(dst.address) and _is_any(dst.port)):
            continue
        on_wan = any(_is_wan(device, name) for name in device.expand_interfaces(rule.interfaces))
        label = ",".join(rule.interfaces) or "floating"
        findings.append(SecurityFinding(
            component=f"filter.rule[{index}]",
            issue="Any-to-Any Allow Rule",
            severity=Severity.CRITICAL if on_wan else Severity.HIGH,
            description=f"Rule {index} on {label} passes traffic from any source to any destination.",
            recommendation="Restrict the rule to the required sources, destinations and ports.",
        ))
    return findings


def check_permissive_wan_rules(device: Device, config: Optional[dict] = None) -> list[Finding]:
    findings: list[Finding] = []
    for index, rule in _active_rules(device):
        if rule.type != "pass" or rule.source.negated or not _is_any(rule.source.address):
            continue
        dst = rule.destination
        if not dst.negated and _is_any(dst.address) and _is_any(dst.port):
            continue  # reported as any-to-any
        if not any(_is_wan(device, name) for name in device.expand_interfaces(rule.interfaces)):
            continue
        findings.append(SecurityFinding(
            component=f"filter.rule[{index}]",
            issue="Overly Permissive WAN Rule",
            severity=Severity.HIGH,
            description=f"Rule {index} allows traffic from any source on the WAN interface.",
            recommendation="Restrict the source address of WAN pass rules.",
        ))
    return findings


def _referenced_interfaces(device: Device) -> set[str]:
    used: set[str] = set()
    for rule in device.firewall_rules:
        if not rule.disabled:
            used.update(device.expand_interfaces(rule.interfaces))
    used.update(scope.interface for scope in device.dhcp if scope.enabled)
    used.update(gw.interface for gw in device.routing.gateways)
    # DNS resolver and load balancer monitors bind to the LAN by default
    if device.dns.unbound.enabled or device.load_balancer.monitor_types:
        used.add("lan")
    return used


def check_unused_interfaces(device: Device, config: Optional[dict] = None) -> list[Finding]:
    used = _referenced_interfaces(device)
    return [
        SecurityFinding(
            component=f"interfaces.{iface.name}",
            issue="Unused Enabled Interface",
            severity=Severity.LOW,
            description=(
                f"Interface {iface.name} is enabled but not referenced by "
                "firewall rules, DHCP, gateways or LAN services."
            ),
            recommendation="Disable the interface if it is not needed.",
        )
        for iface in device.interfaces
        if iface.enabled and iface.name not in used
    ]


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------

def check_rule_count(device: Device, config: Optional[dict] = None) -> list[Finding]:
    max_total = _threshold(config, "max_total_rules", DEFAULT_MAX_TOTAL_RULES)
    max_per_iface = _threshold(config, "max_rules_per_interface", DEFAULT_MAX_RULES_PER_INTERFACE)
    rules = _active_rules(device)
    findings: list[Finding] = []

    if len(rules) > max_total:
        findings.append(PerformanceFinding(
            component="filter",
            issue="Large Rule Count",
            severity=Severity.MEDIUM,
            description=f"{len(rules)} active firewall rules (threshold {max_total}).",
            recommendation="Consolidate rules with aliases and remove unused entries.",
        ))

    per_iface: dict[str, int] = {}
    for _, rule in rules:
        for name in device.expand_interfaces(rule.interfaces):
            per_iface[name] = per_iface.get(name, 0) + 1
    for name, count in sorted(per_iface.items()):
        if count > max_per_iface:
            findings.append(PerformanceFinding(
                component=f"interfaces.{name}",
                issue="Excessive Rules Per Interface",
                severity=Severity.MEDIUM,
                description=f"{count} active rules on {name} (threshold {max_per_iface}).",
                recommendation="Group related rules with aliases to shorten the evaluation path.",
            ))
    return findings


def check_state_optimization(device: Device, config: Optional[dict] = None) -> list[Finding]:
    return [
        PerformanceFinding(
            component=f"filter.rule[{index}]",
            issue="Stateless Pass Rule",
            severity=Severity.LOW,
            description=f"Rule {index} passes traffic without state tracking.",
            recommendation="Use 'keep state' so return traffic skips rule evaluation.",
        )
        for index, rule in _active_rules(device)
        if rule.type == "pass" and rule.state_type.strip().lower() == "none"
    ]


def check_offloading(device: Device, config: Optional[dict] = None) -> list[Finding]:
    flags = (
        ("disable_checksum_offloading", "Checksum"),
        ("disable_segmentation_offloading", "Segmentation"),
        ("disable_large_receive_offloading", "Large Receive"),
    )
    return [
        PerformanceFinding(
            component="system",
            issue=f"{label} Offloading Disabled",
            severity=Severity.LOW,
            description=f"Hardware {label.lower()} offloading is disabled.",
            recommendation=f"Enable {label.lower()} offloading if the NIC driver supports it.",
        )
        for attr, label in flags
        if getattr(device.system, attr)
    ]


# ---------------------------------------------------------------------------
# Consistency
# ---------------------------------------------------------------------------

def check_rule_gateways(device: Device, config: Optional[dict] = None) -> list[Finding]:
    known = device.gateway_names()
    return [
        ConsistencyFinding(
            component=f"filter.rule[{index}]",
            issue="Undefined Rule Gateway",
            severity=Severity.MEDIUM,
            description=f"Rule {index} routes via gateway '{rule.gateway}' which is not defined.",
            recommendation="Define the gateway under routing or remove it from the rule.",
        )
        for index, rule in enumerate(device.firewall_rules)
        if rule.gateway and rule.gateway not in known
    ]


def check_interface_gateways(device: Device, config: Optional[dict] = None) -> list[Finding]:
    known = device.gateway_names()
    return [
        ConsistencyFinding(
            component=f"interfaces.{iface.name}",
            issue="Undefined Interface Gateway",
            severity=Severity.MEDIUM,
            description=f"Interface {iface.name} uses gateway '{iface.gateway}' which is not defined.",
            recommendation="Define the gateway under routing or clear it on the interface.",
        )
        for iface in device.interfaces
        if iface.gateway and iface.gateway not in known
    ]


def check_dhcp_interface_address(device: Device, config: Optional[dict] = None) -> list[Finding]:
    findings: list[Finding] = []
    for scope in device.dhcp:
        if not scope.enabled:
            continue
        iface = device.get_interface(scope.interface)
        if iface is not None and iface.ip_address:
            continue
        problem = "is not defined" if iface is None else "has no IP address"
        findings.append(ConsistencyFinding(
            component=f"dhcpd.{scope.interface}",
            issue="DHCP Without Interface Address",
            severity=Severity.HIGH,
            description=f"DHCP is enabled on {scope.interface}, but the interface {problem}.",
            recommendation="Assign a static IP address to the interface or disable DHCP on it.",
        ))
    return findings


def check_user_groups(device: Device, config: Optional[dict] = None) -> list[Finding]:
    groups = {g.name for g in device.groups}
    return [
        ConsistencyFinding(
            component=f"system.user.{user.name}",
            issue="User References Missing Group",
            severity=Severity.MEDIUM,
            description=f"User {user.name} belongs to group '{user.group_name}' which is not defined.",
            recommendation="Create the group or move the user to an existing group.",
        )
        for user in device.users
        if user.group_name and user.group_name not in groups
    ]


SECURITY_CHECKS: tuple[Checker, ...] = (
    check_insecure_admin_protocol,
    check_default_snmp_community,
    check_any_to_any_rules,
    check_permissive_wan_rules,
    check_unused_interfaces,
)

PERFORMANCE_CHECKS: tuple[Checker, ...] = (
    check_rule_count,
    check_state_optimization,
    check_offloading,
)

CONSISTENCY_CHECKS: tuple[Checker, ...] = (
    check_rule_gateways,
    check_interface_gateways,
    check_dhcp_interface_address,
    check_user_groups,
)


def _run(checks: tuple[Checker, ...], device: Device, config: Optional[dict]) -> list:
    findings: list[Finding] = []
    for check in checks:
        findings.extend(check(device, config))
    return sort_findings(findings)


def run_heuristics(
    device: Device,
    config: Optional[dict] = None,
) -> tuple[list[SecurityFinding], list[PerformanceFinding], list[ConsistencyFinding]]:
    """Run every checker; each category is returned in report order."""
    return (
        _run(SECURITY_CHECKS, device, config),
        _run(PERFORMANCE_CHECKS, device, config),
        _run(CONSISTENCY_CHECKS, device, config),
    )
