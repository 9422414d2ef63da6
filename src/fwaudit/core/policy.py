"""Firewall rule reachability analysis.

Replays packet-filter evaluation order to find rules that can never take
effect: rules shadowed by an earlier quick rule, exact duplicates, and rules
that reference interfaces or aliases the device does not define.

Evaluation model:
- Floating rules form one ordered sub-list and are evaluated before the
  interface-bound sub-list, each keeping its configuration order.
- Rules are scoped to (interface, direction) slots. A floating rule with no
  interfaces covers every interface ("*"); direction "any" covers in and out;
  interface-bound rules default to "in".
- Only quick rules terminate evaluation, so only quick rules can shadow.
- A rule is unreachable only when every slot it covers is shadowed by an
  earlier quick rule whose match space is a superset of its own. Partial
  overlaps never produce a finding.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..models.device import Alias, Device, FirewallRule, Interface, InterfaceGroup, RuleEndpoint
from ..models.finding import DeadRuleFinding, DeadRuleKind, Severity

ANY_INTERFACE = "*"
FILTER_TYPES = ("pass", "block", "reject")

_UNIVERSAL = ("", "any")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_BUILTIN_ADDRESSES = {"any", "(self)", "self"}


# ---------------------------------------------------------------------------
# Match-space comparison
# ---------------------------------------------------------------------------

def _norm(value: str) -> str:
    return (value or "").strip().lower()


def protocol_covers(outer: str, inner: str) -> bool:
    o, i = _norm(outer), _norm(inner)
    if o in _UNIVERSAL:
        return True
    if i in _UNIVERSAL:
        return False
    if o == i:
        return True
    return o == "tcp/udp" and i in ("tcp", "udp")


def family_covers(outer: str, inner: str) -> bool:
    o, i = _norm(outer), _norm(inner)
    if o in ("", "inet46"):
        return True
    if i in ("", "inet46"):
        return False
    return o == i


def _plain_address_covers(outer: str, inner: str) -> bool:
    o, i = _norm(outer), _norm(inner)
    if o in _UNIVERSAL:
        return True
    if i in _UNIVERSAL:
        return False
    if o == i:
        return True
    try:
        outer_net = ipaddress.ip_network(o, strict=False)
        inner_net = ipaddress.ip_network(i, strict=False)
    except ValueError:
        return False
    if outer_net.version != inner_net.version:
        return False
    return inner_net.subnet_of(outer_net)


def address_covers(outer: RuleEndpoint, inner: RuleEndpoint) -> bool:
    """True when every address matched by ``inner`` is matched by ``outer``."""
    if outer.negated and inner.negated:
        # not(A) contains not(B) exactly when B contains A
        return _plain_address_covers(inner.address, outer.address)
    if outer.negated != inner.negated:
        return not outer.negated and _norm(outer.address) in _UNIVERSAL
    return _plain_address_covers(outer.address, inner.address)


def parse_ports(value: str) -> Optional[list[tuple[int, int]]]:
    """Parse "80", "1000-2000", "1000:2000" and comma lists into ranges.

    Returns None for empty/"any" (every port) and raises ValueError for
    values that are not numeric, such as port aliases.
    """
    v = _norm(value)
    if v in _UNIVERSAL:
        return None
    ranges: list[tuple[int, int]] = []
    for part in v.split(","):
        part = part.strip()
        if not part:
            continue
        lo, sep, hi = part.replace(":", "-").partition("-")
        start = int(lo)
        end = int(hi) if sep else start
        if start > end:
            start, end = end, start
        ranges.append((start, end))
    if not ranges:
        raise ValueError(f"empty port specification: {value!r}")
    return ranges


def port_covers(outer: str, inner: str) -> bool:
    try:
        outer_ranges = parse_ports(outer)
        inner_ranges = parse_ports(inner)
    except ValueError:
        return _norm(outer) == _norm(inner)
    if outer_ranges is None:
        return True
    if inner_ranges is None:
        return False
    return all(
        any(o_lo <= lo and hi <= o_hi for o_lo, o_hi in outer_ranges)
        for lo, hi in inner_ranges
    )


def endpoint_covers(outer: RuleEndpoint, inner: RuleEndpoint) -> bool:
    return address_covers(outer, inner) and port_covers(outer.port, inner.port)


def match_covers(outer: FirewallRule, inner: FirewallRule) -> bool:
    """True when ``outer`` matches at least every packet ``inner`` matches."""
    return (
        protocol_covers(outer.protocol, inner.protocol)
        and family_covers(outer.ip_protocol, inner.ip_protocol)
        and endpoint_covers(outer.source, inner.source)
        and endpoint_covers(outer.destination, inner.destination)
    )


def _endpoint_is_universal(ep: RuleEndpoint) -> bool:
    return not ep.negated and _norm(ep.address) in _UNIVERSAL and _norm(ep.port) in _UNIVERSAL


def is_block_all(rule: FirewallRule) -> bool:
    """Block/reject of any protocol, any address and any port (any family)."""
    return (
        rule.type in ("block", "reject")
        and _norm(rule.protocol) in _UNIVERSAL
        and _endpoint_is_universal(rule.source)
        and _endpoint_is_universal(rule.destination)
    )


# ---------------------------------------------------------------------------
# Rule scoping
# ---------------------------------------------------------------------------

def _directions(rule: FirewallRule) -> tuple[str, ...]:
    direction = _norm(rule.direction)
    if direction in ("in", "out"):
        return (direction,)
    if direction == "any" or (rule.floating and direction == ""):
        return ("in", "out")
    if direction == "":
        return ("in",)
    return ()


@dataclass(frozen=True)
class _ScopedRule:
    index: int
    rule: FirewallRule
    slots: tuple[tuple[str, str], ...]


def _scope(
    index: int,
    rule: FirewallRule,
    groups: dict[str, tuple[str, ...]],
) -> _ScopedRule:
    interfaces: list[str] = []
    for name in rule.interfaces:
        for member in groups.get(name, (name,)):
            if member and member not in interfaces:
                interfaces.append(member)
    if not interfaces and rule.floating:
        interfaces = [ANY_INTERFACE]
    slots = tuple((iface, d) for iface in interfaces for d in _directions(rule))
    return _ScopedRule(index=index, rule=rule, slots=slots)


def _interface_label(rule: FirewallRule) -> str:
    if rule.interfaces:
        return ",".join(rule.interfaces)
    return "floating" if rule.floating else ""


# ---------------------------------------------------------------------------
# Dangling references and duplicates
# ---------------------------------------------------------------------------

def _dangling_interfaces(rule: FirewallRule, known: set[str]) -> list[str]:
    return [name for name in rule.interfaces if name and name not in known]


def _dangling_aliases(
    rule: FirewallRule,
    aliases: set[str],
    interfaces: set[str],
) -> list[str]:
    missing: list[str] = []
    for ep in (rule.source, rule.destination):
        name = (ep.address or "").strip()
        if not name or not _IDENTIFIER.match(name):
            continue
        if name.lower() in _BUILTIN_ADDRESSES or name in aliases or name in interfaces:
            continue
        # interface address / network macros such as "lanip" and "wannet"
        if name.endswith("ip") and name[:-2] in interfaces:
            continue
        if name.endswith("net") and name[:-3] in interfaces:
            continue
        if name not in missing:
            missing.append(name)
    return missing


def _duplicate_key(rule: FirewallRule) -> tuple:
    def ep(e: RuleEndpoint) -> tuple:
        address = _norm(e.address)
        port = _norm(e.port)
        return (
            "any" if address in _UNIVERSAL else address,
            "any" if port in _UNIVERSAL else port,
            e.negated,
        )

    protocol = _norm(rule.protocol)
    family = _norm(rule.ip_protocol)
    return (
        rule.type,
        tuple(sorted(set(rule.interfaces))),
        "any" if protocol in _UNIVERSAL else protocol,
        "inet46" if family in ("", "inet46") else family,
        ep(rule.source),
        ep(rule.destination),
        _directions(rule),
        rule.quick,
        rule.floating,
    )


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def _finding(
    index: int,
    rule: FirewallRule,
    kind: DeadRuleKind,
    reason: str,
    related: Optional[int] = None,
) -> DeadRuleFinding:
    label = rule.description or f"rule {index}"
    if kind == DeadRuleKind.DANGLING_REFERENCE:
        return DeadRuleFinding(
            component=f"filter.rule[{index}]",
            issue="Dangling reference",
            severity=Severity.MEDIUM,
            description=f"{label}: {reason}",
            recommendation="Remove the rule or define the referenced object.",
            rule_index=index,
            interface=_interface_label(rule),
            kind=kind,
            reason=reason,
        )
    if kind == DeadRuleKind.DUPLICATE:
        return DeadRuleFinding(
            component=f"filter.rule[{index}]",
            issue="Duplicate rule",
            severity=Severity.LOW,
            description=f"{label}: {reason}",
            recommendation=f"Remove the rule; rule {related} already matches the same traffic.",
            rule_index=index,
            interface=_interface_label(rule),
            kind=kind,
            reason=reason,
            related_rule_index=related,
        )
    return DeadRuleFinding(
        component=f"filter.rule[{index}]",
        issue="Unreachable rule",
        severity=Severity.MEDIUM,
        description=f"{label}: {reason}",
        recommendation=(
            f"Move the rule above rule {related}, narrow rule {related}, "
            "or remove the rule if it is obsolete."
        ),
        rule_index=index,
        interface=_interface_label(rule),
        kind=kind,
        reason=reason,
        related_rule_index=related,
    )


def analyze_rule_list(
    rules: Sequence[FirewallRule],
    interfaces: Iterable[Interface] = (),
    interface_groups: Iterable[InterfaceGroup] = (),
    aliases: Iterable[Alias] = (),
) -> list[DeadRuleFinding]:
    """Find dead, duplicate and dangling rules.

    Rule indices refer to positions in ``rules``. Entries with an unknown type
    or without any interface/direction scope are skipped. The result holds at
    most one finding per rule, in ascending index order.
    """
    groups = {g.name: tuple(g.members) for g in interface_groups}
    interface_names = {i.name for i in interfaces}
    known_interfaces = interface_names | set(groups)
    alias_names = {a.name for a in aliases}

    results: dict[int, DeadRuleFinding] = {}
    dangling: set[int] = set()

    for index, rule in enumerate(rules):
        if rule.type not in FILTER_TYPES:
            continue
        missing_ifaces = _dangling_interfaces(rule, known_interfaces)
        if missing_ifaces:
            reason = "dangling interface reference: " + ", ".join(missing_ifaces)
        else:
            missing_aliases = _dangling_aliases(rule, alias_names, interface_names)
            if not missing_aliases:
                continue
            reason = "dangling alias reference: " + ", ".join(missing_aliases)
        dangling.add(index)
        results[index] = _finding(index, rule, DeadRuleKind.DANGLING_REFERENCE, reason)

    seen: dict[tuple, int] = {}
    for index, rule in enumerate(rules):
        if rule.type not in FILTER_TYPES or rule.disabled:
            continue
        key = _duplicate_key(rule)
        if key not in seen:
            seen[key] = index
            continue
        if index not in results:
            first = seen[key]
            results[index] = _finding(
                index, rule, DeadRuleKind.DUPLICATE,
                f"redundant/duplicate of rule {first}", related=first,
            )

    scoped = [
        _scope(index, rule, groups)
        for index, rule in enumerate(rules)
        if rule.type in FILTER_TYPES and not rule.disabled
    ]
    floating = [s for s in scoped if s.rule.floating]
    bound = [s for s in scoped if not s.rule.floating]

    accumulated: dict[tuple[str, str], list[_ScopedRule]] = {}
    for current in floating + bound:
        if not current.slots:
            continue

        shadowers: list[_ScopedRule] = []
        for iface, direction in current.slots:
            candidates = list(accumulated.get((ANY_INTERFACE, direction), []))
            if iface != ANY_INTERFACE:
                candidates += accumulated.get((iface, direction), [])
                candidates.sort(key=lambda c: (not c.rule.floating, c.index))
            hit = next(
                (c for c in candidates if match_covers(c.rule, current.rule)),
                None,
            )
            if hit is None:
                shadowers = []
                break
            shadowers.append(hit)

        if shadowers and current.index not in results:
            shadow = shadowers[0]
            if is_block_all(shadow.rule):
                reason = "shadowed by quick block-all"
            else:
                reason = f"shadowed by quick {shadow.rule.type} rule {shadow.index}"
            results[current.index] = _finding(
                current.index, current.rule, DeadRuleKind.UNREACHABLE,
                reason, related=shadow.index,
            )

        if current.rule.quick and current.index not in dangling:
            for slot in current.slots:
                accumulated.setdefault(slot, []).append(current)

    return [results[i] for i in sorted(results)]


def analyze_rules(device: Device) -> list[DeadRuleFinding]:
    """Run reachability analysis over a device's firewall rules."""
    return analyze_rule_list(
        device.firewall_rules,
        interfaces=device.interfaces,
        interface_groups=device.interface_groups,
        aliases=device.aliases,
    )
