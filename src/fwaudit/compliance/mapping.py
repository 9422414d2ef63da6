"""Map compliance findings onto controls and score the result."""

from __future__ import annotations

import re
from typing import Iterable

from ..models.compliance import ComplianceChecks, Control, ControlResult, ControlStatus
from ..models.finding import ComplianceFinding

# No control was evaluated: nothing failed, so the device is vacuously compliant.
VACUOUS_COMPLIANCE_SCORE = 100


def reference_matches(reference: str, control_id: str) -> bool:
    """Test if a finding reference names a control.

    Supports exact matches and wildcard references (e.g., FIREWALL-00*).
    """
    if "*" in reference:
        regex = "^" + re.escape(reference).replace(r"\*", ".*") + "$"
        return bool(re.match(regex, control_id))
    return reference == control_id


def match_finding_to_controls(
    finding: ComplianceFinding,
    controls: Iterable[Control],
) -> list[Control]:
    """Find all controls that a finding violates."""
    return [
        c for c in controls
        if any(reference_matches(ref, c.id) for ref in finding.references)
    ]


def compliance_score(passed: int, total: int) -> int:
    if total <= 0:
        return VACUOUS_COMPLIANCE_SCORE
    return round(100 * passed / total)


def build_compliance_checks(
    plugin_controls: dict[str, list[Control]],
    findings: Iterable[ComplianceFinding],
) -> ComplianceChecks:
    """Evaluate every control of every plugin that ran.

    A control fails when at least one finding of its own plugin references it.
    Results are ordered by plugin name, then the plugin's declared order.
    """
    by_plugin: dict[str, list[ComplianceFinding]] = {}
    for finding in findings:
        by_plugin.setdefault(finding.plugin, []).append(finding)

    items: list[ControlResult] = []
    violations: list[ControlResult] = []
    for plugin in sorted(plugin_controls):
        counts = {c.id: 0 for c in plugin_controls[plugin]}
        for finding in by_plugin.get(plugin, []):
            for control in match_finding_to_controls(finding, plugin_controls[plugin]):
                counts[control.id] += 1

        for control in plugin_controls[plugin]:
            failed = counts[control.id] > 0
            result = ControlResult(
                plugin=plugin,
                control_id=control.id,
                title=control.title,
                severity=control.severity,
                status=ControlStatus.FAIL if failed else ControlStatus.PASS,
                finding_count=counts[control.id],
            )
            (violations if failed else items).append(result)

    total = len(items) + len(violations)
    return ComplianceChecks(
        compliance_score=compliance_score(len(items), total),
        compliance_items=items,
        violations=violations,
    )
