"""Security assessment scoring."""

from __future__ import annotations

from typing import Iterable, Optional

from ..models.device import Device
from ..models.finding import Finding, Severity, sort_findings
from ..models.report import SecurityAssessment

DEFAULT_SEVERITY_WEIGHTS: dict[str, int] = {
    Severity.CRITICAL.value: 25,
    Severity.HIGH.value: 15,
    Severity.MEDIUM.value: 5,
    Severity.LOW.value: 1,
}

BASELINE_SCORE = 100


def security_score(findings: Iterable[Finding], weights: Optional[dict] = None) -> int:
    """Start at 100, deduct the weight of each finding, clamp to [0, 100]."""
    effective = dict(DEFAULT_SEVERITY_WEIGHTS)
    effective.update(weights or {})
    deduction = sum(int(effective.get(f.severity.value, 0)) for f in findings)
    return max(0, min(BASELINE_SCORE, BASELINE_SCORE - deduction))


def security_features(device: Device) -> list[str]:
    """Protective features that are enabled on the device."""
    system = device.system
    features: list[str] = []
    if system.webgui.protocol.lower() == "https":
        features.append("HTTPS web management")
    if system.ssh.enabled and system.ssh.authentication_method.lower() in ("key", "publickey"):
        features.append("Key-based SSH authentication")
    if device.syslog.enabled:
        features.append("Syslog logging")
    if device.syslog.remote_server:
        features.append("Remote log forwarding")
    if device.ids.enabled:
        features.append("Intrusion detection")
    wan = [i for i in device.interfaces if i.enabled and (i.name == "wan" or i.type == "wan")]
    if wan and all(i.block_bogons for i in wan):
        features.append("Bogon network filtering")
    if wan and all(i.block_private for i in wan):
        features.append("Private network filtering")
    if "os-acb" in device.installed_packages():
        features.append("Automatic configuration backup")
    if any(r.type in ("block", "reject") and not r.disabled for r in device.firewall_rules):
        features.append("Explicit deny rules")
    return features


def build_security_assessment(
    device: Device,
    findings: Iterable[Finding],
    weights: Optional[dict] = None,
) -> SecurityAssessment:
    """Assess the findings that count against security posture.

    Callers pass heuristic security findings and compliance findings; dead
    rules, performance and consistency issues do not affect the score.
    """
    ordered = sort_findings(findings)
    vulnerabilities = [
        f"{f.issue} ({f.component})"
        for f in ordered
        if f.severity in (Severity.CRITICAL, Severity.HIGH)
    ]
    recommendations: list[str] = []
    for f in ordered:
        if f.recommendation and f.recommendation not in recommendations:
            recommendations.append(f.recommendation)
    return SecurityAssessment(
        overall_score=security_score(ordered, weights),
        security_features=security_features(device),
        vulnerabilities=vulnerabilities,
        recommendations=recommendations,
    )
